#!/usr/bin/env python3
"""Run saved watches: one watch or the whole batch, optionally only counting new listings."""
import argparse
import sys
from datetime import datetime
from pathlib import Path

SCRIPT_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = SCRIPT_DIR.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from listingwatch.utils.env import load_env_if_present

load_env_if_present()

from listingwatch.core.exceptions import ListingWatchError
from listingwatch.core.logging import setup_logging
from listingwatch.db.session import SessionLocal, init_db
from listingwatch.services.owner import Owner
from listingwatch.services.watch_runner import build_runner

DATE_FMT = "%Y-%m-%d %H:%M:%S"


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(
        description="Run saved watches. Without --watch-id every non-expired watch is run.",
        epilog="Example: python scripts/run_watches.py --sweep",
    )
    p.add_argument("--watch-id", default=None, help="Run this watch only (default: all)")
    p.add_argument("--dry-run", action="store_true", help="Only count new listings for --watch-id; persist nothing")
    p.add_argument("--sweep", action="store_true", help="Also delete expired guest watches and old match events")
    p.add_argument("--init-db", action="store_true", help="Create missing tables first (local SQLite databases)")
    return p.parse_args()


def _owner_of(watch) -> Owner:
    if watch.user_id is not None:
        return Owner.user(watch.user_id)
    return Owner.guest(watch.guest_email or "", watch.deletion_token)


def main() -> int:
    args = parse_args()
    setup_logging()
    ts = datetime.now().strftime(DATE_FMT)

    if args.init_db:
        init_db()

    db = SessionLocal()
    try:
        runner = build_runner(db)
        if args.watch_id:
            watch = runner.store.get(args.watch_id)
            if watch is None:
                print(f"{ts} [ERROR] Watch {args.watch_id} not found")
                return 1
            owner = _owner_of(watch)
            try:
                if args.dry_run:
                    count = runner.count_new(args.watch_id, owner)
                    print(f"{ts} [INFO] Watch {args.watch_id}: {count} new listings (dry run, nothing persisted)")
                    return 0
                result = runner.run(args.watch_id, owner)
            except ListingWatchError as e:
                print(f"{ts} [ERROR] {e}")
                return 1
            print(
                f"{ts} [INFO] Watch {args.watch_id}: {len(result.new_listings)} new "
                f"of {result.total_current_matches} current matches"
            )
            for listing in result.new_listings[:10]:
                print(f"  - {listing.id}: {listing.title or '(no title)'}")
            if len(result.new_listings) > 10:
                print(f"  ... and {len(result.new_listings) - 10} more")
        else:
            report = runner.run_all(trigger="cli")
            print(
                f"{ts} [INFO] Watches processed: {report.processed}, skipped: {report.skipped}, "
                f"new matches: {report.new_matches}, errors: {report.errors}"
            )
            for item in report.details:
                print(f"  - {item.get('name', item['watch_id'])}: {item['status']} {item.get('new_matches', '')}".rstrip())

        if args.sweep:
            swept = runner.sweep_expired()
            purged = runner.purge_match_events()
            print(f"{ts} [INFO] Swept {swept} expired guest watches, purged {purged} match events")
    finally:
        db.close()

    return 0


if __name__ == "__main__":
    sys.exit(main())
