"""Watch persistence: watches, their seen-listing sets, match events and run logs."""
import logging
from datetime import datetime, timedelta
from typing import Any, Iterable, Optional

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from listingwatch.connectors.catalog import ListingRecord
from listingwatch.core.exceptions import Forbidden, NotFound, WatchConflict
from listingwatch.models.watch import Watch
from listingwatch.models.watch_match import WatchMatch, match_hash
from listingwatch.models.watch_run import WatchRun
from listingwatch.services.owner import Owner
from listingwatch.utils.dates import utcnow

logger = logging.getLogger(__name__)


class WatchStore:
    """All database access for watches goes through here."""

    def __init__(self, db: Session):
        self.db = db

    # ── Watches ──────────────────────────────────────────────────────

    def create(
        self,
        owner: Owner,
        name: str,
        category: str,
        criteria: list[dict[str, Any]],
        seen_listing_ids: Iterable[str],
        deletion_token: Optional[str] = None,
        expires_at: Optional[datetime] = None,
        created_by_ip: Optional[str] = None,
    ) -> Watch:
        watch = Watch(
            user_id=owner.user_id,
            guest_email=owner.guest_email if owner.is_guest else None,
            deletion_token=deletion_token,
            name=name,
            category=category,
            criteria=criteria,
            seen_listing_ids=sorted({str(i) for i in seen_listing_ids}),
            expires_at=expires_at,
            created_by_ip=created_by_ip,
        )
        self.db.add(watch)
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(watch)
        return watch

    def get(self, watch_id: str) -> Optional[Watch]:
        return self.db.get(Watch, watch_id)

    def get_owned(self, watch_id: str, owner: Owner) -> Watch:
        """Raises NotFound if the watch does not exist, Forbidden if owner doesn't own it."""
        watch = self.get(watch_id)
        if watch is None:
            raise NotFound(f"Watch {watch_id} not found")
        if not owner.owns(watch):
            raise Forbidden(f"Watch {watch_id} belongs to someone else")
        return watch

    def list_for_owner(self, owner: Owner) -> list[Watch]:
        query = self.db.query(Watch)
        if owner.user_id is not None:
            query = query.filter(Watch.user_id == owner.user_id)
        else:
            query = query.filter(Watch.user_id.is_(None), Watch.guest_email == owner.guest_email)
        watches = query.order_by(Watch.created_at.desc()).all()
        return [w for w in watches if owner.owns(w)]

    def list_all(self) -> list[Watch]:
        return self.db.query(Watch).order_by(Watch.created_at).all()

    def count(self) -> int:
        return self.db.query(Watch).count()

    def rename(self, watch: Watch, name: str) -> Watch:
        watch.name = name
        self._commit()
        self.db.refresh(watch)
        return watch

    def record_run(self, watch: Watch, new_listings: list[ListingRecord], now: Optional[datetime] = None) -> int:
        """
        Union new listing ids into the seen set and log one match event per
        new listing, in a single transaction. Returns the number of events
        written. On failure nothing is persisted.
        """
        now = now or utcnow()
        seen = set(watch.seen_listing_ids or [])
        fresh: dict[str, ListingRecord] = {}
        for listing in new_listings:
            if listing.id not in seen:
                fresh.setdefault(listing.id, listing)

        hashes = {match_hash(listing_id, watch.id): listing_id for listing_id in fresh}
        existing: set[str] = set()
        if hashes:
            existing = {
                row[0]
                for row in self.db.query(WatchMatch.match_hash)
                .filter(WatchMatch.match_hash.in_(list(hashes)))
                .all()
            }

        written = 0
        for hash_value, listing_id in hashes.items():
            if hash_value in existing:
                continue
            listing = fresh[listing_id]
            self.db.add(WatchMatch(
                watch_id=watch.id,
                listing_id=listing_id,
                match_hash=hash_value,
                listing_title=(listing.title or "")[:500],
                listing_url=listing.url,
            ))
            written += 1

        if fresh:
            watch.seen_listing_ids = sorted(seen | set(fresh))
        watch.last_run_at = now
        self._commit()
        return written

    def delete(self, watch_id: str, owner: Owner) -> bool:
        """Hard delete; False if the watch is missing or owned by someone else."""
        watch = self.get(watch_id)
        if watch is None or not owner.owns(watch):
            return False
        self.db.delete(watch)
        self._commit()
        return True

    def delete_by_token(self, token: str) -> bool:
        if not token:
            return False
        watch = self.db.query(Watch).filter(Watch.deletion_token == token).first()
        if watch is None:
            return False
        self.db.delete(watch)
        self._commit()
        return True

    def sweep_expired(self, now: Optional[datetime] = None) -> int:
        """Delete guest watches past expires_at. Returns how many were removed."""
        now = now or utcnow()
        expired = (
            self.db.query(Watch)
            .filter(Watch.expires_at.is_not(None), Watch.expires_at <= now)
            .all()
        )
        for watch in expired:
            self.db.delete(watch)
        if expired:
            self._commit()
            logger.info("Swept %d expired guest watches", len(expired))
        return len(expired)

    # ── Match events ─────────────────────────────────────────────────

    def list_matches(self, watch_id: str, limit: int = 50) -> list[WatchMatch]:
        return (
            self.db.query(WatchMatch)
            .filter(WatchMatch.watch_id == watch_id)
            .order_by(WatchMatch.created_at.desc())
            .limit(limit)
            .all()
        )

    def count_matches(self, watch_id: Optional[str] = None) -> int:
        query = self.db.query(WatchMatch)
        if watch_id is not None:
            query = query.filter(WatchMatch.watch_id == watch_id)
        return query.count()

    def recent_matches(self, limit: int = 3) -> list[dict[str, Any]]:
        """Latest match events across all watches, with their watch."""
        rows = (
            self.db.query(WatchMatch, Watch)
            .join(Watch, WatchMatch.watch_id == Watch.id)
            .order_by(WatchMatch.created_at.desc(), WatchMatch.id)
            .limit(limit)
            .all()
        )
        return [
            {
                "listing_id": match.listing_id,
                "listing_title": match.listing_title,
                "listing_url": match.listing_url,
                "matched_at": match.created_at.isoformat() if match.created_at else None,
                "watch_id": watch.id,
                "watch_name": watch.name,
                "category": watch.category,
                "owner": watch.user_id or watch.guest_email,
            }
            for match, watch in rows
        ]

    def purge_match_events(self, older_than_days: int, now: Optional[datetime] = None) -> int:
        """Drop match events older than the cutoff. Seen sets are untouched."""
        if older_than_days <= 0:
            return 0
        cutoff = (now or utcnow()) - timedelta(days=older_than_days)
        deleted = (
            self.db.query(WatchMatch)
            .filter(WatchMatch.created_at < cutoff)
            .delete(synchronize_session=False)
        )
        self._commit()
        if deleted:
            logger.info("Purged %d match events older than %d days", deleted, older_than_days)
        return deleted

    # ── Run log ──────────────────────────────────────────────────────

    def start_run(self, trigger: str) -> WatchRun:
        run = WatchRun(trigger=trigger, started_at=utcnow())
        self.db.add(run)
        self._commit()
        return run

    def finish_run(
        self,
        run: WatchRun,
        processed: int,
        skipped: int,
        new_matches: int,
        errors: int,
        trace: list[dict[str, Any]],
    ) -> WatchRun:
        run.completed_at = utcnow()
        run.processed_count = processed
        run.skipped_count = skipped
        run.new_match_count = new_matches
        run.error_count = errors
        run.trace_json = trace
        self._commit()
        return run

    def last_run(self) -> Optional[WatchRun]:
        return self.db.query(WatchRun).order_by(WatchRun.started_at.desc()).first()

    def rollback(self) -> None:
        self.db.rollback()

    def _commit(self) -> None:
        try:
            self.db.commit()
        except StaleDataError as e:
            self.db.rollback()
            raise WatchConflict("Watch was modified by a concurrent run") from e
        except Exception:
            self.db.rollback()
            raise
