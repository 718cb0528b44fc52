"""Watch runner: create, run and delete saved watches.

A watch is seeded with every listing that matches at creation, so its
first run reports nothing. Each later run reports only listings that
newly match, records a match event for each and folds them into the
seen set.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional

from listingwatch.connectors.catalog import ListingRecord
from listingwatch.core.config import settings
from listingwatch.core.exceptions import InvalidCriteria, ListingWatchError
from listingwatch.core.security import generate_deletion_token
from listingwatch.models.watch import Watch
from listingwatch.services.catalog_scanner import CatalogScanner
from listingwatch.services.criteria import Criterion, flatten_criteria, parse_criteria
from listingwatch.services.criteria_matcher import LOGIC_AND
from listingwatch.services.owner import Owner
from listingwatch.services.watch_store import WatchStore
from listingwatch.utils.dates import ensure_utc, utcnow

logger = logging.getLogger(__name__)


@dataclass
class RunResult:
    watch_id: str
    new_listings: list[ListingRecord]
    total_current_matches: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "watch_id": self.watch_id,
            "new_listings": [
                {"id": l.id, "title": l.title, "url": l.url, "category": l.category, "attributes": l.attributes}
                for l in self.new_listings
            ],
            "new_count": len(self.new_listings),
            "total_current_matches": self.total_current_matches,
        }


@dataclass
class BatchReport:
    run_id: Optional[str]
    trigger: str
    processed: int = 0
    skipped: int = 0
    errors: int = 0
    new_matches: int = 0
    details: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "trigger": self.trigger,
            "watches_processed": self.processed,
            "watches_skipped": self.skipped,
            "errors": self.errors,
            "total_new_matches": self.new_matches,
            "details": self.details,
        }


def is_expired(watch: Watch, now: Optional[datetime] = None) -> bool:
    expires_at = ensure_utc(watch.expires_at)
    return expires_at is not None and expires_at <= (now or utcnow())


class WatchRunner:
    """Orchestrates scans and seen-state bookkeeping for saved watches."""

    def __init__(self, store: WatchStore, scanner: CatalogScanner, guest_ttl_days: Optional[int] = None):
        self.store = store
        self.scanner = scanner
        self.guest_ttl_days = guest_ttl_days if guest_ttl_days is not None else settings.guest_ttl_days

    # ── Helpers ──────────────────────────────────────────────────────

    def _current_matches(self, criteria: list[Criterion], category: str) -> list[ListingRecord]:
        """Every listing of the category satisfying all criteria, deduplicated by id."""
        if not criteria:
            return []
        flat = flatten_criteria(criteria)
        found: dict[str, ListingRecord] = {}
        for match in self.scanner.find_matches(flat, LOGIC_AND, [category]):
            found.setdefault(match.listing.id, match.listing)
        return list(found.values())

    def _validate(self, owner: Owner, name: str, category: str) -> None:
        if owner.user_id is None and not owner.guest_email:
            raise InvalidCriteria("owner must be a user or a guest email")
        if not name or not name.strip():
            raise InvalidCriteria("name is required")
        if not category or not category.strip():
            raise InvalidCriteria("category is required")
        allowed = settings.categories_list
        if allowed and category not in allowed:
            raise InvalidCriteria(f"category {category!r} is not one of {allowed}")

    def _run_watch(self, watch: Watch) -> RunResult:
        criteria = parse_criteria(watch.criteria)
        if not criteria:
            return RunResult(watch_id=watch.id, new_listings=[], total_current_matches=0)

        current = self._current_matches(criteria, watch.category)
        seen = set(watch.seen_listing_ids or [])
        new_listings = [listing for listing in current if listing.id not in seen]
        self.store.record_run(watch, new_listings)
        return RunResult(watch_id=watch.id, new_listings=new_listings, total_current_matches=len(current))

    # ── Operations ───────────────────────────────────────────────────

    def create(
        self,
        owner: Owner,
        name: str,
        category: str,
        criteria: Any,
        created_by_ip: Optional[str] = None,
    ) -> Watch:
        """Save a watch seeded with every current match. No match events are logged."""
        self._validate(owner, name, category)
        parsed = parse_criteria(criteria)
        seed = [listing.id for listing in self._current_matches(parsed, category)]

        deletion_token = None
        expires_at = None
        if owner.is_guest:
            deletion_token = generate_deletion_token()
            expires_at = utcnow() + timedelta(days=self.guest_ttl_days)

        watch = self.store.create(
            owner,
            name=name.strip(),
            category=category.strip(),
            criteria=[c.to_dict() for c in parsed],
            seen_listing_ids=seed,
            deletion_token=deletion_token,
            expires_at=expires_at,
            created_by_ip=created_by_ip,
        )
        logger.info("[Runner] Created watch %s (%s) seeded with %d listings", watch.id, watch.category, len(seed))
        return watch

    def run(self, watch_id: str, owner: Owner) -> RunResult:
        """Report listings that newly match since the last run. Raises NotFound/Forbidden."""
        watch = self.store.get_owned(watch_id, owner)
        result = self._run_watch(watch)
        logger.info(
            "[Runner] Watch %s: %d new of %d current matches",
            watch_id, len(result.new_listings), result.total_current_matches,
        )
        return result

    def count_new(self, watch_id: str, owner: Owner) -> int:
        """How many listings a run would report right now, without persisting anything."""
        watch = self.store.get_owned(watch_id, owner)
        criteria = parse_criteria(watch.criteria)
        seen = set(watch.seen_listing_ids or [])
        return sum(1 for listing in self._current_matches(criteria, watch.category) if listing.id not in seen)

    def run_all(self, trigger: str = "scheduled") -> BatchReport:
        """
        Run every non-expired watch. A failure in one watch is recorded in the
        report and does not stop the batch.
        """
        run_log = self.store.start_run(trigger)
        report = BatchReport(run_id=run_log.id, trigger=trigger)
        now = utcnow()

        # Read ids and names up front; a rollback expires every loaded watch
        watches = [(watch.id, watch.name, watch) for watch in self.store.list_all()]

        for watch_id, watch_name, watch in watches:
            try:
                if is_expired(watch, now):
                    report.skipped += 1
                    report.details.append({"watch_id": watch_id, "name": watch_name, "status": "expired"})
                    continue
                result = self._run_watch(watch)
                report.processed += 1
                report.new_matches += len(result.new_listings)
                report.details.append({
                    "watch_id": watch_id,
                    "name": watch_name,
                    "status": "ok",
                    "new_matches": len(result.new_listings),
                    "total_current_matches": result.total_current_matches,
                    "new_listing_ids": [l.id for l in result.new_listings],
                })
            except Exception as e:
                self.store.rollback()
                report.errors += 1
                report.details.append({
                    "watch_id": watch_id,
                    "name": watch_name,
                    "status": "error",
                    "error_type": type(e).__name__,
                    "error": str(e),
                })
                if isinstance(e, ListingWatchError):
                    logger.error("[Runner] Watch %s failed: %s", watch_id, e)
                else:
                    logger.exception("[Runner] Watch %s failed", watch_id)

        self.store.finish_run(
            run_log,
            processed=report.processed,
            skipped=report.skipped,
            new_matches=report.new_matches,
            errors=report.errors,
            trace=report.details,
        )
        logger.info(
            "[Runner] Batch %s done: processed=%d skipped=%d new=%d errors=%d",
            trigger, report.processed, report.skipped, report.new_matches, report.errors,
        )
        return report

    def rename(self, watch_id: str, owner: Owner, name: str) -> Watch:
        if not name or not name.strip():
            raise InvalidCriteria("name is required")
        watch = self.store.get_owned(watch_id, owner)
        return self.store.rename(watch, name.strip())

    def list_watches(self, owner: Owner) -> list[Watch]:
        return self.store.list_for_owner(owner)

    def delete(self, watch_id: str, owner: Owner) -> bool:
        deleted = self.store.delete(watch_id, owner)
        if deleted:
            logger.info("[Runner] Deleted watch %s", watch_id)
        return deleted

    def delete_by_token(self, token: str) -> bool:
        deleted = self.store.delete_by_token(token)
        if deleted:
            logger.info("[Runner] Deleted guest watch by token")
        return deleted

    def sweep_expired(self) -> int:
        return self.store.sweep_expired()

    def purge_match_events(self, older_than_days: Optional[int] = None) -> int:
        days = settings.match_retention_days if older_than_days is None else older_than_days
        return self.store.purge_match_events(days)


def build_runner(db) -> WatchRunner:
    """Runner wired to the configured catalog source."""
    from listingwatch.connectors.catalog import build_catalog
    return WatchRunner(WatchStore(db), CatalogScanner(build_catalog(db)))
