"""Admin endpoints: manual batch trigger, run monitoring, housekeeping, field analysis."""
import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from listingwatch.api.deps import get_runner, http_error
from listingwatch.connectors.catalog import build_catalog
from listingwatch.core.auth import rate_limit_admin, require_admin_key
from listingwatch.core.exceptions import ListingWatchError
from listingwatch.db.session import get_db
from listingwatch.services.field_analysis import FieldAnalyzer, export_csv, export_json
from listingwatch.services.scheduler import get_scheduler_status
from listingwatch.services.watch_runner import WatchRunner
from listingwatch.services.watch_store import WatchStore

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(require_admin_key), Depends(rate_limit_admin)],
)


# ── Watches ──────────────────────────────────────────────────────────


@router.post("/watches/run")
async def trigger_run_all(
    trigger: str = Query("manual", pattern="^(manual|ping)$", description="manual | ping (external cron)"),
    runner: WatchRunner = Depends(get_runner),
) -> dict[str, Any]:
    """Run every saved watch now. Returns the batch report (also stored in watch_runs)."""
    report = runner.run_all(trigger=trigger)
    logger.info("Admin triggered watch run (%s): %d processed", trigger, report.processed)
    return report.to_dict()


@router.get("/watches/status")
async def watches_status(db: Session = Depends(get_db)) -> dict[str, Any]:
    """Scheduler state plus the last persisted batch run."""
    store = WatchStore(db)
    last = store.last_run()
    return {
        "scheduler": get_scheduler_status(),
        "watch_count": store.count(),
        "match_count": store.count_matches(),
        "last_run": {
            "id": last.id,
            "trigger": last.trigger,
            "started_at": last.started_at.isoformat() if last.started_at else None,
            "completed_at": last.completed_at.isoformat() if last.completed_at else None,
            "processed": last.processed_count,
            "skipped": last.skipped_count,
            "new_matches": last.new_match_count,
            "errors": last.error_count,
            "trace": last.trace_json,
        } if last else None,
    }


@router.get("/watches/recent-matches")
async def recent_matches(
    limit: int = Query(3, ge=1, le=100),
    db: Session = Depends(get_db),
) -> list[dict[str, Any]]:
    return WatchStore(db).recent_matches(limit=limit)


@router.post("/watches/sweep")
async def sweep(
    retention_days: Optional[int] = Query(None, ge=0, description="Override MATCH_RETENTION_DAYS"),
    runner: WatchRunner = Depends(get_runner),
) -> dict[str, int]:
    """Delete expired guest watches and match events past retention."""
    return {
        "expired_swept": runner.sweep_expired(),
        "events_purged": runner.purge_match_events(retention_days),
    }


# ── Field analysis ───────────────────────────────────────────────────


@router.get("/fields/analysis")
async def field_analysis(
    format: str = Query("json", pattern="^(json|csv)$"),
    category: Optional[list[str]] = Query(None),
    status: Optional[str] = Query(None, description="Listing status filter; default any"),
    db: Session = Depends(get_db),
) -> Response:
    try:
        results = FieldAnalyzer(build_catalog(db)).analyze(categories=category, status=status)
    except ListingWatchError as e:
        raise http_error(e)
    if format == "csv":
        return Response(
            content=export_csv(results),
            media_type="text/csv",
            headers={"Content-Disposition": 'attachment; filename="field-analysis.csv"'},
        )
    return Response(content=export_json(results), media_type="application/json")
