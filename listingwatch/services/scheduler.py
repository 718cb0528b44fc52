"""Scheduler service: periodic run of every saved watch plus housekeeping.

Uses APScheduler to run background jobs within the FastAPI process.
Controlled entirely via environment variables.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, JobEvent
from apscheduler.schedulers.background import BackgroundScheduler

from listingwatch.core.config import settings

logger = logging.getLogger(__name__)

WATCH_JOB_ID = "run_all_watches"

# Module-level scheduler instance
_scheduler: Optional[BackgroundScheduler] = None
_last_run: dict[str, Any] = {}


def run_watches_job(trigger: str = "scheduled") -> dict[str, Any]:
    """Run all watches, then sweep expired guest watches and old match events."""
    from listingwatch.db.session import SessionLocal
    from listingwatch.services.watch_runner import build_runner

    started_at = datetime.now(timezone.utc)
    result: dict[str, Any] = {"started_at": started_at.isoformat(), "trigger": trigger, "status": "running"}

    db = SessionLocal()
    try:
        runner = build_runner(db)
        report = runner.run_all(trigger=trigger)
        result["report"] = report.to_dict()

        try:
            result["expired_swept"] = runner.sweep_expired()
            result["events_purged"] = runner.purge_match_events()
        except Exception as e:
            result["housekeeping_error"] = str(e)
            logger.exception("[Scheduler] Housekeeping failed")

        elapsed = (datetime.now(timezone.utc) - started_at).total_seconds()
        result["elapsed_seconds"] = round(elapsed, 1)
        result["status"] = "ok"
        logger.info(
            "[Scheduler] Watches done: processed=%d new=%d errors=%d elapsed=%.1fs",
            report.processed, report.new_matches, report.errors, elapsed,
        )
    except Exception as e:
        result["status"] = "error"
        result["error"] = str(e)
        logger.exception("[Scheduler] Watch run failed")
    finally:
        db.close()

    _last_run[WATCH_JOB_ID] = result
    return result


def _on_job_event(event: JobEvent) -> None:
    """Log scheduler job events."""
    if event.exception:
        logger.error("[Scheduler] Job %s failed: %s", event.job_id, event.exception)
    else:
        logger.info("[Scheduler] Job %s executed OK", event.job_id)


def start_scheduler() -> Optional[BackgroundScheduler]:
    """Start the scheduler if enabled. Called from FastAPI lifespan."""
    global _scheduler

    if not settings.scheduler_enabled:
        logger.info("[Scheduler] Disabled (SCHEDULER_ENABLED=false)")
        return None

    if _scheduler and _scheduler.running:
        logger.warning("[Scheduler] Already running")
        return _scheduler

    _scheduler = BackgroundScheduler(timezone="UTC")
    _scheduler.add_listener(_on_job_event, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)

    interval = max(1, settings.watch_run_interval_hours)

    _scheduler.add_job(
        run_watches_job,
        trigger="interval",
        hours=interval,
        id=WATCH_JOB_ID,
        name=f"Run all watches (every {interval}h)",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    _scheduler.start()
    logger.info("[Scheduler] Started: watches every %d h", interval)
    return _scheduler


def stop_scheduler() -> None:
    """Gracefully stop the scheduler. Called from FastAPI lifespan."""
    global _scheduler
    if _scheduler and _scheduler.running:
        _scheduler.shutdown(wait=False)
        logger.info("[Scheduler] Stopped")
    _scheduler = None


def get_scheduler_status() -> dict[str, Any]:
    """Return current scheduler status for admin endpoint."""
    if not settings.scheduler_enabled:
        return {
            "enabled": False,
            "message": "Set SCHEDULER_ENABLED=true to activate",
            "last_run": _last_run.get(WATCH_JOB_ID),
        }

    running = bool(_scheduler is not None and _scheduler.running)

    jobs = []
    if _scheduler and running:
        for job in _scheduler.get_jobs():
            jobs.append({
                "id": job.id,
                "name": job.name,
                "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
                "trigger": str(job.trigger),
            })

    return {
        "enabled": True,
        "running": running,
        "config": {
            "watch_run_interval_hours": settings.watch_run_interval_hours,
            "guest_ttl_days": settings.guest_ttl_days,
            "match_retention_days": settings.match_retention_days,
            "catalog_mode": settings.catalog_mode,
        },
        "jobs": jobs,
        "last_run": _last_run.get(WATCH_JOB_ID),
    }
