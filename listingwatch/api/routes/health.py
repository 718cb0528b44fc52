"""Health check endpoints."""
import logging
from typing import Any

from fastapi import APIRouter, HTTPException
from sqlalchemy.exc import SQLAlchemyError

from listingwatch.db.session import SessionLocal, check_db_connection
from listingwatch.services.watch_store import WatchStore

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check() -> dict[str, Any]:
    """
    Health check with database connectivity, watch count, and last batch run.
    Returns 503 if database is unreachable.
    """
    if not check_db_connection():
        raise HTTPException(status_code=503, detail={"status": "degraded", "db": "error"})

    info: dict[str, Any] = {"status": "ok", "db": "ok"}

    db = SessionLocal()
    try:
        store = WatchStore(db)
        info["watches"] = store.count()
        last = store.last_run()
        if last:
            info["last_run"] = {
                "trigger": last.trigger,
                "at": str(last.started_at),
                "processed": last.processed_count,
                "errors": last.error_count,
            }
    except SQLAlchemyError as e:
        # Tables missing before the first migration
        logger.warning("Health check could not read watches: %s", e)
        info["watches"] = None
    finally:
        db.close()

    return info
