"""Shared route dependencies and error translation."""
from fastapi import Depends, HTTPException
from sqlalchemy.orm import Session

from listingwatch.core.exceptions import (
    Forbidden,
    InvalidCriteria,
    ListingWatchError,
    NotFound,
    TransientScanFailure,
    WatchConflict,
)
from listingwatch.db.session import get_db
from listingwatch.services.watch_runner import WatchRunner, build_runner

_STATUS_BY_ERROR = {
    NotFound: 404,
    Forbidden: 403,
    InvalidCriteria: 422,
    WatchConflict: 409,
    TransientScanFailure: 503,
}


def get_runner(db: Session = Depends(get_db)) -> WatchRunner:
    return build_runner(db)


def http_error(exc: ListingWatchError) -> HTTPException:
    """Map a domain error to the HTTP status callers expect."""
    for error_type, status in _STATUS_BY_ERROR.items():
        if isinstance(exc, error_type):
            detail = "Watch not found" if error_type is NotFound else str(exc)
            return HTTPException(status_code=status, detail=detail)
    return HTTPException(status_code=500, detail=str(exc))
