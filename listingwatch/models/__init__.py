"""All SQLAlchemy models; Base.metadata here is what alembic migrates.

Import models from here:
    from listingwatch.models import Base, Watch, WatchMatch, ...
"""
from listingwatch.models.base import Base
from listingwatch.models.listing import Listing
from listingwatch.models.watch import Watch
from listingwatch.models.watch_match import WatchMatch, match_hash
from listingwatch.models.watch_run import WatchRun

__all__ = [
    "Base",
    "Listing",
    "Watch",
    "WatchMatch",
    "WatchRun",
    "match_hash",
]
