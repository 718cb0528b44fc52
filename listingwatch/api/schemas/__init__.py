"""API schemas."""
from listingwatch.api.schemas.search import FieldsResponse, SearchRequest, SearchResponse
from listingwatch.api.schemas.watch import WatchCreate, WatchCreated, WatchRead, WatchUpdate

__all__ = [
    "FieldsResponse",
    "SearchRequest",
    "SearchResponse",
    "WatchCreate",
    "WatchCreated",
    "WatchRead",
    "WatchUpdate",
]
