"""Domain exceptions raised by the watch engine."""


class ListingWatchError(Exception):
    """Base exception for listingwatch."""
    pass


class NotFound(ListingWatchError):
    """Watch does not exist."""
    pass


class Forbidden(ListingWatchError):
    """Caller does not own the watch."""
    pass


class InvalidCriteria(ListingWatchError):
    """Criteria payload is unusable as a whole (not a list, wrong owner shape, ...)."""
    pass


class TransientScanFailure(ListingWatchError):
    """Catalog could not be read; the run can be retried later."""
    pass


class WatchConflict(ListingWatchError):
    """Watch was modified concurrently; this run was rolled back."""
    pass
