"""Catalog sources: paginated access to published listings and their attributes."""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Protocol, Sequence

from sqlalchemy.orm import Session

from listingwatch.core.config import settings
from listingwatch.models.listing import Listing

logger = logging.getLogger(__name__)


@dataclass
class ListingRecord:
    """A listing as seen by the watch engine."""

    id: str
    title: str = ""
    url: Optional[str] = None
    category: Optional[str] = None
    status: str = "publish"
    attributes: dict[str, Any] = field(default_factory=dict)
    published_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, listing: Listing) -> "ListingRecord":
        return cls(
            id=str(listing.id),
            title=listing.title or "",
            url=listing.url,
            category=listing.category,
            status=listing.status,
            attributes=listing.attributes if isinstance(listing.attributes, dict) else {},
            published_at=listing.published_at,
        )


class CatalogSource(Protocol):
    """Anything that can page through listings of some categories."""

    def fetch_page(
        self,
        categories: Optional[Sequence[str]],
        status: Optional[str],
        page: int,
        page_size: int,
    ) -> list[ListingRecord]:
        """Page numbers start at 1. An empty list means there are no more pages."""
        ...

    def get_attributes(self, listing_id: str) -> Optional[dict[str, Any]]:
        ...


class SqlCatalog:
    """Catalog backed by the local `listings` table."""

    def __init__(self, db: Session):
        self.db = db

    def fetch_page(
        self,
        categories: Optional[Sequence[str]],
        status: Optional[str],
        page: int,
        page_size: int,
    ) -> list[ListingRecord]:
        query = self.db.query(Listing)
        if categories:
            query = query.filter(Listing.category.in_(list(categories)))
        if status:
            query = query.filter(Listing.status == status)
        # Stable order so pages don't overlap
        query = query.order_by(Listing.created_at.desc(), Listing.id)
        rows = query.offset((max(page, 1) - 1) * page_size).limit(page_size).all()
        return [ListingRecord.from_model(row) for row in rows]

    def get_attributes(self, listing_id: str) -> Optional[dict[str, Any]]:
        listing = self.db.get(Listing, listing_id)
        if listing is None:
            return None
        return listing.attributes if isinstance(listing.attributes, dict) else {}


def build_catalog(db: Session) -> CatalogSource:
    """Catalog source selected by CATALOG_MODE (sql | rest)."""
    if settings.catalog_mode == "rest":
        from listingwatch.connectors.rest_catalog import RestCatalog
        return RestCatalog()
    return SqlCatalog(db)
