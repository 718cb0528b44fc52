"""Watch match model: append-only log of listings newly reported to a watch."""
import hashlib
import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import ForeignKey, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from listingwatch.models.base import Base

if TYPE_CHECKING:
    from listingwatch.models.watch import Watch


def match_hash(listing_id: str, watch_id: str) -> str:
    """Deduplication key: sha1 of "<listing_id>|<watch_id>"."""
    return hashlib.sha1(f"{listing_id}|{watch_id}".encode("utf-8")).hexdigest()


class WatchMatch(Base):
    """One row per (watch, listing) the first time the listing was reported."""

    __tablename__ = "watch_matches"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    watch_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("watches.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    listing_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    match_hash: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)
    listing_title: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    listing_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        default=func.now(),
        server_default=func.now(),
        index=True,
    )

    watch: Mapped["Watch"] = relationship(back_populates="matches")

    __table_args__ = (
        UniqueConstraint("watch_id", "listing_id", name="uq_watch_match"),
    )
