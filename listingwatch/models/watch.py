"""Watch model: saved search criteria plus the set of listings already reported."""
import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import JSON, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from listingwatch.models.base import Base

if TYPE_CHECKING:
    from listingwatch.models.watch_match import WatchMatch


class Watch(Base):
    """
    A saved search. Owned either by a user (user_id) or by a guest
    (guest_email + deletion_token, with expires_at).
    seen_listing_ids only grows; it is reset only by deleting the watch.
    """

    __tablename__ = "watches"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    user_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    guest_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    deletion_token: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    criteria: Mapped[Any] = mapped_column(
        JSON,
        nullable=False,
        default=list,
        comment="JSON array of {field_path, kind, values}",
    )
    seen_listing_ids: Mapped[Any] = mapped_column(
        JSON,
        nullable=False,
        default=list,
        comment="JSON array of listing ids already reported",
    )
    created_by_ip: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(nullable=True, index=True)
    last_run_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        default=func.now(),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=func.now(),
        onupdate=func.now(),
        server_default=func.now(),
    )

    matches: Mapped[list["WatchMatch"]] = relationship(
        back_populates="watch",
        cascade="all, delete-orphan",
    )

    # Concurrent runs on the same watch: the stale writer gets StaleDataError
    __mapper_args__ = {"version_id_col": version}

    @property
    def is_guest(self) -> bool:
        return self.user_id is None
