"""Listing model: catalog entries with free-form custom attributes."""
import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from listingwatch.models.base import Base


class Listing(Base):
    """
    One catalog listing. The watch engine only reads these; the default
    SQL catalog source pages over this table.
    """

    __tablename__ = "listings"

    id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="publish",
        server_default="publish",
        index=True,
        comment="publish | draft | private | trash",
    )
    attributes: Mapped[Optional[Any]] = mapped_column(
        JSON,
        nullable=True,
        comment="Custom fields: scalars, lists, nested objects, attachment descriptors",
    )
    published_at: Mapped[Optional[datetime]] = mapped_column(nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(
        default=func.now(),
        server_default=func.now(),
    )
