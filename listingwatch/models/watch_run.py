"""Watch run: one row per batch execution of every saved watch."""
import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from listingwatch.models.base import Base


class WatchRun(Base):
    """Batch run: trigger, counts, timing and a per-watch trace."""

    __tablename__ = "watch_runs"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    trigger: Mapped[str] = mapped_column(String(20), nullable=False, comment="scheduled | manual | ping | cli")
    started_at: Mapped[datetime] = mapped_column(
        nullable=False,
        index=True,
        default=func.now(),
        server_default=func.now(),
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    processed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    skipped_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    new_match_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    error_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    trace_json: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
