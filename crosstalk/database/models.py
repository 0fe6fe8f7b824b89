"""
crosstalk.database.models — SQLAlchemy 2.0 Data Models
=======================================================

Tables:
- global_channels — one row per global chat room; ``payload`` holds the
  full serialized :class:`~crosstalk.engine.channels.GlobalChannel`
  (links, moderation lists, rules, templates).

The registry always loads and saves the whole set, so rows are opaque
documents keyed by the room id rather than a normalized schema.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, String, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Crosstalk ORM models."""


# ---------------------------------------------------------------------------
# Global channels
# ---------------------------------------------------------------------------
class GlobalChannelRow(Base):
    """Persisted snapshot of one global chat room."""
    __tablename__ = "global_channels"

    id: Mapped[str] = mapped_column(String(16), primary_key=True)  # gc-xxxxxxxx
    payload: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<GlobalChannelRow id={self.id!r}>"
