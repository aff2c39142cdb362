"""
Durable Tier ORM Models.

============================================================
PURPOSE
============================================================
Per-user persisted tile payloads. One row per (user, cache key);
a successful re-fetch overwrites the row.

============================================================
DATA LIFECYCLE
============================================================
- Mutability: MUTABLE (upsert on save)
- Retention: until expires_at; expired rows are deleted when read
- Source: TileCacheLayer.put for authenticated contexts

============================================================
"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, Index, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Declarative base for the cache tables."""

    type_annotation_map = {
        datetime: DateTime(timezone=True),
    }


class TimestampMixin:
    """Adds created_at and updated_at columns."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        comment="Record creation timestamp (UTC)"
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
        comment="Last update timestamp (UTC)"
    )


class DashboardData(Base, TimestampMixin):
    """One persisted tile payload."""

    __tablename__ = "dashboard_data"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    cache_key: Mapped[str] = mapped_column(
        String(300),
        nullable=False,
        comment="Derived tile cache key"
    )

    user_id: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Owner of the cached payload"
    )

    session_id: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="Chat/idea session the tile belongs to"
    )

    tile_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    idea_text: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )

    data: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
        comment="Serialized NormalizedTileData"
    )

    stored_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="When the payload was fetched"
    )

    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    request_id: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("user_id", "cache_key", name="uq_dashboard_data_user_key"),
        Index("ix_dashboard_data_user_idea", "user_id", "idea_text"),
    )

    def __repr__(self) -> str:
        return f"<DashboardData {self.user_id}:{self.cache_key}>"
