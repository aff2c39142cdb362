"""
SQL Durable Store - Per-user persisted tier.

Every operation runs its synchronous SQLAlchemy session in a worker
thread (`asyncio.to_thread`) so the event loop never blocks on the
database. Expired rows are deleted when read.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from core.clock import ClockProtocol, get_clock
from market_signals.models import NormalizedTileData

from .engine import CacheDatabase
from .entry import CacheEntry
from .models import DashboardData


logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SqlDurableStore:
    """
    Durable tile store.

    Usage:
        store = SqlDurableStore(CacheDatabase("sqlite:///idea_signals.db"))
        await store.save(key, tile.to_dict(), 30, user_id="u1",
                         tile_type="pmf_score", idea_text=idea)
        payload = await store.load("u1", idea, "pmf_score")
    """

    def __init__(
        self,
        database: CacheDatabase,
        clock: Optional[ClockProtocol] = None,
    ) -> None:
        self.database = database
        self._clock = clock or get_clock()

    # ─────────────────────────────────────────────────────────────
    # Public API
    # ─────────────────────────────────────────────────────────────

    async def load(
        self,
        user_id: str,
        idea_text: str,
        tile_type: str,
        session_id: Optional[str] = None,
    ) -> Optional[dict[str, Any]]:
        """Newest live payload for a user's idea and tile, or None."""
        return await asyncio.to_thread(
            self._load_sync, user_id, idea_text, tile_type, session_id
        )

    async def load_batch(
        self,
        user_id: str,
        idea_text: str,
        tile_types: Iterable[str],
        session_id: Optional[str] = None,
    ) -> dict[str, dict[str, Any]]:
        """Live payloads for several tiles of one idea, keyed by tile type."""
        wanted = list(tile_types)
        found: dict[str, dict[str, Any]] = {}
        for tile_type in wanted:
            payload = await self.load(user_id, idea_text, tile_type, session_id)
            if payload is not None:
                found[tile_type] = payload
        logger.debug(f"[durable] Batch loaded {len(found)}/{len(wanted)} tiles")
        return found

    async def get(self, key: str, user_id: str) -> Optional[CacheEntry]:
        return await asyncio.to_thread(self._get_sync, key, user_id)

    async def save(
        self,
        key: str,
        payload: dict[str, Any],
        ttl_minutes: int,
        *,
        user_id: str,
        tile_type: str,
        idea_text: str,
        session_id: Optional[str] = None,
        request_id: int = 0,
    ) -> None:
        await asyncio.to_thread(
            self._save_sync,
            key, payload, ttl_minutes, user_id, tile_type, idea_text, session_id, request_id,
        )

    async def delete(self, key: str, user_id: Optional[str] = None) -> int:
        """Delete the key (for one user, or for everyone). Returns rows removed."""
        return await asyncio.to_thread(self._delete_sync, key, user_id)

    async def delete_idea(self, user_id: str, idea_text: str) -> int:
        return await asyncio.to_thread(self._delete_idea_sync, user_id, idea_text)

    # ─────────────────────────────────────────────────────────────
    # Synchronous bodies
    # ─────────────────────────────────────────────────────────────

    def _live(self, session: Session, row: Optional[DashboardData]) -> Optional[DashboardData]:
        if row is None:
            return None
        if _as_utc(row.expires_at) <= self._clock.now():
            logger.debug(f"[durable] Removing expired row {row.cache_key}")
            session.delete(row)
            return None
        return row

    def _load_sync(
        self,
        user_id: str,
        idea_text: str,
        tile_type: str,
        session_id: Optional[str],
    ) -> Optional[dict[str, Any]]:
        stmt = select(DashboardData).where(
            DashboardData.user_id == user_id,
            DashboardData.idea_text == idea_text,
            DashboardData.tile_type == tile_type,
        )
        if session_id:
            stmt = stmt.where(DashboardData.session_id == session_id)
        stmt = stmt.order_by(DashboardData.stored_at.desc())

        with self.database.transaction_scope() as session:
            for row in session.scalars(stmt).all():
                live = self._live(session, row)
                if live is not None:
                    return dict(live.data)
        return None

    def _get_sync(self, key: str, user_id: str) -> Optional[CacheEntry]:
        stmt = select(DashboardData).where(
            DashboardData.cache_key == key,
            DashboardData.user_id == user_id,
        )
        with self.database.transaction_scope() as session:
            row = self._live(session, session.scalars(stmt).first())
            if row is None:
                return None
            return CacheEntry(
                key=row.cache_key,
                payload=NormalizedTileData.from_dict(row.data),
                stored_at=_as_utc(row.stored_at),
                request_id=row.request_id,
                tier="durable",
                tile_type=row.tile_type,
            )

    def _save_sync(
        self,
        key: str,
        payload: dict[str, Any],
        ttl_minutes: int,
        user_id: str,
        tile_type: str,
        idea_text: str,
        session_id: Optional[str],
        request_id: int,
    ) -> None:
        now = self._clock.now()
        stmt = select(DashboardData).where(
            DashboardData.cache_key == key,
            DashboardData.user_id == user_id,
        )
        with self.database.transaction_scope() as session:
            row = session.scalars(stmt).first()
            if row is None:
                row = DashboardData(cache_key=key, user_id=user_id)
                session.add(row)
            row.session_id = session_id
            row.tile_type = tile_type
            row.idea_text = idea_text
            row.data = payload
            row.stored_at = now
            row.expires_at = now + timedelta(minutes=ttl_minutes)
            row.request_id = request_id
        logger.debug(f"[durable] Saved {key} for {user_id}")

    def _delete_sync(self, key: str, user_id: Optional[str]) -> int:
        stmt = delete(DashboardData).where(DashboardData.cache_key == key)
        if user_id:
            stmt = stmt.where(DashboardData.user_id == user_id)
        with self.database.transaction_scope() as session:
            return session.execute(stmt).rowcount or 0

    def _delete_idea_sync(self, user_id: str, idea_text: str) -> int:
        stmt = delete(DashboardData).where(
            DashboardData.user_id == user_id,
            DashboardData.idea_text == idea_text,
        )
        with self.database.transaction_scope() as session:
            removed = session.execute(stmt).rowcount or 0
        logger.info(f"[durable] Cleared {removed} tiles for idea of {user_id}")
        return removed
