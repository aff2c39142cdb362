"""
Tile Cache Layer - Two-tier read-through / write-through cache.

Reads check the durable tier first (when a user is known), then the
ephemeral tier. Writes go to both tiers for authenticated contexts and
to the ephemeral tier only otherwise.

Every fetch takes a monotonic request id from `begin_request`. A `put`
carrying an id older than the newest one issued for its key is
dropped, so a slow response can never overwrite a newer refresh.
Ids are tracked only while a request for the key is in flight;
`end_request` releases the key once the last one finishes.

Durable-tier failures are logged and counted but never raised.
"""

import itertools
import logging
from typing import Any, Iterable, Optional

from core.clock import ClockProtocol, get_clock
from core.exceptions import CacheError
from market_signals.models import NormalizedTileData, QueryContext

from .durable import SqlDurableStore
from .entry import CacheEntry
from .keys import KEY_PREFIX, derive_key, normalize_idea
from .memory import EphemeralStore


logger = logging.getLogger(__name__)


class TileCacheLayer:
    """
    Injected cache for tile payloads.

    Usage:
        cache = TileCacheLayer(EphemeralStore(), durable=None)
        key = cache.key_for(context)
        request_id = cache.begin_request(key)
        entry = await cache.get(key)
        if entry is None:
            tile = ...
            await cache.put(key, tile, request_id=request_id, context=context)
        cache.end_request(key)
    """

    def __init__(
        self,
        ephemeral: Optional[EphemeralStore] = None,
        durable: Optional[SqlDurableStore] = None,
        ttl_minutes: int = 30,
        key_prefix: str = KEY_PREFIX,
        clock: Optional[ClockProtocol] = None,
    ) -> None:
        self._clock = clock or get_clock()
        self.ttl_minutes = ttl_minutes
        self.key_prefix = key_prefix
        self.ephemeral = ephemeral or EphemeralStore(ttl_minutes * 60, clock=self._clock)
        self.durable = durable

        self._request_ids = itertools.count(1)
        self._latest_request: dict[str, int] = {}
        self._in_flight: dict[str, int] = {}

        # Statistics
        self._stats = {
            "hits": 0,
            "durable_hits": 0,
            "misses": 0,
            "writes": 0,
            "stale_drops": 0,
            "invalidations": 0,
            "durable_errors": 0,
        }

    @property
    def has_durable(self) -> bool:
        return self.durable is not None

    def key_for(self, context: QueryContext) -> str:
        return derive_key(context, prefix=self.key_prefix)

    def begin_request(self, key: str) -> int:
        """Issue the next request id and mark it newest for this key."""
        request_id = next(self._request_ids)
        self._latest_request[key] = request_id
        self._in_flight[key] = self._in_flight.get(key, 0) + 1
        return request_id

    def end_request(self, key: str) -> None:
        """Mark one request for the key finished, whether it stored or failed."""
        remaining = self._in_flight.get(key, 0) - 1
        if remaining > 0:
            self._in_flight[key] = remaining
        else:
            self._in_flight.pop(key, None)
            self._latest_request.pop(key, None)

    def is_stale(self, key: str, request_id: int) -> bool:
        return request_id < self._latest_request.get(key, 0)

    # ─────────────────────────────────────────────────────────────
    # Read / write
    # ─────────────────────────────────────────────────────────────

    async def get(self, key: str, user_id: Optional[str] = None) -> Optional[CacheEntry]:
        if self.durable is not None and user_id:
            try:
                entry = await self.durable.get(key, user_id)
            except CacheError as e:
                self._stats["durable_errors"] += 1
                logger.warning(f"[cache] Durable read failed for {key}: {e}")
                entry = None
            if entry is not None:
                self._stats["hits"] += 1
                self._stats["durable_hits"] += 1
                return entry

        entry = self.ephemeral.get(key)
        if entry is not None:
            self._stats["hits"] += 1
            return entry

        self._stats["misses"] += 1
        return None

    async def put(
        self,
        key: str,
        payload: NormalizedTileData,
        request_id: Optional[int] = None,
        context: Optional[QueryContext] = None,
        user_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> bool:
        """
        Store a successful result.

        Returns False when the write was dropped as stale.
        """
        if request_id is not None and self.is_stale(key, request_id):
            self._stats["stale_drops"] += 1
            logger.info(f"[cache] Dropped stale write for {key} (request {request_id})")
            return False

        context = context or payload.filters
        entry = CacheEntry(
            key=key,
            payload=payload,
            stored_at=self._clock.now(),
            request_id=request_id or 0,
            tile_type=context.tile_type if context else "",
            idea_key=normalize_idea(context.idea_text) if context else "",
        )
        self.ephemeral.put(entry)
        self._stats["writes"] += 1

        if self.durable is not None and user_id and context is not None:
            try:
                await self.durable.save(
                    key,
                    payload.to_dict(),
                    self.ttl_minutes,
                    user_id=user_id,
                    tile_type=context.tile_type,
                    idea_text=context.idea_text.strip(),
                    session_id=session_id,
                    request_id=request_id or 0,
                )
            except CacheError as e:
                self._stats["durable_errors"] += 1
                logger.warning(f"[cache] Durable write failed for {key}: {e}")

        return True

    async def invalidate(self, key: str, user_id: Optional[str] = None) -> None:
        """Remove the key from both tiers. Completes before returning."""
        self.ephemeral.delete(key)
        if self.durable is not None and user_id:
            try:
                await self.durable.delete(key, user_id)
            except CacheError as e:
                self._stats["durable_errors"] += 1
                logger.warning(f"[cache] Durable delete failed for {key}: {e}")
        self._stats["invalidations"] += 1
        logger.debug(f"[cache] Invalidated {key}")

    async def clear_idea(self, idea_text: str, user_id: Optional[str] = None) -> int:
        """Drop every cached tile for one idea. Returns entries removed."""
        removed = self.ephemeral.delete_idea(normalize_idea(idea_text))
        if self.durable is not None and user_id:
            try:
                removed += await self.durable.delete_idea(user_id, idea_text.strip())
            except CacheError as e:
                self._stats["durable_errors"] += 1
                logger.warning(f"[cache] Durable clear failed for idea: {e}")
        logger.info(f"[cache] Cleared {removed} cached tiles for idea")
        return removed

    async def load_batch(
        self,
        user_id: str,
        idea_text: str,
        tile_types: Iterable[str],
        session_id: Optional[str] = None,
    ) -> dict[str, NormalizedTileData]:
        """Restore several tiles of one idea from the durable tier."""
        if self.durable is None:
            return {}
        try:
            raw = await self.durable.load_batch(user_id, idea_text.strip(), tile_types, session_id)
        except CacheError as e:
            self._stats["durable_errors"] += 1
            logger.warning(f"[cache] Durable batch load failed: {e}")
            return {}
        tiles = {}
        for tile_type, payload in raw.items():
            tile = NormalizedTileData.from_dict(payload)
            tile.from_cache = True
            tiles[tile_type] = tile
        return tiles

    def stats(self) -> dict[str, Any]:
        lookups = self._stats["hits"] + self._stats["misses"]
        return {
            **self._stats,
            "entries": len(self.ephemeral),
            "tracked_requests": len(self._latest_request),
            "hit_rate_pct": round(self._stats["hits"] / lookups * 100, 1) if lookups else 0,
            "ttl_minutes": self.ttl_minutes,
            "durable_enabled": self.has_durable,
        }
