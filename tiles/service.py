"""
Tile Service - fetch, refresh and analyze for dashboard tiles.

Flow for one tile:

    context ─► cache.get ─hit─► payload (from_cache=True)
                  │
                 miss
                  ▼
    route ─► primary function ─fail─► fallback function ─fail─► TotalFetchFailureError
                  │                           │
                  └──────────── ok ───────────┘
                                ▼
                     normalize ─► cache.put (staleness guarded)

Refresh is strictly invalidate, then fetch, then put. Its request id is
taken before the invalidation, so a fetch already in flight can never
write back over it. Returned tiles are copies; mutating one leaves the
cached payload untouched.
"""

import logging
from typing import Any, Optional

from core.clock import ClockProtocol, get_clock
from core.config import AppConfig
from core.exceptions import ConfigurationError, MissingConfigError, TotalFetchFailureError
from market_signals.exceptions import SignalSourceError
from market_signals.models import NormalizedTileData, QueryContext, UnifiedSentiment
from market_signals.normalizer import TileNormalizer
from market_signals.providers import DemoSignalSource, EdgeFunctionSource, TileAnalyzer
from market_signals.registry import SignalRegistry
from tile_cache import CacheDatabase, EphemeralStore, SqlDurableStore, TileCacheLayer

from .routing import UNIFIED_SENTIMENT_TILE, is_known_tile, route_for


logger = logging.getLogger(__name__)


class TileService:
    """
    Entry point for the presentation layer.

    Usage:
        service = build_service(AppConfig.from_env())
        context = QueryContext("AI meal planner", "pmf_score")
        tile = await service.fetch(context)
        tile = await service.refresh(context)
        analysis = await service.analyze(context)
    """

    def __init__(
        self,
        registry: SignalRegistry,
        cache: TileCacheLayer,
        normalizer: Optional[TileNormalizer] = None,
        analyzer: Optional[TileAnalyzer] = None,
        clock: Optional[ClockProtocol] = None,
    ) -> None:
        self._clock = clock or get_clock()
        self.registry = registry
        self.cache = cache
        self.normalizer = normalizer or TileNormalizer(clock=self._clock)
        self.analyzer = analyzer

    # ─────────────────────────────────────────────────────────────
    # Public API
    # ─────────────────────────────────────────────────────────────

    async def fetch(
        self,
        context: QueryContext,
        user_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> NormalizedTileData:
        """
        Cached payload if fresh, otherwise fetch, normalize and store.

        Raises:
            ConfigurationError: unknown tile type (before any fetch)
            TotalFetchFailureError: every function for the tile failed
        """
        self._validate(context)
        key = self.cache.key_for(context)

        entry = await self.cache.get(key, user_id=user_id)
        if entry is not None:
            logger.debug(f"[{context.tile_type}] Cache hit ({entry.tier})")
            return entry.payload.detached(from_cache=True)

        return await self._fetch_and_store(context, key, user_id, session_id)

    async def refresh(
        self,
        context: QueryContext,
        user_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> NormalizedTileData:
        """Drop the cached payload, then fetch fresh."""
        self._validate(context)
        key = self.cache.key_for(context)

        logger.info(f"[{context.tile_type}] Refresh requested")
        return await self._fetch_and_store(context, key, user_id, session_id, invalidate=True)

    async def analyze(
        self,
        context: QueryContext,
        user_id: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        LLM synthesis over the tile's data (cached or freshly fetched).

        Raises:
            MissingConfigError: no LLM key configured
            TotalFetchFailureError: tile data or the LLM call failed
        """
        if self.analyzer is None or not self.analyzer.enabled:
            raise MissingConfigError("GROQ_API_KEY")

        tile = await self.fetch(context, user_id=user_id)
        try:
            return await self.analyzer.analyze(
                context.tile_type,
                tile.to_dict(),
                context.idea_text,
            )
        except SignalSourceError as e:
            logger.warning(f"[{context.tile_type}] Analysis failed: {e}")
            raise TotalFetchFailureError(
                f"Analysis failed for {context.tile_type}",
                tile_type=context.tile_type,
                sources_tried=["llm"],
                last_error=e,
            ) from e

    async def unified_sentiment(self, idea_text: str) -> UnifiedSentiment:
        """
        Blended sentiment across Reddit, Twitter, YouTube and news.

        Raises:
            ConfigurationError: empty idea
            TotalFetchFailureError: every sentiment source failed
        """
        if not isinstance(idea_text, str) or not idea_text.strip():
            raise ConfigurationError(
                "idea_text must be a non-empty string",
                config_key="idea_text",
                actual_value=idea_text,
            )
        return await self.registry.get_unified_sentiment(idea_text.strip(), require_any=True)

    def get_health(self) -> dict[str, Any]:
        return self.registry.get_health_summary()

    def get_cache_stats(self) -> dict[str, Any]:
        return self.cache.stats()

    async def clear_idea(self, idea_text: str, user_id: Optional[str] = None) -> int:
        return await self.cache.clear_idea(idea_text, user_id=user_id)

    async def close(self) -> None:
        await self.registry.close()
        if self.analyzer is not None:
            await self.analyzer.close()

    # ─────────────────────────────────────────────────────────────
    # Internal methods
    # ─────────────────────────────────────────────────────────────

    @staticmethod
    def _validate(context: QueryContext) -> None:
        if not is_known_tile(context.tile_type):
            raise ConfigurationError(
                f"Unknown tile type: {context.tile_type}",
                config_key="tile_type",
                actual_value=context.tile_type,
            )

    async def _fetch_and_store(
        self,
        context: QueryContext,
        key: str,
        user_id: Optional[str],
        session_id: Optional[str],
        invalidate: bool = False,
    ) -> NormalizedTileData:
        request_id = self.cache.begin_request(key)
        try:
            if invalidate:
                await self.cache.invalidate(key, user_id=user_id)
            tile = await self._fetch_fresh(context)
            await self.cache.put(
                key,
                tile,
                request_id=request_id,
                context=context,
                user_id=user_id,
                session_id=session_id,
            )
        finally:
            self.cache.end_request(key)
        return tile.detached()

    async def _fetch_fresh(self, context: QueryContext) -> NormalizedTileData:
        if context.tile_type == UNIFIED_SENTIMENT_TILE:
            sentiment = await self.unified_sentiment(context.idea_text)
            return self.normalizer.normalize(
                UNIFIED_SENTIMENT_TILE, sentiment.to_dict(), filters=context
            )

        route = route_for(context.tile_type)
        tried: list[str] = []
        last_error: Optional[SignalSourceError] = None

        for request in route.requests(context):
            tried.append(request.function_name)
            try:
                raw = await self.registry.fetch_one(request)
            except SignalSourceError as e:
                last_error = e
                logger.warning(
                    f"[{context.tile_type}] {request.function_name} failed: {e}"
                )
                continue

            tile = self.normalizer.normalize(context.tile_type, raw, filters=context)
            tile.extras.setdefault("source_function", request.function_name)
            return tile

        raise TotalFetchFailureError(
            f"All functions failed for {context.tile_type}",
            tile_type=context.tile_type,
            sources_tried=tried,
            last_error=last_error,
        )


# ─────────────────────────────────────────────────────────────
# Factory
# ─────────────────────────────────────────────────────────────

def build_service(
    config: Optional[AppConfig] = None,
    clock: Optional[ClockProtocol] = None,
) -> TileService:
    """Wire registry, cache and analyzer from configuration."""
    config = config or AppConfig.from_env()
    clock = clock or get_clock()

    registry = SignalRegistry(source_timeout=config.sources.timeout_seconds, clock=clock)
    if config.sources.demo_mode or not config.sources.functions_base_url:
        if not config.sources.demo_mode:
            logger.warning("FUNCTIONS_BASE_URL not set, using demo data")
        registry.register(DemoSignalSource(
            seed=config.sources.demo_seed,
            retry=config.retry,
            circuit=config.circuit_breaker,
            clock=clock,
        ))
    else:
        registry.register(EdgeFunctionSource(
            base_url=config.sources.functions_base_url,
            api_key=config.sources.functions_api_key,
            timeout=config.sources.timeout_seconds,
            retry=config.retry,
            circuit=config.circuit_breaker,
            clock=clock,
        ))

    durable = None
    if config.cache.database_url:
        database = CacheDatabase(config.cache.database_url)
        database.create_all_tables()
        durable = SqlDurableStore(database, clock=clock)

    cache = TileCacheLayer(
        ephemeral=EphemeralStore(config.cache.ttl_seconds, clock=clock),
        durable=durable,
        ttl_minutes=config.cache.ttl_minutes,
        key_prefix=config.cache.key_prefix,
        clock=clock,
    )

    return TileService(
        registry=registry,
        cache=cache,
        normalizer=TileNormalizer(clock=clock),
        analyzer=TileAnalyzer(config.llm),
        clock=clock,
    )
