"""
Signal Registry - Central manager for all signal sources.

The registry:
1. Routes upstream function calls to a registered source
2. Fans out concurrently with a per-call timeout
3. Absorbs individual failures (non-blocking) and records incidents
4. Provides unified access to sentiment, health and statistics
"""

import asyncio
import logging
from typing import Any, Mapping, Optional

from core.clock import ClockProtocol, get_clock
from core.exceptions import TotalFetchFailureError

from .aggregator import SentimentAggregator
from .base import BaseSignalSource
from .exceptions import FetchError, SignalSourceError, SourceUnavailableError
from .models import (
    SignalRequest,
    SourceHealth,
    SourceIncident,
    SourceStatus,
    UnifiedSentiment,
)


logger = logging.getLogger(__name__)


def unified_sentiment_requests(idea_text: str) -> dict[str, SignalRequest]:
    """Per-source requests for the blended sentiment view."""
    return {
        "reddit": SignalRequest("reddit-sentiment", {"idea": idea_text, "timeWindow": "week"}),
        "twitter": SignalRequest("twitter-search", {"idea": idea_text, "time_window": "week"}),
        "youtube": SignalRequest("youtube-search", {"idea_text": idea_text, "time_window": "week"}),
        "news": SignalRequest("gdelt-news", {"idea": idea_text}),
    }


class SignalRegistry:
    """
    Central registry for signal sources.

    DESIGN PRINCIPLES:
    1. NON-BLOCKING - Never wait indefinitely for any source
    2. GRACEFUL - Partial data is better than no data
    3. TRANSPARENT - Health, stats and incidents available

    Usage:
        registry = SignalRegistry()
        registry.register(EdgeFunctionSource(base_url, api_key))

        results = await registry.fan_out({
            "reddit": SignalRequest("reddit-sentiment", {"idea": idea}),
            "news": SignalRequest("gdelt-news", {"idea": idea}),
        })
    """

    # Timeout for individual source fetch
    SOURCE_TIMEOUT = 15  # seconds
    MAX_INCIDENTS = 100

    def __init__(
        self,
        aggregator: Optional[SentimentAggregator] = None,
        source_timeout: Optional[float] = None,
        clock: Optional[ClockProtocol] = None,
    ) -> None:
        self._sources: dict[str, BaseSignalSource] = {}
        self._aggregator = aggregator or SentimentAggregator()
        self.source_timeout = source_timeout or self.SOURCE_TIMEOUT
        self._clock = clock or get_clock()
        self._incidents: list[SourceIncident] = []

        # Statistics
        self._stats = {
            "total_requests": 0,
            "successful_fanouts": 0,
            "partial_fanouts": 0,
            "failed_fanouts": 0,
        }

    def register(self, source: BaseSignalSource) -> None:
        """Register a signal source."""
        name = source.metadata.name
        if name in self._sources:
            logger.warning(f"Overwriting existing source: {name}")

        self._sources[name] = source
        logger.info(f"Registered signal source: {name}")

    @property
    def source_names(self) -> list[str]:
        return list(self._sources)

    # ─────────────────────────────────────────────────────────────
    # Public API
    # ─────────────────────────────────────────────────────────────

    async def fetch_one(self, request: SignalRequest) -> Any:
        """
        Invoke one upstream function.

        A timeout counts as a fetch failure. Failures are recorded as
        incidents and re-raised.

        Raises:
            SourceUnavailableError: no registered source serves the function
            SignalSourceError: the call failed
        """
        self._stats["total_requests"] += 1
        source = self._source_for(request.function_name)

        try:
            return await asyncio.wait_for(
                source.invoke(request.function_name, request.body),
                timeout=self.source_timeout,
            )
        except asyncio.TimeoutError:
            error = FetchError(
                f"{request.function_name} timed out after {self.source_timeout}s",
                source_name=request.function_name,
            )
            logger.warning(f"[{request.function_name}] Timed out")
            self._record_incident(request, "timeout", str(error))
            raise error
        except SignalSourceError as e:
            self._record_incident(request, type(e).__name__, str(e))
            raise

    async def fan_out(
        self,
        requests: Mapping[str, SignalRequest],
    ) -> dict[str, Optional[Any]]:
        """
        Issue every request concurrently and wait for all to settle.

        Returns one entry per slot: the raw response, or None where the
        call failed or timed out.
        """
        if not requests:
            return {}

        tasks = {
            slot: asyncio.create_task(self.fetch_one(request), name=slot)
            for slot, request in requests.items()
        }
        results = await asyncio.gather(*tasks.values(), return_exceptions=True)

        merged: dict[str, Optional[Any]] = {}
        failed: list[str] = []
        for slot, result in zip(tasks.keys(), results):
            if isinstance(result, Exception):
                if not isinstance(result, SignalSourceError):
                    logger.error(f"[{slot}] Unexpected fan-out error: {result}")
                    self._record_incident(requests[slot], "unexpected_error", str(result))
                merged[slot] = None
                failed.append(slot)
            else:
                merged[slot] = result

        if not failed:
            self._stats["successful_fanouts"] += 1
        elif len(failed) < len(requests):
            self._stats["partial_fanouts"] += 1
        else:
            self._stats["failed_fanouts"] += 1

        if failed:
            logger.info(f"Fan-out finished with failed slots: {sorted(failed)}")
        return merged

    async def get_unified_sentiment(
        self,
        idea_text: str,
        require_any: bool = False,
    ) -> UnifiedSentiment:
        """
        Blend Reddit, Twitter, YouTube and news sentiment for an idea.

        Failed sources are excluded. With require_any, a fan-out in
        which every source failed raises instead of returning the
        zero-volume result.
        """
        requests = unified_sentiment_requests(idea_text)
        results = await self.fan_out(requests)

        if require_any and all(result is None for result in results.values()):
            raise TotalFetchFailureError(
                "Every sentiment source failed",
                tile_type="unified_sentiment",
                sources_tried=[r.function_name for r in requests.values()],
            )

        return self._aggregator.aggregate(idea_text, results)

    def get_health(self) -> dict[str, dict[str, SourceHealth]]:
        """Per-source, per-function health."""
        return {name: source.get_health() for name, source in self._sources.items()}

    def get_health_summary(self) -> dict[str, Any]:
        """Get summary health information."""
        functions = {
            f"{source}:{function}": health
            for source, by_function in self.get_health().items()
            for function, health in by_function.items()
        }

        total = len(functions)
        healthy = sum(1 for h in functions.values() if h.status == SourceStatus.HEALTHY)
        degraded = sum(1 for h in functions.values() if h.status == SourceStatus.DEGRADED)
        unavailable = sum(
            1 for h in functions.values()
            if h.status in (SourceStatus.UNAVAILABLE, SourceStatus.CIRCUIT_OPEN)
        )

        return {
            "registered_sources": self.source_names,
            "total_functions": total,
            "healthy": healthy,
            "degraded": degraded,
            "unavailable": unavailable,
            "health_pct": round(healthy / total * 100, 1) if total > 0 else 0,
            "functions": {name: h.status.value for name, h in functions.items()},
        }

    def get_stats(self) -> dict[str, Any]:
        """Get registry statistics."""
        return {
            **self._stats,
            "registered_sources": len(self._sources),
            "source_names": self.source_names,
            "source_stats": {name: s.get_stats() for name, s in self._sources.items()},
            "recent_incidents": len(self._incidents),
        }

    def get_incidents(
        self,
        limit: int = 20,
        source_name: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        """Get recent incidents."""
        incidents = self._incidents

        if source_name:
            incidents = [i for i in incidents if i.source_name == source_name]

        return [i.to_dict() for i in incidents[-limit:]]

    async def close(self) -> None:
        """Close all sources."""
        for source in self._sources.values():
            await source.close()
        self._sources.clear()

    # ─────────────────────────────────────────────────────────────
    # Internal methods
    # ─────────────────────────────────────────────────────────────

    def _source_for(self, function_name: str) -> BaseSignalSource:
        for source in self._sources.values():
            if source.supports(function_name):
                return source
        raise SourceUnavailableError(
            f"No registered source serves {function_name}",
            source_name=function_name,
            is_permanent=True,
        )

    def _record_incident(
        self,
        request: SignalRequest,
        incident_type: str,
        error_message: str,
    ) -> None:
        """Record an incident for debugging."""
        self._incidents.append(
            SourceIncident(
                source_name=request.function_name,
                incident_type=incident_type,
                timestamp=self._clock.now(),
                error_message=error_message,
                request_params=dict(request.body),
            )
        )

        # Keep only last 100 incidents
        if len(self._incidents) > self.MAX_INCIDENTS:
            self._incidents = self._incidents[-self.MAX_INCIDENTS:]
