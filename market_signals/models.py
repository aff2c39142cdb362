"""
Market Signal Data Models - Normalized tile and sentiment structures.

Every upstream source, whatever its JSON shape, ends up in one of:
- NormalizedTileData: the common shape every tile renders
- UnifiedSentiment: the blended multi-source sentiment view
"""

import copy
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from core.exceptions import ConfigurationError


class SourceStatus(Enum):
    """Health status of a signal source."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    RATE_LIMITED = "rate_limited"
    CIRCUIT_OPEN = "circuit_open"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"


class TimeWindow(Enum):
    """Look-back (or look-ahead) window for a query."""
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"
    LAST_7_DAYS = "last_7_days"
    LAST_30_DAYS = "last_30_days"
    LAST_12_MONTHS = "last_12_months"
    NEXT_12_MONTHS = "next_12_months"


# ─────────────────────────────────────────────────────────────
# Query context
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class QueryContext:
    """
    What a tile is asked about.

    Immutable once built. An empty idea is rejected here so that
    no fetch is ever attempted for it.
    """
    idea_text: str
    tile_type: str
    industry: Optional[str] = None
    geography: Optional[str] = None
    time_window: Optional[TimeWindow] = None

    def __post_init__(self) -> None:
        if not isinstance(self.idea_text, str) or not self.idea_text.strip():
            raise ConfigurationError(
                "idea_text must be a non-empty string",
                config_key="idea_text",
                actual_value=self.idea_text,
            )
        if not self.tile_type:
            raise ConfigurationError("tile_type is required", config_key="tile_type")
        if isinstance(self.time_window, str):
            try:
                object.__setattr__(self, "time_window", TimeWindow(self.time_window))
            except ValueError:
                raise ConfigurationError(
                    f"Unknown time window: {self.time_window}",
                    config_key="time_window",
                    actual_value=self.time_window,
                )

    def with_tile_type(self, tile_type: str) -> "QueryContext":
        return QueryContext(
            idea_text=self.idea_text,
            tile_type=tile_type,
            industry=self.industry,
            geography=self.geography,
            time_window=self.time_window,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "idea_text": self.idea_text,
            "tile_type": self.tile_type,
            "industry": self.industry,
            "geography": self.geography,
            "time_window": self.time_window.value if self.time_window else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "QueryContext":
        return cls(
            idea_text=data.get("idea_text", ""),
            tile_type=data.get("tile_type", ""),
            industry=data.get("industry"),
            geography=data.get("geography"),
            time_window=data.get("time_window"),
        )


# ─────────────────────────────────────────────────────────────
# Tile building blocks
# ─────────────────────────────────────────────────────────────

def _compact(data: dict[str, Any]) -> dict[str, Any]:
    """Drop optional keys that are unset."""
    return {k: v for k, v in data.items() if v is not None}


@dataclass(frozen=True)
class TileMetric:
    """One headline number or label on a tile."""
    name: str
    value: Any
    unit: Optional[str] = None
    confidence: Optional[float] = None
    explanation: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return _compact({
            "name": self.name,
            "value": self.value,
            "unit": self.unit,
            "confidence": self.confidence,
            "explanation": self.explanation,
        })

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TileMetric":
        return cls(
            name=str(data.get("name", "")),
            value=data.get("value"),
            unit=data.get("unit"),
            confidence=data.get("confidence"),
            explanation=data.get("explanation"),
        )


@dataclass(frozen=True)
class TileItem:
    """A supporting evidence row (post, video, article, result)."""
    title: str
    snippet: str
    url: Optional[str] = None
    source: Optional[str] = None
    published: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return _compact({
            "title": self.title,
            "snippet": self.snippet,
            "url": self.url,
            "source": self.source,
            "published": self.published,
        })

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TileItem":
        return cls(
            title=str(data.get("title") or ""),
            snippet=str(data.get("snippet") or ""),
            url=data.get("url"),
            source=data.get("source"),
            published=data.get("published"),
        )


@dataclass(frozen=True)
class Citation:
    source: str
    url: str
    title: str

    def to_dict(self) -> dict[str, Any]:
        return {"source": self.source, "url": self.url, "title": self.title}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Citation":
        return cls(
            source=str(data.get("source") or ""),
            url=str(data.get("url") or "#"),
            title=str(data.get("title") or ""),
        )


@dataclass(frozen=True)
class SentimentBreakdown:
    """Percentages; sum to roughly 100 (rounding tolerated)."""
    positive: float = 0
    neutral: float = 0
    negative: float = 0

    @property
    def total(self) -> float:
        return self.positive + self.neutral + self.negative

    def to_dict(self) -> dict[str, Any]:
        return {
            "positive": self.positive,
            "neutral": self.neutral,
            "negative": self.negative,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SentimentBreakdown":
        return cls(
            positive=data.get("positive") or 0,
            neutral=data.get("neutral") or 0,
            negative=data.get("negative") or 0,
        )


@dataclass
class NormalizedTileData:
    """
    The one shape every tile renders.

    `metrics` always holds at least one entry. `extras` carries
    type-specific passthrough data (series, chart, competitors)
    that has no slot in the common shape.
    """
    updated_at: datetime
    filters: Optional[QueryContext] = None
    metrics: list[TileMetric] = field(default_factory=list)
    items: list[TileItem] = field(default_factory=list)
    insights: list[str] = field(default_factory=list)
    sentiment: Optional[SentimentBreakdown] = None
    citations: list[Citation] = field(default_factory=list)
    error: Optional[str] = None
    extras: dict[str, Any] = field(default_factory=dict)

    # Set by the cache layer on read
    from_cache: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "updated_at": self.updated_at.isoformat(),
            "filters": self.filters.to_dict() if self.filters else None,
            "metrics": [m.to_dict() for m in self.metrics],
            "items": [i.to_dict() for i in self.items],
            "insights": list(self.insights),
            "sentiment": self.sentiment.to_dict() if self.sentiment else None,
            "citations": [c.to_dict() for c in self.citations],
            "error": self.error,
            "extras": dict(self.extras),
            "from_cache": self.from_cache,
        }

    def detached(self, **changes: Any) -> "NormalizedTileData":
        """Deep copy with optional field changes; mutating it leaves this one untouched."""
        return replace(copy.deepcopy(self), **changes)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "NormalizedTileData":
        updated_at = data.get("updated_at")
        if isinstance(updated_at, str):
            if updated_at.endswith("Z"):
                updated_at = updated_at[:-1] + "+00:00"
            updated_at = datetime.fromisoformat(updated_at)
        sentiment = data.get("sentiment")
        filters = data.get("filters")
        return cls(
            updated_at=updated_at,
            filters=QueryContext.from_dict(filters) if filters else None,
            metrics=[TileMetric.from_dict(m) for m in data.get("metrics") or []],
            items=[TileItem.from_dict(i) for i in data.get("items") or []],
            insights=list(data.get("insights") or []),
            sentiment=SentimentBreakdown.from_dict(sentiment) if sentiment else None,
            citations=[Citation.from_dict(c) for c in data.get("citations") or []],
            error=data.get("error"),
            extras=dict(data.get("extras") or {}),
            from_cache=bool(data.get("from_cache", False)),
        )


# ─────────────────────────────────────────────────────────────
# Unified sentiment
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Quote:
    text: str
    sentiment: str
    source: str

    def to_dict(self) -> dict[str, Any]:
        return {"text": self.text, "sentiment": self.sentiment, "source": self.source}


@dataclass
class Cluster:
    """One contributing source's slice of the unified view."""
    theme: str
    sentiment: SentimentBreakdown
    insight: str
    quotes: list[Quote] = field(default_factory=list)
    citations: list[Citation] = field(default_factory=list)
    source: str = ""
    volume: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "theme": self.theme,
            "sentiment": self.sentiment.to_dict(),
            "insight": self.insight,
            "quotes": [q.to_dict() for q in self.quotes],
            "citations": [c.to_dict() for c in self.citations],
            "source": self.source,
            "volume": self.volume,
        }


@dataclass
class UnifiedSentiment:
    """Blended sentiment across every source that returned data."""
    summary: str
    metrics: dict[str, Any]
    clusters: list[Cluster]
    confidence: float
    total_mentions: int = 0
    word_clouds: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    charts: list[dict[str, Any]] = field(default_factory=list)
    trend_data: list[dict[str, Any]] = field(default_factory=list)
    visuals_ready: bool = True

    @property
    def overall_distribution(self) -> SentimentBreakdown:
        return SentimentBreakdown.from_dict(self.metrics.get("overall_distribution") or {})

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": self.summary,
            "metrics": self.metrics,
            "clusters": [c.to_dict() for c in self.clusters],
            "confidence": self.confidence,
            "total_mentions": self.total_mentions,
            "word_clouds": self.word_clouds,
            "charts": self.charts,
            "trend_data": self.trend_data,
            "visuals_ready": self.visuals_ready,
        }


# ─────────────────────────────────────────────────────────────
# Source bookkeeping
# ─────────────────────────────────────────────────────────────

@dataclass
class SourceHealth:
    """Health status of a signal source."""
    status: SourceStatus
    last_check: datetime
    latency_ms: Optional[float] = None
    error_count: int = 0
    last_error: Optional[str] = None
    last_error_time: Optional[datetime] = None
    consecutive_failures: int = 0
    requests_today: int = 0

    def is_healthy(self) -> bool:
        return self.status == SourceStatus.HEALTHY

    def is_usable(self) -> bool:
        return self.status in (
            SourceStatus.HEALTHY,
            SourceStatus.DEGRADED,
            SourceStatus.UNKNOWN,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "last_check": self.last_check.isoformat(),
            "latency_ms": self.latency_ms,
            "error_count": self.error_count,
            "last_error": self.last_error,
            "last_error_time": self.last_error_time.isoformat() if self.last_error_time else None,
            "consecutive_failures": self.consecutive_failures,
            "requests_today": self.requests_today,
        }


@dataclass
class SourceMetadata:
    """Metadata about a signal source."""
    name: str
    display_name: str
    version: str = "1.0.0"
    requires_api_key: bool = False
    base_url: str = ""
    is_demo: bool = False
    tags: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "display_name": self.display_name,
            "version": self.version,
            "requires_api_key": self.requires_api_key,
            "base_url": self.base_url,
            "is_demo": self.is_demo,
            "tags": self.tags,
        }


@dataclass
class SourceIncident:
    """Record of a source incident."""
    source_name: str
    incident_type: str
    timestamp: datetime
    error_message: str
    request_params: Optional[dict[str, Any]] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_name": self.source_name,
            "incident_type": self.incident_type,
            "timestamp": self.timestamp.isoformat(),
            "error_message": self.error_message,
            "request_params": self.request_params,
        }


@dataclass(frozen=True)
class SignalRequest:
    """One upstream function call: name plus JSON body."""
    function_name: str
    body: dict[str, Any] = field(default_factory=dict)
