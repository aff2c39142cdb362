"""
Market Signal Layer - Pluggable upstream sources, normalization and sentiment blending.

This package provides:
- Hosted-function source (aiohttp) and a seedable demo source
- Per-tile normalization into one common shape
- Multi-source sentiment aggregation (Reddit, Twitter, YouTube, news)
- Registry for concurrent fan-out with health and incident tracking

Usage:
    from market_signals import SignalRegistry, EdgeFunctionSource

    registry = SignalRegistry()
    registry.register(EdgeFunctionSource(base_url, api_key))

    sentiment = await registry.get_unified_sentiment("AI meal planner")
    print(sentiment.summary)
    print(f"Confidence: {sentiment.confidence}")
"""

from .aggregator import SentimentAggregator, compute_confidence
from .base import BaseSignalSource
from .circuit import CircuitBreaker, CircuitState
from .exceptions import (
    AuthenticationError,
    CircuitOpenError,
    FetchError,
    ParseError,
    RateLimitError,
    SignalSourceError,
    SourceUnavailableError,
    UpstreamError,
)
from .models import (
    Citation,
    Cluster,
    NormalizedTileData,
    QueryContext,
    Quote,
    SentimentBreakdown,
    SignalRequest,
    SourceHealth,
    SourceIncident,
    SourceMetadata,
    SourceStatus,
    TileItem,
    TileMetric,
    TimeWindow,
    UnifiedSentiment,
)
from .normalizer import TileNormalizer, sentiment_from_score
from .providers import DemoSignalSource, EdgeFunctionSource, TileAnalyzer
from .registry import SignalRegistry, unified_sentiment_requests

__all__ = [
    # Sources
    "BaseSignalSource",
    "DemoSignalSource",
    "EdgeFunctionSource",
    "TileAnalyzer",
    # Registry
    "SignalRegistry",
    "unified_sentiment_requests",
    # Processing
    "SentimentAggregator",
    "TileNormalizer",
    "compute_confidence",
    "sentiment_from_score",
    "CircuitBreaker",
    "CircuitState",
    # Models
    "Citation",
    "Cluster",
    "NormalizedTileData",
    "QueryContext",
    "Quote",
    "SentimentBreakdown",
    "SignalRequest",
    "SourceHealth",
    "SourceIncident",
    "SourceMetadata",
    "SourceStatus",
    "TileItem",
    "TileMetric",
    "TimeWindow",
    "UnifiedSentiment",
    # Exceptions
    "AuthenticationError",
    "CircuitOpenError",
    "FetchError",
    "ParseError",
    "RateLimitError",
    "SignalSourceError",
    "SourceUnavailableError",
    "UpstreamError",
]
