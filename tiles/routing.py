"""
Tile Routing - Which upstream functions serve which tile.

Three kinds of route:
- direct: one named function, called with a tile-specific body
- search: the AI web-search function first, then a dedicated fallback
- fan-out: the unified sentiment tile, served by the registry
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional

from core.exceptions import ConfigurationError
from market_signals.models import QueryContext, SignalRequest


BodyBuilder = Callable[[QueryContext], dict[str, Any]]

PRIMARY_SEARCH_FUNCTION = "web-search-ai"
DEFAULT_FALLBACK_FUNCTION = "dashboard-insights"
UNIFIED_SENTIMENT_TILE = "unified_sentiment"

DEFAULT_GEOGRAPHY = "global"
DEFAULT_NEWS_WINDOW = "last_90_days"


def _filters(context: QueryContext) -> dict[str, Any]:
    return {
        "idea": context.idea_text,
        "industry": context.industry,
        "geography": context.geography,
        "timeWindow": context.time_window.value if context.time_window else None,
    }


def idea_body(context: QueryContext) -> dict[str, Any]:
    return {"idea": context.idea_text}


def news_body(context: QueryContext) -> dict[str, Any]:
    return {
        "idea": context.idea_text,
        "industry": context.industry,
        "geo": context.geography or DEFAULT_GEOGRAPHY,
        "time_window": context.time_window.value if context.time_window else DEFAULT_NEWS_WINDOW,
    }


def trends_body(context: QueryContext) -> dict[str, Any]:
    keywords = [word for word in context.idea_text.split() if len(word) > 2]
    return {"idea": context.idea_text, "keywords": keywords}


def search_body(context: QueryContext) -> dict[str, Any]:
    return {
        "tileType": context.tile_type,
        "filters": _filters(context),
        "query": context.idea_text,
    }


def fallback_body(context: QueryContext) -> dict[str, Any]:
    return {
        "query": context.idea_text,
        "filters": _filters(context),
        "tileType": context.tile_type,
    }


@dataclass(frozen=True)
class TileRoute:
    """Primary function and optional fallback for one tile type."""
    tile_type: str
    primary: str
    primary_body: BodyBuilder
    fallback: Optional[str] = None
    fallback_body: BodyBuilder = fallback_body

    def requests(self, context: QueryContext) -> list[SignalRequest]:
        """Requests in the order they should be tried."""
        ordered = [SignalRequest(self.primary, self.primary_body(context))]
        if self.fallback:
            ordered.append(SignalRequest(self.fallback, self.fallback_body(context)))
        return ordered


def _direct(tile_type: str, function: str, body: BodyBuilder = idea_body,
            fallback: Optional[str] = None) -> TileRoute:
    return TileRoute(tile_type, function, body, fallback=fallback, fallback_body=body)


def _search(tile_type: str, fallback: str = DEFAULT_FALLBACK_FUNCTION) -> TileRoute:
    return TileRoute(tile_type, PRIMARY_SEARCH_FUNCTION, search_body, fallback=fallback)


TILE_ROUTES: dict[str, TileRoute] = {
    route.tile_type: route
    for route in (
        # Quick stats
        _direct("pmf_score", "smoothbrains-score"),
        _direct("market_size", "market-size"),
        _direct("competition", "competition", fallback="competitor-analysis"),
        _direct("sentiment", "sentiment"),
        # Dedicated functions
        _direct("news_analysis", "news-analysis", news_body),
        _direct("market_trends", "market-trends", trends_body),
        # AI search, then a dedicated fallback
        _search("google_trends", "google-trends"),
        _search("web_search", "web-search"),
        _search("reddit_sentiment", "reddit-search"),
        _search("youtube_analytics", "youtube-search"),
        _search("twitter_buzz", "twitter-search"),
        _search("amazon_reviews", "amazon-public"),
        _search("competitor_analysis", "competitor-analysis"),
        _search("target_audience"),
        _search("pricing_strategy"),
        _search("growth_projections"),
        _search("user_engagement"),
        _search("launch_timeline"),
    )
}

TILE_TYPES = sorted([*TILE_ROUTES, UNIFIED_SENTIMENT_TILE])


def is_known_tile(tile_type: str) -> bool:
    return tile_type in TILE_ROUTES or tile_type == UNIFIED_SENTIMENT_TILE


def route_for(tile_type: str) -> TileRoute:
    """
    Route for a fetchable tile.

    Raises:
        ConfigurationError: unknown tile type, or the fan-out tile
    """
    route = TILE_ROUTES.get(tile_type)
    if route is None:
        raise ConfigurationError(
            f"Unknown tile type: {tile_type}",
            config_key="tile_type",
            actual_value=tile_type,
        )
    return route
