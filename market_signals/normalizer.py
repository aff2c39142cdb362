"""
Tile Normalizer - Map any upstream response into NormalizedTileData.

One strategy per tile type. Strategies read through explicit
fallback chains (`data.x` vs `x`, camelCase vs snake_case) and
fill every gap with a default:

- missing numbers become 0, missing lists become []
- missing sentiment becomes a neutral-weighted placeholder,
  derived from a scalar score when one is present
- `metrics` is never empty

normalize() never raises and is deterministic: the same input
and the same clock reading give the same output.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from core.clock import ClockProtocol, get_clock

from .fields import (
    as_dict,
    as_dicts,
    as_list,
    as_number,
    as_strings,
    first_present,
    first_truthy,
    format_currency,
    format_number,
    round_half_up,
    truncate,
)
from .models import (
    Citation,
    NormalizedTileData,
    QueryContext,
    SentimentBreakdown,
    TileItem,
    TileMetric,
)
from .parsers import NewsSignal


logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────
# Fixed lookup tables
# ─────────────────────────────────────────────────────────────

STRONG_PMF_THRESHOLD = 70
MODERATE_PMF_THRESHOLD = 40

PMF_SENTIMENT = {
    "strong": SentimentBreakdown(85, 10, 5),
    "moderate": SentimentBreakdown(60, 30, 10),
    "weak": SentimentBreakdown(30, 40, 30),
}

PMF_LABELS = {
    "strong": "Strong PMF",
    "moderate": "Moderate PMF",
    "weak": "Needs Work",
}

PLACEHOLDER_METRIC = TileMetric(
    name="Data Status",
    value="Available",
    explanation="Click to explore details",
)

NEUTRAL_PLACEHOLDER = SentimentBreakdown(0, 100, 0)

# Passthrough keys kept for tiles that render charts or tables
EXTRA_KEYS = (
    "series",
    "chart",
    "top_queries",
    "competitors",
    "segments",
    "projections",
    "type",
)


def pmf_band(score: float) -> str:
    if score >= STRONG_PMF_THRESHOLD:
        return "strong"
    if score >= MODERATE_PMF_THRESHOLD:
        return "moderate"
    return "weak"


def sentiment_from_score(score: float) -> SentimentBreakdown:
    """
    Breakdown from a 0-100 positive score.

    Below 50 the shortfall goes to negative and neutral holds 50.
    From 50 up the remainder is split between neutral and negative.
    """
    score = max(0, min(100, score))
    if score < 50:
        return SentimentBreakdown(
            positive=score,
            neutral=50,
            negative=50 - score,
        )
    negative = round_half_up((100 - score) / 2)
    return SentimentBreakdown(
        positive=score,
        neutral=100 - score - negative,
        negative=negative,
    )


# ─────────────────────────────────────────────────────────────
# Shared readers
# ─────────────────────────────────────────────────────────────

def _unwrap(payload: dict[str, Any]) -> dict[str, Any]:
    data = payload.get("data")
    return data if isinstance(data, dict) and data else payload


def _read_metrics(value: Any) -> list[TileMetric]:
    return [TileMetric.from_dict(m) for m in as_dicts(value) if m.get("name")]


def _read_items(value: Any) -> list[TileItem]:
    items = []
    for entry in as_dicts(value):
        title = first_truthy(entry, "title", "name", default="")
        snippet = first_truthy(entry, "snippet", "content", "description", "excerpt", default="")
        items.append(TileItem(
            title=str(title),
            snippet=truncate(str(snippet), 300),
            url=first_truthy(entry, "url", "link", "canonicalUrl"),
            source=first_truthy(entry, "source", "domain"),
            published=first_truthy(entry, "published", "publishedDate", "published_at", "date"),
        ))
    return items


def _read_citations(value: Any) -> list[Citation]:
    citations = []
    for entry in as_dicts(value):
        citations.append(Citation(
            source=str(first_truthy(entry, "source", "domain", default="Web")),
            url=str(first_truthy(entry, "url", "link", default="#")),
            title=str(first_truthy(entry, "title", "label", default="")),
        ))
    return citations


def _read_insights(payload: dict[str, Any], *paths: str) -> list[str]:
    return as_strings(first_truthy(payload, *(paths or ("insights",))))


def _scalar_score(payload: dict[str, Any]) -> Optional[float]:
    for path in ("score", "sentiment_score", "sentiment", "overall_score", "data.score"):
        value = first_present(payload, path)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return value
    return None


def _read_sentiment(payload: dict[str, Any], *paths: str) -> Optional[SentimentBreakdown]:
    for path in paths or ("sentiment", "data.sentiment"):
        value = first_present(payload, path)
        if isinstance(value, dict) and any(k in value for k in ("positive", "neutral", "negative")):
            return SentimentBreakdown(
                positive=as_number(value.get("positive")),
                neutral=as_number(value.get("neutral")),
                negative=as_number(value.get("negative")),
            )
    return None


def _has_standard_metrics(payload: dict[str, Any]) -> bool:
    return bool(_read_metrics(payload.get("metrics")))


class TileNormalizer:
    """
    Per-tile-type mapping of upstream JSON into NormalizedTileData.

    Usage:
        normalizer = TileNormalizer()
        tile = normalizer.normalize("pmf_score", {"score": 75}, context)
    """

    def __init__(self, clock: Optional[ClockProtocol] = None) -> None:
        self._clock = clock or get_clock()
        self._strategies: dict[str, Callable[[dict[str, Any]], dict[str, Any]]] = {
            "pmf_score": self._pmf_score,
            "market_size": self._market_size,
            "competition": self._competition,
            "sentiment": self._sentiment,
            "reddit_sentiment": self._reddit_sentiment,
            "youtube_analytics": self._youtube_analytics,
            "twitter_buzz": self._twitter_buzz,
            "news_analysis": self._news_analysis,
            "google_trends": self._google_trends,
            "market_trends": self._market_trends,
            "web_search": self._web_search,
            "amazon_reviews": self._amazon_reviews,
            "unified_sentiment": self._unified_sentiment,
        }

    @property
    def tile_types(self) -> list[str]:
        return sorted(self._strategies)

    def supports(self, tile_type: str) -> bool:
        return tile_type in self._strategies

    # ─────────────────────────────────────────────────────────────
    # Public API
    # ─────────────────────────────────────────────────────────────

    def normalize(
        self,
        tile_type: str,
        raw: Any,
        filters: Optional[QueryContext] = None,
    ) -> NormalizedTileData:
        """
        Normalize a successful upstream response.

        Never raises. Unknown tile types use the passthrough strategy.
        """
        payload = raw if isinstance(raw, dict) else {}
        strategy = self._strategies.get(tile_type, self._passthrough)

        try:
            parts = strategy(payload)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"[{tile_type}] Normalization fell back to defaults: {e}")
            parts = {}

        metrics = parts.get("metrics") or [PLACEHOLDER_METRIC]
        sentiment = parts.get("sentiment")
        if sentiment is None:
            score = _scalar_score(payload)
            sentiment = sentiment_from_score(score) if score is not None else NEUTRAL_PLACEHOLDER

        return NormalizedTileData(
            updated_at=self._updated_at(payload),
            filters=filters,
            metrics=list(metrics),
            items=list(parts.get("items") or []),
            insights=list(parts.get("insights") or []),
            sentiment=sentiment,
            citations=list(parts.get("citations") or []),
            error=parts.get("error"),
            extras=dict(parts.get("extras") or {}),
        )

    def _updated_at(self, payload: dict[str, Any]) -> datetime:
        value = first_present(payload, "updatedAt", "updated_at", "timestamp")
        if isinstance(value, str):
            try:
                parsed = self._clock.parse_iso(value)
                return parsed.astimezone(timezone.utc)
            except ValueError:
                pass
        return self._clock.now()

    # ─────────────────────────────────────────────────────────────
    # Strategies
    # ─────────────────────────────────────────────────────────────

    def _passthrough(self, payload: dict[str, Any]) -> dict[str, Any]:
        extras = {key: payload[key] for key in EXTRA_KEYS if payload.get(key) is not None}
        error = payload.get("error")
        return {
            "metrics": _read_metrics(payload.get("metrics")),
            "items": _read_items(payload.get("items")),
            "insights": _read_insights(payload),
            "sentiment": _read_sentiment(payload, "sentiment"),
            "citations": _read_citations(payload.get("citations")),
            "error": str(error) if error else None,
            "extras": extras,
        }

    def _pmf_score(self, payload: dict[str, Any]) -> dict[str, Any]:
        score = as_number(first_present(payload, "score", "pmf_score", "data.score"))
        band = pmf_band(score)
        return {
            "metrics": [TileMetric(
                name="PMF Score",
                value=f"{format_number(score)}%",
                confidence=score / 100,
                explanation=PMF_LABELS[band],
            )],
            "insights": _read_insights(payload),
            "sentiment": PMF_SENTIMENT[band],
            "extras": {
                "score": score,
                "factors": as_dict(payload.get("factors")),
            },
        }

    def _market_size(self, payload: dict[str, Any]) -> dict[str, Any]:
        tam = first_truthy(payload, "tam", "market_size.tam", "data.tam", default=0)
        sam = first_truthy(payload, "sam", "market_size.sam", "data.sam", default=0)
        som = first_truthy(payload, "som", "market_size.som", "data.som", default=0)
        maturity = first_truthy(payload, "maturity", "market_size.maturity", default="Medium")
        return {
            "metrics": [
                TileMetric("TAM", format_currency(tam), explanation="Total Addressable Market"),
                TileMetric("SAM", format_currency(sam), explanation="Serviceable Addressable Market"),
                TileMetric("SOM", format_currency(som), explanation="Serviceable Obtainable Market"),
                TileMetric("Market Maturity", str(maturity), explanation="Market development stage"),
            ],
            "insights": _read_insights(payload),
            "citations": _read_citations(payload.get("citations")),
        }

    def _competition(self, payload: dict[str, Any]) -> dict[str, Any]:
        competitors = as_list(first_truthy(payload, "competitors", "data.competitors"))
        items = []
        for competitor in competitors:
            if isinstance(competitor, dict):
                items.append(TileItem(
                    title=str(first_truthy(competitor, "name", "title", default="")),
                    snippet=truncate(str(first_truthy(competitor, "description", "snippet", default="")), 300),
                    url=first_truthy(competitor, "url", "website"),
                    source="competition",
                ))
            elif competitor is not None:
                items.append(TileItem(title=str(competitor), snippet="", source="competition"))

        return {
            "metrics": [
                TileMetric(
                    "Competition Level",
                    str(first_truthy(payload, "level", "competition_level", default="Medium")),
                    explanation="Market competition intensity",
                ),
                TileMetric(
                    "Key Players",
                    len(competitors),
                    unit="companies",
                    explanation="Major competitors identified",
                ),
                TileMetric(
                    "Market Share",
                    first_truthy(payload, "marketShare", "market_share", default="N/A"),
                    explanation="Available market share",
                ),
                TileMetric(
                    "Barrier to Entry",
                    str(first_truthy(payload, "barrier", "barrier_to_entry", default="Medium")),
                    explanation="Difficulty entering market",
                ),
            ],
            "items": items,
            "insights": _read_insights(payload),
            "extras": {"competitors": competitors},
        }

    def _sentiment(self, payload: dict[str, Any]) -> dict[str, Any]:
        score = as_number(first_present(payload, "score", "sentiment_score", "data.score"))
        return {
            "metrics": [
                TileMetric(
                    "Overall Sentiment",
                    f"{format_number(score)}%",
                    explanation="Positive sentiment score",
                ),
                TileMetric(
                    "Confidence",
                    first_truthy(payload, "confidence", default="Medium"),
                    explanation="Data confidence level",
                ),
            ],
            "insights": _read_insights(payload),
            "sentiment": sentiment_from_score(score),
        }

    def _reddit_sentiment(self, payload: dict[str, Any]) -> dict[str, Any]:
        if _has_standard_metrics(payload):
            return self._passthrough(payload)

        data = _unwrap(payload)
        subreddits = as_strings(data.get("topSubreddits"))
        if subreddits:
            items = [
                TileItem(
                    title=name,
                    snippet="Top subreddit",
                    url=f"https://reddit.com/{name}",
                    source="reddit",
                )
                for name in subreddits[:3]
            ]
        else:
            items = [
                TileItem(
                    title=str(post.get("title") or ""),
                    snippet=str(post.get("excerpt") or truncate(post.get("body"), 150)),
                    url=post.get("permalink"),
                    source=f"r/{post['subreddit']}" if post.get("subreddit") else "reddit",
                )
                for post in as_dicts(first_truthy(data, "samplePosts", "posts"))[:5]
            ]

        breakdown = _read_sentiment(data, "sentiment")
        if breakdown is None and any(k in data for k in ("positive", "neutral", "negative")):
            breakdown = SentimentBreakdown(
                positive=as_number(data.get("positive")),
                neutral=as_number(data.get("neutral")),
                negative=as_number(data.get("negative")),
            )

        return {
            "metrics": [
                TileMetric(
                    "Mentions",
                    as_number(first_present(data, "mentions", "totalPosts", "metrics.totalPosts")),
                    explanation="Total Reddit mentions",
                ),
                TileMetric(
                    "Positive",
                    breakdown.positive if breakdown else 0,
                    unit="%",
                    explanation="Positive sentiment",
                ),
            ],
            "items": items,
            "insights": _read_insights(data, "insights", "themes"),
            "sentiment": breakdown,
        }

    def _youtube_analytics(self, payload: dict[str, Any]) -> dict[str, Any]:
        if _has_standard_metrics(payload):
            return self._passthrough(payload)

        data = _unwrap(payload)
        top_videos = as_dicts(data.get("topVideos"))
        if top_videos:
            items = [
                TileItem(
                    title=str(video.get("title") or ""),
                    snippet=f"Views: {format_number(as_number(video.get('views')))}",
                    url=video.get("url"),
                    source="youtube",
                )
                for video in top_videos[:3]
            ]
        else:
            items = []
            for video in as_dicts(data.get("youtube_insights"))[:5]:
                url = video.get("url")
                if not url and video.get("videoId"):
                    url = f"https://youtu.be/{video['videoId']}"
                items.append(TileItem(
                    title=str(video.get("title") or ""),
                    snippet=truncate(str(video.get("description") or ""), 200),
                    url=url,
                    source=str(video.get("channel") or "youtube"),
                    published=video.get("published_at"),
                ))

        return {
            "metrics": [
                TileMetric(
                    "Search Volume",
                    as_number(first_present(data, "searchVolume", "summary.total_videos")),
                    explanation="Estimated video search volume",
                ),
                TileMetric(
                    "Avg Views",
                    as_number(first_present(data, "averageViews", "summary.avg_views")),
                    explanation="Average views for top videos",
                ),
            ],
            "items": items,
            "insights": _read_insights(data),
        }

    def _twitter_buzz(self, payload: dict[str, Any]) -> dict[str, Any]:
        if _has_standard_metrics(payload):
            return self._passthrough(payload)

        data = _unwrap(payload)
        buzz = as_dict(first_present(payload, "twitter_buzz", "data.twitter_buzz"))
        hashtags = as_strings(
            first_truthy(data, "trendingHashtags") or first_present(buzz, "metrics.top_hashtags")
        )
        mentions = first_present(data, "mentions")
        if mentions is None:
            mentions = first_present(buzz, "metrics.total_tweets")

        return {
            "metrics": [
                TileMetric("Mentions", as_number(mentions), explanation="Total mentions on X"),
                TileMetric("Reach", as_number(data.get("reach")), explanation="Estimated reach"),
            ],
            "items": [
                TileItem(title=tag, snippet="Trending hashtag", source="x")
                for tag in hashtags[:3]
            ],
            "insights": _read_insights(data),
            "sentiment": _read_sentiment(buzz, "metrics.overall_sentiment"),
        }

    def _news_analysis(self, payload: dict[str, Any]) -> dict[str, Any]:
        if _has_standard_metrics(payload):
            return self._passthrough(payload)

        data = _unwrap(payload)
        signal = NewsSignal.parse(data)
        articles = signal.articles

        items = []
        for article in articles[:10]:
            source = article.get("source")
            if isinstance(source, dict):
                source = source.get("name")
            items.append(TileItem(
                title=str(article.get("title") or ""),
                snippet=truncate(str(article.get("description") or article.get("summary") or ""), 300),
                url=article.get("url"),
                source=str(source) if source else None,
                published=first_truthy(article, "publishedDate", "published_at", "seendate"),
            ))

        citations = [
            Citation(
                source=item.source or "News",
                url=item.url or "#",
                title=item.title,
            )
            for item in items[:5]
        ]

        themes = [
            str(entry.get("theme")) if isinstance(entry, dict) else str(entry)
            for entry in as_list(data.get("topThemes"))[:5]
        ]

        return {
            "metrics": [
                TileMetric(
                    "Articles",
                    int(as_number(data.get("totalArticles"))) or len(articles),
                    explanation="News articles found",
                ),
                TileMetric(
                    "Average Tone",
                    round(as_number(first_present(data, "sentiment.average")), 2),
                    explanation="Mean article tone",
                ),
            ],
            "items": items,
            "insights": _read_insights(data) or themes,
            "sentiment": signal.breakdown if articles else None,
            "citations": citations,
        }

    def _google_trends(self, payload: dict[str, Any]) -> dict[str, Any]:
        if _has_standard_metrics(payload):
            return self._passthrough(payload)

        trends = as_dict(first_truthy(payload, "trends", "data.trends"))
        return {
            "metrics": [
                TileMetric(
                    "Trend Score",
                    as_number(trends.get("trendScore")),
                    unit="/100",
                    explanation="Relative search interest",
                ),
                TileMetric(
                    "Direction",
                    str(trends.get("trending") or "stable"),
                    explanation="Trend direction",
                ),
                TileMetric(
                    "Growth Rate",
                    as_number(trends.get("growthRate")),
                    unit="%",
                    explanation="Estimated growth",
                ),
            ],
            "insights": as_strings(trends.get("insights")),
        }

    def _market_trends(self, payload: dict[str, Any]) -> dict[str, Any]:
        if _has_standard_metrics(payload):
            return self._passthrough(payload)

        trends = as_dict(first_truthy(payload, "trends", "data.trends"))
        volume = as_dict(trends.get("searchVolume"))
        return {
            "metrics": [
                TileMetric("Trend", str(volume.get("trend") or "unknown"), explanation="Overall search trend"),
                TileMetric(
                    "Monthly Volume",
                    as_number(volume.get("monthlyVolume")),
                    unit="searches/mo",
                    explanation="Estimated search volume",
                ),
                TileMetric(
                    "Growth Rate",
                    as_number(volume.get("growthRate")),
                    unit="%",
                    explanation="Estimated growth",
                ),
                TileMetric(
                    "Sentiment",
                    str(trends.get("marketSentiment") or "neutral"),
                    explanation="Estimated market sentiment",
                ),
            ],
            "insights": as_strings(trends.get("insights")),
            "extras": {key: payload[key] for key in ("series", "chart") if payload.get(key)},
        }

    def _web_search(self, payload: dict[str, Any]) -> dict[str, Any]:
        if _has_standard_metrics(payload):
            return self._passthrough(payload)

        results = first_truthy(payload, "organic_results", "results", "items", "data.results")
        items = _read_items(results)[:10]
        return {
            "metrics": [
                TileMetric("Results", len(as_list(results)), explanation="Web results found"),
            ],
            "items": items,
            "insights": _read_insights(payload),
            "citations": [
                Citation(source=item.source or "Web", url=item.url or "#", title=item.title)
                for item in items[:5]
            ],
        }

    def _amazon_reviews(self, payload: dict[str, Any]) -> dict[str, Any]:
        if _has_standard_metrics(payload):
            return self._passthrough(payload)

        data = _unwrap(payload)
        return {
            "metrics": [
                TileMetric(
                    "Avg Rating",
                    as_number(data.get("averageRating")),
                    unit="/5",
                    explanation="Average product rating",
                ),
                TileMetric(
                    "Total Reviews",
                    as_number(data.get("totalReviews")),
                    explanation="Total review count",
                ),
            ],
            "items": [
                TileItem(
                    title=str(product.get("name") or ""),
                    snippet=(
                        f"Rating {format_number(as_number(product.get('rating')))} • "
                        f"{format_number(as_number(product.get('reviews')))} reviews"
                    ),
                    source="amazon",
                )
                for product in as_dicts(data.get("topProducts"))[:3]
            ],
            "insights": as_strings(data.get("commonComplaints")),
        }

    def _unified_sentiment(self, payload: dict[str, Any]) -> dict[str, Any]:
        result = as_dict(first_truthy(payload, "sentiment", default=payload))
        if not isinstance(result.get("metrics"), dict):
            result = payload

        metrics = as_dict(result.get("metrics"))
        overall = as_dict(metrics.get("overall_distribution"))
        clusters = as_dicts(result.get("clusters"))
        confidence = as_number(result.get("confidence"))
        total_mentions = as_number(
            first_present(result, "total_mentions", "metrics.total_mentions")
        )

        items = [
            TileItem(
                title=str(cluster.get("theme") or ""),
                snippet=str(cluster.get("insight") or ""),
                source=cluster.get("source") or None,
            )
            for cluster in clusters
        ]
        citations = []
        for cluster in clusters:
            citations.extend(_read_citations(cluster.get("citations")))

        summary = result.get("summary")
        insights = [str(summary)] if summary else []
        insights.extend(f"Driver: {d}" for d in as_strings(metrics.get("top_positive_drivers")))
        insights.extend(f"Concern: {c}" for c in as_strings(metrics.get("top_negative_concerns")))

        return {
            "metrics": [
                TileMetric(
                    "Overall Positive",
                    f"{format_number(as_number(overall.get('positive')))}%",
                    explanation="Mean positive share across sources",
                ),
                TileMetric(
                    "Total Mentions",
                    total_mentions,
                    explanation="Mentions across all sources",
                ),
                TileMetric(
                    "Sources",
                    len(clusters),
                    explanation="Platforms that returned data",
                ),
                TileMetric(
                    "Confidence",
                    f"{round_half_up(confidence * 100)}%",
                    confidence=confidence,
                    explanation="Grows with source diversity and volume",
                ),
            ],
            "items": items,
            "insights": insights,
            "sentiment": SentimentBreakdown(
                positive=as_number(overall.get("positive")),
                neutral=as_number(overall.get("neutral")),
                negative=as_number(overall.get("negative")),
            ),
            "citations": citations,
            "extras": {
                key: result[key]
                for key in ("clusters", "charts", "word_clouds", "trend_data")
                if result.get(key) is not None
            },
        }
