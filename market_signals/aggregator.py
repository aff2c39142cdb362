"""
Sentiment Aggregator - Blend per-source sentiment into one view.

Overall distribution is the simple arithmetic mean of the
per-cluster percentages. Every contributing source counts once,
whatever its volume.
"""

import logging
from typing import Any, Mapping, Optional

from .fields import round_half_up
from .models import Cluster, SentimentBreakdown, UnifiedSentiment
from .parsers import SIGNAL_PARSERS, RedditSignal, TwitterSignal


logger = logging.getLogger(__name__)


LIMITED_DATA_SUMMARY = "Limited data available for this idea."

BASE_CONFIDENCE = 0.3
CONFIDENCE_PER_CLUSTER = 0.15
MENTION_CAP = 200
MENTION_DIVISOR = 400
MAX_CONFIDENCE = 0.95

MAX_DRIVERS = 4
MAX_WORD_CLOUD = 8


def compute_confidence(cluster_count: int, total_mentions: int) -> float:
    """Grows with source diversity and volume, capped below 1.0."""
    return min(
        MAX_CONFIDENCE,
        BASE_CONFIDENCE
        + CONFIDENCE_PER_CLUSTER * cluster_count
        + min(total_mentions, MENTION_CAP) / MENTION_DIVISOR,
    )


def describe_distribution(distribution: SentimentBreakdown) -> str:
    if distribution.positive > 60:
        return "predominantly positive"
    if distribution.positive > 40:
        return "moderately positive"
    if distribution.negative > 40:
        return "concerning"
    return "mixed"


class SentimentAggregator:
    """
    Merges source responses into a UnifiedSentiment.

    Usage:
        aggregator = SentimentAggregator()
        result = aggregator.aggregate(idea, {
            "reddit": reddit_json,
            "twitter": None,        # failed or empty
            "youtube": youtube_json,
            "news": None,
        })

    None marks a failed source and is silently excluded. An
    all-None input still yields a valid zero-volume result.
    """

    def aggregate(
        self,
        idea_text: str,
        source_results: Mapping[str, Optional[Any]],
    ) -> UnifiedSentiment:
        signals = {}
        for name, parser in SIGNAL_PARSERS.items():
            signals[name] = parser.parse(source_results.get(name))

        unknown = set(source_results) - set(SIGNAL_PARSERS)
        if unknown:
            logger.debug(f"Ignoring unknown sentiment sources: {sorted(unknown)}")

        clusters: list[Cluster] = []
        for signal in signals.values():
            cluster = signal.cluster()
            if cluster is not None:
                clusters.append(cluster)

        overall = self._overall_distribution(clusters)
        total_mentions = sum(int(s.volume) for s in signals.values())

        reddit: RedditSignal = signals[RedditSignal.source]
        twitter: TwitterSignal = signals[TwitterSignal.source]

        drivers = (reddit.themes[:2] + twitter.top_hashtags[:2])[:MAX_DRIVERS]
        concerns = reddit.pain_points[:2]

        metrics = {
            "overall_distribution": overall.to_dict(),
            "engagement_weighted_distribution": overall.to_dict(),
            "top_positive_drivers": drivers,
            "top_negative_concerns": concerns,
            "source_breakdown": {
                name: signal.breakdown.to_dict() for name, signal in signals.items()
            },
            "trend_delta": self._trend_delta(overall),
            "total_mentions": total_mentions,
        }

        summary = self._summary(clusters, overall, total_mentions)
        confidence = compute_confidence(len(clusters), total_mentions)

        logger.info(
            f"Aggregated sentiment for '{idea_text[:60]}': "
            f"clusters={len(clusters)} mentions={total_mentions} "
            f"confidence={confidence:.2f}"
        )

        return UnifiedSentiment(
            summary=summary,
            metrics=metrics,
            clusters=clusters,
            confidence=confidence,
            total_mentions=total_mentions,
            word_clouds={
                "positive": self._word_cloud(drivers),
                "negative": self._word_cloud(concerns),
            },
            charts=[self._donut_chart(overall)],
            trend_data=[],
            visuals_ready=True,
        )

    # ─────────────────────────────────────────────────────────────
    # Internal methods
    # ─────────────────────────────────────────────────────────────

    @staticmethod
    def _overall_distribution(clusters: list[Cluster]) -> SentimentBreakdown:
        contributing = [c for c in clusters if c.sentiment.total > 0]
        if not contributing:
            return SentimentBreakdown(0, 0, 0)

        count = len(contributing)
        return SentimentBreakdown(
            positive=round_half_up(sum(c.sentiment.positive for c in contributing) / count),
            neutral=round_half_up(sum(c.sentiment.neutral for c in contributing) / count),
            negative=round_half_up(sum(c.sentiment.negative for c in contributing) / count),
        )

    @staticmethod
    def _trend_delta(overall: SentimentBreakdown) -> str:
        sign = "+" if overall.positive > 50 else ""
        return f"{sign}{overall.positive - 50}% vs neutral"

    @staticmethod
    def _summary(
        clusters: list[Cluster],
        overall: SentimentBreakdown,
        total_mentions: int,
    ) -> str:
        if total_mentions <= 0:
            return LIMITED_DATA_SUMMARY

        summary = (
            f"Analyzed {total_mentions} mentions across {len(clusters)} platforms. "
            f"Sentiment is {describe_distribution(overall)}."
        )
        if clusters:
            summary += f" Key focus: {clusters[0].theme.lower()}."
        return summary

    @staticmethod
    def _word_cloud(words: list[str]) -> list[dict[str, Any]]:
        # Positional weights keep the output reproducible
        return [
            {"text": word, "value": 100 - index * 5}
            for index, word in enumerate(words[:MAX_WORD_CLOUD])
        ]

    @staticmethod
    def _donut_chart(overall: SentimentBreakdown) -> dict[str, Any]:
        return {
            "type": "donut",
            "title": "Overall Sentiment Distribution",
            "series": [
                {"name": "Positive", "value": overall.positive},
                {"name": "Neutral", "value": overall.neutral},
                {"name": "Negative", "value": overall.negative},
            ],
        }
