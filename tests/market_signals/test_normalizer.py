"""
Tests for the Tile Normalizer.

============================================================
PURPOSE
============================================================
Every upstream shape maps to one tile shape.

TEST PRINCIPLES:
- normalize() never raises
- metrics is never empty
- same input and same clock give the same output
- missing sentiment is derived from a score or neutral

============================================================
"""

from datetime import datetime, timezone

import pytest

from core.clock import MockClock
from market_signals.models import QueryContext, SentimentBreakdown
from market_signals.normalizer import (
    NEUTRAL_PLACEHOLDER,
    PLACEHOLDER_METRIC,
    TileNormalizer,
    pmf_band,
    sentiment_from_score,
)


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def clock():
    return MockClock(datetime(2025, 2, 1, 9, 30, tzinfo=timezone.utc))


@pytest.fixture
def normalizer(clock):
    return TileNormalizer(clock=clock)


@pytest.fixture
def context():
    return QueryContext("AI meal planner", "pmf_score", industry="food")


# ============================================================
# PMF SCORE
# ============================================================

class TestPmfScore:
    """Tests for the pmf_score strategy."""

    def test_strong_score(self, normalizer):
        """75 maps to Strong PMF with the strong sentiment split."""
        tile = normalizer.normalize("pmf_score", {"score": 75})

        assert tile.metrics[0].to_dict() == {
            "name": "PMF Score",
            "value": "75%",
            "confidence": 0.75,
            "explanation": "Strong PMF",
        }
        assert tile.sentiment == SentimentBreakdown(85, 10, 5)
        assert tile.items == []

    @pytest.mark.parametrize("score,label,sentiment", [
        (70, "Strong PMF", (85, 10, 5)),
        (69, "Moderate PMF", (60, 30, 10)),
        (40, "Moderate PMF", (60, 30, 10)),
        (39, "Needs Work", (30, 40, 30)),
    ])
    def test_band_edges(self, normalizer, score, label, sentiment):
        """Bands switch at 70 and 40."""
        tile = normalizer.normalize("pmf_score", {"data": {"score": score}})
        assert tile.metrics[0].explanation == label
        assert tile.sentiment == SentimentBreakdown(*sentiment)

    def test_missing_score_is_zero(self, normalizer):
        """No score reads as 0, which is Needs Work."""
        tile = normalizer.normalize("pmf_score", {})
        assert tile.metrics[0].value == "0%"
        assert pmf_band(0) == "weak"


# ============================================================
# GENERAL GUARANTEES
# ============================================================

class TestGuarantees:
    """Tests for the guarantees shared by every strategy."""

    def test_idempotent_with_fixed_clock(self, normalizer, context):
        """Same input, same clock: equal output."""
        raw = {"score": 55, "insights": ["Growing niche"]}
        first = normalizer.normalize("pmf_score", raw, filters=context)
        second = normalizer.normalize("pmf_score", raw, filters=context)
        assert first == second
        assert first.to_dict() == second.to_dict()

    @pytest.mark.parametrize("tile_type", TileNormalizer().tile_types + [
        "target_audience",
        "pricing_strategy",
        "something_new",
    ])
    def test_empty_response_gives_a_renderable_tile(self, normalizer, tile_type):
        """An empty object yields at least one metric and empty lists."""
        tile = normalizer.normalize(tile_type, {})

        assert len(tile.metrics) >= 1
        assert tile.items == []
        assert tile.insights == []
        assert tile.sentiment is not None

    @pytest.mark.parametrize("raw", [None, [], "oops", 42])
    def test_non_object_input_does_not_raise(self, normalizer, raw):
        """Garbage input falls back to defaults."""
        tile = normalizer.normalize("market_size", raw)
        assert len(tile.metrics) == 4

    def test_unknown_type_uses_placeholder_metric(self, normalizer):
        """Unknown type with no metrics gets the placeholder."""
        tile = normalizer.normalize("launch_timeline", {"insights": ["Q3 launch"]})
        assert tile.metrics == [PLACEHOLDER_METRIC]
        assert tile.insights == ["Q3 launch"]
        assert tile.sentiment == NEUTRAL_PLACEHOLDER

    def test_updated_at_from_payload(self, normalizer):
        """updatedAt in the payload wins over the clock."""
        tile = normalizer.normalize("web_search", {"updatedAt": "2025-01-15T10:00:00Z"})
        assert tile.updated_at == datetime(2025, 1, 15, 10, 0, tzinfo=timezone.utc)

    def test_updated_at_defaults_to_clock(self, normalizer, clock):
        """Without a timestamp the clock reading is used."""
        tile = normalizer.normalize("web_search", {"updatedAt": "not a date"})
        assert tile.updated_at == clock.now()


# ============================================================
# SENTIMENT FROM SCORE
# ============================================================

class TestSentimentFromScore:
    """Tests for deriving a breakdown from a scalar."""

    @pytest.mark.parametrize("score,expected", [
        (0, (0, 50, 50)),
        (30, (30, 50, 20)),
        (50, (50, 25, 25)),
        (65, (65, 17, 18)),
        (100, (100, 0, 0)),
        (150, (100, 0, 0)),
        (-10, (0, 50, 50)),
    ])
    def test_breakdown(self, score, expected):
        """Percentages for representative scores."""
        breakdown = sentiment_from_score(score)
        assert (breakdown.positive, breakdown.neutral, breakdown.negative) == expected
        assert breakdown.total == 100

    def test_sentiment_tile_uses_score(self, normalizer):
        """The sentiment tile derives its breakdown from score."""
        tile = normalizer.normalize("sentiment", {"score": 80, "confidence": "High"})
        assert tile.sentiment == SentimentBreakdown(80, 10, 10)
        assert tile.metrics[1].value == "High"

    def test_passthrough_score_fills_missing_sentiment(self, normalizer):
        """A scalar score on an unknown type still produces a breakdown."""
        tile = normalizer.normalize("user_engagement", {"score": 30})
        assert tile.sentiment == SentimentBreakdown(30, 50, 20)


# ============================================================
# SOURCE SHAPES
# ============================================================

class TestSourceShapes:
    """Tests for individual upstream shapes."""

    def test_market_size_currency(self, normalizer):
        """TAM/SAM/SOM render as currency."""
        tile = normalizer.normalize("market_size", {
            "data": {"tam": 2_500_000_000, "sam": 40_000_000, "som": 12_000},
        })
        values = [m.value for m in tile.metrics]
        assert values[:3] == ["$2.5B", "$40.0M", "$12K"]
        assert values[3] == "Medium"

    def test_competition_items_and_count(self, normalizer):
        """Competitors become items; Key Players counts them."""
        tile = normalizer.normalize("competition", {
            "competitors": [
                {"name": "Acme", "description": "Incumbent", "url": "https://acme.test"},
                "Globex",
            ],
            "level": "High",
        })
        assert [item.title for item in tile.items] == ["Acme", "Globex"]
        assert tile.metrics[0].value == "High"
        assert tile.metrics[1].value == 2

    def test_reddit_breakdown_and_subreddits(self, normalizer):
        """Reddit sentiment and subreddit links."""
        tile = normalizer.normalize("reddit_sentiment", {
            "data": {
                "mentions": 120,
                "sentiment": {"positive": 60, "neutral": 30, "negative": 10},
                "topSubreddits": ["r/startups", "r/SaaS"],
            },
        })
        assert tile.sentiment == SentimentBreakdown(60, 30, 10)
        assert tile.items[0].url == "https://reddit.com/r/startups"
        assert tile.metrics[0].value == 120

    def test_reddit_posts_with_non_string_body(self, normalizer):
        """A numeric or structured body keeps the rest of the tile."""
        tile = normalizer.normalize("reddit_sentiment", {
            "data": {
                "mentions": 2,
                "sentiment": {"positive": 50, "neutral": 25, "negative": 25},
                "samplePosts": [
                    {"title": "Numbers", "body": 12345},
                    {"title": "Nested", "body": {"html": "<p>hi</p>"}},
                ],
            },
        })
        assert [item.title for item in tile.items] == ["Numbers", "Nested"]
        assert [item.snippet for item in tile.items] == ["12345", ""]
        assert tile.sentiment == SentimentBreakdown(50, 25, 25)
        assert tile.metrics[0].name == "Mentions"

    def test_standard_shape_passthrough(self, normalizer):
        """Standard metrics/items/insights shapes are kept as-is."""
        raw = {
            "metrics": [{"name": "Audience", "value": "Founders", "confidence": 0.8}],
            "items": [{"title": "Survey", "snippet": "n=200", "url": "https://s.test"}],
            "insights": ["Early adopters are technical"],
            "chart": {"type": "bar"},
        }
        tile = normalizer.normalize("twitter_buzz", raw)
        assert tile.metrics[0].name == "Audience"
        assert tile.items[0].url == "https://s.test"
        assert tile.extras == {"chart": {"type": "bar"}}

    def test_news_articles_and_tone(self, normalizer):
        """News articles become items, citations and a tone breakdown."""
        tile = normalizer.normalize("news_analysis", {
            "articles": [
                {"title": "Up", "url": "https://n.test/1", "sentiment_score": 0.5, "source": {"name": "Wire"}},
                {"title": "Flat", "url": "https://n.test/2", "sentiment_score": 0},
            ],
        })
        assert tile.metrics[0].value == 2
        assert tile.items[0].source == "Wire"
        assert tile.citations[0].url == "https://n.test/1"
        assert tile.sentiment.positive == 50

    def test_unified_sentiment_envelope(self, normalizer):
        """The {sentiment: {...}} envelope is unwrapped."""
        tile = normalizer.normalize("unified_sentiment", {
            "sentiment": {
                "summary": "Mostly positive",
                "confidence": 0.75,
                "metrics": {
                    "overall_distribution": {"positive": 60, "neutral": 30, "negative": 10},
                    "total_mentions": 120,
                    "top_positive_drivers": ["Speed"],
                    "top_negative_concerns": [],
                },
                "clusters": [{"theme": "Community", "insight": "Active", "source": "reddit"}],
            },
        })
        assert tile.sentiment == SentimentBreakdown(60, 30, 10)
        assert tile.insights == ["Mostly positive", "Driver: Speed"]
        assert tile.metrics[3].value == "75%"
        assert tile.items[0].source == "reddit"
