"""
Tests for the Dashboard API.

============================================================
PURPOSE
============================================================
HTTP surface over the tile service.

TEST PRINCIPLES:
- Configuration problems are 400, total failure is 503
- Error bodies carry a retry hint
- Demo sources only, no network

============================================================
"""

import pytest
from fastapi.testclient import TestClient

from core.clock import MockClock
from core.config import AppConfig, RetryConfig
from dashboard.main import create_app
from market_signals.providers import DemoSignalSource
from market_signals.registry import SignalRegistry
from tile_cache import TileCacheLayer
from tiles import TileService, build_service


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def clock():
    return MockClock()


@pytest.fixture
def client(clock):
    service = build_service(AppConfig.for_testing(), clock=clock)
    return TestClient(create_app(service))


@pytest.fixture
def failing_client(clock):
    registry = SignalRegistry(clock=clock)
    registry.register(DemoSignalSource(
        seed=1,
        failure_rate=1.0,
        retry=RetryConfig(max_retries=0),
        clock=clock,
    ))
    service = TileService(registry, TileCacheLayer(clock=clock), clock=clock)
    return TestClient(create_app(service))


# ============================================================
# TILES
# ============================================================

class TestTileRoutes:
    """Tests for /tiles endpoints."""

    def test_fetch(self, client):
        """Fetch returns the normalized tile."""
        response = client.post("/tiles/pmf_score/fetch", json={"idea_text": "AI meal planner"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["tile_type"] == "pmf_score"
        assert body["from_cache"] is False
        assert body["data"]["metrics"][0]["name"] == "PMF Score"

    def test_second_fetch_from_cache(self, client):
        """The repeat fetch is served from cache."""
        payload = {"idea_text": "AI meal planner", "industry": "food"}
        client.post("/tiles/market_size/fetch", json=payload)

        response = client.post("/tiles/market_size/fetch", json=payload)
        assert response.json()["from_cache"] is True

    def test_refresh(self, client):
        """Refresh always fetches fresh data."""
        payload = {"idea_text": "AI meal planner"}
        client.post("/tiles/sentiment/fetch", json=payload)

        response = client.post("/tiles/sentiment/refresh", json=payload)
        assert response.status_code == 200
        assert response.json()["from_cache"] is False

    def test_unknown_tile_is_400(self, client):
        """Unknown tile types are client errors."""
        response = client.post("/tiles/horoscope/fetch", json={"idea_text": "x"})

        assert response.status_code == 400
        assert response.json()["error_type"] == "ConfigurationError"
        assert response.json()["retryable"] is False

    def test_blank_idea_is_400(self, client):
        """Blank ideas never reach the sources."""
        response = client.post("/tiles/pmf_score/fetch", json={"idea_text": "   "})
        assert response.status_code == 400

    def test_bad_time_window_is_400(self, client):
        """Unknown time windows are rejected."""
        response = client.post(
            "/tiles/news_analysis/fetch",
            json={"idea_text": "x", "time_window": "fortnight"},
        )
        assert response.status_code == 400

    def test_analyze_without_key_is_400(self, client):
        """Analysis needs an LLM key."""
        response = client.post("/tiles/pmf_score/analyze", json={"idea_text": "x"})

        assert response.status_code == 400
        assert "GROQ_API_KEY" in response.json()["error"]

    def test_total_failure_is_503(self, failing_client):
        """Every function failing is a retryable 503."""
        response = failing_client.post("/tiles/competition/fetch", json={"idea_text": "x"})

        assert response.status_code == 503
        assert response.json() == {
            "error": "Cannot fetch data for this tile right now. Please retry.",
            "retryable": True,
            "error_type": "TotalFetchFailureError",
        }


# ============================================================
# SENTIMENT, HEALTH, CACHE
# ============================================================

class TestOtherRoutes:
    """Tests for sentiment, health and cache endpoints."""

    def test_unified_sentiment(self, client):
        """Blended sentiment from the demo sources."""
        response = client.post("/sentiment/unified", json={"idea_text": "AI meal planner"})

        assert response.status_code == 200
        data = response.json()["data"]
        assert len(data["clusters"]) == 4
        assert 0.3 <= data["confidence"] <= 0.95

    def test_unified_sentiment_total_failure(self, failing_client):
        """No source answering is a 503."""
        response = failing_client.post("/sentiment/unified", json={"idea_text": "x"})
        assert response.status_code == 503

    def test_source_health_lists_incidents(self, failing_client):
        """Health shows failing functions and their incidents."""
        failing_client.post("/tiles/pmf_score/fetch", json={"idea_text": "x"})

        response = failing_client.get("/health/sources")

        data = response.json()["data"]
        assert data["functions"] == {"demo:smoothbrains-score": "degraded"}
        assert data["incidents"][0]["source_name"] == "smoothbrains-score"

    def test_cache_stats_and_clear(self, client):
        """Stats count writes; clearing an idea removes its tiles."""
        client.post("/tiles/pmf_score/fetch", json={"idea_text": "AI meal planner"})
        client.post("/tiles/market_size/fetch", json={"idea_text": "AI meal planner"})

        stats = client.get("/cache/stats").json()["data"]
        assert stats["writes"] == 2
        assert stats["entries"] == 2

        response = client.delete("/cache/idea", params={"idea_text": "AI meal planner"})
        assert response.json()["removed"] == 2
        assert client.get("/cache/stats").json()["data"]["entries"] == 0

    def test_root(self, client):
        """Root reports the API is up."""
        assert client.get("/").json()["status"] == "ok"
