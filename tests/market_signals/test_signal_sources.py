"""
Tests for Signal Sources, Circuit Breaker and Registry.

============================================================
PURPOSE
============================================================
Upstream fetching must be bounded and non-blocking.

TEST PRINCIPLES:
- Retries are bounded: 1s then 2s, then the error surfaces
- Rate limits and rejected credentials are never retried
- A failing function trips its own circuit only
- Fan-out absorbs individual failures as None
- No real network calls (aiohttp session is mocked)

============================================================
"""

import asyncio
from typing import Any, Callable, Optional
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from core.clock import MockClock
from core.config import CircuitBreakerConfig, LLMConfig, RetryConfig
from core.exceptions import MissingConfigError, TotalFetchFailureError
from market_signals.base import BaseSignalSource
from market_signals.circuit import CircuitBreaker, CircuitState
from market_signals.exceptions import (
    AuthenticationError,
    CircuitOpenError,
    FetchError,
    ParseError,
    RateLimitError,
    SourceUnavailableError,
    UpstreamError,
)
from market_signals.models import SignalRequest, SourceMetadata, SourceStatus
from market_signals.parsers import RedditSignal
from market_signals.providers import (
    DemoSignalSource,
    EdgeFunctionSource,
    TileAnalyzer,
    extract_json_text,
    safe_json_loads,
)
from market_signals.registry import SignalRegistry, unified_sentiment_requests


# ============================================================
# FIXTURES
# ============================================================

class FakeSource(BaseSignalSource):
    """Source whose transport is a plain callable."""

    def __init__(self, handler: Callable[[str, dict], Any], name: str = "fake", **kwargs):
        super().__init__(**kwargs)
        self.handler = handler
        self.name = name
        self.calls: list[str] = []

    @property
    def metadata(self) -> SourceMetadata:
        return SourceMetadata(name=self.name, display_name=self.name.title())

    async def _invoke_raw(self, function_name: str, body: dict[str, Any]) -> Any:
        self.calls.append(function_name)
        result = self.handler(function_name, body)
        if asyncio.iscoroutine(result):
            result = await result
        return result


def failing(error: Exception):
    def handler(function_name, body):
        raise error
    return handler


def flaky(failures: int, result: Any):
    """Fails `failures` times, then returns `result`."""
    state = {"left": failures}

    def handler(function_name, body):
        if state["left"] > 0:
            state["left"] -= 1
            raise FetchError("temporary", source_name=function_name, status_code=503)
        return result
    return handler


@pytest.fixture
def clock():
    return MockClock()


@pytest.fixture
def no_sleep():
    with patch("market_signals.base.asyncio.sleep", new_callable=AsyncMock) as sleep:
        yield sleep


def mock_response(status: int = 200, json_data: Any = None, text: str = "", headers=None):
    response = MagicMock()
    response.status = status
    response.headers = headers or {}
    response.text = AsyncMock(return_value=text)
    if isinstance(json_data, Exception):
        response.json = AsyncMock(side_effect=json_data)
    else:
        response.json = AsyncMock(return_value=json_data)

    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=response)
    context.__aexit__ = AsyncMock(return_value=False)
    return context


def mock_session(context) -> MagicMock:
    session = MagicMock()
    session.closed = False
    session.post = MagicMock(return_value=context)
    session.close = AsyncMock()
    return session


# ============================================================
# RETRY BEHAVIOR
# ============================================================

class TestRetry:
    """Tests for BaseSignalSource retry handling."""

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failures(self, clock, no_sleep):
        """Two failures, then success on the third attempt."""
        source = FakeSource(flaky(2, {"ok": True}), clock=clock)

        result = await source.invoke("market-size", {})

        assert result == {"ok": True}
        assert len(source.calls) == 3
        assert [c.args[0] for c in no_sleep.await_args_list] == [1.0, 2.0]
        assert source.get_stats()["retries"] == 2
        assert source.get_health()["market-size"].status == SourceStatus.HEALTHY

    @pytest.mark.asyncio
    async def test_raises_last_error_when_exhausted(self, clock, no_sleep):
        """Three attempts, then the last error."""
        source = FakeSource(flaky(10, None), clock=clock)

        with pytest.raises(FetchError):
            await source.invoke("market-size", {})

        assert len(source.calls) == 3
        health = source.get_health()["market-size"]
        assert health.status == SourceStatus.DEGRADED
        assert health.consecutive_failures == 1

    @pytest.mark.asyncio
    async def test_rate_limit_not_retried(self, clock, no_sleep):
        """429 surfaces immediately."""
        source = FakeSource(failing(RateLimitError("slow down")), clock=clock)

        with pytest.raises(RateLimitError):
            await source.invoke("twitter-search", {})

        assert len(source.calls) == 1
        no_sleep.assert_not_awaited()
        assert source.get_health()["twitter-search"].status == SourceStatus.RATE_LIMITED

    @pytest.mark.asyncio
    async def test_authentication_not_retried(self, clock, no_sleep):
        """Rejected credentials surface immediately."""
        source = FakeSource(failing(AuthenticationError("bad key")), clock=clock)

        with pytest.raises(AuthenticationError):
            await source.invoke("market-size", {})

        assert len(source.calls) == 1
        no_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unexpected_exception_wrapped(self, clock, no_sleep):
        """Non-source exceptions become FetchError."""
        source = FakeSource(failing(KeyError("boom")), clock=clock)

        with pytest.raises(FetchError) as exc_info:
            await source.invoke("market-size", {})

        assert "Unexpected error" in str(exc_info.value)


# ============================================================
# CIRCUIT BREAKER
# ============================================================

class TestCircuitBreaker:
    """Tests for CircuitBreaker."""

    def test_opens_after_threshold(self, clock):
        """Five consecutive failures open the circuit."""
        breaker = CircuitBreaker("fn", failure_threshold=5, clock=clock)
        for _ in range(4):
            breaker.record_failure()
        assert breaker.state == CircuitState.CLOSED

        breaker.record_failure()
        assert breaker.state == CircuitState.OPEN
        assert breaker.allow_request() is False

    def test_half_open_after_reset_timeout(self, clock):
        """An open circuit allows one trial after 30s."""
        breaker = CircuitBreaker("fn", failure_threshold=1, reset_timeout_seconds=30, clock=clock)
        breaker.record_failure()

        clock.advance(29)
        assert breaker.state == CircuitState.OPEN

        clock.advance(1)
        assert breaker.state == CircuitState.HALF_OPEN
        assert breaker.allow_request() is True

    def test_trial_failure_reopens(self, clock):
        """A failed trial call reopens immediately."""
        breaker = CircuitBreaker("fn", failure_threshold=1, clock=clock)
        breaker.record_failure()
        clock.advance(30)
        assert breaker.state == CircuitState.HALF_OPEN

        breaker.record_failure()
        assert breaker.state == CircuitState.OPEN

    def test_success_closes_and_resets_count(self, clock):
        """Success clears the failure count."""
        breaker = CircuitBreaker("fn", failure_threshold=3, clock=clock)
        breaker.record_failure()
        breaker.record_failure()
        breaker.record_success()
        assert breaker.failure_count == 0
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_source_circuit_is_per_function(self, clock):
        """One failing function does not block another."""
        def handler(function_name, body):
            if function_name == "market-size":
                raise FetchError("down", source_name=function_name)
            return {"ok": True}

        source = FakeSource(handler, clock=clock, retry=RetryConfig(max_retries=0))

        for _ in range(5):
            with pytest.raises(FetchError):
                await source.invoke("market-size", {})

        with pytest.raises(CircuitOpenError):
            await source.invoke("market-size", {})
        assert source.calls.count("market-size") == 5
        assert await source.invoke("sentiment", {}) == {"ok": True}
        assert source.get_health()["market-size"].status == SourceStatus.CIRCUIT_OPEN

    @pytest.mark.asyncio
    async def test_source_circuit_recovers(self, clock):
        """After the reset timeout a successful trial closes the circuit."""
        handler = flaky(5, {"ok": True})
        source = FakeSource(handler, clock=clock, retry=RetryConfig(max_retries=0))

        for _ in range(5):
            with pytest.raises(FetchError):
                await source.invoke("market-size", {})

        clock.advance(30)
        assert await source.invoke("market-size", {}) == {"ok": True}
        assert source.get_stats()["circuits"]["market-size"]["state"] == "closed"

    @pytest.mark.asyncio
    async def test_disabled_circuit_never_opens(self, clock):
        """enabled=False keeps calling through."""
        source = FakeSource(
            failing(FetchError("down")),
            clock=clock,
            retry=RetryConfig(max_retries=0),
            circuit=CircuitBreakerConfig(enabled=False),
        )
        for _ in range(8):
            with pytest.raises(FetchError):
                await source.invoke("market-size", {})
        assert len(source.calls) == 8


# ============================================================
# HOSTED FUNCTION SOURCE
# ============================================================

class TestEdgeFunctionSource:
    """Tests for EdgeFunctionSource with a mocked aiohttp session."""

    @pytest.fixture
    def source(self, clock):
        return EdgeFunctionSource(
            "https://project.functions.test/",
            api_key="secret",
            retry=RetryConfig(max_retries=0),
            clock=clock,
        )

    @pytest.mark.asyncio
    async def test_success_posts_json_with_auth(self, source):
        """200 returns the decoded body."""
        session = mock_session(mock_response(200, {"score": 72}, text='{"score": 72}'))
        source._session = session

        result = await source.invoke("smoothbrains-score", {"idea": "AI meal planner"})

        assert result == {"score": 72}
        args, kwargs = session.post.call_args
        assert args[0] == "https://project.functions.test/functions/v1/smoothbrains-score"
        assert kwargs["json"] == {"idea": "AI meal planner"}
        assert kwargs["headers"]["Authorization"] == "Bearer secret"
        assert kwargs["headers"]["apikey"] == "secret"

    @pytest.mark.asyncio
    async def test_429_raises_rate_limit(self, source):
        """Retry-After is parsed."""
        source._session = mock_session(mock_response(429, headers={"Retry-After": "12"}))

        with pytest.raises(RateLimitError) as exc_info:
            await source.invoke("twitter-search", {})

        assert exc_info.value.retry_after_seconds == 12

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 403])
    async def test_auth_failure(self, source, status):
        """401/403 raise AuthenticationError."""
        source._session = mock_session(mock_response(status))
        with pytest.raises(AuthenticationError):
            await source.invoke("market-size", {})

    @pytest.mark.asyncio
    async def test_server_error(self, source):
        """Other non-200 statuses raise FetchError with the status."""
        source._session = mock_session(mock_response(502, text="bad gateway"))

        with pytest.raises(FetchError) as exc_info:
            await source.invoke("market-size", {})

        assert exc_info.value.status_code == 502
        assert exc_info.value.details["response"] == "bad gateway"

    @pytest.mark.asyncio
    async def test_invalid_json(self, source):
        """Undecodable body raises ParseError."""
        source._session = mock_session(
            mock_response(200, ValueError("Expecting value"), text="<html>")
        )
        with pytest.raises(ParseError) as exc_info:
            await source.invoke("market-size", {})
        assert exc_info.value.raw_data == "<html>"

    @pytest.mark.asyncio
    async def test_error_payload(self, source):
        """A 200 carrying an error field raises UpstreamError."""
        source._session = mock_session(
            mock_response(200, {"error": "quota", "message": "Quota exceeded"})
        )
        with pytest.raises(UpstreamError, match="Quota exceeded"):
            await source.invoke("market-size", {})

    @pytest.mark.asyncio
    async def test_network_error(self, source):
        """aiohttp.ClientError becomes FetchError."""
        session = mock_session(None)
        session.post = MagicMock(side_effect=aiohttp.ClientConnectionError("refused"))
        source._session = session

        with pytest.raises(FetchError, match="Network error"):
            await source.invoke("market-size", {})

    @pytest.mark.asyncio
    async def test_close(self, source):
        """close() closes the session."""
        session = mock_session(None)
        source._session = session
        await source.close()
        session.close.assert_awaited_once()
        assert source._session is None


# ============================================================
# DEMO SOURCE
# ============================================================

class TestDemoSource:
    """Tests for the randomized demo source."""

    @pytest.mark.asyncio
    async def test_seeded_output_is_reproducible(self):
        """Same seed, same payloads."""
        first = DemoSignalSource(seed=7)
        second = DemoSignalSource(seed=7)

        for function_name in ("reddit-sentiment", "smoothbrains-score", "dashboard-insights"):
            assert await first.invoke(function_name, {"idea": "x"}) == \
                await second.invoke(function_name, {"idea": "x"})

    @pytest.mark.asyncio
    async def test_reddit_shape_parses(self):
        """Demo Reddit payload feeds the Reddit parser."""
        raw = await DemoSignalSource(seed=1).invoke("reddit-sentiment", {"idea": "x"})
        signal = RedditSignal.parse(raw)
        assert signal.volume > 0
        assert signal.breakdown.total == 100

    @pytest.mark.asyncio
    async def test_failure_rate(self):
        """failure_rate=1 always fails."""
        source = DemoSignalSource(seed=3, failure_rate=1.0, retry=RetryConfig(max_retries=0))
        with pytest.raises(FetchError) as exc_info:
            await source.invoke("market-size", {})
        assert exc_info.value.status_code == 503

    def test_metadata(self):
        """Demo source is flagged as such."""
        assert DemoSignalSource().metadata.is_demo is True


# ============================================================
# LLM ANALYZER
# ============================================================

class TestTileAnalyzer:
    """Tests for JSON extraction and the analysis call."""

    def test_extract_fenced_json(self):
        """Fenced JSON is pulled out."""
        raw = 'Here you go:\n```json\n{"a": 1}\n```\nThanks'
        assert extract_json_text(raw) == '{"a": 1}'

    def test_safe_json_loads_trailing_comma(self):
        """Trailing commas are tolerated."""
        assert safe_json_loads('{"a": [1, 2,],}') == {"a": [1, 2]}

    def test_safe_json_loads_garbage(self):
        """No JSON gives None."""
        assert safe_json_loads("no json here") is None

    @pytest.mark.asyncio
    async def test_disabled_without_key(self):
        """No API key raises MissingConfigError."""
        analyzer = TileAnalyzer(LLMConfig())
        assert analyzer.enabled is False
        with pytest.raises(MissingConfigError):
            await analyzer.analyze("pmf_score", {}, "idea")

    @pytest.mark.asyncio
    async def test_analyze_fills_defaults(self):
        """Missing list keys default to []."""
        analyzer = TileAnalyzer(LLMConfig(api_key="gsk_test"))
        content = '```json\n{"marketInterpretation": "Promising"}\n```'
        session = mock_session(mock_response(200, {
            "choices": [{"message": {"content": content}}],
        }))
        analyzer._session = session

        analysis = await analyzer.analyze("pmf_score", {"metrics": []}, "AI meal planner")

        assert analysis["marketInterpretation"] == "Promising"
        assert analysis["keyInsights"] == []
        assert analysis["pmfSignals"]["overallAssessment"] == ""
        args, kwargs = session.post.call_args
        assert args[0].endswith("/chat/completions")
        assert "AI meal planner" in kwargs["json"]["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_analyze_non_json_answer(self):
        """Prose answer raises ParseError."""
        analyzer = TileAnalyzer(LLMConfig(api_key="gsk_test"))
        analyzer._session = mock_session(mock_response(200, {
            "choices": [{"message": {"content": "I cannot help with that"}}],
        }))
        with pytest.raises(ParseError):
            await analyzer.analyze("pmf_score", {}, "idea")


# ============================================================
# REGISTRY
# ============================================================

class TestRegistry:
    """Tests for SignalRegistry fan-out."""

    @pytest.fixture
    def reddit_payload(self):
        return {"totalPosts": 50, "positive": 70, "neutral": 20, "negative": 10}

    @pytest.mark.asyncio
    async def test_fan_out_absorbs_failures(self, clock, reddit_payload):
        """Failed slots become None; the rest succeed."""
        def handler(function_name, body):
            if function_name == "reddit-sentiment":
                return reddit_payload
            raise FetchError("down", source_name=function_name)

        registry = SignalRegistry(clock=clock)
        registry.register(FakeSource(handler, clock=clock, retry=RetryConfig(max_retries=0)))

        results = await registry.fan_out(unified_sentiment_requests("AI meal planner"))

        assert results["reddit"] == reddit_payload
        assert results["twitter"] is None
        assert results["youtube"] is None
        assert results["news"] is None
        assert registry.get_stats()["partial_fanouts"] == 1
        assert len(registry.get_incidents()) == 3

    @pytest.mark.asyncio
    async def test_request_bodies(self):
        """Per-source bodies use each function's field names."""
        requests = unified_sentiment_requests("meal kits")
        assert requests["reddit"].body == {"idea": "meal kits", "timeWindow": "week"}
        assert requests["youtube"].body == {"idea_text": "meal kits", "time_window": "week"}
        assert requests["news"].function_name == "gdelt-news"

    @pytest.mark.asyncio
    async def test_timeout_counts_as_failure(self, clock):
        """A slow source is cut off and recorded."""
        async def slow(function_name, body):
            await asyncio.sleep(5)
            return {}

        registry = SignalRegistry(source_timeout=0.05, clock=clock)
        registry.register(FakeSource(slow, clock=clock))

        with pytest.raises(FetchError, match="timed out"):
            await registry.fetch_one(SignalRequest("market-size", {"idea": "x"}))

        incident = registry.get_incidents()[-1]
        assert incident["incident_type"] == "timeout"
        assert incident["request_params"] == {"idea": "x"}

    @pytest.mark.asyncio
    async def test_no_source_registered(self, clock):
        """An empty registry refuses permanently."""
        registry = SignalRegistry(clock=clock)
        with pytest.raises(SourceUnavailableError) as exc_info:
            await registry.fetch_one(SignalRequest("market-size"))
        assert exc_info.value.is_permanent is True

    @pytest.mark.asyncio
    async def test_unified_sentiment_requires_any(self, clock):
        """All sources failing raises when require_any is set."""
        registry = SignalRegistry(clock=clock)
        registry.register(FakeSource(
            failing(FetchError("down")), clock=clock, retry=RetryConfig(max_retries=0),
        ))

        empty = await registry.get_unified_sentiment("idea")
        assert empty.total_mentions == 0

        with pytest.raises(TotalFetchFailureError) as exc_info:
            await registry.get_unified_sentiment("idea", require_any=True)
        assert exc_info.value.tile_type == "unified_sentiment"
        assert registry.get_stats()["failed_fanouts"] == 2

    @pytest.mark.asyncio
    async def test_incident_log_is_bounded(self, clock):
        """Only the last 100 incidents are kept."""
        registry = SignalRegistry(clock=clock)
        registry.register(FakeSource(
            failing(FetchError("down")),
            clock=clock,
            retry=RetryConfig(max_retries=0),
            circuit=CircuitBreakerConfig(enabled=False),
        ))

        for _ in range(105):
            with pytest.raises(FetchError):
                await registry.fetch_one(SignalRequest("market-size"))

        assert registry.get_stats()["recent_incidents"] == 100
        assert len(registry.get_incidents(limit=500)) == 100

    @pytest.mark.asyncio
    async def test_health_summary(self, clock):
        """Health is reported per source and function."""
        registry = SignalRegistry(clock=clock)
        registry.register(DemoSignalSource(seed=1, clock=clock))
        await registry.fetch_one(SignalRequest("market-size", {"idea": "x"}))

        summary = registry.get_health_summary()
        assert summary["registered_sources"] == ["demo"]
        assert summary["functions"] == {"demo:market-size": "healthy"}
        assert summary["health_pct"] == 100.0
