"""
Tests for Core Configuration, Clock and Exceptions.

============================================================
PURPOSE
============================================================
- Retry delays follow the bounded backoff schedule
- Environment loading (python-dotenv) and fail-fast validation
- Mock clock behavior used by cache expiry tests
- User-facing error payloads

============================================================
"""

import os
from datetime import datetime, timedelta, timezone

import pytest

from core.clock import MockClock, SystemClock, get_clock, set_clock
from core.config import AppConfig, CacheConfig, RetryConfig
from core.exceptions import (
    CacheError,
    ConfigurationError,
    ErrorResponse,
    MissingConfigError,
    Severity,
    TotalFetchFailureError,
)


ENV_KEYS = (
    "FUNCTIONS_BASE_URL",
    "FUNCTIONS_API_KEY",
    "GROQ_API_KEY",
    "LLM_BASE_URL",
    "LLM_MODEL",
    "DATABASE_URL",
    "CACHE_TTL_MINUTES",
    "SOURCE_TIMEOUT_SECONDS",
    "MAX_RETRIES",
    "RETRY_BASE_DELAY",
    "LOG_LEVEL",
    "DEMO_MODE",
    "DEMO_SEED",
    "CIRCUIT_FAILURE_THRESHOLD",
    "CIRCUIT_RESET_SECONDS",
)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Empty environment and an empty .env file."""
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    env_file = tmp_path / ".env"
    env_file.write_text("")
    yield env_file
    # load_dotenv writes straight into os.environ
    for key in ENV_KEYS:
        os.environ.pop(key, None)


# ============================================================
# RETRY CONFIG
# ============================================================

class TestRetryConfig:
    """Tests for the backoff schedule."""

    def test_default_delays_are_one_then_two_seconds(self):
        """Two retries, waiting 1s then 2s."""
        config = RetryConfig()
        assert config.max_retries == 2
        assert [config.delay_for(a) for a in range(config.max_retries)] == [1.0, 2.0]

    def test_delay_is_capped(self):
        """A single delay never exceeds max_delay_seconds."""
        config = RetryConfig(base_delay_seconds=10, max_delay_seconds=15)
        assert config.delay_for(3) == 15


# ============================================================
# APP CONFIG
# ============================================================

class TestAppConfig:
    """Tests for environment loading."""

    def test_defaults(self, clean_env):
        """Unset variables fall back to defaults."""
        config = AppConfig.from_env(str(clean_env))

        assert config.cache.ttl_minutes == 30
        assert config.cache.ttl_seconds == 1800
        assert config.sources.timeout_seconds == 15.0
        assert config.retry.max_retries == 2
        assert config.cache.database_url == CacheConfig.database_url
        assert config.llm.enabled is False
        assert config.log_level == "INFO"

    def test_reads_values_from_env_file(self, clean_env):
        """Values in the .env file are loaded."""
        clean_env.write_text(
            "FUNCTIONS_BASE_URL=https://functions.example.com\n"
            "GROQ_API_KEY=gsk_test\n"
            "CACHE_TTL_MINUTES=10\n"
            "DEMO_MODE=true\n"
            "DEMO_SEED=7\n"
        )
        config = AppConfig.from_env(str(clean_env))

        assert config.sources.functions_base_url == "https://functions.example.com"
        assert config.llm.enabled is True
        assert config.cache.ttl_minutes == 10
        assert config.sources.demo_mode is True
        assert config.sources.demo_seed == 7

    def test_empty_database_url_disables_durable_tier(self, clean_env, monkeypatch):
        """DATABASE_URL='' means no durable tier."""
        monkeypatch.setenv("DATABASE_URL", "")
        config = AppConfig.from_env(str(clean_env))
        assert config.cache.database_url is None
        assert config.to_dict()["durable_cache"] is False

    def test_invalid_number_raises(self, clean_env, monkeypatch):
        """Non-numeric values fail fast."""
        monkeypatch.setenv("MAX_RETRIES", "lots")
        with pytest.raises(ConfigurationError) as exc_info:
            AppConfig.from_env(str(clean_env))
        assert exc_info.value.context["config_key"] == "MAX_RETRIES"

    def test_out_of_range_ttl_raises(self, clean_env, monkeypatch):
        """A zero TTL is rejected by validate()."""
        monkeypatch.setenv("CACHE_TTL_MINUTES", "0")
        with pytest.raises(ConfigurationError):
            AppConfig.from_env(str(clean_env))

    def test_for_testing_profile(self):
        """Test profile: no delays, no durable tier, seeded demo data."""
        config = AppConfig.for_testing()
        assert config.retry.base_delay_seconds == 0.0
        assert config.cache.database_url is None
        assert config.sources.demo_mode is True
        assert config.sources.demo_seed == 42


# ============================================================
# CLOCK
# ============================================================

class TestClock:
    """Tests for the clock abstraction."""

    def test_mock_clock_only_moves_when_advanced(self):
        """Time is frozen until advance()."""
        clock = MockClock()
        start = clock.now()
        assert clock.now() == start

        clock.advance(minutes=30)
        assert clock.now() - start == timedelta(minutes=30)

    def test_mock_clock_makes_naive_times_utc(self):
        """Naive datetimes are treated as UTC."""
        clock = MockClock(datetime(2025, 6, 1, 12, 0))
        assert clock.now().tzinfo == timezone.utc

    def test_parse_iso_accepts_z_suffix(self):
        """Trailing Z parses as UTC."""
        parsed = SystemClock.parse_iso("2025-03-04T05:06:07Z")
        assert parsed == datetime(2025, 3, 4, 5, 6, 7, tzinfo=timezone.utc)

    def test_set_clock_replaces_default(self):
        """set_clock swaps the process-wide clock."""
        original = get_clock()
        mock = MockClock()
        try:
            set_clock(mock)
            assert get_clock() is mock
        finally:
            set_clock(original)


# ============================================================
# EXCEPTIONS
# ============================================================

class TestExceptions:
    """Tests for the error taxonomy."""

    def test_configuration_error_is_not_retryable(self):
        """Configuration problems need a changed request."""
        error = ConfigurationError("bad", config_key="idea_text", actual_value="")
        assert error.severity == Severity.HIGH
        assert error.is_retryable is False

    def test_missing_config_names_the_key(self):
        """MissingConfigError carries the key."""
        error = MissingConfigError("GROQ_API_KEY")
        assert "GROQ_API_KEY" in str(error)
        assert error.context["config_key"] == "GROQ_API_KEY"

    def test_total_failure_is_retryable_with_user_message(self):
        """Total failure offers a manual retry."""
        cause = ValueError("upstream down")
        error = TotalFetchFailureError(
            "All functions failed",
            tile_type="pmf_score",
            sources_tried=["smoothbrains-score"],
            last_error=cause,
        )

        response = ErrorResponse.from_exception(error).to_dict()

        assert response == {
            "error": "Cannot fetch data for this tile right now. Please retry.",
            "retryable": True,
            "error_type": "TotalFetchFailureError",
        }
        assert error.context["sources_tried"] == ["smoothbrains-score"]
        assert error.context["cause_type"] == "ValueError"

    def test_cache_error_is_low_severity(self):
        """Cache failures are recoverable."""
        error = CacheError("disk full")
        assert error.severity == Severity.LOW
        assert error.to_dict()["retryable"] is True
