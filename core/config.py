"""
Core Module - Configuration.

============================================================
PURPOSE
============================================================
All configuration for the tile pipeline.

Values come from the environment (and a local .env file).
Invalid values fail fast with ConfigurationError, before any
source is contacted.

============================================================
"""

import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from core.exceptions import ConfigurationError


# ============================================================
# RETRY CONFIGURATION
# ============================================================

@dataclass
class RetryConfig:
    """
    Retry configuration for upstream calls.

    Bounded exponential backoff: with the defaults a failing
    call is attempted three times, waiting 1s then 2s.
    """

    max_retries: int = 2
    """Retries after the first attempt."""

    base_delay_seconds: float = 1.0
    """Delay before the first retry."""

    backoff_multiplier: float = 2.0
    """Exponential backoff multiplier."""

    max_delay_seconds: float = 30.0
    """Upper bound for a single delay."""

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after the given zero-based failed attempt."""
        delay = self.base_delay_seconds * (self.backoff_multiplier ** attempt)
        return min(delay, self.max_delay_seconds)


# ============================================================
# CIRCUIT BREAKER CONFIGURATION
# ============================================================

@dataclass
class CircuitBreakerConfig:
    """Per-source circuit breaker."""

    failure_threshold: int = 5
    """Consecutive failures before the circuit opens."""

    reset_timeout_seconds: float = 30.0
    """Time an open circuit waits before a trial call."""

    enabled: bool = True


# ============================================================
# CACHE CONFIGURATION
# ============================================================

@dataclass
class CacheConfig:
    """Two-tier tile cache settings."""

    ttl_minutes: int = 30
    """Freshness window for cached tiles."""

    key_prefix: str = "pmf.v2"
    """Versioned prefix for every cache key."""

    database_url: Optional[str] = "sqlite:///idea_signals.db"
    """SQLAlchemy URL of the durable tier. None disables it."""

    @property
    def ttl_seconds(self) -> int:
        return self.ttl_minutes * 60


# ============================================================
# SOURCE CONFIGURATION
# ============================================================

@dataclass
class SourceConfig:
    """Upstream fetcher settings."""

    functions_base_url: str = ""
    """Base URL of the hosted function endpoints."""

    functions_api_key: str = ""
    """Bearer key for the hosted functions."""

    timeout_seconds: float = 15.0
    """Per-source timeout. A timeout counts as failure."""

    demo_mode: bool = False
    """Use the randomized demo source instead of HTTP."""

    demo_seed: Optional[int] = None
    """Seed for reproducible demo data."""


# ============================================================
# LLM CONFIGURATION
# ============================================================

@dataclass
class LLMConfig:
    """Settings for the tile analysis pass."""

    api_key: str = ""
    base_url: str = "https://api.groq.com/openai/v1"
    model: str = "llama-3.3-70b-versatile"
    temperature: float = 0.3
    max_tokens: int = 2000
    timeout_seconds: float = 30.0

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)


# ============================================================
# APPLICATION CONFIGURATION
# ============================================================

@dataclass
class AppConfig:
    """Complete application configuration."""

    retry: RetryConfig = field(default_factory=RetryConfig)
    circuit_breaker: CircuitBreakerConfig = field(default_factory=CircuitBreakerConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    sources: SourceConfig = field(default_factory=SourceConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    log_level: str = "INFO"

    def validate(self) -> None:
        """Raise ConfigurationError on out-of-range values."""
        if self.retry.max_retries < 0:
            raise ConfigurationError(
                "max_retries must be >= 0",
                config_key="MAX_RETRIES",
                actual_value=self.retry.max_retries,
            )
        if self.retry.base_delay_seconds < 0:
            raise ConfigurationError(
                "base delay must be >= 0",
                config_key="RETRY_BASE_DELAY",
                actual_value=self.retry.base_delay_seconds,
            )
        if self.cache.ttl_minutes <= 0:
            raise ConfigurationError(
                "cache TTL must be positive",
                config_key="CACHE_TTL_MINUTES",
                actual_value=self.cache.ttl_minutes,
            )
        if self.sources.timeout_seconds <= 0:
            raise ConfigurationError(
                "source timeout must be positive",
                config_key="SOURCE_TIMEOUT_SECONDS",
                actual_value=self.sources.timeout_seconds,
            )

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "AppConfig":
        """Build configuration from the environment."""
        load_dotenv(env_file)

        database_url: Optional[str] = os.getenv("DATABASE_URL", CacheConfig.database_url)
        if database_url == "":
            database_url = None

        demo_seed = os.getenv("DEMO_SEED")

        config = cls(
            retry=RetryConfig(
                max_retries=_env_int("MAX_RETRIES", 2),
                base_delay_seconds=_env_float("RETRY_BASE_DELAY", 1.0),
            ),
            circuit_breaker=CircuitBreakerConfig(
                failure_threshold=_env_int("CIRCUIT_FAILURE_THRESHOLD", 5),
                reset_timeout_seconds=_env_float("CIRCUIT_RESET_SECONDS", 30.0),
            ),
            cache=CacheConfig(
                ttl_minutes=_env_int("CACHE_TTL_MINUTES", 30),
                database_url=database_url,
            ),
            sources=SourceConfig(
                functions_base_url=os.getenv("FUNCTIONS_BASE_URL", ""),
                functions_api_key=os.getenv("FUNCTIONS_API_KEY", ""),
                timeout_seconds=_env_float("SOURCE_TIMEOUT_SECONDS", 15.0),
                demo_mode=_env_bool("DEMO_MODE", False),
                demo_seed=int(demo_seed) if demo_seed and demo_seed.isdigit() else None,
            ),
            llm=LLMConfig(
                api_key=os.getenv("GROQ_API_KEY", ""),
                base_url=os.getenv("LLM_BASE_URL", LLMConfig.base_url),
                model=os.getenv("LLM_MODEL", LLMConfig.model),
            ),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
        config.validate()
        return config

    @classmethod
    def for_testing(cls) -> "AppConfig":
        """No delays, no durable tier, demo sources."""
        return cls(
            retry=RetryConfig(max_retries=2, base_delay_seconds=0.0),
            cache=CacheConfig(database_url=None),
            sources=SourceConfig(demo_mode=True, demo_seed=42, timeout_seconds=5.0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "max_retries": self.retry.max_retries,
            "retry_base_delay": self.retry.base_delay_seconds,
            "cache_ttl_minutes": self.cache.ttl_minutes,
            "durable_cache": self.cache.database_url is not None,
            "source_timeout_seconds": self.sources.timeout_seconds,
            "demo_mode": self.sources.demo_mode,
            "llm_enabled": self.llm.enabled,
            "log_level": self.log_level,
        }


# ============================================================
# ENVIRONMENT HELPERS
# ============================================================

def _env_int(key: str, default: int) -> int:
    raw = os.getenv(key)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(
            f"{key} must be an integer",
            config_key=key,
            actual_value=raw,
        )


def _env_float(key: str, default: float) -> float:
    raw = os.getenv(key)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(
            f"{key} must be a number",
            config_key=key,
            actual_value=raw,
        )


def _env_bool(key: str, default: bool) -> bool:
    raw = os.getenv(key)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")
