"""
Core Module Package.

Shared infrastructure the other packages depend on.

Components:
- clock: Unified time abstraction
- config: Environment-driven configuration
- exceptions: Errors raised to the presentation layer
"""

from .clock import ClockProtocol, MockClock, SystemClock, get_clock, set_clock
from .config import (
    AppConfig,
    CacheConfig,
    CircuitBreakerConfig,
    LLMConfig,
    RetryConfig,
    SourceConfig,
)
from .exceptions import (
    CacheError,
    ConfigurationError,
    ErrorResponse,
    IdeaSignalException,
    MissingConfigError,
    TotalFetchFailureError,
)

__all__ = [
    "AppConfig",
    "CacheConfig",
    "CacheError",
    "CircuitBreakerConfig",
    "ClockProtocol",
    "ConfigurationError",
    "ErrorResponse",
    "IdeaSignalException",
    "LLMConfig",
    "MissingConfigError",
    "MockClock",
    "RetryConfig",
    "SourceConfig",
    "SystemClock",
    "TotalFetchFailureError",
    "get_clock",
    "set_clock",
]
