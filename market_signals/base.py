"""
Base Signal Source - Abstract interface for all upstream fetchers.

A source answers `invoke(function_name, body)` with the raw JSON of
one upstream function, or raises. Retry with bounded exponential
backoff, the per-function circuit breaker, health and statistics
live here so adapters only implement the transport.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from core.clock import ClockProtocol, get_clock
from core.config import CircuitBreakerConfig, RetryConfig

from .circuit import CircuitBreaker, CircuitState
from .exceptions import (
    AuthenticationError,
    CircuitOpenError,
    FetchError,
    RateLimitError,
    SignalSourceError,
)
from .models import SourceHealth, SourceMetadata, SourceStatus


logger = logging.getLogger(__name__)


class BaseSignalSource(ABC):
    """
    Abstract base class for signal sources.

    DESIGN PRINCIPLES:
    1. BOUNDED - at most max_retries retries, delays 1s, 2s, ...
    2. NO RETRY on rate limits or rejected credentials
    3. RAISE - the last error surfaces once retries run out
    4. ISOLATED - one circuit breaker per upstream function

    All subclasses must implement:
    - _invoke_raw() - one transport call
    - metadata - Source metadata property
    """

    UNAVAILABLE_AFTER_FAILURES = 3

    def __init__(
        self,
        retry: Optional[RetryConfig] = None,
        circuit: Optional[CircuitBreakerConfig] = None,
        clock: Optional[ClockProtocol] = None,
    ) -> None:
        self.retry = retry or RetryConfig()
        self.circuit = circuit or CircuitBreakerConfig()
        self._clock = clock or get_clock()

        self._breakers: dict[str, CircuitBreaker] = {}
        self._health: dict[str, SourceHealth] = {}

        # Statistics
        self._stats = {
            "total_requests": 0,
            "successful_fetches": 0,
            "retries": 0,
            "errors": 0,
            "rate_limits_hit": 0,
            "circuit_rejections": 0,
        }

    @property
    @abstractmethod
    def metadata(self) -> SourceMetadata:
        """Return source metadata."""
        pass

    @abstractmethod
    async def _invoke_raw(self, function_name: str, body: dict[str, Any]) -> Any:
        """
        One call to an upstream function.

        Must be implemented by subclasses. Returns decoded JSON and
        raises a SignalSourceError subclass on failure.
        """
        pass

    def supports(self, function_name: str) -> bool:
        """Whether this source can serve the given function."""
        return True

    # ─────────────────────────────────────────────────────────────
    # Public API
    # ─────────────────────────────────────────────────────────────

    async def invoke(self, function_name: str, body: dict[str, Any]) -> Any:
        """
        Call an upstream function with retry and circuit breaking.

        Raises:
            CircuitOpenError: the function's circuit is open
            RateLimitError, AuthenticationError: immediately, no retry
            SignalSourceError: the last error after all retries
        """
        self._stats["total_requests"] += 1
        breaker = self._breaker(function_name)

        if not breaker.allow_request():
            self._stats["circuit_rejections"] += 1
            health = self._health_for(function_name)
            health.status = SourceStatus.CIRCUIT_OPEN
            raise CircuitOpenError(
                f"Circuit open for {function_name}",
                source_name=function_name,
            )

        try:
            result = await self._invoke_with_retry(function_name, body)
        except SignalSourceError:
            breaker.record_failure()
            if breaker.state == CircuitState.OPEN:
                self._health_for(function_name).status = SourceStatus.CIRCUIT_OPEN
            raise

        breaker.record_success()
        self._stats["successful_fetches"] += 1
        return result

    def get_health(self) -> dict[str, SourceHealth]:
        """Health per upstream function seen so far."""
        now = self._clock.now()
        for health in self._health.values():
            health.last_check = now
        return dict(self._health)

    def get_stats(self) -> dict[str, Any]:
        """Get source statistics."""
        total = self._stats["total_requests"]
        error_rate = self._stats["errors"] / total * 100 if total > 0 else 0
        return {
            **self._stats,
            "error_rate_pct": round(error_rate, 2),
            "source_name": self.metadata.name,
            "circuits": {name: b.to_dict() for name, b in self._breakers.items()},
        }

    async def close(self) -> None:
        """Cleanup resources. Override if needed."""
        pass

    # ─────────────────────────────────────────────────────────────
    # Internal methods
    # ─────────────────────────────────────────────────────────────

    async def _invoke_with_retry(self, function_name: str, body: dict[str, Any]) -> Any:
        """Invoke with bounded exponential backoff."""
        last_error: Optional[SignalSourceError] = None
        health = self._health_for(function_name)
        start = self._clock.timestamp()

        for attempt in range(self.retry.max_retries + 1):
            try:
                result = await self._invoke_raw(function_name, body)

                health.latency_ms = (self._clock.timestamp() - start) * 1000
                health.status = SourceStatus.HEALTHY
                health.consecutive_failures = 0
                health.requests_today += 1
                return result

            except RateLimitError as e:
                logger.warning(f"[{function_name}] Rate limit hit: {e}")
                health.status = SourceStatus.RATE_LIMITED
                self._stats["rate_limits_hit"] += 1
                self._record_failure(health, e)
                raise

            except AuthenticationError as e:
                logger.error(f"[{function_name}] Authentication rejected: {e}")
                self._record_failure(health, e)
                raise

            except SignalSourceError as e:
                last_error = e
                logger.warning(
                    f"[{function_name}] Fetch error (attempt {attempt + 1}): {e}"
                )

            except asyncio.TimeoutError:
                last_error = FetchError(
                    f"{function_name} timed out",
                    source_name=function_name,
                )
                logger.warning(
                    f"[{function_name}] Timed out (attempt {attempt + 1})"
                )

            except Exception as e:
                last_error = FetchError(
                    f"Unexpected error: {e}",
                    source_name=function_name,
                )
                logger.error(
                    f"[{function_name}] Unexpected error (attempt {attempt + 1}): {e}"
                )

            if attempt < self.retry.max_retries:
                self._stats["retries"] += 1
                await asyncio.sleep(self.retry.delay_for(attempt))

        self._record_failure(health, last_error)
        raise last_error

    def _record_failure(self, health: SourceHealth, error: Optional[Exception]) -> None:
        self._stats["errors"] += 1
        health.consecutive_failures += 1
        health.error_count += 1
        health.last_error = str(error)
        health.last_error_time = self._clock.now()

        if health.status == SourceStatus.RATE_LIMITED:
            return
        if health.consecutive_failures >= self.UNAVAILABLE_AFTER_FAILURES:
            health.status = SourceStatus.UNAVAILABLE
        else:
            health.status = SourceStatus.DEGRADED

    def _breaker(self, function_name: str) -> CircuitBreaker:
        if function_name not in self._breakers:
            threshold = self.circuit.failure_threshold if self.circuit.enabled else float("inf")
            self._breakers[function_name] = CircuitBreaker(
                name=function_name,
                failure_threshold=threshold,
                reset_timeout_seconds=self.circuit.reset_timeout_seconds,
                clock=self._clock,
            )
        return self._breakers[function_name]

    def _health_for(self, function_name: str) -> SourceHealth:
        if function_name not in self._health:
            self._health[function_name] = SourceHealth(
                status=SourceStatus.UNKNOWN,
                last_check=self._clock.now(),
            )
        return self._health[function_name]
