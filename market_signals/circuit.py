"""
Circuit Breaker - Stop hammering a source that keeps failing.

CLOSED     normal operation, failures are counted
OPEN       calls refused locally until the reset timeout passes
HALF_OPEN  one trial call; success closes, failure reopens
"""

import logging
from enum import Enum
from typing import Any, Optional

from core.clock import ClockProtocol, get_clock


logger = logging.getLogger(__name__)


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Per-source circuit breaker driven by consecutive failures."""

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        reset_timeout_seconds: float = 30.0,
        clock: Optional[ClockProtocol] = None,
    ) -> None:
        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout_seconds = reset_timeout_seconds
        self._clock = clock or get_clock()

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_ts: Optional[float] = None

    @property
    def state(self) -> CircuitState:
        """Current state; an expired OPEN circuit reports HALF_OPEN."""
        if self._state == CircuitState.OPEN and self._reset_timeout_elapsed():
            self._state = CircuitState.HALF_OPEN
            logger.info(f"[{self.name}] Circuit half-open")
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    def allow_request(self) -> bool:
        return self.state != CircuitState.OPEN

    def record_success(self) -> None:
        if self._state == CircuitState.HALF_OPEN:
            logger.info(f"[{self.name}] Trial call succeeded, closing circuit")
        self._state = CircuitState.CLOSED
        self._failure_count = 0

    def record_failure(self) -> None:
        self._failure_count += 1
        self._last_failure_ts = self._clock.timestamp()

        if self._state == CircuitState.HALF_OPEN:
            self._state = CircuitState.OPEN
            logger.warning(f"[{self.name}] Trial call failed, reopening circuit")
        elif self._failure_count >= self.failure_threshold:
            if self._state != CircuitState.OPEN:
                logger.warning(
                    f"[{self.name}] Circuit opened after "
                    f"{self._failure_count} consecutive failures"
                )
            self._state = CircuitState.OPEN

    def _reset_timeout_elapsed(self) -> bool:
        if self._last_failure_ts is None:
            return True
        elapsed = self._clock.timestamp() - self._last_failure_ts
        return elapsed >= self.reset_timeout_seconds

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "failure_count": self._failure_count,
            "failure_threshold": self.failure_threshold,
            "reset_timeout_seconds": self.reset_timeout_seconds,
        }
