"""
Core Module - Clock.

============================================================
RESPONSIBILITY
============================================================
Single time source for cache expiry and tile timestamps.

- Cache TTL checks read time through this clock
- Tests swap in MockClock to expire entries deterministically
- UTC only

============================================================
"""

import threading
import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional


# ============================================================
# CLOCK PROTOCOL
# ============================================================

class ClockProtocol(ABC):
    """Abstract interface for the application clock."""

    @abstractmethod
    def now(self) -> datetime:
        """Get current UTC datetime."""
        pass

    @abstractmethod
    def timestamp(self) -> float:
        """Get current Unix timestamp."""
        pass

    @staticmethod
    def parse_iso(iso_string: str) -> datetime:
        """Parse ISO 8601 string to an aware UTC datetime."""
        if iso_string.endswith("Z"):
            iso_string = iso_string[:-1] + "+00:00"
        parsed = datetime.fromisoformat(iso_string)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed


# ============================================================
# SYSTEM CLOCK (PRODUCTION)
# ============================================================

class SystemClock(ClockProtocol):
    """Production clock using actual system time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def timestamp(self) -> float:
        return time.time()


# ============================================================
# MOCK CLOCK (TESTING)
# ============================================================

class MockClock(ClockProtocol):
    """
    Mock clock for testing.

    Time only moves when advance() is called.
    """

    def __init__(self, initial_time: Optional[datetime] = None):
        self._time = initial_time or datetime(2025, 1, 1, tzinfo=timezone.utc)
        if self._time.tzinfo is None:
            self._time = self._time.replace(tzinfo=timezone.utc)
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._time

    def timestamp(self) -> float:
        with self._lock:
            return self._time.timestamp()

    def advance(self, seconds: float = 0, **kwargs) -> None:
        """
        Advance time by the specified amount.

        Args:
            seconds: Number of seconds to advance
            **kwargs: Passed to timedelta (minutes, hours, ...)
        """
        with self._lock:
            self._time = self._time + timedelta(seconds=seconds, **kwargs)


# ============================================================
# DEFAULT CLOCK
# ============================================================

_default_clock: ClockProtocol = SystemClock()


def get_clock() -> ClockProtocol:
    """Get the process-wide default clock."""
    return _default_clock


def set_clock(clock: ClockProtocol) -> None:
    """Replace the process-wide default clock."""
    global _default_clock
    _default_clock = clock
