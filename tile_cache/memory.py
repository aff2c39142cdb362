"""
Ephemeral Store - In-process key/value tier.

Expiry is lazy: an expired entry is reported as a miss by `get` but
stays in the map until it is overwritten or deleted. There is no
sweeper.
"""

import logging
from typing import Optional

from core.clock import ClockProtocol, get_clock

from .entry import CacheEntry


logger = logging.getLogger(__name__)


class EphemeralStore:
    """Per-process tile cache with a fixed TTL."""

    def __init__(
        self,
        ttl_seconds: float = 30 * 60,
        clock: Optional[ClockProtocol] = None,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock or get_clock()
        self._entries: dict[str, CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def get(self, key: str) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock.now(), self.ttl_seconds):
            logger.debug(f"[ephemeral] Expired entry for {key}")
            return None
        return entry

    def peek(self, key: str) -> Optional[CacheEntry]:
        """Raw lookup, ignoring expiry."""
        return self._entries.get(key)

    def put(self, entry: CacheEntry) -> None:
        self._entries[entry.key] = entry

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def delete_idea(self, idea_key: str) -> int:
        doomed = [k for k, e in self._entries.items() if e.idea_key == idea_key]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def clear(self) -> None:
        self._entries.clear()
