"""
Tile Cache - Two-tier cache for normalized tile payloads.

- EphemeralStore: in-process map with lazy TTL expiry
- SqlDurableStore: per-user rows in a SQLAlchemy database
- TileCacheLayer: read-through / write-through over both, with a
  request-id staleness guard
"""

from .durable import SqlDurableStore
from .engine import CacheDatabase, create_cache_engine
from .entry import CacheEntry
from .keys import KEY_PREFIX, derive_key, normalize_idea
from .layer import TileCacheLayer
from .memory import EphemeralStore
from .models import Base, DashboardData

__all__ = [
    "Base",
    "CacheDatabase",
    "CacheEntry",
    "DashboardData",
    "EphemeralStore",
    "KEY_PREFIX",
    "SqlDurableStore",
    "TileCacheLayer",
    "create_cache_engine",
    "derive_key",
    "normalize_idea",
]
