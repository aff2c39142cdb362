"""Cache entry shared by both tiers."""

from dataclasses import dataclass, replace
from datetime import datetime

from market_signals.models import NormalizedTileData


@dataclass(frozen=True)
class CacheEntry:
    """
    One cached tile payload.

    Valid while ``now - stored_at < ttl``. `tier` records which store
    answered the read.
    """
    key: str
    payload: NormalizedTileData
    stored_at: datetime
    request_id: int = 0
    tier: str = "ephemeral"
    tile_type: str = ""
    idea_key: str = ""

    def age_seconds(self, now: datetime) -> float:
        return (now - self.stored_at).total_seconds()

    def is_expired(self, now: datetime, ttl_seconds: float) -> bool:
        return self.age_seconds(now) >= ttl_seconds

    def from_tier(self, tier: str) -> "CacheEntry":
        return replace(self, tier=tier)
