"""
Pydantic schemas for Dashboard API requests and responses.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

# =======================
# COMMON
# =======================

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BaseResponse(BaseModel):
    success: bool
    message: Optional[str] = None
    timestamp: datetime = Field(default_factory=_utcnow)


class ErrorBody(BaseModel):
    error: str
    retryable: bool
    error_type: str

# =======================
# 1. TILES
# =======================

class TileRequest(BaseModel):
    idea_text: str
    industry: Optional[str] = None
    geography: Optional[str] = None
    time_window: Optional[str] = None
    user_id: Optional[str] = None
    session_id: Optional[str] = None


class TileResponse(BaseResponse):
    tile_type: str
    from_cache: bool = False
    data: Dict[str, Any]


class AnalysisResponse(BaseResponse):
    tile_type: str
    data: Dict[str, Any]

# =======================
# 2. SENTIMENT
# =======================

class SentimentRequest(BaseModel):
    idea_text: str


class SentimentResponse(BaseResponse):
    data: Dict[str, Any]

# =======================
# 3. HEALTH & CACHE
# =======================

class SourceHealthResponse(BaseResponse):
    data: Dict[str, Any]


class CacheStatsResponse(BaseResponse):
    data: Dict[str, Any]


class ClearIdeaResponse(BaseResponse):
    removed: int
