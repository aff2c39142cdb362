from typing import Optional

from fastapi import APIRouter, Depends, Query

from dashboard.dependencies import get_tile_service
from dashboard.schemas import CacheStatsResponse, ClearIdeaResponse, SourceHealthResponse
from tiles.service import TileService

router = APIRouter(tags=["Health & Cache"])


@router.get("/health/sources", response_model=SourceHealthResponse)
def get_source_health(service: TileService = Depends(get_tile_service)):
    """
    Per-function health of the registered signal sources.
    """
    data = service.get_health()
    data["incidents"] = service.registry.get_incidents(limit=20)
    return SourceHealthResponse(success=True, data=data)


@router.get("/cache/stats", response_model=CacheStatsResponse)
def get_cache_stats(service: TileService = Depends(get_tile_service)):
    return CacheStatsResponse(success=True, data=service.get_cache_stats())


@router.delete("/cache/idea", response_model=ClearIdeaResponse)
async def clear_idea_cache(
    idea_text: str = Query(..., min_length=1),
    user_id: Optional[str] = None,
    service: TileService = Depends(get_tile_service),
):
    """
    Drop every cached tile for one idea.
    """
    removed = await service.clear_idea(idea_text, user_id=user_id)
    return ClearIdeaResponse(success=True, removed=removed)
