from fastapi import APIRouter, Depends

from dashboard.dependencies import get_tile_service
from dashboard.schemas import AnalysisResponse, ErrorBody, TileRequest, TileResponse
from market_signals.models import QueryContext
from tiles.service import TileService

router = APIRouter(prefix="/tiles", tags=["Tiles"])

ERROR_RESPONSES = {
    400: {"model": ErrorBody, "description": "Unknown tile type or invalid filters"},
    503: {"model": ErrorBody, "description": "Every upstream function failed"},
}


def _context(tile_type: str, body: TileRequest) -> QueryContext:
    return QueryContext(
        idea_text=body.idea_text,
        tile_type=tile_type,
        industry=body.industry,
        geography=body.geography,
        time_window=body.time_window,
    )


@router.post("/{tile_type}/fetch", response_model=TileResponse, responses=ERROR_RESPONSES)
async def fetch_tile(
    tile_type: str,
    body: TileRequest,
    service: TileService = Depends(get_tile_service),
):
    """
    Cached tile data when fresh, otherwise fetched and cached.
    """
    tile = await service.fetch(
        _context(tile_type, body),
        user_id=body.user_id,
        session_id=body.session_id,
    )
    return TileResponse(
        success=True,
        tile_type=tile_type,
        from_cache=tile.from_cache,
        data=tile.to_dict(),
    )


@router.post("/{tile_type}/refresh", response_model=TileResponse, responses=ERROR_RESPONSES)
async def refresh_tile(
    tile_type: str,
    body: TileRequest,
    service: TileService = Depends(get_tile_service),
):
    """
    Invalidate the cached tile, then fetch fresh data.
    """
    tile = await service.refresh(
        _context(tile_type, body),
        user_id=body.user_id,
        session_id=body.session_id,
    )
    return TileResponse(success=True, tile_type=tile_type, data=tile.to_dict())


@router.post("/{tile_type}/analyze", response_model=AnalysisResponse, responses=ERROR_RESPONSES)
async def analyze_tile(
    tile_type: str,
    body: TileRequest,
    service: TileService = Depends(get_tile_service),
):
    """
    LLM strategic analysis over the tile's data.
    """
    analysis = await service.analyze(_context(tile_type, body), user_id=body.user_id)
    return AnalysisResponse(success=True, tile_type=tile_type, data=analysis)
