from fastapi import APIRouter, Depends

from dashboard.dependencies import get_tile_service
from dashboard.schemas import SentimentRequest, SentimentResponse
from tiles.service import TileService

router = APIRouter(prefix="/sentiment", tags=["Sentiment"])


@router.post("/unified", response_model=SentimentResponse)
async def unified_sentiment(
    body: SentimentRequest,
    service: TileService = Depends(get_tile_service),
):
    """
    Blended Reddit, Twitter, YouTube and news sentiment for an idea.
    """
    sentiment = await service.unified_sentiment(body.idea_text)
    return SentimentResponse(success=True, data=sentiment.to_dict())
