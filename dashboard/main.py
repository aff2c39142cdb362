import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core.config import AppConfig
from core.exceptions import (
    ConfigurationError,
    ErrorResponse,
    IdeaSignalException,
    TotalFetchFailureError,
)
from dashboard.routers import health, sentiment, tiles
from tiles.service import TileService, build_service

logger = logging.getLogger(__name__)


def _status_for(exc: IdeaSignalException) -> int:
    if isinstance(exc, ConfigurationError):
        return 400
    if isinstance(exc, TotalFetchFailureError):
        return 503
    return 500


def create_app(service: Optional[TileService] = None) -> FastAPI:
    """
    Build the API. Without a service, one is built from the
    environment at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "tile_service", None) is None:
            app.state.tile_service = build_service(AppConfig.from_env())
        yield
        await app.state.tile_service.close()

    app = FastAPI(
        title="Idea Signal Dashboard API",
        description="Market signal tiles, blended sentiment and cache control for startup ideas.",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.tile_service = service

    # CORS (Allow local frontend development)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Restrict in production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(IdeaSignalException)
    async def handle_pipeline_error(request: Request, exc: IdeaSignalException):
        status = _status_for(exc)
        if status >= 500:
            logger.error(f"{request.url.path} failed: {exc}")
        return JSONResponse(
            status_code=status,
            content=ErrorResponse.from_exception(exc).to_dict(),
        )

    # Include Routers
    app.include_router(tiles.router)
    app.include_router(sentiment.router)
    app.include_router(health.router)

    @app.get("/")
    def root():
        return {"status": "ok", "message": "Idea Signal Dashboard API is running"}

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
