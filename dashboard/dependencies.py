"""
Dashboard API dependencies.
"""
from fastapi import Request

from tiles.service import TileService


def get_tile_service(request: Request) -> TileService:
    """The TileService built at startup."""
    return request.app.state.tile_service
