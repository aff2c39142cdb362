"""
Tiles - fetch, refresh and analyze orchestration for dashboard tiles.
"""

from .routing import TILE_ROUTES, TILE_TYPES, TileRoute, is_known_tile, route_for
from .service import TileService, build_service

__all__ = [
    "TILE_ROUTES",
    "TILE_TYPES",
    "TileRoute",
    "TileService",
    "build_service",
    "is_known_tile",
    "route_for",
]
