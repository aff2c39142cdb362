"""
Dashboard API Routers.
"""
from . import health, sentiment, tiles

__all__ = ["health", "sentiment", "tiles"]
