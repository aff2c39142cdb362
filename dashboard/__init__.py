"""
Dashboard API - FastAPI surface over the tile service.
"""
