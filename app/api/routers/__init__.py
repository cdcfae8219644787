"""
app/api/routers package marker.
"""

from app.api.routers.freshness import router as freshness_router

__all__ = [
    "freshness_router",
]
