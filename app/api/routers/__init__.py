"""
app/api/routers package marker.
"""

from app.api.routers.entities import router as entities_router
from app.api.routers.massive_import import router as massive_import_router

__all__ = [
    "entities_router",
    "massive_import_router",
]
