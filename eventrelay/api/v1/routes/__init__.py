"""
API v1 routes package.
Event relay management and ingestion routes.
"""

from .health_routes import router as health_router
from .event_routes import router as event_router
from .destination_routes import router as destination_router
from .transformation_routes import router as transformation_router
from .route_routes import router as route_router
from .integration_routes import router as integration_router

__all__ = [
    "health_router",
    "event_router",
    "destination_router",
    "transformation_router",
    "route_router",
    "integration_router"
]
