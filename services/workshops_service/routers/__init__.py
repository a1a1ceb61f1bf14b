"""Workshops service routers package."""

from services.workshops_service.routers.refunds import router as refunds_router
from services.workshops_service.routers.registrations import (
    router as registrations_router,
)
from services.workshops_service.routers.workshops import router as workshops_router

__all__ = [
    "workshops_router",
    "registrations_router",
    "refunds_router",
]
