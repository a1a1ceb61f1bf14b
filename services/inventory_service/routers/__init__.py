"""Inventory service routers package."""

from services.inventory_service.routers.categories import router as categories_router
from services.inventory_service.routers.containers import router as containers_router
from services.inventory_service.routers.items import router as items_router

__all__ = [
    "containers_router",
    "categories_router",
    "items_router",
]
