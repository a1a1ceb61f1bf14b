"""Inventory Service schemas package."""

from services.inventory_service.schemas.inventory import (  # noqa: F401
    AttributeDefinition,
    CategoryCreate,
    CategoryRef,
    CategoryResponse,
    CategoryUpdate,
    CategoryWithCount,
    ContainerCreate,
    ContainerDetail,
    ContainerRef,
    ContainerResponse,
    ContainerUpdate,
    ContainerWithCount,
    FilterOptions,
    ItemCreate,
    ItemHistoryResponse,
    ItemListResponse,
    ItemMaintenance,
    ItemMove,
    ItemResponse,
    ItemUpdate,
)
