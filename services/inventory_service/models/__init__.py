"""Inventory Service models package."""

from services.inventory_service.models.enums import (  # noqa: F401
    AttributeType,
    ItemHistoryAction,
)
from services.inventory_service.models.inventory import (  # noqa: F401
    Category,
    Container,
    Item,
    ItemHistory,
)

__all__ = [
    "AttributeType",
    "Category",
    "Container",
    "Item",
    "ItemHistory",
    "ItemHistoryAction",
]
