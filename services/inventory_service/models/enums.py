"""Enum definitions for inventory service models."""

import enum


def enum_values(enum_cls):
    """Return persistent DB values for SAEnum mappings."""
    return [member.value for member in enum_cls]


class ItemHistoryAction(str, enum.Enum):
    CREATED = "created"
    MOVED = "moved"
    UPDATED = "updated"
    MAINTENANCE_OUT = "maintenance_out"
    MAINTENANCE_IN = "maintenance_in"


class AttributeType(str, enum.Enum):
    TEXT = "text"
    SELECT = "select"
    NUMBER = "number"
    BOOLEAN = "boolean"
