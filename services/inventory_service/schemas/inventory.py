"""Inventory request/response schemas."""

import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from services.inventory_service.models import AttributeType, ItemHistoryAction

# ---------------------------------------------------------------------------
# Containers
# ---------------------------------------------------------------------------


class ContainerBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    parent_container_id: Optional[uuid.UUID] = None


class ContainerCreate(ContainerBase):
    pass


class ContainerUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    parent_container_id: Optional[uuid.UUID] = None


class ContainerResponse(ContainerBase):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    created_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class ContainerWithCount(ContainerResponse):
    item_count: int = 0


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


class AttributeDefinition(BaseModel):
    name: str = Field(..., min_length=1, max_length=50, pattern=r"^[a-z][a-z0-9_]*$")
    type: AttributeType
    label: str = Field(..., min_length=1)
    required: bool = False
    options: Optional[list[str]] = None
    default_value: Optional[Any] = None

    @model_validator(mode="after")
    def check_options(self):
        if self.type == AttributeType.SELECT and not self.options:
            raise ValueError(f"Select attribute '{self.name}' needs options")
        return self


def _unique_attribute_names(v):
    if v is not None:
        names = [a.name for a in v]
        if len(names) != len(set(names)):
            raise ValueError("Attribute names must be unique")
    return v


class CategoryBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = Field(None, max_length=500)
    available_attributes: list[AttributeDefinition] = Field(default_factory=list)

    @field_validator("available_attributes")
    @classmethod
    def unique_names(cls, v: list[AttributeDefinition]) -> list[AttributeDefinition]:
        return _unique_attribute_names(v)


class CategoryCreate(CategoryBase):
    pass


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    description: Optional[str] = Field(None, max_length=500)
    available_attributes: Optional[list[AttributeDefinition]] = None

    @field_validator("available_attributes")
    @classmethod
    def unique_names(cls, v):
        return _unique_attribute_names(v)


class CategoryResponse(CategoryBase):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    created_at: datetime
    updated_at: datetime


class CategoryWithCount(CategoryResponse):
    item_count: int = 0


# ---------------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------------


class ItemCreate(BaseModel):
    container_id: uuid.UUID
    category_id: uuid.UUID
    attributes: dict[str, Any] = Field(default_factory=dict)
    quantity: int = Field(1, ge=1)
    notes: Optional[str] = Field(None, max_length=1000)
    out_for_maintenance: bool = False
    photo_url: Optional[str] = None


class ItemUpdate(BaseModel):
    container_id: Optional[uuid.UUID] = None
    category_id: Optional[uuid.UUID] = None
    attributes: Optional[dict[str, Any]] = None
    quantity: Optional[int] = Field(None, ge=1)
    notes: Optional[str] = Field(None, max_length=1000)
    out_for_maintenance: Optional[bool] = None
    photo_url: Optional[str] = None


class ItemMove(BaseModel):
    container_id: uuid.UUID
    notes: Optional[str] = Field(None, max_length=1000)


class ItemMaintenance(BaseModel):
    out_for_maintenance: bool
    notes: Optional[str] = Field(None, max_length=1000)


class ContainerRef(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    parent_container_id: Optional[uuid.UUID] = None


class CategoryRef(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str


class ItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    container_id: uuid.UUID
    category_id: uuid.UUID
    attributes: dict[str, Any]
    quantity: int
    notes: Optional[str] = None
    out_for_maintenance: bool
    photo_url: Optional[str] = None
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    container: Optional[ContainerRef] = None
    category: Optional[CategoryRef] = None


class ItemListResponse(BaseModel):
    items: list[ItemResponse]
    total: int
    page: int
    limit: int


class ContainerDetail(ContainerResponse):
    children: list[ContainerResponse] = Field(default_factory=list)
    items: list[ItemResponse] = Field(default_factory=list)


class FilterOptions(BaseModel):
    categories: list[CategoryRef]
    containers: list[ContainerRef]


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


class ItemHistoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    item_id: uuid.UUID
    action: ItemHistoryAction
    old_container_id: Optional[uuid.UUID] = None
    new_container_id: Optional[uuid.UUID] = None
    changes: Optional[dict[str, Any]] = None
    notes: Optional[str] = None
    performed_by: Optional[str] = None
    created_at: datetime
