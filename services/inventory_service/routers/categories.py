"""Equipment category endpoints."""

import uuid

from fastapi import APIRouter, Depends, status
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.inventory_service.routers._deps import (
    require_inventory_manager,
    require_inventory_reader,
)
from services.inventory_service.schemas import (
    CategoryCreate,
    CategoryResponse,
    CategoryUpdate,
    CategoryWithCount,
)
from services.inventory_service.services import category_ops
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/inventory/categories", tags=["inventory"])


@router.get("", response_model=list[CategoryWithCount])
async def list_categories(
    _user: AuthUser = Depends(require_inventory_reader),
    db: AsyncSession = Depends(get_async_db),
):
    rows = await category_ops.list_categories(db)
    return [
        CategoryWithCount(
            **CategoryResponse.model_validate(row["category"]).model_dump(),
            item_count=row["item_count"],
        )
        for row in rows
    ]


@router.get("/{category_id}", response_model=CategoryResponse)
async def get_category(
    category_id: uuid.UUID,
    _user: AuthUser = Depends(require_inventory_reader),
    db: AsyncSession = Depends(get_async_db),
):
    return await category_ops.get_category(db, category_id)


@router.post("", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
async def create_category(
    payload: CategoryCreate,
    _manager: AuthUser = Depends(require_inventory_manager),
    db: AsyncSession = Depends(get_async_db),
):
    return await category_ops.create_category(db, payload)


@router.patch("/{category_id}", response_model=CategoryResponse)
async def update_category(
    category_id: uuid.UUID,
    changes: CategoryUpdate,
    _manager: AuthUser = Depends(require_inventory_manager),
    db: AsyncSession = Depends(get_async_db),
):
    return await category_ops.update_category(db, category_id, changes)


@router.delete("/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_category(
    category_id: uuid.UUID,
    _manager: AuthUser = Depends(require_inventory_manager),
    db: AsyncSession = Depends(get_async_db),
):
    await category_ops.delete_category(db, category_id)
