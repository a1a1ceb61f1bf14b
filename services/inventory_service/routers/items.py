"""Inventory item and history endpoints."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.inventory_service.routers._deps import (
    require_inventory_manager,
    require_inventory_reader,
)
from services.inventory_service.schemas import (
    FilterOptions,
    ItemCreate,
    ItemHistoryResponse,
    ItemListResponse,
    ItemMaintenance,
    ItemMove,
    ItemResponse,
    ItemUpdate,
)
from services.inventory_service.services import history_ops, item_ops
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/inventory", tags=["inventory"])


@router.get("/items", response_model=ItemListResponse)
async def list_items(
    search: Optional[str] = None,
    category_id: Optional[uuid.UUID] = None,
    container_id: Optional[uuid.UUID] = None,
    out_for_maintenance: Optional[bool] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    _user: AuthUser = Depends(require_inventory_reader),
    db: AsyncSession = Depends(get_async_db),
):
    items, total = await item_ops.list_items(
        db,
        search=search,
        category_id=category_id,
        container_id=container_id,
        out_for_maintenance=out_for_maintenance,
        page=page,
        limit=limit,
    )
    return ItemListResponse(
        items=[ItemResponse.model_validate(i) for i in items],
        total=total,
        page=page,
        limit=limit,
    )


@router.get("/items/filter-options", response_model=FilterOptions)
async def get_filter_options(
    _user: AuthUser = Depends(require_inventory_reader),
    db: AsyncSession = Depends(get_async_db),
):
    return await item_ops.get_filter_options(db)


@router.get("/items/{item_id}", response_model=ItemResponse)
async def get_item(
    item_id: uuid.UUID,
    _user: AuthUser = Depends(require_inventory_reader),
    db: AsyncSession = Depends(get_async_db),
):
    return await item_ops.get_item(db, item_id)


@router.post("/items", response_model=ItemResponse, status_code=status.HTTP_201_CREATED)
async def create_item(
    payload: ItemCreate,
    current_user: AuthUser = Depends(require_inventory_manager),
    db: AsyncSession = Depends(get_async_db),
):
    return await item_ops.create_item(db, payload, actor_id=current_user.user_id)


@router.patch("/items/{item_id}", response_model=ItemResponse)
async def update_item(
    item_id: uuid.UUID,
    changes: ItemUpdate,
    current_user: AuthUser = Depends(require_inventory_manager),
    db: AsyncSession = Depends(get_async_db),
):
    return await item_ops.update_item(db, item_id, changes, actor_id=current_user.user_id)


@router.post("/items/{item_id}/move", response_model=ItemResponse)
async def move_to_container(
    item_id: uuid.UUID,
    payload: ItemMove,
    current_user: AuthUser = Depends(require_inventory_manager),
    db: AsyncSession = Depends(get_async_db),
):
    return await item_ops.move_to_container(
        db,
        item_id,
        payload.container_id,
        actor_id=current_user.user_id,
        notes=payload.notes,
    )


@router.post("/items/{item_id}/maintenance", response_model=ItemResponse)
async def mark_maintenance(
    item_id: uuid.UUID,
    payload: ItemMaintenance,
    current_user: AuthUser = Depends(require_inventory_manager),
    db: AsyncSession = Depends(get_async_db),
):
    return await item_ops.mark_maintenance(
        db,
        item_id,
        payload.out_for_maintenance,
        actor_id=current_user.user_id,
        notes=payload.notes,
    )


@router.delete("/items/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_item(
    item_id: uuid.UUID,
    _manager: AuthUser = Depends(require_inventory_manager),
    db: AsyncSession = Depends(get_async_db),
):
    await item_ops.delete_item(db, item_id)


@router.get("/items/{item_id}/history", response_model=list[ItemHistoryResponse])
async def get_item_history(
    item_id: uuid.UUID,
    limit: int = Query(20, ge=1, le=100),
    _user: AuthUser = Depends(require_inventory_reader),
    db: AsyncSession = Depends(get_async_db),
):
    return await history_ops.get_item_history(db, item_id, limit=limit)


@router.get("/history", response_model=list[ItemHistoryResponse])
async def get_recent_history(
    limit: int = Query(50, ge=1, le=200),
    _user: AuthUser = Depends(require_inventory_reader),
    db: AsyncSession = Depends(get_async_db),
):
    return await history_ops.get_recent_history(db, limit=limit)
