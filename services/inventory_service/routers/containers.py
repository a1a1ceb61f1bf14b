"""Container endpoints."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, status
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.inventory_service.routers._deps import (
    require_inventory_manager,
    require_inventory_reader,
)
from services.inventory_service.schemas import (
    ContainerCreate,
    ContainerDetail,
    ContainerResponse,
    ContainerUpdate,
    ContainerWithCount,
    ItemResponse,
)
from services.inventory_service.services import container_ops
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/inventory/containers", tags=["inventory"])


@router.get("", response_model=list[ContainerWithCount])
async def list_containers(
    _user: AuthUser = Depends(require_inventory_reader),
    db: AsyncSession = Depends(get_async_db),
):
    rows = await container_ops.list_containers(db)
    return [
        ContainerWithCount(
            **ContainerResponse.model_validate(row["container"]).model_dump(),
            item_count=row["item_count"],
        )
        for row in rows
    ]


@router.get("/available-parents", response_model=list[ContainerResponse])
async def get_available_parents(
    exclude_id: Optional[uuid.UUID] = None,
    _user: AuthUser = Depends(require_inventory_reader),
    db: AsyncSession = Depends(get_async_db),
):
    """Containers that can be chosen as parent without creating a cycle."""
    return await container_ops.get_available_parents(db, exclude_id)


@router.get("/{container_id}", response_model=ContainerDetail)
async def get_container(
    container_id: uuid.UUID,
    _user: AuthUser = Depends(require_inventory_reader),
    db: AsyncSession = Depends(get_async_db),
):
    detail = await container_ops.get_container_detail(db, container_id)
    return ContainerDetail(
        **ContainerResponse.model_validate(detail["container"]).model_dump(),
        children=[ContainerResponse.model_validate(c) for c in detail["children"]],
        items=[ItemResponse.model_validate(i) for i in detail["items"]],
    )


@router.post("", response_model=ContainerResponse, status_code=status.HTTP_201_CREATED)
async def create_container(
    payload: ContainerCreate,
    current_user: AuthUser = Depends(require_inventory_manager),
    db: AsyncSession = Depends(get_async_db),
):
    return await container_ops.create_container(
        db, payload, created_by=current_user.user_id
    )


@router.patch("/{container_id}", response_model=ContainerResponse)
async def update_container(
    container_id: uuid.UUID,
    changes: ContainerUpdate,
    _manager: AuthUser = Depends(require_inventory_manager),
    db: AsyncSession = Depends(get_async_db),
):
    return await container_ops.update_container(db, container_id, changes)


@router.delete("/{container_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_container(
    container_id: uuid.UUID,
    _manager: AuthUser = Depends(require_inventory_manager),
    db: AsyncSession = Depends(get_async_db),
):
    await container_ops.delete_container(db, container_id)
