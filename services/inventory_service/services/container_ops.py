"""Container hierarchy operations."""

import uuid
from typing import Optional

from fastapi import HTTPException, status
from libs.common.logging import get_logger
from services.inventory_service.models import Container, Item
from services.inventory_service.schemas import ContainerCreate, ContainerUpdate
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

logger = get_logger(__name__)

CYCLE_MESSAGE = "Circular reference detected in container hierarchy"


async def get_container(db: AsyncSession, container_id: uuid.UUID) -> Container:
    result = await db.execute(select(Container).where(Container.id == container_id))
    container = result.scalar_one_or_none()
    if not container:
        raise HTTPException(status_code=404, detail="Container not found")
    return container


async def list_containers(db: AsyncSession) -> list[dict]:
    item_counts = (
        select(Item.container_id, func.count(Item.id).label("item_count"))
        .group_by(Item.container_id)
        .subquery()
    )
    result = await db.execute(
        select(Container, func.coalesce(item_counts.c.item_count, 0))
        .outerjoin(item_counts, item_counts.c.container_id == Container.id)
        .order_by(Container.name)
    )
    return [
        {"container": container, "item_count": count} for container, count in result.all()
    ]


async def get_container_detail(db: AsyncSession, container_id: uuid.UUID) -> dict:
    container = await get_container(db, container_id)
    children = await db.execute(
        select(Container)
        .where(Container.parent_container_id == container_id)
        .order_by(Container.name)
    )
    items = await db.execute(
        select(Item)
        .options(selectinload(Item.container), selectinload(Item.category))
        .where(Item.container_id == container_id)
        .order_by(Item.created_at.desc())
    )
    return {
        "container": container,
        "children": list(children.scalars().all()),
        "items": list(items.scalars().all()),
    }


def descendant_ids(containers: list[Container], root_id: uuid.UUID) -> set[uuid.UUID]:
    """``root_id`` and every container below it."""
    found = {root_id}
    changed = True
    while changed:
        changed = False
        for c in containers:
            if c.parent_container_id in found and c.id not in found:
                found.add(c.id)
                changed = True
    return found


async def _check_hierarchy(
    db: AsyncSession, container_id: Optional[uuid.UUID], parent_id: Optional[uuid.UUID]
) -> None:
    """Walk up from ``parent_id``; meeting ``container_id`` or a repeat is a cycle."""
    if parent_id is None:
        return
    visited: set[uuid.UUID] = set()
    current: Optional[uuid.UUID] = parent_id
    while current is not None:
        if current == container_id or current in visited:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=CYCLE_MESSAGE)
        visited.add(current)
        result = await db.execute(
            select(Container.parent_container_id).where(Container.id == current)
        )
        row = result.first()
        if row is None:
            if current == parent_id:
                raise HTTPException(status_code=404, detail="Parent container not found")
            return
        current = row[0]


async def create_container(
    db: AsyncSession, payload: ContainerCreate, *, created_by: str
) -> Container:
    await _check_hierarchy(db, None, payload.parent_container_id)
    container = Container(**payload.model_dump(), created_by=created_by)
    db.add(container)
    await db.commit()
    await db.refresh(container)
    logger.info(f"Container {container.id} created by {created_by}")
    return container


async def update_container(
    db: AsyncSession, container_id: uuid.UUID, changes: ContainerUpdate
) -> Container:
    container = await get_container(db, container_id)
    data = changes.model_dump(exclude_unset=True)
    if "parent_container_id" in data:
        await _check_hierarchy(db, container_id, data["parent_container_id"])
    for field, value in data.items():
        setattr(container, field, value)
    await db.commit()
    await db.refresh(container)
    return container


async def delete_container(db: AsyncSession, container_id: uuid.UUID) -> None:
    container = await get_container(db, container_id)
    # Child containers are removed with their parent, so their items count too.
    all_containers = (await db.execute(select(Container))).scalars().all()
    subtree = descendant_ids(list(all_containers), container_id)
    result = await db.execute(
        select(func.count()).select_from(Item).where(Item.container_id.in_(subtree))
    )
    if result.scalar():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot delete a container that contains items",
        )
    await db.delete(container)
    await db.commit()
    logger.info(f"Container {container_id} deleted")


async def get_available_parents(
    db: AsyncSession, exclude_id: Optional[uuid.UUID] = None
) -> list[Container]:
    """Containers that may become the parent of ``exclude_id``."""
    result = await db.execute(select(Container).order_by(Container.name))
    containers = list(result.scalars().all())
    if exclude_id is None:
        return containers
    excluded = descendant_ids(containers, exclude_id)
    return [c for c in containers if c.id not in excluded]
