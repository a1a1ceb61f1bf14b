"""Inventory item operations. Every change is written to the item history."""

import uuid
from typing import Optional

from fastapi import HTTPException
from libs.common.logging import get_logger
from services.inventory_service.models import Category, Container, Item
from services.inventory_service.schemas import ItemCreate, ItemUpdate
from services.inventory_service.services import history_ops
from services.inventory_service.services.attributes import validate_item_attributes
from services.inventory_service.services.category_ops import get_category
from services.inventory_service.services.container_ops import get_container
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

logger = get_logger(__name__)


def _with_relations(query):
    return query.options(selectinload(Item.container), selectinload(Item.category))


async def get_item(
    db: AsyncSession, item_id: uuid.UUID, *, for_update: bool = False
) -> Item:
    query = _with_relations(select(Item).where(Item.id == item_id)).execution_options(
        populate_existing=True
    )
    if for_update:
        query = query.with_for_update(of=Item)
    result = await db.execute(query)
    item = result.scalar_one_or_none()
    if not item:
        raise HTTPException(status_code=404, detail="Inventory item not found")
    return item


async def list_items(
    db: AsyncSession,
    *,
    search: Optional[str] = None,
    category_id: Optional[uuid.UUID] = None,
    container_id: Optional[uuid.UUID] = None,
    out_for_maintenance: Optional[bool] = None,
    page: int = 1,
    limit: int = 50,
) -> tuple[list[Item], int]:
    query = (
        select(Item)
        .join(Category, Category.id == Item.category_id)
        .join(Container, Container.id == Item.container_id)
    )
    if category_id:
        query = query.where(Item.category_id == category_id)
    if container_id:
        query = query.where(Item.container_id == container_id)
    if out_for_maintenance is not None:
        query = query.where(Item.out_for_maintenance == out_for_maintenance)
    if search:
        pattern = f"%{search}%"
        query = query.where(
            or_(
                Item.notes.ilike(pattern),
                Category.name.ilike(pattern),
                Container.name.ilike(pattern),
            )
        )

    count_query = select(func.count()).select_from(query.subquery())
    total = (await db.execute(count_query)).scalar() or 0

    query = (
        _with_relations(query)
        .order_by(Item.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    result = await db.execute(query)
    return list(result.scalars().all()), total


async def create_item(db: AsyncSession, payload: ItemCreate, *, actor_id: str) -> Item:
    await get_container(db, payload.container_id)
    category = await get_category(db, payload.category_id)

    data = payload.model_dump()
    data["attributes"] = validate_item_attributes(category, payload.attributes)
    item = Item(id=uuid.uuid4(), **data, created_by=actor_id, updated_by=actor_id)
    db.add(item)
    await db.flush()
    history_ops.record_creation(db, item, actor_id=actor_id)
    await db.commit()

    logger.info(
        "Inventory item created",
        extra={"extra_fields": {"item_id": str(item.id), "category": category.name}},
    )
    return await get_item(db, item.id)


async def _apply_changes(
    db: AsyncSession,
    item: Item,
    data: dict,
    *,
    actor_id: str,
    notes: Optional[str] = None,
) -> Item:
    before = history_ops.snapshot(item)

    if "container_id" in data and data["container_id"] != item.container_id:
        await get_container(db, data["container_id"])

    category_changed = "category_id" in data and data["category_id"] != item.category_id
    if "attributes" in data or category_changed:
        category = await get_category(db, data.get("category_id", item.category_id))
        data["attributes"] = validate_item_attributes(
            category, data.get("attributes", item.attributes or {})
        )

    for field, value in data.items():
        setattr(item, field, value)
    item.updated_by = actor_id

    history_ops.record_changes(db, before, item, actor_id=actor_id, notes=notes)
    await db.commit()
    return await get_item(db, item.id)


async def update_item(
    db: AsyncSession, item_id: uuid.UUID, changes: ItemUpdate, *, actor_id: str
) -> Item:
    item = await get_item(db, item_id, for_update=True)
    return await _apply_changes(
        db, item, changes.model_dump(exclude_unset=True), actor_id=actor_id
    )


async def move_to_container(
    db: AsyncSession,
    item_id: uuid.UUID,
    container_id: uuid.UUID,
    *,
    actor_id: str,
    notes: Optional[str] = None,
) -> Item:
    item = await get_item(db, item_id, for_update=True)
    return await _apply_changes(
        db, item, {"container_id": container_id}, actor_id=actor_id, notes=notes
    )


async def mark_maintenance(
    db: AsyncSession,
    item_id: uuid.UUID,
    out_for_maintenance: bool,
    *,
    actor_id: str,
    notes: Optional[str] = None,
) -> Item:
    item = await get_item(db, item_id, for_update=True)
    return await _apply_changes(
        db,
        item,
        {"out_for_maintenance": out_for_maintenance},
        actor_id=actor_id,
        notes=notes,
    )


async def delete_item(db: AsyncSession, item_id: uuid.UUID) -> None:
    item = await get_item(db, item_id)
    await db.delete(item)
    await db.commit()
    logger.info(f"Inventory item {item_id} deleted")


async def get_filter_options(db: AsyncSession) -> dict:
    categories = await db.execute(select(Category).order_by(Category.name))
    containers = await db.execute(select(Container).order_by(Container.name))
    return {
        "categories": list(categories.scalars().all()),
        "containers": list(containers.scalars().all()),
    }
