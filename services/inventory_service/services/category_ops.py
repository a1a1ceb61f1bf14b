"""Equipment category operations."""

import uuid

from fastapi import HTTPException, status
from libs.common.logging import get_logger
from services.inventory_service.models import Category, Item
from services.inventory_service.schemas import CategoryCreate, CategoryUpdate
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


async def get_category(db: AsyncSession, category_id: uuid.UUID) -> Category:
    result = await db.execute(select(Category).where(Category.id == category_id))
    category = result.scalar_one_or_none()
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")
    return category


async def _ensure_unique_name(db: AsyncSession, name: str, exclude_id=None) -> None:
    query = select(Category.id).where(func.lower(Category.name) == name.lower())
    if exclude_id:
        query = query.where(Category.id != exclude_id)
    if (await db.execute(query)).first():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Category '{name}' already exists",
        )


async def list_categories(db: AsyncSession) -> list[dict]:
    item_counts = (
        select(Item.category_id, func.count(Item.id).label("item_count"))
        .group_by(Item.category_id)
        .subquery()
    )
    result = await db.execute(
        select(Category, func.coalesce(item_counts.c.item_count, 0))
        .outerjoin(item_counts, item_counts.c.category_id == Category.id)
        .order_by(Category.name)
    )
    return [{"category": category, "item_count": count} for category, count in result.all()]


async def create_category(db: AsyncSession, payload: CategoryCreate) -> Category:
    await _ensure_unique_name(db, payload.name)
    category = Category(
        name=payload.name,
        description=payload.description,
        available_attributes=[
            a.model_dump(mode="json", exclude_none=True)
            for a in payload.available_attributes
        ],
    )
    db.add(category)
    await db.commit()
    await db.refresh(category)
    logger.info(f"Category {category.name} created")
    return category


async def update_category(
    db: AsyncSession, category_id: uuid.UUID, changes: CategoryUpdate
) -> Category:
    """Update a category. Existing items are not re-validated against new attributes."""
    category = await get_category(db, category_id)
    data = changes.model_dump(exclude_unset=True)
    if data.get("name") and data["name"] != category.name:
        await _ensure_unique_name(db, data["name"], exclude_id=category_id)
    if "available_attributes" in data:
        data["available_attributes"] = [
            a.model_dump(mode="json", exclude_none=True)
            for a in changes.available_attributes or []
        ]
    for field, value in data.items():
        setattr(category, field, value)
    await db.commit()
    await db.refresh(category)
    return category


async def delete_category(db: AsyncSession, category_id: uuid.UUID) -> None:
    category = await get_category(db, category_id)
    result = await db.execute(
        select(func.count()).select_from(Item).where(Item.category_id == category_id)
    )
    if result.scalar():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot delete a category that is used by items",
        )
    await db.delete(category)
    await db.commit()
    logger.info(f"Category {category_id} deleted")
