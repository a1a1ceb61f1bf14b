"""Item audit trail."""

import uuid
from typing import Any, Optional

from services.inventory_service.models import Item, ItemHistory, ItemHistoryAction
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

# Fields whose changes are recorded as an "updated" entry.
DETAIL_FIELDS = ("attributes", "quantity", "notes")


def snapshot(item: Item) -> dict[str, Any]:
    return {
        "container_id": item.container_id,
        "out_for_maintenance": item.out_for_maintenance,
        "attributes": dict(item.attributes or {}),
        "quantity": item.quantity,
        "notes": item.notes,
    }


def record_creation(db: AsyncSession, item: Item, *, actor_id: str) -> None:
    db.add(
        ItemHistory(
            item_id=item.id,
            action=ItemHistoryAction.CREATED,
            new_container_id=item.container_id,
            notes="Item created",
            performed_by=actor_id,
        )
    )


def record_changes(
    db: AsyncSession,
    before: dict[str, Any],
    item: Item,
    *,
    actor_id: str,
    notes: Optional[str] = None,
) -> list[ItemHistory]:
    """Add one history row per kind of change between ``before`` and ``item``."""
    entries = []
    if before["container_id"] != item.container_id:
        entries.append(
            ItemHistory(
                item_id=item.id,
                action=ItemHistoryAction.MOVED,
                old_container_id=before["container_id"],
                new_container_id=item.container_id,
                notes=notes or "Item moved between containers",
                performed_by=actor_id,
            )
        )

    if before["out_for_maintenance"] != item.out_for_maintenance:
        going_out = item.out_for_maintenance
        entries.append(
            ItemHistory(
                item_id=item.id,
                action=(
                    ItemHistoryAction.MAINTENANCE_OUT
                    if going_out
                    else ItemHistoryAction.MAINTENANCE_IN
                ),
                new_container_id=item.container_id,
                notes=notes
                or ("Item sent for maintenance" if going_out else "Item returned from maintenance"),
                performed_by=actor_id,
            )
        )

    changes = {}
    for field in DETAIL_FIELDS:
        new_value = getattr(item, field)
        if before[field] != new_value:
            changes[field] = {"old": before[field], "new": new_value}
    if changes:
        entries.append(
            ItemHistory(
                item_id=item.id,
                action=ItemHistoryAction.UPDATED,
                new_container_id=item.container_id,
                changes=changes,
                notes="Item details updated",
                performed_by=actor_id,
            )
        )

    db.add_all(entries)
    return entries


async def get_item_history(
    db: AsyncSession, item_id: uuid.UUID, *, limit: int = 20
) -> list[ItemHistory]:
    result = await db.execute(
        select(ItemHistory)
        .where(ItemHistory.item_id == item_id)
        .order_by(ItemHistory.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def get_recent_history(db: AsyncSession, *, limit: int = 50) -> list[ItemHistory]:
    result = await db.execute(
        select(ItemHistory).order_by(ItemHistory.created_at.desc()).limit(limit)
    )
    return list(result.scalars().all())
