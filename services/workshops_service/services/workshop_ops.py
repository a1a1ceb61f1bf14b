"""Workshop scheduling and lifecycle: planned -> published -> finished | cancelled."""

import uuid
from datetime import datetime
from typing import Optional

from fastapi import HTTPException, status
from libs.common import service_client
from libs.common.logging import get_logger
from libs.common.stripe_client import StripeClient, StripeServiceError
from services.workshops_service.models import (
    ACTIVE_REGISTRATION_STATUSES,
    AttendanceStatus,
    RegistrationStatus,
    Workshop,
    WorkshopInterest,
    WorkshopRegistration,
    WorkshopStatus,
)
from services.workshops_service.schemas import PRICING_FIELDS, WorkshopCreate, WorkshopUpdate
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

CALLING_SERVICE = "workshops"

# Fields an update may explicitly clear; nulls on any other field are ignored.
CLEARABLE_FIELDS = ("description", "refund_days")


async def get_workshop(
    db: AsyncSession, workshop_id: uuid.UUID, *, for_update: bool = False
) -> Workshop:
    query = select(Workshop).where(Workshop.id == workshop_id)
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    workshop = result.scalar_one_or_none()
    if not workshop:
        raise HTTPException(status_code=404, detail="Workshop not found")
    return workshop


async def count_registrations(
    db: AsyncSession, workshop_id: uuid.UUID, statuses=ACTIVE_REGISTRATION_STATUSES
) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(WorkshopRegistration)
        .where(
            WorkshopRegistration.workshop_id == workshop_id,
            WorkshopRegistration.status.in_(statuses),
        )
    )
    return result.scalar() or 0


async def can_edit_pricing(db: AsyncSession, workshop: Workshop) -> bool:
    if workshop.status == WorkshopStatus.PLANNED:
        return True
    total = await count_registrations(db, workshop.id, statuses=list(RegistrationStatus))
    return total == 0


async def create_workshop(
    db: AsyncSession, payload: WorkshopCreate, *, created_by: str
) -> Workshop:
    workshop = Workshop(**payload.model_dump(), created_by=created_by)
    db.add(workshop)
    await db.commit()
    await db.refresh(workshop)
    logger.info(
        "Workshop created",
        extra={"extra_fields": {"workshop_id": str(workshop.id), "created_by": created_by}},
    )
    return workshop


async def list_workshops(
    db: AsyncSession,
    *,
    status_filter: Optional[WorkshopStatus] = None,
    start_from: Optional[datetime] = None,
    start_to: Optional[datetime] = None,
    created_by: Optional[str] = None,
    is_public: Optional[bool] = None,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[Workshop], int]:
    query = select(Workshop)
    if status_filter:
        query = query.where(Workshop.status == status_filter)
    if start_from:
        query = query.where(Workshop.start_date >= start_from)
    if start_to:
        query = query.where(Workshop.start_date <= start_to)
    if created_by:
        query = query.where(Workshop.created_by == created_by)
    if is_public is not None:
        query = query.where(Workshop.is_public == is_public)

    count_query = select(func.count()).select_from(query.subquery())
    total = (await db.execute(count_query)).scalar() or 0

    query = (
        query.order_by(Workshop.start_date.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    result = await db.execute(query)
    return list(result.scalars().all()), total


async def update_workshop(
    db: AsyncSession, workshop_id: uuid.UUID, changes: WorkshopUpdate
) -> Workshop:
    workshop = await get_workshop(db, workshop_id, for_update=True)
    data = {
        field: value
        for field, value in changes.model_dump(exclude_unset=True).items()
        if value is not None or field in CLEARABLE_FIELDS
    }

    if set(data) - set(PRICING_FIELDS) and not workshop.can_edit:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only planned workshops can be edited",
        )
    if set(data) & set(PRICING_FIELDS) and not await can_edit_pricing(db, workshop):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Pricing cannot be changed once registrations exist",
        )

    start = data.get("start_date", workshop.start_date)
    end = data.get("end_date", workshop.end_date)
    if end <= start:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="End date must be after start date",
        )

    for field, value in data.items():
        setattr(workshop, field, value)
    await db.commit()
    await db.refresh(workshop)
    return workshop


async def delete_workshop(db: AsyncSession, workshop_id: uuid.UUID) -> None:
    workshop = await get_workshop(db, workshop_id, for_update=True)
    if not workshop.can_edit:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only planned workshops can be deleted",
        )
    await db.delete(workshop)
    await db.commit()
    logger.info(f"Workshop {workshop_id} deleted")


async def _transition(
    db: AsyncSession, workshop_id: uuid.UUID, expected: WorkshopStatus, new: WorkshopStatus
) -> Workshop:
    workshop = await get_workshop(db, workshop_id, for_update=True)
    if workshop.status != expected:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=(
                f"Cannot change a {workshop.status.value} workshop to {new.value}; "
                f"it must be {expected.value}"
            ),
        )
    workshop.status = new
    return workshop


async def publish_workshop(db: AsyncSession, workshop_id: uuid.UUID) -> Workshop:
    workshop = await _transition(
        db, workshop_id, WorkshopStatus.PLANNED, WorkshopStatus.PUBLISHED
    )
    await db.commit()
    await db.refresh(workshop)
    logger.info(f"Workshop {workshop_id} published")
    return workshop


async def cancel_workshop(
    db: AsyncSession,
    workshop_id: uuid.UUID,
    *,
    stripe_client: StripeClient,
) -> tuple[Workshop, int]:
    """Cancel a published workshop and refund every paid confirmed seat."""
    workshop = await _transition(
        db, workshop_id, WorkshopStatus.PUBLISHED, WorkshopStatus.CANCELLED
    )

    result = await db.execute(
        select(WorkshopRegistration)
        .where(
            WorkshopRegistration.workshop_id == workshop_id,
            WorkshopRegistration.status == RegistrationStatus.CONFIRMED,
        )
        .with_for_update()
    )
    refunded = 0
    for registration in result.scalars().all():
        if registration.stripe_payment_intent_id and registration.amount_paid > 0:
            try:
                await stripe_client.create_refund(
                    payment_intent_id=registration.stripe_payment_intent_id,
                    reason="requested_by_customer",
                    idempotency_key=f"workshop-cancel-{registration.id}",
                )
            except StripeServiceError as e:
                if e.code != "charge_already_refunded":
                    await db.rollback()
                    raise
        registration.status = RegistrationStatus.REFUNDED
        refunded += 1

    await db.commit()
    await db.refresh(workshop)
    logger.info(
        "Workshop cancelled",
        extra={"extra_fields": {"workshop_id": str(workshop_id), "refunded": refunded}},
    )
    return workshop, refunded


async def finish_workshop(db: AsyncSession, workshop_id: uuid.UUID) -> Workshop:
    workshop = await get_workshop(db, workshop_id, for_update=True)
    if workshop.status != WorkshopStatus.PUBLISHED:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only published workshops can be finished",
        )

    pending = await db.execute(
        select(func.count())
        .select_from(WorkshopRegistration)
        .where(
            WorkshopRegistration.workshop_id == workshop_id,
            WorkshopRegistration.status == RegistrationStatus.CONFIRMED,
            WorkshopRegistration.attendance_status == AttendanceStatus.PENDING,
        )
    )
    if pending.scalar():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Mark attendance for every attendee before finishing the workshop",
        )

    workshop.status = WorkshopStatus.FINISHED
    await db.commit()
    await db.refresh(workshop)

    reset = await service_client.reset_waitlist_priority(
        str(workshop_id), calling_service=CALLING_SERVICE
    )
    logger.info(f"Workshop {workshop_id} finished; {reset} waitlist priorities reset")
    return workshop


async def list_member_workshops(db: AsyncSession, *, user_id: str) -> list[dict]:
    """Planned and published workshops with counts and the caller's own state."""
    result = await db.execute(
        select(Workshop)
        .where(Workshop.status.in_([WorkshopStatus.PLANNED, WorkshopStatus.PUBLISHED]))
        .order_by(Workshop.start_date.asc())
    )
    workshops = list(result.scalars().all())
    if not workshops:
        return []
    ids = [w.id for w in workshops]

    registered = dict(
        (
            await db.execute(
                select(WorkshopRegistration.workshop_id, func.count())
                .where(
                    WorkshopRegistration.workshop_id.in_(ids),
                    WorkshopRegistration.status.in_(ACTIVE_REGISTRATION_STATUSES),
                )
                .group_by(WorkshopRegistration.workshop_id)
            )
        ).all()
    )
    interest = dict(
        (
            await db.execute(
                select(WorkshopInterest.workshop_id, func.count())
                .where(WorkshopInterest.workshop_id.in_(ids))
                .group_by(WorkshopInterest.workshop_id)
            )
        ).all()
    )
    own_interest = set(
        (
            await db.execute(
                select(WorkshopInterest.workshop_id).where(
                    WorkshopInterest.workshop_id.in_(ids),
                    WorkshopInterest.user_id == user_id,
                )
            )
        ).scalars()
    )
    own_registrations = dict(
        (
            await db.execute(
                select(WorkshopRegistration.workshop_id, WorkshopRegistration.status)
                .where(
                    WorkshopRegistration.workshop_id.in_(ids),
                    WorkshopRegistration.member_user_id == user_id,
                )
                .order_by(WorkshopRegistration.registered_at.asc())
            )
        ).all()
    )

    items = []
    for workshop in workshops:
        registration_status = own_registrations.get(workshop.id)
        items.append(
            {
                "workshop": workshop,
                "registered_count": registered.get(workshop.id, 0),
                "interest_count": interest.get(workshop.id, 0),
                "user_has_interest": workshop.id in own_interest,
                "user_registration_status": (
                    registration_status.value if registration_status else None
                ),
            }
        )
    return items
