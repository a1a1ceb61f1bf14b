"""Refunds for workshop registrations."""

import uuid
from datetime import timedelta
from typing import Optional

from fastapi import HTTPException, status
from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from libs.common.stripe_client import StripeClient, StripeServiceError
from services.workshops_service.models import (
    ACTIVE_REGISTRATION_STATUSES,
    RefundStatus,
    RegistrationStatus,
    Workshop,
    WorkshopRefund,
    WorkshopRegistration,
    WorkshopStatus,
)
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


def refund_deadline(workshop: Workshop):
    if workshop.refund_days is None:
        return None
    return workshop.start_date - timedelta(days=workshop.refund_days)


async def _registration_with_workshop(
    db: AsyncSession, registration_id: uuid.UUID, *, for_update: bool = False
) -> Optional[tuple[WorkshopRegistration, Workshop]]:
    query = (
        select(WorkshopRegistration, Workshop)
        .join(Workshop, Workshop.id == WorkshopRegistration.workshop_id)
        .where(WorkshopRegistration.id == registration_id)
    )
    if for_update:
        query = query.with_for_update(of=WorkshopRegistration).execution_options(
            populate_existing=True
        )
    result = await db.execute(query)
    return result.first()


async def _existing_refund(
    db: AsyncSession, registration_id: uuid.UUID
) -> Optional[WorkshopRefund]:
    result = await db.execute(
        select(WorkshopRefund).where(WorkshopRefund.registration_id == registration_id)
    )
    return result.scalar_one_or_none()


async def check_refund_eligibility(db: AsyncSession, registration_id: uuid.UUID) -> dict:
    """Whether a registration may be refunded now, and until when.

    A refund that previously failed does not block a new attempt.
    """
    row = await _registration_with_workshop(db, registration_id)
    if row is None:
        return {"eligible": False, "reason": "Registration not found"}
    return await _eligibility(db, *row)


async def _eligibility(
    db: AsyncSession, registration: WorkshopRegistration, workshop: Workshop
) -> dict:
    if registration.status == RegistrationStatus.REFUNDED:
        return {"eligible": False, "reason": "Registration already refunded"}
    if registration.status not in ACTIVE_REGISTRATION_STATUSES:
        return {"eligible": False, "reason": "Registration is not active"}
    if workshop.status == WorkshopStatus.FINISHED:
        return {"eligible": False, "reason": "Cannot refund finished workshop"}
    if workshop.status == WorkshopStatus.CANCELLED:
        return {"eligible": False, "reason": "Cannot refund cancelled workshop"}

    deadline = refund_deadline(workshop)
    now = utc_now()
    if deadline is not None and now > deadline:
        return {
            "eligible": False,
            "reason": "Refund deadline has passed",
            "refund_deadline": deadline,
        }

    existing = await _existing_refund(db, registration.id)
    if existing and existing.status != RefundStatus.FAILED:
        return {
            "eligible": False,
            "reason": "Refund already requested for this registration",
        }
    if registration.amount_paid <= 0:
        return {"eligible": False, "reason": "Registration has no payment to refund"}

    return {
        "eligible": True,
        "refund_deadline": deadline,
        "days_until_deadline": (deadline - now).days if deadline else None,
    }


async def process_refund(
    db: AsyncSession,
    registration_id: uuid.UUID,
    *,
    reason: str,
    actor_id: str,
    stripe_client: StripeClient,
) -> WorkshopRefund:
    row = await _registration_with_workshop(db, registration_id, for_update=True)
    if row is None:
        raise HTTPException(status_code=404, detail="Registration not found")
    registration, workshop = row
    eligibility = await _eligibility(db, registration, workshop)
    if not eligibility["eligible"]:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=eligibility["reason"]
        )
    previous_status = registration.status

    refund = await _existing_refund(db, registration_id)
    if refund is None:
        refund = WorkshopRefund(registration_id=registration_id)
        db.add(refund)
    refund.refund_amount = registration.amount_paid
    refund.refund_reason = reason
    refund.status = RefundStatus.PENDING
    refund.requested_by = actor_id
    refund.requested_at = utc_now()
    registration.status = RegistrationStatus.REFUNDED
    await db.flush()

    if registration.stripe_payment_intent_id:
        try:
            stripe_refund = await stripe_client.create_refund(
                payment_intent_id=registration.stripe_payment_intent_id,
                amount=registration.amount_paid,
                reason="requested_by_customer",
                idempotency_key=(
                    f"workshop-refund-{refund.id}-{int(refund.requested_at.timestamp())}"
                ),
            )
        except StripeServiceError as e:
            refund.status = RefundStatus.FAILED
            registration.status = previous_status
            await db.commit()
            logger.error(
                f"Refund for registration {registration_id} failed: {e.message}",
                extra={"extra_fields": {"refund_id": str(refund.id), "code": e.code}},
            )
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail=f"Refund failed: {e.message}",
            )
        refund.stripe_refund_id = stripe_refund.id
        refund.status = RefundStatus.PROCESSING
        refund.processed_at = utc_now()
        refund.processed_by = actor_id

    await db.commit()
    await db.refresh(refund)
    logger.info(
        "Refund processed",
        extra={"extra_fields": {
            "refund_id": str(refund.id),
            "registration_id": str(registration_id),
            "amount": refund.refund_amount,
        }},
    )
    return refund


async def list_workshop_refunds(
    db: AsyncSession, workshop_id: uuid.UUID
) -> list[WorkshopRefund]:
    result = await db.execute(
        select(WorkshopRefund)
        .join(WorkshopRegistration, WorkshopRegistration.id == WorkshopRefund.registration_id)
        .where(WorkshopRegistration.workshop_id == workshop_id)
        .order_by(WorkshopRefund.requested_at.desc())
    )
    return list(result.scalars().all())


async def update_refund_status(
    db: AsyncSession, refund_id: uuid.UUID, new_status: RefundStatus
) -> WorkshopRefund:
    result = await db.execute(
        select(WorkshopRefund).where(WorkshopRefund.id == refund_id).with_for_update()
    )
    refund = result.scalar_one_or_none()
    if not refund:
        raise HTTPException(status_code=404, detail="Refund not found")

    refund.status = new_status
    if new_status == RefundStatus.COMPLETED:
        refund.completed_at = utc_now()
    await db.commit()
    await db.refresh(refund)
    return refund
