"""Workshop interest, paid registration and attendee lookups."""

import uuid
from datetime import timedelta
from typing import Optional

from fastapi import HTTPException, status
from libs.auth.models import AuthUser, ClubRole
from libs.common import service_client
from libs.common.config import get_settings
from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from libs.common.stripe_client import StripeClient
from services.workshops_service.models import (
    ACTIVE_REGISTRATION_STATUSES,
    AttendanceStatus,
    ExternalUser,
    RegistrationStatus,
    Workshop,
    WorkshopInterest,
    WorkshopRegistration,
    WorkshopStatus,
)
from services.workshops_service.schemas import ExternalRegistrationRequest
from services.workshops_service.services.workshop_ops import (
    CALLING_SERVICE,
    count_registrations,
    get_workshop,
)
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)
settings = get_settings()

REGISTRATION_PAYMENT_TYPE = "workshop_registration"

# PaymentIntent states that can still be paid.
OPEN_INTENT_STATUSES = frozenset(
    {"requires_payment_method", "requires_confirmation", "requires_action", "processing"}
)

CHECK_IN_OPENS_BEFORE = timedelta(hours=1)


# ---------------------------------------------------------------------------
# Interest
# ---------------------------------------------------------------------------


async def toggle_interest(db: AsyncSession, workshop_id: uuid.UUID, *, user_id: str) -> dict:
    workshop = await get_workshop(db, workshop_id)
    if workshop.status != WorkshopStatus.PLANNED:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Interest can only be expressed for planned workshops",
        )

    result = await db.execute(
        select(WorkshopInterest).where(
            WorkshopInterest.workshop_id == workshop_id,
            WorkshopInterest.user_id == user_id,
        )
    )
    existing = result.scalar_one_or_none()
    if existing:
        await db.delete(existing)
        await db.commit()
        return {"action": "withdrawn", "message": "Interest withdrawn successfully"}

    db.add(WorkshopInterest(workshop_id=workshop_id, user_id=user_id))
    await db.commit()
    return {"action": "expressed", "message": "Interest expressed successfully"}


# ---------------------------------------------------------------------------
# Payment and registration
# ---------------------------------------------------------------------------


def registration_price(workshop: Workshop, user: Optional[AuthUser]) -> int:
    if user is not None and ClubRole.MEMBER.value in user.roles:
        return workshop.price_member
    return workshop.price_non_member


async def _lock_published_workshop(db: AsyncSession, workshop_id: uuid.UUID) -> Workshop:
    workshop = await get_workshop(db, workshop_id, for_update=True)
    if workshop.status != WorkshopStatus.PUBLISHED:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Workshop not available for registration",
        )
    return workshop


async def _ensure_capacity(db: AsyncSession, workshop: Workshop) -> None:
    taken = await count_registrations(db, workshop.id)
    if taken >= workshop.max_capacity:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Workshop is full")


async def _active_member_registration(
    db: AsyncSession, workshop_id: uuid.UUID, user_id: str
) -> Optional[WorkshopRegistration]:
    result = await db.execute(
        select(WorkshopRegistration).where(
            WorkshopRegistration.workshop_id == workshop_id,
            WorkshopRegistration.member_user_id == user_id,
            WorkshopRegistration.status.in_(ACTIVE_REGISTRATION_STATUSES),
        )
    )
    return result.scalars().first()


def _intent_response(intent) -> dict:
    return {
        "client_secret": intent.client_secret,
        "payment_intent_id": intent.id,
        "amount": intent.amount,
        "currency": intent.currency,
    }


async def create_payment_intent(
    db: AsyncSession,
    workshop_id: uuid.UUID,
    *,
    user: AuthUser,
    stripe_client: StripeClient,
) -> dict:
    """Start paying for a seat.

    The seat is held by a pending registration until the payment completes
    or the hold is released by the stale-registration job. Asking again
    while the hold is open returns the same PaymentIntent.
    """
    workshop = await _lock_published_workshop(db, workshop_id)

    existing = await _active_member_registration(db, workshop_id, user.user_id)
    if existing:
        if existing.status == RegistrationStatus.PENDING and existing.stripe_payment_intent_id:
            intent = await stripe_client.retrieve_payment_intent(
                existing.stripe_payment_intent_id
            )
            if intent.status in OPEN_INTENT_STATUSES:
                await db.rollback()
                return _intent_response(intent)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Already registered for this workshop",
        )

    await _ensure_capacity(db, workshop)

    amount = registration_price(workshop, user)
    registration = WorkshopRegistration(
        id=uuid.uuid4(),
        workshop_id=workshop.id,
        member_user_id=user.user_id,
        amount_paid=0,
        currency=settings.WORKSHOP_CURRENCY,
        status=RegistrationStatus.PENDING,
    )
    intent = await stripe_client.create_payment_intent(
        amount=amount,
        currency=settings.WORKSHOP_CURRENCY,
        metadata={
            "workshop_id": str(workshop.id),
            "workshop_title": workshop.title,
            "user_id": user.user_id,
            "type": REGISTRATION_PAYMENT_TYPE,
        },
        idempotency_key=f"workshop-registration-{registration.id}",
    )
    registration.stripe_payment_intent_id = intent.id
    db.add(registration)
    await db.commit()

    logger.info(
        "Workshop seat held pending payment",
        extra={"extra_fields": {
            "workshop_id": str(workshop.id),
            "registration_id": str(registration.id),
            "amount": amount,
        }},
    )
    return _intent_response(intent)


async def create_external_payment_intent(
    db: AsyncSession,
    workshop_id: uuid.UUID,
    *,
    email: str,
    stripe_client: StripeClient,
) -> dict:
    """PaymentIntent at the non-member price for a public workshop."""
    workshop = await _lock_published_workshop(db, workshop_id)
    if not workshop.is_public:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Workshop not available for registration",
        )

    email = email.lower()
    result = await db.execute(
        select(WorkshopRegistration.id)
        .join(ExternalUser, ExternalUser.id == WorkshopRegistration.external_user_id)
        .where(
            WorkshopRegistration.workshop_id == workshop_id,
            ExternalUser.email == email,
            WorkshopRegistration.status.in_(ACTIVE_REGISTRATION_STATUSES),
        )
    )
    if result.first():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Already registered for this workshop",
        )
    await _ensure_capacity(db, workshop)
    await db.rollback()

    intent = await stripe_client.create_payment_intent(
        amount=workshop.price_non_member,
        currency=settings.WORKSHOP_CURRENCY,
        metadata={
            "workshop_id": str(workshop.id),
            "workshop_title": workshop.title,
            "external_email": email,
            "type": REGISTRATION_PAYMENT_TYPE,
        },
    )
    return _intent_response(intent)


async def _verified_intent(
    stripe_client: StripeClient, payment_intent_id: str, workshop_id: uuid.UUID
):
    intent = await stripe_client.retrieve_payment_intent(payment_intent_id)
    if intent.status != "succeeded":
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Payment not completed"
        )
    if (intent.metadata or {}).get("workshop_id") != str(workshop_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Payment does not match this workshop",
        )
    return intent


async def _registration_for_intent(
    db: AsyncSession, payment_intent_id: str
) -> Optional[WorkshopRegistration]:
    result = await db.execute(
        select(WorkshopRegistration)
        .where(WorkshopRegistration.stripe_payment_intent_id == payment_intent_id)
        .with_for_update()
    )
    return result.scalar_one_or_none()


def _confirm(registration: WorkshopRegistration, intent) -> None:
    now = utc_now()
    registration.status = RegistrationStatus.CONFIRMED
    registration.amount_paid = intent.amount_received or intent.amount
    registration.currency = intent.currency
    registration.confirmed_at = now
    registration.cancelled_at = None


async def complete_registration(
    db: AsyncSession,
    workshop_id: uuid.UUID,
    *,
    payment_intent_id: str,
    user: AuthUser,
    stripe_client: StripeClient,
) -> WorkshopRegistration:
    intent = await _verified_intent(stripe_client, payment_intent_id, workshop_id)
    if (intent.metadata or {}).get("user_id") != user.user_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Payment does not match this workshop",
        )

    registration = await _registration_for_intent(db, payment_intent_id)
    if registration and registration.status == RegistrationStatus.CONFIRMED:
        return registration

    if registration is None:
        registration = WorkshopRegistration(
            workshop_id=workshop_id, member_user_id=user.user_id
        )
        db.add(registration)
    _confirm(registration, intent)
    await db.commit()
    await db.refresh(registration)

    logger.info(
        "Workshop registration confirmed",
        extra={"extra_fields": {
            "workshop_id": str(workshop_id),
            "registration_id": str(registration.id),
            "payment_intent_id": payment_intent_id,
        }},
    )
    return registration


async def register_external_user(
    db: AsyncSession,
    workshop_id: uuid.UUID,
    payload: ExternalRegistrationRequest,
    *,
    stripe_client: StripeClient,
) -> WorkshopRegistration:
    intent = await _verified_intent(stripe_client, payload.payment_intent_id, workshop_id)

    registration = await _registration_for_intent(db, payload.payment_intent_id)
    if registration and registration.status == RegistrationStatus.CONFIRMED:
        return registration

    result = await db.execute(
        select(ExternalUser).where(ExternalUser.email == payload.email)
    )
    external = result.scalar_one_or_none()
    if external is None:
        external = ExternalUser(email=payload.email)
        db.add(external)
    external.first_name = payload.first_name
    external.last_name = payload.last_name
    if payload.phone_number:
        external.phone_number = payload.phone_number
    await db.flush()

    if registration is None:
        registration = WorkshopRegistration(
            workshop_id=workshop_id,
            external_user_id=external.id,
            stripe_payment_intent_id=payload.payment_intent_id,
        )
        db.add(registration)
    _confirm(registration, intent)
    await db.commit()
    await db.refresh(registration)
    logger.info(
        f"External attendee {external.id} registered for workshop {workshop_id}"
    )
    return registration


async def cancel_registration(
    db: AsyncSession, workshop_id: uuid.UUID, *, user_id: str
) -> dict:
    result = await db.execute(
        select(WorkshopRegistration)
        .where(
            WorkshopRegistration.workshop_id == workshop_id,
            WorkshopRegistration.member_user_id == user_id,
            WorkshopRegistration.status.in_(ACTIVE_REGISTRATION_STATUSES),
        )
        .with_for_update()
    )
    registration = result.scalars().first()
    if not registration:
        raise HTTPException(status_code=404, detail="Registration not found")

    registration.status = RegistrationStatus.CANCELLED
    registration.cancelled_at = utc_now()
    await db.commit()

    requeued = await service_client.move_to_waitlist_with_priority(
        user_id,
        str(workshop_id),
        notes="Cancelled workshop registration",
        calling_service=CALLING_SERVICE,
    )
    logger.info(
        "Workshop registration cancelled",
        extra={"extra_fields": {
            "registration_id": str(registration.id),
            "requeued": requeued,
        }},
    )
    return {"success": True, "refund_processed": False, "requeued": requeued}


async def release_stale_pending_registrations(db: AsyncSession) -> int:
    """Cancel pending seats held longer than PENDING_REGISTRATION_TTL_HOURS."""
    cutoff = utc_now() - timedelta(hours=settings.PENDING_REGISTRATION_TTL_HOURS)
    result = await db.execute(
        select(WorkshopRegistration)
        .where(
            WorkshopRegistration.status == RegistrationStatus.PENDING,
            WorkshopRegistration.registered_at < cutoff,
        )
        .with_for_update(skip_locked=True)
    )
    stale = list(result.scalars().all())
    now = utc_now()
    for registration in stale:
        registration.status = RegistrationStatus.CANCELLED
        registration.cancelled_at = now
    await db.commit()
    return len(stale)


# ---------------------------------------------------------------------------
# Attendees and capacity
# ---------------------------------------------------------------------------


async def attendee_rows(
    db: AsyncSession, workshop_id: uuid.UUID, statuses
) -> list[dict]:
    """Registrations joined with member (remote) or external (local) names."""
    result = await db.execute(
        select(WorkshopRegistration, ExternalUser)
        .outerjoin(ExternalUser, ExternalUser.id == WorkshopRegistration.external_user_id)
        .where(
            WorkshopRegistration.workshop_id == workshop_id,
            WorkshopRegistration.status.in_(statuses),
        )
        .order_by(WorkshopRegistration.registered_at.asc())
    )
    rows = result.all()

    member_ids = sorted({r.member_user_id for r, _ in rows if r.member_user_id})
    profiles = await service_client.get_profiles_bulk(
        member_ids, calling_service=CALLING_SERVICE
    )

    attendees = []
    for registration, external in rows:
        if registration.member_user_id:
            person = profiles.get(registration.member_user_id, {})
            user_type = "member"
            user_id = registration.member_user_id
        else:
            person = {
                "first_name": external.first_name,
                "last_name": external.last_name,
                "email": external.email,
            }
            user_type = "external"
            user_id = str(external.id)
        attendees.append(
            {
                "registration_id": registration.id,
                "user_type": user_type,
                "user_id": user_id,
                "first_name": person.get("first_name"),
                "last_name": person.get("last_name"),
                "email": person.get("email"),
                "status": registration.status,
                "amount_paid": registration.amount_paid,
                "attendance_status": registration.attendance_status,
                "attendance_notes": registration.attendance_notes,
                "registered_at": registration.registered_at,
            }
        )
    return attendees


async def get_workshop_attendees(db: AsyncSession, workshop_id: uuid.UUID) -> list[dict]:
    await get_workshop(db, workshop_id)
    return await attendee_rows(db, workshop_id, ACTIVE_REGISTRATION_STATUSES)


async def check_workshop_capacity(db: AsyncSession, workshop_id: uuid.UUID) -> dict:
    workshop = await get_workshop(db, workshop_id)
    result = await db.execute(
        select(WorkshopRegistration.status, func.count())
        .where(
            WorkshopRegistration.workshop_id == workshop_id,
            WorkshopRegistration.status.in_(ACTIVE_REGISTRATION_STATUSES),
        )
        .group_by(WorkshopRegistration.status)
    )
    counts = dict(result.all())
    confirmed = counts.get(RegistrationStatus.CONFIRMED, 0)
    pending = counts.get(RegistrationStatus.PENDING, 0)
    remaining = max(workshop.max_capacity - confirmed - pending, 0)
    return {
        "workshop_id": workshop.id,
        "max_capacity": workshop.max_capacity,
        "confirmed": confirmed,
        "pending": pending,
        "remaining": remaining,
        "is_full": remaining == 0,
    }


async def _active_member_ids(db: AsyncSession, workshop_id: uuid.UUID) -> list[str]:
    result = await db.execute(
        select(WorkshopRegistration.member_user_id).where(
            WorkshopRegistration.workshop_id == workshop_id,
            WorkshopRegistration.member_user_id.is_not(None),
            WorkshopRegistration.status.in_(ACTIVE_REGISTRATION_STATUSES),
        )
    )
    return list(result.scalars().all())


async def invite_from_waitlist(
    db: AsyncSession, workshop_id: uuid.UUID, *, limit: Optional[int] = None
) -> dict:
    """Invite the highest-priority waitlisted people into the free seats."""
    capacity = await check_workshop_capacity(db, workshop_id)
    slots = capacity["remaining"] if limit is None else min(limit, capacity["remaining"])
    if slots <= 0:
        return {"invited": 0, "failed": 0, "invitation_ids": []}

    attendees = await _active_member_ids(db, workshop_id)
    candidates = await service_client.get_prioritized_waitlist(
        str(workshop_id),
        exclude_user_ids=attendees,
        limit=slots,
        calling_service=CALLING_SERVICE,
    )

    invited, failed, invitation_ids = 0, 0, []
    for candidate in candidates:
        if not candidate.get("user_id"):
            failed += 1
            continue
        try:
            invitation = await service_client.create_workshop_invitation(
                user_id=candidate["user_id"],
                email=candidate["email"],
                waitlist_id=str(candidate["waitlist_id"]),
                workshop_id=str(workshop_id),
                calling_service=CALLING_SERVICE,
            )
        except Exception as e:
            logger.warning(
                f"Could not invite waitlist entry {candidate['waitlist_id']}: {e}"
            )
            failed += 1
            continue
        invited += 1
        invitation_ids.append(str(invitation["id"]))

    logger.info(
        "Invited from waitlist",
        extra={"extra_fields": {
            "workshop_id": str(workshop_id),
            "invited": invited,
            "failed": failed,
        }},
    )
    return {"invited": invited, "failed": failed, "invitation_ids": invitation_ids}


# ---------------------------------------------------------------------------
# Manual attendees and check-in
# ---------------------------------------------------------------------------


async def search_users(db: AsyncSession, workshop_id: uuid.UUID, query: str) -> list[dict]:
    """Club profiles matching ``query`` that are not yet attending the workshop."""
    await get_workshop(db, workshop_id)
    query = query.strip()
    if len(query) < 2:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Search query too short. Minimum 2 characters required",
        )
    attendees = await _active_member_ids(db, workshop_id)
    return await service_client.search_profiles(
        query, exclude_user_ids=attendees, calling_service=CALLING_SERVICE
    )


async def add_attendee(
    db: AsyncSession, workshop_id: uuid.UUID, *, user_id: str, actor_id: str
) -> WorkshopRegistration:
    """Seat a member without payment, e.g. coaches or people who paid in person."""
    workshop = await get_workshop(db, workshop_id, for_update=True)
    if workshop.status not in (WorkshopStatus.PLANNED, WorkshopStatus.PUBLISHED):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Attendees can only be added to planned or published workshops",
        )
    if await _active_member_registration(db, workshop_id, user_id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="User is already an attendee of this workshop",
        )
    await _ensure_capacity(db, workshop)

    profiles = await service_client.get_profiles_bulk(
        [user_id], calling_service=CALLING_SERVICE
    )
    if user_id not in profiles:
        raise HTTPException(status_code=404, detail="User profile not found")

    now = utc_now()
    registration = WorkshopRegistration(
        workshop_id=workshop_id,
        member_user_id=user_id,
        status=RegistrationStatus.CONFIRMED,
        amount_paid=0,
        currency=settings.WORKSHOP_CURRENCY,
        registered_at=now,
        confirmed_at=now,
    )
    db.add(registration)
    await db.commit()
    await db.refresh(registration)
    logger.info(
        "Attendee added manually",
        extra={"extra_fields": {
            "workshop_id": str(workshop_id),
            "user_id": user_id,
            "added_by": actor_id,
        }},
    )
    return registration


async def check_in(
    db: AsyncSession, workshop_id: uuid.UUID, *, user_id: str
) -> WorkshopRegistration:
    """Mark the caller's own confirmed seat as attended."""
    workshop = await get_workshop(db, workshop_id)
    if workshop.status != WorkshopStatus.PUBLISHED:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Check-in is only open for published workshops",
        )
    now = utc_now()
    if now < workshop.start_date - CHECK_IN_OPENS_BEFORE or now > workshop.end_date:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Check-in is not open for this workshop",
        )

    result = await db.execute(
        select(WorkshopRegistration)
        .where(
            WorkshopRegistration.workshop_id == workshop_id,
            WorkshopRegistration.member_user_id == user_id,
            WorkshopRegistration.status == RegistrationStatus.CONFIRMED,
        )
        .with_for_update()
    )
    registration = result.scalars().first()
    if not registration:
        raise HTTPException(
            status_code=404, detail="No confirmed registration for this workshop"
        )
    if registration.attendance_status == AttendanceStatus.ATTENDED:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Already checked in")

    registration.attendance_status = AttendanceStatus.ATTENDED
    registration.attendance_marked_at = now
    registration.attendance_marked_by = user_id
    await db.commit()
    await db.refresh(registration)
    return registration
