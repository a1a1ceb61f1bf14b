"""Waitlist intake, status changes and workshop re-queue priority."""

import uuid
from typing import Optional

from fastapi import HTTPException, status
from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from services.members_service.models import (
    UserProfile,
    WaitlistEntry,
    WaitlistGuardian,
    WaitlistPriority,
    WaitlistStatus,
    WaitlistStatusHistory,
)
from services.members_service.schemas import WaitlistSubmission
from services.members_service.services import settings_ops
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

CANCELLED_PRIORITY_NOTE = "[Cancelled from workshop, given priority]"


async def submit_waitlist_entry(
    db: AsyncSession, submission: WaitlistSubmission
) -> tuple[WaitlistEntry, UserProfile]:
    """Create the waitlist entry, its inactive profile and (for minors) the guardian."""
    if not await settings_ops.is_waitlist_open(db):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="The waitlist is currently closed",
        )

    existing = await db.execute(
        select(WaitlistEntry.id).where(WaitlistEntry.email == submission.email)
    )
    if existing.scalar_one_or_none():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="This email is already on the waitlist",
        )

    now = utc_now()
    entry = WaitlistEntry(
        email=submission.email,
        status=WaitlistStatus.WAITING,
        last_status_change=now,
    )
    db.add(entry)
    await db.flush()

    profile = UserProfile(
        first_name=submission.first_name,
        last_name=submission.last_name,
        email=submission.email,
        phone_number=submission.phone_number,
        date_of_birth=submission.date_of_birth,
        pronouns=submission.pronouns,
        gender=submission.gender,
        medical_conditions=submission.medical_conditions,
        social_media_consent=submission.social_media_consent,
        is_active=False,
        waitlist_id=entry.id,
    )
    db.add(profile)
    await db.flush()

    if submission.is_minor:
        db.add(
            WaitlistGuardian(
                profile_id=profile.id,
                first_name=submission.guardian_first_name.strip(),
                last_name=submission.guardian_last_name.strip(),
                phone_number=submission.guardian_phone_number,
            )
        )

    db.add(
        WaitlistStatusHistory(
            waitlist_id=entry.id,
            old_status=None,
            new_status=WaitlistStatus.WAITING,
            changed_by="waitlist_form",
        )
    )

    await db.commit()
    await db.refresh(entry)
    await db.refresh(profile)

    logger.info(
        "Waitlist entry created",
        extra={"extra_fields": {
            "waitlist_id": str(entry.id),
            "minor": submission.is_minor,
        }},
    )
    return entry, profile


def _entry_with_profile_query():
    return select(WaitlistEntry, UserProfile).outerjoin(
        UserProfile, UserProfile.waitlist_id == WaitlistEntry.id
    )


def entry_row_to_dict(entry: WaitlistEntry, profile: Optional[UserProfile]) -> dict:
    data = {
        "id": entry.id,
        "email": entry.email,
        "status": entry.status,
        "last_status_change": entry.last_status_change,
        "admin_notes": entry.admin_notes,
        "priority_level": entry.priority_level,
        "previous_workshop_id": entry.previous_workshop_id,
        "has_paid_credit": entry.has_paid_credit,
        "created_at": entry.created_at,
    }
    if profile is not None:
        data.update(
            profile_id=profile.id,
            user_id=profile.supabase_user_id,
            first_name=profile.first_name,
            last_name=profile.last_name,
            phone_number=profile.phone_number,
            date_of_birth=profile.date_of_birth,
        )
    return data


async def list_waitlist(
    db: AsyncSession,
    *,
    status_filter: Optional[WaitlistStatus] = None,
    search: Optional[str] = None,
    page: int = 1,
    page_size: int = 50,
) -> tuple[list[dict], int]:
    query = _entry_with_profile_query()
    if status_filter:
        query = query.where(WaitlistEntry.status == status_filter)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.where(
            or_(
                WaitlistEntry.email.ilike(pattern),
                UserProfile.first_name.ilike(pattern),
                UserProfile.last_name.ilike(pattern),
            )
        )

    count_query = select(func.count()).select_from(query.subquery())
    total = (await db.execute(count_query)).scalar() or 0

    query = (
        query.order_by(WaitlistEntry.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    rows = (await db.execute(query)).all()
    return [entry_row_to_dict(entry, profile) for entry, profile in rows], total


async def get_waitlist_entry(db: AsyncSession, waitlist_id: uuid.UUID) -> dict:
    result = await db.execute(
        _entry_with_profile_query().where(WaitlistEntry.id == waitlist_id)
    )
    row = result.first()
    if not row:
        raise HTTPException(status_code=404, detail="Waitlist entry not found")
    return entry_row_to_dict(*row)


async def get_guardian(
    db: AsyncSession, profile_id: uuid.UUID
) -> Optional[WaitlistGuardian]:
    result = await db.execute(
        select(WaitlistGuardian).where(WaitlistGuardian.profile_id == profile_id)
    )
    return result.scalar_one_or_none()


def set_status(
    db: AsyncSession,
    entry: WaitlistEntry,
    new_status: WaitlistStatus,
    *,
    changed_by: Optional[str],
) -> None:
    """Apply a status change and record it. Caller commits."""
    if entry.status == new_status:
        return
    db.add(
        WaitlistStatusHistory(
            waitlist_id=entry.id,
            old_status=entry.status,
            new_status=new_status,
            changed_by=changed_by,
        )
    )
    entry.status = new_status
    entry.last_status_change = utc_now()


async def update_waitlist_status(
    db: AsyncSession,
    waitlist_id: uuid.UUID,
    new_status: WaitlistStatus,
    *,
    changed_by: Optional[str],
) -> WaitlistEntry:
    result = await db.execute(
        select(WaitlistEntry).where(WaitlistEntry.id == waitlist_id).with_for_update()
    )
    entry = result.scalar_one_or_none()
    if not entry:
        raise HTTPException(status_code=404, detail="Waitlist entry not found")

    old_status = entry.status
    set_status(db, entry, new_status, changed_by=changed_by)
    await db.commit()
    await db.refresh(entry)

    if old_status != new_status:
        logger.info(
            f"Waitlist {waitlist_id} status {old_status.value} -> {new_status.value}",
            extra={"extra_fields": {"changed_by": changed_by}},
        )
    return entry


async def update_admin_notes(
    db: AsyncSession, waitlist_id: uuid.UUID, notes: str
) -> WaitlistEntry:
    entry = await db.get(WaitlistEntry, waitlist_id)
    if not entry:
        raise HTTPException(status_code=404, detail="Waitlist entry not found")
    entry.admin_notes = notes
    await db.commit()
    await db.refresh(entry)
    return entry


async def get_status_history(
    db: AsyncSession, waitlist_id: uuid.UUID
) -> list[WaitlistStatusHistory]:
    result = await db.execute(
        select(WaitlistStatusHistory)
        .where(WaitlistStatusHistory.waitlist_id == waitlist_id)
        .order_by(WaitlistStatusHistory.changed_at.desc())
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Workshop priority queue
# ---------------------------------------------------------------------------


async def get_prioritized_waitlist(
    db: AsyncSession,
    *,
    workshop_id: uuid.UUID,
    exclude_user_ids: Optional[list[str]] = None,
    limit: Optional[int] = None,
) -> list[tuple[WaitlistEntry, UserProfile]]:
    """Waiting applicants for a workshop, highest priority then oldest first.

    Applicants cancelled from this same workshop and those already attending
    (``exclude_user_ids``) are left out.
    """
    query = (
        select(WaitlistEntry, UserProfile)
        .join(UserProfile, UserProfile.waitlist_id == WaitlistEntry.id)
        .where(
            WaitlistEntry.status == WaitlistStatus.WAITING,
            UserProfile.supabase_user_id.is_not(None),
            or_(
                WaitlistEntry.previous_workshop_id.is_(None),
                WaitlistEntry.previous_workshop_id != workshop_id,
            ),
        )
        .order_by(WaitlistEntry.priority_level.desc(), WaitlistEntry.created_at.asc())
    )
    if exclude_user_ids:
        query = query.where(UserProfile.supabase_user_id.not_in(exclude_user_ids))
    if limit:
        query = query.limit(limit)

    rows = (await db.execute(query)).all()
    return [(entry, profile) for entry, profile in rows]


async def move_cancelled_attendee_to_waitlist(
    db: AsyncSession,
    *,
    user_id: str,
    workshop_id: uuid.UUID,
    notes: Optional[str] = None,
) -> WaitlistEntry:
    """Put a cancelled workshop attendee back at the front of the queue."""
    result = await db.execute(
        select(WaitlistEntry)
        .join(UserProfile, UserProfile.waitlist_id == WaitlistEntry.id)
        .where(UserProfile.supabase_user_id == user_id)
        .with_for_update(of=WaitlistEntry)
    )
    entry = result.scalar_one_or_none()
    if not entry:
        raise HTTPException(status_code=404, detail="Waitlist entry not found")

    set_status(db, entry, WaitlistStatus.WAITING, changed_by="workshop_cancellation")
    entry.priority_level = WaitlistPriority.CANCELLED_PRIORITY.value
    entry.previous_workshop_id = workshop_id
    note = CANCELLED_PRIORITY_NOTE
    if notes:
        note = f"{note} {notes}"
    entry.append_note(note)

    await db.commit()
    await db.refresh(entry)
    logger.info(
        "Cancelled attendee requeued with priority",
        extra={"extra_fields": {"waitlist_id": str(entry.id), "workshop_id": str(workshop_id)}},
    )
    return entry


async def reset_waitlist_priority_after_workshop(
    db: AsyncSession, workshop_id: uuid.UUID
) -> int:
    """Expire cancellation priority once the workshop it came from is over."""
    result = await db.execute(
        select(WaitlistEntry)
        .where(
            WaitlistEntry.priority_level == WaitlistPriority.CANCELLED_PRIORITY.value,
            WaitlistEntry.previous_workshop_id == workshop_id,
        )
        .with_for_update()
    )
    entries = list(result.scalars().all())
    for entry in entries:
        entry.priority_level = WaitlistPriority.NORMAL.value
        entry.append_note(f"[Priority expired after workshop {workshop_id}]")

    await db.commit()
    if entries:
        logger.info(f"Reset waitlist priority for {len(entries)} entries after workshop {workshop_id}")
    return len(entries)
