"""Attendance marking for confirmed attendees."""

import uuid

from fastapi import HTTPException, status
from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from services.workshops_service.models import RegistrationStatus, WorkshopRegistration
from services.workshops_service.schemas import AttendanceUpdate
from services.workshops_service.services.registration_ops import attendee_rows
from services.workshops_service.services.workshop_ops import get_workshop
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


async def get_workshop_attendance(db: AsyncSession, workshop_id: uuid.UUID) -> list[dict]:
    await get_workshop(db, workshop_id)
    return await attendee_rows(db, workshop_id, (RegistrationStatus.CONFIRMED,))


async def update_attendance(
    db: AsyncSession,
    workshop_id: uuid.UUID,
    updates: list[AttendanceUpdate],
    *,
    actor_id: str,
) -> list[WorkshopRegistration]:
    workshop = await get_workshop(db, workshop_id)
    if utc_now() < workshop.start_date:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot update attendance for a workshop that has not started yet",
        )

    by_id = {u.registration_id: u for u in updates}
    result = await db.execute(
        select(WorkshopRegistration)
        .where(
            WorkshopRegistration.workshop_id == workshop_id,
            WorkshopRegistration.id.in_(list(by_id)),
        )
        .with_for_update()
    )
    registrations = list(result.scalars().all())

    now = utc_now()
    for registration in registrations:
        update = by_id[registration.id]
        registration.attendance_status = update.attendance_status
        registration.attendance_marked_at = now
        registration.attendance_marked_by = actor_id
        registration.attendance_notes = update.notes
    await db.commit()

    skipped = len(by_id) - len(registrations)
    if skipped:
        logger.warning(
            f"Skipped {skipped} attendance updates not belonging to workshop {workshop_id}"
        )
    return registrations
