"""Waitlist endpoints: public intake plus committee administration."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from libs.auth.dependencies import require_roles
from libs.auth.models import INVITATION_ADMINS, AuthUser
from libs.common.rate_limit import auth_limit
from libs.db.session import get_async_db
from services.members_service.models import WaitlistStatus
from services.members_service.schemas import (
    GuardianResponse,
    WaitlistEntryResponse,
    WaitlistListResponse,
    WaitlistNotesUpdate,
    WaitlistStatusUpdate,
    WaitlistSubmission,
    WaitlistSubmissionResponse,
)
from services.members_service.services import waitlist_ops
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/waitlist", tags=["waitlist"])

require_invitation_admin = require_roles(*INVITATION_ADMINS)


@router.post(
    "",
    response_model=WaitlistSubmissionResponse,
    status_code=status.HTTP_201_CREATED,
)
@auth_limit
async def submit_waitlist(
    request: Request,
    submission: WaitlistSubmission,
    db: AsyncSession = Depends(get_async_db),
):
    """Join the beginners' workshop waitlist."""
    entry, profile = await waitlist_ops.submit_waitlist_entry(db, submission)
    return WaitlistSubmissionResponse(
        profile_id=profile.id,
        waitlist_id=entry.id,
        email=entry.email,
        first_name=profile.first_name,
        last_name=profile.last_name,
    )


@router.get("", response_model=WaitlistListResponse)
async def list_waitlist(
    waitlist_status: Optional[WaitlistStatus] = Query(None, alias="status"),
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    _admin: AuthUser = Depends(require_invitation_admin),
    db: AsyncSession = Depends(get_async_db),
):
    items, total = await waitlist_ops.list_waitlist(
        db,
        status_filter=waitlist_status,
        search=search,
        page=page,
        page_size=page_size,
    )
    return WaitlistListResponse(
        items=[WaitlistEntryResponse(**item) for item in items],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/guardians/{profile_id}", response_model=GuardianResponse)
async def get_guardian(
    profile_id: uuid.UUID,
    _admin: AuthUser = Depends(require_invitation_admin),
    db: AsyncSession = Depends(get_async_db),
):
    guardian = await waitlist_ops.get_guardian(db, profile_id)
    if not guardian:
        raise HTTPException(status_code=404, detail="Guardian not found")
    return guardian


@router.get("/{waitlist_id}", response_model=WaitlistEntryResponse)
async def get_waitlist_entry(
    waitlist_id: uuid.UUID,
    _admin: AuthUser = Depends(require_invitation_admin),
    db: AsyncSession = Depends(get_async_db),
):
    return WaitlistEntryResponse(**await waitlist_ops.get_waitlist_entry(db, waitlist_id))


@router.get("/{waitlist_id}/history")
async def get_status_history(
    waitlist_id: uuid.UUID,
    _admin: AuthUser = Depends(require_invitation_admin),
    db: AsyncSession = Depends(get_async_db),
):
    history = await waitlist_ops.get_status_history(db, waitlist_id)
    return [
        {
            "old_status": h.old_status,
            "new_status": h.new_status,
            "changed_by": h.changed_by,
            "changed_at": h.changed_at,
        }
        for h in history
    ]


@router.patch("/{waitlist_id}/status", response_model=WaitlistEntryResponse)
async def update_waitlist_status(
    waitlist_id: uuid.UUID,
    payload: WaitlistStatusUpdate,
    current_user: AuthUser = Depends(require_invitation_admin),
    db: AsyncSession = Depends(get_async_db),
):
    await waitlist_ops.update_waitlist_status(
        db, waitlist_id, payload.status, changed_by=current_user.user_id
    )
    return WaitlistEntryResponse(**await waitlist_ops.get_waitlist_entry(db, waitlist_id))


@router.patch("/{waitlist_id}/notes", response_model=WaitlistEntryResponse)
async def update_admin_notes(
    waitlist_id: uuid.UUID,
    payload: WaitlistNotesUpdate,
    _admin: AuthUser = Depends(require_invitation_admin),
    db: AsyncSession = Depends(get_async_db),
):
    await waitlist_ops.update_admin_notes(db, waitlist_id, payload.admin_notes)
    return WaitlistEntryResponse(**await waitlist_ops.get_waitlist_entry(db, waitlist_id))
