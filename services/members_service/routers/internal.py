"""Internal service-to-service endpoints for members-service.

These endpoints are authenticated with service_role JWT only.
They are NOT exposed through the gateway; the workshops service calls
them directly.
"""

from fastapi import APIRouter, Depends
from libs.auth.dependencies import require_service_role
from libs.auth.models import AuthUser
from libs.common.supabase import SupabaseAuthAdmin, get_auth_admin
from libs.db.session import get_async_db
from services.members_service.schemas import (
    InternalInvitationCreate,
    InvitationResponse,
    PrioritizedWaitlistEntry,
    PrioritizedWaitlistRequest,
    PriorityRequeueRequest,
    PriorityResetRequest,
    ProfileBulkRequest,
    ProfileSearchRequest,
    ProfileSummary,
)
from services.members_service.services import invitation_ops, member_ops, waitlist_ops
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/internal", tags=["internal"])


@router.post("/profiles/bulk", response_model=list[ProfileSummary])
async def get_profiles_bulk(
    payload: ProfileBulkRequest,
    _service: AuthUser = Depends(require_service_role),
    db: AsyncSession = Depends(get_async_db),
):
    """Names and contact details for a list of auth user ids."""
    return await member_ops.get_profiles_bulk(db, payload.user_ids)


@router.post("/profiles/search", response_model=list[ProfileSummary])
async def search_profiles(
    payload: ProfileSearchRequest,
    _service: AuthUser = Depends(require_service_role),
    db: AsyncSession = Depends(get_async_db),
):
    return await member_ops.search_profiles(
        db,
        payload.query,
        exclude_user_ids=payload.exclude_user_ids,
        limit=payload.limit,
    )


@router.post("/waitlist/prioritized", response_model=list[PrioritizedWaitlistEntry])
async def get_prioritized_waitlist(
    payload: PrioritizedWaitlistRequest,
    _service: AuthUser = Depends(require_service_role),
    db: AsyncSession = Depends(get_async_db),
):
    rows = await waitlist_ops.get_prioritized_waitlist(
        db,
        workshop_id=payload.workshop_id,
        exclude_user_ids=payload.exclude_user_ids,
        limit=payload.limit,
    )
    return [
        PrioritizedWaitlistEntry(
            waitlist_id=entry.id,
            profile_id=profile.id,
            user_id=profile.supabase_user_id,
            email=entry.email,
            first_name=profile.first_name,
            last_name=profile.last_name,
            priority_level=entry.priority_level,
            created_at=entry.created_at,
        )
        for entry, profile in rows
    ]


@router.post("/waitlist/priority")
async def move_cancelled_attendee_to_waitlist(
    payload: PriorityRequeueRequest,
    _service: AuthUser = Depends(require_service_role),
    db: AsyncSession = Depends(get_async_db),
):
    entry = await waitlist_ops.move_cancelled_attendee_to_waitlist(
        db, user_id=payload.user_id, workshop_id=payload.workshop_id, notes=payload.notes
    )
    return {"waitlist_id": str(entry.id), "priority_level": entry.priority_level}


@router.post("/waitlist/reset-priority")
async def reset_waitlist_priority(
    payload: PriorityResetRequest,
    _service: AuthUser = Depends(require_service_role),
    db: AsyncSession = Depends(get_async_db),
):
    count = await waitlist_ops.reset_waitlist_priority_after_workshop(db, payload.workshop_id)
    return {"reset": count}


@router.post("/invitations", response_model=InvitationResponse)
async def create_internal_invitation(
    payload: InternalInvitationCreate,
    service: AuthUser = Depends(require_service_role),
    auth_admin: SupabaseAuthAdmin = Depends(get_auth_admin),
    db: AsyncSession = Depends(get_async_db),
):
    return await invitation_ops.create_internal_invitation(
        db, payload, created_by=service.user_id, auth_admin=auth_admin
    )
