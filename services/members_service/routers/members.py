"""Member profile, management and subscription endpoints."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from libs.auth.dependencies import get_current_user, require_roles
from libs.auth.models import INVITATION_ADMINS, AuthUser, ClubRole
from libs.common.stripe_client import StripeClient, get_stripe_client
from libs.common.supabase import SupabaseAuthAdmin, get_auth_admin
from libs.db.session import get_async_db
from services.members_service.schemas import (
    CompleteRegistrationRequest,
    MemberListResponse,
    MemberResponse,
    MemberUpdate,
    SubscriptionPauseRequest,
    SubscriptionStatusResponse,
)
from services.members_service.services import member_ops, subscription_ops
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/members", tags=["members"])

# Committee roles that manage the member list.
require_member_manager = require_roles(
    *INVITATION_ADMINS,
    ClubRole.TREASURER,
    ClubRole.BEGINNERS_COORDINATOR,
)


@router.get("/me", response_model=MemberResponse)
async def get_my_member_profile(
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    return await member_ops.get_my_member_profile(db, current_user.user_id)


@router.patch("/me", response_model=MemberResponse)
async def update_my_profile(
    changes: MemberUpdate,
    current_user: AuthUser = Depends(get_current_user),
    stripe_client: StripeClient = Depends(get_stripe_client),
    db: AsyncSession = Depends(get_async_db),
):
    """Update your own profile. Name and phone changes reach the payment customer."""
    return await member_ops.update_profile(
        db, user=current_user, changes=changes, stripe_client=stripe_client
    )


@router.post("/registration", response_model=MemberResponse, status_code=201)
async def complete_member_registration(
    payload: CompleteRegistrationRequest,
    _admin: AuthUser = Depends(require_roles(*INVITATION_ADMINS)),
    auth_admin: SupabaseAuthAdmin = Depends(get_auth_admin),
    db: AsyncSession = Depends(get_async_db),
):
    member = await member_ops.complete_member_registration(
        db,
        user_id=payload.user_id,
        next_of_kin_name=payload.next_of_kin_name,
        next_of_kin_phone=payload.next_of_kin_phone,
        insurance_form_submitted=payload.insurance_form_submitted,
        auth_admin=auth_admin,
    )
    return await member_ops.get_member(db, member.id)


@router.get("", response_model=MemberListResponse)
async def list_members(
    search: Optional[str] = None,
    is_active: Optional[bool] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    _manager: AuthUser = Depends(require_member_manager),
    db: AsyncSession = Depends(get_async_db),
):
    items, total = await member_ops.list_members(
        db, search=search, is_active=is_active, page=page, page_size=page_size
    )
    return MemberListResponse(
        items=[MemberResponse(**item) for item in items],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{member_id}", response_model=MemberResponse)
async def get_member(
    member_id: uuid.UUID,
    _manager: AuthUser = Depends(require_member_manager),
    db: AsyncSession = Depends(get_async_db),
):
    return await member_ops.get_member(db, member_id)


@router.patch("/{member_id}", response_model=MemberResponse)
async def update_member(
    member_id: uuid.UUID,
    changes: MemberUpdate,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    return await member_ops.update_member(db, member_id, changes, actor=current_user)


@router.post(
    "/{member_id}/subscription/pause", response_model=SubscriptionStatusResponse
)
async def pause_subscription(
    member_id: uuid.UUID,
    payload: SubscriptionPauseRequest,
    current_user: AuthUser = Depends(get_current_user),
    stripe_client: StripeClient = Depends(get_stripe_client),
    db: AsyncSession = Depends(get_async_db),
):
    member, subscription_id = await subscription_ops.pause_subscription(
        db,
        member_id=member_id,
        pause_until=payload.pause_until,
        actor=current_user,
        stripe_client=stripe_client,
    )
    return SubscriptionStatusResponse(
        member_id=member.id,
        subscription_id=subscription_id,
        subscription_paused_until=member.subscription_paused_until,
    )


@router.post(
    "/{member_id}/subscription/resume", response_model=SubscriptionStatusResponse
)
async def resume_subscription(
    member_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    stripe_client: StripeClient = Depends(get_stripe_client),
    db: AsyncSession = Depends(get_async_db),
):
    member, subscription_id = await subscription_ops.resume_subscription(
        db, member_id=member_id, actor=current_user, stripe_client=stripe_client
    )
    return SubscriptionStatusResponse(
        member_id=member.id,
        subscription_id=subscription_id,
        subscription_paused_until=None,
    )
