"""Invitation endpoints.

Invitees use the info/validate/credentials/pricing/signup routes; the
committee manages invitations through the rest.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from libs.auth.dependencies import get_current_user, get_optional_user
from libs.auth.models import INVITATION_ADMINS, AuthUser
from libs.common.error_handler import DomainError, ErrorCode
from libs.common.rate_limit import admin_limit, auth_limit, payment_limit
from libs.common.stripe_client import StripeClient, get_stripe_client
from libs.common.supabase import SupabaseAuthAdmin, get_auth_admin
from libs.db.session import get_async_db
from pydantic import BaseModel
from services.members_service.models import InvitationStatus, InvitationType
from services.members_service.schemas import (
    BulkInvitationCreate,
    BulkInvitationResult,
    InvitationCreate,
    InvitationCredentials,
    InvitationInfo,
    InvitationResponse,
    InvitationStatusUpdate,
    InvitationValidity,
    MemberSignupRequest,
    MemberSignupResponse,
    PlanPricing,
)
from services.members_service.services import invitation_ops, signup_ops
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/invitations", tags=["invitations"])


async def require_invitation_admin(
    current_user: AuthUser = Depends(get_current_user),
) -> AuthUser:
    if not current_user.has_any_role(INVITATION_ADMINS):
        raise DomainError(
            ErrorCode.PERMISSION_DENIED,
            "Permission denied: admin role required to manage invitations",
        )
    return current_user


class InvitationListResponse(BaseModel):
    items: list[InvitationResponse]
    total: int
    page: int
    page_size: int


class InvitationAcceptRequest(BaseModel):
    next_of_kin_name: str
    next_of_kin_phone: str
    insurance_form_submitted: bool


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "0.0.0.0"


# ---------------------------------------------------------------------------
# Invitee routes
# ---------------------------------------------------------------------------


@router.get("/{invitation_id}/info", response_model=InvitationInfo)
async def get_invitation_info(
    invitation_id: uuid.UUID,
    current_user: Optional[AuthUser] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_async_db),
):
    return await invitation_ops.get_invitation_info(db, invitation_id, caller=current_user)


@router.get("/{invitation_id}/validate", response_model=InvitationValidity)
@auth_limit
async def validate_invitation(
    request: Request,
    invitation_id: uuid.UUID,
    db: AsyncSession = Depends(get_async_db),
):
    valid = await invitation_ops.validate_invitation(db, invitation_id)
    return InvitationValidity(invitation_id=invitation_id, valid=valid)


@router.post("/{invitation_id}/credentials", response_model=InvitationValidity)
@auth_limit
async def validate_credentials(
    request: Request,
    invitation_id: uuid.UUID,
    payload: InvitationCredentials,
    db: AsyncSession = Depends(get_async_db),
):
    """Check an invitee's email and date of birth against the invitation."""
    await invitation_ops.validate_credentials(
        db, invitation_id, email=payload.email, date_of_birth=payload.date_of_birth
    )
    return InvitationValidity(invitation_id=invitation_id, valid=True)


@router.get("/{invitation_id}/pricing", response_model=PlanPricing)
async def get_plan_pricing(
    invitation_id: uuid.UUID,
    coupon: Optional[str] = Query(None, max_length=100),
    current_user: AuthUser = Depends(get_current_user),
    stripe_client: StripeClient = Depends(get_stripe_client),
    db: AsyncSession = Depends(get_async_db),
):
    return await signup_ops.get_plan_pricing(
        db,
        invitation_id,
        caller=current_user,
        promotion_code=coupon,
        stripe_client=stripe_client,
    )


@router.post("/{invitation_id}/signup", response_model=MemberSignupResponse)
@payment_limit
async def complete_signup(
    request: Request,
    invitation_id: uuid.UUID,
    payload: MemberSignupRequest,
    current_user: AuthUser = Depends(get_current_user),
    stripe_client: StripeClient = Depends(get_stripe_client),
    auth_admin: SupabaseAuthAdmin = Depends(get_auth_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Accept the invitation and start the membership subscriptions."""
    return await signup_ops.complete_signup(
        db,
        invitation_id,
        payload,
        caller=current_user,
        ip_address=_client_ip(request),
        user_agent=request.headers.get("User-Agent", ""),
        stripe_client=stripe_client,
        auth_admin=auth_admin,
    )


@router.post("/{invitation_id}/accept", response_model=MemberSignupResponse)
async def accept_invitation(
    invitation_id: uuid.UUID,
    payload: InvitationAcceptRequest,
    current_user: AuthUser = Depends(get_current_user),
    auth_admin: SupabaseAuthAdmin = Depends(get_auth_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Accept without payment; the invitee or an invitation admin may call this."""
    info = await invitation_ops.get_invitation_info(db, invitation_id, caller=current_user)
    member = await invitation_ops.process_invitation_acceptance(
        db,
        invitation_id,
        next_of_kin_name=payload.next_of_kin_name,
        next_of_kin_phone=payload.next_of_kin_phone,
        insurance_form_submitted=payload.insurance_form_submitted,
        auth_admin=auth_admin,
    )
    return MemberSignupResponse(
        user_id=info["user_id"], member_profile_id=member.id, subscriptions=[]
    )


# ---------------------------------------------------------------------------
# Committee routes
# ---------------------------------------------------------------------------


@router.post("", response_model=InvitationResponse, status_code=status.HTTP_201_CREATED)
async def create_invitation(
    payload: InvitationCreate,
    current_user: AuthUser = Depends(require_invitation_admin),
    auth_admin: SupabaseAuthAdmin = Depends(get_auth_admin),
    db: AsyncSession = Depends(get_async_db),
):
    return await invitation_ops.create_invitation(
        db, payload, created_by=current_user.user_id, auth_admin=auth_admin
    )


@router.post("/bulk", response_model=list[BulkInvitationResult])
@admin_limit
async def bulk_create_invitations(
    request: Request,
    payload: BulkInvitationCreate,
    current_user: AuthUser = Depends(require_invitation_admin),
    auth_admin: SupabaseAuthAdmin = Depends(get_auth_admin),
    db: AsyncSession = Depends(get_async_db),
):
    return await invitation_ops.bulk_create_invitations(
        db, payload.invitations, created_by=current_user.user_id, auth_admin=auth_admin
    )


@router.get("", response_model=InvitationListResponse)
async def list_invitations(
    invitation_status: Optional[InvitationStatus] = Query(None, alias="status"),
    email: Optional[str] = None,
    user_id: Optional[str] = None,
    invitation_type: Optional[InvitationType] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    _admin: AuthUser = Depends(require_invitation_admin),
    db: AsyncSession = Depends(get_async_db),
):
    items, total = await invitation_ops.list_invitations(
        db,
        status_filter=invitation_status,
        email=email,
        user_id=user_id,
        invitation_type=invitation_type,
        page=page,
        page_size=page_size,
    )
    return InvitationListResponse(
        items=[InvitationResponse.model_validate(i) for i in items],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{invitation_id}", response_model=InvitationResponse)
async def get_invitation(
    invitation_id: uuid.UUID,
    _admin: AuthUser = Depends(require_invitation_admin),
    db: AsyncSession = Depends(get_async_db),
):
    return await invitation_ops.get_invitation(db, invitation_id)


@router.patch("/{invitation_id}/status", response_model=InvitationResponse)
async def update_invitation_status(
    invitation_id: uuid.UUID,
    payload: InvitationStatusUpdate,
    _admin: AuthUser = Depends(require_invitation_admin),
    db: AsyncSession = Depends(get_async_db),
):
    return await invitation_ops.update_invitation_status(db, invitation_id, payload.status)


@router.post("/{invitation_id}/revoke", response_model=InvitationResponse)
async def revoke_invitation(
    invitation_id: uuid.UUID,
    _admin: AuthUser = Depends(require_invitation_admin),
    db: AsyncSession = Depends(get_async_db),
):
    return await invitation_ops.revoke_invitation(db, invitation_id)
