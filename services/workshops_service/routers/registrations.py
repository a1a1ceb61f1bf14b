"""Workshop registration endpoints for members and external attendees."""

import uuid

from fastapi import APIRouter, Depends, Query, Request, status
from libs.auth.dependencies import get_current_user, require_roles
from libs.auth.models import WORKSHOP_MANAGERS, AuthUser
from libs.common.rate_limit import payment_limit
from libs.common.stripe_client import StripeClient, get_stripe_client
from libs.db.session import get_async_db
from services.workshops_service.schemas import (
    AttendeeResponse,
    CancelRegistrationResponse,
    CompleteRegistrationRequest,
    ExternalPaymentIntentRequest,
    ExternalRegistrationRequest,
    InviteFromWaitlistRequest,
    InviteFromWaitlistResponse,
    ManualAttendeeCreate,
    PaymentIntentResponse,
    RegistrationResponse,
    UserSearchResult,
)
from services.workshops_service.services import registration_ops
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/workshops", tags=["workshop-registrations"])

require_workshop_manager = require_roles(*WORKSHOP_MANAGERS)


@router.post("/{workshop_id}/payment-intent", response_model=PaymentIntentResponse)
@payment_limit
async def create_payment_intent(
    request: Request,
    workshop_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    stripe_client: StripeClient = Depends(get_stripe_client),
    db: AsyncSession = Depends(get_async_db),
):
    return await registration_ops.create_payment_intent(
        db, workshop_id, user=current_user, stripe_client=stripe_client
    )


@router.post(
    "/{workshop_id}/register",
    response_model=RegistrationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def complete_registration(
    workshop_id: uuid.UUID,
    payload: CompleteRegistrationRequest,
    current_user: AuthUser = Depends(get_current_user),
    stripe_client: StripeClient = Depends(get_stripe_client),
    db: AsyncSession = Depends(get_async_db),
):
    return await registration_ops.complete_registration(
        db,
        workshop_id,
        payment_intent_id=payload.payment_intent_id,
        user=current_user,
        stripe_client=stripe_client,
    )


@router.post(
    "/{workshop_id}/external/payment-intent", response_model=PaymentIntentResponse
)
@payment_limit
async def create_external_payment_intent(
    request: Request,
    workshop_id: uuid.UUID,
    payload: ExternalPaymentIntentRequest,
    stripe_client: StripeClient = Depends(get_stripe_client),
    db: AsyncSession = Depends(get_async_db),
):
    """Public: pay the non-member price for a public workshop."""
    return await registration_ops.create_external_payment_intent(
        db, workshop_id, email=payload.email, stripe_client=stripe_client
    )


@router.post(
    "/{workshop_id}/external/register",
    response_model=RegistrationResponse,
    status_code=status.HTTP_201_CREATED,
)
@payment_limit
async def register_external_user(
    request: Request,
    workshop_id: uuid.UUID,
    payload: ExternalRegistrationRequest,
    stripe_client: StripeClient = Depends(get_stripe_client),
    db: AsyncSession = Depends(get_async_db),
):
    return await registration_ops.register_external_user(
        db, workshop_id, payload, stripe_client=stripe_client
    )


@router.delete("/{workshop_id}/registration", response_model=CancelRegistrationResponse)
async def cancel_registration(
    workshop_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    return await registration_ops.cancel_registration(
        db, workshop_id, user_id=current_user.user_id
    )


@router.get("/{workshop_id}/attendees", response_model=list[AttendeeResponse])
async def get_workshop_attendees(
    workshop_id: uuid.UUID,
    _manager: AuthUser = Depends(require_workshop_manager),
    db: AsyncSession = Depends(get_async_db),
):
    return await registration_ops.get_workshop_attendees(db, workshop_id)


@router.post(
    "/{workshop_id}/invite-from-waitlist", response_model=InviteFromWaitlistResponse
)
async def invite_from_waitlist(
    workshop_id: uuid.UUID,
    payload: InviteFromWaitlistRequest,
    _manager: AuthUser = Depends(require_workshop_manager),
    db: AsyncSession = Depends(get_async_db),
):
    return await registration_ops.invite_from_waitlist(
        db, workshop_id, limit=payload.limit
    )


@router.get("/{workshop_id}/search-users", response_model=list[UserSearchResult])
async def search_users(
    workshop_id: uuid.UUID,
    q: str = Query(..., max_length=100),
    _manager: AuthUser = Depends(require_workshop_manager),
    db: AsyncSession = Depends(get_async_db),
):
    """Find club members to add by hand; current attendees are left out."""
    return await registration_ops.search_users(db, workshop_id, q)


@router.post(
    "/{workshop_id}/attendees",
    response_model=RegistrationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_attendee(
    workshop_id: uuid.UUID,
    payload: ManualAttendeeCreate,
    current_user: AuthUser = Depends(require_workshop_manager),
    db: AsyncSession = Depends(get_async_db),
):
    return await registration_ops.add_attendee(
        db, workshop_id, user_id=payload.user_id, actor_id=current_user.user_id
    )


@router.post("/{workshop_id}/check-in", response_model=RegistrationResponse)
async def check_in(
    workshop_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    return await registration_ops.check_in(db, workshop_id, user_id=current_user.user_id)
