"""Refund and attendance endpoints for workshop managers."""

import uuid

from fastapi import APIRouter, Depends, status
from libs.auth.dependencies import require_roles
from libs.auth.models import WORKSHOP_MANAGERS, AuthUser
from libs.common.stripe_client import StripeClient, get_stripe_client
from libs.db.session import get_async_db
from services.workshops_service.schemas import (
    AttendanceBatchUpdate,
    AttendeeResponse,
    RefundEligibility,
    RefundRequest,
    RefundResponse,
    RefundStatusUpdate,
    RegistrationResponse,
)
from services.workshops_service.services import attendance_ops, refund_ops
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/workshops", tags=["workshop-refunds"])

require_workshop_manager = require_roles(*WORKSHOP_MANAGERS)


@router.get(
    "/registrations/{registration_id}/refund-eligibility",
    response_model=RefundEligibility,
)
async def check_refund_eligibility(
    registration_id: uuid.UUID,
    _manager: AuthUser = Depends(require_workshop_manager),
    db: AsyncSession = Depends(get_async_db),
):
    return await refund_ops.check_refund_eligibility(db, registration_id)


@router.post(
    "/refunds", response_model=RefundResponse, status_code=status.HTTP_201_CREATED
)
async def process_refund(
    payload: RefundRequest,
    current_user: AuthUser = Depends(require_workshop_manager),
    stripe_client: StripeClient = Depends(get_stripe_client),
    db: AsyncSession = Depends(get_async_db),
):
    return await refund_ops.process_refund(
        db,
        payload.registration_id,
        reason=payload.reason,
        actor_id=current_user.user_id,
        stripe_client=stripe_client,
    )


@router.patch("/refunds/{refund_id}/status", response_model=RefundResponse)
async def update_refund_status(
    refund_id: uuid.UUID,
    payload: RefundStatusUpdate,
    _manager: AuthUser = Depends(require_workshop_manager),
    db: AsyncSession = Depends(get_async_db),
):
    return await refund_ops.update_refund_status(db, refund_id, payload.status)


@router.get("/{workshop_id}/refunds", response_model=list[RefundResponse])
async def list_workshop_refunds(
    workshop_id: uuid.UUID,
    _manager: AuthUser = Depends(require_workshop_manager),
    db: AsyncSession = Depends(get_async_db),
):
    return await refund_ops.list_workshop_refunds(db, workshop_id)


# ---------------------------------------------------------------------------
# Attendance
# ---------------------------------------------------------------------------


@router.get("/{workshop_id}/attendance", response_model=list[AttendeeResponse])
async def get_workshop_attendance(
    workshop_id: uuid.UUID,
    _manager: AuthUser = Depends(require_workshop_manager),
    db: AsyncSession = Depends(get_async_db),
):
    return await attendance_ops.get_workshop_attendance(db, workshop_id)


@router.put("/{workshop_id}/attendance", response_model=list[RegistrationResponse])
async def update_attendance(
    workshop_id: uuid.UUID,
    payload: AttendanceBatchUpdate,
    current_user: AuthUser = Depends(require_workshop_manager),
    db: AsyncSession = Depends(get_async_db),
):
    return await attendance_ops.update_attendance(
        db, workshop_id, payload.attendance_updates, actor_id=current_user.user_id
    )
