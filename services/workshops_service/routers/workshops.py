"""Workshop scheduling endpoints."""

import uuid
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from libs.auth.dependencies import get_current_user, require_roles
from libs.auth.models import WORKSHOP_MANAGERS, AuthUser
from libs.common.stripe_client import StripeClient, get_stripe_client
from libs.db.session import get_async_db
from services.workshops_service.models import WorkshopStatus
from services.workshops_service.schemas import (
    CapacityResponse,
    InterestToggleResponse,
    MemberWorkshopResponse,
    WorkshopCreate,
    WorkshopListResponse,
    WorkshopResponse,
    WorkshopUpdate,
)
from services.workshops_service.services import registration_ops, workshop_ops
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/workshops", tags=["workshops"])

require_workshop_manager = require_roles(*WORKSHOP_MANAGERS)


@router.post("", response_model=WorkshopResponse, status_code=status.HTTP_201_CREATED)
async def create_workshop(
    payload: WorkshopCreate,
    current_user: AuthUser = Depends(require_workshop_manager),
    db: AsyncSession = Depends(get_async_db),
):
    return await workshop_ops.create_workshop(db, payload, created_by=current_user.user_id)


@router.get("", response_model=WorkshopListResponse)
async def list_workshops(
    status_filter: Optional[WorkshopStatus] = Query(None, alias="status"),
    start_from: Optional[datetime] = None,
    start_to: Optional[datetime] = None,
    created_by: Optional[str] = None,
    is_public: Optional[bool] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    _manager: AuthUser = Depends(require_workshop_manager),
    db: AsyncSession = Depends(get_async_db),
):
    items, total = await workshop_ops.list_workshops(
        db,
        status_filter=status_filter,
        start_from=start_from,
        start_to=start_to,
        created_by=created_by,
        is_public=is_public,
        page=page,
        page_size=page_size,
    )
    return WorkshopListResponse(
        items=[WorkshopResponse.model_validate(w) for w in items],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/member", response_model=list[MemberWorkshopResponse])
async def list_member_workshops(
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Upcoming workshops with the caller's interest and registration state."""
    rows = await workshop_ops.list_member_workshops(db, user_id=current_user.user_id)
    return [
        MemberWorkshopResponse(
            **WorkshopResponse.model_validate(row.pop("workshop")).model_dump(), **row
        )
        for row in rows
    ]


@router.get("/{workshop_id}", response_model=WorkshopResponse)
async def get_workshop(
    workshop_id: uuid.UUID,
    _user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    return await workshop_ops.get_workshop(db, workshop_id)


@router.patch("/{workshop_id}", response_model=WorkshopResponse)
async def update_workshop(
    workshop_id: uuid.UUID,
    changes: WorkshopUpdate,
    _manager: AuthUser = Depends(require_workshop_manager),
    db: AsyncSession = Depends(get_async_db),
):
    return await workshop_ops.update_workshop(db, workshop_id, changes)


@router.delete("/{workshop_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_workshop(
    workshop_id: uuid.UUID,
    _manager: AuthUser = Depends(require_workshop_manager),
    db: AsyncSession = Depends(get_async_db),
):
    await workshop_ops.delete_workshop(db, workshop_id)


@router.post("/{workshop_id}/publish", response_model=WorkshopResponse)
async def publish_workshop(
    workshop_id: uuid.UUID,
    _manager: AuthUser = Depends(require_workshop_manager),
    db: AsyncSession = Depends(get_async_db),
):
    return await workshop_ops.publish_workshop(db, workshop_id)


@router.post("/{workshop_id}/cancel", response_model=WorkshopResponse)
async def cancel_workshop(
    workshop_id: uuid.UUID,
    _manager: AuthUser = Depends(require_workshop_manager),
    stripe_client: StripeClient = Depends(get_stripe_client),
    db: AsyncSession = Depends(get_async_db),
):
    """Cancel a published workshop, refunding every paid seat."""
    workshop, _refunded = await workshop_ops.cancel_workshop(
        db, workshop_id, stripe_client=stripe_client
    )
    return workshop


@router.post("/{workshop_id}/finish", response_model=WorkshopResponse)
async def finish_workshop(
    workshop_id: uuid.UUID,
    _manager: AuthUser = Depends(require_workshop_manager),
    db: AsyncSession = Depends(get_async_db),
):
    return await workshop_ops.finish_workshop(db, workshop_id)


@router.get("/{workshop_id}/capacity", response_model=CapacityResponse)
async def check_workshop_capacity(
    workshop_id: uuid.UUID,
    _user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    return await registration_ops.check_workshop_capacity(db, workshop_id)


@router.post("/{workshop_id}/interest", response_model=InterestToggleResponse)
async def toggle_interest(
    workshop_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    return await registration_ops.toggle_interest(
        db, workshop_id, user_id=current_user.user_id
    )
