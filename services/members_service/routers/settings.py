"""Club settings endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from libs.auth.dependencies import require_roles
from libs.auth.models import SETTINGS_ADMINS, AuthUser
from libs.db.session import get_async_db
from services.members_service.schemas import (
    InsuranceFormLinkUpdate,
    SettingResponse,
    SettingUpdate,
    WaitlistOpenResponse,
)
from services.members_service.services import settings_ops
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/settings", tags=["settings"])

require_settings_admin = require_roles(*SETTINGS_ADMINS)


@router.get("/waitlist-open", response_model=WaitlistOpenResponse)
async def is_waitlist_open(db: AsyncSession = Depends(get_async_db)):
    """Public: whether the waitlist form accepts submissions."""
    return WaitlistOpenResponse(open=await settings_ops.is_waitlist_open(db))


@router.post("/waitlist-open/toggle", response_model=SettingResponse)
async def toggle_waitlist(
    current_user: AuthUser = Depends(require_settings_admin),
    db: AsyncSession = Depends(get_async_db),
):
    await settings_ops.ensure_default_settings(db)
    return await settings_ops.toggle_setting(
        db, settings_ops.WAITLIST_OPEN, updated_by=current_user.user_id
    )


@router.put("/insurance-form-link", response_model=SettingResponse)
async def update_insurance_form_link(
    payload: InsuranceFormLinkUpdate,
    current_user: AuthUser = Depends(require_settings_admin),
    db: AsyncSession = Depends(get_async_db),
):
    await settings_ops.ensure_default_settings(db)
    return await settings_ops.update_setting(
        db,
        settings_ops.INSURANCE_FORM_LINK,
        str(payload.url),
        updated_by=current_user.user_id,
    )


@router.get("", response_model=list[SettingResponse])
async def list_settings(
    keys: Optional[list[str]] = Query(None),
    _admin: AuthUser = Depends(require_settings_admin),
    db: AsyncSession = Depends(get_async_db),
):
    return await settings_ops.list_settings(db, keys)


@router.get("/{key}", response_model=SettingResponse)
async def get_setting(
    key: str,
    _admin: AuthUser = Depends(require_settings_admin),
    db: AsyncSession = Depends(get_async_db),
):
    return await settings_ops.get_setting_or_404(db, key)


@router.put("/{key}", response_model=SettingResponse)
async def update_setting(
    key: str,
    payload: SettingUpdate,
    current_user: AuthUser = Depends(require_settings_admin),
    db: AsyncSession = Depends(get_async_db),
):
    return await settings_ops.update_setting(
        db, key, payload.value, updated_by=current_user.user_id
    )


@router.post("/{key}/toggle", response_model=SettingResponse)
async def toggle_setting(
    key: str,
    current_user: AuthUser = Depends(require_settings_admin),
    db: AsyncSession = Depends(get_async_db),
):
    return await settings_ops.toggle_setting(db, key, updated_by=current_user.user_id)
