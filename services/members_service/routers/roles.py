"""Club role administration (admin only)."""

from fastapi import APIRouter, Depends
from libs.auth.dependencies import require_admin
from libs.auth.models import AuthUser, ClubRole
from libs.common.supabase import SupabaseAuthAdmin, get_auth_admin
from libs.db.session import get_async_db
from services.members_service.schemas import RoleAssignment, UserRolesResponse
from services.members_service.services import member_ops
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/roles", tags=["roles"])


@router.get("/{user_id}", response_model=UserRolesResponse)
async def list_user_roles(
    user_id: str,
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    roles = await member_ops.list_user_roles(db, user_id)
    return UserRolesResponse(user_id=user_id, roles=roles)


@router.post("/{user_id}", response_model=UserRolesResponse)
async def add_user_role(
    user_id: str,
    payload: RoleAssignment,
    _admin: AuthUser = Depends(require_admin),
    auth_admin: SupabaseAuthAdmin = Depends(get_auth_admin),
    db: AsyncSession = Depends(get_async_db),
):
    roles = await member_ops.add_user_role(
        db, user_id=user_id, role=payload.role, auth_admin=auth_admin
    )
    return UserRolesResponse(user_id=user_id, roles=roles)


@router.delete("/{user_id}/{role}", response_model=UserRolesResponse)
async def remove_user_role(
    user_id: str,
    role: ClubRole,
    _admin: AuthUser = Depends(require_admin),
    auth_admin: SupabaseAuthAdmin = Depends(get_auth_admin),
    db: AsyncSession = Depends(get_async_db),
):
    roles = await member_ops.remove_user_role(
        db, user_id=user_id, role=role, auth_admin=auth_admin
    )
    return UserRolesResponse(user_id=user_id, roles=roles)
