"""Member registration, member management and club role operations.

Role changes are written to ``user_roles`` and then published to the auth
user's ``app_metadata.roles`` so new tokens carry them.
"""

import uuid
from typing import Optional

from fastapi import HTTPException, status
from libs.auth.models import AuthUser, ClubRole
from libs.common.error_handler import DomainError, ErrorCode
from libs.common.logging import get_logger
from libs.common.stripe_client import StripeClient
from libs.common.supabase import SupabaseAuthAdmin
from services.members_service.models import (
    MemberProfile,
    UserProfile,
    UserRole,
    WaitlistEntry,
    WaitlistStatus,
)
from services.members_service.schemas import MemberUpdate
from services.members_service.services.waitlist_ops import set_status
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

USER_PROFILE_FIELDS = (
    "first_name",
    "last_name",
    "phone_number",
    "date_of_birth",
    "pronouns",
    "gender",
    "medical_conditions",
    "social_media_consent",
)
MEMBER_PROFILE_FIELDS = (
    "next_of_kin_name",
    "next_of_kin_phone",
    "preferred_weapon",
    "insurance_form_submitted",
    "additional_data",
)


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------


async def list_user_roles(db: AsyncSession, user_id: str) -> list[ClubRole]:
    result = await db.execute(
        select(UserRole.role).where(UserRole.user_id == user_id).order_by(UserRole.role)
    )
    return list(result.scalars().all())


async def grant_role(db: AsyncSession, user_id: str, role: ClubRole) -> bool:
    """Stage a role for the user. Returns False if already held. Caller commits."""
    result = await db.execute(
        select(UserRole.id).where(UserRole.user_id == user_id, UserRole.role == role)
    )
    if result.scalar_one_or_none():
        return False
    db.add(UserRole(user_id=user_id, role=role))
    await db.flush()
    return True


async def sync_roles(
    db: AsyncSession, user_id: str, auth_admin: SupabaseAuthAdmin
) -> list[ClubRole]:
    roles = await list_user_roles(db, user_id)
    await auth_admin.set_roles(user_id, [r.value for r in roles])
    return roles


async def add_user_role(
    db: AsyncSession, *, user_id: str, role: ClubRole, auth_admin: SupabaseAuthAdmin
) -> list[ClubRole]:
    if await grant_role(db, user_id, role):
        await db.commit()
        logger.info(f"Granted role {role.value} to {user_id}")
    return await sync_roles(db, user_id, auth_admin)


async def remove_user_role(
    db: AsyncSession, *, user_id: str, role: ClubRole, auth_admin: SupabaseAuthAdmin
) -> list[ClubRole]:
    result = await db.execute(
        select(UserRole).where(UserRole.user_id == user_id, UserRole.role == role)
    )
    user_role = result.scalar_one_or_none()
    if not user_role:
        raise HTTPException(status_code=404, detail="Role not assigned to user")
    await db.delete(user_role)
    await db.commit()
    logger.info(f"Removed role {role.value} from {user_id}")
    return await sync_roles(db, user_id, auth_admin)


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


async def get_profile_by_user_id(
    db: AsyncSession, user_id: str, *, for_update: bool = False
) -> Optional[UserProfile]:
    query = select(UserProfile).where(UserProfile.supabase_user_id == user_id)
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def register_member(
    db: AsyncSession,
    *,
    user_id: str,
    next_of_kin_name: str,
    next_of_kin_phone: str,
    insurance_form_submitted: bool,
) -> MemberProfile:
    """Create the member profile and activate the user. Caller commits."""
    profile = await get_profile_by_user_id(db, user_id, for_update=True)
    if not profile:
        raise HTTPException(status_code=404, detail="User not found")
    if not insurance_form_submitted:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You must submit the insurance form",
        )

    existing = await db.execute(
        select(MemberProfile.id).where(MemberProfile.user_profile_id == profile.id)
    )
    if existing.scalar_one_or_none():
        raise DomainError(ErrorCode.ALREADY_MEMBER, "User is already a member")

    member = MemberProfile(
        id=profile.id,
        user_profile_id=profile.id,
        next_of_kin_name=next_of_kin_name,
        next_of_kin_phone=next_of_kin_phone,
        preferred_weapon=[],
        insurance_form_submitted=insurance_form_submitted,
    )
    db.add(member)
    profile.is_active = True

    if profile.waitlist_id:
        entry = await db.get(WaitlistEntry, profile.waitlist_id)
        if entry:
            set_status(db, entry, WaitlistStatus.INVITED, changed_by="member_registration")

    await grant_role(db, user_id, ClubRole.MEMBER)
    await db.flush()
    return member


async def complete_member_registration(
    db: AsyncSession,
    *,
    user_id: str,
    next_of_kin_name: str,
    next_of_kin_phone: str,
    insurance_form_submitted: bool,
    auth_admin: SupabaseAuthAdmin,
) -> MemberProfile:
    member = await register_member(
        db,
        user_id=user_id,
        next_of_kin_name=next_of_kin_name,
        next_of_kin_phone=next_of_kin_phone,
        insurance_form_submitted=insurance_form_submitted,
    )
    await db.commit()
    await db.refresh(member)
    await sync_roles(db, user_id, auth_admin)
    logger.info(
        "Member registration completed",
        extra={"extra_fields": {"user_id": user_id, "member_id": str(member.id)}},
    )
    return member


# ---------------------------------------------------------------------------
# Member management
# ---------------------------------------------------------------------------


def _member_row(profile: UserProfile, member: MemberProfile, roles: list) -> dict:
    return {
        "id": member.id,
        "user_profile_id": profile.id,
        "user_id": profile.supabase_user_id,
        "email": profile.email,
        "first_name": profile.first_name,
        "last_name": profile.last_name,
        "phone_number": profile.phone_number,
        "date_of_birth": profile.date_of_birth,
        "pronouns": profile.pronouns,
        "gender": profile.gender,
        "medical_conditions": profile.medical_conditions,
        "social_media_consent": profile.social_media_consent,
        "is_active": profile.is_active,
        "customer_id": profile.customer_id,
        "next_of_kin_name": member.next_of_kin_name,
        "next_of_kin_phone": member.next_of_kin_phone,
        "preferred_weapon": member.preferred_weapon or [],
        "membership_start_date": member.membership_start_date,
        "membership_end_date": member.membership_end_date,
        "last_payment_date": member.last_payment_date,
        "insurance_form_submitted": member.insurance_form_submitted,
        "subscription_paused_until": member.subscription_paused_until,
        "additional_data": member.additional_data or {},
        "roles": [r.value for r in roles],
    }


async def _roles_by_user(db: AsyncSession, user_ids: list[str]) -> dict[str, list]:
    if not user_ids:
        return {}
    result = await db.execute(
        select(UserRole.user_id, UserRole.role).where(UserRole.user_id.in_(user_ids))
    )
    roles: dict[str, list] = {}
    for user_id, role in result.all():
        roles.setdefault(user_id, []).append(role)
    return roles


def _members_query():
    return select(UserProfile, MemberProfile).join(
        MemberProfile, MemberProfile.user_profile_id == UserProfile.id
    )


async def list_members(
    db: AsyncSession,
    *,
    search: Optional[str] = None,
    is_active: Optional[bool] = None,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[dict], int]:
    query = _members_query()
    if is_active is not None:
        query = query.where(UserProfile.is_active == is_active)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.where(
            or_(
                UserProfile.first_name.ilike(pattern),
                UserProfile.last_name.ilike(pattern),
                UserProfile.email.ilike(pattern),
                UserProfile.phone_number.ilike(pattern),
            )
        )

    count_query = select(func.count()).select_from(query.subquery())
    total = (await db.execute(count_query)).scalar() or 0

    query = (
        query.order_by(UserProfile.last_name, UserProfile.first_name)
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    rows = (await db.execute(query)).all()
    roles = await _roles_by_user(
        db, [p.supabase_user_id for p, _ in rows if p.supabase_user_id]
    )
    items = [
        _member_row(profile, member, roles.get(profile.supabase_user_id, []))
        for profile, member in rows
    ]
    return items, total


async def _get_member_pair(
    db: AsyncSession, member_id: uuid.UUID
) -> tuple[UserProfile, MemberProfile]:
    result = await db.execute(_members_query().where(MemberProfile.id == member_id))
    row = result.first()
    if not row:
        raise HTTPException(status_code=404, detail="Member not found")
    return row[0], row[1]


async def get_member(db: AsyncSession, member_id: uuid.UUID) -> dict:
    profile, member = await _get_member_pair(db, member_id)
    roles = await list_user_roles(db, profile.supabase_user_id)
    return _member_row(profile, member, roles)


async def get_my_member_profile(db: AsyncSession, user_id: str) -> dict:
    result = await db.execute(
        _members_query().where(UserProfile.supabase_user_id == user_id)
    )
    row = result.first()
    if not row:
        raise DomainError(ErrorCode.PROFILE_NOT_FOUND, "Member profile not found")
    roles = await list_user_roles(db, user_id)
    return _member_row(row[0], row[1], roles)


def _apply_changes(changes: MemberUpdate, profile: UserProfile, member: MemberProfile) -> set:
    """Apply set, non-null fields. Returns the names of applied fields."""
    data = {k: v for k, v in changes.model_dump(exclude_unset=True).items() if v is not None}
    for field, value in data.items():
        if field in USER_PROFILE_FIELDS:
            setattr(profile, field, value)
        elif field in MEMBER_PROFILE_FIELDS:
            setattr(member, field, value)
    return set(data)


async def update_member(
    db: AsyncSession,
    member_id: uuid.UUID,
    changes: MemberUpdate,
    *,
    actor: AuthUser,
) -> dict:
    profile, member = await _get_member_pair(db, member_id)
    if profile.supabase_user_id != actor.user_id and not actor.has_any_role([ClubRole.ADMIN]):
        raise DomainError(
            ErrorCode.PERMISSION_DENIED, "You can only update your own member profile"
        )

    _apply_changes(changes, profile, member)
    await db.commit()
    await db.refresh(profile)
    await db.refresh(member)
    roles = await list_user_roles(db, profile.supabase_user_id)
    return _member_row(profile, member, roles)


async def update_profile(
    db: AsyncSession,
    *,
    user: AuthUser,
    changes: MemberUpdate,
    stripe_client: StripeClient,
) -> dict:
    """Self-service profile edit; contact changes are mirrored to Stripe."""
    result = await db.execute(
        _members_query().where(UserProfile.supabase_user_id == user.user_id)
    )
    row = result.first()
    if not row:
        raise DomainError(ErrorCode.PROFILE_NOT_FOUND, "Member profile not found")
    profile, member = row[0], row[1]
    if not profile.customer_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No payment customer linked to this profile",
        )

    applied = _apply_changes(changes, profile, member)
    if applied & {"first_name", "last_name", "phone_number"}:
        await stripe_client.update_customer(
            profile.customer_id, name=profile.full_name, phone=profile.phone_number
        )

    await db.commit()
    await db.refresh(profile)
    await db.refresh(member)
    roles = await list_user_roles(db, user.user_id)
    return _member_row(profile, member, roles)


async def get_profiles_bulk(db: AsyncSession, user_ids: list[str]) -> list[UserProfile]:
    if not user_ids:
        return []
    result = await db.execute(
        select(UserProfile).where(UserProfile.supabase_user_id.in_(user_ids))
    )
    return list(result.scalars().all())


async def search_profiles(
    db: AsyncSession,
    query: str,
    *,
    exclude_user_ids: list[str],
    limit: int,
) -> list[UserProfile]:
    """Profiles with an auth account whose name or email matches every search term."""
    stmt = select(UserProfile).where(UserProfile.supabase_user_id.is_not(None))
    for term in query.split():
        pattern = f"%{term}%"
        stmt = stmt.where(
            or_(
                UserProfile.first_name.ilike(pattern),
                UserProfile.last_name.ilike(pattern),
                UserProfile.email.ilike(pattern),
            )
        )
    if exclude_user_ids:
        stmt = stmt.where(UserProfile.supabase_user_id.not_in(exclude_user_ids))
    stmt = stmt.order_by(UserProfile.first_name, UserProfile.last_name).limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all())
