"""Invitation lifecycle: pending -> accepted | expired | revoked.

Every status change locks the invitation row first so concurrent accept,
revoke and expiry attempts serialize on the database.
"""

import uuid
from typing import Optional

from fastapi import HTTPException
from libs.auth.models import INVITATION_ADMINS, AuthUser
from libs.common.error_handler import DomainError, ErrorCode
from libs.common.logging import get_logger
from libs.common.supabase import SupabaseAuthAdmin
from services.members_service.models import (
    Invitation,
    InvitationStatus,
    InvitationType,
    MemberProfile,
    UserProfile,
    WaitlistEntry,
    WaitlistStatus,
)
from services.members_service.models.invitation import _default_expiry
from services.members_service.schemas import (
    BulkInvitationResult,
    InternalInvitationCreate,
    InvitationCreate,
)
from services.members_service.services import member_ops
from services.members_service.services.waitlist_ops import set_status
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


def can_transition(current: InvitationStatus, new: InvitationStatus) -> bool:
    """Final statuses can only be re-set to themselves."""
    return current == new or not current.is_final


def _may_view_invitation(caller: Optional[AuthUser], invitation: Invitation) -> bool:
    if caller is None:
        return False
    if caller.user_id == invitation.user_id:
        return True
    return caller.is_service or caller.has_any_role(INVITATION_ADMINS)


async def _resolve_user_id(
    db: AsyncSession, payload: InvitationCreate, auth_admin: SupabaseAuthAdmin
) -> str:
    if payload.user_id:
        return payload.user_id

    result = await db.execute(
        select(UserProfile.supabase_user_id).where(
            func.lower(UserProfile.email) == payload.email,
            UserProfile.supabase_user_id.is_not(None),
        )
    )
    user_id = result.scalars().first()
    if user_id:
        return user_id

    try:
        return await auth_admin.create_user(
            email=payload.email,
            first_name=payload.first_name,
            last_name=payload.last_name,
            roles=[],
        )
    except Exception as e:
        logger.error(f"Auth user creation failed for invitation: {e}")
        raise DomainError(
            ErrorCode.INVITATION_CREATE_FAILED, "Could not create a user for this invitation"
        ) from e


async def _get_pending_for_user(db: AsyncSession, user_id: str) -> Optional[Invitation]:
    result = await db.execute(
        select(Invitation)
        .where(Invitation.user_id == user_id, Invitation.status == InvitationStatus.PENDING)
        .with_for_update()
    )
    return result.scalar_one_or_none()


async def _upsert_profile(
    db: AsyncSession, user_id: str, payload: InvitationCreate
) -> UserProfile:
    profile = await member_ops.get_profile_by_user_id(db, user_id, for_update=True)
    if profile is None and payload.waitlist_id:
        # Waitlist applicants already have a profile without an auth user.
        result = await db.execute(
            select(UserProfile)
            .where(
                UserProfile.waitlist_id == payload.waitlist_id,
                UserProfile.supabase_user_id.is_(None),
            )
            .with_for_update()
        )
        profile = result.scalar_one_or_none()
        if profile is not None:
            profile.supabase_user_id = user_id

    if profile is None:
        profile = UserProfile(
            supabase_user_id=user_id,
            email=payload.email,
            first_name=payload.first_name,
            last_name=payload.last_name,
            is_active=False,
            waitlist_id=payload.waitlist_id,
        )
        db.add(profile)

    profile.first_name = payload.first_name
    profile.last_name = payload.last_name
    if payload.date_of_birth:
        profile.date_of_birth = payload.date_of_birth
    if payload.phone_number:
        profile.phone_number = payload.phone_number
    await db.flush()
    return profile


async def create_invitation(
    db: AsyncSession,
    payload: InvitationCreate,
    *,
    created_by: Optional[str],
    auth_admin: SupabaseAuthAdmin,
) -> Invitation:
    """Invite someone to register, or refresh their pending invitation."""
    user_id = await _resolve_user_id(db, payload, auth_admin)
    expires_at = payload.expires_at or _default_expiry()

    invitation = await _get_pending_for_user(db, user_id)
    if invitation is not None:
        invitation.expires_at = expires_at
        if payload.metadata:
            invitation.invitation_metadata = payload.metadata
        await db.commit()
        await db.refresh(invitation)
        logger.info(f"Refreshed pending invitation {invitation.id} for {user_id}")
        return invitation

    await db.execute(
        update(Invitation)
        .where(Invitation.email == payload.email, Invitation.status == InvitationStatus.PENDING)
        .values(status=InvitationStatus.EXPIRED)
    )
    await _upsert_profile(db, user_id, payload)

    invitation = Invitation(
        email=payload.email,
        user_id=user_id,
        waitlist_id=payload.waitlist_id,
        status=InvitationStatus.PENDING,
        invitation_type=payload.invitation_type,
        expires_at=expires_at,
        created_by=created_by,
        invitation_metadata=payload.metadata,
    )
    db.add(invitation)
    await db.commit()
    await db.refresh(invitation)

    logger.info(
        "Invitation created",
        extra={"extra_fields": {
            "invitation_id": str(invitation.id),
            "invitation_type": invitation.invitation_type.value,
            "created_by": created_by,
        }},
    )
    return invitation


async def create_internal_invitation(
    db: AsyncSession,
    payload: InternalInvitationCreate,
    *,
    created_by: str,
    auth_admin: SupabaseAuthAdmin,
) -> Invitation:
    """Invitation for a user who already has a profile (e.g. from a workshop)."""
    profile = await member_ops.get_profile_by_user_id(db, payload.user_id)
    if not profile:
        raise DomainError(ErrorCode.PROFILE_NOT_FOUND, "User profile not found")

    invitation_payload = InvitationCreate(
        user_id=payload.user_id,
        email=payload.email,
        first_name=profile.first_name,
        last_name=profile.last_name,
        expires_at=payload.expires_at,
        invitation_type=payload.invitation_type,
        waitlist_id=payload.waitlist_id or profile.waitlist_id,
        metadata=payload.metadata,
    )
    return await create_invitation(
        db, invitation_payload, created_by=created_by, auth_admin=auth_admin
    )


async def bulk_create_invitations(
    db: AsyncSession,
    items: list[InvitationCreate],
    *,
    created_by: Optional[str],
    auth_admin: SupabaseAuthAdmin,
) -> list[BulkInvitationResult]:
    results = []
    for item in items:
        try:
            invitation = await create_invitation(
                db, item, created_by=created_by, auth_admin=auth_admin
            )
        except (HTTPException, DomainError) as e:
            await db.rollback()
            message = e.detail if isinstance(e, HTTPException) else e.message
            results.append(BulkInvitationResult(email=item.email, success=False, error=message))
            continue
        results.append(
            BulkInvitationResult(email=item.email, success=True, invitation_id=invitation.id)
        )

    failed = sum(1 for r in results if not r.success)
    logger.info(f"Bulk invitations: {len(results) - failed} created, {failed} failed")
    return results


# ---------------------------------------------------------------------------
# Status machine
# ---------------------------------------------------------------------------


async def _lock_invitation(db: AsyncSession, invitation_id: uuid.UUID) -> Invitation:
    result = await db.execute(
        select(Invitation).where(Invitation.id == invitation_id).with_for_update()
    )
    invitation = result.scalar_one_or_none()
    if not invitation:
        raise DomainError(ErrorCode.INVITATION_NOT_FOUND, "Invitation not found")
    return invitation


async def _transition(
    db: AsyncSession, invitation_id: uuid.UUID, new_status: InvitationStatus
) -> Invitation:
    """Lock and move an invitation to ``new_status``. Caller commits."""
    invitation = await _lock_invitation(db, invitation_id)

    if invitation.status == InvitationStatus.PENDING and invitation.is_expired():
        invitation.status = InvitationStatus.EXPIRED
        # The expiry must survive the error raised below.
        await db.commit()
        raise DomainError(ErrorCode.INVITATION_EXPIRED, "Invitation has expired")

    if not can_transition(invitation.status, new_status):
        raise DomainError(
            ErrorCode.INVALID_STATUS_TRANSITION,
            f"Invalid status transition from {invitation.status.value} to {new_status.value}",
        )

    invitation.status = new_status
    await db.flush()
    return invitation


async def update_invitation_status(
    db: AsyncSession, invitation_id: uuid.UUID, new_status: InvitationStatus
) -> Invitation:
    invitation = await _transition(db, invitation_id, new_status)
    await db.commit()
    await db.refresh(invitation)
    logger.info(f"Invitation {invitation_id} is now {new_status.value}")
    return invitation


async def revoke_invitation(db: AsyncSession, invitation_id: uuid.UUID) -> Invitation:
    return await update_invitation_status(db, invitation_id, InvitationStatus.REVOKED)


async def mark_expired_invitations(db: AsyncSession) -> int:
    result = await db.execute(
        update(Invitation)
        .where(
            Invitation.status == InvitationStatus.PENDING,
            Invitation.expires_at <= func.now(),
        )
        .values(status=InvitationStatus.EXPIRED)
    )
    await db.commit()
    count = result.rowcount or 0
    if count:
        logger.info(f"Marked {count} invitations as expired")
    return count


# ---------------------------------------------------------------------------
# Lookup and validation
# ---------------------------------------------------------------------------


async def get_invitation(db: AsyncSession, invitation_id: uuid.UUID) -> Invitation:
    invitation = await db.get(Invitation, invitation_id)
    if not invitation:
        raise DomainError(ErrorCode.INVITATION_NOT_FOUND, "Invitation not found")
    return invitation


async def list_invitations(
    db: AsyncSession,
    *,
    status_filter: Optional[InvitationStatus] = None,
    email: Optional[str] = None,
    user_id: Optional[str] = None,
    invitation_type: Optional[InvitationType] = None,
    page: int = 1,
    page_size: int = 50,
) -> tuple[list[Invitation], int]:
    query = select(Invitation)
    if status_filter:
        query = query.where(Invitation.status == status_filter)
    if email:
        query = query.where(Invitation.email == email.lower())
    if user_id:
        query = query.where(Invitation.user_id == user_id)
    if invitation_type:
        query = query.where(Invitation.invitation_type == invitation_type)

    count_query = select(func.count()).select_from(query.subquery())
    total = (await db.execute(count_query)).scalar() or 0

    query = (
        query.order_by(Invitation.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    result = await db.execute(query)
    return list(result.scalars().all()), total


async def get_invitation_info(
    db: AsyncSession, invitation_id: uuid.UUID, *, caller: Optional[AuthUser]
) -> dict:
    """Signup details for a pending invitation, after all eligibility checks."""
    result = await db.execute(
        select(Invitation).where(
            Invitation.id == invitation_id, Invitation.status == InvitationStatus.PENDING
        )
    )
    invitation = result.scalar_one_or_none()
    if not invitation:
        raise DomainError(ErrorCode.NOT_FOUND, "No pending invitation found")

    if not _may_view_invitation(caller, invitation):
        raise DomainError(ErrorCode.PERMISSION_DENIED, "Not allowed to view this invitation")

    profile = await member_ops.get_profile_by_user_id(db, invitation.user_id)
    if not profile:
        raise DomainError(ErrorCode.USER_NOT_FOUND, "User profile not found")
    if profile.is_banned():
        raise DomainError(ErrorCode.USER_BANNED, "This user is banned")

    member = await db.execute(
        select(MemberProfile.id).where(MemberProfile.user_profile_id == profile.id)
    )
    if member.scalar_one_or_none():
        raise DomainError(ErrorCode.ALREADY_MEMBER, "User is already a member")
    if profile.is_active:
        raise DomainError(ErrorCode.ALREADY_ACTIVE, "User is already active")

    if invitation.is_expired():
        invitation.status = InvitationStatus.EXPIRED
        await db.commit()
        raise DomainError(ErrorCode.INVITATION_EXPIRED, "Invitation has expired")

    return {
        "invitation_id": invitation.id,
        "status": invitation.status,
        "expires_at": invitation.expires_at,
        "user_id": invitation.user_id,
        "email": invitation.email,
        "first_name": profile.first_name,
        "last_name": profile.last_name,
        "phone_number": profile.phone_number,
        "date_of_birth": profile.date_of_birth,
        "pronouns": profile.pronouns,
        "gender": profile.gender,
        "medical_conditions": profile.medical_conditions,
        "customer_id": profile.customer_id,
    }


async def validate_invitation(db: AsyncSession, invitation_id: uuid.UUID) -> bool:
    invitation = await db.get(Invitation, invitation_id)
    return bool(
        invitation
        and invitation.status == InvitationStatus.PENDING
        and not invitation.is_expired()
    )


async def validate_credentials(
    db: AsyncSession, invitation_id: uuid.UUID, *, email: str, date_of_birth
) -> Invitation:
    result = await db.execute(
        select(Invitation, UserProfile)
        .join(UserProfile, UserProfile.supabase_user_id == Invitation.user_id)
        .where(
            Invitation.id == invitation_id,
            Invitation.status == InvitationStatus.PENDING,
            func.lower(Invitation.email) == email.strip().lower(),
            UserProfile.date_of_birth == date_of_birth,
        )
    )
    row = result.first()
    if not row or row[0].is_expired():
        raise HTTPException(status_code=404, detail="Invalid invitation details")
    return row[0]


# ---------------------------------------------------------------------------
# Acceptance
# ---------------------------------------------------------------------------


async def accept_invitation(
    db: AsyncSession,
    invitation_id: uuid.UUID,
    *,
    next_of_kin_name: str,
    next_of_kin_phone: str,
    insurance_form_submitted: bool,
) -> tuple[Invitation, MemberProfile]:
    """Accept, register the member and mark the waitlist entry joined. Caller commits."""
    invitation = await _transition(db, invitation_id, InvitationStatus.ACCEPTED)
    member = await member_ops.register_member(
        db,
        user_id=invitation.user_id,
        next_of_kin_name=next_of_kin_name,
        next_of_kin_phone=next_of_kin_phone,
        insurance_form_submitted=insurance_form_submitted,
    )

    result = await db.execute(
        select(WaitlistEntry).where(WaitlistEntry.email == invitation.email)
    )
    entry = result.scalar_one_or_none()
    if entry:
        set_status(db, entry, WaitlistStatus.JOINED, changed_by="invitation_acceptance")
    await db.flush()
    return invitation, member


async def process_invitation_acceptance(
    db: AsyncSession,
    invitation_id: uuid.UUID,
    *,
    next_of_kin_name: str,
    next_of_kin_phone: str,
    insurance_form_submitted: bool,
    auth_admin: SupabaseAuthAdmin,
) -> MemberProfile:
    invitation, member = await accept_invitation(
        db,
        invitation_id,
        next_of_kin_name=next_of_kin_name,
        next_of_kin_phone=next_of_kin_phone,
        insurance_form_submitted=insurance_form_submitted,
    )
    await db.commit()
    await db.refresh(member)
    await member_ops.sync_roles(db, invitation.user_id, auth_admin)
    logger.info(f"Invitation {invitation_id} accepted")
    return member
