"""Membership subscription pause/resume and Stripe state synchronisation."""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import HTTPException, status
from libs.auth.models import AuthUser, ClubRole
from libs.common.datetime_utils import add_months, ensure_aware, utc_now
from libs.common.error_handler import DomainError, ErrorCode
from libs.common.logging import get_logger
from libs.common.stripe_client import (
    INACTIVE_SUBSCRIPTION_STATUSES,
    StripeClient,
    StripeServiceError,
)
from services.members_service.models import MemberProfile, UserProfile
from services.members_service.services import settings_ops
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


async def _get_member_for_update(
    db: AsyncSession, member_id: uuid.UUID, actor: AuthUser
) -> tuple[UserProfile, MemberProfile]:
    result = await db.execute(
        select(UserProfile, MemberProfile)
        .join(MemberProfile, MemberProfile.user_profile_id == UserProfile.id)
        .where(MemberProfile.id == member_id)
        .with_for_update(of=MemberProfile)
    )
    row = result.first()
    if not row:
        raise HTTPException(status_code=404, detail="Member not found")
    profile, member = row[0], row[1]
    if profile.supabase_user_id != actor.user_id and not actor.has_any_role([ClubRole.ADMIN]):
        raise DomainError(
            ErrorCode.PERMISSION_DENIED, "You can only manage your own subscription"
        )
    if not profile.customer_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No payment customer linked to this profile",
        )
    return profile, member


async def _active_membership_subscription(stripe_client: StripeClient, customer_id: str):
    subscription = await stripe_client.find_membership_subscription(customer_id)
    if subscription is None or subscription.status in INACTIVE_SUBSCRIPTION_STATUSES:
        raise HTTPException(
            status_code=404, detail="No active membership subscription found"
        )
    return subscription


async def validate_pause_window(db: AsyncSession, pause_until: datetime) -> datetime:
    pause_until = ensure_aware(pause_until)
    now = utc_now()
    min_days = await settings_ops.get_int(db, settings_ops.SUBSCRIPTION_MIN_PAUSE_DAYS)
    max_months = await settings_ops.get_int(db, settings_ops.SUBSCRIPTION_MAX_PAUSE_MONTHS)

    if pause_until < now + timedelta(days=min_days):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"A pause must last at least {min_days} days",
        )
    if pause_until.date() > add_months(now.date(), max_months):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"A pause cannot be longer than {max_months} months",
        )
    return pause_until


async def pause_subscription(
    db: AsyncSession,
    *,
    member_id: uuid.UUID,
    pause_until: datetime,
    actor: AuthUser,
    stripe_client: StripeClient,
) -> tuple[MemberProfile, str]:
    profile, member = await _get_member_for_update(db, member_id, actor)
    pause_until = await validate_pause_window(db, pause_until)
    if member.is_paused():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Subscription is already paused",
        )

    subscription = await _active_membership_subscription(stripe_client, profile.customer_id)
    await stripe_client.pause_subscription(
        subscription.id, resumes_at=int(pause_until.timestamp())
    )

    member.subscription_paused_until = pause_until
    await db.commit()
    await db.refresh(member)
    logger.info(
        "Subscription paused",
        extra={"extra_fields": {
            "member_id": str(member_id),
            "subscription_id": subscription.id,
            "pause_until": pause_until.isoformat(),
        }},
    )
    return member, subscription.id


async def resume_subscription(
    db: AsyncSession,
    *,
    member_id: uuid.UUID,
    actor: AuthUser,
    stripe_client: StripeClient,
) -> tuple[MemberProfile, str]:
    profile, member = await _get_member_for_update(db, member_id, actor)
    if not member.is_paused():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Subscription is not paused",
        )

    subscription = await _active_membership_subscription(stripe_client, profile.customer_id)
    await stripe_client.resume_subscription(subscription.id)

    member.subscription_paused_until = None
    await db.commit()
    await db.refresh(member)
    logger.info(f"Subscription {subscription.id} resumed for member {member_id}")
    return member, subscription.id


def _current_period_end(subscription) -> Optional[datetime]:
    # Newer API versions report the period on the subscription items.
    period_end = subscription.get("current_period_end")
    if period_end is None:
        items = subscription["items"]["data"]
        period_end = items[0].get("current_period_end") if items else None
    if period_end is None:
        return None
    return datetime.fromtimestamp(period_end, tz=timezone.utc)


async def sync_stripe_data(
    db: AsyncSession, customer_id: str, *, stripe_client: StripeClient
) -> Optional[bool]:
    """Mirror the membership subscription state onto the profile.

    Returns the resulting ``is_active`` flag, or None for unknown customers.
    """
    result = await db.execute(
        select(UserProfile).where(UserProfile.customer_id == customer_id).with_for_update()
    )
    profile = result.scalar_one_or_none()
    if not profile:
        logger.warning(f"Stripe sync for unknown customer {customer_id}")
        return None

    member_result = await db.execute(
        select(MemberProfile).where(MemberProfile.user_profile_id == profile.id)
    )
    member = member_result.scalar_one_or_none()

    subscription = await stripe_client.find_membership_subscription(customer_id)
    if subscription is None or subscription.status in INACTIVE_SUBSCRIPTION_STATUSES:
        profile.is_active = False
    elif subscription.status == "active":
        profile.is_active = True
        if member is not None:
            member.last_payment_date = utc_now()
            period_end = _current_period_end(subscription)
            if period_end is not None:
                member.membership_end_date = period_end.date()

    await db.commit()
    logger.info(
        "Stripe data synced",
        extra={"extra_fields": {
            "customer_id": customer_id,
            "subscription_status": subscription.status if subscription else None,
            "is_active": profile.is_active,
        }},
    )
    return profile.is_active


async def sync_all_customers(db: AsyncSession, *, stripe_client: StripeClient) -> int:
    result = await db.execute(
        select(UserProfile.customer_id).where(UserProfile.customer_id.is_not(None))
    )
    customer_ids = list(result.scalars().all())
    synced = 0
    for customer_id in customer_ids:
        try:
            await sync_stripe_data(db, customer_id, stripe_client=stripe_client)
        except StripeServiceError as e:
            await db.rollback()
            logger.warning(f"Stripe sync failed for {customer_id}: {e.message}")
            continue
        synced += 1
    return synced
