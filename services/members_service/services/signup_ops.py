"""Membership signup: plan pricing, promotion codes and the paid signup flow.

Members pay two SEPA subscriptions: the monthly training fee, anchored on
the first of each month, and the annual membership fee, anchored on
7 January.
"""

import uuid
from dataclasses import dataclass
from typing import Optional

from fastapi import HTTPException, status
from libs.auth.models import AuthUser
from libs.common.config import get_settings
from libs.common.datetime_utils import (
    next_annual_billing_date,
    next_monthly_billing_date,
    to_unix,
    utc_now,
)
from libs.common.logging import get_logger
from libs.common.stripe_client import StripeClient, StripeServiceError
from libs.common.supabase import SupabaseAuthAdmin
from services.members_service.models import UserProfile
from services.members_service.schemas import MemberSignupRequest
from services.members_service.services import invitation_ops, member_ops
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

MONTHLY_ANCHOR = {"day_of_month": 1}
ANNUAL_ANCHOR = {"month": 1, "day_of_month": 7}

STRIPE_ERROR_MESSAGES = {
    "card_declined": "Your payment method was declined.",
    "expired_card": "Your payment method has expired.",
    "insufficient_funds": "Your account has insufficient funds.",
    "invalid_bank_account_iban": "The IBAN provided is not valid.",
    "payment_intent_authentication_failure": "We could not authenticate your payment method.",
    "setup_intent_authentication_failure": "We could not authenticate your payment method.",
    "resource_missing": "A payment resource could not be found. Please try again.",
}
DEFAULT_STRIPE_ERROR = "We could not process your payment. Please try again or contact the club."


@dataclass
class PromotionCode:
    code: str
    promotion_code_id: Optional[str]
    discount_percentage: Optional[int]
    is_migration: bool = False


def friendly_stripe_message(error: StripeServiceError) -> str:
    return STRIPE_ERROR_MESSAGES.get(error.code or "", DEFAULT_STRIPE_ERROR)


async def resolve_promotion_code(
    code: Optional[str], *, stripe_client: StripeClient
) -> Optional[PromotionCode]:
    if not code or not code.strip():
        return None
    code = code.strip()

    if code.upper() == get_settings().DASHBOARD_MIGRATION_CODE.upper():
        return PromotionCode(
            code=code, promotion_code_id=None, discount_percentage=100, is_migration=True
        )

    promo = await stripe_client.find_promotion_code(code)
    coupon = promo.get("coupon") if promo is not None else None
    if promo is None or coupon is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid or inactive promotion code",
        )
    if coupon.get("duration") == "forever" and coupon.get("amount_off"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="This promotion code cannot be used for memberships",
        )

    percent_off = coupon.get("percent_off")
    return PromotionCode(
        code=code,
        promotion_code_id=promo.id,
        discount_percentage=int(percent_off) if percent_off else None,
    )


async def ensure_customer(
    db: AsyncSession, profile: UserProfile, *, stripe_client: StripeClient
) -> str:
    """Stripe customer id for the profile, creating the customer on first use."""
    if profile.customer_id:
        return profile.customer_id

    customer = await stripe_client.create_customer(
        email=profile.email,
        name=profile.full_name,
        phone=profile.phone_number,
        metadata={"user_id": profile.supabase_user_id or ""},
    )
    profile.customer_id = customer.id
    await db.commit()
    logger.info(f"Created Stripe customer {customer.id} for profile {profile.id}")
    return customer.id


async def _membership_prices(stripe_client: StripeClient):
    settings = get_settings()
    monthly = await stripe_client.get_price_by_lookup_key(settings.MEMBERSHIP_FEE_LOOKUP_KEY)
    annual = await stripe_client.get_price_by_lookup_key(settings.ANNUAL_FEE_LOOKUP_KEY)
    if monthly is None or annual is None:
        logger.error("Membership prices are missing in Stripe")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Membership pricing is not available",
        )
    return monthly, annual


async def _invited_profile(
    db: AsyncSession, invitation_id: uuid.UUID, caller: AuthUser
) -> UserProfile:
    info = await invitation_ops.get_invitation_info(db, invitation_id, caller=caller)
    return await member_ops.get_profile_by_user_id(db, info["user_id"])


async def get_plan_pricing(
    db: AsyncSession,
    invitation_id: uuid.UUID,
    *,
    caller: AuthUser,
    promotion_code: Optional[str],
    stripe_client: StripeClient,
) -> dict:
    profile = await _invited_profile(db, invitation_id, caller)
    customer_id = await ensure_customer(db, profile, stripe_client=stripe_client)
    monthly_price, annual_price = await _membership_prices(stripe_client)
    promo = await resolve_promotion_code(promotion_code, stripe_client=stripe_client)

    monthly_date = next_monthly_billing_date()
    annual_date = next_annual_billing_date()

    if promo is not None and promo.is_migration:
        prorated_monthly = prorated_annual = 0
    else:
        promo_id = promo.promotion_code_id if promo else None
        monthly_preview = await stripe_client.preview_invoice(
            customer_id=customer_id,
            price_id=monthly_price.id,
            billing_cycle_anchor=to_unix(monthly_date),
            promotion_code_id=promo_id,
        )
        annual_preview = await stripe_client.preview_invoice(
            customer_id=customer_id,
            price_id=annual_price.id,
            billing_cycle_anchor=to_unix(annual_date),
            promotion_code_id=promo_id,
        )
        prorated_monthly = monthly_preview.amount_due
        prorated_annual = annual_preview.amount_due

    return {
        "monthly_fee": monthly_price.unit_amount,
        "annual_fee": annual_price.unit_amount,
        "prorated_monthly_amount": prorated_monthly,
        "prorated_annual_amount": prorated_annual,
        "prorated_total": prorated_monthly + prorated_annual,
        "next_monthly_billing_date": monthly_date,
        "next_annual_billing_date": annual_date,
        "discount_percentage": promo.discount_percentage if promo else None,
        "coupon": promo.code if promo else None,
    }


def _first_payment_intent_id(subscription) -> Optional[str]:
    invoice = subscription.latest_invoice
    payments = invoice.get("payments") if invoice else None
    if not payments or not payments["data"]:
        return None
    payment_intent = payments["data"][0]["payment"].get("payment_intent")
    if payment_intent is None or isinstance(payment_intent, str):
        return payment_intent
    return payment_intent.id


def mandate_data(ip_address: str, user_agent: str) -> dict:
    return {
        "customer_acceptance": {
            "type": "online",
            "online": {"ip_address": ip_address, "user_agent": user_agent},
        }
    }


async def _settle_first_invoice(
    subscription,
    *,
    promo: Optional[PromotionCode],
    payment_method_id: str,
    ip_address: str,
    user_agent: str,
    stripe_client: StripeClient,
) -> None:
    invoice = subscription.latest_invoice
    if promo is not None and promo.is_migration:
        if invoice and invoice.amount_due > 0:
            await stripe_client.create_credit_note(
                invoice_id=invoice.id, amount=invoice.amount_due
            )
        return

    payment_intent_id = _first_payment_intent_id(subscription)
    if payment_intent_id is None:
        # Nothing due up front, e.g. fully discounted.
        return
    await stripe_client.confirm_payment_intent(
        payment_intent_id,
        payment_method=payment_method_id,
        mandate_data=mandate_data(ip_address, user_agent),
    )


async def _cancel_subscriptions(
    subscription_ids: list, *, stripe_client: StripeClient
) -> None:
    """Undo subscriptions created before a failed signup step."""
    for subscription_id in subscription_ids:
        try:
            await stripe_client.cancel_subscription(subscription_id)
        except StripeServiceError as e:
            logger.error(
                f"Could not cancel subscription {subscription_id} after failed signup",
                extra={"extra_fields": {"stripe_code": e.code}},
            )


async def complete_signup(
    db: AsyncSession,
    invitation_id: uuid.UUID,
    payload: MemberSignupRequest,
    *,
    caller: AuthUser,
    ip_address: str,
    user_agent: str,
    stripe_client: StripeClient,
    auth_admin: SupabaseAuthAdmin,
) -> dict:
    """Accept the invitation, register the member and start both subscriptions.

    The database changes are only committed once Stripe has accepted the
    subscriptions; any Stripe failure rolls them back and cancels the
    subscriptions created so far.
    """
    profile = await _invited_profile(db, invitation_id, caller)
    customer_id = await ensure_customer(db, profile, stripe_client=stripe_client)

    invitation, member = await invitation_ops.accept_invitation(
        db,
        invitation_id,
        next_of_kin_name=payload.next_of_kin_name,
        next_of_kin_phone=payload.next_of_kin_phone,
        insurance_form_submitted=payload.insurance_form_submitted,
    )
    member.membership_start_date = utc_now().date()

    subscription_ids = []
    try:
        promo = await resolve_promotion_code(payload.coupon_code, stripe_client=stripe_client)
        monthly_price, annual_price = await _membership_prices(stripe_client)

        setup_intent = await stripe_client.create_setup_intent(
            customer_id=customer_id,
            confirmation_token=payload.stripe_confirmation_token,
        )
        payment_method_id = setup_intent.payment_method

        for price, anchor in ((monthly_price, MONTHLY_ANCHOR), (annual_price, ANNUAL_ANCHOR)):
            subscription = await stripe_client.create_subscription(
                customer_id=customer_id,
                price_id=price.id,
                billing_cycle_anchor_config=anchor,
                payment_method_id=payment_method_id,
                promotion_code_id=(
                    promo.promotion_code_id if promo and not promo.is_migration else None
                ),
            )
            subscription_ids.append(subscription.id)
            await _settle_first_invoice(
                subscription,
                promo=promo,
                payment_method_id=payment_method_id,
                ip_address=ip_address,
                user_agent=user_agent,
                stripe_client=stripe_client,
            )
    except StripeServiceError as e:
        await db.rollback()
        await _cancel_subscriptions(subscription_ids, stripe_client=stripe_client)
        logger.error(
            "Membership signup failed at payment",
            extra={"extra_fields": {
                "invitation_id": str(invitation_id),
                "stripe_code": e.code,
                "subscriptions_created": subscription_ids,
            }},
        )
        raise HTTPException(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail=friendly_stripe_message(e),
        ) from e
    except HTTPException:
        await db.rollback()
        await _cancel_subscriptions(subscription_ids, stripe_client=stripe_client)
        raise

    await db.commit()
    await db.refresh(member)
    await member_ops.sync_roles(db, invitation.user_id, auth_admin)

    logger.info(
        "Membership signup completed",
        extra={"extra_fields": {
            "user_id": invitation.user_id,
            "member_id": str(member.id),
            "migration": bool(promo and promo.is_migration),
        }},
    )
    return {
        "user_id": invitation.user_id,
        "member_profile_id": member.id,
        "subscriptions": subscription_ids,
        "migration": bool(promo and promo.is_migration),
    }
