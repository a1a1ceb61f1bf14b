"""Integration tests for signup pricing, paid signup, Stripe webhooks and
membership sync."""

from datetime import datetime, timezone

import pytest
from libs.common.config import get_settings
from services.members_service.app.main import app
from services.members_service.models import InvitationStatus, MemberProfile
from services.members_service.services import subscription_ops
from sqlalchemy import select
from tests.factories import (
    InvitationFactory,
    MemberProfileFactory,
    UserProfileFactory,
    WaitlistEntryFactory,
)
from tests.helpers import make_user, override_auth, stripe_object

SIGNUP_PAYLOAD = {
    "next_of_kin_name": "Ada Lovelace",
    "next_of_kin_phone": "+353 87 222 3333",
    "insurance_form_submitted": True,
    "stripe_confirmation_token": "ctoken_test",
}


async def _invitee(db_session):
    entry = WaitlistEntryFactory.create()
    db_session.add(entry)
    await db_session.flush()
    profile = UserProfileFactory.create(email=entry.email, waitlist_id=entry.id)
    db_session.add(profile)
    invitation = InvitationFactory.create(
        email=entry.email, user_id=profile.supabase_user_id, waitlist_id=entry.id
    )
    db_session.add(invitation)
    await db_session.commit()
    return profile, invitation


async def _paying_member(db_session, customer_id="cus_sync"):
    profile = UserProfileFactory.create(is_active=False, customer_id=customer_id)
    db_session.add(profile)
    await db_session.flush()
    member = MemberProfileFactory.create(id=profile.id, user_profile_id=profile.id)
    db_session.add(member)
    await db_session.commit()
    return profile, member


def _subscription(status, period_end=None):
    return stripe_object(
        {
            "id": "sub_membership",
            "status": status,
            "items": {"data": [{"current_period_end": period_end}]},
        }
    )


# ---------------------------------------------------------------------------
# Plan pricing and promotion codes
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_plan_pricing_previews_both_subscriptions(
    members_client, db_session, fake_stripe
):
    profile, invitation = await _invitee(db_session)
    fake_stripe.promotion_codes["SPRING"] = stripe_object(
        {"id": "promo_spring", "coupon": {"duration": "once", "percent_off": 20.0}}
    )

    with override_auth(app, make_user(user_id=profile.supabase_user_id)):
        response = await members_client.get(
            f"/invitations/{invitation.id}/pricing", params={"coupon": "SPRING"}
        )

    assert response.status_code == 200, response.text
    data = response.json()
    assert (data["monthly_fee"], data["annual_fee"]) == (3500, 9000)
    assert data["prorated_total"] == 1200 + 4500
    assert data["discount_percentage"] == 20
    assert data["coupon"] == "SPRING"
    assert data["next_annual_billing_date"].endswith("-01-07")
    # The invitee's Stripe customer is created on first use.
    await db_session.refresh(profile)
    assert profile.customer_id is not None
    assert len(fake_stripe.customers) == 1


@pytest.mark.asyncio
@pytest.mark.integration
async def test_migration_code_prices_first_period_at_zero(
    members_client, db_session, fake_stripe
):
    profile, invitation = await _invitee(db_session)
    code = get_settings().DASHBOARD_MIGRATION_CODE.lower()

    with override_auth(app, make_user(user_id=profile.supabase_user_id)):
        response = await members_client.get(
            f"/invitations/{invitation.id}/pricing", params={"coupon": code}
        )

    assert response.status_code == 200, response.text
    data = response.json()
    assert data["prorated_total"] == 0
    assert data["discount_percentage"] == 100


@pytest.mark.asyncio
@pytest.mark.integration
@pytest.mark.parametrize(
    "coupon, detail",
    [
        ("NOPE", "Invalid or inactive promotion code"),
        ("FOREVER10", "This promotion code cannot be used for memberships"),
    ],
)
async def test_unusable_promotion_codes_are_rejected(
    members_client, db_session, fake_stripe, coupon, detail
):
    profile, invitation = await _invitee(db_session)
    fake_stripe.promotion_codes["FOREVER10"] = stripe_object(
        {"id": "promo_forever", "coupon": {"duration": "forever", "amount_off": 1000}}
    )

    with override_auth(app, make_user(user_id=profile.supabase_user_id)):
        response = await members_client.get(
            f"/invitations/{invitation.id}/pricing", params={"coupon": coupon}
        )

    assert response.status_code == 400
    assert response.json()["detail"] == detail


# ---------------------------------------------------------------------------
# Paid signup
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_signup_starts_both_sepa_subscriptions(
    members_client, db_session, fake_stripe, fake_auth_admin
):
    profile, invitation = await _invitee(db_session)

    with override_auth(app, make_user(user_id=profile.supabase_user_id)):
        response = await members_client.post(
            f"/invitations/{invitation.id}/signup",
            json=SIGNUP_PAYLOAD,
            headers={"X-Forwarded-For": "203.0.113.9", "User-Agent": "pytest"},
        )

    assert response.status_code == 200, response.text
    data = response.json()
    assert data["migration"] is False
    assert data["subscriptions"] == [s["id"] for s in fake_stripe.created_subscriptions]
    assert [s["price_id"] for s in fake_stripe.created_subscriptions] == [
        "price_monthly",
        "price_annual",
    ]
    assert fake_stripe.created_subscriptions[1]["anchor"] == {"month": 1, "day_of_month": 7}
    assert len(fake_stripe.confirmed) == 2
    online = fake_stripe.confirmed[0]["mandate"]["customer_acceptance"]["online"]
    assert online == {"ip_address": "203.0.113.9", "user_agent": "pytest"}

    await db_session.refresh(profile)
    await db_session.refresh(invitation)
    assert profile.is_active is True
    assert invitation.status == InvitationStatus.ACCEPTED
    assert fake_auth_admin.roles[profile.supabase_user_id] == ["member"]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_signup_with_migration_code_credits_first_invoices(
    members_client, db_session, fake_stripe
):
    profile, invitation = await _invitee(db_session)
    payload = dict(SIGNUP_PAYLOAD, coupon_code=get_settings().DASHBOARD_MIGRATION_CODE)

    with override_auth(app, make_user(user_id=profile.supabase_user_id)):
        response = await members_client.post(
            f"/invitations/{invitation.id}/signup", json=payload
        )

    assert response.status_code == 200, response.text
    assert response.json()["migration"] is True
    assert [n["amount"] for n in fake_stripe.credit_notes] == [1500, 1500]
    assert fake_stripe.confirmed == []
    assert all(s["promotion_code_id"] is None for s in fake_stripe.created_subscriptions)


@pytest.mark.asyncio
@pytest.mark.integration
async def test_failed_signup_rolls_back_and_cancels_subscriptions(
    members_client, db_session, fake_stripe, fake_auth_admin
):
    profile, invitation = await _invitee(db_session)
    fake_stripe.fail_subscription_at = 1

    with override_auth(app, make_user(user_id=profile.supabase_user_id)):
        response = await members_client.post(
            f"/invitations/{invitation.id}/signup", json=SIGNUP_PAYLOAD
        )

    assert response.status_code == 402
    assert response.json()["detail"] == "Your payment method was declined."
    assert fake_stripe.cancelled == [fake_stripe.created_subscriptions[0]["id"]]

    await db_session.refresh(profile)
    await db_session.refresh(invitation)
    assert profile.is_active is False
    assert invitation.status == InvitationStatus.PENDING
    member = await db_session.execute(
        select(MemberProfile).where(MemberProfile.user_profile_id == profile.id)
    )
    assert member.scalar_one_or_none() is None
    assert profile.supabase_user_id not in fake_auth_admin.roles


# ---------------------------------------------------------------------------
# Webhooks
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_webhook_rejects_bad_signature(members_client, db_session):
    missing = await members_client.post("/webhooks/stripe", content=b"{}")
    forged = await members_client.post(
        "/webhooks/stripe", content=b"{}", headers={"Stripe-Signature": "t=1,v1=forged"}
    )

    assert missing.status_code == 400
    assert forged.status_code == 400
    assert forged.json()["detail"] == "Invalid signature"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_webhook_resyncs_customer_on_allowed_event(
    members_client, db_session, fake_stripe
):
    profile, member = await _paying_member(db_session)
    period_end = int(datetime(2027, 2, 1, tzinfo=timezone.utc).timestamp())
    fake_stripe.subscription = _subscription("active", period_end)
    fake_stripe.webhook_events["sig-paid"] = {
        "id": "evt_paid",
        "type": "invoice.paid",
        "data": {"object": {"customer": profile.customer_id}},
    }

    response = await members_client.post(
        "/webhooks/stripe", content=b"{}", headers={"Stripe-Signature": "sig-paid"}
    )

    assert response.status_code == 200, response.text
    assert response.json() == {"received": True, "processed": True}
    await db_session.refresh(profile)
    await db_session.refresh(member)
    assert profile.is_active is True
    assert member.membership_end_date.isoformat() == "2027-02-01"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_webhook_ignores_other_events(members_client, db_session, fake_stripe):
    profile, _member = await _paying_member(db_session)
    fake_stripe.subscription = _subscription("active")
    fake_stripe.webhook_events["sig-charge"] = {
        "id": "evt_charge",
        "type": "charge.succeeded",
        "data": {"object": {"customer": profile.customer_id}},
    }
    fake_stripe.webhook_events["sig-nocustomer"] = {
        "id": "evt_pi",
        "type": "payment_intent.succeeded",
        "data": {"object": {"customer": None}},
    }

    ignored = await members_client.post(
        "/webhooks/stripe", content=b"{}", headers={"Stripe-Signature": "sig-charge"}
    )
    anonymous = await members_client.post(
        "/webhooks/stripe", content=b"{}", headers={"Stripe-Signature": "sig-nocustomer"}
    )

    assert ignored.json() == {"received": True, "processed": False}
    assert anonymous.json() == {"received": True, "processed": False}
    await db_session.refresh(profile)
    assert profile.is_active is False


# ---------------------------------------------------------------------------
# Stripe sync
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
@pytest.mark.parametrize("status", ["canceled", "unpaid", "paused", "incomplete_expired"])
async def test_sync_deactivates_ended_subscriptions(db_session, fake_stripe, status):
    profile, _member = await _paying_member(db_session)
    profile.is_active = True
    await db_session.commit()
    fake_stripe.subscription = _subscription(status)

    result = await subscription_ops.sync_stripe_data(
        db_session, profile.customer_id, stripe_client=fake_stripe
    )

    assert result is False
    await db_session.refresh(profile)
    assert profile.is_active is False


@pytest.mark.asyncio
@pytest.mark.integration
async def test_sync_without_subscription_deactivates(db_session, fake_stripe):
    profile, _member = await _paying_member(db_session)
    profile.is_active = True
    await db_session.commit()

    result = await subscription_ops.sync_stripe_data(
        db_session, profile.customer_id, stripe_client=fake_stripe
    )

    assert result is False


@pytest.mark.asyncio
@pytest.mark.integration
async def test_sync_active_subscription_records_payment(db_session, fake_stripe):
    profile, member = await _paying_member(db_session)
    period_end = int(datetime(2027, 3, 1, tzinfo=timezone.utc).timestamp())
    fake_stripe.subscription = _subscription("active", period_end)

    result = await subscription_ops.sync_stripe_data(
        db_session, profile.customer_id, stripe_client=fake_stripe
    )

    assert result is True
    await db_session.refresh(member)
    assert member.last_payment_date is not None
    assert member.membership_end_date.isoformat() == "2027-03-01"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_sync_unknown_customer_returns_none(db_session, fake_stripe):
    result = await subscription_ops.sync_stripe_data(
        db_session, "cus_missing", stripe_client=fake_stripe
    )

    assert result is None

