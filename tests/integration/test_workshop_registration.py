"""Integration tests for paid workshop registration, refunds and waitlist hooks."""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
from fastapi import HTTPException
from libs.common import service_client
from libs.common.datetime_utils import utc_now
from libs.common.stripe_client import StripeServiceError
from services.workshops_service.app.main import app
from services.workshops_service.models import (
    RefundStatus,
    RegistrationStatus,
    WorkshopRefund,
    WorkshopRegistration,
)
from services.workshops_service.services import refund_ops
from services.workshops_service.services.registration_ops import (
    release_stale_pending_registrations,
)
from sqlalchemy import select, update
from tests.factories import ExternalUserFactory, RegistrationFactory, WorkshopFactory
from tests.helpers import make_admin_user, make_member_user, make_user, override_auth


async def _published(db_session, **overrides):
    workshop = WorkshopFactory.create(**overrides)
    db_session.add(workshop)
    await db_session.commit()
    return workshop


async def _register(db_session, workshop, **overrides):
    registration = RegistrationFactory.create(workshop_id=workshop.id, **overrides)
    db_session.add(registration)
    await db_session.commit()
    return registration


# ---------------------------------------------------------------------------
# Payment intents and completion
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_member_pays_member_price_and_holds_seat(
    workshops_client, db_session, fake_stripe
):
    workshop = await _published(db_session)
    user = make_member_user()

    with override_auth(app, user):
        response = await workshops_client.post(f"/workshops/{workshop.id}/payment-intent")

    assert response.status_code == 200, response.text
    data = response.json()
    assert data["amount"] == workshop.price_member
    assert data["currency"] == "eur"

    intent = fake_stripe.payment_intents[data["payment_intent_id"]]
    assert intent.metadata["user_id"] == user.user_id
    assert intent.metadata["workshop_id"] == str(workshop.id)

    result = await db_session.execute(
        select(WorkshopRegistration).where(WorkshopRegistration.workshop_id == workshop.id)
    )
    held = result.scalar_one()
    assert held.status == RegistrationStatus.PENDING
    assert held.stripe_payment_intent_id == intent.id
    assert intent.idempotency_key == f"workshop-registration-{held.id}"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_repeat_request_reuses_open_intent(workshops_client, db_session, fake_stripe):
    workshop = await _published(db_session)

    with override_auth(app, make_user()):
        first = await workshops_client.post(f"/workshops/{workshop.id}/payment-intent")
        second = await workshops_client.post(f"/workshops/{workshop.id}/payment-intent")

    assert first.json()["amount"] == workshop.price_non_member
    assert second.status_code == 200
    assert second.json()["payment_intent_id"] == first.json()["payment_intent_id"]
    assert len(fake_stripe.payment_intents) == 1


@pytest.mark.asyncio
@pytest.mark.integration
async def test_confirmed_member_cannot_pay_twice(workshops_client, db_session):
    workshop = await _published(db_session)
    user = make_user()
    await _register(db_session, workshop, member_user_id=user.user_id)

    with override_auth(app, user):
        response = await workshops_client.post(f"/workshops/{workshop.id}/payment-intent")

    assert response.status_code == 409


@pytest.mark.asyncio
@pytest.mark.integration
async def test_full_workshop_rejects_payment(workshops_client, db_session):
    workshop = await _published(db_session, max_capacity=1)
    await _register(db_session, workshop)

    with override_auth(app, make_user()):
        response = await workshops_client.post(f"/workshops/{workshop.id}/payment-intent")

    assert response.status_code == 409
    assert response.json()["detail"] == "Workshop is full"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_complete_registration_confirms_held_seat(
    workshops_client, db_session, fake_stripe
):
    workshop = await _published(db_session)
    user = make_member_user()

    with override_auth(app, user):
        intent = await workshops_client.post(f"/workshops/{workshop.id}/payment-intent")
        intent_id = intent.json()["payment_intent_id"]

        unpaid = await workshops_client.post(
            f"/workshops/{workshop.id}/register", json={"payment_intent_id": intent_id}
        )
        assert unpaid.status_code == 400
        assert unpaid.json()["detail"] == "Payment not completed"

        fake_stripe.succeed(intent_id)
        paid = await workshops_client.post(
            f"/workshops/{workshop.id}/register", json={"payment_intent_id": intent_id}
        )
        again = await workshops_client.post(
            f"/workshops/{workshop.id}/register", json={"payment_intent_id": intent_id}
        )

    assert paid.status_code == 201, paid.text
    assert paid.json()["status"] == "confirmed"
    assert paid.json()["amount_paid"] == workshop.price_member
    assert again.json()["id"] == paid.json()["id"]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_intent_for_another_workshop_is_rejected(
    workshops_client, db_session, fake_stripe
):
    workshop = await _published(db_session)
    other = await _published(db_session)
    user = make_user()

    with override_auth(app, user):
        intent = await workshops_client.post(f"/workshops/{other.id}/payment-intent")
        intent_id = intent.json()["payment_intent_id"]
        fake_stripe.succeed(intent_id)
        response = await workshops_client.post(
            f"/workshops/{workshop.id}/register", json={"payment_intent_id": intent_id}
        )

    assert response.status_code == 400
    assert response.json()["detail"] == "Payment does not match this workshop"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_external_registration_on_public_workshop(
    workshops_client, db_session, fake_stripe
):
    workshop = await _published(db_session, is_public=True)

    intent = await workshops_client.post(
        f"/workshops/{workshop.id}/external/payment-intent",
        json={"email": "guest@test.com"},
    )
    assert intent.status_code == 200, intent.text
    assert intent.json()["amount"] == workshop.price_non_member

    intent_id = intent.json()["payment_intent_id"]
    fake_stripe.succeed(intent_id)
    response = await workshops_client.post(
        f"/workshops/{workshop.id}/external/register",
        json={
            "first_name": "Guest",
            "last_name": "Fencer",
            "email": "guest@test.com",
            "payment_intent_id": intent_id,
        },
    )

    assert response.status_code == 201, response.text
    assert response.json()["external_user_id"] is not None
    assert response.json()["status"] == "confirmed"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_external_payment_refused_for_private_workshop(workshops_client, db_session):
    workshop = await _published(db_session, is_public=False)

    response = await workshops_client.post(
        f"/workshops/{workshop.id}/external/payment-intent",
        json={"email": "guest@test.com"},
    )

    assert response.status_code == 400


# ---------------------------------------------------------------------------
# Cancellation and stale holds
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_cancel_registration_requeues_member(
    workshops_client, db_session, monkeypatch
):
    requeue = AsyncMock(return_value=True)
    monkeypatch.setattr(service_client, "move_to_waitlist_with_priority", requeue)
    workshop = await _published(db_session)
    user = make_user()
    registration = await _register(db_session, workshop, member_user_id=user.user_id)

    with override_auth(app, user):
        response = await workshops_client.delete(f"/workshops/{workshop.id}/registration")

    assert response.status_code == 200, response.text
    assert response.json() == {"success": True, "refund_processed": False, "requeued": True}
    assert requeue.await_args.args == (user.user_id, str(workshop.id))
    await db_session.refresh(registration)
    assert registration.status == RegistrationStatus.CANCELLED


@pytest.mark.asyncio
@pytest.mark.integration
async def test_cancel_without_registration_is_404(workshops_client, db_session):
    workshop = await _published(db_session)

    with override_auth(app, make_user()):
        response = await workshops_client.delete(f"/workshops/{workshop.id}/registration")

    assert response.status_code == 404


@pytest.mark.asyncio
@pytest.mark.integration
async def test_stale_pending_holds_are_released(db_session):
    workshop = await _published(db_session)
    stale = await _register(
        db_session,
        workshop,
        status=RegistrationStatus.PENDING,
        amount_paid=0,
        registered_at=utc_now() - timedelta(hours=30),
    )
    fresh = await _register(
        db_session, workshop, status=RegistrationStatus.PENDING, amount_paid=0
    )

    released = await release_stale_pending_registrations(db_session)

    assert released == 1
    await db_session.refresh(stale)
    await db_session.refresh(fresh)
    assert stale.status == RegistrationStatus.CANCELLED
    assert fresh.status == RegistrationStatus.PENDING


# ---------------------------------------------------------------------------
# Capacity, attendees and waitlist invitations
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_capacity_counts_pending_and_confirmed(workshops_client, db_session):
    workshop = await _published(db_session, max_capacity=3)
    await _register(db_session, workshop)
    await _register(db_session, workshop, status=RegistrationStatus.PENDING)
    await _register(db_session, workshop, status=RegistrationStatus.CANCELLED)

    with override_auth(app, make_user()):
        response = await workshops_client.get(f"/workshops/{workshop.id}/capacity")

    data = response.json()
    assert (data["confirmed"], data["pending"], data["remaining"]) == (1, 1, 1)
    assert data["is_full"] is False


@pytest.mark.asyncio
@pytest.mark.integration
async def test_attendees_combine_members_and_guests(
    workshops_client, db_session, monkeypatch
):
    workshop = await _published(db_session)
    guest = ExternalUserFactory.create(email="guest2@test.com")
    db_session.add(guest)
    await db_session.commit()
    member = await _register(db_session, workshop, member_user_id="user-anna")
    await _register(db_session, workshop, member_user_id=None, external_user_id=guest.id)
    monkeypatch.setattr(
        service_client,
        "get_profiles_bulk",
        AsyncMock(return_value={
            "user-anna": {"first_name": "Anna", "last_name": "Ring", "email": "a@test.com"}
        }),
    )

    with override_auth(app, make_admin_user()):
        response = await workshops_client.get(f"/workshops/{workshop.id}/attendees")

    assert response.status_code == 200, response.text
    by_type = {a["user_type"]: a for a in response.json()}
    assert by_type["member"]["first_name"] == "Anna"
    assert by_type["member"]["registration_id"] == str(member.id)
    assert by_type["external"]["email"] == "guest2@test.com"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_invite_from_waitlist_fills_free_seats(
    workshops_client, db_session, monkeypatch
):
    workshop = await _published(db_session, max_capacity=3)
    await _register(db_session, workshop, member_user_id="user-taken")

    candidates = [
        {"waitlist_id": "w1", "user_id": "user-1", "email": "one@test.com"},
        {"waitlist_id": "w2", "user_id": None, "email": "two@test.com"},
    ]
    waitlist = AsyncMock(return_value=candidates)
    invite = AsyncMock(return_value={"id": "inv-1"})
    monkeypatch.setattr(service_client, "get_prioritized_waitlist", waitlist)
    monkeypatch.setattr(service_client, "create_workshop_invitation", invite)

    with override_auth(app, make_admin_user()):
        response = await workshops_client.post(
            f"/workshops/{workshop.id}/invite-from-waitlist", json={}
        )

    assert response.status_code == 200, response.text
    assert response.json() == {"invited": 1, "failed": 1, "invitation_ids": ["inv-1"]}
    assert waitlist.await_args.kwargs["exclude_user_ids"] == ["user-taken"]
    assert waitlist.await_args.kwargs["limit"] == 2


# ---------------------------------------------------------------------------
# Manual attendees and check-in
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_search_users_excludes_current_attendees(
    workshops_client, db_session, monkeypatch
):
    workshop = await _published(db_session)
    await _register(db_session, workshop, member_user_id="user-seated")
    search = AsyncMock(return_value=[
        {"user_id": "user-ben", "first_name": "Ben", "last_name": "Ash", "email": "b@test.com"}
    ])
    monkeypatch.setattr(service_client, "search_profiles", search)

    with override_auth(app, make_admin_user()):
        response = await workshops_client.get(
            f"/workshops/{workshop.id}/search-users", params={"q": " ben "}
        )
        too_short = await workshops_client.get(
            f"/workshops/{workshop.id}/search-users", params={"q": "b"}
        )

    assert response.status_code == 200, response.text
    assert [u["user_id"] for u in response.json()] == ["user-ben"]
    assert search.await_args.args == ("ben",)
    assert search.await_args.kwargs["exclude_user_ids"] == ["user-seated"]
    assert too_short.status_code == 400


@pytest.mark.asyncio
@pytest.mark.integration
async def test_manager_adds_attendee_without_payment(
    workshops_client, db_session, monkeypatch
):
    workshop = await _published(db_session)
    monkeypatch.setattr(
        service_client,
        "get_profiles_bulk",
        AsyncMock(return_value={"user-ben": {"user_id": "user-ben", "first_name": "Ben"}}),
    )

    with override_auth(app, make_admin_user()):
        added = await workshops_client.post(
            f"/workshops/{workshop.id}/attendees", json={"user_id": "user-ben"}
        )
        again = await workshops_client.post(
            f"/workshops/{workshop.id}/attendees", json={"user_id": "user-ben"}
        )

    assert added.status_code == 201, added.text
    data = added.json()
    assert data["status"] == "confirmed"
    assert data["amount_paid"] == 0
    assert data["member_user_id"] == "user-ben"
    assert again.status_code == 409


@pytest.mark.asyncio
@pytest.mark.integration
async def test_manual_attendee_respects_capacity_and_profiles(
    workshops_client, db_session, monkeypatch
):
    full = await _published(db_session, max_capacity=1)
    await _register(db_session, full)
    open_workshop = await _published(db_session)
    monkeypatch.setattr(service_client, "get_profiles_bulk", AsyncMock(return_value={}))

    with override_auth(app, make_admin_user()):
        no_seat = await workshops_client.post(
            f"/workshops/{full.id}/attendees", json={"user_id": "user-ben"}
        )
        unknown = await workshops_client.post(
            f"/workshops/{open_workshop.id}/attendees", json={"user_id": "user-ghost"}
        )

    assert no_seat.status_code == 409
    assert no_seat.json()["detail"] == "Workshop is full"
    assert unknown.status_code == 404


@pytest.mark.asyncio
@pytest.mark.integration
async def test_members_cannot_add_attendees(workshops_client, db_session):
    workshop = await _published(db_session)

    with override_auth(app, make_member_user()):
        response = await workshops_client.post(
            f"/workshops/{workshop.id}/attendees", json={"user_id": "user-ben"}
        )

    assert response.status_code == 403


@pytest.mark.asyncio
@pytest.mark.integration
async def test_member_checks_in_on_the_day(workshops_client, db_session):
    start = utc_now() - timedelta(minutes=30)
    workshop = await _published(
        db_session, start_date=start, end_date=start + timedelta(hours=3)
    )
    user = make_member_user()
    registration = await _register(db_session, workshop, member_user_id=user.user_id)

    with override_auth(app, user):
        first = await workshops_client.post(f"/workshops/{workshop.id}/check-in")
        second = await workshops_client.post(f"/workshops/{workshop.id}/check-in")

    assert first.status_code == 200, first.text
    assert first.json()["attendance_status"] == "attended"
    assert second.status_code == 409
    await db_session.refresh(registration)
    assert registration.attendance_marked_by == user.user_id


@pytest.mark.asyncio
@pytest.mark.integration
async def test_check_in_closed_before_the_day(workshops_client, db_session):
    workshop = await _published(db_session)
    user = make_member_user()
    await _register(db_session, workshop, member_user_id=user.user_id)

    with override_auth(app, user):
        early = await workshops_client.post(f"/workshops/{workshop.id}/check-in")

    assert early.status_code == 400
    assert early.json()["detail"] == "Check-in is not open for this workshop"


# ---------------------------------------------------------------------------
# Refunds
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_refund_eligibility_respects_deadline(workshops_client, db_session):
    soon = utc_now() + timedelta(days=2)
    workshop = await _published(
        db_session, start_date=soon, end_date=soon + timedelta(hours=2), refund_days=7
    )
    registration = await _register(db_session, workshop)

    with override_auth(app, make_admin_user()):
        response = await workshops_client.get(
            f"/workshops/registrations/{registration.id}/refund-eligibility"
        )

    assert response.json()["eligible"] is False
    assert response.json()["reason"] == "Refund deadline has passed"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_process_refund_marks_registration_refunded(
    workshops_client, db_session, fake_stripe
):
    workshop = await _published(db_session)
    registration = await _register(db_session, workshop)

    with override_auth(app, make_admin_user()):
        response = await workshops_client.post(
            "/workshops/refunds",
            json={"registration_id": str(registration.id), "reason": "Injury"},
        )
        eligibility = await workshops_client.get(
            f"/workshops/registrations/{registration.id}/refund-eligibility"
        )
        listed = await workshops_client.get(f"/workshops/{workshop.id}/refunds")

    assert response.status_code == 201, response.text
    data = response.json()
    assert data["status"] == "processing"
    assert data["refund_amount"] == registration.amount_paid
    assert fake_stripe.refunds[0]["amount"] == registration.amount_paid
    assert eligibility.json()["reason"] == "Registration already refunded"
    assert [r["id"] for r in listed.json()] == [data["id"]]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_failed_refund_can_be_retried(workshops_client, db_session, fake_stripe):
    workshop = await _published(db_session)
    registration = await _register(db_session, workshop)
    fake_stripe.refund_error = StripeServiceError("Card issuer down", code="api_error")

    with override_auth(app, make_admin_user()):
        failed = await workshops_client.post(
            "/workshops/refunds",
            json={"registration_id": str(registration.id), "reason": "Injury"},
        )
        await db_session.refresh(registration)
        assert registration.status == RegistrationStatus.CONFIRMED

        fake_stripe.refund_error = None
        retried = await workshops_client.post(
            "/workshops/refunds",
            json={"registration_id": str(registration.id), "reason": "Injury"},
        )

    assert failed.status_code == 502
    assert retried.status_code == 201, retried.text
    result = await db_session.execute(
        select(WorkshopRefund).where(WorkshopRefund.registration_id == registration.id)
    )
    refund = result.scalar_one()
    assert refund.status == RefundStatus.PROCESSING


@pytest.mark.asyncio
@pytest.mark.integration
async def test_refund_status_can_be_completed(workshops_client, db_session, fake_stripe):
    workshop = await _published(db_session)
    registration = await _register(db_session, workshop)

    with override_auth(app, make_admin_user()):
        created = await workshops_client.post(
            "/workshops/refunds",
            json={"registration_id": str(registration.id), "reason": "Moved abroad"},
        )
        refund_id = created.json()["id"]
        completed = await workshops_client.patch(
            f"/workshops/refunds/{refund_id}/status", json={"status": "completed"}
        )

    assert completed.status_code == 200, completed.text
    assert completed.json()["completed_at"] is not None


@pytest.mark.asyncio
@pytest.mark.integration
async def test_refund_rechecks_registration_under_lock(db_session, fake_stripe):
    workshop = await _published(db_session)
    registration = await _register(db_session, workshop)
    # Another request refunds the seat while this session still holds the old row.
    await db_session.execute(
        update(WorkshopRegistration)
        .where(WorkshopRegistration.id == registration.id)
        .values(status=RegistrationStatus.REFUNDED)
        .execution_options(synchronize_session=False)
    )
    await db_session.commit()
    assert registration.status == RegistrationStatus.CONFIRMED

    with pytest.raises(HTTPException) as exc:
        await refund_ops.process_refund(
            db_session,
            registration.id,
            reason="Injury",
            actor_id="admin",
            stripe_client=fake_stripe,
        )

    assert exc.value.status_code == 400
    assert exc.value.detail == "Registration already refunded"
    assert fake_stripe.refunds == []


@pytest.mark.asyncio
@pytest.mark.integration
async def test_refund_sends_idempotency_key(workshops_client, db_session, fake_stripe):
    workshop = await _published(db_session)
    registration = await _register(db_session, workshop)

    with override_auth(app, make_admin_user()):
        response = await workshops_client.post(
            "/workshops/refunds",
            json={"registration_id": str(registration.id), "reason": "Injury"},
        )

    assert response.status_code == 201, response.text
    key = fake_stripe.refunds[0]["idempotency_key"]
    assert key.startswith(f"workshop-refund-{response.json()['id']}-")
