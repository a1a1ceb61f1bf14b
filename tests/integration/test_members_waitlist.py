"""Integration tests for waitlist intake, administration and the internal
waitlist endpoints used by the workshops service."""

import uuid
from datetime import date, timedelta

import pytest
from services.members_service.app.main import app
from services.members_service.models import (
    UserProfile,
    WaitlistEntry,
    WaitlistGuardian,
    WaitlistPriority,
    WaitlistStatus,
)
from sqlalchemy import select
from tests.factories import ClubSettingFactory, UserProfileFactory, WaitlistEntryFactory
from tests.helpers import make_admin_user, make_service_user, make_user, override_auth


def _submission(**overrides) -> dict:
    payload = {
        "first_name": " Ada ",
        "last_name": "Lovelace",
        "email": "Ada.Lovelace@Test.com",
        "phone_number": "+353 87 123 4567",
        "date_of_birth": "1990-04-02",
        "pronouns": "She/Her",
        "gender": "female",
        "medical_conditions": "",
        "social_media_consent": "yes_unrecognizable",
    }
    payload.update(overrides)
    return payload


async def _waiting(db_session, *, priority=0, user_id=None, previous_workshop_id=None):
    entry = WaitlistEntryFactory.create(
        priority_level=priority, previous_workshop_id=previous_workshop_id
    )
    db_session.add(entry)
    await db_session.flush()
    profile = UserProfileFactory.create(
        email=entry.email,
        waitlist_id=entry.id,
        supabase_user_id=user_id or f"auth-{uuid.uuid4().hex[:8]}",
    )
    db_session.add(profile)
    await db_session.commit()
    return entry, profile


# ---------------------------------------------------------------------------
# Public intake
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_submit_waitlist_creates_entry_and_inactive_profile(members_client, db_session):
    response = await members_client.post("/waitlist", json=_submission())

    assert response.status_code == 201, response.text
    data = response.json()
    assert data["email"] == "ada.lovelace@test.com"
    assert data["first_name"] == "Ada"

    profile = await db_session.get(UserProfile, uuid.UUID(data["profile_id"]))
    assert profile.is_active is False
    assert profile.pronouns == "she/her"
    entry = await db_session.get(WaitlistEntry, uuid.UUID(data["waitlist_id"]))
    assert entry.status == WaitlistStatus.WAITING


@pytest.mark.asyncio
@pytest.mark.integration
async def test_duplicate_email_is_rejected(members_client, db_session):
    first = await members_client.post("/waitlist", json=_submission())
    second = await members_client.post(
        "/waitlist", json=_submission(email="ada.lovelace@test.com")
    )

    assert first.status_code == 201
    assert second.status_code == 409


@pytest.mark.asyncio
@pytest.mark.integration
async def test_minor_needs_guardian(members_client, db_session):
    teen_dob = (date.today() - timedelta(days=16 * 365)).isoformat()

    missing = await members_client.post(
        "/waitlist", json=_submission(date_of_birth=teen_dob)
    )
    complete = await members_client.post(
        "/waitlist",
        json=_submission(
            date_of_birth=teen_dob,
            guardian_first_name="Anne",
            guardian_last_name="Isabella",
            guardian_phone_number="+353 87 765 4321",
        ),
    )

    assert missing.status_code == 422
    assert complete.status_code == 201, complete.text
    guardian = await db_session.execute(
        select(WaitlistGuardian).where(
            WaitlistGuardian.profile_id == uuid.UUID(complete.json()["profile_id"])
        )
    )
    assert guardian.scalar_one().first_name == "Anne"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_closed_waitlist_refuses_submissions(members_client, db_session):
    db_session.add(ClubSettingFactory.create(key="waitlist_open", value="false"))
    await db_session.commit()

    status_response = await members_client.get("/settings/waitlist-open")
    response = await members_client.post("/waitlist", json=_submission())

    assert status_response.json() == {"open": False}
    assert response.status_code == 403


@pytest.mark.asyncio
@pytest.mark.integration
async def test_invalid_phone_and_pronouns_are_rejected(members_client, db_session):
    bad_phone = await members_client.post("/waitlist", json=_submission(phone_number="call me"))
    bad_pronouns = await members_client.post("/waitlist", json=_submission(pronouns="he him"))

    assert bad_phone.status_code == 422
    assert bad_pronouns.status_code == 422


# ---------------------------------------------------------------------------
# Administration
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_status_change_is_recorded_in_history(members_client, db_session):
    entry, _profile = await _waiting(db_session)
    admin = make_admin_user()

    with override_auth(app, admin):
        updated = await members_client.patch(
            f"/waitlist/{entry.id}/status", json={"status": "deferred"}
        )
        history = await members_client.get(f"/waitlist/{entry.id}/history")

    assert updated.status_code == 200, updated.text
    assert updated.json()["status"] == "deferred"
    assert history.json()[0]["new_status"] == "deferred"
    assert history.json()[0]["changed_by"] == admin.user_id


@pytest.mark.asyncio
@pytest.mark.integration
async def test_waitlist_listing_requires_committee(members_client, db_session):
    with override_auth(app, make_user()):
        response = await members_client.get("/waitlist")

    assert response.status_code == 403


@pytest.mark.asyncio
@pytest.mark.integration
async def test_waitlist_listing_filters_by_status(members_client, db_session):
    waiting, _ = await _waiting(db_session)
    deferred = WaitlistEntryFactory.create(status=WaitlistStatus.DEFERRED)
    db_session.add(deferred)
    await db_session.commit()

    with override_auth(app, make_admin_user()):
        response = await members_client.get("/waitlist", params={"status": "waiting"})

    ids = {item["id"] for item in response.json()["items"]}
    assert str(waiting.id) in ids
    assert str(deferred.id) not in ids


# ---------------------------------------------------------------------------
# Internal workshop hooks
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_internal_routes_need_service_token(members_client, db_session):
    with override_auth(app, make_admin_user()):
        response = await members_client.post(
            "/internal/waitlist/prioritized", json={"workshop_id": str(uuid.uuid4())}
        )

    assert response.status_code == 403


@pytest.mark.asyncio
@pytest.mark.integration
async def test_prioritized_waitlist_orders_and_excludes(members_client, db_session):
    workshop_id = uuid.uuid4()
    normal, _ = await _waiting(db_session)
    priority, _ = await _waiting(db_session, priority=WaitlistPriority.CANCELLED_PRIORITY.value)
    _same_workshop, _ = await _waiting(
        db_session,
        priority=WaitlistPriority.CANCELLED_PRIORITY.value,
        previous_workshop_id=workshop_id,
    )
    _attending, attending_profile = await _waiting(db_session)

    with override_auth(app, make_service_user()):
        response = await members_client.post(
            "/internal/waitlist/prioritized",
            json={
                "workshop_id": str(workshop_id),
                "exclude_user_ids": [attending_profile.supabase_user_id],
            },
        )

    assert response.status_code == 200, response.text
    assert [row["waitlist_id"] for row in response.json()] == [str(priority.id), str(normal.id)]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_requeue_and_reset_priority(members_client, db_session):
    workshop_id = uuid.uuid4()
    entry, profile = await _waiting(db_session)
    entry.status = WaitlistStatus.INVITED
    await db_session.commit()

    with override_auth(app, make_service_user()):
        requeued = await members_client.post(
            "/internal/waitlist/priority",
            json={"user_id": profile.supabase_user_id, "workshop_id": str(workshop_id)},
        )
        reset = await members_client.post(
            "/internal/waitlist/reset-priority", json={"workshop_id": str(workshop_id)}
        )

    assert requeued.status_code == 200, requeued.text
    assert requeued.json()["priority_level"] == WaitlistPriority.CANCELLED_PRIORITY.value
    assert reset.json() == {"reset": 1}

    await db_session.refresh(entry)
    assert entry.status == WaitlistStatus.WAITING
    assert entry.priority_level == WaitlistPriority.NORMAL.value
    assert "[Cancelled from workshop, given priority]" in entry.admin_notes


@pytest.mark.asyncio
@pytest.mark.integration
async def test_requeue_unknown_user_is_404(members_client, db_session):
    with override_auth(app, make_service_user()):
        response = await members_client.post(
            "/internal/waitlist/priority",
            json={"user_id": "nobody", "workshop_id": str(uuid.uuid4())},
        )

    assert response.status_code == 404


@pytest.mark.asyncio
@pytest.mark.integration
async def test_profiles_bulk_returns_known_users(members_client, db_session):
    _, profile = await _waiting(db_session)

    with override_auth(app, make_service_user()):
        response = await members_client.post(
            "/internal/profiles/bulk",
            json={"user_ids": [profile.supabase_user_id, "unknown"]},
        )

    assert response.status_code == 200, response.text
    assert [p["user_id"] for p in response.json()] == [profile.supabase_user_id]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_profile_search_matches_every_term(members_client, db_session):
    wanted = UserProfileFactory.create(first_name="Joachim", last_name="Meyer")
    namesake = UserProfileFactory.create(first_name="Joachim", last_name="Liechtenauer")
    excluded = UserProfileFactory.create(first_name="Joachim", last_name="Meyerhoff")
    db_session.add_all([wanted, namesake, excluded])
    await db_session.commit()

    with override_auth(app, make_service_user()):
        response = await members_client.post(
            "/internal/profiles/search",
            json={
                "query": "joachim meyer",
                "exclude_user_ids": [excluded.supabase_user_id],
            },
        )
        too_short = await members_client.post(
            "/internal/profiles/search", json={"query": " j "}
        )

    assert response.status_code == 200, response.text
    assert [p["user_id"] for p in response.json()] == [wanted.supabase_user_id]
    assert too_short.status_code == 422
