"""Authenticated calls from the workshops service to the members service.

Workshops never read member tables directly; names, the waitlist queue and
invitations are reached through the members ``/internal`` endpoints.
"""

from __future__ import annotations

from typing import Any, Optional

import httpx
from libs.auth.dependencies import _service_role_jwt
from libs.common.config import get_settings
from libs.common.logging import get_logger, get_request_id

logger = get_logger(__name__)

INTERNAL_TIMEOUT = 10.0


async def members_post(*, path: str, json: Any, calling_service: str) -> httpx.Response:
    """POST ``json`` to a members-service internal route with a service token.

    Raises httpx.RequestError when the service cannot be reached.
    """
    base_url = get_settings().MEMBERS_SERVICE_URL
    headers = {
        "Authorization": f"Bearer {_service_role_jwt(calling_service)}",
        "X-Caller-Service": calling_service,
    }
    request_id = get_request_id()
    if request_id:
        headers["X-Request-ID"] = request_id

    async with httpx.AsyncClient(base_url=base_url, timeout=INTERNAL_TIMEOUT) as client:
        response = await client.post(path, json=json, headers=headers)

    if response.is_server_error:
        logger.error(
            f"Members call {path} returned {response.status_code}",
            extra={"extra_fields": {"caller": calling_service}},
        )
    return response


# ---------------------------------------------------------------------------
# Members service helpers
# ---------------------------------------------------------------------------


async def get_profiles_bulk(
    user_ids: list[str], *, calling_service: str
) -> dict[str, dict]:
    """Bulk-lookup user profiles by auth user id.

    Returns a mapping of user_id -> {user_id, first_name, last_name, email, phone_number}.
    """
    if not user_ids:
        return {}
    resp = await members_post(
        path="/internal/profiles/bulk",
        calling_service=calling_service,
        json={"user_ids": user_ids},
    )
    resp.raise_for_status()
    return {row["user_id"]: row for row in resp.json()}


async def search_profiles(
    query: str, *, exclude_user_ids: list[str], calling_service: str
) -> list[dict]:
    """Profiles matching a name or email search, minus ``exclude_user_ids``."""
    resp = await members_post(
        path="/internal/profiles/search",
        calling_service=calling_service,
        json={"query": query, "exclude_user_ids": exclude_user_ids},
    )
    resp.raise_for_status()
    return resp.json()


async def get_prioritized_waitlist(
    workshop_id: str,
    *,
    exclude_user_ids: list[str],
    limit: Optional[int],
    calling_service: str,
) -> list[dict]:
    """Waitlist entries eligible for a workshop, highest priority first."""
    resp = await members_post(
        path="/internal/waitlist/prioritized",
        calling_service=calling_service,
        json={
            "workshop_id": workshop_id,
            "exclude_user_ids": exclude_user_ids,
            "limit": limit,
        },
    )
    resp.raise_for_status()
    return resp.json()


async def move_to_waitlist_with_priority(
    user_id: str,
    workshop_id: str,
    *,
    notes: Optional[str] = None,
    calling_service: str,
) -> bool:
    """Requeue a cancelled attendee with priority. False if they have no entry."""
    resp = await members_post(
        path="/internal/waitlist/priority",
        calling_service=calling_service,
        json={"user_id": user_id, "workshop_id": workshop_id, "notes": notes},
    )
    if resp.status_code == 404:
        return False
    resp.raise_for_status()
    return True


async def reset_waitlist_priority(workshop_id: str, *, calling_service: str) -> int:
    """Expire cancellation priority granted for a workshop. Returns rows reset."""
    resp = await members_post(
        path="/internal/waitlist/reset-priority",
        calling_service=calling_service,
        json={"workshop_id": workshop_id},
    )
    resp.raise_for_status()
    return resp.json()["reset"]


async def create_workshop_invitation(
    *,
    user_id: str,
    email: str,
    waitlist_id: Optional[str],
    workshop_id: str,
    calling_service: str,
) -> dict:
    """Create (or refresh) a workshop invitation for a waitlisted user."""
    resp = await members_post(
        path="/internal/invitations",
        calling_service=calling_service,
        json={
            "user_id": user_id,
            "email": email,
            "waitlist_id": waitlist_id,
            "invitation_type": "workshop",
            "metadata": {"workshop_id": workshop_id},
        },
    )
    resp.raise_for_status()
    return resp.json()
