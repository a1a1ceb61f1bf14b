"""Supabase auth admin access.

Used to create auth users for invitees and to publish club roles into
``app_metadata.roles`` so they appear in access tokens.
"""

import asyncio
from functools import lru_cache
from typing import Optional

from supabase import Client, create_client

from libs.common.config import get_settings
from libs.common.logging import get_logger

logger = get_logger(__name__)


@lru_cache
def get_supabase_admin_client() -> Client:
    settings = get_settings()
    return create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)


class SupabaseAuthAdmin:
    """Async facade over the (synchronous) supabase auth admin API."""

    def __init__(self, client: Optional[Client] = None):
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase_admin_client()
        return self._client

    async def create_user(
        self, *, email: str, first_name: str, last_name: str, roles: list[str]
    ) -> str:
        """Create a confirmed auth user and return its id."""
        response = await asyncio.to_thread(
            self.client.auth.admin.create_user,
            {
                "email": email,
                "email_confirm": True,
                "user_metadata": {"first_name": first_name, "last_name": last_name},
                "app_metadata": {"roles": roles},
            },
        )
        user_id = response.user.id
        logger.info(
            "Created auth user",
            extra={"extra_fields": {"user_id": user_id}},
        )
        return user_id

    async def set_roles(self, user_id: str, roles: list[str]) -> None:
        await asyncio.to_thread(
            self.client.auth.admin.update_user_by_id,
            user_id,
            {"app_metadata": {"roles": sorted(roles)}},
        )


@lru_cache
def get_auth_admin() -> SupabaseAuthAdmin:
    """FastAPI dependency returning the shared auth admin facade."""
    return SupabaseAuthAdmin()
