"""HTTP clients for the gateway to call microservices."""

from typing import Optional

import httpx
from libs.common.config import get_settings

settings = get_settings()


class ServiceClient:
    """Thin async client bound to one service's base URL.

    Responses are returned as-is so the gateway can relay status codes,
    headers and bodies unchanged.
    """

    def __init__(self, base_url: str, timeout: float = 10.0):
        self.base_url = base_url
        self.timeout = timeout

    async def request(
        self,
        method: str,
        path: str,
        *,
        headers: Optional[dict] = None,
        content: Optional[bytes] = None,
    ) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.request(
                method,
                f"{self.base_url}{path}",
                headers=headers or {},
                content=content,
            )


# Service client instances
members_client = ServiceClient(settings.MEMBERS_SERVICE_URL)
workshops_client = ServiceClient(settings.WORKSHOPS_SERVICE_URL)
inventory_client = ServiceClient(settings.INVENTORY_SERVICE_URL)
