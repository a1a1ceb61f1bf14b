"""FastAPI application entrypoint for the club API gateway.

The gateway holds no business logic: it proxies ``/api/v1/...`` requests
to the members, workshops and inventory services.
"""

from __future__ import annotations

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from libs.common.config import get_settings
from libs.common.error_handler import add_exception_handlers
from libs.common.logging import get_logger, get_request_id
from libs.common.middleware import add_observability_middleware
from libs.common.rate_limit import add_rate_limiting, limiter
from services.gateway_service.app import clients

logger = get_logger(__name__)

PROXY_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]

# Gateway prefix -> members service router prefix
MEMBERS_PREFIXES = ("waitlist", "invitations", "members", "roles", "settings")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance."""
    settings = get_settings()
    app = FastAPI(
        title="HEMA Club Gateway Service",
        version="0.1.0",
        description="API Gateway in front of the club's microservices.",
    )

    add_rate_limiting(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Add observability (structured logging + request tracing)
    add_observability_middleware(app)

    # Add global exception handlers for consistent error responses
    add_exception_handlers(app)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Simple readiness endpoint."""
        return {"status": "ok"}

    # ==================================================================
    # MEMBERS SERVICE PROXY
    # ==================================================================
    # Public waitlist intake with a strict rate limit
    @app.api_route("/api/v1/waitlist", methods=["POST"])
    @app.api_route("/api/v1/waitlist/", methods=["POST"])
    @limiter.limit("5/minute")
    async def proxy_waitlist_submit(request: Request):
        """Proxy waitlist form submissions to members service."""
        return await proxy_request(clients.members_client, "/waitlist", request)

    for prefix in MEMBERS_PREFIXES:
        _add_proxy(app, prefix, "members_client")

    # Stripe posts webhooks here; the raw body is forwarded untouched so
    # the members service can verify the signature.
    @app.post("/api/v1/webhooks/stripe")
    async def proxy_stripe_webhook(request: Request):
        return await proxy_request(clients.members_client, "/webhooks/stripe", request)

    # ==================================================================
    # WORKSHOPS SERVICE PROXY
    # ==================================================================
    @app.post("/api/v1/workshops/{workshop_id}/payment-intent")
    @limiter.limit("3/minute")
    async def proxy_workshop_payment_intent(workshop_id: str, request: Request):
        """Proxy payment intent creation with rate limiting."""
        return await proxy_request(
            clients.workshops_client, f"/workshops/{workshop_id}/payment-intent", request
        )

    _add_proxy(app, "workshops", "workshops_client")

    # ==================================================================
    # INVENTORY SERVICE PROXY
    # ==================================================================
    _add_proxy(app, "inventory", "inventory_client")

    return app


def _add_proxy(app: FastAPI, prefix: str, client_name: str) -> None:
    """Forward /api/v1/<prefix> and /api/v1/<prefix>/* to the same path on a service.

    The client is looked up on each request so it can be swapped in tests.
    """

    async def proxy_root(request: Request):
        return await proxy_request(getattr(clients, client_name), f"/{prefix}", request)

    async def proxy_path(path: str, request: Request):
        return await proxy_request(
            getattr(clients, client_name), f"/{prefix}/{path}", request
        )

    app.add_api_route(
        f"/api/v1/{prefix}", proxy_root, methods=PROXY_METHODS, name=f"proxy_{prefix}_root"
    )
    app.add_api_route(
        f"/api/v1/{prefix}/{{path:path}}",
        proxy_path,
        methods=PROXY_METHODS,
        name=f"proxy_{prefix}",
    )


def _filter_service_headers(headers: httpx.Headers) -> list[tuple[str, str]]:
    """Strip hop-by-hop headers that FastAPI/starlette manages."""
    hop_by_hop = {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailers",
        "transfer-encoding",
        "upgrade",
        "content-length",
        "content-encoding",
        "host",
        "content-type",
    }
    return [(k, v) for k, v in headers.items() if k.lower() not in hop_by_hop]


def _forward_headers(request: Request) -> dict[str, str]:
    headers = {
        k: v
        for k, v in request.headers.items()
        if k.lower() not in ["content-length", "host"]
    }
    request_id = get_request_id()
    if request_id:
        headers["X-Request-ID"] = request_id
    if request.client and "x-forwarded-for" not in {k.lower() for k in headers}:
        headers["X-Forwarded-For"] = request.client.host
    return headers


async def proxy_request(client: clients.ServiceClient, path: str, request: Request):
    """Generic proxy function to forward requests to microservices."""
    # Forward bodies as raw bytes; re-serializing JSON would break webhook
    # signature verification.
    content_body = None
    if request.method in ["POST", "PATCH", "PUT"]:
        body_bytes = await request.body()
        if body_bytes:
            content_body = body_bytes

    query_params = request.url.query
    if query_params:
        path = f"{path}?{query_params}"

    try:
        service_response = await client.request(
            request.method,
            path,
            headers=_forward_headers(request),
            content=content_body,
        )
    except httpx.RequestError as e:
        logger.error(f"Upstream {client.base_url} unreachable: {e}")
        raise HTTPException(status_code=503, detail=f"Service unavailable: {str(e)}")

    forward_headers = dict(_filter_service_headers(service_response.headers))

    if service_response.status_code == 204:
        return Response(status_code=204, headers=forward_headers)

    content_type = service_response.headers.get("content-type", "")

    if "application/json" in content_type:
        try:
            payload = service_response.json()
            return JSONResponse(
                content=payload,
                status_code=service_response.status_code,
                headers=forward_headers,
            )
        except ValueError:
            # Fall back to raw bytes if the payload is not valid JSON.
            pass

    return Response(
        content=service_response.content,
        status_code=service_response.status_code,
        media_type=content_type or None,
        headers=forward_headers,
    )


app = create_app()
