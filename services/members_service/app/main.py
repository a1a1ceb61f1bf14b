"""FastAPI application for the Members Service."""

from fastapi import FastAPI
from libs.common.error_handler import add_exception_handlers
from libs.common.middleware import add_observability_middleware
from libs.common.rate_limit import add_rate_limiting
from services.members_service.routers import (
    internal_router,
    invitations_router,
    members_router,
    roles_router,
    settings_router,
    waitlist_router,
    webhooks_router,
)


def create_app() -> FastAPI:
    """Create and configure the Members Service FastAPI app."""
    app = FastAPI(
        title="HEMA Club Members Service",
        version="0.1.0",
        description="Waitlist, invitations, membership and club settings.",
    )
    add_observability_middleware(app)
    add_exception_handlers(app)
    add_rate_limiting(app)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "members"}

    # Gateway: /api/v1/{waitlist,invitations,members,roles,settings}/... → same path
    app.include_router(waitlist_router)
    app.include_router(invitations_router)
    app.include_router(members_router)
    app.include_router(roles_router)
    app.include_router(settings_router)

    # Stripe calls this directly (through the gateway's /webhooks passthrough)
    app.include_router(webhooks_router)

    # Internal service-to-service routes (not proxied by gateway)
    app.include_router(internal_router)

    return app


app = create_app()
