"""FastAPI application for the Workshops Service."""

from fastapi import FastAPI
from libs.common.error_handler import add_exception_handlers
from libs.common.middleware import add_observability_middleware
from libs.common.rate_limit import add_rate_limiting
from services.workshops_service.routers import (
    refunds_router,
    registrations_router,
    workshops_router,
)


def create_app() -> FastAPI:
    """Create and configure the Workshops Service FastAPI app."""
    app = FastAPI(
        title="HEMA Club Workshops Service",
        version="0.1.0",
        description="Workshop scheduling, paid registration, refunds and attendance.",
    )
    add_observability_middleware(app)
    add_exception_handlers(app)
    add_rate_limiting(app)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "workshops"}

    # Static segments (/refunds, /registrations) before /{workshop_id} routes
    app.include_router(refunds_router)
    app.include_router(workshops_router)
    app.include_router(registrations_router)

    return app


app = create_app()
