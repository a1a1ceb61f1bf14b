"""FastAPI application for the Inventory Service."""

from fastapi import FastAPI
from libs.common.error_handler import add_exception_handlers
from libs.common.middleware import add_observability_middleware
from libs.common.rate_limit import add_rate_limiting
from services.inventory_service.routers import (
    categories_router,
    containers_router,
    items_router,
)


def create_app() -> FastAPI:
    """Create and configure the Inventory Service FastAPI app."""
    app = FastAPI(
        title="HEMA Club Inventory Service",
        version="0.1.0",
        description="Equipment containers, categories, items and their history.",
    )
    add_observability_middleware(app)
    add_exception_handlers(app)
    add_rate_limiting(app)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "inventory"}

    app.include_router(containers_router)
    app.include_router(categories_router)
    app.include_router(items_router)

    return app


app = create_app()
