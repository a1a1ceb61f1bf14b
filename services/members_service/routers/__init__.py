"""Members service routers package."""

from services.members_service.routers.internal import router as internal_router
from services.members_service.routers.invitations import router as invitations_router
from services.members_service.routers.members import router as members_router
from services.members_service.routers.roles import router as roles_router
from services.members_service.routers.settings import router as settings_router
from services.members_service.routers.waitlist import router as waitlist_router
from services.members_service.routers.webhooks import router as webhooks_router

__all__ = [
    "waitlist_router",
    "invitations_router",
    "members_router",
    "roles_router",
    "settings_router",
    "internal_router",
    "webhooks_router",
]
