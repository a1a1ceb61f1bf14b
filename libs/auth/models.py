import enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class ClubRole(str, enum.Enum):
    ADMIN = "admin"
    PRESIDENT = "president"
    TREASURER = "treasurer"
    COMMITTEE_COORDINATOR = "committee_coordinator"
    SPARRING_COORDINATOR = "sparring_coordinator"
    WORKSHOP_COORDINATOR = "workshop_coordinator"
    BEGINNERS_COORDINATOR = "beginners_coordinator"
    QUARTERMASTER = "quartermaster"
    PR_MANAGER = "pr_manager"
    VOLUNTEER_COORDINATOR = "volunteer_coordinator"
    RESEARCH_COORDINATOR = "research_coordinator"
    MEMBER = "member"
    COACH = "coach"


# Roles that pass every role check.
SUPERUSER_ROLES = frozenset({ClubRole.ADMIN.value, ClubRole.PRESIDENT.value})

INVITATION_ADMINS = (
    ClubRole.ADMIN,
    ClubRole.PRESIDENT,
    ClubRole.COMMITTEE_COORDINATOR,
)
WORKSHOP_MANAGERS = (
    ClubRole.ADMIN,
    ClubRole.PRESIDENT,
    ClubRole.BEGINNERS_COORDINATOR,
    ClubRole.WORKSHOP_COORDINATOR,
)
INVENTORY_MANAGERS = (
    ClubRole.ADMIN,
    ClubRole.PRESIDENT,
    ClubRole.QUARTERMASTER,
)
SETTINGS_ADMINS = INVITATION_ADMINS


class AuthUser(BaseModel):
    """
    Represents an authenticated user from a Supabase access token.

    Club roles are carried in ``app_metadata.roles`` by the access token hook.
    """

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="sub")
    email: Optional[EmailStr] = None
    role: str = "authenticated"
    app_metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def roles(self) -> set[str]:
        return set(self.app_metadata.get("roles") or [])

    @property
    def is_service(self) -> bool:
        return self.role == "service_role"

    def has_any_role(self, roles) -> bool:
        if self.is_service:
            return True
        held = self.roles
        if held & SUPERUSER_ROLES:
            return True
        wanted = {r.value if isinstance(r, ClubRole) else r for r in roles}
        return bool(held & wanted)
