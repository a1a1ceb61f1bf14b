"""Members Service models package.

Model definitions are split across:
  - models/profile.py   : user profiles, club roles, member profiles
  - models/waitlist.py  : waitlist entries, guardians, status history
  - models/invitation.py: invitations and club settings
"""

from services.members_service.models.enums import (  # noqa: F401
    InvitationStatus,
    InvitationType,
    PreferredWeapon,
    SettingType,
    SocialMediaConsent,
    WaitlistPriority,
    WaitlistStatus,
)
from services.members_service.models.invitation import (  # noqa: F401
    ClubSetting,
    Invitation,
)
from services.members_service.models.profile import (  # noqa: F401
    MemberProfile,
    UserProfile,
    UserRole,
)
from services.members_service.models.waitlist import (  # noqa: F401
    WaitlistEntry,
    WaitlistGuardian,
    WaitlistStatusHistory,
)

__all__ = [
    "ClubSetting",
    "Invitation",
    "InvitationStatus",
    "InvitationType",
    "MemberProfile",
    "PreferredWeapon",
    "SettingType",
    "SocialMediaConsent",
    "UserProfile",
    "UserRole",
    "WaitlistEntry",
    "WaitlistGuardian",
    "WaitlistPriority",
    "WaitlistStatus",
    "WaitlistStatusHistory",
]
