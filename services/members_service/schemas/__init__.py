"""Members Service schemas package.

Schema files:
  - schemas/waitlist.py   : waitlist intake and administration
  - schemas/invitations.py: invitations and membership signup
  - schemas/members.py    : member profiles, roles, subscriptions
  - schemas/settings.py   : club settings
"""

from services.members_service.schemas.invitations import (  # noqa: F401
    BulkInvitationCreate,
    BulkInvitationResult,
    InternalInvitationCreate,
    InvitationCreate,
    InvitationCredentials,
    InvitationInfo,
    InvitationResponse,
    InvitationStatusUpdate,
    InvitationValidity,
    MemberSignupRequest,
    MemberSignupResponse,
    PlanPricing,
)
from services.members_service.schemas.members import (  # noqa: F401
    CompleteRegistrationRequest,
    MemberListResponse,
    MemberResponse,
    MemberUpdate,
    ProfileBulkRequest,
    ProfileSearchRequest,
    ProfileSummary,
    RoleAssignment,
    SubscriptionPauseRequest,
    SubscriptionStatusResponse,
    UserRolesResponse,
)
from services.members_service.schemas.settings import (  # noqa: F401
    InsuranceFormLinkUpdate,
    SettingResponse,
    SettingUpdate,
    WaitlistOpenResponse,
)
from services.members_service.schemas.waitlist import (  # noqa: F401
    GuardianResponse,
    PrioritizedWaitlistEntry,
    PrioritizedWaitlistRequest,
    PriorityRequeueRequest,
    PriorityResetRequest,
    WaitlistEntryResponse,
    WaitlistListResponse,
    WaitlistNotesUpdate,
    WaitlistStatusUpdate,
    WaitlistSubmission,
    WaitlistSubmissionResponse,
)
