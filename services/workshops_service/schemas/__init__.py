"""Workshops Service schemas package."""

from services.workshops_service.schemas.registrations import (  # noqa: F401
    AttendanceBatchUpdate,
    AttendanceUpdate,
    AttendeeResponse,
    CancelRegistrationResponse,
    CompleteRegistrationRequest,
    ExternalPaymentIntentRequest,
    ExternalRegistrationRequest,
    InviteFromWaitlistRequest,
    InviteFromWaitlistResponse,
    ManualAttendeeCreate,
    PaymentIntentResponse,
    RefundEligibility,
    RefundRequest,
    RefundResponse,
    RefundStatusUpdate,
    RegistrationResponse,
    UserSearchResult,
)
from services.workshops_service.schemas.workshops import (  # noqa: F401
    PRICING_FIELDS,
    CapacityResponse,
    InterestToggleResponse,
    MemberWorkshopResponse,
    WorkshopCreate,
    WorkshopListResponse,
    WorkshopResponse,
    WorkshopUpdate,
)
