"""Workshops Service models package."""

from services.workshops_service.models.enums import (  # noqa: F401
    ACTIVE_REGISTRATION_STATUSES,
    AttendanceStatus,
    RefundStatus,
    RegistrationStatus,
    WorkshopStatus,
)
from services.workshops_service.models.registration import (  # noqa: F401
    ExternalUser,
    WorkshopRefund,
    WorkshopRegistration,
)
from services.workshops_service.models.workshop import (  # noqa: F401
    Workshop,
    WorkshopInterest,
)

__all__ = [
    "ACTIVE_REGISTRATION_STATUSES",
    "AttendanceStatus",
    "ExternalUser",
    "RefundStatus",
    "RegistrationStatus",
    "Workshop",
    "WorkshopInterest",
    "WorkshopRefund",
    "WorkshopRegistration",
    "WorkshopStatus",
]
