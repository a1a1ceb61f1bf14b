"""Enum definitions for workshops service models."""

import enum


def enum_values(enum_cls):
    """Return persistent DB values for SAEnum mappings."""
    return [member.value for member in enum_cls]


class WorkshopStatus(str, enum.Enum):
    PLANNED = "planned"
    PUBLISHED = "published"
    FINISHED = "finished"
    CANCELLED = "cancelled"


class RegistrationStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


# Registrations that hold a seat.
ACTIVE_REGISTRATION_STATUSES = (RegistrationStatus.PENDING, RegistrationStatus.CONFIRMED)


class AttendanceStatus(str, enum.Enum):
    PENDING = "pending"
    ATTENDED = "attended"
    NO_SHOW = "no_show"
    EXCUSED = "excused"


class RefundStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
