"""Registration, refund and attendance schemas."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from services.workshops_service.models import (
    AttendanceStatus,
    RefundStatus,
    RegistrationStatus,
)


class PaymentIntentResponse(BaseModel):
    client_secret: str
    payment_intent_id: str
    amount: int
    currency: str


class CompleteRegistrationRequest(BaseModel):
    payment_intent_id: str = Field(..., min_length=1)


class ExternalRegistrationRequest(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=255)
    last_name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    phone_number: Optional[str] = Field(None, max_length=32)
    payment_intent_id: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v: str) -> str:
        return v.lower()


class ExternalPaymentIntentRequest(BaseModel):
    email: EmailStr


class RegistrationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    workshop_id: uuid.UUID
    member_user_id: Optional[str] = None
    external_user_id: Optional[uuid.UUID] = None
    stripe_payment_intent_id: Optional[str] = None
    amount_paid: int
    currency: str
    status: RegistrationStatus
    registered_at: datetime
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    attendance_status: AttendanceStatus
    attendance_marked_at: Optional[datetime] = None
    attendance_marked_by: Optional[str] = None
    attendance_notes: Optional[str] = None


class CancelRegistrationResponse(BaseModel):
    success: bool
    refund_processed: bool = False
    requeued: bool = False


class AttendeeResponse(BaseModel):
    registration_id: uuid.UUID
    user_type: str  # member | external
    user_id: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    status: RegistrationStatus
    amount_paid: int
    attendance_status: AttendanceStatus
    attendance_notes: Optional[str] = None
    registered_at: datetime


class InviteFromWaitlistRequest(BaseModel):
    limit: Optional[int] = Field(None, ge=1)


class InviteFromWaitlistResponse(BaseModel):
    invited: int
    failed: int
    invitation_ids: list[str] = Field(default_factory=list)


class ManualAttendeeCreate(BaseModel):
    user_id: str = Field(..., min_length=1)


class UserSearchResult(BaseModel):
    user_id: str
    first_name: str
    last_name: str
    email: str


# ---------------------------------------------------------------------------
# Refunds
# ---------------------------------------------------------------------------


class RefundEligibility(BaseModel):
    eligible: bool
    reason: Optional[str] = None
    refund_deadline: Optional[datetime] = None
    days_until_deadline: Optional[int] = None


class RefundRequest(BaseModel):
    registration_id: uuid.UUID
    reason: str = Field(..., min_length=1, max_length=1000)


class RefundStatusUpdate(BaseModel):
    status: RefundStatus


class RefundResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    registration_id: uuid.UUID
    refund_amount: int
    refund_reason: Optional[str] = None
    status: RefundStatus
    stripe_refund_id: Optional[str] = None
    requested_at: datetime
    processed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    requested_by: Optional[str] = None
    processed_by: Optional[str] = None


# ---------------------------------------------------------------------------
# Attendance
# ---------------------------------------------------------------------------


class AttendanceUpdate(BaseModel):
    registration_id: uuid.UUID
    attendance_status: AttendanceStatus
    notes: Optional[str] = Field(None, max_length=1000)


class AttendanceBatchUpdate(BaseModel):
    attendance_updates: list[AttendanceUpdate] = Field(..., min_length=1)
