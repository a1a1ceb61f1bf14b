"""Invitation and membership signup schemas."""

import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from services.members_service.models import InvitationStatus, InvitationType
from services.members_service.schemas.waitlist import validate_phone


class InvitationCreate(BaseModel):
    """Admin request to invite someone to become a member.

    ``user_id`` is the auth user id when the person already has an account.
    """

    user_id: Optional[str] = None
    email: EmailStr
    first_name: str = Field(..., min_length=1, max_length=255)
    last_name: str = Field(..., min_length=1, max_length=255)
    date_of_birth: Optional[date] = None
    phone_number: Optional[str] = None
    expires_at: Optional[datetime] = None
    invitation_type: InvitationType = InvitationType.ADMIN
    waitlist_id: Optional[uuid.UUID] = None
    metadata: dict = Field(default_factory=dict)

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v: str) -> str:
        return v.lower()


class InternalInvitationCreate(BaseModel):
    """Invitation requested by another service for an existing profile."""

    user_id: str
    email: EmailStr
    waitlist_id: Optional[uuid.UUID] = None
    invitation_type: InvitationType = InvitationType.WORKSHOP
    expires_at: Optional[datetime] = None
    metadata: dict = Field(default_factory=dict)


class BulkInvitationCreate(BaseModel):
    invitations: list[InvitationCreate] = Field(..., min_length=1, max_length=200)


class BulkInvitationResult(BaseModel):
    email: str
    success: bool
    invitation_id: Optional[uuid.UUID] = None
    error: Optional[str] = None


class InvitationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    email: str
    user_id: str
    waitlist_id: Optional[uuid.UUID] = None
    status: InvitationStatus
    invitation_type: InvitationType
    expires_at: datetime
    created_by: Optional[str] = None
    metadata: dict = Field(default_factory=dict, validation_alias="invitation_metadata")
    created_at: datetime
    updated_at: datetime


class InvitationStatusUpdate(BaseModel):
    status: InvitationStatus


class InvitationInfo(BaseModel):
    """What the signup page needs to show about a pending invitation."""

    invitation_id: uuid.UUID
    status: InvitationStatus
    expires_at: datetime
    user_id: str
    email: str
    first_name: str
    last_name: str
    phone_number: Optional[str] = None
    date_of_birth: Optional[date] = None
    pronouns: Optional[str] = None
    gender: Optional[str] = None
    medical_conditions: Optional[str] = None
    customer_id: Optional[str] = None


class InvitationValidity(BaseModel):
    invitation_id: uuid.UUID
    valid: bool


class InvitationCredentials(BaseModel):
    email: EmailStr
    date_of_birth: date


class PlanPricing(BaseModel):
    """Amounts in euro cents."""

    monthly_fee: int
    annual_fee: int
    prorated_monthly_amount: int
    prorated_annual_amount: int
    prorated_total: int
    next_monthly_billing_date: date
    next_annual_billing_date: date
    discount_percentage: Optional[int] = None
    coupon: Optional[str] = None


class MemberSignupRequest(BaseModel):
    next_of_kin_name: str = Field(..., min_length=1, max_length=255)
    next_of_kin_phone: str
    insurance_form_submitted: bool
    stripe_confirmation_token: str = Field(..., min_length=1)
    coupon_code: Optional[str] = Field(None, max_length=100)

    @field_validator("next_of_kin_phone")
    @classmethod
    def check_phone(cls, v: str) -> str:
        return validate_phone(v)


class MemberSignupResponse(BaseModel):
    user_id: str
    member_profile_id: uuid.UUID
    subscriptions: list[str]
    migration: bool = False
