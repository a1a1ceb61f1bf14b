"""Member profile, role and subscription schemas."""

import uuid
from datetime import date, datetime
from typing import Optional

from libs.auth.models import ClubRole
from pydantic import BaseModel, ConfigDict, Field, field_validator
from services.members_service.models import PreferredWeapon, SocialMediaConsent
from services.members_service.schemas.waitlist import PRONOUNS_PATTERN, validate_phone


class MemberResponse(BaseModel):
    """Member management row: user profile joined with member profile."""

    id: uuid.UUID
    user_profile_id: uuid.UUID
    user_id: str
    email: str
    first_name: str
    last_name: str
    phone_number: Optional[str] = None
    date_of_birth: Optional[date] = None
    pronouns: Optional[str] = None
    gender: Optional[str] = None
    medical_conditions: Optional[str] = None
    social_media_consent: SocialMediaConsent
    is_active: bool
    customer_id: Optional[str] = None
    next_of_kin_name: str
    next_of_kin_phone: str
    preferred_weapon: list[PreferredWeapon]
    membership_start_date: Optional[date] = None
    membership_end_date: Optional[date] = None
    last_payment_date: Optional[datetime] = None
    insurance_form_submitted: bool
    subscription_paused_until: Optional[datetime] = None
    additional_data: dict = Field(default_factory=dict)
    roles: list[str] = Field(default_factory=list)


class MemberListResponse(BaseModel):
    items: list[MemberResponse]
    total: int
    page: int
    page_size: int


class MemberUpdate(BaseModel):
    """Partial update; only fields that are set (and not null) are applied."""

    first_name: Optional[str] = Field(None, min_length=1, max_length=255)
    last_name: Optional[str] = Field(None, min_length=1, max_length=255)
    phone_number: Optional[str] = None
    date_of_birth: Optional[date] = None
    pronouns: Optional[str] = None
    gender: Optional[str] = Field(None, max_length=64)
    medical_conditions: Optional[str] = None
    social_media_consent: Optional[SocialMediaConsent] = None
    next_of_kin_name: Optional[str] = Field(None, min_length=1, max_length=255)
    next_of_kin_phone: Optional[str] = None
    preferred_weapon: Optional[list[PreferredWeapon]] = None
    insurance_form_submitted: Optional[bool] = None
    additional_data: Optional[dict] = None

    @field_validator("phone_number", "next_of_kin_phone")
    @classmethod
    def check_phone(cls, v: Optional[str]) -> Optional[str]:
        return validate_phone(v) if v is not None else v

    @field_validator("pronouns")
    @classmethod
    def check_pronouns(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip().lower()
        if not PRONOUNS_PATTERN.match(v):
            raise ValueError("Pronouns must be written like 'he/him' or 'they/them'")
        return v


class CompleteRegistrationRequest(BaseModel):
    user_id: str
    next_of_kin_name: str = Field(..., min_length=1, max_length=255)
    next_of_kin_phone: str
    insurance_form_submitted: bool

    @field_validator("next_of_kin_phone")
    @classmethod
    def check_phone(cls, v: str) -> str:
        return validate_phone(v)


class SubscriptionPauseRequest(BaseModel):
    pause_until: datetime


class SubscriptionStatusResponse(BaseModel):
    member_id: uuid.UUID
    subscription_id: Optional[str] = None
    subscription_paused_until: Optional[datetime] = None


class RoleAssignment(BaseModel):
    role: ClubRole


class UserRolesResponse(BaseModel):
    user_id: str
    roles: list[ClubRole]


class ProfileBulkRequest(BaseModel):
    user_ids: list[str] = Field(..., max_length=500)


class ProfileSearchRequest(BaseModel):
    query: str = Field(..., min_length=2, max_length=100)
    exclude_user_ids: list[str] = Field(default_factory=list, max_length=500)
    limit: int = Field(10, ge=1, le=50)

    @field_validator("query")
    @classmethod
    def strip_query(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 2:
            raise ValueError("Search query must be at least 2 characters")
        return v


class ProfileSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str = Field(validation_alias="supabase_user_id")
    first_name: str
    last_name: str
    email: str
    phone_number: Optional[str] = None
