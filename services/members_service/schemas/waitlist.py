"""Waitlist intake and administration schemas."""

import re
import uuid
from datetime import date, datetime
from typing import Optional

from libs.common.datetime_utils import age_in_years, utc_now
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator
from services.members_service.models import SocialMediaConsent, WaitlistStatus

PRONOUNS_PATTERN = re.compile(r"^/?[\w-]+(/[\w-]+)*/?$")
PHONE_PATTERN = re.compile(r"^\+?[0-9 ()\-]+$")
PHONE_LENGTH = (7, 20)
ADULT_AGE = 18


def validate_phone(value: str) -> str:
    value = value.strip()
    min_len, max_len = PHONE_LENGTH
    if not min_len <= len(value) <= max_len:
        raise ValueError(f"Phone number must be {min_len}-{max_len} characters")
    if not PHONE_PATTERN.match(value) or not any(c.isdigit() for c in value):
        raise ValueError("Invalid phone number")
    return value


class WaitlistSubmission(BaseModel):
    """Public waitlist sign-up form."""

    first_name: str = Field(..., min_length=1, max_length=255)
    last_name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    phone_number: str
    date_of_birth: date
    pronouns: str = Field(..., max_length=64)
    gender: str = Field(..., min_length=1, max_length=64)
    medical_conditions: str = ""
    social_media_consent: SocialMediaConsent = SocialMediaConsent.NO

    guardian_first_name: Optional[str] = Field(None, max_length=255)
    guardian_last_name: Optional[str] = Field(None, max_length=255)
    guardian_phone_number: Optional[str] = None

    @field_validator("first_name", "last_name", "gender", mode="before")
    @classmethod
    def strip_required(cls, v):
        if isinstance(v, str):
            v = v.strip()
        return v

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v: str) -> str:
        return v.lower()

    @field_validator("phone_number")
    @classmethod
    def check_phone(cls, v: str) -> str:
        return validate_phone(v)

    @field_validator("date_of_birth")
    @classmethod
    def dob_in_past(cls, v: date) -> date:
        if v >= utc_now().date():
            raise ValueError("Date of birth must be in the past")
        return v

    @field_validator("pronouns")
    @classmethod
    def check_pronouns(cls, v: str) -> str:
        v = v.strip().lower()
        if not PRONOUNS_PATTERN.match(v):
            raise ValueError("Pronouns must be written like 'he/him' or 'they/them'")
        return v

    @model_validator(mode="after")
    def guardian_for_minors(self):
        if self.is_minor:
            missing = [
                name
                for name in (
                    "guardian_first_name",
                    "guardian_last_name",
                    "guardian_phone_number",
                )
                if not (getattr(self, name) or "").strip()
            ]
            if missing:
                raise ValueError(
                    "Guardian details are required for applicants under 18: "
                    + ", ".join(missing)
                )
            self.guardian_phone_number = validate_phone(self.guardian_phone_number)
        else:
            self.guardian_first_name = None
            self.guardian_last_name = None
            self.guardian_phone_number = None
        return self

    @property
    def is_minor(self) -> bool:
        return age_in_years(self.date_of_birth) < ADULT_AGE


class WaitlistSubmissionResponse(BaseModel):
    profile_id: uuid.UUID
    waitlist_id: uuid.UUID
    email: str
    first_name: str
    last_name: str


class WaitlistEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    email: str
    status: WaitlistStatus
    last_status_change: Optional[datetime] = None
    admin_notes: Optional[str] = None
    priority_level: int
    previous_workshop_id: Optional[uuid.UUID] = None
    has_paid_credit: bool
    created_at: datetime

    # Joined from the profile
    profile_id: Optional[uuid.UUID] = None
    user_id: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone_number: Optional[str] = None
    date_of_birth: Optional[date] = None


class WaitlistListResponse(BaseModel):
    items: list[WaitlistEntryResponse]
    total: int
    page: int
    page_size: int


class WaitlistStatusUpdate(BaseModel):
    status: WaitlistStatus


class WaitlistNotesUpdate(BaseModel):
    admin_notes: str = Field(..., max_length=5000)


class GuardianResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    profile_id: uuid.UUID
    first_name: str
    last_name: str
    phone_number: str


class PrioritizedWaitlistRequest(BaseModel):
    workshop_id: uuid.UUID
    exclude_user_ids: list[str] = Field(default_factory=list)
    limit: Optional[int] = Field(None, ge=1)


class PrioritizedWaitlistEntry(BaseModel):
    waitlist_id: uuid.UUID
    profile_id: uuid.UUID
    user_id: str
    email: str
    first_name: str
    last_name: str
    priority_level: int
    created_at: datetime


class PriorityRequeueRequest(BaseModel):
    user_id: str
    workshop_id: uuid.UUID
    notes: Optional[str] = None


class PriorityResetRequest(BaseModel):
    workshop_id: uuid.UUID
