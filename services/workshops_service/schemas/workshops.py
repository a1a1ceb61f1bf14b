"""Workshop scheduling schemas."""

import uuid
from datetime import datetime
from typing import Optional

from libs.common.datetime_utils import ensure_aware, utc_now
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from services.workshops_service.models import WorkshopStatus

PRICING_FIELDS = ("price_member", "price_non_member")


class WorkshopBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    location: str = Field(..., min_length=1, max_length=255)
    start_date: datetime
    end_date: datetime
    max_capacity: int = Field(..., ge=1)
    price_member: int = Field(..., ge=0)
    price_non_member: int = Field(..., ge=0)
    is_public: bool = False
    refund_days: Optional[int] = Field(3, ge=0)
    announce_discord: bool = False
    announce_email: bool = False


class WorkshopCreate(WorkshopBase):
    @field_validator("start_date", "end_date")
    @classmethod
    def make_aware(cls, v: datetime) -> datetime:
        return ensure_aware(v)

    @model_validator(mode="after")
    def check_schedule(self):
        if self.end_date <= self.start_date:
            raise ValueError("End date must be after start date")
        if self.start_date.date() <= utc_now().date():
            raise ValueError("Workshops must start after today")
        return self


class WorkshopUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    location: Optional[str] = Field(None, min_length=1, max_length=255)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    max_capacity: Optional[int] = Field(None, ge=1)
    price_member: Optional[int] = Field(None, ge=0)
    price_non_member: Optional[int] = Field(None, ge=0)
    is_public: Optional[bool] = None
    refund_days: Optional[int] = Field(None, ge=0)
    announce_discord: Optional[bool] = None
    announce_email: Optional[bool] = None

    @field_validator("start_date", "end_date")
    @classmethod
    def make_aware(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_aware(v) if v is not None else v


class WorkshopResponse(WorkshopBase):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    status: WorkshopStatus
    created_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class WorkshopListResponse(BaseModel):
    items: list[WorkshopResponse]
    total: int
    page: int
    page_size: int


class MemberWorkshopResponse(WorkshopResponse):
    """Published/planned workshop as seen by a member."""

    registered_count: int = 0
    interest_count: int = 0
    user_has_interest: bool = False
    user_registration_status: Optional[str] = None


class InterestToggleResponse(BaseModel):
    action: str
    message: str


class CapacityResponse(BaseModel):
    workshop_id: uuid.UUID
    max_capacity: int
    confirmed: int
    pending: int
    remaining: int
    is_full: bool
