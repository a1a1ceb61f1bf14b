"""Club settings schemas."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import AnyHttpUrl, BaseModel, ConfigDict
from services.members_service.models import SettingType


class SettingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    key: str
    value: str
    type: SettingType
    description: Optional[str] = None
    updated_by: Optional[str] = None
    updated_at: datetime


class SettingUpdate(BaseModel):
    value: str


class InsuranceFormLinkUpdate(BaseModel):
    url: AnyHttpUrl


class WaitlistOpenResponse(BaseModel):
    open: bool
