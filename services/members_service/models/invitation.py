"""Invitation and club settings models."""

import uuid
from datetime import datetime, timedelta
from typing import Optional

from libs.common.config import get_settings
from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.members_service.models.enums import (
    InvitationStatus,
    InvitationType,
    SettingType,
    enum_values,
)
from sqlalchemy import CheckConstraint, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Index, String, Text, text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column


def _default_expiry() -> datetime:
    return utc_now() + timedelta(days=get_settings().INVITATION_EXPIRY_DAYS)


class Invitation(Base):
    """Time-bounded permission for a user to register as a paying member."""

    __tablename__ = "invitations"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    email: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    user_id: Mapped[str] = mapped_column(String, index=True, nullable=False)
    waitlist_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("waitlist_entries.id", ondelete="SET NULL"),
        nullable=True,
    )
    status: Mapped[InvitationStatus] = mapped_column(
        SAEnum(
            InvitationStatus,
            values_callable=enum_values,
            name="invitation_status_enum",
        ),
        default=InvitationStatus.PENDING,
        nullable=False,
        index=True,
    )
    invitation_type: Mapped[InvitationType] = mapped_column(
        SAEnum(InvitationType, values_callable=enum_values, name="invitation_type_enum"),
        default=InvitationType.ADMIN,
        nullable=False,
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_default_expiry, nullable=False
    )
    created_by: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    invitation_metadata: Mapped[dict] = mapped_column(
        "metadata", JSONB, default=dict, nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        Index(
            "uq_invitations_pending_user",
            "user_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
        ),
    )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.expires_at <= (now or utc_now())

    def __repr__(self):
        return f"<Invitation {self.email} {self.status.value}>"


class ClubSetting(Base):
    """Key/value club configuration editable by the committee."""

    __tablename__ = "club_settings"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    key: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[SettingType] = mapped_column(
        SAEnum(SettingType, values_callable=enum_values, name="setting_type_enum"),
        default=SettingType.TEXT,
        nullable=False,
    )
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    updated_by: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint(
            "type <> 'boolean' OR value IN ('true', 'false')",
            name="boolean_setting_value",
        ),
    )

    @property
    def as_bool(self) -> bool:
        return self.value == "true"
