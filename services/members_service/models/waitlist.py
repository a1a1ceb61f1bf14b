"""Waitlist models: applicants, guardians of minors, and status history."""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.members_service.models.enums import WaitlistStatus, enum_values
from sqlalchemy import Boolean, CheckConstraint, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

if TYPE_CHECKING:
    from .profile import UserProfile


class WaitlistEntry(Base):
    """A prospective member waiting for a beginners' workshop."""

    __tablename__ = "waitlist_entries"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    status: Mapped[WaitlistStatus] = mapped_column(
        SAEnum(WaitlistStatus, values_callable=enum_values, name="waitlist_status_enum"),
        default=WaitlistStatus.WAITING,
        nullable=False,
        index=True,
    )
    last_status_change: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    admin_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Re-queue priority: 0 normal, 1 cancelled from a workshop, 2 manual
    priority_level: Mapped[int] = mapped_column(
        Integer, default=0, server_default="0", nullable=False
    )
    previous_workshop_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), nullable=True
    )  # workshops_service.workshops
    has_paid_credit: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("priority_level BETWEEN 0 AND 2", name="valid_priority_level"),
    )

    profile: Mapped[Optional["UserProfile"]] = relationship(
        "UserProfile", back_populates="waitlist_entry", uselist=False
    )

    def append_note(self, note: str) -> None:
        self.admin_notes = f"{self.admin_notes}\n{note}" if self.admin_notes else note

    def __repr__(self):
        return f"<WaitlistEntry {self.email} {self.status.value}>"


class WaitlistGuardian(Base):
    """Guardian contact for applicants under 18."""

    __tablename__ = "waitlist_guardians"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    profile_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("user_profiles.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    first_name: Mapped[str] = mapped_column(String(255), nullable=False)
    last_name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone_number: Mapped[str] = mapped_column(String(32), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )


class WaitlistStatusHistory(Base):
    """Audit trail of waitlist status changes."""

    __tablename__ = "waitlist_status_history"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    waitlist_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("waitlist_entries.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    old_status: Mapped[Optional[WaitlistStatus]] = mapped_column(
        SAEnum(WaitlistStatus, values_callable=enum_values, name="waitlist_status_enum"),
        nullable=True,
    )
    new_status: Mapped[WaitlistStatus] = mapped_column(
        SAEnum(WaitlistStatus, values_callable=enum_values, name="waitlist_status_enum"),
        nullable=False,
    )
    changed_by: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
