"""Registration, external attendee and refund models."""

import uuid
from datetime import datetime
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.workshops_service.models.enums import (
    AttendanceStatus,
    RefundStatus,
    RegistrationStatus,
    enum_values,
)
from sqlalchemy import CheckConstraint, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship


class ExternalUser(Base):
    """Non-member workshop attendee."""

    __tablename__ = "external_users"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    first_name: Mapped[str] = mapped_column(String(255), nullable=False)
    last_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    phone_number: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )


class WorkshopRegistration(Base):
    """A seat at a workshop, held by exactly one member or external attendee."""

    __tablename__ = "workshop_registrations"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    workshop_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("workshops.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    member_user_id: Mapped[Optional[str]] = mapped_column(String, index=True, nullable=True)
    external_user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("external_users.id", ondelete="CASCADE"),
        nullable=True,
    )

    stripe_checkout_session_id: Mapped[Optional[str]] = mapped_column(
        String, unique=True, nullable=True
    )
    stripe_payment_intent_id: Mapped[Optional[str]] = mapped_column(
        String, unique=True, nullable=True
    )
    amount_paid: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="eur", nullable=False)
    status: Mapped[RegistrationStatus] = mapped_column(
        SAEnum(
            RegistrationStatus,
            values_callable=enum_values,
            name="registration_status_enum",
        ),
        default=RegistrationStatus.PENDING,
        nullable=False,
        index=True,
    )
    registered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    attendance_status: Mapped[AttendanceStatus] = mapped_column(
        SAEnum(
            AttendanceStatus,
            values_callable=enum_values,
            name="attendance_status_enum",
        ),
        default=AttendanceStatus.PENDING,
        nullable=False,
    )
    attendance_marked_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    attendance_marked_by: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    attendance_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "(member_user_id IS NULL) <> (external_user_id IS NULL)",
            name="registration_single_attendee",
        ),
        CheckConstraint("amount_paid >= 0", name="registration_amount_non_negative"),
    )

    external_user: Mapped[Optional["ExternalUser"]] = relationship("ExternalUser")

    def __repr__(self):
        return f"<WorkshopRegistration {self.id} {self.status.value}>"


class WorkshopRefund(Base):
    """Refund of a registration payment."""

    __tablename__ = "workshop_refunds"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    registration_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("workshop_registrations.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    refund_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    refund_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[RefundStatus] = mapped_column(
        SAEnum(RefundStatus, values_callable=enum_values, name="refund_status_enum"),
        default=RefundStatus.PENDING,
        nullable=False,
    )
    stripe_refund_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    requested_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    processed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    requested_by: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    processed_by: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    __table_args__ = (
        CheckConstraint("refund_amount > 0", name="refund_amount_positive"),
    )
