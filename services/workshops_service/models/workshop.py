"""Workshop and interest models."""

import uuid
from datetime import datetime
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.workshops_service.models.enums import WorkshopStatus, enum_values
from sqlalchemy import Boolean, CheckConstraint, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column


class Workshop(Base):
    """A scheduled club workshop, paid per attendee."""

    __tablename__ = "workshops"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    location: Mapped[str] = mapped_column(String(255), nullable=False)
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    max_capacity: Mapped[int] = mapped_column(Integer, nullable=False)

    # Euro cents
    price_member: Mapped[int] = mapped_column(Integer, nullable=False)
    price_non_member: Mapped[int] = mapped_column(Integer, nullable=False)

    is_public: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    refund_days: Mapped[Optional[int]] = mapped_column(
        Integer, default=3, nullable=True
    )  # null: refundable until the workshop ends
    status: Mapped[WorkshopStatus] = mapped_column(
        SAEnum(WorkshopStatus, values_callable=enum_values, name="workshop_status_enum"),
        default=WorkshopStatus.PLANNED,
        nullable=False,
        index=True,
    )
    announce_discord: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    announce_email: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_by: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("max_capacity >= 1", name="workshop_capacity_positive"),
        CheckConstraint(
            "price_member >= 0 AND price_non_member >= 0", name="workshop_prices_non_negative"
        ),
        CheckConstraint("end_date > start_date", name="workshop_dates_ordered"),
    )

    @property
    def can_edit(self) -> bool:
        return self.status == WorkshopStatus.PLANNED

    def __repr__(self):
        return f"<Workshop {self.title} {self.status.value}>"


class WorkshopInterest(Base):
    """A member's interest in a planned workshop."""

    __tablename__ = "workshop_interest"
    __table_args__ = (
        UniqueConstraint("workshop_id", "user_id", name="uq_workshop_interest_user"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    workshop_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("workshops.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    user_id: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
