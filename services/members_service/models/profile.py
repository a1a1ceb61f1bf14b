"""Identity models: user profiles, club roles and member profiles."""

import uuid
from datetime import date, datetime
from typing import TYPE_CHECKING, Optional

from libs.auth.models import ClubRole
from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.members_service.models.enums import (
    PreferredWeapon,
    SocialMediaConsent,
    enum_values,
)
from sqlalchemy import Boolean, Date, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import ARRAY, JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

if TYPE_CHECKING:
    from .waitlist import WaitlistEntry


class UserProfile(Base):
    """Personal details for anyone known to the club.

    Waitlist applicants get an inactive profile; it becomes active once
    the member registration completes.
    """

    __tablename__ = "user_profiles"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    supabase_user_id: Mapped[Optional[str]] = mapped_column(
        String, unique=True, index=True, nullable=True
    )  # set once the applicant has an auth account
    first_name: Mapped[str] = mapped_column(String(255), nullable=False)
    last_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    phone_number: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    date_of_birth: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    pronouns: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    gender: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    medical_conditions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    social_media_consent: Mapped[SocialMediaConsent] = mapped_column(
        SAEnum(
            SocialMediaConsent,
            values_callable=enum_values,
            name="social_media_consent_enum",
        ),
        default=SocialMediaConsent.NO,
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    banned_until: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    customer_id: Mapped[Optional[str]] = mapped_column(
        String(255), unique=True, nullable=True
    )  # Stripe customer
    waitlist_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("waitlist_entries.id", ondelete="SET NULL"),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    waitlist_entry: Mapped[Optional["WaitlistEntry"]] = relationship(
        "WaitlistEntry", back_populates="profile"
    )
    member_profile: Mapped[Optional["MemberProfile"]] = relationship(
        "MemberProfile", back_populates="user_profile", uselist=False
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def is_banned(self, now: Optional[datetime] = None) -> bool:
        if self.banned_until is None:
            return False
        return self.banned_until > (now or utc_now())

    def __repr__(self):
        return f"<UserProfile {self.email}>"


class UserRole(Base):
    """A club role held by an auth user."""

    __tablename__ = "user_roles"
    __table_args__ = (UniqueConstraint("user_id", "role", name="uq_user_role"),)

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[str] = mapped_column(String, index=True, nullable=False)
    role: Mapped[ClubRole] = mapped_column(
        SAEnum(ClubRole, values_callable=enum_values, name="club_role_enum"),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )


class MemberProfile(Base):
    """Membership data, created when registration completes."""

    __tablename__ = "member_profiles"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_profile_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("user_profiles.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    next_of_kin_name: Mapped[str] = mapped_column(String(255), nullable=False)
    next_of_kin_phone: Mapped[str] = mapped_column(String(32), nullable=False)
    preferred_weapon: Mapped[list[PreferredWeapon]] = mapped_column(
        ARRAY(
            SAEnum(
                PreferredWeapon,
                values_callable=enum_values,
                name="preferred_weapon_enum",
            )
        ),
        default=list,
        nullable=False,
    )
    membership_start_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    membership_end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    last_payment_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    insurance_form_submitted: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    additional_data: Mapped[dict] = mapped_column(JSONB, default=dict, nullable=False)
    subscription_paused_until: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    user_profile: Mapped["UserProfile"] = relationship(
        "UserProfile", back_populates="member_profile"
    )

    def is_paused(self, now: Optional[datetime] = None) -> bool:
        if self.subscription_paused_until is None:
            return False
        return self.subscription_paused_until > (now or utc_now())
