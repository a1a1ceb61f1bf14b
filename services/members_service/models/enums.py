"""Enum definitions for members service models."""

import enum


def enum_values(enum_cls):
    """Return persistent DB values for SAEnum mappings."""
    return [member.value for member in enum_cls]


class WaitlistStatus(str, enum.Enum):
    WAITING = "waiting"
    INVITED = "invited"
    PAID = "paid"
    DEFERRED = "deferred"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_REPLY = "no_reply"
    JOINED = "joined"


class WaitlistPriority(int, enum.Enum):
    NORMAL = 0
    CANCELLED_PRIORITY = 1
    MANUAL = 2


class SocialMediaConsent(str, enum.Enum):
    NO = "no"
    YES_RECOGNIZABLE = "yes_recognizable"
    YES_UNRECOGNIZABLE = "yes_unrecognizable"


class PreferredWeapon(str, enum.Enum):
    LONGSWORD = "longsword"
    SWORD_AND_BUCKLER = "sword_and_buckler"


class InvitationStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    EXPIRED = "expired"
    REVOKED = "revoked"

    @property
    def is_final(self) -> bool:
        return self is not InvitationStatus.PENDING


class InvitationType(str, enum.Enum):
    WORKSHOP = "workshop"
    ADMIN = "admin"


class SettingType(str, enum.Enum):
    TEXT = "text"
    BOOLEAN = "boolean"
