"""Closed enumerations shared by models, filters and forms."""

from __future__ import annotations

import enum


def enum_values(enum_cls) -> list[str]:
    """Return persistent DB values for SQLAlchemy Enum mappings."""
    return [member.value for member in enum_cls]


class EventCategory(str, enum.Enum):
    HIKING = "hiking"
    BIKING = "biking"
    CLIMBING = "climbing"
    CAMPING = "camping"
    KAYAKING = "kayaking"
    OUTDOOR_ADVENTURE = "outdoor_adventure"
    OTHER = "other"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()


class Difficulty(str, enum.Enum):
    EASY = "easy"
    MODERATE = "moderate"
    HARD = "hard"

    @property
    def label(self) -> str:
        return self.value.title()


class EventStatus(str, enum.Enum):
    ACTIVE = "active"
    FULL = "full"
    CANCELLED = "cancelled"

    @property
    def label(self) -> str:
        return self.value.title()


class Visibility(str, enum.Enum):
    PUBLIC = "public"
    PRIVATE = "private"


class PricingType(str, enum.Enum):
    FREE = "free"
    PAID = "paid"


class AttendeeStatus(str, enum.Enum):
    GOING = "going"
    MAYBE = "maybe"
    INTERESTED = "interested"
    WAITLIST = "waitlist"


class NotificationKind(str, enum.Enum):
    WAITLIST_OFFER = "waitlist_offer"
    OFFER_EXPIRED = "offer_expired"
    EVENT_CANCELLED = "event_cancelled"
