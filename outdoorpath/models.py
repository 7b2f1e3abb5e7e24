"""SQLAlchemy models for OutdoorPath."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Enum as SAEnum,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

from .enums import (
    AttendeeStatus,
    Difficulty,
    EventCategory,
    EventStatus,
    NotificationKind,
    PricingType,
    Visibility,
    enum_values,
)
from .utils import utcnow

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return utcnow()


def _enum_column(enum_cls, name: str) -> SAEnum:
    return SAEnum(
        enum_cls,
        name=name,
        native_enum=False,
        values_callable=enum_values,
        validate_strings=True,
    )


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, default=_uuid)
    full_name = Column(String(120), nullable=False)
    avatar_url = Column(String(512), nullable=True)
    email = Column(String(255), nullable=True, unique=True)
    role = Column(String(32), nullable=False, default="member")
    api_token = Column(String(128), nullable=False, unique=True)
    created_at = Column(DateTime, default=_now, nullable=False)

    events = relationship("Event", back_populates="organizer")
    attendances = relationship(
        "Attendee", back_populates="user", cascade="all, delete-orphan"
    )

    @property
    def initials(self) -> str:
        parts = [part[0] for part in (self.full_name or "").split() if part]
        return "".join(parts).upper()[:2]


class Event(Base):
    __tablename__ = "events"

    id = Column(String(36), primary_key=True, default=_uuid)
    organizer_id = Column(String(36), ForeignKey("profiles.id"), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(_enum_column(EventCategory, "event_category"), nullable=False)
    difficulty = Column(_enum_column(Difficulty, "event_difficulty"), nullable=False)
    status = Column(
        _enum_column(EventStatus, "event_status"),
        nullable=False,
        default=EventStatus.ACTIVE,
    )
    event_date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    location_name = Column(String(255), nullable=False)
    location_address = Column(String(255), nullable=False)
    location_lat = Column(Float, nullable=True)
    location_lng = Column(Float, nullable=True)
    elevation = Column(Integer, nullable=True)
    max_capacity = Column(Integer, nullable=False)
    current_capacity = Column(Integer, nullable=False, default=0)
    pricing_type = Column(
        _enum_column(PricingType, "event_pricing_type"),
        nullable=False,
        default=PricingType.FREE,
    )
    price = Column(Numeric(10, 2), nullable=True)
    visibility = Column(
        _enum_column(Visibility, "event_visibility"),
        nullable=False,
        default=Visibility.PUBLIC,
    )
    hero_image_url = Column(String(512), nullable=True)
    packing_list_notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)
    updated_at = Column(DateTime, default=_now, onupdate=_now, nullable=False)

    organizer = relationship("Profile", back_populates="events")
    attendees = relationship(
        "Attendee",
        back_populates="event",
        cascade="all, delete-orphan",
        order_by="Attendee.responded_at",
    )
    notifications = relationship(
        "Notification",
        back_populates="event",
        cascade="all, delete",
    )

    @property
    def going_count(self) -> int:
        return sum(1 for a in self.attendees if a.status == AttendeeStatus.GOING)

    @property
    def spots_left(self) -> int:
        return max(self.max_capacity - (self.current_capacity or 0), 0)

    @property
    def is_full(self) -> bool:
        return self.status == EventStatus.FULL

    @property
    def is_cancelled(self) -> bool:
        return self.status == EventStatus.CANCELLED


class Attendee(Base):
    __tablename__ = "event_attendees"
    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_event_attendee"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    event_id = Column(
        String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(
        String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    status = Column(
        _enum_column(AttendeeStatus, "attendee_status"),
        nullable=False,
        default=AttendeeStatus.GOING,
    )
    responded_at = Column(DateTime, default=_now, nullable=False)
    offer_expires_at = Column(DateTime, nullable=True)

    event = relationship("Event", back_populates="attendees")
    user = relationship("Profile", back_populates="attendances")

    def has_open_offer(self, now: datetime) -> bool:
        return (
            self.status == AttendeeStatus.WAITLIST
            and self.offer_expires_at is not None
            and self.offer_expires_at > now
        )


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(
        String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    event_id = Column(
        String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=True
    )
    kind = Column(_enum_column(NotificationKind, "notification_kind"), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)
    read_at = Column(DateTime, nullable=True)

    event = relationship("Event", back_populates="notifications")
    user = relationship("Profile")
