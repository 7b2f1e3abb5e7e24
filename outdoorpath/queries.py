"""Read-side queries for events, attendees and notifications.

Every function takes the caller's session explicitly. Database failures are
logged and re-raised as :class:`DataSourceError`; nothing is retried and no
partial result is returned.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import wraps
from typing import Sequence

from sqlalchemy import String, or_, select, type_coerce
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from .enums import (
    AttendeeStatus,
    Difficulty,
    EventCategory,
    EventStatus,
    Visibility,
)
from .errors import DataSourceError
from .models import Attendee, Event, Notification, Profile

logger = logging.getLogger("uvicorn.error")

ALL = "all"

COUNTED_STATUSES = (
    AttendeeStatus.GOING,
    AttendeeStatus.MAYBE,
    AttendeeStatus.INTERESTED,
    AttendeeStatus.WAITLIST,
)


@dataclass(frozen=True)
class EventFilters:
    """Optional narrowing for :func:`fetch_events`.

    ``None`` and ``"all"`` both mean "no constraint" for the enum fields.
    """

    category: EventCategory | str | None = None
    difficulty: Difficulty | str | None = None
    status: EventStatus | str | None = None
    search: str | None = None
    organizer_id: str | None = None


def _data_source(description: str):
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except SQLAlchemyError as exc:
                logger.error("Error fetching %s: %s", description, exc)
                raise DataSourceError() from exc

        return wrapper

    return decorator


def _is_constrained(value) -> bool:
    return value is not None and value != ALL and value != ""


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", r"\%").replace("_", r"\_")


def event_search_clause(term: str | None):
    """Return an OR clause matching ``term`` in any searchable column."""
    if not term:
        return None
    cleaned = term.strip()
    if not cleaned:
        return None
    like = f"%{_escape_like(cleaned)}%"
    return or_(
        Event.title.ilike(like, escape="\\"),
        Event.description.ilike(like, escape="\\"),
        Event.location_name.ilike(like, escape="\\"),
        Event.location_address.ilike(like, escape="\\"),
    )


@_data_source("events")
def fetch_events(session: Session, filters: EventFilters | None = None) -> list[Event]:
    """Return public events with their organizer, soonest first."""
    filters = filters or EventFilters()
    stmt = (
        select(Event)
        .options(joinedload(Event.organizer))
        .where(Event.visibility == Visibility.PUBLIC)
        .order_by(Event.event_date.asc(), Event.start_time.asc())
    )
    if _is_constrained(filters.category):
        stmt = stmt.where(Event.category == EventCategory(filters.category))
    if _is_constrained(filters.difficulty):
        stmt = stmt.where(Event.difficulty == Difficulty(filters.difficulty))
    if _is_constrained(filters.status):
        stmt = stmt.where(Event.status == EventStatus(filters.status))
    clause = event_search_clause(filters.search)
    if clause is not None:
        stmt = stmt.where(clause)
    if filters.organizer_id:
        stmt = stmt.where(Event.organizer_id == filters.organizer_id)
    return list(session.scalars(stmt).unique().all())


@_data_source("event")
def fetch_event_by_id(session: Session, event_id: str) -> Event | None:
    stmt = (
        select(Event)
        .options(joinedload(Event.organizer))
        .where(Event.id == event_id)
    )
    return session.scalars(stmt).first()


@_data_source("organizer events")
def fetch_events_by_organizer(session: Session, organizer_id: str) -> list[Event]:
    """Return every event an organizer owns, newest date first."""
    stmt = (
        select(Event)
        .where(Event.organizer_id == organizer_id)
        .order_by(Event.event_date.desc(), Event.start_time.desc())
    )
    return list(session.scalars(stmt).all())


@_data_source("attendees")
def fetch_event_attendees(session: Session, event_id: str) -> list[Attendee]:
    stmt = (
        select(Attendee)
        .options(joinedload(Attendee.user))
        .where(Attendee.event_id == event_id)
        .order_by(Attendee.responded_at.desc())
    )
    return list(session.scalars(stmt).all())


@_data_source("attendee counts")
def fetch_attendee_counts_by_status(session: Session, event_id: str) -> dict[str, int]:
    """Tally attendees into exactly the going/maybe/interested/waitlist bins."""
    counts = {status.value: 0 for status in COUNTED_STATUSES}
    rows = session.scalars(
        select(type_coerce(Attendee.status, String)).where(
            Attendee.event_id == event_id
        )
    ).all()
    for status in rows:
        if status in counts:
            counts[status] += 1
    return counts


@_data_source("user RSVP")
def fetch_user_rsvp(session: Session, event_id: str, user_id: str) -> Attendee | None:
    stmt = select(Attendee).where(
        Attendee.event_id == event_id, Attendee.user_id == user_id
    )
    return session.scalars(stmt).first()


@_data_source("user events")
def fetch_user_events(session: Session, user_id: str) -> list[Attendee]:
    """Return the user's RSVPs with each event and its organizer loaded."""
    stmt = (
        select(Attendee)
        .options(joinedload(Attendee.event).joinedload(Event.organizer))
        .where(Attendee.user_id == user_id)
        .order_by(Attendee.responded_at.desc())
    )
    return list(session.scalars(stmt).all())


@_data_source("waitlist")
def fetch_waitlist(session: Session, event_id: str) -> list[Attendee]:
    stmt = (
        select(Attendee)
        .where(
            Attendee.event_id == event_id,
            Attendee.status == AttendeeStatus.WAITLIST,
        )
        .order_by(Attendee.responded_at.asc(), Attendee.id.asc())
    )
    return list(session.scalars(stmt).all())


@_data_source("notifications")
def fetch_notifications(
    session: Session, user_id: str, *, unread_only: bool = False
) -> Sequence[Notification]:
    stmt = (
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc())
    )
    if unread_only:
        stmt = stmt.where(Notification.read_at.is_(None))
    return session.scalars(stmt).all()


@_data_source("profile")
def fetch_profile_by_token(session: Session, token: str | None) -> Profile | None:
    if not token:
        return None
    stmt = select(Profile).where(Profile.api_token == token)
    return session.scalars(stmt).first()
