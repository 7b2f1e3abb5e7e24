"""Write-side helpers for profiles, events and RSVPs."""

from __future__ import annotations

import logging
import secrets
from datetime import datetime

from sqlalchemy.orm import Session

from .enums import AttendeeStatus, EventStatus, NotificationKind
from .errors import (
    AuthenticationRequired,
    EventCancelledError,
    EventFullError,
    EventNotFoundError,
    PermissionDenied,
    ValidationError,
)
from .models import Attendee, Event, Profile
from .notifications import create_notification
from .queries import fetch_event_by_id, fetch_profile_by_token, fetch_user_rsvp
from .utils import utcnow
from .validation import EventFields, event_as_raw, validate_event_fields
from .waitlist import join_waitlist, offer_open_spots, reserved_spots, sync_event_capacity

logger = logging.getLogger("uvicorn.error")

RSVP_STATUSES = {AttendeeStatus.GOING, AttendeeStatus.MAYBE, AttendeeStatus.INTERESTED}


def _now() -> datetime:
    return utcnow()


def create_profile(
    session: Session,
    *,
    full_name: str,
    email: str | None = None,
    avatar_url: str | None = None,
    role: str = "member",
) -> Profile:
    """Create a profile with a freshly issued API token."""
    cleaned = (full_name or "").strip()
    if not cleaned:
        raise ValidationError("Full name is required")
    profile = Profile(
        full_name=cleaned,
        email=(email or "").strip().lower() or None,
        avatar_url=avatar_url,
        role=role,
        api_token=secrets.token_urlsafe(32),
        created_at=_now(),
    )
    session.add(profile)
    session.flush()
    return profile


def ensure_profile_by_token(session: Session, token: str | None) -> Profile:
    """Return the profile owning ``token`` or raise 401."""
    if not token:
        raise AuthenticationRequired()
    profile = fetch_profile_by_token(session, token)
    if profile is None:
        raise AuthenticationRequired("Invalid API token.")
    return profile


def ensure_event(session: Session, event_id: str) -> Event:
    event = fetch_event_by_id(session, event_id)
    if event is None:
        raise EventNotFoundError()
    return event


def _require_organizer(event: Event, actor: Profile, action: str) -> None:
    if event.organizer_id != actor.id:
        logger.info(
            "Rejected %s of event %s by non-organizer %s", action, event.id, actor.id
        )
        raise PermissionDenied(f"You are not authorized to {action} this event")


def _apply_fields(event: Event, fields: EventFields) -> None:
    for key, value in fields.as_dict().items():
        setattr(event, key, value)


def create_event(session: Session, *, organizer: Profile, fields: EventFields) -> Event:
    """Create and persist a new active event owned by ``organizer``."""
    event = Event(
        organizer=organizer,
        status=EventStatus.ACTIVE,
        current_capacity=0,
        created_at=_now(),
        updated_at=_now(),
    )
    _apply_fields(event, fields)
    session.add(event)
    session.flush()
    logger.info("Created event %s (%s) for organizer %s", event.id, event.title, organizer.id)
    return event


def update_event(
    session: Session, event: Event, *, actor: Profile, changes: dict
) -> Event:
    """Apply ``changes`` on top of the event's current values and revalidate."""
    _require_organizer(event, actor, "update")
    raw = event_as_raw(event)
    raw.update(changes)
    # A past event stays editable only while its date is left unchanged.
    today = _now().date()
    fields = validate_event_fields(raw, today=min(today, event.event_date))
    if fields.event_date < today and fields.event_date != event.event_date:
        raise ValidationError("Event date must be in the future")

    now = _now()
    taken = event.going_count + reserved_spots(event, now)
    if fields.max_capacity < event.going_count:
        raise ValidationError(
            "Maximum capacity cannot be lower than the "
            f"{event.going_count} people already going"
        )
    _apply_fields(event, fields)
    event.updated_at = now
    session.add(event)
    if fields.max_capacity > taken:
        offer_open_spots(session, event, now)
    else:
        sync_event_capacity(event, now)
    session.flush()
    return event


def delete_event(session: Session, event: Event, *, actor: Profile) -> None:
    """Hard delete; attendees and notifications cascade."""
    _require_organizer(event, actor, "delete")
    logger.info("Deleting event %s (%s)", event.id, event.title)
    session.delete(event)
    session.flush()


def cancel_event(session: Session, event: Event, *, actor: Profile) -> Event:
    """Mark the event cancelled and notify everyone who responded."""
    _require_organizer(event, actor, "cancel")
    if event.status == EventStatus.CANCELLED:
        return event
    event.status = EventStatus.CANCELLED
    event.updated_at = _now()
    for attendee in event.attendees:
        attendee.offer_expires_at = None
        create_notification(
            session,
            user=attendee.user,
            event=event,
            kind=NotificationKind.EVENT_CANCELLED,
            content=f"{event.title} on {event.event_date.isoformat()} was cancelled by the organizer.",
        )
    session.add(event)
    session.flush()
    logger.info(
        "Cancelled event %s (%s); notified %d attendees",
        event.id,
        event.title,
        len(event.attendees),
    )
    return event


def set_rsvp(
    session: Session, event: Event, *, user: Profile, status: AttendeeStatus
) -> Attendee:
    """Create or change the user's RSVP.

    Waitlist requests go through :func:`join_waitlist`; a going RSVP must fit
    within the spots not already taken or reserved by waitlist offers.
    """
    if event.status == EventStatus.CANCELLED:
        raise EventCancelledError()
    if status == AttendeeStatus.WAITLIST:
        attendee, _ = join_waitlist(session, event, user)
        return attendee
    if status not in RSVP_STATUSES:
        raise ValidationError(f"Invalid RSVP status: {status}")

    now = _now()
    attendee = fetch_user_rsvp(session, event.id, user.id)
    was_going = attendee is not None and attendee.status == AttendeeStatus.GOING
    holds_offer = attendee is not None and attendee.has_open_offer(now)
    if status == AttendeeStatus.GOING and not was_going:
        reserved = reserved_spots(event, now) - (1 if holds_offer else 0)
        if event.going_count + reserved >= event.max_capacity:
            raise EventFullError()

    if attendee is None:
        attendee = Attendee(event=event, user=user)
    attendee.status = status
    attendee.offer_expires_at = None
    attendee.responded_at = now
    session.add(attendee)
    session.flush()
    if (was_going or holds_offer) and status != AttendeeStatus.GOING:
        offer_open_spots(session, event, now)
    else:
        sync_event_capacity(event, now)
    session.flush()
    return attendee


def leave_event(session: Session, event: Event, *, user: Profile) -> bool:
    """Remove the user's RSVP; a freed or offered spot goes to the waitlist."""
    attendee = fetch_user_rsvp(session, event.id, user.id)
    if attendee is None:
        return False
    now = _now()
    freed = attendee.status == AttendeeStatus.GOING or attendee.has_open_offer(now)
    event.attendees.remove(attendee)
    session.flush()
    if freed:
        offer_open_spots(session, event, now)
    else:
        sync_event_capacity(event, now)
    session.flush()
    return True
