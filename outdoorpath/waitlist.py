"""Waitlist handling for full events.

A full event accepts waitlist joins. When a going spot frees up, the
longest-waiting user without an offer receives a time-limited offer; the spot
stays reserved for them until they claim it or the offer expires, at which
point the next user in line is offered the spot.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from .config import settings
from .database import get_session
from .enums import AttendeeStatus, EventStatus, NotificationKind
from .errors import EventCancelledError, EventFullError, ValidationError, WaitlistUnavailableError
from .models import Attendee, Event, Profile
from .notifications import create_notification
from .queries import fetch_user_rsvp, fetch_waitlist
from .utils import utcnow

logger = logging.getLogger("uvicorn.error")

EXPIRY_BATCH_SIZE = 200


def reserved_spots(event: Event, now: datetime) -> int:
    """Return the number of spots held by outstanding waitlist offers."""
    return sum(1 for a in event.attendees if a.has_open_offer(now))


def sync_event_capacity(event: Event, now: datetime | None = None) -> Event:
    """Recount going attendees and derive the active/full status."""
    now = now or utcnow()
    event.current_capacity = event.going_count
    if event.status != EventStatus.CANCELLED:
        taken = event.current_capacity + reserved_spots(event, now)
        event.status = (
            EventStatus.FULL if taken >= event.max_capacity else EventStatus.ACTIVE
        )
    return event


def _queued(event: Event) -> list[Attendee]:
    waiting = [
        a
        for a in event.attendees
        if a.status == AttendeeStatus.WAITLIST and a.offer_expires_at is None
    ]
    return sorted(waiting, key=lambda a: (a.responded_at, a.id or ""))


def offer_open_spots(
    session: Session, event: Event, now: datetime | None = None
) -> list[Attendee]:
    """Offer every unreserved open spot to the next users in line."""
    now = now or utcnow()
    offered: list[Attendee] = []
    if event.status == EventStatus.CANCELLED:
        return offered
    for attendee in _queued(event):
        if event.going_count + reserved_spots(event, now) >= event.max_capacity:
            break
        attendee.offer_expires_at = now + settings.claim_window
        session.add(attendee)
        create_notification(
            session,
            user=attendee.user,
            event=event,
            kind=NotificationKind.WAITLIST_OFFER,
            content=(
                f"A spot opened up for {event.title}. Claim it within "
                f"{settings.waitlist_claim_hours} hours before it goes to the next person."
            ),
        )
        offered.append(attendee)
        logger.info(
            "Offered open spot for event %s to user %s until %s",
            event.id,
            attendee.user_id,
            attendee.offer_expires_at.isoformat(),
        )
    sync_event_capacity(event, now)
    session.flush()
    return offered


def join_waitlist(
    session: Session, event: Event, user: Profile, now: datetime | None = None
) -> tuple[Attendee, bool]:
    """Put ``user`` on the event's waitlist.

    Returns the attendee row and whether it was newly placed on the waitlist;
    joining twice is a no-op.
    """
    now = now or utcnow()
    if event.status == EventStatus.CANCELLED:
        raise WaitlistUnavailableError("This event has been cancelled.")
    existing = fetch_user_rsvp(session, event.id, user.id)
    if existing and existing.status == AttendeeStatus.WAITLIST:
        return existing, False
    if existing and existing.status == AttendeeStatus.GOING:
        raise ValidationError("You already have a spot at this event.")

    sync_event_capacity(event, now)
    if event.status != EventStatus.FULL:
        raise WaitlistUnavailableError(
            "This event still has open spots. RSVP instead of joining the waitlist."
        )

    if existing:
        attendee = existing
        attendee.status = AttendeeStatus.WAITLIST
        attendee.offer_expires_at = None
        attendee.responded_at = now
    else:
        attendee = Attendee(
            event=event,
            user=user,
            status=AttendeeStatus.WAITLIST,
            responded_at=now,
        )
    session.add(attendee)
    session.flush()
    logger.info("User %s joined the waitlist for event %s", user.id, event.id)
    return attendee, True


def claim_offer(
    session: Session, event: Event, user: Profile, now: datetime | None = None
) -> Attendee:
    """Convert an unexpired waitlist offer into a going RSVP."""
    now = now or utcnow()
    if event.status == EventStatus.CANCELLED:
        raise EventCancelledError()
    attendee = fetch_user_rsvp(session, event.id, user.id)
    if attendee is None or not attendee.has_open_offer(now):
        raise WaitlistUnavailableError(
            "You don't have an open spot offer for this event."
        )
    if event.going_count >= event.max_capacity:
        raise EventFullError()
    attendee.status = AttendeeStatus.GOING
    attendee.offer_expires_at = None
    attendee.responded_at = now
    session.add(attendee)
    sync_event_capacity(event, now)
    session.flush()
    return attendee


def waitlist_position(session: Session, event: Event, user: Profile) -> int | None:
    """Return the 1-based position of ``user`` in line, if waitlisted."""
    for index, attendee in enumerate(fetch_waitlist(session, event.id), start=1):
        if attendee.user_id == user.id:
            return index
    return None


def expire_offers(now: datetime | None = None) -> dict[str, int]:
    """Expire stale waitlist offers and pass each spot to the next in line."""
    now = now or utcnow()
    stats = {"offers_expired": 0, "offers_made": 0, "batches": 0}
    logger.info("Waitlist offer sweep started at %s", now.isoformat())

    with get_session() as session:
        while True:
            stmt = (
                select(Attendee)
                .where(
                    Attendee.status == AttendeeStatus.WAITLIST,
                    Attendee.offer_expires_at.is_not(None),
                    Attendee.offer_expires_at <= now,
                )
                .order_by(Attendee.offer_expires_at, Attendee.id)
                .limit(EXPIRY_BATCH_SIZE)
            )
            batch = session.scalars(stmt).all()
            if not batch:
                break
            touched: dict[str, Event] = {}
            for attendee in batch:
                attendee.status = AttendeeStatus.INTERESTED
                attendee.offer_expires_at = None
                session.add(attendee)
                create_notification(
                    session,
                    user=attendee.user,
                    event=attendee.event,
                    kind=NotificationKind.OFFER_EXPIRED,
                    content=(
                        f"Your waitlist offer for {attendee.event.title} expired "
                        "and the spot moved to the next person in line."
                    ),
                )
                touched[attendee.event_id] = attendee.event
                stats["offers_expired"] += 1
            for event in touched.values():
                stats["offers_made"] += len(offer_open_spots(session, event, now))
            stats["batches"] += 1
            session.commit()

    logger.info(
        "Waitlist offer sweep finished: expired=%d, offered=%d across %d batches",
        stats["offers_expired"],
        stats["offers_made"],
        stats["batches"],
    )
    return stats
