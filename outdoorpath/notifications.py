"""Notification records for waitlist offers and cancellations."""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from .enums import NotificationKind
from .models import Event, Notification, Profile
from .utils import utcnow

logger = logging.getLogger("uvicorn.error")


def create_notification(
    session: Session,
    *,
    user: Profile,
    event: Event | None,
    kind: NotificationKind,
    content: str,
) -> Notification:
    """Persist a notification for ``user``."""
    notification = Notification(
        user=user,
        event=event,
        kind=kind,
        content=content,
        created_at=utcnow(),
    )
    session.add(notification)
    session.flush()
    logger.info(
        "Queued %s notification for user %s (event %s)",
        kind.value,
        user.id,
        event.id if event else "-",
    )
    return notification


def mark_read(
    session: Session, notification: Notification, *, timestamp: datetime | None = None
) -> Notification:
    if notification.read_at is None:
        notification.read_at = timestamp or utcnow()
        session.add(notification)
        session.flush()
    return notification
