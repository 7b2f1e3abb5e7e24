"""Utility helpers for OutdoorPath."""

from __future__ import annotations

from datetime import UTC, date, datetime, time

INVALID_DATE = "Invalid date"
INVALID_TIME = "Invalid time"


def utcnow() -> datetime:
    """Return a naive UTC datetime."""

    return datetime.now(UTC).replace(tzinfo=None)


def parse_event_date(value: date | datetime | str | None) -> date | None:
    """Coerce an event date value into a ``date``; ``None`` when unparseable."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        return None


def _parse_time(value: time | str | None) -> time | None:
    if value is None:
        return None
    if isinstance(value, time):
        return value
    try:
        return time.fromisoformat(str(value).strip())
    except ValueError:
        return None


def format_event_date(value) -> str:
    """Return e.g. ``Saturday, June 15, 2026``."""
    parsed = parse_event_date(value)
    if parsed is None:
        return INVALID_DATE
    return f"{parsed:%A, %B} {parsed.day}, {parsed.year}"


def format_event_date_short(value) -> str:
    """Return e.g. ``Jun 15, 2026``."""
    parsed = parse_event_date(value)
    if parsed is None:
        return INVALID_DATE
    return f"{parsed:%b} {parsed.day}, {parsed.year}"


def format_event_time(value) -> str:
    """Return e.g. ``9:00 AM``."""
    parsed = _parse_time(value)
    if parsed is None:
        return INVALID_TIME
    hour = parsed.hour % 12 or 12
    suffix = "AM" if parsed.hour < 12 else "PM"
    return f"{hour}:{parsed.minute:02d} {suffix}"


def format_time_range(start, end=None) -> str:
    """Return e.g. ``9:00 AM - 2:00 PM``."""
    start_text = format_event_time(start)
    if not end:
        return start_text
    return f"{start_text} - {format_event_time(end)}"


def humanize_time(value: datetime | None, *, now: datetime | None = None) -> str:
    """Return a friendly string such as 'in 2 weeks' or '3 hours ago'."""
    if not value:
        return ""
    now = now or utcnow()
    delta_seconds = (value - now).total_seconds()
    past = delta_seconds < 0
    seconds = abs(delta_seconds)

    units = [
        ("year", 365 * 24 * 3600),
        ("month", 30 * 24 * 3600),
        ("day", 24 * 3600),
        ("hour", 3600),
        ("minute", 60),
    ]

    for name, step in units:
        amount = int(seconds // step)
        if amount >= 1:
            label = name if amount == 1 else f"{name}s"
            return f"{amount} {label} ago" if past else f"in {amount} {label}"
    return "moments ago" if past else "in moments"


def is_event_past(event_date, end_time, *, now: datetime | None = None) -> bool:
    """Return True once the event's end has passed."""
    parsed_date = parse_event_date(event_date)
    parsed_end = _parse_time(end_time)
    if parsed_date is None or parsed_end is None:
        return False
    return datetime.combine(parsed_date, parsed_end) < (now or utcnow())


def is_event_today(event_date, *, today: date | None = None) -> bool:
    parsed = parse_event_date(event_date)
    return parsed is not None and parsed == (today or utcnow().date())
