"""Validation of the flat event field set submitted by organizers."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date, time
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

from .enums import Difficulty, EventCategory, PricingType, Visibility
from .errors import ValidationError
from .utils import utcnow

MIN_TITLE_LENGTH = 3
MIN_DESCRIPTION_LENGTH = 10


@dataclass(frozen=True)
class EventFields:
    title: str
    description: str
    category: EventCategory
    event_date: date
    start_time: time
    end_time: time
    location_name: str
    location_address: str
    max_capacity: int
    difficulty: Difficulty
    visibility: Visibility = Visibility.PUBLIC
    pricing_type: PricingType = PricingType.FREE
    price: Decimal | None = None
    location_lat: float | None = None
    location_lng: float | None = None
    elevation: int | None = None
    hero_image_url: str | None = None
    packing_list_notes: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def _text(raw: Mapping[str, Any], key: str) -> str:
    value = raw.get(key)
    if value is None:
        return ""
    return str(value).strip()


def _optional_text(raw: Mapping[str, Any], key: str) -> str | None:
    return _text(raw, key) or None


def _enum(raw: Mapping[str, Any], key: str, enum_cls, *, required_message: str, default=None):
    value = _text(raw, key).lower()
    if not value:
        if default is not None:
            return default
        raise ValidationError(required_message)
    try:
        return enum_cls(value)
    except ValueError as exc:
        choices = ", ".join(member.value for member in enum_cls)
        raise ValidationError(f"Invalid {key.replace('_', ' ')}. Choose one of: {choices}") from exc


def _optional_number(raw: Mapping[str, Any], key: str, caster, label: str):
    value = _text(raw, key)
    if not value:
        return None
    try:
        return caster(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{label} must be a number") from exc


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ValidationError("Event date must be a valid date (YYYY-MM-DD)") from exc


def _parse_time(value: str, label: str) -> time:
    try:
        return time.fromisoformat(value)
    except ValueError as exc:
        raise ValidationError(f"{label} must be a valid time (HH:MM)") from exc


def _parse_capacity(value: str) -> int:
    try:
        capacity = int(value)
    except (TypeError, ValueError):
        capacity = 0
    if capacity < 1:
        raise ValidationError("Maximum capacity must be at least 1")
    return capacity


def _parse_price(value: str) -> Decimal:
    try:
        price = Decimal(value)
    except InvalidOperation as exc:
        raise ValidationError("Price must be a number") from exc
    if not price.is_finite():
        raise ValidationError("Price must be a number")
    if price < 0:
        raise ValidationError("Price cannot be negative")
    return price


def validate_event_fields(raw: Mapping[str, Any], *, today: date | None = None) -> EventFields:
    """Validate and normalize a submitted event.

    ``raw`` holds form or JSON values keyed by field name. Checks run in a
    fixed order and the first violation raises :class:`ValidationError`
    carrying a message meant for the organizer.
    """
    title = _text(raw, "title")
    if len(title) < MIN_TITLE_LENGTH:
        raise ValidationError(f"Title must be at least {MIN_TITLE_LENGTH} characters")

    description = _text(raw, "description")
    if len(description) < MIN_DESCRIPTION_LENGTH:
        raise ValidationError(
            f"Description must be at least {MIN_DESCRIPTION_LENGTH} characters"
        )

    category = _enum(raw, "category", EventCategory, required_message="Category is required")

    raw_date = _text(raw, "event_date")
    if not raw_date:
        raise ValidationError("Event date is required")
    event_date = _parse_date(raw_date)
    if event_date < (today or utcnow().date()):
        raise ValidationError("Event date must be in the future")

    raw_start = _text(raw, "start_time")
    raw_end = _text(raw, "end_time")
    if not raw_start or not raw_end:
        raise ValidationError("Start and end times are required")
    start_time = _parse_time(raw_start, "Start time")
    end_time = _parse_time(raw_end, "End time")
    if end_time <= start_time:
        raise ValidationError("End time must be after start time")

    location_name = _text(raw, "location_name")
    location_address = _text(raw, "location_address")
    if not location_name or not location_address:
        raise ValidationError("Location details are required")

    max_capacity = _parse_capacity(_text(raw, "max_capacity"))

    difficulty = _enum(
        raw, "difficulty", Difficulty, required_message="Difficulty level is required"
    )
    visibility = _enum(
        raw, "visibility", Visibility, required_message="", default=Visibility.PUBLIC
    )
    pricing_type = _enum(
        raw, "pricing_type", PricingType, required_message="", default=PricingType.FREE
    )

    price = None
    raw_price = _text(raw, "price")
    if pricing_type == PricingType.PAID:
        price = _parse_price(raw_price) if raw_price else None
        if price is None or price <= 0:
            raise ValidationError("Paid events need a price greater than 0")
    elif raw_price:
        price = _parse_price(raw_price)

    location_lat = _optional_number(raw, "location_lat", float, "Latitude")
    if location_lat is not None and not -90 <= location_lat <= 90:
        raise ValidationError("Latitude must be between -90 and 90")
    location_lng = _optional_number(raw, "location_lng", float, "Longitude")
    if location_lng is not None and not -180 <= location_lng <= 180:
        raise ValidationError("Longitude must be between -180 and 180")

    return EventFields(
        title=title,
        description=description,
        category=category,
        event_date=event_date,
        start_time=start_time,
        end_time=end_time,
        location_name=location_name,
        location_address=location_address,
        max_capacity=max_capacity,
        difficulty=difficulty,
        visibility=visibility,
        pricing_type=pricing_type,
        price=price,
        location_lat=location_lat,
        location_lng=location_lng,
        elevation=_optional_number(raw, "elevation", int, "Elevation"),
        hero_image_url=_optional_text(raw, "hero_image_url"),
        packing_list_notes=_optional_text(raw, "packing_list_notes"),
    )


def event_as_raw(event) -> dict[str, Any]:
    """Return an event's current values in the raw shape accepted above."""
    return {
        "title": event.title,
        "description": event.description,
        "category": event.category.value,
        "event_date": event.event_date.isoformat(),
        "start_time": event.start_time.isoformat(),
        "end_time": event.end_time.isoformat(),
        "location_name": event.location_name,
        "location_address": event.location_address,
        "max_capacity": event.max_capacity,
        "difficulty": event.difficulty.value,
        "visibility": event.visibility.value,
        "pricing_type": event.pricing_type.value,
        "price": event.price,
        "location_lat": event.location_lat,
        "location_lng": event.location_lng,
        "elevation": event.elevation,
        "hero_image_url": event.hero_image_url,
        "packing_list_notes": event.packing_list_notes,
    }
