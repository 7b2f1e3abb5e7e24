"""Development helpers for populating fake organizers, events and RSVPs."""

from __future__ import annotations

import random
from datetime import date, time, timedelta

from faker import Faker
from sqlalchemy.orm import Session

from .crud import create_event, create_profile, set_rsvp
from .database import get_session
from .enums import AttendeeStatus, Difficulty, EventCategory, PricingType, Visibility
from .errors import EventFullError
from .models import Event, Profile
from .storage import init_db
from .utils import utcnow
from .validation import validate_event_fields

_activity_names = {
    EventCategory.HIKING: ["Ridge Hike", "Sunrise Summit", "Waterfall Trail Walk"],
    EventCategory.BIKING: ["Gravel Ride", "Singletrack Loop", "Coastal Cruise"],
    EventCategory.CLIMBING: ["Bouldering Morning", "Crag Day", "Multipitch Intro"],
    EventCategory.CAMPING: ["Lakeside Campout", "Backcountry Overnight", "Stargazing Camp"],
    EventCategory.KAYAKING: ["Sunset Paddle", "River Run", "Bay Kayak Tour"],
    EventCategory.OUTDOOR_ADVENTURE: ["Canyon Scramble", "Trail Cleanup", "Orienteering Day"],
    EventCategory.OTHER: ["Trail Picnic", "Birding Walk", "Outdoor Photo Walk"],
}
_packing_items = [
    "2L of water",
    "headlamp",
    "rain shell",
    "trail snacks",
    "sunscreen",
    "helmet",
    "layers for the summit",
]
_rsvp_statuses = [
    AttendeeStatus.GOING,
    AttendeeStatus.GOING,
    AttendeeStatus.GOING,
    AttendeeStatus.MAYBE,
    AttendeeStatus.INTERESTED,
]


def seed_fake_data(
    *,
    organizer_count: int = 4,
    event_count: int = 12,
    max_attendees_per_event: int = 6,
    private_percentage: int = 10,
) -> dict[str, int]:
    """Populate the database with synthetic organizers, events and RSVPs."""
    if organizer_count < 1:
        raise ValueError("organizer_count must be >= 1")
    if event_count < 0:
        raise ValueError("event_count must be >= 0")
    if max_attendees_per_event < 0:
        raise ValueError("max_attendees_per_event must be >= 0")
    if not 0 <= private_percentage <= 100:
        raise ValueError("private_percentage must be between 0 and 100")

    init_db()
    fake = Faker()
    stats = {"profiles": 0, "events": 0, "rsvps": 0}

    with get_session() as session:
        organizers = [
            _create_person(session, fake, role="organizer")
            for _ in range(organizer_count)
        ]
        members = [
            _create_person(session, fake) for _ in range(max_attendees_per_event)
        ]
        stats["profiles"] = len(organizers) + len(members)

        for _ in range(event_count):
            event = _create_event(
                session,
                fake,
                organizer=random.choice(organizers),
                private_percentage=private_percentage,
            )
            stats["events"] += 1
            stats["rsvps"] += _create_rsvps(session, event, members)

    return stats


def _create_person(session: Session, fake: Faker, *, role: str = "member") -> Profile:
    return create_profile(
        session,
        full_name=fake.name(),
        email=fake.unique.email(),
        role=role,
    )


def _random_event_date() -> date:
    return utcnow().date() + timedelta(days=random.randint(1, 60))


def _random_times() -> tuple[time, time]:
    start_hour = random.randint(6, 14)
    duration = random.randint(2, 6)
    return time(start_hour, random.choice([0, 15, 30, 45])), time(start_hour + duration, 0)


def _create_event(
    session: Session,
    fake: Faker,
    *,
    organizer: Profile,
    private_percentage: int,
) -> Event:
    category = random.choice(list(EventCategory))
    start_time, end_time = _random_times()
    paid = random.random() < 0.25
    raw = {
        "title": f"{fake.city()} {random.choice(_activity_names[category])}",
        "description": "\n\n".join(fake.paragraphs(nb=2)),
        "category": category.value,
        "difficulty": random.choice(list(Difficulty)).value,
        "event_date": _random_event_date().isoformat(),
        "start_time": start_time.isoformat(timespec="minutes"),
        "end_time": end_time.isoformat(timespec="minutes"),
        "location_name": f"{fake.last_name()} {random.choice(['Trailhead', 'Park', 'Lake', 'Ridge'])}",
        "location_address": fake.address().replace("\n", ", "),
        "location_lat": f"{fake.latitude():.5f}",
        "location_lng": f"{fake.longitude():.5f}",
        "elevation": random.randint(0, 12000) if random.random() < 0.6 else None,
        "max_capacity": random.randint(4, 20),
        "visibility": (
            Visibility.PRIVATE
            if random.randint(1, 100) <= private_percentage
            else Visibility.PUBLIC
        ).value,
        "pricing_type": (PricingType.PAID if paid else PricingType.FREE).value,
        "price": random.choice(["10", "15", "25", "40"]) if paid else None,
        "packing_list_notes": ", ".join(random.sample(_packing_items, k=3)),
    }
    return create_event(session, organizer=organizer, fields=validate_event_fields(raw))


def _create_rsvps(session: Session, event: Event, members: list[Profile]) -> int:
    if not members:
        return 0
    total = random.randint(0, len(members))
    for member in random.sample(members, k=total):
        status = random.choice(_rsvp_statuses)
        try:
            set_rsvp(session, event, user=member, status=status)
        except EventFullError:
            set_rsvp(session, event, user=member, status=AttendeeStatus.WAITLIST)
    return total
