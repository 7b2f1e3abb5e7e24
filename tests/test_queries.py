from __future__ import annotations

import logging
from datetime import timedelta

import pytest
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from outdoorpath.crud import set_rsvp
from outdoorpath.enums import AttendeeStatus, EventCategory, EventStatus
from outdoorpath.errors import DataSourceError
from outdoorpath.queries import (
    ALL,
    EventFilters,
    fetch_attendee_counts_by_status,
    fetch_event_attendees,
    fetch_event_by_id,
    fetch_events,
    fetch_events_by_organizer,
    fetch_user_events,
    fetch_waitlist,
)
from outdoorpath.utils import utcnow
from outdoorpath.waitlist import join_waitlist


def _in_days(days: int) -> str:
    return (utcnow().date() + timedelta(days=days)).isoformat()


@pytest.fixture()
def catalog(make_profile, make_event):
    organizer = make_profile("Olive Organizer")
    other = make_profile("Oscar Other")
    return {
        "organizer": organizer,
        "other": other,
        "lake": make_event(
            organizer,
            title="Lake Loop",
            event_date=_in_days(10),
            category="hiking",
        ),
        "ride": make_event(
            organizer,
            title="Gravel Ride",
            description="Fast gravel miles past the reservoir.",
            event_date=_in_days(3),
            category="biking",
            difficulty="hard",
        ),
        "paddle": make_event(
            other,
            title="Sunset Paddle",
            description="Paddle out to the island, 100% flat water.",
            location_address="1 Harbor Way, Lakeview",
            event_date=_in_days(5),
            category="kayaking",
            difficulty="easy",
        ),
        "secret": make_event(
            organizer,
            title="Private Lake Camp",
            event_date=_in_days(1),
            category="camping",
            visibility="private",
        ),
    }


def test_fetch_events_returns_public_events_by_date(session, catalog):
    events = fetch_events(session)
    assert [e.title for e in events] == ["Gravel Ride", "Sunset Paddle", "Lake Loop"]
    assert all(e.organizer is not None for e in events)


def test_fetch_events_applies_equality_filters(session, catalog):
    events = fetch_events(session, EventFilters(category="biking", difficulty="hard"))
    assert [e.title for e in events] == ["Gravel Ride"]

    events = fetch_events(session, EventFilters(category=EventCategory.KAYAKING))
    assert [e.title for e in events] == ["Sunset Paddle"]


def test_fetch_events_ignores_all_sentinel(session, catalog):
    filters = EventFilters(category=ALL, difficulty=ALL, status=ALL, search="")
    assert len(fetch_events(session, filters)) == 3


def test_fetch_events_search_spans_text_columns(session, catalog):
    # "lake" hits a title and an address; the private camp stays hidden.
    events = fetch_events(session, EventFilters(search="LAKE"))
    assert [e.title for e in events] == ["Sunset Paddle", "Lake Loop"]

    events = fetch_events(session, EventFilters(search="reservoir"))
    assert [e.title for e in events] == ["Gravel Ride"]


def test_fetch_events_escapes_like_wildcards(session, catalog):
    events = fetch_events(session, EventFilters(search="100%"))
    assert [e.title for e in events] == ["Sunset Paddle"]
    assert fetch_events(session, EventFilters(search="_")) == []


def test_fetch_events_organizer_filter_keeps_public_restriction(session, catalog):
    filters = EventFilters(organizer_id=catalog["organizer"].id)
    assert [e.title for e in fetch_events(session, filters)] == [
        "Gravel Ride",
        "Lake Loop",
    ]


def test_fetch_events_by_organizer_includes_private(session, catalog):
    events = fetch_events_by_organizer(session, catalog["organizer"].id)
    assert [e.title for e in events] == ["Lake Loop", "Gravel Ride", "Private Lake Camp"]


def test_fetch_event_by_id(session, catalog):
    event = fetch_event_by_id(session, catalog["lake"].id)
    assert event is not None
    assert event.organizer.full_name == "Olive Organizer"
    assert fetch_event_by_id(session, "missing") is None


def test_attendee_counts_have_exactly_four_bins(session, catalog, make_profile):
    event = catalog["lake"]
    set_rsvp(session, event, user=make_profile("Going Gina"), status=AttendeeStatus.GOING)
    set_rsvp(session, event, user=make_profile("Going Gus"), status=AttendeeStatus.GOING)
    set_rsvp(session, event, user=make_profile("Maybe Mo"), status=AttendeeStatus.MAYBE)
    session.commit()
    session.execute(
        text(
            "INSERT INTO event_attendees (id, event_id, user_id, status, responded_at) "
            "VALUES ('legacy-row', :event_id, 'legacy-user', 'declined', :now)"
        ),
        {"event_id": event.id, "now": utcnow().strftime("%Y-%m-%d %H:%M:%S.%f")},
    )
    session.commit()

    counts = fetch_attendee_counts_by_status(session, event.id)
    assert counts == {"going": 2, "maybe": 1, "interested": 0, "waitlist": 0}


def test_attendee_counts_for_event_without_rsvps(session, catalog):
    counts = fetch_attendee_counts_by_status(session, catalog["ride"].id)
    assert counts == {"going": 0, "maybe": 0, "interested": 0, "waitlist": 0}


def test_fetch_event_attendees_and_user_events(session, catalog, make_profile):
    user = make_profile("Riley Rider")
    set_rsvp(session, catalog["ride"], user=user, status=AttendeeStatus.GOING)
    set_rsvp(session, catalog["paddle"], user=user, status=AttendeeStatus.INTERESTED)
    session.commit()

    attendees = fetch_event_attendees(session, catalog["ride"].id)
    assert [a.user.full_name for a in attendees] == ["Riley Rider"]

    rsvps = fetch_user_events(session, user.id)
    assert {a.event.title for a in rsvps} == {"Gravel Ride", "Sunset Paddle"}


def test_fetch_waitlist_in_join_order(session, make_event, make_profile):
    event = make_event(max_capacity="1")
    set_rsvp(session, event, user=make_profile("First Fran"), status=AttendeeStatus.GOING)
    waiting = [make_profile(f"Waiter {n}") for n in range(3)]
    base = utcnow()
    for offset, user in enumerate(waiting):
        join_waitlist(session, event, user, now=base + timedelta(seconds=offset))
    session.commit()

    assert event.status == EventStatus.FULL
    assert [a.user_id for a in fetch_waitlist(session, event.id)] == [u.id for u in waiting]


class _BrokenSession:
    def scalars(self, *args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("disk I/O error"))


def test_data_source_errors_are_logged_and_wrapped(caplog):
    with caplog.at_level(logging.ERROR, logger="uvicorn.error"):
        with pytest.raises(DataSourceError) as excinfo:
            fetch_events(_BrokenSession())
    assert excinfo.value.status_code == 503
    assert isinstance(excinfo.value.__cause__, OperationalError)
    assert "Error fetching events" in caplog.text
