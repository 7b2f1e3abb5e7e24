from __future__ import annotations

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from outdoorpath import api
from outdoorpath.crud import set_rsvp
from outdoorpath.enums import AttendeeStatus, NotificationKind
from outdoorpath.models import Event, Notification
from outdoorpath.notifications import create_notification
from outdoorpath.utils import utcnow


@pytest.fixture()
def client(monkeypatch):
    """FastAPI test client with the scheduler disabled."""

    monkeypatch.setattr(api, "start_scheduler", lambda: None)
    monkeypatch.setattr(api, "stop_scheduler", lambda: None)
    with TestClient(api.app) as test_client:
        yield test_client


def _auth(profile) -> dict[str, str]:
    return {"Authorization": f"Bearer {profile.api_token}"}


@pytest.fixture()
def event_payload(raw_event):
    def _make(**overrides) -> dict:
        payload = raw_event(**overrides)
        payload["max_capacity"] = int(payload["max_capacity"])
        return payload

    return _make


def test_create_event_returns_serialized_event(client, make_profile, session, event_payload):
    organizer = make_profile("Organizer Olsen")
    response = client.post(
        "/api/v1/events",
        json=event_payload(location_lat=40.01, location_lng=-105.27, elevation=7200),
        headers=_auth(organizer),
    )

    assert response.status_code == 201
    event = response.json()["event"]
    assert event["title"] == "Ridge Hike"
    assert event["category"] == "hiking"
    assert event["difficulty"] == "moderate"
    assert event["status"] == "active"
    assert event["start_time"] == "09:00"
    assert event["end_time"] == "14:00"
    assert event["location"] == {
        "name": "Bear Creek Trailhead",
        "address": "100 Canyon Rd, Boulder, CO",
        "lat": 40.01,
        "lng": -105.27,
    }
    assert event["current_capacity"] == 0
    assert event["spots_left"] == 10
    assert event["price"] is None
    assert event["organizer"]["full_name"] == "Organizer Olsen"
    assert event["links"]["html"] == f"/events/{event['id']}"
    assert session.get(Event, event["id"]) is not None


def test_create_event_requires_token(client, event_payload):
    response = client.post("/api/v1/events", json=event_payload())
    assert response.status_code == 401
    assert response.json() == {"detail": "You must be signed in to do that."}


def test_create_event_rejects_unknown_token(client, event_payload):
    response = client.post(
        "/api/v1/events",
        json=event_payload(),
        headers={"Authorization": "Bearer not-a-real-token"},
    )
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid API token."


def test_create_event_reports_first_validation_error(client, make_profile, event_payload):
    past = (utcnow().date() - timedelta(days=1)).isoformat()
    response = client.post(
        "/api/v1/events",
        json=event_payload(title="Go", event_date=past),
        headers=_auth(make_profile()),
    )
    assert response.status_code == 400
    assert response.json() == {"detail": "Title must be at least 3 characters"}


def test_create_paid_event_without_price(client, make_profile, event_payload):
    response = client.post(
        "/api/v1/events",
        json=event_payload(pricing_type="paid"),
        headers=_auth(make_profile()),
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Paid events need a price greater than 0"


def test_list_events_filters_and_hides_private(client, make_event):
    make_event(title="Ridge Hike")
    make_event(title="Gravel Ride", category="biking", difficulty="hard")
    make_event(title="Secret Crag", category="climbing", visibility="private")

    response = client.get("/api/v1/events")
    assert response.status_code == 200
    body = response.json()
    assert body["count"] == 2
    assert {e["title"] for e in body["events"]} == {"Ridge Hike", "Gravel Ride"}

    biking = client.get("/api/v1/events", params={"category": "biking"}).json()
    assert [e["title"] for e in biking["events"]] == ["Gravel Ride"]

    searched = client.get("/api/v1/events", params={"q": "gravel"}).json()
    assert [e["title"] for e in searched["events"]] == ["Gravel Ride"]


def test_list_events_rejects_unknown_category(client):
    response = client.get("/api/v1/events", params={"category": "skydiving"})
    assert response.status_code == 400
    assert response.json()["detail"] == "Unknown category: skydiving"


def test_get_event_includes_counts(client, make_event, make_profile, session):
    event = make_event()
    set_rsvp(session, event, user=make_profile("Gus"), status=AttendeeStatus.GOING)
    set_rsvp(session, event, user=make_profile("Mae"), status=AttendeeStatus.MAYBE)
    session.commit()

    response = client.get(f"/api/v1/events/{event.id}")
    assert response.status_code == 200
    assert response.json()["event"]["attendee_counts"] == {
        "going": 1,
        "maybe": 1,
        "interested": 0,
        "waitlist": 0,
    }
    counts = client.get(f"/api/v1/events/{event.id}/attendees/counts").json()
    assert counts == {"counts": {"going": 1, "maybe": 1, "interested": 0, "waitlist": 0}}


def test_missing_event_is_json_404(client):
    response = client.get("/api/v1/events/does-not-exist")
    assert response.status_code == 404
    assert response.json() == {"detail": "Event not found."}


def test_private_event_only_visible_to_organizer(client, make_event, make_profile):
    organizer = make_profile("Owner Ona")
    event = make_event(organizer=organizer, visibility="private")

    assert client.get(f"/api/v1/events/{event.id}").status_code == 404
    stranger = make_profile("Stranger Sid")
    assert (
        client.get(f"/api/v1/events/{event.id}", headers=_auth(stranger)).status_code
        == 404
    )
    response = client.get(f"/api/v1/events/{event.id}", headers=_auth(organizer))
    assert response.status_code == 200
    assert response.json()["event"]["visibility"] == "private"


def test_update_event_changes_only_sent_fields(client, make_event, make_profile):
    organizer = make_profile("Owner Ona")
    event = make_event(organizer=organizer)

    response = client.patch(
        f"/api/v1/events/{event.id}",
        json={"title": "Ridge Hike (rescheduled)", "max_capacity": 12},
        headers=_auth(organizer),
    )
    assert response.status_code == 200
    body = response.json()["event"]
    assert body["title"] == "Ridge Hike (rescheduled)"
    assert body["max_capacity"] == 12
    assert body["location"]["name"] == "Bear Creek Trailhead"


def test_update_event_forbidden_for_non_organizer(client, make_event, make_profile):
    event = make_event()
    stranger = make_profile("Stranger Sid")

    response = client.patch(
        f"/api/v1/events/{event.id}", json={"title": "Hijacked"}, headers=_auth(stranger)
    )
    assert response.status_code == 403
    assert response.json()["detail"] == "You are not authorized to update this event"
    assert client.delete(f"/api/v1/events/{event.id}", headers=_auth(stranger)).status_code == 403
    assert (
        client.post(f"/api/v1/events/{event.id}/cancel", headers=_auth(stranger)).status_code
        == 403
    )


def test_update_event_capacity_below_going(client, make_event, make_profile, session):
    organizer = make_profile("Owner Ona")
    event = make_event(organizer=organizer, max_capacity="3")
    for name in ("Ann", "Ben"):
        set_rsvp(session, event, user=make_profile(name), status=AttendeeStatus.GOING)
    session.commit()

    response = client.patch(
        f"/api/v1/events/{event.id}", json={"max_capacity": 1}, headers=_auth(organizer)
    )
    assert response.status_code == 400
    assert response.json()["detail"] == (
        "Maximum capacity cannot be lower than the 2 people already going"
    )


def test_delete_event(client, make_event, make_profile):
    organizer = make_profile("Owner Ona")
    event = make_event(organizer=organizer)

    response = client.delete(f"/api/v1/events/{event.id}", headers=_auth(organizer))
    assert response.status_code == 204
    assert client.get(f"/api/v1/events/{event.id}").status_code == 404


def test_cancel_event_blocks_rsvps(client, make_event, make_profile):
    organizer = make_profile("Owner Ona")
    event = make_event(organizer=organizer)

    response = client.post(f"/api/v1/events/{event.id}/cancel", headers=_auth(organizer))
    assert response.status_code == 200
    assert response.json()["event"]["status"] == "cancelled"

    guest = make_profile("Guest Gia")
    rsvp = client.put(
        f"/api/v1/events/{event.id}/rsvp", json={"status": "going"}, headers=_auth(guest)
    )
    assert rsvp.status_code == 409
    assert rsvp.json()["detail"] == "This event has been cancelled."


def test_rsvp_lifecycle(client, make_event, make_profile):
    event = make_event(max_capacity="2")
    guest = make_profile("Guest Gia")
    headers = _auth(guest)

    assert client.get(f"/api/v1/events/{event.id}/rsvp", headers=headers).status_code == 404

    response = client.put(
        f"/api/v1/events/{event.id}/rsvp", json={"status": "going"}, headers=headers
    )
    assert response.status_code == 200
    body = response.json()
    assert body["rsvp"]["status"] == "going"
    assert body["event"]["current_capacity"] == 1

    current = client.get(f"/api/v1/events/{event.id}/rsvp", headers=headers).json()
    assert current["rsvp"]["user"]["full_name"] == "Guest Gia"
    assert current["waitlist_position"] is None

    attendees = client.get(f"/api/v1/events/{event.id}/attendees").json()["attendees"]
    assert [a["status"] for a in attendees] == ["going"]

    assert client.delete(f"/api/v1/events/{event.id}/rsvp", headers=headers).status_code == 204
    assert client.delete(f"/api/v1/events/{event.id}/rsvp", headers=headers).status_code == 404


def test_rsvp_rejects_unknown_status(client, make_event, make_profile):
    event = make_event()
    response = client.put(
        f"/api/v1/events/{event.id}/rsvp",
        json={"status": "declined"},
        headers=_auth(make_profile()),
    )
    assert response.status_code == 400
    assert response.json()["detail"].startswith("Invalid RSVP status")


def test_going_to_full_event_conflicts(client, make_event, make_profile, session):
    event = make_event(max_capacity="1")
    set_rsvp(session, event, user=make_profile("First Fay"), status=AttendeeStatus.GOING)
    session.commit()

    response = client.put(
        f"/api/v1/events/{event.id}/rsvp",
        json={"status": "going"},
        headers=_auth(make_profile("Late Lou")),
    )
    assert response.status_code == 409
    assert "full" in response.json()["detail"]


def test_waitlist_join_then_claim(client, make_event, make_profile, session):
    event = make_event(max_capacity="1")
    holder = make_profile("Holder Hana")
    set_rsvp(session, event, user=holder, status=AttendeeStatus.GOING)
    session.commit()
    waiter = make_profile("Waiting Wu")

    joined = client.post(f"/api/v1/events/{event.id}/waitlist", headers=_auth(waiter))
    assert joined.status_code == 201
    assert joined.json()["created"] is True
    assert joined.json()["waitlist_position"] == 1

    again = client.post(f"/api/v1/events/{event.id}/waitlist", headers=_auth(waiter))
    assert again.status_code == 200
    assert again.json()["created"] is False

    early = client.post(f"/api/v1/events/{event.id}/waitlist/claim", headers=_auth(waiter))
    assert early.status_code == 409

    assert client.delete(f"/api/v1/events/{event.id}/rsvp", headers=_auth(holder)).status_code == 204
    offered = client.get(f"/api/v1/events/{event.id}/rsvp", headers=_auth(waiter)).json()
    assert offered["rsvp"]["offer_expires_at"] is not None

    claimed = client.post(f"/api/v1/events/{event.id}/waitlist/claim", headers=_auth(waiter))
    assert claimed.status_code == 200
    assert claimed.json()["rsvp"]["status"] == "going"
    assert claimed.json()["event"]["status"] == "full"


def test_waitlist_rejected_when_spots_open(client, make_event, make_profile):
    event = make_event(max_capacity="5")
    response = client.post(
        f"/api/v1/events/{event.id}/waitlist", headers=_auth(make_profile())
    )
    assert response.status_code == 409


def test_me_endpoints(client, make_event, make_profile, session):
    organizer = make_profile("Owner Ona")
    hike = make_event(organizer=organizer, title="Ridge Hike")
    make_event(organizer=organizer, title="Hidden Lake", visibility="private")
    guest = make_profile("Guest Gia")
    set_rsvp(session, hike, user=guest, status=AttendeeStatus.INTERESTED)
    session.commit()

    organized = client.get("/api/v1/me/organized", headers=_auth(organizer)).json()
    assert {e["title"] for e in organized["events"]} == {"Ridge Hike", "Hidden Lake"}

    mine = client.get("/api/v1/me/events", headers=_auth(guest)).json()
    assert len(mine["rsvps"]) == 1
    assert mine["rsvps"][0]["status"] == "interested"
    assert mine["rsvps"][0]["event"]["title"] == "Ridge Hike"

    assert client.get("/api/v1/me/events").status_code == 401


def test_notifications_can_be_marked_read(client, make_event, make_profile, session):
    event = make_event()
    guest = make_profile("Guest Gia")
    notification = create_notification(
        session,
        user=guest,
        event=event,
        kind=NotificationKind.EVENT_CANCELLED,
        content="Ridge Hike was cancelled by the organizer.",
    )
    session.commit()

    listed = client.get("/api/v1/me/notifications", headers=_auth(guest)).json()
    assert [n["kind"] for n in listed["notifications"]] == ["event_cancelled"]
    assert listed["notifications"][0]["read_at"] is None

    response = client.post(
        f"/api/v1/me/notifications/{notification.id}/read", headers=_auth(guest)
    )
    assert response.status_code == 200
    assert response.json()["notification"]["read_at"] is not None

    unread = client.get(
        "/api/v1/me/notifications", params={"unread": "true"}, headers=_auth(guest)
    ).json()
    assert unread["notifications"] == []

    other = make_profile("Other Otto")
    denied = client.post(
        f"/api/v1/me/notifications/{notification.id}/read", headers=_auth(other)
    )
    assert denied.status_code == 404
    session.expire_all()
    assert session.get(Notification, notification.id).read_at is not None
