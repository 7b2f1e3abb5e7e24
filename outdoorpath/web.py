"""HTML route handlers for OutdoorPath."""

from __future__ import annotations

from pathlib import Path

from fastapi import Depends, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session

from .config import settings
from .crud import (
    create_event,
    ensure_event,
    ensure_profile_by_token,
    leave_event,
    set_rsvp,
)
from .database import get_db
from .enums import AttendeeStatus, Difficulty, EventCategory, EventStatus, Visibility
from .errors import EventNotFoundError, ValidationError
from .filtering import FilterCriteria, derive_visible_events
from .models import Event, Profile
from .queries import (
    fetch_attendee_counts_by_status,
    fetch_event_attendees,
    fetch_events,
    fetch_profile_by_token,
    fetch_user_rsvp,
)
from .utils import (
    format_event_date,
    format_event_date_short,
    format_time_range,
    humanize_time,
    is_event_past,
    is_event_today,
    utcnow,
)
from .validation import validate_event_fields
from .waitlist import claim_offer, join_waitlist, waitlist_position

TOKEN_COOKIE = "outdoorpath_token"

templates = Jinja2Templates(directory=Path(__file__).parent / "templates")
templates.env.filters["event_date"] = format_event_date
templates.env.filters["event_date_short"] = format_event_date_short
templates.env.filters["time_range"] = format_time_range
templates.env.filters["relative_time"] = humanize_time
templates.env.globals["categories"] = list(EventCategory)
templates.env.globals["difficulties"] = list(Difficulty)
templates.env.globals["browse_statuses"] = [EventStatus.ACTIVE, EventStatus.FULL]
templates.env.globals["claim_hours"] = settings.waitlist_claim_hours

EVENT_FORM_FIELDS = (
    "title",
    "description",
    "category",
    "event_date",
    "start_time",
    "end_time",
    "location_name",
    "location_address",
    "location_lat",
    "location_lng",
    "elevation",
    "max_capacity",
    "difficulty",
    "visibility",
    "pricing_type",
    "price",
    "hero_image_url",
    "packing_list_notes",
)


def request_token(request: Request) -> str | None:
    """Return the caller's API token from the bearer header or cookie."""
    auth_header = request.headers.get("authorization") or ""
    if auth_header.lower().startswith("bearer "):
        token = auth_header.split(" ", 1)[1].strip()
        if token:
            return token
    return request.cookies.get(TOKEN_COOKIE) or None


def current_profile(request: Request, db: Session) -> Profile | None:
    return fetch_profile_by_token(db, request_token(request))


def require_profile(request: Request, db: Session) -> Profile:
    return ensure_profile_by_token(db, request_token(request))


def visible_event(db: Session, event_id: str, viewer: Profile | None) -> Event:
    """Load an event, hiding private events from everyone but the organizer."""
    event = ensure_event(db, event_id)
    if event.visibility == Visibility.PRIVATE and (
        viewer is None or viewer.id != event.organizer_id
    ):
        raise EventNotFoundError()
    return event


def browse_context(db: Session, criteria: FilterCriteria) -> dict:
    all_events = fetch_events(db)
    return {
        "events": derive_visible_events(all_events, criteria),
        "total_count": len(all_events),
        "criteria": criteria,
        "filter_labels": criteria.active_labels(),
    }


def home():
    return RedirectResponse(url="/events", status_code=303)


def browse_events(
    request: Request,
    q: str | None = None,
    category: str | None = None,
    difficulty: str | None = None,
    status: str | None = None,
    db: Session = Depends(get_db),
):
    """Render the browse page with the filter panel and results."""
    criteria = FilterCriteria.from_params(
        search=q, category=category, difficulty=difficulty, status=status
    )
    context = browse_context(db, criteria)
    context["viewer"] = current_profile(request, db)
    return templates.TemplateResponse(request, "events.html", context)


def _form_response(
    request: Request,
    viewer: Profile,
    values: dict,
    *,
    message: str | None = None,
    status_code: int = 200,
):
    return templates.TemplateResponse(
        request,
        "event_form.html",
        {
            "viewer": viewer,
            "values": values,
            "message": message,
            "message_class": "alert-danger" if message else None,
            "visibilities": list(Visibility),
        },
        status_code=status_code,
    )


def new_event_page(request: Request, db: Session = Depends(get_db)):
    viewer = require_profile(request, db)
    return _form_response(request, viewer, {})


async def submit_event(request: Request, db: Session = Depends(get_db)):
    """Create an event from the form and redirect to its page."""
    viewer = require_profile(request, db)
    form = await request.form()
    values = {key: form.get(key) for key in EVENT_FORM_FIELDS}
    try:
        fields = validate_event_fields(values)
    except ValidationError as exc:
        return _form_response(
            request, viewer, values, message=exc.message, status_code=400
        )
    event = create_event(db, organizer=viewer, fields=fields)
    return RedirectResponse(url=f"/events/{event.id}", status_code=303)


def event_detail(event_id: str, request: Request, db: Session = Depends(get_db)):
    viewer = current_profile(request, db)
    event = visible_event(db, event_id, viewer)
    rsvp = fetch_user_rsvp(db, event.id, viewer.id) if viewer else None
    now = utcnow()
    return templates.TemplateResponse(
        request,
        "event_detail.html",
        {
            "event": event,
            "viewer": viewer,
            "rsvp": rsvp,
            "offer_open": bool(rsvp and rsvp.has_open_offer(now)),
            "is_organizer": bool(viewer and viewer.id == event.organizer_id),
            "counts": fetch_attendee_counts_by_status(db, event.id),
            "attendees": [
                a
                for a in fetch_event_attendees(db, event.id)
                if a.status == AttendeeStatus.GOING
            ],
            "event_is_over": is_event_past(event.event_date, event.end_time, now=now),
            "is_today": is_event_today(event.event_date, today=now.date()),
            "message": request.query_params.get("message"),
        },
    )


def event_full_page(event_id: str, request: Request, db: Session = Depends(get_db)):
    """Waitlist page for a full event."""
    viewer = current_profile(request, db)
    event = visible_event(db, event_id, viewer)
    if event.status != EventStatus.FULL:
        return RedirectResponse(url=f"/events/{event.id}", status_code=303)
    rsvp = fetch_user_rsvp(db, event.id, viewer.id) if viewer else None
    position = waitlist_position(db, event, viewer) if viewer else None
    return templates.TemplateResponse(
        request,
        "event_full.html",
        {
            "event": event,
            "viewer": viewer,
            "rsvp": rsvp,
            "position": position,
            "joined": request.query_params.get("joined") == "1",
        },
    )


def join_waitlist_form(event_id: str, request: Request, db: Session = Depends(get_db)):
    viewer = require_profile(request, db)
    event = visible_event(db, event_id, viewer)
    join_waitlist(db, event, viewer)
    return RedirectResponse(url=f"/events/{event.id}/full?joined=1", status_code=303)


def claim_spot_form(event_id: str, request: Request, db: Session = Depends(get_db)):
    viewer = require_profile(request, db)
    event = visible_event(db, event_id, viewer)
    claim_offer(db, event, viewer)
    return RedirectResponse(
        url=f"/events/{event.id}?message=You're+going!", status_code=303
    )


def rsvp_form(
    event_id: str,
    request: Request,
    status: str = Form(...),
    db: Session = Depends(get_db),
):
    """Set or clear the caller's RSVP from the detail page buttons."""
    viewer = require_profile(request, db)
    event = visible_event(db, event_id, viewer)
    if status == "leave":
        leave_event(db, event, user=viewer)
        return RedirectResponse(url=f"/events/{event.id}", status_code=303)
    try:
        parsed = AttendeeStatus(status)
    except ValueError as exc:
        raise ValidationError(f"Invalid RSVP status: {status}") from exc
    set_rsvp(db, event, user=viewer, status=parsed)
    return RedirectResponse(url=f"/events/{event.id}", status_code=303)


def signin_page(request: Request):
    return templates.TemplateResponse(request, "signin.html", {"viewer": None})


def signin_submit(token: str = Form(...), db: Session = Depends(get_db)):
    """Remember a profile token in a cookie so pages know who is browsing."""
    profile = ensure_profile_by_token(db, token.strip())
    response = RedirectResponse(url="/events", status_code=303)
    response.set_cookie(TOKEN_COOKIE, profile.api_token, httponly=True, samesite="lax")
    return response


def signout():
    response = RedirectResponse(url="/events", status_code=303)
    response.delete_cookie(TOKEN_COOKIE)
    return response


def register_web_routes(app):
    """Register HTML page routes on the FastAPI app."""
    app.get("/", include_in_schema=False)(home)
    app.get("/events", response_class=HTMLResponse)(browse_events)
    app.get("/events/new", response_class=HTMLResponse)(new_event_page)
    app.post("/events")(submit_event)
    app.get("/events/{event_id}", response_class=HTMLResponse)(event_detail)
    app.get("/events/{event_id}/full", response_class=HTMLResponse)(event_full_page)
    app.post("/events/{event_id}/waitlist")(join_waitlist_form)
    app.post("/events/{event_id}/waitlist/claim")(claim_spot_form)
    app.post("/events/{event_id}/rsvp")(rsvp_form)
    app.get("/signin", response_class=HTMLResponse)(signin_page)
    app.post("/signin")(signin_submit)
    app.post("/signout")(signout)
