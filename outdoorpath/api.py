"""FastAPI application for OutdoorPath."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from decimal import Decimal
from importlib.metadata import PackageNotFoundError, version as pkg_version
from pathlib import Path
import tomllib

from fastapi import Depends, FastAPI, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import settings
from .crud import (
    cancel_event,
    create_event,
    delete_event,
    leave_event,
    set_rsvp,
    update_event,
)
from .database import get_db
from .enums import AttendeeStatus, Difficulty, EventCategory, EventStatus
from .errors import (
    DataSourceError,
    EventNotFoundError,
    NotFoundError,
    OutdoorPathError,
    ValidationError,
)
from .filtering import parse_choice
from .models import Attendee, Event, Notification, Profile
from .notifications import mark_read
from .partials import register_partial_routes
from .queries import (
    EventFilters,
    fetch_attendee_counts_by_status,
    fetch_event_attendees,
    fetch_events,
    fetch_events_by_organizer,
    fetch_notifications,
    fetch_user_events,
    fetch_user_rsvp,
)
from .scheduler import start_scheduler, stop_scheduler
from .storage import init_db
from .utils import utcnow
from .validation import validate_event_fields
from .waitlist import claim_offer, join_waitlist, waitlist_position
from .web import (
    current_profile,
    register_web_routes,
    require_profile,
    templates,
    visible_event,
)

# Use uvicorn's error logger so messages get the level prefix in the default log
# format.
logger = logging.getLogger("uvicorn.error")


def _load_app_version() -> str:
    """Return the current package version, falling back to pyproject for dev runs."""
    try:
        return pkg_version("outdoorpath")
    except PackageNotFoundError:
        pyproject_path = Path(__file__).resolve().parent.parent / "pyproject.toml"
        if pyproject_path.exists():
            data = tomllib.loads(pyproject_path.read_text())
            project = data.get("project") or {}
            return str(project.get("version") or "dev")
    return "dev"


APP_VERSION = _load_app_version()


@asynccontextmanager
async def lifespan(_: FastAPI):
    init_db()
    if settings.enable_scheduler:
        start_scheduler()
    try:
        yield
    finally:
        stop_scheduler()


app = FastAPI(title="OutdoorPath", version=APP_VERSION, lifespan=lifespan)
static_dir = Path(__file__).parent / "static"
app.mount("/static", StaticFiles(directory=str(static_dir)), name="static")
templates.env.globals["app_version"] = APP_VERSION

register_web_routes(app)
register_partial_routes(app)


def _wants_json(request: Request) -> bool:
    accept = (request.headers.get("accept") or "").lower()
    return request.url.path.startswith("/api/") or (
        "application/json" in accept and "text/html" not in accept
    )


def _render_error(request: Request, status_code: int, message: str | None):
    context = {
        "status_code": status_code,
        "error_message": message or "Something went wrong.",
    }
    return templates.TemplateResponse(
        request, "error.html", context, status_code=status_code
    )


@app.exception_handler(OutdoorPathError)
async def domain_error_handler(request: Request, exc: OutdoorPathError):
    """Map domain errors onto status codes, pages, or JSON bodies."""
    if isinstance(exc, DataSourceError):
        logger.error(
            "Data source failure while handling %s %s: %s",
            request.method,
            request.url.path,
            exc.__cause__ or exc,
        )
    if _wants_json(request):
        return JSONResponse({"detail": exc.message}, status_code=exc.status_code)
    if isinstance(exc, NotFoundError):
        return templates.TemplateResponse(
            request,
            "not_found.html",
            {"is_event": isinstance(exc, EventNotFoundError)},
            status_code=404,
        )
    return _render_error(request, exc.status_code, exc.message)


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    raw = str(exc.orig) if getattr(exc, "orig", None) else str(exc)
    logger.error(
        "Database error on %s %s: %s", request.method, request.url.path, raw
    )
    detail = DataSourceError.default_message
    if _wants_json(request):
        return JSONResponse({"detail": detail}, status_code=503)
    return _render_error(request, 503, detail)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Render HTTP errors as friendly pages unless JSON was requested."""
    if _wants_json(request):
        return JSONResponse({"detail": exc.detail}, status_code=exc.status_code)
    detail = exc.detail if isinstance(exc.detail, str) else "Something went wrong."
    return _render_error(request, exc.status_code, detail)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    if _wants_json(request):
        return JSONResponse({"detail": exc.errors()}, status_code=422)
    return _render_error(
        request,
        422,
        "Some of the fields were invalid. Please double-check and try again.",
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Gracefully handle unexpected errors."""
    logger.exception(
        "Unhandled error while processing %s %s", request.method, request.url.path
    )
    if _wants_json(request):
        return JSONResponse({"detail": "Internal server error"}, status_code=500)
    return _render_error(
        request,
        500,
        "We hit a snag while processing that request. Please try again.",
    )


class EventCreatePayload(BaseModel):
    title: str | None = None
    description: str | None = None
    category: str | None = None
    event_date: str | None = Field(None, description="ISO date (YYYY-MM-DD)")
    start_time: str | None = Field(None, description="24h time (HH:MM)")
    end_time: str | None = Field(None, description="24h time (HH:MM), after start_time")
    location_name: str | None = None
    location_address: str | None = None
    location_lat: float | None = None
    location_lng: float | None = None
    elevation: int | None = None
    max_capacity: int | None = None
    difficulty: str | None = None
    visibility: str | None = None
    pricing_type: str | None = None
    price: Decimal | None = None
    hero_image_url: str | None = None
    packing_list_notes: str | None = None


class EventUpdatePayload(EventCreatePayload):
    """Only the fields present in the request body are changed."""


class RsvpPayload(BaseModel):
    status: str = Field(..., description="going, maybe, interested or waitlist")


def _serialize_profile(profile: Profile | None):
    if profile is None:
        return None
    return {
        "id": profile.id,
        "full_name": profile.full_name,
        "avatar_url": profile.avatar_url,
    }


def _serialize_event(event: Event, *, counts: dict[str, int] | None = None):
    payload = {
        "id": event.id,
        "title": event.title,
        "description": event.description,
        "category": event.category.value,
        "difficulty": event.difficulty.value,
        "status": event.status.value,
        "event_date": event.event_date.isoformat(),
        "start_time": event.start_time.strftime("%H:%M"),
        "end_time": event.end_time.strftime("%H:%M"),
        "location": {
            "name": event.location_name,
            "address": event.location_address,
            "lat": event.location_lat,
            "lng": event.location_lng,
        },
        "elevation": event.elevation,
        "max_capacity": event.max_capacity,
        "current_capacity": event.current_capacity,
        "spots_left": event.spots_left,
        "pricing_type": event.pricing_type.value,
        "price": float(event.price) if event.price is not None else None,
        "visibility": event.visibility.value,
        "hero_image_url": event.hero_image_url,
        "packing_list_notes": event.packing_list_notes,
        "organizer": _serialize_profile(event.organizer),
        "created_at": event.created_at.isoformat(),
        "updated_at": event.updated_at.isoformat(),
        "links": {"html": f"/events/{event.id}"},
    }
    if counts is not None:
        payload["attendee_counts"] = counts
    return payload


def _serialize_attendee(attendee: Attendee, *, include_event: bool = False):
    payload = {
        "id": attendee.id,
        "event_id": attendee.event_id,
        "user": _serialize_profile(attendee.user),
        "status": attendee.status.value,
        "responded_at": attendee.responded_at.isoformat(),
        "offer_expires_at": attendee.offer_expires_at.isoformat()
        if attendee.offer_expires_at
        else None,
    }
    if include_event:
        payload["event"] = _serialize_event(attendee.event)
    return payload


def _serialize_notification(notification: Notification):
    return {
        "id": notification.id,
        "event_id": notification.event_id,
        "kind": notification.kind.value,
        "content": notification.content,
        "created_at": notification.created_at.isoformat(),
        "read_at": notification.read_at.isoformat() if notification.read_at else None,
    }


def _parse_attendee_status(raw: str) -> AttendeeStatus:
    try:
        return AttendeeStatus((raw or "").strip().lower())
    except ValueError as exc:
        choices = ", ".join(member.value for member in AttendeeStatus)
        raise ValidationError(f"Invalid RSVP status. Choose one of: {choices}") from exc


@app.get("/api/v1/events")
def api_list_events(
    q: str | None = Query(None),
    category: str | None = Query(None),
    difficulty: str | None = Query(None),
    status: str | None = Query(None),
    organizer_id: str | None = Query(None),
    db: Session = Depends(get_db),
):
    filters = EventFilters(
        category=parse_choice(EventCategory, category, field="category"),
        difficulty=parse_choice(Difficulty, difficulty, field="difficulty"),
        status=parse_choice(EventStatus, status, field="status"),
        search=q,
        organizer_id=organizer_id,
    )
    events = fetch_events(db, filters)
    return {"events": [_serialize_event(e) for e in events], "count": len(events)}


@app.post("/api/v1/events", status_code=201)
def api_create_event(
    payload: EventCreatePayload, request: Request, db: Session = Depends(get_db)
):
    organizer = require_profile(request, db)
    fields = validate_event_fields(payload.model_dump())
    event = create_event(db, organizer=organizer, fields=fields)
    return {"event": _serialize_event(event)}


@app.get("/api/v1/events/{event_id}")
def api_get_event(event_id: str, request: Request, db: Session = Depends(get_db)):
    event = visible_event(db, event_id, current_profile(request, db))
    counts = fetch_attendee_counts_by_status(db, event.id)
    return {"event": _serialize_event(event, counts=counts)}


@app.patch("/api/v1/events/{event_id}")
def api_update_event(
    event_id: str,
    payload: EventUpdatePayload,
    request: Request,
    db: Session = Depends(get_db),
):
    actor = require_profile(request, db)
    event = visible_event(db, event_id, actor)
    update_event(db, event, actor=actor, changes=payload.model_dump(exclude_unset=True))
    return {"event": _serialize_event(event)}


@app.delete("/api/v1/events/{event_id}", status_code=204)
def api_delete_event(event_id: str, request: Request, db: Session = Depends(get_db)):
    actor = require_profile(request, db)
    event = visible_event(db, event_id, actor)
    delete_event(db, event, actor=actor)
    return Response(status_code=204)


@app.post("/api/v1/events/{event_id}/cancel")
def api_cancel_event(event_id: str, request: Request, db: Session = Depends(get_db)):
    actor = require_profile(request, db)
    event = visible_event(db, event_id, actor)
    cancel_event(db, event, actor=actor)
    return {"event": _serialize_event(event)}


@app.get("/api/v1/events/{event_id}/attendees")
def api_list_attendees(event_id: str, request: Request, db: Session = Depends(get_db)):
    event = visible_event(db, event_id, current_profile(request, db))
    attendees = fetch_event_attendees(db, event.id)
    return {"attendees": [_serialize_attendee(a) for a in attendees]}


@app.get("/api/v1/events/{event_id}/attendees/counts")
def api_attendee_counts(event_id: str, request: Request, db: Session = Depends(get_db)):
    event = visible_event(db, event_id, current_profile(request, db))
    return {"counts": fetch_attendee_counts_by_status(db, event.id)}


@app.get("/api/v1/events/{event_id}/rsvp")
def api_get_own_rsvp(event_id: str, request: Request, db: Session = Depends(get_db)):
    user = require_profile(request, db)
    event = visible_event(db, event_id, user)
    rsvp = fetch_user_rsvp(db, event.id, user.id)
    if rsvp is None:
        raise NotFoundError("RSVP not found.")
    return {
        "rsvp": _serialize_attendee(rsvp),
        "waitlist_position": waitlist_position(db, event, user),
    }


@app.put("/api/v1/events/{event_id}/rsvp")
def api_set_own_rsvp(
    event_id: str,
    payload: RsvpPayload,
    request: Request,
    db: Session = Depends(get_db),
):
    user = require_profile(request, db)
    event = visible_event(db, event_id, user)
    rsvp = set_rsvp(db, event, user=user, status=_parse_attendee_status(payload.status))
    return {"rsvp": _serialize_attendee(rsvp), "event": _serialize_event(event)}


@app.delete("/api/v1/events/{event_id}/rsvp", status_code=204)
def api_delete_own_rsvp(event_id: str, request: Request, db: Session = Depends(get_db)):
    user = require_profile(request, db)
    event = visible_event(db, event_id, user)
    if not leave_event(db, event, user=user):
        raise NotFoundError("RSVP not found.")
    return Response(status_code=204)


@app.post("/api/v1/events/{event_id}/waitlist")
def api_join_waitlist(
    event_id: str,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
):
    """Join the waitlist; repeating the call returns the existing entry."""
    user = require_profile(request, db)
    event = visible_event(db, event_id, user)
    attendee, created = join_waitlist(db, event, user)
    response.status_code = 201 if created else 200
    return {
        "rsvp": _serialize_attendee(attendee),
        "created": created,
        "waitlist_position": waitlist_position(db, event, user),
    }


@app.post("/api/v1/events/{event_id}/waitlist/claim")
def api_claim_waitlist_offer(
    event_id: str, request: Request, db: Session = Depends(get_db)
):
    user = require_profile(request, db)
    event = visible_event(db, event_id, user)
    attendee = claim_offer(db, event, user)
    return {"rsvp": _serialize_attendee(attendee), "event": _serialize_event(event)}


@app.get("/api/v1/me/events")
def api_my_events(request: Request, db: Session = Depends(get_db)):
    user = require_profile(request, db)
    rsvps = fetch_user_events(db, user.id)
    return {"rsvps": [_serialize_attendee(a, include_event=True) for a in rsvps]}


@app.get("/api/v1/me/organized")
def api_my_organized_events(request: Request, db: Session = Depends(get_db)):
    user = require_profile(request, db)
    events = fetch_events_by_organizer(db, user.id)
    return {"events": [_serialize_event(e) for e in events]}


@app.get("/api/v1/me/notifications")
def api_my_notifications(
    request: Request,
    unread: bool = Query(False),
    db: Session = Depends(get_db),
):
    user = require_profile(request, db)
    notifications = fetch_notifications(db, user.id, unread_only=unread)
    return {
        "notifications": [_serialize_notification(n) for n in notifications],
        "as_of": utcnow().isoformat(),
    }


@app.post("/api/v1/me/notifications/{notification_id}/read")
def api_mark_notification_read(
    notification_id: str, request: Request, db: Session = Depends(get_db)
):
    user = require_profile(request, db)
    notification = db.get(Notification, notification_id)
    if notification is None or notification.user_id != user.id:
        raise NotFoundError("Notification not found.")
    mark_read(db, notification)
    return {"notification": _serialize_notification(notification)}
