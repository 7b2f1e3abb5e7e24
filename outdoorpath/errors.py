"""Domain exceptions raised by the query layer and event actions."""

from __future__ import annotations


class OutdoorPathError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code = 500
    default_message = "Something went wrong."

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class ValidationError(OutdoorPathError):
    """Raised when submitted event or RSVP fields are invalid."""

    status_code = 400
    default_message = "Some of the fields were invalid."


class AuthenticationRequired(OutdoorPathError):
    status_code = 401
    default_message = "You must be signed in to do that."


class PermissionDenied(OutdoorPathError):
    """Raised when the caller is not the organizer of the event."""

    status_code = 403
    default_message = "You are not authorized to change this event."


class NotFoundError(OutdoorPathError):
    status_code = 404
    default_message = "Not found."


class EventNotFoundError(NotFoundError):
    default_message = "Event not found."


class EventFullError(OutdoorPathError):
    """Raised when a going RSVP would exceed the event's capacity."""

    status_code = 409
    default_message = "This event is full. Join the waitlist to be notified of openings."


class EventCancelledError(OutdoorPathError):
    status_code = 409
    default_message = "This event has been cancelled."


class WaitlistUnavailableError(OutdoorPathError):
    status_code = 409
    default_message = "The waitlist is only open while an event is full."


class DataSourceError(OutdoorPathError):
    """Raised when the database fails; details are logged, not shown."""

    status_code = 503
    default_message = "We hit a database issue. Please try again."
