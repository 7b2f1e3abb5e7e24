"""HTMX partial route handlers for OutdoorPath."""

from __future__ import annotations

from fastapi import Depends, Request
from fastapi.responses import HTMLResponse
from sqlalchemy.orm import Session

from .database import get_db
from .filtering import FilterCriteria
from .web import browse_context, templates


def event_results(
    request: Request,
    q: str | None = None,
    category: str | None = None,
    difficulty: str | None = None,
    status: str | None = None,
    db: Session = Depends(get_db),
):
    """Render the browse results list for the current filter selection.

    The filter panel swaps this fragment in on every change, so the whole
    derivation is re-run against a fresh fetch of the public events.
    """
    criteria = FilterCriteria.from_params(
        search=q, category=category, difficulty=difficulty, status=status
    )
    return templates.TemplateResponse(
        request, "partials/event_results.html", browse_context(db, criteria)
    )


def register_partial_routes(app):
    """Register all partial routes on the FastAPI app."""
    app.get("/partials/events/results", response_class=HTMLResponse)(event_results)
