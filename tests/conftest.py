"""Shared pytest fixtures for OutdoorPath."""

from __future__ import annotations

import sys
from datetime import timedelta
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import scoped_session, sessionmaker
from sqlalchemy.pool import StaticPool

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from outdoorpath import database, storage
from outdoorpath.crud import create_event, create_profile
from outdoorpath.models import Base
from outdoorpath.utils import utcnow
from outdoorpath.validation import validate_event_fields


@pytest.fixture(scope="session", autouse=True)
def configure_in_memory_db():
    """Reuse a single in-memory SQLite database for fast, isolated tests."""

    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    session_factory = scoped_session(
        sessionmaker(
            bind=engine,
            autoflush=False,
            autocommit=False,
            future=True,
            expire_on_commit=False,
        )
    )
    database.engine = engine
    database.SessionLocal = session_factory
    storage.engine = engine
    Base.metadata.create_all(bind=engine)
    yield
    session_factory.remove()


@pytest.fixture(autouse=True)
def clean_database():
    """Reset all tables between tests to guarantee isolation."""

    database.SessionLocal.remove()
    Base.metadata.drop_all(bind=database.engine)
    Base.metadata.create_all(bind=database.engine)
    yield


@pytest.fixture()
def session():
    db = database.SessionLocal()
    try:
        yield db
    finally:
        db.close()


def event_raw(**overrides) -> dict:
    """Return a valid raw event submission, one week out."""
    raw = {
        "title": "Ridge Hike",
        "description": "A steady climb to the ridge with lunch at the top.",
        "category": "hiking",
        "event_date": (utcnow().date() + timedelta(days=7)).isoformat(),
        "start_time": "09:00",
        "end_time": "14:00",
        "location_name": "Bear Creek Trailhead",
        "location_address": "100 Canyon Rd, Boulder, CO",
        "max_capacity": "10",
        "difficulty": "moderate",
    }
    raw.update(overrides)
    return raw


@pytest.fixture()
def make_profile(session):
    def _make(full_name: str = "Alex Rivera", **kwargs):
        profile = create_profile(session, full_name=full_name, **kwargs)
        session.commit()
        return profile

    return _make


@pytest.fixture()
def make_event(session, make_profile):
    def _make(organizer=None, **overrides):
        organizer = organizer or make_profile("Organizer Olsen")
        event = create_event(
            session, organizer=organizer, fields=validate_event_fields(event_raw(**overrides))
        )
        session.commit()
        return event

    return _make


@pytest.fixture()
def raw_event():
    return event_raw
