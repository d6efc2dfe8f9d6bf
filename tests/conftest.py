"""Pytest configuration and fixtures"""

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
BACKEND_DIR = ROOT / "backend"
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

# Settings are read at import time, so they have to be in place first.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTO_CREATE_SCHEMA"] = "false"
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-with-at-least-32-characters")
os.environ.pop("PROGRAM_LANGUAGES", None)

import uuid
from datetime import date

import pytest
from fastapi.testclient import TestClient

from auth import create_access_token
from database import Base, SessionLocal, engine
from models import Event, User, UserRole
from rate_limit import FixedWindowRateLimiter
from routers.registrations import get_registration_rate_limiter
from server import app


@pytest.fixture()
def db():
    """Fresh in-memory schema per test"""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def rate_limiter():
    return FixedWindowRateLimiter(max_requests=5, window_seconds=3600)


@pytest.fixture()
def client(db, rate_limiter):
    app.dependency_overrides[get_registration_rate_limiter] = lambda: rate_limiter
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _make_user(db, email, role, hashed_password="not-a-real-hash"):
    user = User(email=email, name=email.split("@")[0], hashed_password=hashed_password, role=role)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture()
def admin(db):
    return _make_user(db, "admin@example.com", UserRole.ADMIN)


@pytest.fixture()
def organizer(db):
    return _make_user(db, "organizer@example.com", UserRole.ORGANIZER)


@pytest.fixture()
def other_organizer(db):
    return _make_user(db, "someone.else@example.com", UserRole.ORGANIZER)


@pytest.fixture()
def attendee(db):
    return _make_user(db, "attendee@example.com", UserRole.USER)


def auth_headers(user):
    token = create_access_token({"sub": user.id, "role": user.role.value})
    return {"Authorization": f"Bearer {token}"}


def make_event(db, organizer=None, **overrides):
    values = {
        "title": "Forum Panel",
        "slug": f"forum-panel-{uuid.uuid4().hex[:8]}",
        "is_public": True,
        "max_attendees": None,
        "start_date": date(2026, 11, 12),
        "organizer_id": organizer.id if organizer else None,
    }
    values.update(overrides)
    event = Event(**values)
    db.add(event)
    db.commit()
    db.refresh(event)
    return event


@pytest.fixture()
def public_event(db, organizer):
    return make_event(db, organizer, title="Public Forum", slug="public-forum")


@pytest.fixture()
def private_event(db, organizer):
    return make_event(db, organizer, title="Private Board", slug="private-board", is_public=False)
