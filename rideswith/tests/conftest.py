"""Shared fixtures for API tests.

Provides:
- db: a session on a fresh in-memory SQLite database
- client: a TestClient wired to the same database
- factories for users, communities, chapters and rides
"""

import os
from datetime import datetime, timedelta

import pytest

# Set env vars before any rideswith imports
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("BRAND_DEV_API_KEY", "")
os.environ.setdefault("RESEND_API_KEY", "")
os.environ.setdefault("ENABLE_SCHEDULER", "false")

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from rideswith.database import Base, get_db
from rideswith.limiter import limiter
from rideswith.main import app
from rideswith.models import Brand, Chapter, ChapterMember, Organizer, OrganizerMember, Ride, User
from rideswith.security import SESSION_COOKIE, create_access_token

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(autouse=True)
def setup_database():
    Base.metadata.create_all(bind=engine)
    limiter.reset()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def login(client):
    """Sign the test client in as ``user``."""
    def _login(user):
        client.cookies.set(SESSION_COOKIE, create_access_token(data={"sub": str(user.id)}))
        return client

    return _login


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(name=None, email=None, **kwargs):
        counter["n"] += 1
        user = User(
            email=email or f"rider{counter['n']}@example.com",
            name=name or f"Rider {counter['n']}",
            **kwargs,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def make_brand(db):
    def _make(owner, name="Rapha", slug=None, **kwargs):
        brand = Brand(name=name, slug=slug or name.lower().replace(" ", "-"), created_by_id=owner.id, **kwargs)
        db.add(brand)
        db.commit()
        db.refresh(brand)
        return brand

    return _make


@pytest.fixture
def make_chapter(db):
    def _make(brand, city="London", members=(), **kwargs):
        """``members`` is a sequence of (user, role) pairs."""
        chapter = Chapter(
            brand_id=brand.id,
            name=f"{brand.name} {city}",
            slug=city.lower().replace(" ", "-"),
            city=city,
            member_count=len(members),
            **kwargs,
        )
        for user, role in members:
            chapter.members.append(ChapterMember(user_id=user.id, role=role))
        db.add(chapter)
        db.commit()
        db.refresh(chapter)
        return chapter

    return _make


@pytest.fixture
def make_organizer(db):
    def _make(owner, name=None):
        organizer = Organizer(name=name or owner.name, slug=f"org-{owner.id[:8]}")
        organizer.members.append(OrganizerMember(user_id=owner.id, role="OWNER"))
        db.add(organizer)
        db.commit()
        db.refresh(organizer)
        return organizer

    return _make


@pytest.fixture
def make_ride(db):
    def _make(organizer, days_ahead=3, **kwargs):
        values = {
            "title": "Saturday Coffee Ride",
            "date": datetime.utcnow() + timedelta(days=days_ahead),
            "location_name": "Regent's Park",
            "location_address": "Outer Circle, London",
            "latitude": 51.5313,
            "longitude": -0.1570,
            "pace": "MODERATE",
            "organizer_id": organizer.id,
        }
        values.update(kwargs)
        ride = Ride(**values)
        db.add(ride)
        db.commit()
        db.refresh(ride)
        return ride

    return _make
