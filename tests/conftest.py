"""Pytest fixtures."""

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from civicfeed.core.deps import get_store_client
from civicfeed.core.security import create_access_token
from civicfeed.db.base import Base
from civicfeed.db.session import get_db
from civicfeed.main import app
from civicfeed.models import Notification, Report, ReportComment, UserProfile  # noqa: F401 - register for create_all
from civicfeed.schemas.report import ReportOut
from civicfeed.services.store_client import StoreClient

TEST_DATABASE_URL = "sqlite:///./test.db"

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


def override_get_store_client():
    return StoreClient(TestingSessionLocal)


@pytest.fixture(scope="session")
def setup_db():
    """Create tables once for test session."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db(setup_db):
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def store(setup_db):
    return StoreClient(TestingSessionLocal)


@pytest.fixture
def client(setup_db):
    """Test client with overridden DB."""
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_store_client] = override_get_store_client
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def make_profile(db, role="user", name=None) -> UserProfile:
    """Insert a user profile with a fresh id."""
    profile = UserProfile(id=str(uuid.uuid4()), full_name=name or f"{role}-{uuid.uuid4().hex[:6]}", role=role)
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


def auth_header(user_id: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


_BASE_TIME = datetime(2026, 1, 1, tzinfo=timezone.utc)


def report_row(report_id: str, status="approved", owner_id="owner-1", minutes=0, lat=None, lng=None, **extra) -> dict:
    """Raw reports row as it appears in change events."""
    row = {
        "id": report_id,
        "owner_id": owner_id,
        "title": extra.pop("title", f"Report {report_id}"),
        "description": extra.pop("description", ""),
        "latitude": lat,
        "longitude": lng,
        "address": None,
        "image_url": None,
        "status": status,
        "category": None,
        "priority": None,
        "votes": 0,
        "comments_count": 0,
        "is_anonymous": False,
        "created_at": _BASE_TIME + timedelta(minutes=minutes),
        "updated_at": _BASE_TIME + timedelta(minutes=minutes),
    }
    row.update(extra)
    return row


def make_report(report_id: str, **kwargs) -> ReportOut:
    return ReportOut.model_validate(report_row(report_id, **kwargs))
