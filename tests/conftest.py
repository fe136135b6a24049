"""Shared test fixtures."""

from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest
from fakes import SCOPE, FakeProvider
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel, create_engine
from sqlmodel.pool import StaticPool

from tutormeet.calendar.provider import get_provider
from tutormeet.core.config import settings
from tutormeet.core.database import get_session
from tutormeet.main import app
from tutormeet.models import Tutor


@pytest.fixture(name="engine")
def engine_fixture():
    """Create an in-memory SQLite database for testing."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="session")
def session_fixture(engine):
    """Create a new database session for each test."""
    with Session(engine) as session:
        yield session


@pytest.fixture(name="provider")
def provider_fixture() -> FakeProvider:
    """In-memory Google provider that counts calls."""
    return FakeProvider()


@pytest.fixture(autouse=True)
def fast_lease(monkeypatch):
    """Keep lease polling short so contention tests run quickly."""
    monkeypatch.setattr(settings, "link_lock_poll_seconds", 0.01)
    monkeypatch.setattr(settings, "link_lock_wait_seconds", 5.0)


@pytest.fixture(name="client")
def client_fixture(session: Session, provider: FakeProvider):
    """Create a test client with the test database session and fake provider."""

    def get_session_override():
        return session

    app.dependency_overrides[get_session] = get_session_override
    app.dependency_overrides[get_provider] = lambda: provider
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture(name="tutor")
def tutor_fixture(session: Session) -> Tutor:
    """A tutor who has not connected Google."""
    tutor = Tutor(id=uuid4(), display_name="Ada Tutor")
    session.add(tutor)
    session.commit()
    session.refresh(tutor)
    return tutor


@pytest.fixture(name="connected_tutor")
def connected_tutor_fixture(session: Session) -> Tutor:
    """A tutor with a stored Google refresh token."""
    tutor = Tutor(
        id=uuid4(),
        display_name="Grace Tutor",
        oauth_refresh_token="refresh-stored",
        oauth_scopes=SCOPE,
        oauth_expires_at=datetime.now(UTC) + timedelta(minutes=30),
        oauth_connected_at=datetime.now(UTC) - timedelta(days=3),
    )
    session.add(tutor)
    session.commit()
    session.refresh(tutor)
    return tutor


@pytest.fixture(name="future_time")
def future_time_fixture() -> datetime:
    return datetime.now(UTC) + timedelta(days=1)
