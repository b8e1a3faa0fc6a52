"""
Test configuration and fixtures.

Environment overrides must be set BEFORE any calsync module is imported,
settings are cached on first use.
"""

import os
import uuid

import pytest
from cryptography.fernet import Fernet

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["REDIS_URL"] = "redis://localhost:6379/15"
os.environ["CALENDAR_ENCRYPTION_KEY"] = Fernet.generate_key().decode()
os.environ["DEFAULT_TIMEZONE"] = "America/New_York"
os.environ["ZOOM_CLIENT_ID"] = ""

from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from calsync.models import Base  # noqa: E402
from calsync.services.calendar.registry import ProviderRegistry  # noqa: E402
from tests.fakes import FakeCalendarAdapter, FakeMeetingService  # noqa: E402


@pytest.fixture(scope="function")
def engine():
    """Fresh in-memory database per test"""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def company_id():
    return uuid.uuid4()


@pytest.fixture
def google():
    return FakeCalendarAdapter("google_calendar", native_video_provider="google_meet", default_calendar_id="primary")


@pytest.fixture
def outlook():
    return FakeCalendarAdapter("microsoft_outlook", native_video_provider="microsoft_teams")


@pytest.fixture
def meetings():
    return FakeMeetingService()


@pytest.fixture
def registry(google, outlook, meetings):
    registry = ProviderRegistry(meetings=meetings)
    registry.register(google)
    registry.register(outlook)
    return registry
