"""Shared pytest fixtures."""

import pytest

from mailer_service.logging.context import clear_log_context
from mailer_service.notifications import build_default_dispatcher
from mailer_service.persistence.database import close_database, init_database
from mailer_service.tracking import TrackingService

from tests.helpers import FakeClock, FakeMailer


@pytest.fixture(autouse=True)
def clean_log_context():
    clear_log_context()
    yield
    clear_log_context()


@pytest.fixture
def mock_env_vars(monkeypatch):
    """Required SMTP settings; optional variables cleared so the host env cannot leak in."""
    monkeypatch.setenv("SMTP_HOST", "smtp.test.com")
    monkeypatch.setenv("SMTP_PORT", "587")
    monkeypatch.setenv("SMTP_USER", "user@test.com")
    monkeypatch.setenv("SMTP_PASS", "testpass123")
    for name in ("SMTP_FROM", "SMTP_SENDER_NAME", "LOG_LEVEL", "DATABASE_URL"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def database():
    """Fresh in-memory database per test."""
    init_database("sqlite:///:memory:")
    yield
    close_database()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def tracking(database, clock):
    return TrackingService(clock=clock, max_retries=3)


@pytest.fixture
def mailer():
    return FakeMailer(render=True)


@pytest.fixture
def dispatcher(tracking, mailer):
    return build_default_dispatcher(tracking, mailer)
