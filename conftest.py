"""
Root conftest.py for pytest configuration and shared fixtures.
"""
import os
from datetime import UTC, datetime
from typing import Callable, Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

# Set test environment BEFORE importing any app code
os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"

# The background sweeper would race the tests for the SQLite file
os.environ["SLA_SWEEP_ENABLED"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"

# Set JWT secret for auth tests (32+ chars required)
os.environ["JWT_SECRET_KEY"] = "test_secret_key_for_testing_purposes_only_do_not_use_in_production"

FIXED_NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)


@pytest.fixture(scope="function")
def db_engine(tmp_path):
    """
    A fresh SQLite database file per test.

    File-backed rather than in-memory so the notifier's own sessions see rows
    committed by the code under test.
    """
    from services.sourcing.app.db import Base
    # Import all models so they're registered with Base.metadata
    from services.sourcing.app.models import (  # noqa: F401
        action_log,
        approvals,
        notifications,
        organizations,
        policies,
        rfqs,
    )

    engine = create_engine(
        f"sqlite:///{tmp_path / 'sourcing.db'}",
        connect_args={"check_same_thread": False},
        echo=False,
    )
    Base.metadata.create_all(engine)

    yield engine

    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine) -> sessionmaker[Session]:
    return sessionmaker(bind=db_engine, expire_on_commit=False)


@pytest.fixture(scope="function")
def db_session(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def notifier(session_factory):
    from services.sourcing.app.services.notifications import Notifier

    return Notifier(session_factory)


@pytest.fixture
def now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def clock(now) -> Callable[[], datetime]:
    return lambda: now


@pytest.fixture(scope="function")
def client(db_engine, session_factory, db_session: Session, clock) -> Generator[TestClient, None, None]:
    """
    Create a FastAPI test client bound to the per-test database.
    """
    # Must import here to ensure test environment is set
    import services.sourcing.app.db as db_module
    from services.sourcing.app.api.deps import get_clock, get_db_session
    from services.sourcing.app.main import app

    # Override the global engine and sessionmaker (used by the notifier and /health)
    original_engine = db_module._engine
    original_sessionmaker = db_module._SessionLocal

    db_module._engine = db_engine
    db_module._SessionLocal = session_factory

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db_session] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock

    with TestClient(app) as test_client:
        yield test_client

    # Restore original state
    app.dependency_overrides.clear()
    db_module._engine = original_engine
    db_module._SessionLocal = original_sessionmaker


@pytest.fixture
def auth_headers() -> Callable:
    """Build bearer headers for a user (the token's ``sub`` is the user id)."""
    from services.sourcing.app.core.auth import create_access_token

    def _headers(user) -> dict[str, str]:
        token = create_access_token({"sub": str(user.id)})
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture(autouse=True)
def reset_environment():
    """Reset environment variables after each test."""
    original_env = os.environ.copy()
    yield
    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def mock_slack_client(mocker):
    """SlackClient double for tests that check the SLA alert mirror."""
    from services.sourcing.app.services.slack_client import SlackClient

    mock = mocker.create_autospec(SlackClient, instance=True)
    mock.post_text.return_value = {"ok": True}
    return mock
