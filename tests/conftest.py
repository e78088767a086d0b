"""Pytest configuration and shared fixtures.

Every test gets its own in-memory SQLite database. The workflow service
commits as part of its unit of work, so isolation comes from a fresh
schema per test rather than from rolling back an outer transaction.
"""

from unittest.mock import MagicMock

import pytest
from sqlalchemy.orm import sessionmaker

from ums.core.config import Settings
from ums.core.organizations import get_organization_cache
from ums.db.base import Base
from ums.db.session import build_engine
import ums.db.models  # noqa: F401  (registers the mappers on Base.metadata)


@pytest.fixture
def engine():
    """Fresh in-memory database with the full schema."""
    engine = build_engine("sqlite://")
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db_session(engine):
    """Session bound to the per-test database."""
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = factory()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def _reset_organization_cache():
    get_organization_cache.cache_clear()
    yield
    get_organization_cache.cache_clear()


@pytest.fixture
def settings():
    """Settings with SMTP disabled and a default excuse window."""
    return Settings(_env_file=None, smtp_host=None, default_excuse_window_hours=None)


@pytest.fixture
def dispatcher():
    """Notification dispatcher that reports every email as delivered."""
    mock = MagicMock()
    mock.send_approval_email.return_value = True
    mock.send_rejection_email.return_value = True
    return mock


class AuthState:
    """Holds the actor the API test client authenticates as."""

    def __init__(self):
        self.actor = None

    def act_as(self, actor):
        self.actor = actor


@pytest.fixture
def auth():
    return AuthState()


@pytest.fixture
def client(db_session, dispatcher, auth):
    """FastAPI test client wired to the per-test database."""
    from fastapi.testclient import TestClient

    from ums.api.deps import get_current_actor, get_db, get_notification_dispatcher
    from ums.api.main import app

    def _get_db():
        yield db_session

    def _get_actor():
        return auth.actor

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_current_actor] = _get_actor
    app.dependency_overrides[get_notification_dispatcher] = lambda: dispatcher

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
