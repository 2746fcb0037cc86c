"""
Shared fixtures: in-memory SQLite per test, settings, and small factories.
"""
import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from leadmarket.core.auth_dependency import get_app_settings, get_db, get_outbox_runner
from leadmarket.core.config import Settings
from leadmarket.db.base import Base
from leadmarket.db import models  # noqa: F401 - registers all tables
from leadmarket.main import app
from leadmarket.services.email_service import EmailClient

from factories import make_user


# Setup in-memory SQLite database for testing
TEST_DATABASE_URL = "sqlite:///:memory:"
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture(scope="function")
def db():
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=test_engine)
    db = TestSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def settings():
    return Settings(
        database_url=TEST_DATABASE_URL,
        secret_key="test-secret-key",
        cron_secret="cron-secret",
        frontend_url="https://bueeze.test",
        smtp2go_api_key="test-api-key",
        smtp2go_api_url="https://mail.test/v3/email/send",
        payrexx_webhook_secret="payrexx-test-secret",
    )


@pytest.fixture
def owner(db):
    return make_user(db, "owner@example.ch", full_name="Anna Muster")


@pytest.fixture
def email_requests():
    """Requests seen by the mock email provider."""
    return []


@pytest.fixture
def email_client(settings, email_requests):
    """EmailClient backed by httpx.MockTransport that always accepts."""
    def handler(request):
        email_requests.append(request)
        return httpx.Response(200, json={"data": {"succeeded": 1}})

    client = EmailClient(
        settings,
        http_client=httpx.Client(transport=httpx.MockTransport(handler)),
        sleep=lambda seconds: None,
    )
    yield client
    client.close()


@pytest.fixture
def session_factory():
    """A second, independent session source on the same test database."""
    return TestSessionLocal


@pytest.fixture
def outbox_runs():
    return []


@pytest.fixture
def client(db, settings, outbox_runs):
    """TestClient wired to the test database and settings."""
    def override_get_db():
        session = TestSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_app_settings] = lambda: settings
    app.dependency_overrides[get_outbox_runner] = lambda: (lambda: outbox_runs.append(1))
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
