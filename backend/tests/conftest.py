"""
Shared test fixtures for Shipsarthi tests

Provides database setup, service wiring with fake collaborators, and the
API client.
"""
import os

# Settings are read at import time; point them at test values first
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["TRACKING_ENABLED"] = "false"
os.environ["DELHIVERY_API_TOKEN"] = ""
os.environ["LOG_FORMAT"] = "text"
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from shipsarthi.main import app
from shipsarthi.db.base import Base
from shipsarthi.db.session import get_db
from shipsarthi.core.limiter import limiter
from shipsarthi.api.v1.deps import get_reconciler, get_webhook_queue, get_webhook_service
from shipsarthi.services.rate_card_cache import invalidate_rate_card_cache
from shipsarthi.services.tracking_service import TrackingReconciler
from shipsarthi.services.webhook_queue import WebhookQueue
from shipsarthi.services.webhook_service import WebhookService

from tests.factories import reset_sequences
from tests.fakes import FakeCarrier, InMemoryImageStore, RecordingNotifier

# Disable rate limiting for tests
limiter.enabled = False


# Create in-memory SQLite database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def create_tables(engine):
    """Create all tables for testing using SQLAlchemy metadata"""
    import shipsarthi.models  # noqa: F401
    Base.metadata.create_all(bind=engine)


def drop_tables(engine):
    """Drop all tables after testing"""
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def _isolate_module_state():
    reset_sequences()
    invalidate_rate_card_cache()
    yield
    invalidate_rate_card_cache()


@pytest.fixture
def db_session():
    """Create a fresh database session for each test"""
    create_tables(engine)

    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        drop_tables(engine)


@pytest.fixture
def db(db_session):
    """Short alias used by most tests"""
    return db_session


# =============================================================================
# Collaborators
# =============================================================================

@pytest.fixture
def carrier():
    return FakeCarrier()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def image_store():
    return InMemoryImageStore()


@pytest.fixture
def reconciler(db_session, carrier, notifier):
    """Reconciler on the test database with no delay between carrier calls"""
    return TrackingReconciler(carrier, TestingSessionLocal, notifier, request_delay=0)


@pytest.fixture
def webhook_service(db_session, image_store, notifier):
    return WebhookService(TestingSessionLocal, image_store, notifier)


@pytest.fixture
def webhook_queue(webhook_service):
    """Queue without a drain thread; tests call drain() explicitly"""
    return WebhookQueue(webhook_service.process, max_size=100, retry_delay=0, job_timeout=5)


@pytest.fixture
def client(db_session, webhook_service, webhook_queue, reconciler):
    """Create a test client with database and component overrides"""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_webhook_service] = lambda: webhook_service
    app.dependency_overrides[get_webhook_queue] = lambda: webhook_queue
    app.dependency_overrides[get_reconciler] = lambda: reconciler
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
