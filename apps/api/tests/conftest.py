"""Pytest configuration and fixtures."""

import os

# Settings are cached on first use; point them at test values before any
# compliance_api import.
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("ALERT_WEBHOOK_URL", "http://alerts.test/hook")
os.environ.setdefault("ENVIRONMENT", "test")

import itertools  # noqa: E402
from datetime import datetime  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from compliance_api import models  # noqa: E402,F401
from compliance_api.alerts.service import AlertService  # noqa: E402
from compliance_api.db.base import Base  # noqa: E402
from compliance_api.events.service import IngestService  # noqa: E402
from compliance_api.ingestion.normalizer import normalize_event  # noqa: E402

# Use test database URL from environment or default to SQLite in-memory
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")

NOW = datetime(2026, 3, 10, 12, 0, 0)

_message_ids = itertools.count(1)


@pytest.fixture(scope="function")
def db():
    """Create a test database session."""
    if TEST_DATABASE_URL.startswith("sqlite"):
        engine = create_engine(
            TEST_DATABASE_URL,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(TEST_DATABASE_URL)

    Base.metadata.create_all(engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)


class FakeQueue:
    """Stands in for the Celery client; records enqueued tasks."""

    def __init__(self, fail: bool = False):
        self.calls = []
        self.fail = fail

    def __call__(self, task_name, *args, **kwargs):
        if self.fail:
            raise ConnectionError("Broker unavailable")
        self.calls.append((task_name, args))
        return f"task-{len(self.calls)}"

    def tasks(self, suffix: str) -> list:
        return [args for name, args in self.calls if name.endswith(suffix)]


@pytest.fixture
def queue() -> FakeQueue:
    return FakeQueue()


@pytest.fixture
def ingest_service(db: Session, queue: FakeQueue) -> IngestService:
    return IngestService(db, alert_service=AlertService(enqueue=queue), enqueue=queue)


def make_event(now: datetime = NOW, **overrides):
    """Canonical event with sensible defaults."""
    payload = {
        "channel_id": "chan-1",
        "source_message_id": f"msg-{next(_message_ids)}",
        "project_id": "proj-a",
        "user_id": "u-1",
        "user_name": "Sam",
        "event_type": "decision",
        "regulation": "GDPR",
        "risk_level": "Low",
        "message_text": "Agreed to keep logs for 90 days",
        "confidence_score": 0.9,
    }
    payload.update(overrides)
    return normalize_event(payload, now=now)


@pytest.fixture
def store_event(ingest_service: IngestService):
    """Ingest an event, optionally overriding its status afterwards."""

    def _store(status: str = None, now: datetime = NOW, **overrides):
        result = ingest_service.ingest(make_event(now=now, **overrides), now=now)
        if status is not None:
            ingest_service.update_status(result.event_id, status, now=now)
        return ingest_service.store.get(result.event_id)

    return _store
