"""Pytest configuration and shared fixtures."""
from __future__ import annotations

import os
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Generator

# Settings are read at import time; provide defaults before importing the app.
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")
os.environ.setdefault("CELERY_BROKER_URL", "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from dashpilot.models.base import Base
from dashpilot.models.webhook import Webhook
from dashpilot.schemas.events import AlertData, DomainEvent, SiteRef

# In-memory SQLite by default; point at PostgreSQL to match production
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite+pysqlite:///:memory:")


@pytest.fixture
def db_engine():
    """Create a fresh database schema for each test."""
    if TEST_DATABASE_URL.startswith("sqlite"):
        engine = create_engine(
            TEST_DATABASE_URL,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(TEST_DATABASE_URL, future=True, pool_pre_ping=True)

    Base.metadata.create_all(engine)

    yield engine

    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db_session(db_engine) -> Generator[Session, None, None]:
    """Provide a database session bound to the test engine."""
    SessionLocal = sessionmaker(
        bind=db_engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )
    session = SessionLocal()

    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def session_scope_factory(db_session: Session) -> Callable:
    """Stand-in for dashpilot.core.db.session_scope that reuses the test session."""

    @contextmanager
    def _session_scope():
        try:
            yield db_session
            db_session.commit()
        except Exception:
            db_session.rollback()
            raise

    return _session_scope


@pytest.fixture
def isolated_session_scope(db_engine) -> Callable:
    """Transaction scope on a session of its own, like dashpilot.core.db.session_scope."""
    SessionLocal = sessionmaker(bind=db_engine, autoflush=False, autocommit=False, expire_on_commit=False)

    @contextmanager
    def _session_scope():
        session = SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return _session_scope


@pytest.fixture
def make_webhook(db_session: Session) -> Callable[..., Webhook]:
    """Factory persisting Webhook rows with sensible defaults."""

    def _make_webhook(**overrides) -> Webhook:
        values = {
            "name": "Ops channel",
            "url": "https://example.com/hooks/alerts",
            "events": ["alert_created"],
            "active": True,
            "secret": None,
            "max_retries": 3,
        }
        values.update(overrides)
        webhook = Webhook(**values)
        db_session.add(webhook)
        db_session.commit()
        db_session.refresh(webhook)
        return webhook

    return _make_webhook


@pytest.fixture
def sample_alert() -> AlertData:
    """A fully populated critical alert."""
    return AlertData(
        id=42,
        title="Site down",
        type="uptime",
        severity="critical",
        status="open",
        message="Site is down",
        is_resolved=False,
        created_at=datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc),
        site=SiteRef(id=7, name="Example Shop", url="https://shop.example.com"),
    )


@pytest.fixture
def alert_created_event(sample_alert: AlertData) -> DomainEvent:
    """alert_created event carrying the sample alert."""
    return DomainEvent(
        event_type="alert_created",
        occurred_at=datetime(2024, 5, 1, 12, 30, 5, tzinfo=timezone.utc),
        entity=sample_alert,
    )
