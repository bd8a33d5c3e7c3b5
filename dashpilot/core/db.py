"""Engine and session helpers shared by the API, Celery workers and scripts."""
from contextlib import contextmanager
from typing import Any, Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .config import get_settings


def build_engine(database_url: str) -> Engine:
    """Create an engine for PostgreSQL in production or SQLite for local runs."""
    options: dict[str, Any] = {"future": True}
    if database_url.startswith("sqlite"):
        # Celery threads and the API share one SQLite file
        options["connect_args"] = {"check_same_thread": False}
    else:
        options["pool_pre_ping"] = True
    return create_engine(database_url, **options)


engine = build_engine(get_settings().database_url)

# Attempt rows and webhooks are read after commit by the worker
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, class_=Session)


def get_session() -> Generator[Session, None, None]:
    """FastAPI dependency yielding a request-scoped session."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """Commit-or-rollback scope used by the delivery task for each attempt."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
