#!/usr/bin/env python3
"""Bring the webhook tables up to date before starting the API or Celery workers."""
import logging
import sys
import time
from pathlib import Path

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError

from dashpilot.core.config import get_settings

logger = logging.getLogger(__name__)
logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] %(levelname)s - %(message)s",
)

ALEMBIC_INI = Path(__file__).parent.parent / "alembic.ini"


def wait_for_db(database_url: str, max_retries: int = 30, retry_interval: int = 2) -> bool:
    """Wait for database to become available.

    Args:
        database_url: SQLAlchemy database URL
        max_retries: Maximum number of connection attempts
        retry_interval: Seconds to wait between retries

    Returns:
        True if database is available, False otherwise
    """
    logger.info("Waiting for database to become available...")
    engine = create_engine(database_url, pool_pre_ping=True)

    try:
        for attempt in range(1, max_retries + 1):
            try:
                with engine.connect() as conn:
                    conn.execute(text("SELECT 1"))
                logger.info("Database connection established")
                return True
            except OperationalError as e:
                if attempt == max_retries:
                    logger.error(f"Failed to connect to database after {max_retries} attempts: {e}")
                    return False
                logger.warning(f"Attempt {attempt}/{max_retries} failed, retrying in {retry_interval}s...")
                time.sleep(retry_interval)
    finally:
        engine.dispose()
    return False


def current_revision(database_url: str) -> str | None:
    """Return the revision the database is at, or None if never migrated."""
    engine = create_engine(database_url, pool_pre_ping=True)
    try:
        with engine.connect() as conn:
            return MigrationContext.configure(conn).get_current_revision()
    finally:
        engine.dispose()


def run_migrations() -> bool:
    """Run Alembic migrations to head.

    Returns:
        True if migrations succeeded, False otherwise
    """
    if not ALEMBIC_INI.exists():
        logger.error(f"Alembic config not found at {ALEMBIC_INI}")
        return False

    settings = get_settings()
    alembic_cfg = Config(str(ALEMBIC_INI))
    alembic_cfg.set_main_option("sqlalchemy.url", settings.database_url)

    try:
        logger.info(f"Current database revision: {current_revision(settings.database_url)}")
    except Exception as e:
        logger.warning(f"Could not check current revision: {e}")

    try:
        command.upgrade(alembic_cfg, "head")
    except Exception as e:
        logger.error(f"Migration failed: {e}", exc_info=True)
        return False

    logger.info("Migrations completed successfully")
    return True


def main() -> int:
    """Main entry point for migration script.

    Returns:
        Exit code (0 = success, 1 = failure)
    """
    settings = get_settings()

    if not wait_for_db(settings.database_url):
        logger.error("Database is not available. Exiting.")
        return 1

    if not run_migrations():
        logger.error("Migrations failed. Exiting.")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
