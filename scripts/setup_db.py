"""
scripts/setup_db.py — Initialize the database schema.

Run once before starting the application for the first time:
    python scripts/setup_db.py

This creates all tables defined in app/db/models.py directly via SQLAlchemy
metadata. The connectivity check is retried so the script can run while the
database container is still starting.
"""

import sys
import os

# Ensure the project root is on the path so we can import `app`
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import logging

from sqlalchemy import inspect, text
from sqlalchemy.exc import OperationalError
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from app.db.session import engine
from app.db.models import Base
from app.config import settings

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("setup_db")


@retry(
    retry=retry_if_exception_type(OperationalError),
    stop=stop_after_attempt(5),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)
def _wait_for_db() -> None:
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))


def setup_db() -> None:
    logger.info("Connecting to database %s...", settings.database_url[:40])
    _wait_for_db()
    logger.info("Connection successful.")

    logger.info("Creating tables if they don't exist...")
    Base.metadata.create_all(bind=engine)

    # Report which tables were found
    inspector = inspect(engine)
    tables = inspector.get_table_names()
    logger.info("Tables in database: %s", tables)
    logger.info("Database setup complete.")


if __name__ == "__main__":
    setup_db()
