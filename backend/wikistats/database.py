"""Database engine and connection helpers.

WHAT:
    Provides a lazily created SQLAlchemy engine for the tools database and a
    context manager yielding a connection for one statistics request.

WHY:
    - The counter store is read-only from this package, so a plain
      connection per request is enough (no ORM session, no transactions).
    - Engine creation is deferred until first use so that importing the
      compiler (tests, scripts) never requires DATABASE_URL.

USAGE:
    from wikistats.database import get_connection
    from wikistats.statistics.compiler import compile_statistics

    with get_connection() as conn:
        rows = compile_statistics(conn, request)

REFERENCES:
    - https://docs.sqlalchemy.org/en/20/core/connections.html
    - wikistats/config.py (DATABASE_URL)
"""

import logging
import os
from contextlib import contextmanager
from functools import lru_cache
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Connection, Engine

from .config import get_settings

logger = logging.getLogger(__name__)


# =============================================================================
# ENVIRONMENT CONFIGURATION
# =============================================================================

def get_database_url() -> str:
    """Get DATABASE_URL from settings or environment, loading .env if needed.

    Returns:
        SQLAlchemy connection string of the tools database

    Raises:
        RuntimeError: If DATABASE_URL is not configured
    """
    database_url = get_settings().DATABASE_URL or os.getenv("DATABASE_URL")
    if not database_url:
        # Attempt to load from local .env for developer convenience
        from wikistats.utils.env import load_env_file
        load_env_file()
        database_url = os.getenv("DATABASE_URL")

    if not database_url:
        raise RuntimeError(
            "DATABASE_URL is not set. "
            "Ensure backend/.env is loaded or env var is exported."
        )

    return database_url


# =============================================================================
# ENGINE
# =============================================================================

@lru_cache()
def get_engine() -> Engine:
    """Create (once) the engine for the tools database.

    NOTE: SQLite engines (used in tests/dev) do not support pool_size/max_overflow.
    """
    database_url = get_database_url()

    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False},
        )
    else:
        engine = create_engine(
            database_url,
            pool_size=5,
            max_overflow=10,
            pool_recycle=3600,      # Tools database drops idle connections
            pool_pre_ping=True,
        )

    logger.info(f"[DB] Engine created for dialect '{engine.dialect.name}'")
    return engine


# =============================================================================
# CONTEXT MANAGERS
# =============================================================================

@contextmanager
def get_connection() -> Generator[Connection, None, None]:
    """Context manager yielding a connection for one statistics request.

    Example:
        with get_connection() as conn:
            ids = compile_statistics(conn, request)
    """
    conn = get_engine().connect()
    try:
        yield conn
    finally:
        conn.close()
