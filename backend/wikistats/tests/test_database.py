"""
Database Helper Tests (Unit)
============================

WHAT: DATABASE_URL resolution and the connection context manager.
WHY: Importing the compiler must never need a database; asking for a
     connection without DATABASE_URL must fail with a clear message.

REFERENCES:
- backend/wikistats/database.py
- backend/wikistats/utils/env.py
"""

import pytest
from sqlalchemy import literal, select

from wikistats import database
from wikistats.config import get_settings


@pytest.fixture
def fresh_settings():
    get_settings.cache_clear()
    database.get_engine.cache_clear()
    yield
    get_settings.cache_clear()
    database.get_engine.cache_clear()


def test_missing_database_url_raises(monkeypatch, fresh_settings):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setattr("dotenv.load_dotenv", lambda **kwargs: False)

    with pytest.raises(RuntimeError, match="DATABASE_URL is not set"):
        database.get_database_url()


def test_connection_from_environment(monkeypatch, fresh_settings):
    monkeypatch.setenv("DATABASE_URL", "sqlite://")

    with database.get_connection() as conn:
        assert conn.execute(select(literal(1))).scalar() == 1

    assert database.get_engine().dialect.name == "sqlite"
