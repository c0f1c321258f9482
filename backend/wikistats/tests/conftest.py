"""Pytest configuration for the statistics compiler tests

WHAT: In-memory SQLite database with the per-wiki counter tables of
      "testwiki", plus helpers that seed actors and cumulative daily rows.
WHY: The compiler's semantics (as-of joins, period deltas, milestones) are
     only meaningful against real rows; SQLite keeps the suite hermetic.
REFERENCES:
    - wikistats/schema.py: get_wiki_tables(), CounterField
    - wikistats/statistics/compiler.py: compile_statistics()
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Dict, Iterable, Mapping, Optional, Sequence

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.engine import Connection

from wikistats.schema import (
    CHANGE_TAG_FIELDS,
    DAILY_FIELDS,
    LOG_FIELDS,
    NAMESPACE_FIELDS,
    CounterField,
    WikiTables,
    get_wiki_tables,
)

TEST_WIKI = "testwiki"


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def tables() -> WikiTables:
    return get_wiki_tables(TEST_WIKI)


@pytest.fixture
def engine(tables):
    """In-memory SQLite engine with all testwiki tables created."""
    engine = create_engine("sqlite://")
    tables.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def connection(engine) -> Connection:
    conn = engine.connect()
    try:
        yield conn
    finally:
        conn.close()


# ============================================================================
# Seed Helpers
# ============================================================================

def add_actor(
    conn: Connection,
    tables: WikiTables,
    actor_id: int,
    name: str,
    *,
    registered: bool = True,
    registration: Optional[datetime] = None,
    groups: Iterable[str] = (),
    templates: Iterable[str] = (),
) -> None:
    conn.execute(
        tables.actor.insert().values(
            actor_id=actor_id,
            actor_name=name,
            is_registered=registered,
            registration_timestamp=registration,
        )
    )
    for group in groups:
        conn.execute(tables.actor_groups.insert().values(actor_id=actor_id, group_name=group))
    for template in templates:
        page_id = conn.execute(
            select(tables.templates.c.template_page_id).where(tables.templates.c.template_name == template)
        ).scalar()
        if page_id is None:
            page_id = (conn.execute(select(func.max(tables.templates.c.template_page_id))).scalar() or 0) + 1
            conn.execute(tables.templates.insert().values(template_page_id=page_id, template_name=template))
        conn.execute(
            tables.actor_user_page_templates.insert().values(actor_id=actor_id, template_page_id=page_id)
        )


def add_daily_rows(
    conn: Connection,
    table,
    days: Mapping[date, Mapping[str, int]],
    *,
    fields: Sequence[CounterField] = DAILY_FIELDS,
    **key_columns,
) -> None:
    """Insert cumulative rows: each to_date column is the sum of earlier daily values.

    `days` maps a date to daily values keyed by CounterField.name
    ("edits", "revertedEdits", "activeDays", ...); missing counters are 0.
    """
    running: Dict[str, int] = {counter.name: 0 for counter in fields}
    for day in sorted(days):
        row = dict(key_columns, date=day)
        for counter in fields:
            daily = days[day].get(counter.name, 0)
            row[counter.daily_column] = daily
            row[counter.to_date_column] = running[counter.name]
            running[counter.name] += daily
        conn.execute(table.insert().values(**row))


@pytest.fixture
def seeded(connection, tables) -> Connection:
    """
    Four actors with edits around the 2023 reporting year.

    Alice (1):  40 edits 2022-06-10, 20 on 2023-03-01, 5 on 2023-08-01 -> 40 before 2023, 65 at end
    Bob (2):    bot, registered 2023-02-01, 100 edits on 2023-02-02
    Carol (3):  10 edits 2021-05-01, 3 edits + 20 log events on 2023-05-05
    Anon (4):   unregistered, 2 edits on 2023-04-01
    """
    add_actor(connection, tables, 1, "Alice", registration=datetime(2022, 6, 1, 12, 30),
              groups=["sysop"], templates=["Babel"])
    add_actor(connection, tables, 2, "Bob", registration=datetime(2023, 2, 1), groups=["bot"])
    add_actor(connection, tables, 3, "carol", registration=datetime(2021, 1, 1))
    add_actor(connection, tables, 4, "192.0.2.1", registered=False)

    add_daily_rows(connection, tables.actor_daily, {
        date(2022, 6, 10): {"edits": 40, "activeDays": 1},
        date(2023, 3, 1): {"edits": 20, "activeDays": 1, "revertedEdits": 2},
        date(2023, 8, 1): {"edits": 5, "activeDays": 1},
    }, actor_id=1)
    add_daily_rows(connection, tables.actor_daily, {
        date(2023, 2, 2): {"edits": 100, "activeDays": 1},
    }, actor_id=2)
    add_daily_rows(connection, tables.actor_daily, {
        date(2021, 5, 1): {"edits": 10, "activeDays": 1},
        date(2023, 5, 5): {"edits": 3, "activeDays": 1, "logEvents": 20},
    }, actor_id=3)
    add_daily_rows(connection, tables.actor_daily, {
        date(2023, 4, 1): {"edits": 2, "activeDays": 1},
    }, actor_id=4)

    # Wiki totals: sum of the above per day
    add_daily_rows(connection, tables.wiki_daily, {
        date(2021, 5, 1): {"edits": 10},
        date(2022, 6, 10): {"edits": 40},
        date(2023, 2, 2): {"edits": 100},
        date(2023, 3, 1): {"edits": 20},
        date(2023, 4, 1): {"edits": 2},
        date(2023, 5, 5): {"edits": 3},
        date(2023, 8, 1): {"edits": 5},
    })
    return connection


@pytest.fixture
def seeded_scopes(seeded, tables) -> Connection:
    """
    Namespace, change tag and log type rows on top of `seeded`.

    Alice: ns0 30 edits 2022-06-10 + 15 edits 2023-03-01; ns2 5 edits 2023-08-01;
           change tag 7: 4 edits 2023-03-01
    Carol: 20 "block" log events on 2023-05-05
    """
    add_daily_rows(seeded, tables.actor_namespace, {
        date(2022, 6, 10): {"edits": 30},
        date(2023, 3, 1): {"edits": 15},
    }, fields=NAMESPACE_FIELDS, actor_id=1, namespace=0)
    add_daily_rows(seeded, tables.actor_namespace, {
        date(2023, 8, 1): {"edits": 5},
    }, fields=NAMESPACE_FIELDS, actor_id=1, namespace=2)
    add_daily_rows(seeded, tables.wiki_namespace, {
        date(2022, 6, 10): {"edits": 30},
        date(2023, 3, 1): {"edits": 45},
    }, fields=NAMESPACE_FIELDS, namespace=0)
    add_daily_rows(seeded, tables.actor_change_tag, {
        date(2023, 3, 1): {"edits": 4},
    }, fields=CHANGE_TAG_FIELDS, actor_id=1, change_tag_id=7)
    add_daily_rows(seeded, tables.actor_log_type, {
        date(2023, 5, 5): {"logEvents": 20},
    }, fields=LOG_FIELDS, actor_id=3, log_type="block")
    return seeded
