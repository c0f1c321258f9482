"""
Query Executor
==============

Runs the compiled statement in one round trip and performs the bulk user
group lookup for the returned actors.

WHAT: Thin layer between SQLAlchemy and the post-processor.

WHY: Keeps database access in one place. Everything before this module is
     pure query building; everything after it is pure row processing.

Accepts either a `Connection` or an ORM `Session`; both expose `execute()`.

RELATED FILES:
- wikistats/statistics/compiler.py: Calls these functions
- wikistats/statistics/postprocess.py: Consumes the rows
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Mapping, Union

from sqlalchemy import select
from sqlalchemy.engine import Connection
from sqlalchemy.orm import Session
from sqlalchemy.sql.expression import Select

from wikistats.config import get_settings
from wikistats.schema import WikiTables

logger = logging.getLogger(__name__)

Executable = Union[Connection, Session]

# Keep IN lists below common driver/parameter limits
_GROUP_LOOKUP_CHUNK = 1000


def _log_statement(connection: Executable, statement: Select) -> None:
    level = logging.INFO if get_settings().LOG_SQL else logging.DEBUG
    if not logger.isEnabledFor(level):
        return
    bind = connection.get_bind() if isinstance(connection, Session) else connection
    compiled = statement.compile(dialect=bind.dialect)
    logger.log(level, f"[EXECUTOR] SQL:\n{compiled}\nparams={compiled.params}")


def execute_statistics_query(connection: Executable, statement: Select) -> List[Mapping[str, Any]]:
    """
    Execute the statistics statement.

    RETURNS:
        One mapping per actor, keyed by column label
    """
    _log_statement(connection, statement)
    rows = [dict(row) for row in connection.execute(statement).mappings()]
    logger.info(f"[EXECUTOR] {len(rows)} rows fetched")
    return rows


def fetch_actor_ids(connection: Executable, statement: Select) -> List[int]:
    """No-columns mode: the ids of the qualifying actors."""
    _log_statement(connection, statement)
    actor_ids = [row[0] for row in connection.execute(statement)]
    logger.info(f"[EXECUTOR] {len(actor_ids)} actor ids fetched")
    return actor_ids


def fetch_actor_groups(
    connection: Executable,
    tables: WikiTables,
    actor_ids: Iterable[int],
) -> Dict[int, List[str]]:
    """
    Bulk lookup of user groups.

    RETURNS:
        actor_id -> sorted group names; actors without groups are absent
    """
    ids = list(dict.fromkeys(actor_ids))
    groups: Dict[int, List[str]] = defaultdict(list)
    actor_groups = tables.actor_groups

    for offset in range(0, len(ids), _GROUP_LOOKUP_CHUNK):
        chunk = ids[offset:offset + _GROUP_LOOKUP_CHUNK]
        statement = (
            select(actor_groups.c.actor_id, actor_groups.c.group_name)
            .where(actor_groups.c.actor_id.in_(chunk))
            .order_by(actor_groups.c.actor_id, actor_groups.c.group_name)
        )
        for actor_id, group_name in connection.execute(statement):
            groups[actor_id].append(group_name)

    logger.debug(f"[EXECUTOR] groups loaded for {len(groups)}/{len(ids)} actors")
    return dict(groups)
