"""
Per-Wiki Counter Store Schema
=============================

**Status**: Active

SQLAlchemy Core table definitions for the cumulative daily-counter store
written by the offline cache-building job. One set of tables exists per wiki;
their names are produced by an injected naming strategy.

WHY THIS FILE EXISTS
--------------------
The compiler never hard-codes table names. It asks a naming strategy
`(wiki_id, dimension, table kind) -> table name` and builds `Table` objects
on a private `MetaData` per wiki, so the same code serves every tenant and
tests can create the tables in SQLite.

COUNTER SHAPE
-------------
Every statistics table stores pairs of columns per counter:

    daily_edits     edits made on `date`
    edits_to_date   edits made on all earlier rows of the same subject

so the value "as of date d" is `edits_to_date + daily_edits` of the latest
row with `date <= d`.

RELATED FILES
-------------
- wikistats/statistics/planner.py: Builds as-of joins over these tables
- wikistats/statistics/model.py: Maps column kinds onto CounterField pairs
- wikistats/config.py: TABLE_NAME_SUFFIX
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Callable, Dict, List, Tuple

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
)

from .config import get_settings


# =============================================================================
# DIMENSIONS AND TABLE KINDS
# =============================================================================

class Dimension(str, Enum):
    """Subject a statistics table is keyed by."""
    ACTOR = "actor"
    WIKI = "wiki"


class TableKind(str, Enum):
    """
    Discriminator kind of a table.

    WHAT: Together with Dimension, identifies one physical table per wiki.

    WHY: The naming strategy receives (wiki, dimension, kind); it never sees
         individual namespace or change tag values.
    """
    IDENTITY = "identity"
    GROUPS = "groups"
    DAILY = "daily"
    NAMESPACE = "namespace"
    CHANGE_TAG = "changeTag"
    NAMESPACE_CHANGE_TAG = "namespaceChangeTag"
    LOG_TYPE = "logType"
    LOG_ACTION = "logAction"
    LOG_TYPE_ACTION = "logTypeAction"
    USER_PAGE_TEMPLATES = "userPageTemplates"
    TEMPLATES = "templates"


TableNamingStrategy = Callable[[str, Dimension, TableKind], str]


_DEFAULT_TABLE_STEMS: Dict[Tuple[Dimension, TableKind], str] = {
    (Dimension.ACTOR, TableKind.IDENTITY): "actor",
    (Dimension.ACTOR, TableKind.GROUPS): "actor_groups",
    (Dimension.ACTOR, TableKind.DAILY): "actor_daily_stats",
    (Dimension.WIKI, TableKind.DAILY): "daily_stats",
    (Dimension.ACTOR, TableKind.NAMESPACE): "actor_daily_stats_by_ns",
    (Dimension.WIKI, TableKind.NAMESPACE): "daily_stats_by_ns",
    (Dimension.ACTOR, TableKind.CHANGE_TAG): "actor_edit_stats_by_ct",
    (Dimension.ACTOR, TableKind.NAMESPACE_CHANGE_TAG): "actor_edit_stats_by_nsct",
    (Dimension.ACTOR, TableKind.LOG_TYPE): "actor_log_stats_by_lt",
    (Dimension.ACTOR, TableKind.LOG_ACTION): "actor_log_stats_by_la",
    (Dimension.ACTOR, TableKind.LOG_TYPE_ACTION): "actor_log_stats_by_ltla",
    (Dimension.ACTOR, TableKind.USER_PAGE_TEMPLATES): "actor_user_page_templates",
    (Dimension.WIKI, TableKind.TEMPLATES): "templates",
}


def default_table_name(wiki_id: str, dimension: Dimension, kind: TableKind) -> str:
    """Default naming strategy: `{wiki}_{stem}{suffix}`, e.g. huwiki_actor_daily_stats_v2."""
    try:
        stem = _DEFAULT_TABLE_STEMS[(dimension, kind)]
    except KeyError:
        raise ValueError(f"No statistics table for dimension={dimension.value} kind={kind.value}") from None
    return f"{wiki_id}_{stem}{get_settings().TABLE_NAME_SUFFIX}"


# =============================================================================
# COUNTER FIELDS
# =============================================================================

@dataclass(frozen=True)
class CounterField:
    """
    One cumulative counter stored as a daily/to-date column pair.

    PARAMETERS:
        name: Metric family name used in column types (e.g. "revertedEdits")
        daily_column: Column holding the value for the row's day
        to_date_column: Column holding the running total of earlier rows
    """
    name: str
    daily_column: str
    to_date_column: str


EDITS = CounterField("edits", "daily_edits", "edits_to_date")
REVERTED_EDITS = CounterField("revertedEdits", "daily_reverted_edits", "reverted_edits_to_date")
CHARACTER_CHANGES = CounterField("characterChanges", "daily_character_changes", "character_changes_to_date")
RECEIVED_THANKS = CounterField("receivedThanks", "daily_received_thanks", "received_thanks_to_date")
SENT_THANKS = CounterField("sentThanks", "daily_sent_thanks", "sent_thanks_to_date")
LOG_EVENTS = CounterField("logEvents", "daily_log_events", "log_events_to_date")
SERVICE_AWARD_LOG_EVENTS = CounterField(
    "serviceAwardLogEvents", "daily_service_award_log_events", "service_award_log_events_to_date"
)
ACTIVE_DAYS = CounterField("activeDays", "daily_active_day", "active_days_to_date")

DAILY_FIELDS = (
    EDITS, REVERTED_EDITS, CHARACTER_CHANGES, RECEIVED_THANKS,
    SENT_THANKS, LOG_EVENTS, SERVICE_AWARD_LOG_EVENTS, ACTIVE_DAYS,
)
NAMESPACE_FIELDS = (EDITS, REVERTED_EDITS, CHARACTER_CHANGES, LOG_EVENTS)
CHANGE_TAG_FIELDS = (EDITS, CHARACTER_CHANGES)
LOG_FIELDS = (LOG_EVENTS,)


def _counter_columns(fields: Tuple[CounterField, ...]) -> List[Column]:
    columns: List[Column] = []
    for counter in fields:
        columns.append(Column(counter.daily_column, Integer, nullable=False, default=0))
        columns.append(Column(counter.to_date_column, Integer, nullable=False, default=0))
    return columns


# =============================================================================
# WIKI TABLES
# =============================================================================

@dataclass(frozen=True)
class WikiTables:
    """
    All tables of one wiki, bound to a private MetaData.

    WHAT: The physical schema the compiler reads for a single wiki.

    WHY: Table objects carry the resolved names, so planner and generator
         only ever reference `tables.actor_daily.c.edits_to_date` etc.
    """
    wiki_id: str
    metadata: MetaData
    actor: Table
    actor_groups: Table
    actor_daily: Table
    wiki_daily: Table
    actor_namespace: Table
    wiki_namespace: Table
    actor_change_tag: Table
    actor_namespace_change_tag: Table
    actor_log_type: Table
    actor_log_action: Table
    actor_log_type_action: Table
    actor_user_page_templates: Table
    templates: Table

    def snapshot_table(self, dimension: Dimension, kind: TableKind) -> Table:
        """Resolve the snapshot table for a (dimension, discriminator kind) pair."""
        lookup = {
            (Dimension.ACTOR, TableKind.DAILY): self.actor_daily,
            (Dimension.WIKI, TableKind.DAILY): self.wiki_daily,
            (Dimension.ACTOR, TableKind.NAMESPACE): self.actor_namespace,
            (Dimension.WIKI, TableKind.NAMESPACE): self.wiki_namespace,
            (Dimension.ACTOR, TableKind.CHANGE_TAG): self.actor_change_tag,
            (Dimension.ACTOR, TableKind.NAMESPACE_CHANGE_TAG): self.actor_namespace_change_tag,
            (Dimension.ACTOR, TableKind.LOG_TYPE): self.actor_log_type,
            (Dimension.ACTOR, TableKind.LOG_ACTION): self.actor_log_action,
            (Dimension.ACTOR, TableKind.LOG_TYPE_ACTION): self.actor_log_type_action,
        }
        try:
            return lookup[(dimension, kind)]
        except KeyError:
            raise ValueError(f"No snapshot table for dimension={dimension.value} kind={kind.value}") from None


def build_wiki_tables(wiki_id: str, naming_strategy: TableNamingStrategy = default_table_name) -> WikiTables:
    """Build the Table objects of one wiki on a fresh MetaData."""
    metadata = MetaData()

    def name(dimension: Dimension, kind: TableKind) -> str:
        return naming_strategy(wiki_id, dimension, kind)

    actor = Table(
        name(Dimension.ACTOR, TableKind.IDENTITY), metadata,
        Column("actor_id", Integer, primary_key=True, autoincrement=False),
        Column("actor_name", String(255), nullable=False),
        Column("is_registered", Boolean, nullable=False, default=False),
        Column("registration_timestamp", DateTime, nullable=True),
        Column("first_edit_timestamp", DateTime, nullable=True),
        Column("last_edit_timestamp", DateTime, nullable=True),
        Column("first_log_entry_timestamp", DateTime, nullable=True),
        Column("last_log_entry_timestamp", DateTime, nullable=True),
    )

    actor_groups = Table(
        name(Dimension.ACTOR, TableKind.GROUPS), metadata,
        Column("actor_id", Integer, primary_key=True, autoincrement=False),
        Column("group_name", String(255), primary_key=True),
    )

    actor_daily = Table(
        name(Dimension.ACTOR, TableKind.DAILY), metadata,
        Column("actor_id", Integer, primary_key=True, autoincrement=False),
        Column("date", Date, primary_key=True),
        *_counter_columns(DAILY_FIELDS),
    )

    wiki_daily = Table(
        name(Dimension.WIKI, TableKind.DAILY), metadata,
        Column("date", Date, primary_key=True),
        *_counter_columns(DAILY_FIELDS),
    )

    actor_namespace = Table(
        name(Dimension.ACTOR, TableKind.NAMESPACE), metadata,
        Column("actor_id", Integer, primary_key=True, autoincrement=False),
        Column("namespace", Integer, primary_key=True, autoincrement=False),
        Column("date", Date, primary_key=True),
        *_counter_columns(NAMESPACE_FIELDS),
    )

    wiki_namespace = Table(
        name(Dimension.WIKI, TableKind.NAMESPACE), metadata,
        Column("namespace", Integer, primary_key=True, autoincrement=False),
        Column("date", Date, primary_key=True),
        *_counter_columns(NAMESPACE_FIELDS),
    )

    actor_change_tag = Table(
        name(Dimension.ACTOR, TableKind.CHANGE_TAG), metadata,
        Column("actor_id", Integer, primary_key=True, autoincrement=False),
        Column("change_tag_id", Integer, primary_key=True, autoincrement=False),
        Column("date", Date, primary_key=True),
        *_counter_columns(CHANGE_TAG_FIELDS),
    )

    actor_namespace_change_tag = Table(
        name(Dimension.ACTOR, TableKind.NAMESPACE_CHANGE_TAG), metadata,
        Column("actor_id", Integer, primary_key=True, autoincrement=False),
        Column("namespace", Integer, primary_key=True, autoincrement=False),
        Column("change_tag_id", Integer, primary_key=True, autoincrement=False),
        Column("date", Date, primary_key=True),
        *_counter_columns(CHANGE_TAG_FIELDS),
    )

    actor_log_type = Table(
        name(Dimension.ACTOR, TableKind.LOG_TYPE), metadata,
        Column("actor_id", Integer, primary_key=True, autoincrement=False),
        Column("log_type", String(32), primary_key=True),
        Column("date", Date, primary_key=True),
        *_counter_columns(LOG_FIELDS),
    )

    actor_log_action = Table(
        name(Dimension.ACTOR, TableKind.LOG_ACTION), metadata,
        Column("actor_id", Integer, primary_key=True, autoincrement=False),
        Column("log_action", String(32), primary_key=True),
        Column("date", Date, primary_key=True),
        *_counter_columns(LOG_FIELDS),
    )

    actor_log_type_action = Table(
        name(Dimension.ACTOR, TableKind.LOG_TYPE_ACTION), metadata,
        Column("actor_id", Integer, primary_key=True, autoincrement=False),
        Column("log_type", String(32), primary_key=True),
        Column("log_action", String(32), primary_key=True),
        Column("date", Date, primary_key=True),
        *_counter_columns(LOG_FIELDS),
    )

    actor_user_page_templates = Table(
        name(Dimension.ACTOR, TableKind.USER_PAGE_TEMPLATES), metadata,
        Column("actor_id", Integer, primary_key=True, autoincrement=False),
        Column("template_page_id", Integer, primary_key=True, autoincrement=False),
    )

    templates = Table(
        name(Dimension.WIKI, TableKind.TEMPLATES), metadata,
        Column("template_page_id", Integer, primary_key=True, autoincrement=False),
        Column("template_name", String(255), nullable=False),
    )

    return WikiTables(
        wiki_id=wiki_id,
        metadata=metadata,
        actor=actor,
        actor_groups=actor_groups,
        actor_daily=actor_daily,
        wiki_daily=wiki_daily,
        actor_namespace=actor_namespace,
        wiki_namespace=wiki_namespace,
        actor_change_tag=actor_change_tag,
        actor_namespace_change_tag=actor_namespace_change_tag,
        actor_log_type=actor_log_type,
        actor_log_action=actor_log_action,
        actor_log_type_action=actor_log_type_action,
        actor_user_page_templates=actor_user_page_templates,
        templates=templates,
    )


@lru_cache(maxsize=64)
def get_wiki_tables(wiki_id: str, naming_strategy: TableNamingStrategy = default_table_name) -> WikiTables:
    """Cached per (wiki, naming strategy); table metadata never changes at runtime."""
    return build_wiki_tables(wiki_id, naming_strategy)
