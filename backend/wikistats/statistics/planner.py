"""
Join Planner
============

Turns a JoinPlan into concrete SQLAlchemy joins: one aliased snapshot table
per RequiredJoinKey and one grouped subquery per ActivityRangeKey, all
hanging off the wiki's actor table.

As-of join shape (actor dimension, END boundary):

    INNER JOIN huwiki_actor_daily_stats_v2 AS actorEnd_20231231
        ON actorEnd_20231231.actor_id = actor.actor_id
       AND actorEnd_20231231.date = (
            SELECT MAX(asof.date) FROM huwiki_actor_daily_stats_v2 AS asof
             WHERE asof.actor_id = actor.actor_id AND asof.date <= :target)

- BEFORE keys use `<` and a LEFT JOIN: no earlier activity means zero.
- Discriminated and wiki-wide snapshots are LEFT JOINs; missing activity
  in one namespace/tag/log type is zero, not exclusion.
- Wiki-wide keys drop the actor correlation.

Related files:
- wikistats/statistics/analyzer.py: Produces the JoinPlan
- wikistats/statistics/generator.py: Reads values through PlannedJoins
- wikistats/schema.py: Table objects and naming strategy
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Tuple

from sqlalchemy import and_, func, select
from sqlalchemy.sql.expression import ColumnElement, FromClause

from wikistats.schema import Dimension, WikiTables
from wikistats.statistics.analyzer import (
    ActivityRangeKey,
    Boundary,
    ChangeTagDiscriminator,
    Discriminator,
    JoinPlan,
    LogDiscriminator,
    NamespaceDiscriminator,
    RequiredJoinKey,
)
from wikistats.statistics.model import ActivitySource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlannedJoins:
    """
    Join fragment of the statistics query.

    PARAMETERS:
        from_clause: Actor table joined with every snapshot and range
        snapshots: RequiredJoinKey -> aliased snapshot table
        ranges: ActivityRangeKey -> aliased first/last date subquery
        join_count: Number of joins emitted (one per unique key)
    """
    from_clause: FromClause
    snapshots: Dict[RequiredJoinKey, FromClause]
    ranges: Dict[ActivityRangeKey, FromClause]
    join_count: int

    def alias_for(self, key: RequiredJoinKey) -> FromClause:
        return self.snapshots[key]

    def range_for(self, key: ActivityRangeKey) -> FromClause:
        return self.ranges[key]


def discriminator_conditions(table, discriminator) -> List[ColumnElement]:
    """Equality predicates restricting a discriminated table to one scope."""
    if discriminator is None:
        return []
    if isinstance(discriminator, NamespaceDiscriminator):
        return [table.c.namespace == discriminator.namespace]
    if isinstance(discriminator, ChangeTagDiscriminator):
        conditions = [table.c.change_tag_id == discriminator.change_tag_id]
        if discriminator.namespace is not None:
            conditions.append(table.c.namespace == discriminator.namespace)
        return conditions
    if isinstance(discriminator, LogDiscriminator):
        conditions = []
        if discriminator.log_type is not None:
            conditions.append(table.c.log_type == discriminator.log_type)
        if discriminator.log_action is not None:
            conditions.append(table.c.log_action == discriminator.log_action)
        return conditions
    raise TypeError(f"Unknown discriminator {discriminator!r}")


def _snapshot_join(tables: WikiTables, key: RequiredJoinKey) -> Tuple[FromClause, ColumnElement, bool]:
    """Aliased snapshot table, its ON clause, and whether the join is outer."""
    table = tables.snapshot_table(key.dimension, key.table_kind)
    snapshot = table.alias(key.alias_name)
    latest_row = table.alias(f"{key.alias_name}_asof")

    if key.boundary is Boundary.END:
        date_condition = latest_row.c.date <= key.date
    else:
        date_condition = latest_row.c.date < key.date

    latest_conditions = [date_condition, *discriminator_conditions(latest_row, key.discriminator)]
    on_conditions = list(discriminator_conditions(snapshot, key.discriminator))

    if key.dimension is Dimension.ACTOR:
        latest_conditions.append(latest_row.c.actor_id == tables.actor.c.actor_id)
        on_conditions.append(snapshot.c.actor_id == tables.actor.c.actor_id)
        latest_date = (
            select(func.max(latest_row.c.date))
            .where(*latest_conditions)
            .correlate(tables.actor)
            .scalar_subquery()
        )
    else:
        latest_date = select(func.max(latest_row.c.date)).where(*latest_conditions).scalar_subquery()

    on_conditions.append(snapshot.c.date == latest_date)

    is_outer = not (
        key.dimension is Dimension.ACTOR
        and key.boundary is Boundary.END
        and key.discriminator is None
    )
    return snapshot, and_(*on_conditions), is_outer


def _range_join(tables: WikiTables, key: ActivityRangeKey) -> Tuple[FromClause, ColumnElement, bool]:
    """Grouped MIN/MAX(date) subquery over days with activity, up to key.date."""
    if key.source is ActivitySource.EDITS:
        table, daily = tables.actor_daily, tables.actor_daily.c.daily_edits
    elif key.source is ActivitySource.LOG_EVENTS:
        table, daily = tables.actor_daily, tables.actor_daily.c.daily_log_events
    else:
        table = tables.snapshot_table(Dimension.ACTOR, key.discriminator.table_kind)
        daily = table.c.daily_log_events

    dates = (
        select(
            table.c.actor_id.label("actor_id"),
            func.min(table.c.date).label("first_date"),
            func.max(table.c.date).label("last_date"),
        )
        .where(daily > 0, table.c.date <= key.date, *discriminator_conditions(table, key.discriminator))
        .group_by(table.c.actor_id)
        .subquery(key.alias_name)
    )
    return dates, dates.c.actor_id == tables.actor.c.actor_id, key.source is ActivitySource.LOG_FILTER


def plan_joins(plan: JoinPlan, tables: WikiTables) -> PlannedJoins:
    """
    Build one join per unique key of the plan.

    PARAMETERS:
        plan: Output of analyze_request()
        tables: The wiki's tables

    RETURNS:
        PlannedJoins whose from_clause starts at the actor table
    """
    from_clause: FromClause = tables.actor
    snapshots: Dict[RequiredJoinKey, FromClause] = {}
    ranges: Dict[ActivityRangeKey, FromClause] = {}

    for key in plan.join_keys:
        snapshot, onclause, is_outer = _snapshot_join(tables, key)
        from_clause = from_clause.join(snapshot, onclause, isouter=is_outer)
        snapshots[key] = snapshot

    for key in plan.activity_ranges:
        dates, onclause, is_outer = _range_join(tables, key)
        from_clause = from_clause.join(dates, onclause, isouter=is_outer)
        ranges[key] = dates

    join_count = len(snapshots) + len(ranges)
    logger.debug(f"[PLANNER] {join_count} joins for wiki={tables.wiki_id}")
    return PlannedJoins(from_clause=from_clause, snapshots=snapshots, ranges=ranges, join_count=join_count)
