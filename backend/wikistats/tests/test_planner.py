"""
Join Planner Tests (Unit)
=========================

WHAT: Join type and alias naming of plan_joins().
WHY: An INNER join where a LEFT join belongs silently drops actors that
     simply had no activity in a namespace or before the period.

REFERENCES:
- backend/wikistats/statistics/planner.py
"""

import re

from sqlalchemy import select
from sqlalchemy.dialects import mysql
from sqlalchemy.sql.selectable import Join

from wikistats.statistics.analyzer import analyze_request
from wikistats.statistics.planner import plan_joins
from wikistats.statistics.query import StatisticsRequest


def _plan(tables, columns, requirements=None):
    payload = {"wikiId": "testwiki", "startDate": "2023-01-01", "endDate": "2023-12-31", "columns": columns}
    if requirements is not None:
        payload["requirements"] = requirements
    plan = analyze_request(StatisticsRequest.model_validate(payload))
    return plan, plan_joins(plan, tables)


def _outer_flags(from_clause):
    """Alias name -> isouter, walking the left-deep join tree."""
    flags = {}
    node = from_clause
    while isinstance(node, Join):
        flags[node.right.name] = node.isouter
        node = node.left
    return flags


def test_actor_end_snapshot_is_inner_and_others_outer(tables):
    plan, joins = _plan(
        tables,
        [
            {"type": "editsInPeriodPercentageToWikiTotal"},
            {"type": "editsInNamespaceInPeriod", "namespace": 0},
        ],
    )

    assert _outer_flags(joins.from_clause) == {
        "actorBefore_20230101": True,
        "actorEnd_20231231": False,
        "wikiBefore_20230101": True,
        "wikiEnd_20231231": True,
        "actorBefore_Ns0_20230101": True,
        "actorEnd_Ns0_20231231": True,
    }
    assert joins.join_count == 6


def test_activity_ranges_join_as_named_subqueries(tables):
    plan, joins = _plan(
        tables,
        [{"type": "firstEditDate"}, {"type": "lastLogEventDateByType", "logFilter": {"logType": "block"}}],
    )

    assert _outer_flags(joins.from_clause) == {
        "editDates_20231231": False,
        "logDates_Ltblock_20231231": True,
    }
    for key in plan.activity_ranges:
        assert set(joins.range_for(key).c.keys()) == {"actor_id", "first_date", "last_date"}


def test_duplicate_requirements_do_not_add_joins(tables):
    plan, joins = _plan(
        tables,
        [{"type": "editsSinceRegistration"}],
        requirements={"totalEditsAtLeast": 1, "totalActiveDaysAtLeast": 1},
    )

    assert joins.join_count == 1
    assert joins.alias_for(plan.join_keys[0]).name == "actorEnd_20231231"


def test_snapshot_aliases_point_at_scoped_tables(tables):
    plan, joins = _plan(
        tables,
        [{"type": "editsSinceRegistrationByChangeTag", "changeTag": {"changeTagId": 3}}],
    )

    snapshot = joins.alias_for(plan.join_keys[0])
    assert snapshot.element is tables.actor_change_tag


def test_no_keys_leaves_actor_table(tables):
    _, joins = _plan(tables, [{"type": "registrationDate"}])

    assert joins.from_clause is tables.actor
    assert joins.join_count == 0


def test_long_log_filter_aliases_fit_mariadb(tables):
    columns = [
        {"type": "logEventsInPeriodByType", "logFilter": {"logType": "abusefilter-privatedetails", "logAction": "access"}},
        {"type": "logEventsInPeriodByType", "logFilter": {"logType": "abusefilter-privatedetails", "logAction": "accesz"}},
        {"type": "lastLogEventDateByType", "logFilter": {"logType": "abusefilter-privatedetails", "logAction": "access"}},
    ]
    plan, joins = _plan(tables, columns)

    sql = str(select(tables.actor.c.actor_id).select_from(joins.from_clause).compile(dialect=mysql.dialect()))
    identifiers = set(re.findall(r"AS `?(\w+)`?", sql))

    assert any(name.startswith("logDates_Ltabusefilter") for name in identifiers)
    assert max(len(name) for name in identifiers) <= mysql.dialect().max_identifier_length
    aliases = [key.alias_name for key in plan.join_keys]
    assert len(set(aliases)) == len(aliases) == 4
    assert _plan(tables, columns)[0].join_keys[0].alias_name == aliases[0]
