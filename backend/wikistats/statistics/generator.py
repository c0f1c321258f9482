"""
Select & Filter Generator
=========================

**Status**: Active

Builds the single SQLAlchemy `Select` of a statistics request: one labelled
expression per column and one WHERE predicate per eligibility requirement,
reading every value through the aliases the planner created.

WHY THIS FILE EXISTS
--------------------
The analyzer decides *which* snapshots exist; this module decides *what to
compute from them*. Keeping arithmetic here (and only here) means every
metric family follows the same formulas:

    since registration   COALESCE(end.x_to_date + end.daily_x, 0)
    in period            since(end) - since(before)      (no clamping)
    % of wiki total      CAST(actor AS FLOAT) / NULLIF(wiki, 0)
    % of own edits       CAST(scoped AS FLOAT) / NULLIF(own edits, 0)
    milestone            CASE WHEN end >= m AND start < m THEN m ... END

Several namespaces / change tags / log filters are summed before any ratio
or milestone logic is applied.

OUTPUT LABELS
-------------
- `column{i}`: value of request column i (absent for post-processed kinds)
- `level{End|Before}_{YYYYMMDD}_{edits|logEvents|activeDays}`: raw ladder
  inputs, one triple per level snapshot, read by the post-processor

RELATED FILES
-------------
- wikistats/statistics/analyzer.py: JoinPlan (what is joined)
- wikistats/statistics/planner.py: PlannedJoins (aliases)
- wikistats/statistics/sql.py: days_between / least / greatest
- wikistats/statistics/postprocess.py: Consumes the labels
"""

from __future__ import annotations

import functools
import logging
import operator
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import Date, Float, and_, case, cast, func, literal, null, or_, select
from sqlalchemy.sql.expression import ColumnElement, Select

from wikistats.schema import (
    ACTIVE_DAYS,
    EDITS,
    LOG_EVENTS,
    CounterField,
    Dimension,
    WikiTables,
)
from wikistats.statistics.analyzer import (
    ActivityRangeKey,
    Boundary,
    Discriminator,
    JoinPlan,
    LevelSnapshot,
    RequiredJoinKey,
    change_tag_discriminators,
    log_discriminators,
    namespace_discriminators,
)
from wikistats.statistics.dates import NEVER_AFTER, NEVER_BEFORE, period_bounds, resolve_epoch
from wikistats.statistics.model import (
    REQUIREMENT_DEFINITIONS,
    ActivitySource,
    ColumnKind,
    Comparison,
    Ratio,
    RequirementKind,
    Span,
    get_column_definition,
)
from wikistats.statistics.planner import PlannedJoins
from wikistats.statistics.query import ColumnSpec, StatisticsRequest
from wikistats.statistics.sql import days_between, greatest_date, least_date

logger = logging.getLogger(__name__)

_COMPARATORS = {
    Comparison.AT_LEAST: operator.ge,
    Comparison.AT_MOST: operator.le,
}

# Raw ladder inputs selected per level snapshot, keyed by label suffix
_LEVEL_INPUT_COUNTERS = {
    "edits": EDITS,
    "logEvents": LOG_EVENTS,
    "activeDays": ACTIVE_DAYS,
}


def column_label(index: int) -> str:
    return f"column{index}"


def level_input_label(snapshot: LevelSnapshot, suffix: str) -> str:
    return f"{snapshot.label_prefix}_{suffix}"


@dataclass(frozen=True)
class StatisticsQuery:
    """
    Generator output.

    PARAMETERS:
        statement: The Select to execute
        column_labels: Label per request column, None for post-processed kinds
        level_snapshots: Snapshots whose raw ladder inputs are selected
    """
    statement: Select
    column_labels: Tuple[Optional[str], ...]
    level_snapshots: Tuple[LevelSnapshot, ...]


# =============================================================================
# VALUE EXPRESSIONS
# =============================================================================

@dataclass(frozen=True)
class _Values:
    """Value expressions over the planned aliases of one request."""
    plan: JoinPlan
    joins: PlannedJoins
    tables: WikiTables

    def at(self, key: RequiredJoinKey, counter: CounterField) -> ColumnElement:
        """Cumulative value of `counter` in one snapshot; missing rows read as 0."""
        snapshot = self.joins.alias_for(key)
        return func.coalesce(snapshot.c[counter.to_date_column] + snapshot.c[counter.daily_column], 0)

    def until(
        self,
        dimension: Dimension,
        boundary: Boundary,
        day: Optional[date],
        counter: CounterField,
        discriminator: Optional[Discriminator] = None,
    ) -> ColumnElement:
        if day is None:
            return literal(0)
        return self.at(RequiredJoinKey(dimension, boundary, day, discriminator), counter)

    def window_end(self, dimension: Dimension, counter: CounterField, discriminator=None) -> ColumnElement:
        return self.until(dimension, Boundary.END, self.plan.end_date, counter, discriminator)

    def window_start(self, dimension: Dimension, counter: CounterField, discriminator=None) -> ColumnElement:
        return self.until(dimension, Boundary.BEFORE, self.plan.start_date, counter, discriminator)

    def over_span(
        self,
        dimension: Dimension,
        span: Span,
        counter: CounterField,
        discriminators: Sequence[Optional[Discriminator]] = (None,),
    ) -> ColumnElement:
        """Sum over discriminators of the span value (in period or since registration)."""
        parts = []
        for discriminator in discriminators:
            value = self.window_end(dimension, counter, discriminator)
            if span is Span.IN_PERIOD:
                value = value - self.window_start(dimension, counter, discriminator)
            parts.append(value)
        return functools.reduce(operator.add, parts)

    def over_bounds(
        self,
        bounds: Tuple[date, date],
        counter: CounterField,
        discriminators: Sequence[Optional[Discriminator]] = (None,),
    ) -> ColumnElement:
        first_day, last_day = bounds
        parts = [
            self.until(Dimension.ACTOR, Boundary.END, last_day, counter, discriminator)
            - self.until(Dimension.ACTOR, Boundary.BEFORE, first_day, counter, discriminator)
            for discriminator in discriminators
        ]
        return functools.reduce(operator.add, parts)

    def at_day(
        self,
        day: date,
        counter: CounterField,
        discriminators: Sequence[Optional[Discriminator]] = (None,),
    ) -> ColumnElement:
        parts = [
            self.until(Dimension.ACTOR, Boundary.END, day, counter, discriminator)
            for discriminator in discriminators
        ]
        return functools.reduce(operator.add, parts)

    def milestone_crossings(self, counter: CounterField, milestones: Sequence[int]) -> List[Tuple[ColumnElement, int]]:
        """(crossed-during-window condition, milestone) pairs in list order."""
        end_value = self.window_end(Dimension.ACTOR, counter)
        start_value = self.window_start(Dimension.ACTOR, counter)
        return [(and_(end_value >= milestone, start_value < milestone), milestone) for milestone in milestones]


def _ratio(numerator: ColumnElement, denominator: ColumnElement) -> ColumnElement:
    """Fraction with NULL for a zero denominator."""
    return cast(numerator, Float) / func.nullif(denominator, 0)


# =============================================================================
# COLUMN EXPRESSIONS
# =============================================================================

ColumnHandler = Callable[[_Values, ColumnSpec], Optional[ColumnElement]]


def _post_processed_column(values: _Values, column: ColumnSpec) -> Optional[ColumnElement]:
    return None


def _counter_with_ratio(
    values: _Values,
    column: ColumnSpec,
    discriminators: Sequence[Optional[Discriminator]],
) -> ColumnElement:
    definition = get_column_definition(column.type)
    actor_value = values.over_span(Dimension.ACTOR, definition.span, definition.counter, discriminators)
    if definition.ratio is Ratio.WIKI_TOTAL:
        wiki_value = values.over_span(Dimension.WIKI, definition.span, definition.counter, discriminators)
        return _ratio(actor_value, wiki_value)
    if definition.ratio is Ratio.OWN_TOTAL_EDITS:
        return _ratio(actor_value, values.over_span(Dimension.ACTOR, definition.span, EDITS))
    return actor_value


def _counter_column(values: _Values, column: ColumnSpec) -> ColumnElement:
    return _counter_with_ratio(values, column, (None,))


def _namespace_counter_column(values: _Values, column: ColumnSpec) -> ColumnElement:
    return _counter_with_ratio(values, column, namespace_discriminators(column.namespace))


def _change_tag_counter_column(values: _Values, column: ColumnSpec) -> ColumnElement:
    return _counter_with_ratio(values, column, change_tag_discriminators(column.change_tag))


def _log_counter_column(values: _Values, column: ColumnSpec) -> ColumnElement:
    return _counter_with_ratio(values, column, log_discriminators(column.log_filter))


def _log_date_column(values: _Values, column: ColumnSpec) -> ColumnElement:
    definition = get_column_definition(column.type)
    dates = []
    for discriminator in log_discriminators(column.log_filter):
        activity = values.joins.range_for(
            ActivityRangeKey(ActivitySource.LOG_FILTER, values.plan.end_date, discriminator)
        )
        if definition.first:
            dates.append(func.coalesce(activity.c.first_date, literal(NEVER_AFTER, Date)))
        else:
            dates.append(func.coalesce(activity.c.last_date, literal(NEVER_BEFORE, Date)))
    return least_date(*dates) if definition.first else greatest_date(*dates)


def _activity_range(values: _Values, column: ColumnSpec):
    definition = get_column_definition(column.type)
    return values.joins.range_for(ActivityRangeKey(definition.activity, values.plan.end_date))


def _activity_date_column(values: _Values, column: ColumnSpec) -> ColumnElement:
    activity = _activity_range(values, column)
    if get_column_definition(column.type).first:
        return activity.c.first_date
    return activity.c.last_date


def _activity_days_between_column(values: _Values, column: ColumnSpec) -> ColumnElement:
    activity = _activity_range(values, column)
    return days_between(activity.c.last_date, activity.c.first_date)


def _registration_date_column(values: _Values, column: ColumnSpec) -> ColumnElement:
    return values.tables.actor.c.registration_timestamp


def _days_since_registration_column(values: _Values, column: ColumnSpec) -> ColumnElement:
    return days_between(literal(values.plan.end_date, Date), values.tables.actor.c.registration_timestamp)


def _average_per_day_column(values: _Values, column: ColumnSpec) -> ColumnElement:
    definition = get_column_definition(column.type)
    total = values.over_span(Dimension.ACTOR, definition.span, definition.counter)
    active_days = values.over_span(Dimension.ACTOR, definition.span, ACTIVE_DAYS)
    return _ratio(total, active_days)


def _level_column(values: _Values, column: ColumnSpec) -> Optional[ColumnElement]:
    # Computed in post-processing from the raw ladder inputs
    return None


def _milestone_column(values: _Values, column: ColumnSpec) -> ColumnElement:
    crossings = values.milestone_crossings(get_column_definition(column.type).counter, column.milestones or ())
    if not crossings:
        return null()
    return case(*[(condition, literal(milestone)) for condition, milestone in crossings])


_COLUMN_HANDLERS: Dict[ColumnKind, ColumnHandler] = {
    ColumnKind.POST_PROCESSED: _post_processed_column,
    ColumnKind.COUNTER: _counter_column,
    ColumnKind.NAMESPACE_COUNTER: _namespace_counter_column,
    ColumnKind.CHANGE_TAG_COUNTER: _change_tag_counter_column,
    ColumnKind.LOG_COUNTER: _log_counter_column,
    ColumnKind.LOG_DATE: _log_date_column,
    ColumnKind.ACTIVITY_DATE: _activity_date_column,
    ColumnKind.ACTIVITY_DAYS_BETWEEN: _activity_days_between_column,
    ColumnKind.REGISTRATION_DATE: _registration_date_column,
    ColumnKind.DAYS_SINCE_REGISTRATION: _days_since_registration_column,
    ColumnKind.AVERAGE_PER_DAY: _average_per_day_column,
    ColumnKind.LEVEL: _level_column,
    ColumnKind.MILESTONE: _milestone_column,
}


# =============================================================================
# REQUIREMENT PREDICATES
# =============================================================================

RequirementHandler = Callable[[_Values, str, object], Optional[ColumnElement]]


def _registered_before_end(values: _Values) -> ColumnElement:
    """Registered no later than the last day of the window."""
    registration = values.tables.actor.c.registration_timestamp
    return registration < literal(values.plan.end_date + timedelta(days=1), Date)


def _registration_status(values: _Values, name: str, statuses) -> ColumnElement:
    actor = values.tables.actor
    options = []
    for status in statuses:
        if status == "registered":
            options.append(and_(actor.c.is_registered.is_(True), _registered_before_end(values)))
        else:
            options.append(actor.c.is_registered.is_(False))
    return or_(*options)


def _registration_age(values: _Values, name: str, days: int) -> ColumnElement:
    registration = values.tables.actor.c.registration_timestamp
    compare = _COMPARATORS[REQUIREMENT_DEFINITIONS[name].comparison]
    age = days_between(literal(values.plan.end_date, Date), registration)
    return and_(registration.is_not(None), _registered_before_end(values), compare(age, days))


def _in_groups_exists(values: _Values, groups):
    actor_groups = values.tables.actor_groups
    return (
        select(actor_groups.c.actor_id)
        .where(
            actor_groups.c.actor_id == values.tables.actor.c.actor_id,
            actor_groups.c.group_name.in_(groups),
        )
        .exists()
    )


def _in_user_groups(values: _Values, name: str, groups) -> ColumnElement:
    return _in_groups_exists(values, groups)


def _not_in_user_groups(values: _Values, name: str, groups) -> ColumnElement:
    return ~_in_groups_exists(values, groups)


def _has_template_exists(values: _Values, template_name: str):
    user_page_templates = values.tables.actor_user_page_templates
    templates = values.tables.templates
    return (
        select(user_page_templates.c.actor_id)
        .select_from(
            user_page_templates.join(
                templates, templates.c.template_page_id == user_page_templates.c.template_page_id
            )
        )
        .where(
            user_page_templates.c.actor_id == values.tables.actor.c.actor_id,
            templates.c.template_name == template_name,
        )
        .exists()
    )


def _has_templates(values: _Values, name: str, template_names) -> ColumnElement:
    return and_(*[_has_template_exists(values, template) for template in template_names])


def _has_no_templates(values: _Values, name: str, template_names) -> ColumnElement:
    return and_(*[~_has_template_exists(values, template) for template in template_names])


def _threshold(name: str, value: ColumnElement, count: int) -> ColumnElement:
    return _COMPARATORS[REQUIREMENT_DEFINITIONS[name].comparison](value, count)


def _total(values: _Values, name: str, threshold) -> Optional[ColumnElement]:
    day = resolve_epoch(threshold.epoch, values.plan.start_date, values.plan.end_date)
    if day is None:
        return None
    counter = REQUIREMENT_DEFINITIONS[name].counter
    return _threshold(name, values.at_day(day, counter), threshold.count)


def _in_period(values: _Values, name: str, threshold) -> Optional[ColumnElement]:
    bounds = period_bounds(threshold.period, threshold.epoch, values.plan.start_date, values.plan.end_date)
    if bounds is None:
        return None
    counter = REQUIREMENT_DEFINITIONS[name].counter
    return _threshold(name, values.over_bounds(bounds, counter), threshold.count)


def _milestone_in_period(values: _Values, name: str, milestones) -> Optional[ColumnElement]:
    if not milestones:
        return None
    crossings = values.milestone_crossings(REQUIREMENT_DEFINITIONS[name].counter, milestones)
    return or_(*[condition for condition, _ in crossings])


def _namespace_total(values: _Values, name: str, threshold) -> Optional[ColumnElement]:
    day = resolve_epoch(threshold.epoch, values.plan.start_date, values.plan.end_date)
    if day is None:
        return None
    counter = REQUIREMENT_DEFINITIONS[name].counter
    value = values.at_day(day, counter, namespace_discriminators(threshold.namespace))
    return _threshold(name, value, threshold.count)


def _namespace_in_period(values: _Values, name: str, threshold) -> Optional[ColumnElement]:
    bounds = period_bounds(threshold.period, threshold.epoch, values.plan.start_date, values.plan.end_date)
    if bounds is None:
        return None
    counter = REQUIREMENT_DEFINITIONS[name].counter
    value = values.over_bounds(bounds, counter, namespace_discriminators(threshold.namespace))
    return _threshold(name, value, threshold.count)


def _change_tag_total(values: _Values, name: str, threshold) -> Optional[ColumnElement]:
    day = resolve_epoch(threshold.epoch, values.plan.start_date, values.plan.end_date)
    if day is None:
        return None
    counter = REQUIREMENT_DEFINITIONS[name].counter
    value = values.at_day(day, counter, change_tag_discriminators(threshold.change_tag))
    return _threshold(name, value, threshold.count)


def _change_tag_in_period(values: _Values, name: str, threshold) -> Optional[ColumnElement]:
    bounds = period_bounds(threshold.period, threshold.epoch, values.plan.start_date, values.plan.end_date)
    if bounds is None:
        return None
    counter = REQUIREMENT_DEFINITIONS[name].counter
    value = values.over_bounds(bounds, counter, change_tag_discriminators(threshold.change_tag))
    return _threshold(name, value, threshold.count)


def _level_requirement(values: _Values, name: str, level_ids) -> Optional[ColumnElement]:
    # Applied after levels are computed
    return None


_REQUIREMENT_HANDLERS: Dict[RequirementKind, RequirementHandler] = {
    RequirementKind.REGISTRATION_STATUS: _registration_status,
    RequirementKind.REGISTRATION_AGE: _registration_age,
    RequirementKind.IN_USER_GROUPS: _in_user_groups,
    RequirementKind.NOT_IN_USER_GROUPS: _not_in_user_groups,
    RequirementKind.HAS_TEMPLATES: _has_templates,
    RequirementKind.HAS_NO_TEMPLATES: _has_no_templates,
    RequirementKind.TOTAL: _total,
    RequirementKind.IN_PERIOD: _in_period,
    RequirementKind.MILESTONE_IN_PERIOD: _milestone_in_period,
    RequirementKind.NAMESPACE_TOTAL: _namespace_total,
    RequirementKind.NAMESPACE_IN_PERIOD: _namespace_in_period,
    RequirementKind.CHANGE_TAG_TOTAL: _change_tag_total,
    RequirementKind.CHANGE_TAG_IN_PERIOD: _change_tag_in_period,
    RequirementKind.LEVEL: _level_requirement,
}

if set(_COLUMN_HANDLERS) != set(ColumnKind):
    raise RuntimeError("Column handlers out of sync with ColumnKind")
if set(_REQUIREMENT_HANDLERS) != set(RequirementKind):
    raise RuntimeError("Requirement handlers out of sync with RequirementKind")


# =============================================================================
# PUBLIC API
# =============================================================================

def _level_inputs(values: _Values) -> List[ColumnElement]:
    selected = []
    for snapshot in values.plan.level_snapshots:
        for suffix, counter in _LEVEL_INPUT_COUNTERS.items():
            selected.append(values.at(snapshot.join_key, counter).label(level_input_label(snapshot, suffix)))
    return selected


def build_statistics_query(
    plan: JoinPlan,
    joins: PlannedJoins,
    request: StatisticsRequest,
    tables: WikiTables,
) -> StatisticsQuery:
    """
    Build the Select of one request.

    PARAMETERS:
        plan: Output of analyze_request()
        joins: Output of plan_joins()
        request: The request the plan was built from
        tables: The wiki's tables

    RETURNS:
        StatisticsQuery. With no columns the statement selects actor_id
        (plus raw level inputs when a level requirement needs them).
    """
    values = _Values(plan=plan, joins=joins, tables=tables)
    actor = tables.actor

    selected: List[ColumnElement] = [actor.c.actor_id]
    predicates: List[ColumnElement] = []
    labels: List[Optional[str]] = []

    if request.columns:
        selected.append(actor.c.actor_name)

    for index, column in enumerate(request.columns):
        definition = get_column_definition(column.type)
        expression = _COLUMN_HANDLERS[definition.kind](values, column)
        if expression is None:
            labels.append(None)
            continue
        label = column_label(index)
        selected.append(expression.label(label))
        labels.append(label)
        if column.filter_by_rule == "moreThanZero":
            predicates.append(expression > 0)

    selected.extend(_level_inputs(values))

    requirements = request.requirements
    if requirements is not None:
        for name in requirements.present_fields():
            definition = REQUIREMENT_DEFINITIONS[name]
            predicate = _REQUIREMENT_HANDLERS[definition.kind](values, name, getattr(requirements, name))
            if predicate is not None:
                predicates.append(predicate)

    statement = select(*selected).select_from(joins.from_clause)
    if predicates:
        statement = statement.where(*predicates)
    statement = statement.order_by(actor.c.actor_id)

    logger.debug(
        f"[GENERATOR] wiki={request.wiki_id} columns={sum(1 for label in labels if label)} "
        f"predicates={len(predicates)} level_snapshots={len(plan.level_snapshots)}"
    )
    return StatisticsQuery(
        statement=statement,
        column_labels=tuple(labels),
        level_snapshots=plan.level_snapshots,
    )
