"""
Requirement/Column Analyzer
===========================

**Status**: Active

Walks the requested columns and the eligibility requirement once and
computes every as-of snapshot the final query must join, deduplicated.

WHY THIS FILE EXISTS
--------------------
The counter store is cumulative: "edits in 2023" is the difference between
the actor's snapshot as of 2023-12-31 and the snapshot strictly before
2023-01-01. Many columns and requirements need the *same* snapshot
("edits in period" and "reverted edits in period" both read the actor's
end-of-period row). Joining once per column would explode the query, so
the analyzer reduces everything to a set of `RequiredJoinKey`s first.

    Columns + Requirements + Window
                |
                v
         analyze_request()
                |
                v
    JoinPlan (frozen): join keys, activity ranges, level snapshots
                |
                v
         planner.plan_joins()

KEY SEMANTICS
-------------
- boundary END:    latest row with date <= target
- boundary BEFORE: latest row with date <  target (period start excluded)
- Keys compare by calendar day, so two requirements resolving to the same
  day share one join regardless of how they were expressed.
- With no startDate (timeless list) start-dependent keys are skipped; the
  generator reads such values as 0.

RELATED FILES
-------------
- wikistats/statistics/model.py: ColumnKind / RequirementKind registries
- wikistats/statistics/dates.py: Epoch resolution shared with the generator
- wikistats/statistics/planner.py: Turns keys into SQL joins
"""

from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Callable, Dict, Iterable, Optional, Tuple, Union

from wikistats.schema import Dimension, TableKind
from wikistats.statistics.dates import format_date_key, period_bounds, resolve_epoch
from wikistats.statistics.model import (
    REQUIREMENT_DEFINITIONS,
    ActivitySource,
    ColumnKind,
    LevelMoment,
    Ratio,
    RequirementKind,
    Span,
    get_column_definition,
)
from wikistats.statistics.query import (
    ChangeTagFilter,
    ColumnSpec,
    EligibilityRequirement,
    LogFilter,
    StatisticsRequest,
)

logger = logging.getLogger(__name__)


# =============================================================================
# DISCRIMINATORS
# =============================================================================

def _alias_safe(value: str) -> str:
    """Injective mapping of arbitrary text to [A-Za-z0-9_]."""
    return re.sub(r"[^A-Za-z0-9]", lambda m: f"_{ord(m.group()):x}_", value)


# Planner appends "_asof" (5 chars); 58 + 5 fits PostgreSQL (63) and MariaDB (64)
MAX_ALIAS_LENGTH = 58


def bounded_alias(name: str) -> str:
    """Shorten an over-long alias to a stable prefix plus a hash of the full name."""
    if len(name) <= MAX_ALIAS_LENGTH:
        return name
    digest = hashlib.sha256(name.encode("utf-8")).hexdigest()[:12]
    return f"{name[:MAX_ALIAS_LENGTH - len(digest) - 1]}_{digest}"


def _namespace_part(namespace: int) -> str:
    return f"Ns{namespace}" if namespace >= 0 else f"NsM{-namespace}"


@dataclass(frozen=True)
class NamespaceDiscriminator:
    namespace: int

    @property
    def table_kind(self) -> TableKind:
        return TableKind.NAMESPACE

    @property
    def alias_part(self) -> str:
        return _namespace_part(self.namespace)


@dataclass(frozen=True)
class ChangeTagDiscriminator:
    change_tag_id: int
    namespace: Optional[int] = None

    @property
    def table_kind(self) -> TableKind:
        return TableKind.CHANGE_TAG if self.namespace is None else TableKind.NAMESPACE_CHANGE_TAG

    @property
    def alias_part(self) -> str:
        part = f"Ct{self.change_tag_id}"
        if self.namespace is not None:
            part += _namespace_part(self.namespace)
        return part

    @classmethod
    def from_filter(cls, change_tag: ChangeTagFilter) -> "ChangeTagDiscriminator":
        return cls(change_tag_id=change_tag.change_tag_id, namespace=change_tag.namespace)


@dataclass(frozen=True)
class LogDiscriminator:
    log_type: Optional[str] = None
    log_action: Optional[str] = None

    @property
    def table_kind(self) -> TableKind:
        if self.log_type is not None and self.log_action is not None:
            return TableKind.LOG_TYPE_ACTION
        if self.log_type is not None:
            return TableKind.LOG_TYPE
        return TableKind.LOG_ACTION

    @property
    def alias_part(self) -> str:
        part = ""
        if self.log_type is not None:
            part += f"Lt{_alias_safe(self.log_type)}"
        if self.log_action is not None:
            part += f"La{_alias_safe(self.log_action)}"
        return part

    @classmethod
    def from_filter(cls, log_filter: LogFilter) -> "LogDiscriminator":
        return cls(log_type=log_filter.log_type, log_action=log_filter.log_action)


Discriminator = Union[NamespaceDiscriminator, ChangeTagDiscriminator, LogDiscriminator]


# =============================================================================
# KEYS
# =============================================================================

class Boundary(Enum):
    """Which side of the target date a snapshot join resolves to."""
    END = "End"          # date <= target
    BEFORE = "Before"    # date < target


@dataclass(frozen=True)
class RequiredJoinKey:
    """
    One as-of snapshot join. Equal keys share one join alias.

    PARAMETERS:
        dimension: actor or wiki
        boundary: END (<=) or BEFORE (<)
        date: Target calendar day
        discriminator: Optional namespace / change tag / log filter scope
    """
    dimension: Dimension
    boundary: Boundary
    date: date
    discriminator: Optional[Discriminator] = None

    @property
    def table_kind(self) -> TableKind:
        return TableKind.DAILY if self.discriminator is None else self.discriminator.table_kind

    @property
    def alias_name(self) -> str:
        """Deterministic alias, e.g. actorBefore_Ns0_20230101."""
        name = f"{self.dimension.value}{self.boundary.value}"
        if self.discriminator is not None:
            name += f"_{self.discriminator.alias_part}"
        return bounded_alias(f"{name}_{format_date_key(self.date)}")


@dataclass(frozen=True)
class ActivityRangeKey:
    """First/last active day of an actor up to `date` (edits, log events, or one log filter)."""
    source: ActivitySource
    date: date
    discriminator: Optional[LogDiscriminator] = None

    @property
    def alias_name(self) -> str:
        prefix = {
            ActivitySource.EDITS: "editDates",
            ActivitySource.LOG_EVENTS: "logEventDates",
            ActivitySource.LOG_FILTER: "logDates",
        }[self.source]
        if self.discriminator is not None:
            prefix += f"_{self.discriminator.alias_part}"
        return bounded_alias(f"{prefix}_{format_date_key(self.date)}")


@dataclass(frozen=True)
class LevelSnapshot:
    """Actor snapshot whose ladder inputs (edits, log events, active days) are selected raw."""
    boundary: Boundary
    date: date

    @property
    def join_key(self) -> RequiredJoinKey:
        return RequiredJoinKey(Dimension.ACTOR, self.boundary, self.date)

    @property
    def label_prefix(self) -> str:
        return f"level{self.boundary.value}_{format_date_key(self.date)}"


# =============================================================================
# JOIN PLAN
# =============================================================================

@dataclass(frozen=True)
class JoinPlan:
    """
    Immutable output of the analyzer.

    WHAT: Every snapshot, activity range and level input the query needs,
          each exactly once, in first-seen order.

    WHY: Planner and generator are pure functions of this value; nothing
         downstream mutates shared state.
    """
    start_date: Optional[date]
    end_date: date
    join_keys: Tuple[RequiredJoinKey, ...]
    activity_ranges: Tuple[ActivityRangeKey, ...]
    level_snapshots: Tuple[LevelSnapshot, ...]

    def needs_period_start(self, dimension: Dimension) -> bool:
        return any(k.dimension is dimension and k.boundary is Boundary.BEFORE for k in self.join_keys)

    def needs_period_end(self, dimension: Dimension) -> bool:
        return any(k.dimension is dimension and k.boundary is Boundary.END for k in self.join_keys)

    def level_snapshot(self, boundary: Boundary, day: Optional[date]) -> Optional[LevelSnapshot]:
        if day is None:
            return None
        wanted = LevelSnapshot(boundary, day)
        return wanted if wanted in self.level_snapshots else None


class _PlanCollector:
    """Ordered, deduplicating accumulator local to one analyze_request() call."""

    def __init__(self, start_date: Optional[date], end_date: date):
        self.start_date = start_date
        self.end_date = end_date
        self._keys: Dict[RequiredJoinKey, None] = {}
        self._ranges: Dict[ActivityRangeKey, None] = {}
        self._levels: Dict[LevelSnapshot, None] = {}

    def snapshot(
        self,
        dimension: Dimension,
        boundary: Boundary,
        day: Optional[date],
        discriminator: Optional[Discriminator] = None,
    ) -> None:
        if day is None:
            return
        self._keys.setdefault(RequiredJoinKey(dimension, boundary, day, discriminator), None)

    def span(
        self,
        dimension: Dimension,
        span: Span,
        discriminator: Optional[Discriminator] = None,
    ) -> None:
        """Snapshots for a value over the request window."""
        if span is Span.IN_PERIOD:
            self.snapshot(dimension, Boundary.BEFORE, self.start_date, discriminator)
        self.snapshot(dimension, Boundary.END, self.end_date, discriminator)

    def window(
        self,
        dimension: Dimension,
        bounds: Optional[Tuple[date, date]],
        discriminator: Optional[Discriminator] = None,
    ) -> None:
        """Snapshots for a value over an explicit requirement window."""
        if bounds is None:
            return
        first_day, last_day = bounds
        self.snapshot(dimension, Boundary.BEFORE, first_day, discriminator)
        self.snapshot(dimension, Boundary.END, last_day, discriminator)

    def activity_range(self, source: ActivitySource, discriminator: Optional[LogDiscriminator] = None) -> None:
        self._ranges.setdefault(ActivityRangeKey(source, self.end_date, discriminator), None)

    def level(self, boundary: Boundary, day: Optional[date]) -> None:
        if day is None:
            return
        snapshot = LevelSnapshot(boundary, day)
        self._levels.setdefault(snapshot, None)
        self._keys.setdefault(snapshot.join_key, None)

    def build(self) -> JoinPlan:
        return JoinPlan(
            start_date=self.start_date,
            end_date=self.end_date,
            join_keys=tuple(self._keys),
            activity_ranges=tuple(self._ranges),
            level_snapshots=tuple(self._levels),
        )


# =============================================================================
# COLUMN ANALYSIS
# =============================================================================

def namespace_discriminators(namespaces: Iterable[int]) -> Tuple[NamespaceDiscriminator, ...]:
    return tuple(NamespaceDiscriminator(ns) for ns in namespaces)


def change_tag_discriminators(change_tags: Iterable[ChangeTagFilter]) -> Tuple[ChangeTagDiscriminator, ...]:
    return tuple(ChangeTagDiscriminator.from_filter(ct) for ct in change_tags)


def log_discriminators(log_filters: Iterable[LogFilter]) -> Tuple[LogDiscriminator, ...]:
    return tuple(LogDiscriminator.from_filter(lf) for lf in log_filters)


def _analyze_post_processed(column: ColumnSpec, plan: _PlanCollector) -> None:
    return None


def _analyze_counter(column: ColumnSpec, plan: _PlanCollector) -> None:
    definition = get_column_definition(column.type)
    plan.span(Dimension.ACTOR, definition.span)
    if definition.ratio is Ratio.WIKI_TOTAL:
        plan.span(Dimension.WIKI, definition.span)


def _analyze_namespace_counter(column: ColumnSpec, plan: _PlanCollector) -> None:
    definition = get_column_definition(column.type)
    for discriminator in namespace_discriminators(column.namespace or ()):
        plan.span(Dimension.ACTOR, definition.span, discriminator)
        if definition.ratio is Ratio.WIKI_TOTAL:
            plan.span(Dimension.WIKI, definition.span, discriminator)
    if definition.ratio is Ratio.OWN_TOTAL_EDITS:
        plan.span(Dimension.ACTOR, definition.span)


def _analyze_change_tag_counter(column: ColumnSpec, plan: _PlanCollector) -> None:
    definition = get_column_definition(column.type)
    for discriminator in change_tag_discriminators(column.change_tag or ()):
        plan.span(Dimension.ACTOR, definition.span, discriminator)


def _analyze_log_counter(column: ColumnSpec, plan: _PlanCollector) -> None:
    definition = get_column_definition(column.type)
    for discriminator in log_discriminators(column.log_filter or ()):
        plan.span(Dimension.ACTOR, definition.span, discriminator)


def _analyze_log_date(column: ColumnSpec, plan: _PlanCollector) -> None:
    for discriminator in log_discriminators(column.log_filter or ()):
        plan.activity_range(ActivitySource.LOG_FILTER, discriminator)


def _analyze_activity_range(column: ColumnSpec, plan: _PlanCollector) -> None:
    plan.activity_range(get_column_definition(column.type).activity)


def _analyze_registration(column: ColumnSpec, plan: _PlanCollector) -> None:
    return None


def _analyze_average(column: ColumnSpec, plan: _PlanCollector) -> None:
    plan.span(Dimension.ACTOR, get_column_definition(column.type).span)


def _analyze_level(column: ColumnSpec, plan: _PlanCollector) -> None:
    moment = get_column_definition(column.type).level_moment
    if moment in (LevelMoment.START, LevelMoment.END_WITH_CHANGE):
        plan.level(Boundary.BEFORE, plan.start_date)
    if moment is not LevelMoment.START:
        plan.level(Boundary.END, plan.end_date)


def _analyze_milestone(column: ColumnSpec, plan: _PlanCollector) -> None:
    plan.span(Dimension.ACTOR, Span.IN_PERIOD)


_COLUMN_ANALYZERS: Dict[ColumnKind, Callable[[ColumnSpec, _PlanCollector], None]] = {
    ColumnKind.POST_PROCESSED: _analyze_post_processed,
    ColumnKind.COUNTER: _analyze_counter,
    ColumnKind.NAMESPACE_COUNTER: _analyze_namespace_counter,
    ColumnKind.CHANGE_TAG_COUNTER: _analyze_change_tag_counter,
    ColumnKind.LOG_COUNTER: _analyze_log_counter,
    ColumnKind.LOG_DATE: _analyze_log_date,
    ColumnKind.ACTIVITY_DATE: _analyze_activity_range,
    ColumnKind.ACTIVITY_DAYS_BETWEEN: _analyze_activity_range,
    ColumnKind.REGISTRATION_DATE: _analyze_registration,
    ColumnKind.DAYS_SINCE_REGISTRATION: _analyze_registration,
    ColumnKind.AVERAGE_PER_DAY: _analyze_average,
    ColumnKind.LEVEL: _analyze_level,
    ColumnKind.MILESTONE: _analyze_milestone,
}


# =============================================================================
# REQUIREMENT ANALYSIS
# =============================================================================

def _analyze_no_snapshot(name: str, value, plan: _PlanCollector) -> None:
    return None


def _analyze_total(name: str, value, plan: _PlanCollector) -> None:
    plan.snapshot(
        Dimension.ACTOR, Boundary.END,
        resolve_epoch(value.epoch, plan.start_date, plan.end_date),
    )


def _analyze_in_period(name: str, value, plan: _PlanCollector) -> None:
    plan.window(Dimension.ACTOR, period_bounds(value.period, value.epoch, plan.start_date, plan.end_date))


def _analyze_milestone_in_period(name: str, value, plan: _PlanCollector) -> None:
    if value:
        plan.span(Dimension.ACTOR, Span.IN_PERIOD)


def _analyze_namespace_total(name: str, value, plan: _PlanCollector) -> None:
    day = resolve_epoch(value.epoch, plan.start_date, plan.end_date)
    for discriminator in namespace_discriminators(value.namespace):
        plan.snapshot(Dimension.ACTOR, Boundary.END, day, discriminator)


def _analyze_namespace_in_period(name: str, value, plan: _PlanCollector) -> None:
    bounds = period_bounds(value.period, value.epoch, plan.start_date, plan.end_date)
    for discriminator in namespace_discriminators(value.namespace):
        plan.window(Dimension.ACTOR, bounds, discriminator)


def _analyze_change_tag_total(name: str, value, plan: _PlanCollector) -> None:
    day = resolve_epoch(value.epoch, plan.start_date, plan.end_date)
    for discriminator in change_tag_discriminators(value.change_tag):
        plan.snapshot(Dimension.ACTOR, Boundary.END, day, discriminator)


def _analyze_change_tag_in_period(name: str, value, plan: _PlanCollector) -> None:
    bounds = period_bounds(value.period, value.epoch, plan.start_date, plan.end_date)
    for discriminator in change_tag_discriminators(value.change_tag):
        plan.window(Dimension.ACTOR, bounds, discriminator)


def _analyze_level_requirement(name: str, value, plan: _PlanCollector) -> None:
    plan.level(Boundary.END, plan.end_date)
    if REQUIREMENT_DEFINITIONS[name].changed:
        plan.level(Boundary.BEFORE, plan.start_date)


_REQUIREMENT_ANALYZERS: Dict[RequirementKind, Callable[[str, object, _PlanCollector], None]] = {
    RequirementKind.REGISTRATION_STATUS: _analyze_no_snapshot,
    RequirementKind.REGISTRATION_AGE: _analyze_no_snapshot,
    RequirementKind.IN_USER_GROUPS: _analyze_no_snapshot,
    RequirementKind.NOT_IN_USER_GROUPS: _analyze_no_snapshot,
    RequirementKind.HAS_TEMPLATES: _analyze_no_snapshot,
    RequirementKind.HAS_NO_TEMPLATES: _analyze_no_snapshot,
    RequirementKind.TOTAL: _analyze_total,
    RequirementKind.IN_PERIOD: _analyze_in_period,
    RequirementKind.MILESTONE_IN_PERIOD: _analyze_milestone_in_period,
    RequirementKind.NAMESPACE_TOTAL: _analyze_namespace_total,
    RequirementKind.NAMESPACE_IN_PERIOD: _analyze_namespace_in_period,
    RequirementKind.CHANGE_TAG_TOTAL: _analyze_change_tag_total,
    RequirementKind.CHANGE_TAG_IN_PERIOD: _analyze_change_tag_in_period,
    RequirementKind.LEVEL: _analyze_level_requirement,
}

if set(_COLUMN_ANALYZERS) != set(ColumnKind):
    raise RuntimeError("Column analyzers out of sync with ColumnKind")
if set(_REQUIREMENT_ANALYZERS) != set(RequirementKind):
    raise RuntimeError("Requirement analyzers out of sync with RequirementKind")


# =============================================================================
# PUBLIC API
# =============================================================================

def analyze_request(request: StatisticsRequest) -> JoinPlan:
    """
    Compute the deduplicated join plan of a request.

    PARAMETERS:
        request: Parsed statistics request

    RETURNS:
        JoinPlan with every snapshot join, activity range and level
        snapshot needed by the columns and requirements

    EXAMPLE:
        Two columns "editsInPeriod" and "revertedEditsInPeriod" over
        2023-01-01..2023-12-31 produce exactly two keys:
        actorBefore_20230101 and actorEnd_20231231.
    """
    plan = _PlanCollector(request.start_date, request.end_date)

    for column in request.columns:
        kind = get_column_definition(column.type).kind
        _COLUMN_ANALYZERS[kind](column, plan)

    requirements: Optional[EligibilityRequirement] = request.requirements
    if requirements is not None:
        for name in requirements.present_fields():
            definition = REQUIREMENT_DEFINITIONS[name]
            _REQUIREMENT_ANALYZERS[definition.kind](name, getattr(requirements, name), plan)

    result = plan.build()
    logger.debug(
        f"[ANALYZER] wiki={request.wiki_id} joins={len(result.join_keys)} "
        f"ranges={len(result.activity_ranges)} levels={len(result.level_snapshots)}"
    )
    return result
