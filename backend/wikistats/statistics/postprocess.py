"""
Result Post-Processor
=====================

**Status**: Active

Turns the raw rows of the statistics query into typed, sorted, numbered
`ActorResult`s.

WHY THIS FILE EXISTS
--------------------
Some of what a list shows cannot be computed in SQL:

    - service-award levels need the ladder (a per-wiki JSON file)
    - `hasLevel` / `hasLevelAndChanged` filter on those levels
    - the row counter skips bots, which needs the actor's groups
    - sorting must also work on level columns and be identical across
      database engines (NULL ordering, collation)

PIPELINE
--------
Stages run in this order:

    1. compute levels          per level snapshot selected by the generator
    2. fill level columns      [id, label] / [id, label, changed] / sort order
    3. level requirements      drop rows failing hasLevel / hasLevelAndChanged
    4. coerce values           numbers, dates (sentinels -> None)
    5. sort                    orderBy, None last, name tiebreak
    6. number and truncate     counter column, bots, itemCount

Groups are attached lazily. No SQL LIMIT can be applied (levels filter and
sort in memory), so a top-100 list may hold every qualifying actor of the
wiki; groups are therefore loaded in batches of GROUP_BATCH_SIZE rows while
numbering walks the sorted rows, and only for all rows when an orderBy
targets a userGroups column.

RELATED FILES
-------------
- wikistats/statistics/generator.py: Output labels read here
- wikistats/statistics/levels.py: compute_level()
- wikistats/statistics/compiler.py: Orchestration
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field as dataclass_field
from datetime import date
from decimal import Decimal
from functools import cmp_to_key
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from wikistats.config import get_settings
from wikistats.statistics.analyzer import Boundary, LevelSnapshot
from wikistats.statistics.dates import encode_date, to_date
from wikistats.statistics.generator import StatisticsQuery, level_input_label
from wikistats.statistics.levels import NO_LEVEL, LevelResult, compute_level
from wikistats.statistics.model import ColumnType, LevelMoment, ValueType, get_column_definition
from wikistats.statistics.query import ServiceAwardLevel, StatisticsRequest

logger = logging.getLogger(__name__)

GroupLoader = Callable[[Sequence[int]], Mapping[int, List[str]]]

# Rows whose groups are fetched per lookup while numbering
GROUP_BATCH_SIZE = 1000


# =============================================================================
# RESULT TYPES
# =============================================================================

@dataclass
class ActorResult:
    """
    One output row.

    PARAMETERS:
        actor_id: Actor primary key
        name: Actor name
        groups: User groups of the actor
        column_data: One value per requested column, in request order.
            Dates are `datetime.date`; levels are lists; the counter is an
            int or "" for skipped bots.
    """
    actor_id: int
    name: str
    groups: List[str]
    column_data: List[Any]

    def to_dict(self) -> Dict[str, Any]:
        """Wire shape; dates become [year, month (0-based), day]."""
        return {
            "actorId": self.actor_id,
            "name": self.name,
            "groups": list(self.groups),
            "columnData": [
                encode_date(value) if isinstance(value, date) else value
                for value in self.column_data
            ],
        }


@dataclass
class _WorkingRow:
    actor_id: int
    name: str
    raw: Mapping[str, Any]
    values: List[Any]
    # None until loaded
    groups: Optional[List[str]] = None
    levels: Dict[LevelSnapshot, LevelResult] = dataclass_field(default_factory=dict)
    # Comparable value per column index when it differs from the displayed one
    sort_values: Dict[int, Any] = dataclass_field(default_factory=dict)


# =============================================================================
# COERCION
# =============================================================================

def parse_number(value: Any) -> Optional[float]:
    """
    Normalize a driver value to int or float.

    Strings and Decimals become float when they carry a decimal point or an
    exponent, int otherwise. Anything unparseable becomes None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, (str, Decimal)):
        text = str(value).strip()
        try:
            if "." in text or "e" in text.lower():
                return float(text)
            return int(text)
        except ValueError:
            return None
    return None


def _coerce(value: Any, value_type: ValueType) -> Any:
    if value_type in (ValueType.INTEGER, ValueType.FLOAT):
        return parse_number(value)
    if value_type is ValueType.DATE:
        return to_date(value)
    return value


# =============================================================================
# STAGES
# =============================================================================

def _start_snapshot(request: StatisticsRequest) -> Optional[LevelSnapshot]:
    if request.start_date is None:
        return None
    return LevelSnapshot(Boundary.BEFORE, request.start_date)


def _end_snapshot(request: StatisticsRequest) -> LevelSnapshot:
    return LevelSnapshot(Boundary.END, request.end_date)


def _level_at(row: _WorkingRow, snapshot: Optional[LevelSnapshot]) -> LevelResult:
    if snapshot is None:
        return NO_LEVEL
    return row.levels.get(snapshot, NO_LEVEL)


def _int_or_zero(value: Any) -> int:
    parsed = parse_number(value)
    return int(parsed) if parsed is not None else 0


def _make_rows(raw_rows: Iterable[Mapping[str, Any]], request: StatisticsRequest) -> List[_WorkingRow]:
    return [
        _WorkingRow(
            actor_id=raw["actor_id"],
            name=raw.get("actor_name") or "",
            raw=raw,
            values=[None] * len(request.columns),
        )
        for raw in raw_rows
    ]


def attach_groups(rows: Sequence[_WorkingRow], groups: Mapping[int, List[str]]) -> None:
    for row in rows:
        row.groups = list(groups.get(row.actor_id, ()))


def _mapping_loader(groups: Mapping[int, List[str]]) -> GroupLoader:
    def load(actor_ids: Sequence[int]) -> Mapping[int, List[str]]:
        return groups
    return load


def load_missing_groups(rows: Sequence[_WorkingRow], load_groups: Optional[GroupLoader]) -> None:
    """Attach groups to the rows that have none yet, in one loader call."""
    missing = [row for row in rows if row.groups is None]
    if not missing:
        return
    loaded = load_groups([row.actor_id for row in missing]) if load_groups else {}
    attach_groups(missing, loaded)


def fill_group_columns(rows: Iterable[_WorkingRow], request: StatisticsRequest) -> None:
    positions = [index for index, column in enumerate(request.columns) if column.type is ColumnType.USER_GROUPS]
    for row in rows:
        for index in positions:
            row.values[index] = list(row.groups) if row.groups is not None else None


def compute_levels(
    rows: List[_WorkingRow],
    level_snapshots: Sequence[LevelSnapshot],
    ladder: Optional[Sequence[ServiceAwardLevel]],
) -> None:
    if level_snapshots and not ladder:
        logger.debug(f"[LEVELS] No ladder; {len(rows)} rows get no level")
    for row in rows:
        for snapshot in level_snapshots:
            contributions = (
                _int_or_zero(row.raw.get(level_input_label(snapshot, "edits")))
                + _int_or_zero(row.raw.get(level_input_label(snapshot, "logEvents")))
            )
            active_days = _int_or_zero(row.raw.get(level_input_label(snapshot, "activeDays")))
            row.levels[snapshot] = compute_level(ladder, contributions, active_days)


def _level_pair(result: LevelResult) -> Optional[List[str]]:
    if result.level is None:
        return None
    return [result.level.id, result.level.label]


def fill_level_columns(rows: List[_WorkingRow], request: StatisticsRequest) -> None:
    start, end = _start_snapshot(request), _end_snapshot(request)
    for index, column in enumerate(request.columns):
        moment = get_column_definition(column.type).level_moment
        if moment is None:
            continue
        for row in rows:
            start_level, end_level = _level_at(row, start), _level_at(row, end)
            if moment is LevelMoment.START:
                row.values[index] = _level_pair(start_level)
                row.sort_values[index] = start_level.sort_order
            elif moment is LevelMoment.END:
                row.values[index] = _level_pair(end_level)
                row.sort_values[index] = end_level.sort_order
            elif moment is LevelMoment.END_WITH_CHANGE:
                pair = _level_pair(end_level)
                row.values[index] = None if pair is None else [*pair, start_level.level_id != end_level.level_id]
                row.sort_values[index] = end_level.sort_order
            else:
                row.values[index] = end_level.sort_order


def apply_level_requirements(rows: List[_WorkingRow], request: StatisticsRequest) -> List[_WorkingRow]:
    requirements = request.requirements
    if requirements is None or (requirements.has_level is None and requirements.has_level_and_changed is None):
        return rows

    start, end = _start_snapshot(request), _end_snapshot(request)
    kept = []
    for row in rows:
        end_id = _level_at(row, end).level_id
        start_id = _level_at(row, start).level_id
        if requirements.has_level is not None and end_id not in requirements.has_level:
            continue
        if requirements.has_level_and_changed is not None and (
            end_id not in requirements.has_level_and_changed or start_id == end_id
        ):
            continue
        kept.append(row)

    logger.debug(f"[POSTPROCESS] level requirements kept {len(kept)}/{len(rows)} rows")
    return kept


def coerce_values(rows: List[_WorkingRow], request: StatisticsRequest, query: StatisticsQuery) -> None:
    for index, column in enumerate(request.columns):
        label = query.column_labels[index]
        value_type = get_column_definition(column.type).value_type
        for row in rows:
            if column.type is ColumnType.USER_NAME:
                row.values[index] = row.name
            elif label is not None:
                row.values[index] = _coerce(row.raw.get(label), value_type)


# =============================================================================
# SORTING
# =============================================================================

def _compare_present(left: Any, right: Any) -> int:
    """Compare two non-None values, dispatching on the left operand.

    Level columns never get here as lists; their sort_values hold the
    numeric level sort order.
    """
    if isinstance(left, str):
        left, right = left.casefold(), str(right).casefold()
    return (left > right) - (left < right)


def _row_comparator(keys: Sequence[tuple]):
    def compare(a: _WorkingRow, b: _WorkingRow) -> int:
        for index, descending in keys:
            left = a.sort_values.get(index, a.values[index])
            right = b.sort_values.get(index, b.values[index])
            if left is None and right is None:
                continue
            # None sorts last in both directions
            if left is None:
                return 1
            if right is None:
                return -1
            result = _compare_present(left, right)
            if result:
                return -result if descending else result
        result = _compare_present(a.name, b.name)
        if result:
            return result
        return (a.actor_id > b.actor_id) - (a.actor_id < b.actor_id)

    return compare


def _column_positions(request: StatisticsRequest) -> Dict[str, int]:
    positions: Dict[str, int] = {}
    for index, column_id in enumerate(request.column_ids()):
        positions.setdefault(column_id, index)
    return positions


def sorts_by_groups(request: StatisticsRequest) -> bool:
    positions = _column_positions(request)
    return any(
        order.column_id in positions
        and request.columns[positions[order.column_id]].type is ColumnType.USER_GROUPS
        for order in request.order_by
    )


def sort_rows(rows: List[_WorkingRow], request: StatisticsRequest) -> List[_WorkingRow]:
    """Stable multi-key sort by orderBy; unknown column ids are ignored."""
    positions = _column_positions(request)

    keys = []
    for order in request.order_by:
        if order.column_id not in positions:
            logger.warning(f"[POSTPROCESS] orderBy references unknown column '{order.column_id}', ignored")
            continue
        keys.append((positions[order.column_id], order.direction == "desc"))

    return sorted(rows, key=cmp_to_key(_row_comparator(keys)))


# =============================================================================
# COUNTER AND TRUNCATION
# =============================================================================

def _is_bot(row: _WorkingRow, flagless_bots: Iterable[str]) -> bool:
    return get_settings().BOT_GROUP_NAME in row.groups or row.name in flagless_bots


def number_and_truncate(
    rows: List[_WorkingRow],
    request: StatisticsRequest,
    flagless_bots: Iterable[str] = (),
    load_groups: Optional[GroupLoader] = None,
) -> List[ActorResult]:
    """
    Fill counter columns and stop after the itemCount-th numbered row.

    With skipBotsFromCounting, bots get "" and do not consume a number; a
    bot following the last numbered row is not included. Rows without
    groups get them from `load_groups`, GROUP_BATCH_SIZE rows at a time,
    so rows past the cut are never looked up.
    """
    flagless = frozenset(flagless_bots)
    counter_positions = [
        index for index, column in enumerate(request.columns) if column.type is ColumnType.COUNTER
    ]
    limit = request.item_count or 0

    results: List[ActorResult] = []
    counter = 0
    for position, row in enumerate(rows):
        if limit and counter >= limit:
            break
        if row.groups is None:
            load_missing_groups(rows[position:position + GROUP_BATCH_SIZE], load_groups)
        fill_group_columns([row], request)
        if request.skip_bots_from_counting and _is_bot(row, flagless):
            number: Any = ""
        else:
            counter += 1
            number = counter
        for index in counter_positions:
            row.values[index] = number
        results.append(
            ActorResult(actor_id=row.actor_id, name=row.name, groups=row.groups, column_data=row.values)
        )
    return results


# =============================================================================
# PUBLIC API
# =============================================================================

def postprocess_rows(
    raw_rows: Iterable[Mapping[str, Any]],
    query: StatisticsQuery,
    request: StatisticsRequest,
    *,
    groups: Optional[Mapping[int, List[str]]] = None,
    load_groups: Optional[GroupLoader] = None,
    ladder: Optional[Sequence[ServiceAwardLevel]] = None,
    flagless_bots: Iterable[str] = (),
) -> List[ActorResult]:
    """
    Run every post-processing stage.

    PARAMETERS:
        raw_rows: Mappings returned by execute_statistics_query()
        query: Generator output (labels and level snapshots)
        request: The request
        groups: actor_id -> groups, when already known
        load_groups: Called with actor ids to fetch their groups on demand
            (used when `groups` is not given)
        ladder: Service-award ladder, or None
        flagless_bots: Bot account names without the bot group

    RETURNS:
        Sorted, numbered, truncated ActorResults
    """
    if groups is not None:
        load_groups = _mapping_loader(groups)

    rows = _make_rows(raw_rows, request)
    compute_levels(rows, query.level_snapshots, ladder)
    fill_level_columns(rows, request)
    rows = apply_level_requirements(rows, request)
    coerce_values(rows, request, query)
    if sorts_by_groups(request):
        load_missing_groups(rows, load_groups)
        fill_group_columns(rows, request)
    rows = sort_rows(rows, request)
    results = number_and_truncate(rows, request, flagless_bots, load_groups)
    logger.debug(f"[POSTPROCESS] {len(results)} results for wiki={request.wiki_id}")
    return results


def filter_actor_ids(
    raw_rows: Iterable[Mapping[str, Any]],
    query: StatisticsQuery,
    request: StatisticsRequest,
    ladder: Optional[Sequence[ServiceAwardLevel]] = None,
) -> List[int]:
    """No-columns mode with level requirements: ids of the rows that pass them."""
    rows = _make_rows(raw_rows, request)
    compute_levels(rows, query.level_snapshots, ladder)
    return [row.actor_id for row in apply_level_requirements(rows, request)]
