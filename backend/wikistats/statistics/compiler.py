"""
Statistics Query Compiler
=========================

**Status**: Active

Entry point of the package: compiles a `StatisticsRequest` into one SQL
query, executes it, and post-processes the rows.

WHY THIS FILE EXISTS
--------------------
Each stage is a pure function of the previous stage's output. This module
wires them together, owns the database error boundary, and times every
stage:

    StatisticsRequest
        |  analyze_request()         JoinPlan
        |  plan_joins()              PlannedJoins
        |  build_statistics_query()  StatisticsQuery
        |  execute_statistics_query() raw rows
        |  postprocess_rows()        List[ActorResult] (groups fetched on demand)
        v
    results (or List[int] of actor ids with no columns)

COMPILATION MODES
-----------------
1. Columns: full pipeline, returns ActorResults
2. No columns: returns the qualifying actor ids (used by user pyramids).
   Level requirements are still honoured.

ERROR HANDLING
--------------
Any SQLAlchemyError is logged with the SQL (logs only) and re-raised as
StatisticsQueryError chained from the original. There is no retry and no
partial result.

RELATED FILES
-------------
- wikistats/statistics/analyzer.py, planner.py, generator.py: Query building
- wikistats/statistics/executor.py: Database access
- wikistats/statistics/postprocess.py: Row processing
- wikistats/configuration/service_award.py: Default ladder
- wikistats/configuration/known_wikis.py: Default flagless bots
- wikistats/pyramids.py: Uses the no-columns mode
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from sqlalchemy.exc import SQLAlchemyError

from wikistats.configuration.known_wikis import get_known_wiki, known_wikis_path
from wikistats.configuration.service_award import read_service_award_levels
from wikistats.schema import TableNamingStrategy, default_table_name, get_wiki_tables
from wikistats.statistics.analyzer import analyze_request
from wikistats.statistics.errors import StatisticsQueryError
from wikistats.statistics.executor import (
    Executable,
    execute_statistics_query,
    fetch_actor_groups,
    fetch_actor_ids,
)
from wikistats.statistics.generator import build_statistics_query
from wikistats.statistics.model import ColumnKind, RequirementKind, REQUIREMENT_DEFINITIONS, get_column_definition
from wikistats.statistics.planner import plan_joins
from wikistats.statistics.postprocess import ActorResult, filter_actor_ids, postprocess_rows
from wikistats.statistics.query import ServiceAwardLevel, StatisticsRequest
from wikistats.statistics.telemetry import StageTimer

logger = logging.getLogger(__name__)


def _needs_levels(request: StatisticsRequest) -> bool:
    if any(get_column_definition(column.type).kind is ColumnKind.LEVEL for column in request.columns):
        return True
    if request.requirements is None:
        return False
    return any(
        REQUIREMENT_DEFINITIONS[name].kind is RequirementKind.LEVEL
        for name in request.requirements.present_fields()
    )


def resolve_ladder(
    request: StatisticsRequest,
    resources_path: Optional[str] = None,
) -> Optional[Sequence[ServiceAwardLevel]]:
    """Ladder from the request, else from the wiki's configuration file when levels are used."""
    if request.service_award_levels is not None:
        return request.service_award_levels
    if not _needs_levels(request):
        return None
    ladder = read_service_award_levels(request.wiki_id, resources_path)
    if ladder is None:
        logger.warning(f"[STATS] No service award ladder for wiki={request.wiki_id}; levels will be empty")
    return ladder


def resolve_flagless_bots(
    request: StatisticsRequest,
    resources_path: Optional[str] = None,
) -> Tuple[str, ...]:
    """Bot names without the bot group, from knownWikis.json, when bots are skipped from counting."""
    if not request.skip_bots_from_counting:
        return ()
    if not known_wikis_path(resources_path).is_file():
        logger.debug(f"[STATS] No knownWikis.json; no flagless bots for wiki={request.wiki_id}")
        return ()
    wiki = get_known_wiki(request.wiki_id, resources_path)
    if wiki is None:
        logger.warning(f"[STATS] wiki={request.wiki_id} is not in knownWikis.json; no flagless bots")
        return ()
    return wiki.flagless_bots


def compile_statistics(
    connection: Executable,
    request: StatisticsRequest,
    *,
    naming_strategy: TableNamingStrategy = default_table_name,
    flagless_bots: Optional[Iterable[str]] = None,
    resources_path: Optional[str] = None,
) -> Union[List[ActorResult], List[int]]:
    """
    Compile, execute and post-process one statistics request.

    PARAMETERS:
        connection: SQLAlchemy Connection or Session on the tools database
        request: Parsed StatisticsRequest
        naming_strategy: (wiki, dimension, kind) -> table name
        flagless_bots: Bot account names without the bot group; read from
            knownWikis.json when not given
        resources_path: Override of Settings.RESOURCES_PATH for the ladder
            and knownWikis.json

    RETURNS:
        List[ActorResult] when the request has columns, else List[int]

    RAISES:
        StatisticsQueryError: The database failed the query
        ConfigurationError: The wiki's ladder file or knownWikis.json is invalid

    EXAMPLE:
        >>> request = StatisticsRequest.model_validate({
        ...     "wikiId": "huwiki", "endDate": "2023-12-31",
        ...     "columns": [{"type": "counter"}, {"type": "userName"},
        ...                 {"type": "editsSinceRegistration"}],
        ...     "orderBy": [{"columnId": "column2", "direction": "desc"}],
        ...     "itemCount": 10,
        ... })
        >>> with get_connection() as conn:
        ...     rows = compile_statistics(conn, request)
    """
    tables = get_wiki_tables(request.wiki_id, naming_strategy)
    ladder = resolve_ladder(request, resources_path)
    if flagless_bots is None:
        flagless_bots = resolve_flagless_bots(request, resources_path)

    logger.info(
        f"[STATS] Compiling wiki={request.wiki_id} columns={len(request.columns)} "
        f"window={request.start_date}..{request.end_date}"
    )

    with StageTimer(request.wiki_id) as timer:
        with timer.track_stage("analyze"):
            plan = analyze_request(request)
        with timer.track_stage("plan"):
            joins = plan_joins(plan, tables)
        with timer.track_stage("generate"):
            query = build_statistics_query(plan, joins, request, tables)

        try:
            with timer.track_stage("execute"):
                if not request.columns and not query.level_snapshots:
                    actor_ids = fetch_actor_ids(connection, query.statement)
                    timer.set_row_count(len(actor_ids))
                    return actor_ids
                rows = execute_statistics_query(connection, query.statement)
                if not request.columns:
                    actor_ids = filter_actor_ids(rows, query, request, ladder)
                    timer.set_row_count(len(actor_ids))
                    return actor_ids

            with timer.track_stage("postprocess"):
                results = postprocess_rows(
                    rows,
                    query,
                    request,
                    load_groups=lambda actor_ids: fetch_actor_groups(connection, tables, actor_ids),
                    ladder=ladder,
                    flagless_bots=flagless_bots,
                )
        except SQLAlchemyError as exc:
            logger.exception(
                f"[STATS] Query failed for wiki={request.wiki_id} "
                f"(joins={joins.join_count}): {query.statement}"
            )
            raise StatisticsQueryError(
                message=f"{type(exc).__name__} while executing statistics query",
                wiki_id=request.wiki_id,
                details={"joins": joins.join_count},
            ) from exc

        timer.set_row_count(len(results))

    return results
