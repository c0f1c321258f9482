"""
User Pyramids
=============

**Status**: Active

Population counts for a stack of actor groups ("pyramid") at one epoch
date, plus how many actors of each group were also in the previous one.

    groups:  [ "registered", "100+ edits", "1000+ edits", "active last 30d" ]
    result:  population per group, overlap with the group above it

Each group is an `EligibilityRequirement` evaluated through the statistics
compiler in its no-columns mode, with endDate set to the epoch date and no
startDate, so every requirement is resolved relative to the epoch.

RELATED FILES
-------------
- wikistats/statistics/compiler.py: compile_statistics() no-columns mode
- wikistats/statistics/query.py: EligibilityRequirement
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Set, Tuple

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from wikistats.schema import TableNamingStrategy, default_table_name
from wikistats.statistics.compiler import compile_statistics
from wikistats.statistics.executor import Executable
from wikistats.statistics.query import EligibilityRequirement, StatisticsRequest

logger = logging.getLogger(__name__)


class PyramidGroup(BaseModel):
    """One layer of a pyramid."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    name: str
    requirements: EligibilityRequirement


class PyramidDefinition(BaseModel):
    """A named, ordered stack of groups."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    name: str
    groups: Tuple[PyramidGroup, ...]


@dataclass(frozen=True)
class PyramidGroupResult:
    """
    Population of one group.

    PARAMETERS:
        title: Group name
        population: Number of actors meeting the group's requirements
        matching_with_previous_group: Actors also in the previous group (0 for the first)
    """
    title: str
    population: int
    matching_with_previous_group: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "population": self.population,
            "matchingWithPreviousGroup": self.matching_with_previous_group,
        }


def compute_pyramid_series(
    connection: Executable,
    wiki_id: str,
    pyramid: PyramidDefinition,
    epoch_date: date,
    *,
    naming_strategy: TableNamingStrategy = default_table_name,
) -> List[PyramidGroupResult]:
    """
    Evaluate every group of a pyramid at `epoch_date`.

    RETURNS:
        One PyramidGroupResult per group, in pyramid order
    """
    results: List[PyramidGroupResult] = []
    previous: Set[int] = set()

    for position, group in enumerate(pyramid.groups, start=1):
        logger.info(f"[PYRAMID] wiki={wiki_id} pyramid={pyramid.id} group #{position} '{group.name}'")
        request = StatisticsRequest(
            wiki_id=wiki_id,
            end_date=epoch_date,
            requirements=group.requirements,
        )
        actor_ids = set(
            compile_statistics(
                connection,
                request,
                naming_strategy=naming_strategy,
            )
        )
        results.append(
            PyramidGroupResult(
                title=group.name,
                population=len(actor_ids),
                matching_with_previous_group=len(actor_ids & previous),
            )
        )
        previous = actor_ids

    return results
