"""
Service Award Levels
====================

Pure level computation over a wiki's service-award ladder.

A ladder is an ordered list of rungs, each with a contribution threshold
and an active-day threshold. An actor holds the last rung whose thresholds
are BOTH strictly exceeded:

    contributions = edits + log events

    ladder:  [ (10 contributions, 1 day), (100, 30), (1000, 365) ]
    actor:   contributions=250, active_days=40
    level:   rung 1 (100, 30)
    progress toward (1000, 365): min((250-100)/(1000-100), (40-30)/(365-30))

`sort_order = (index + 1) + progress` ranks actors by level first and by
progress toward the next rung second.

RELATED FILES:
- wikistats/statistics/postprocess.py: Fills level columns and filters
- wikistats/configuration/service_award.py: Reads ladders from disk
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from wikistats.statistics.query import ServiceAwardLevel


@dataclass(frozen=True)
class LevelResult:
    """
    Level of one actor at one moment.

    PARAMETERS:
        level: The rung held, or None
        index: Position of the rung in the ladder, -1 when none
        progress: Fraction [0, 1] of the way to the next rung
    """
    level: Optional[ServiceAwardLevel]
    index: int
    progress: float

    @property
    def sort_order(self) -> float:
        return (self.index + 1) + self.progress

    @property
    def level_id(self) -> Optional[str]:
        return self.level.id if self.level is not None else None


NO_LEVEL = LevelResult(level=None, index=-1, progress=0.0)


def _step_progress(value: int, current: int, target: int) -> float:
    if target <= current:
        return 1.0
    return (value - current) / (target - current)


def compute_level(
    ladder: Optional[Sequence[ServiceAwardLevel]],
    contributions: int,
    active_days: int,
) -> LevelResult:
    """
    Compute the level held with the given totals.

    PARAMETERS:
        ladder: Rungs in ascending order; None or empty means no ladder
        contributions: Edits plus log events
        active_days: Days with at least one contribution

    RETURNS:
        LevelResult; NO_LEVEL when there is no ladder
    """
    if not ladder:
        return NO_LEVEL

    index = -1
    for position, rung in enumerate(ladder):
        if contributions > rung.required_contributions and active_days > rung.required_active_days:
            index = position

    if index == len(ladder) - 1:
        return LevelResult(level=ladder[index], index=index, progress=0.0)

    current_contributions = ladder[index].required_contributions if index >= 0 else 0
    current_active_days = ladder[index].required_active_days if index >= 0 else 0
    target = ladder[index + 1]

    progress = min(
        _step_progress(contributions, current_contributions, target.required_contributions),
        _step_progress(active_days, current_active_days, target.required_active_days),
    )
    progress = max(0.0, min(1.0, progress))

    return LevelResult(
        level=ladder[index] if index >= 0 else None,
        index=index,
        progress=progress,
    )
