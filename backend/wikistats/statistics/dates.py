"""Date helpers shared by the analyzer, the generator and the post-processor.

Epoch resolution lives here, and only here, so the analyzer (which decides
which snapshots to join) and the generator (which reads them) always agree
on the same calendar day for a requirement.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Any, List, Optional, Tuple

from wikistats.statistics.query import START_OF_SELECTED_PERIOD

# Written by the snapshot joins when something never happened
NEVER_BEFORE = date(1900, 1, 1)
NEVER_AFTER = date(2100, 1, 1)
NO_DATE_SENTINELS = (NEVER_BEFORE, NEVER_AFTER)


def resolve_epoch(epoch: Any, start_date: Optional[date], end_date: date) -> Optional[date]:
    """Resolve a requirement epoch to a calendar day.

    - None: the window end
    - int: day offset from the window end (-7 = a week before endDate)
    - "startOfSelectedPeriod": the last day before the window starts, or
      None for timeless lists, in which case the requirement is skipped
    """
    if epoch is None:
        return end_date
    if epoch == START_OF_SELECTED_PERIOD:
        if start_date is None:
            return None
        return start_date - timedelta(days=1)
    return end_date + timedelta(days=int(epoch))


def period_bounds(
    period: int,
    epoch: Any,
    start_date: Optional[date],
    end_date: date,
) -> Optional[Tuple[date, date]]:
    """(first day, last day) of a `period`-day requirement window ending at the epoch."""
    epoch_date = resolve_epoch(epoch, start_date, end_date)
    if epoch_date is None:
        return None
    return epoch_date - timedelta(days=period), epoch_date


def format_date_key(day: date) -> str:
    """YYYYMMDD, used in join aliases and raw level input labels."""
    return day.strftime("%Y%m%d")


def to_date(value: Any) -> Optional[date]:
    """Reduce a driver value (date, datetime or ISO string) to a date; sentinels become None."""
    if value is None:
        return None
    if isinstance(value, datetime):
        day = value.date()
    elif isinstance(value, date):
        day = value
    elif isinstance(value, str):
        try:
            day = date.fromisoformat(value[:10])
        except ValueError:
            return None
    else:
        return None
    if day in NO_DATE_SENTINELS:
        return None
    return day


def encode_date(day: Optional[date]) -> Optional[List[int]]:
    """Wire encoding: [year, month (0-based), day]."""
    if day is None:
        return None
    return [day.year, day.month - 1, day.day]


def decode_date(value: Optional[List[int]]) -> Optional[date]:
    """Inverse of encode_date."""
    if value is None:
        return None
    year, month, day = value
    return date(year, month + 1, day)
