"""
Statistics Telemetry
====================

**Status**: Active

Stage timing and structured log lines for the statistics pipeline.

TELEMETRY EVENTS
----------------
1. stage.completed: one per pipeline stage
   - stage: analyze / plan / generate / execute / postprocess
   - duration_ms
   - success=false and error_type when the stage raised

2. statistics.completed / statistics.failed: one per request
   - wiki, rows, duration_ms
   - stage durations

USAGE
-----
```python
with StageTimer(request.wiki_id) as timer:
    with timer.track_stage("analyze"):
        plan = analyze_request(request)
    ...
    timer.set_row_count(len(results))
```

Log format:
    event=statistics.completed | wiki=huwiki | rows=100 | duration_ms=84.12

RELATED FILES
-------------
- wikistats/statistics/compiler.py: Wraps every stage
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field as dataclass_field
from typing import Any, Dict, Generator, Optional

logger = logging.getLogger(__name__)


@dataclass
class StageEvent:
    """One structured telemetry record."""
    event: str
    wiki_id: str
    stage: Optional[str] = None
    duration_ms: Optional[float] = None
    success: bool = True
    data: Dict[str, Any] = dataclass_field(default_factory=dict)

    def to_log_line(self) -> str:
        parts = [f"event={self.event}", f"wiki={self.wiki_id}"]
        if self.stage:
            parts.append(f"stage={self.stage}")
        for key, value in self.data.items():
            parts.append(f"{key}={value}")
        if self.duration_ms is not None:
            parts.append(f"duration_ms={self.duration_ms:.2f}")
        if not self.success:
            parts.append("success=false")
        return " | ".join(parts)


class StageTimer:
    """
    Per-request timing context.

    WHAT: Times each pipeline stage and emits one log line per stage plus a
          summary line when the request finishes.

    WHY: Slow statistics lists are almost always one stage (usually execute
         with many as-of joins); per-stage timing makes that visible.
    """

    def __init__(self, wiki_id: str):
        self.wiki_id = wiki_id
        self.stages: Dict[str, float] = {}
        self.row_count: Optional[int] = None
        self._start: Optional[float] = None

    def __enter__(self) -> "StageTimer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        duration_ms = (time.perf_counter() - self._start) * 1000
        if exc_type is None:
            data = {"rows": self.row_count} if self.row_count is not None else {}
            self._emit(StageEvent("statistics.completed", self.wiki_id, duration_ms=duration_ms, data=data))
        else:
            self._emit(
                StageEvent(
                    "statistics.failed",
                    self.wiki_id,
                    duration_ms=duration_ms,
                    success=False,
                    data={"error_type": exc_type.__name__},
                ),
                level=logging.WARNING,
            )
        return False

    @contextmanager
    def track_stage(self, stage: str) -> Generator[None, None, None]:
        started = time.perf_counter()
        try:
            yield
        except Exception as e:
            duration_ms = (time.perf_counter() - started) * 1000
            self.stages[stage] = duration_ms
            self._emit(
                StageEvent(
                    "stage.completed",
                    self.wiki_id,
                    stage=stage,
                    duration_ms=duration_ms,
                    success=False,
                    data={"error_type": type(e).__name__},
                ),
                level=logging.WARNING,
            )
            raise
        duration_ms = (time.perf_counter() - started) * 1000
        self.stages[stage] = duration_ms
        self._emit(StageEvent("stage.completed", self.wiki_id, stage=stage, duration_ms=duration_ms))

    def set_row_count(self, row_count: int) -> None:
        self.row_count = row_count

    def _emit(self, event: StageEvent, level: int = logging.INFO) -> None:
        logger.log(level, f"[TELEMETRY] {event.to_log_line()}")
