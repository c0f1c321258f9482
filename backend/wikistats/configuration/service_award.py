"""Service-award ladder reader.

Reads `<resources>/configuration/serviceAward/{wiki}.serviceAwardLevels.json`:

    [
      {"id": "level1", "label": "Bronze", "requiredContributions": 100, "requiredActiveDays": 30},
      ...
    ]

A wiki without a file simply has no ladder. A file that exists but is not
valid JSON, or does not match the schema, is an operator error.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List, Optional, Tuple

from pydantic import TypeAdapter, ValidationError

from wikistats.config import get_settings
from wikistats.statistics.errors import ConfigurationError
from wikistats.statistics.query import ServiceAwardLevel

logger = logging.getLogger(__name__)

_LADDER_ADAPTER = TypeAdapter(List[ServiceAwardLevel])


def service_award_levels_path(wiki_id: str, resources_path: Optional[str] = None) -> Path:
    base = Path(resources_path or get_settings().RESOURCES_PATH)
    return base / "configuration" / "serviceAward" / f"{wiki_id}.serviceAwardLevels.json"


def read_service_award_levels(
    wiki_id: str,
    resources_path: Optional[str] = None,
) -> Optional[Tuple[ServiceAwardLevel, ...]]:
    """Return the wiki's ladder, or None when it has no configuration file.

    Raises:
        ConfigurationError: The file is unreadable, not JSON, or invalid
    """
    path = service_award_levels_path(wiki_id, resources_path)
    if not path.is_file():
        logger.debug(f"[CONFIG] No service award levels for {wiki_id} at {path}")
        return None

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise ConfigurationError(
            message=f"Error while reading serviceAwardLevels.json: {e}",
            wiki_id=wiki_id,
            path=str(path),
        ) from e

    try:
        ladder = _LADDER_ADAPTER.validate_python(data)
    except ValidationError as e:
        raise ConfigurationError(
            message=f"Invalid serviceAwardLevels.json: {e.error_count()} validation errors",
            wiki_id=wiki_id,
            path=str(path),
            details={"errors": [err["msg"] for err in e.errors()]},
        ) from e

    logger.info(f"[CONFIG] Loaded {len(ladder)} service award levels for {wiki_id}")
    return tuple(ladder)
