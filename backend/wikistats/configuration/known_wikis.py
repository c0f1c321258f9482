"""Known wikis reader.

WHAT:
    Reads `<resources>/configuration/knownWikis.json`, the list of wikis the
    portal serves, with per-wiki settings the compiler needs (flagless bots,
    whether service awards exist).

WHY:
    - `compile_statistics(..., flagless_bots=...)` gets its bot list from here
    - pyramid and list callers validate wiki ids against this file

REFERENCES:
    - wikistats/configuration/service_award.py (ladder per wiki)
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from wikistats.config import get_settings
from wikistats.statistics.errors import ConfigurationError

logger = logging.getLogger(__name__)


class KnownWiki(BaseModel):
    """One entry of knownWikis.json (camelCase on disk)."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    domain: str
    replica_database_name: str
    language_code: str
    time_zone: str
    flagless_bots: Tuple[str, ...] = ()
    has_service_awards: bool = False
    service_award_page_name: Optional[str] = None


_KNOWN_WIKIS_ADAPTER = TypeAdapter(List[KnownWiki])


def known_wikis_path(resources_path: Optional[str] = None) -> Path:
    return Path(resources_path or get_settings().RESOURCES_PATH) / "configuration" / "knownWikis.json"


def read_known_wikis(resources_path: Optional[str] = None) -> List[KnownWiki]:
    """Read and validate knownWikis.json.

    Raises:
        ConfigurationError: Missing, unreadable or invalid file
    """
    path = known_wikis_path(resources_path)
    if not path.is_file():
        raise ConfigurationError(message="knownWikis.json does not exist", path=str(path))

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise ConfigurationError(message=f"Error while reading knownWikis.json: {e}", path=str(path)) from e

    try:
        wikis = _KNOWN_WIKIS_ADAPTER.validate_python(data)
    except ValidationError as e:
        raise ConfigurationError(
            message=f"Invalid knownWikis.json: {e.error_count()} validation errors",
            path=str(path),
            details={"errors": [err["msg"] for err in e.errors()]},
        ) from e

    logger.info(f"[CONFIG] Loaded {len(wikis)} known wikis")
    return wikis


def get_known_wiki(wiki_id: str, resources_path: Optional[str] = None) -> Optional[KnownWiki]:
    """The known wiki with this id, or None."""
    for wiki in read_known_wikis(resources_path):
        if wiki.id == wiki_id:
            return wiki
    return None
