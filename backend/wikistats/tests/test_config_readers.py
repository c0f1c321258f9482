"""
Configuration Reader Tests (Unit)
=================================

WHAT: Service-award ladder and known-wikis readers over temporary resource trees.
WHY: A wiki without a ladder is normal; a broken ladder file is an operator
     error that must fail loudly instead of silently dropping levels.

REFERENCES:
- backend/wikistats/configuration/service_award.py
- backend/wikistats/configuration/known_wikis.py
"""

import json

import pytest

from wikistats.configuration.known_wikis import get_known_wiki, known_wikis_path, read_known_wikis
from wikistats.configuration.service_award import read_service_award_levels, service_award_levels_path
from wikistats.statistics.errors import ConfigurationError, ErrorCode


def _write(path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


# ============================================================================
# Service award ladder
# ============================================================================

class TestServiceAwardLevels:
    def test_path_layout(self, tmp_path):
        path = service_award_levels_path("huwiki", str(tmp_path))

        assert path == tmp_path / "configuration" / "serviceAward" / "huwiki.serviceAwardLevels.json"

    def test_missing_file_means_no_ladder(self, tmp_path):
        assert read_service_award_levels("huwiki", str(tmp_path)) is None

    def test_valid_file(self, tmp_path):
        _write(
            service_award_levels_path("huwiki", str(tmp_path)),
            json.dumps([
                {"id": "bronze", "label": "Bronze", "requiredContributions": 100, "requiredActiveDays": 30},
                {"id": "silver", "label": "Silver", "requiredContributions": 1000, "requiredActiveDays": 90},
            ]),
        )

        ladder = read_service_award_levels("huwiki", str(tmp_path))

        assert [level.id for level in ladder] == ["bronze", "silver"]
        assert ladder[1].required_active_days == 90

    def test_invalid_json_raises(self, tmp_path):
        path = service_award_levels_path("huwiki", str(tmp_path))
        _write(path, "[{not json")

        with pytest.raises(ConfigurationError) as exc_info:
            read_service_award_levels("huwiki", str(tmp_path))

        assert exc_info.value.path == str(path)
        assert exc_info.value.code is ErrorCode.CONFIGURATION_ERROR
        assert exc_info.value.wiki_id == "huwiki"

    def test_schema_violation_raises(self, tmp_path):
        _write(
            service_award_levels_path("huwiki", str(tmp_path)),
            json.dumps([{"id": "bronze", "label": "Bronze", "requiredContributions": -1}]),
        )

        with pytest.raises(ConfigurationError, match="validation errors") as exc_info:
            read_service_award_levels("huwiki", str(tmp_path))

        assert exc_info.value.details["errors"]


# ============================================================================
# Known wikis
# ============================================================================

KNOWN_WIKIS = [
    {
        "id": "huwiki",
        "domain": "hu.wikipedia.org",
        "replicaDatabaseName": "huwiki_p",
        "languageCode": "hu",
        "timeZone": "Europe/Budapest",
        "flaglessBots": ["FlaglessBot"],
        "hasServiceAwards": True,
        "serviceAwardPageName": "Wikipédia:Szolgálati emlékérem",
    },
    {
        "id": "dewiki",
        "domain": "de.wikipedia.org",
        "replicaDatabaseName": "dewiki_p",
        "languageCode": "de",
        "timeZone": "Europe/Berlin",
    },
]


class TestKnownWikis:
    def test_reads_entries(self, tmp_path):
        _write(known_wikis_path(str(tmp_path)), json.dumps(KNOWN_WIKIS))

        wikis = read_known_wikis(str(tmp_path))

        assert [wiki.id for wiki in wikis] == ["huwiki", "dewiki"]
        assert wikis[0].flagless_bots == ("FlaglessBot",)
        assert wikis[1].has_service_awards is False

    def test_get_known_wiki(self, tmp_path):
        _write(known_wikis_path(str(tmp_path)), json.dumps(KNOWN_WIKIS))

        assert get_known_wiki("dewiki", str(tmp_path)).time_zone == "Europe/Berlin"
        assert get_known_wiki("enwiki", str(tmp_path)) is None

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(ConfigurationError, match="does not exist"):
            read_known_wikis(str(tmp_path))

    def test_invalid_entry_raises(self, tmp_path):
        _write(known_wikis_path(str(tmp_path)), json.dumps([{"id": "huwiki"}]))

        with pytest.raises(ConfigurationError):
            read_known_wikis(str(tmp_path))
