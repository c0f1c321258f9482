"""
Statistics Compiler Tests (Integration, SQLite)
===============================================

WHAT: compile_statistics() end to end against the seeded in-memory store.
WHY: Catches the cumulative-counter semantics that only show up with real
     rows: as-of boundaries, LEFT vs INNER joins, ratios and milestones.

Seed data is documented on the `seeded` / `seeded_scopes` fixtures in
conftest.py.

REFERENCES:
- backend/wikistats/statistics/compiler.py
- backend/wikistats/tests/conftest.py
"""

import json
from datetime import date, datetime

import pytest
from sqlalchemy.exc import SQLAlchemyError

from wikistats.configuration.known_wikis import known_wikis_path
from wikistats.statistics.compiler import compile_statistics, resolve_flagless_bots, resolve_ladder
from wikistats.statistics.errors import StatisticsQueryError
from wikistats.statistics.query import StatisticsRequest

from .conftest import TEST_WIKI, add_actor, add_daily_rows

LADDER = [
    {"id": "l1", "label": "Level 1", "requiredContributions": 30, "requiredActiveDays": 0},
    {"id": "l2", "label": "Level 2", "requiredContributions": 50, "requiredActiveDays": 2},
]


def _request(columns=(), requirements=None, start="2023-01-01", end="2023-12-31", **extra) -> StatisticsRequest:
    payload = {"wikiId": TEST_WIKI, "endDate": end, "columns": list(columns), **extra}
    if start is not None:
        payload["startDate"] = start
    if requirements is not None:
        payload["requirements"] = requirements
    return StatisticsRequest.model_validate(payload)


def _values(results, index=1):
    """actor name -> value of column `index` (column 0 is always userName here)."""
    return {result.name: result.column_data[index] for result in results}


def _names(connection, **kwargs):
    request = _request([{"type": "userName"}], **kwargs)
    return sorted(result.name for result in compile_statistics(connection, request))


# ============================================================================
# Counter columns
# ============================================================================

class TestCounterColumns:
    def test_edits_in_period(self, seeded):
        results = compile_statistics(seeded, _request([{"type": "userName"}, {"type": "editsInPeriod"}]))

        assert _values(results) == {"Alice": 25, "Bob": 100, "carol": 3, "192.0.2.1": 2}

    def test_since_registration_ignores_start_date(self, seeded):
        columns = [{"type": "userName"}, {"type": "editsSinceRegistration"}]

        with_start = _values(compile_statistics(seeded, _request(columns)))
        timeless = _values(compile_statistics(seeded, _request(columns, start=None)))

        assert with_start == timeless == {"Alice": 65, "Bob": 100, "carol": 13, "192.0.2.1": 2}

    @pytest.mark.parametrize("start, expected", [("2023-03-01", 25), ("2023-03-02", 5)])
    def test_period_start_day_is_included(self, seeded, start, expected):
        """Edits made on startDate belong to the period."""
        results = compile_statistics(
            seeded, _request([{"type": "userName"}, {"type": "editsInPeriod"}], start=start)
        )

        assert _values(results)["Alice"] == expected

    def test_end_date_is_inclusive(self, seeded):
        results = compile_statistics(
            seeded,
            _request([{"type": "userName"}, {"type": "editsSinceRegistration"}], start=None, end="2023-08-01"),
        )

        assert _values(results)["Alice"] == 65

    def test_actor_without_rows_up_to_end_is_excluded(self, seeded):
        results = compile_statistics(
            seeded, _request([{"type": "userName"}, {"type": "editsInPeriod"}], start=None, end="2022-12-31")
        )

        assert sorted(_values(results)) == ["Alice", "carol"]

    def test_decreasing_snapshot_gives_negative_delta(self, seeded, tables):
        add_actor(seeded, tables, 5, "Dave", registration=datetime(2020, 1, 1))
        seeded.execute(
            tables.actor_daily.insert(),
            [
                {"actor_id": 5, "date": date(2022, 12, 1), "daily_edits": 10, "edits_to_date": 0},
                {"actor_id": 5, "date": date(2023, 6, 1), "daily_edits": 0, "edits_to_date": 4},
            ],
        )

        results = compile_statistics(seeded, _request([{"type": "userName"}, {"type": "editsInPeriod"}]))

        assert _values(results)["Dave"] == -6

    def test_ratio_to_wiki_total(self, seeded):
        results = compile_statistics(
            seeded, _request([{"type": "userName"}, {"type": "editsInPeriodPercentageToWikiTotal"}])
        )

        values = _values(results)
        assert values["Alice"] == pytest.approx(25 / 130)
        assert values["Bob"] == pytest.approx(100 / 130)

    def test_ratio_with_zero_denominator_is_none(self, seeded):
        results = compile_statistics(
            seeded,
            _request([{"type": "userName"}, {"type": "revertedEditsInPeriodPercentageToWikiTotal"}]),
        )

        assert set(_values(results).values()) == {None}

    def test_average_per_active_day(self, seeded):
        results = compile_statistics(
            seeded, _request([{"type": "userName"}, {"type": "averageEditsPerDaySinceRegistration"}])
        )

        assert _values(results)["Alice"] == pytest.approx(65 / 3)

    def test_milestone_reached_in_period(self, seeded):
        results = compile_statistics(
            seeded,
            _request([{"type": "userName"}, {"type": "editsSinceRegistrationMilestone", "milestones": [50, 100]}]),
        )

        assert _values(results) == {"Alice": 50, "Bob": 50, "carol": None, "192.0.2.1": None}

    def test_more_than_zero_filter(self, seeded):
        results = compile_statistics(
            seeded,
            _request([{"type": "userName"}, {"type": "revertedEditsInPeriod", "filterByRule": "moreThanZero"}]),
        )

        assert _values(results) == {"Alice": 2}


# ============================================================================
# Scoped counters and dates
# ============================================================================

class TestScopedColumns:
    def test_namespace_values_are_summed(self, seeded_scopes):
        results = compile_statistics(
            seeded_scopes,
            _request([{"type": "userName"}, {"type": "editsInNamespaceInPeriod", "namespace": [0, 2]}]),
        )

        assert _values(results) == {"Alice": 20, "Bob": 0, "carol": 0, "192.0.2.1": 0}

    def test_namespace_ratio_to_wiki_total(self, seeded_scopes):
        results = compile_statistics(
            seeded_scopes,
            _request(
                [{"type": "userName"}, {"type": "editsInNamespaceInPeriodPercentageToWikiTotal", "namespace": 0}]
            ),
        )

        assert _values(results)["Alice"] == pytest.approx(15 / 45)

    def test_change_tag_column(self, seeded_scopes):
        results = compile_statistics(
            seeded_scopes,
            _request([{"type": "userName"}, {"type": "editsInPeriodByChangeTag", "changeTag": {"changeTagId": 7}}]),
        )

        assert _values(results)["Alice"] == 4
        assert _values(results)["Bob"] == 0

    def test_log_type_columns(self, seeded_scopes):
        results = compile_statistics(
            seeded_scopes,
            _request(
                [
                    {"type": "userName"},
                    {"type": "logEventsInPeriodByType", "logFilter": {"logType": "block"}},
                    {"type": "lastLogEventDateByType", "logFilter": {"logType": "block"}},
                ]
            ),
        )

        assert _values(results, 1)["carol"] == 20
        assert _values(results, 2) == {"Alice": None, "Bob": None, "carol": date(2023, 5, 5), "192.0.2.1": None}

    def test_log_dates_over_several_filters(self, seeded_scopes):
        """A filter without any activity must not null out the dates of the others."""
        filters = [{"logType": "block"}, {"logAction": "delete"}]
        results = compile_statistics(
            seeded_scopes,
            _request(
                [
                    {"type": "userName"},
                    {"type": "firstLogEventDateByType", "logFilter": filters},
                    {"type": "lastLogEventDateByType", "logFilter": filters},
                ]
            ),
        )

        assert _values(results, 1) == {"Alice": None, "Bob": None, "carol": date(2023, 5, 5), "192.0.2.1": None}
        assert _values(results, 2) == {"Alice": None, "Bob": None, "carol": date(2023, 5, 5), "192.0.2.1": None}

    def test_edit_dates_and_registration(self, seeded):
        results = compile_statistics(
            seeded,
            _request(
                [
                    {"type": "userName"},
                    {"type": "firstEditDate"},
                    {"type": "lastEditDate"},
                    {"type": "daysBetweenFirstAndLastEdit"},
                    {"type": "registrationDate"},
                    {"type": "daysSinceRegistration"},
                ]
            ),
        )
        alice = next(result for result in results if result.name == "Alice")

        assert alice.column_data[1:] == [
            date(2022, 6, 10),
            date(2023, 8, 1),
            (date(2023, 8, 1) - date(2022, 6, 10)).days,
            date(2022, 6, 1),
            (date(2023, 12, 31) - date(2022, 6, 1)).days,
        ]


# ============================================================================
# Requirements
# ============================================================================

class TestRequirements:
    def test_registration_status(self, seeded):
        assert _names(seeded, requirements={"registrationStatus": "registered"}) == ["Alice", "Bob", "carol"]
        assert _names(seeded, requirements={"registrationStatus": "anon"}) == ["192.0.2.1"]

    def test_registered_after_window_end_is_excluded(self, seeded):
        names = _names(seeded, requirements={"registrationStatus": "registered"}, start=None, end="2023-02-02")

        assert names == ["Alice", "Bob", "carol"]
        assert "Bob" not in _names(
            seeded, requirements={"registrationStatus": "registered"}, start=None, end="2023-01-31"
        )

    def test_registration_age(self, seeded):
        assert _names(seeded, requirements={"registrationAgeAtLeast": 365}) == ["Alice", "carol"]
        assert _names(seeded, requirements={"registrationAgeAtMost": 365}) == ["Bob"]

    def test_user_groups(self, seeded):
        assert _names(seeded, requirements={"userGroups": ["sysop", "bureaucrat"]}) == ["Alice"]
        assert _names(seeded, requirements={"notInUserGroups": ["bot"]}) == ["192.0.2.1", "Alice", "carol"]

    def test_user_page_templates(self, seeded):
        assert _names(seeded, requirements={"hasUserPageTemplates": ["Babel"]}) == ["Alice"]
        assert "Alice" not in _names(seeded, requirements={"hasNoUserPageTemplates": ["Babel"]})

    def test_total_threshold_at_epoch(self, seeded):
        assert _names(seeded, requirements={"totalEditsAtLeast": 50}) == ["Alice", "Bob"]
        # 2023-06-14: Alice had 60 edits
        assert _names(seeded, requirements={"totalEditsAtLeast": {"count": 61, "epoch": -200}}) == ["Bob"]

    def test_period_threshold_before_selected_period(self, seeded):
        requirements = {"inPeriodEditsAtLeast": {"count": 5, "period": 30, "epoch": "startOfSelectedPeriod"}}

        assert _names(seeded, requirements=requirements, start="2023-03-01") == ["Bob"]

    def test_unresolvable_epoch_is_skipped(self, seeded):
        requirements = {"inPeriodEditsAtLeast": {"count": 5, "period": 30, "epoch": "startOfSelectedPeriod"}}

        assert len(_names(seeded, requirements=requirements, start=None)) == 4

    def test_milestone_requirement(self, seeded):
        assert _names(seeded, requirements={"totalEditsMilestoneReachedInPeriod": [100]}) == ["Bob"]

    def test_namespace_and_change_tag_thresholds(self, seeded_scopes):
        assert _names(
            seeded_scopes, requirements={"totalEditsInNamespaceAtLeast": {"namespace": [0, 2], "count": 50}}
        ) == ["Alice"]
        assert _names(
            seeded_scopes,
            requirements={"inPeriodEditsWithChangeTagAtLeast": {"changeTag": {"changeTagId": 7}, "count": 1, "period": 365}},
        ) == ["Alice"]


# ============================================================================
# Levels and compilation modes
# ============================================================================

class TestLevelsAndModes:
    def test_level_requirements(self, seeded):
        assert _names(seeded, requirements={"hasLevelAndChanged": ["l2"]}, serviceAwardLevels=LADDER) == ["Alice"]
        assert _names(seeded, requirements={"hasLevel": ["l1"]}, serviceAwardLevels=LADDER) == ["Bob", "carol"]

    def test_level_column(self, seeded):
        results = compile_statistics(
            seeded,
            _request([{"type": "userName"}, {"type": "levelAtPeriodEndWithChange"}], serviceAwardLevels=LADDER),
        )

        assert _values(results)["Alice"] == ["l2", "Level 2", True]
        assert _values(results)["192.0.2.1"] is None

    def test_level_counts_edits_plus_log_events(self, connection, tables):
        """Contributions are edits plus all log events, not the service-award log counter."""
        add_actor(connection, tables, 10, "Erin", registration=datetime(2022, 1, 1))
        add_actor(connection, tables, 11, "Frank", registration=datetime(2022, 1, 1))
        add_daily_rows(connection, tables.actor_daily, {
            date(2023, 2, 1): {"edits": 40, "logEvents": 20, "activeDays": 1},
        }, actor_id=10)
        add_daily_rows(connection, tables.actor_daily, {
            date(2023, 2, 1): {"edits": 40, "serviceAwardLogEvents": 20, "activeDays": 1},
        }, actor_id=11)
        ladder = [{"id": "l1", "label": "L1", "requiredContributions": 50, "requiredActiveDays": 0}]

        results = compile_statistics(
            connection,
            _request([{"type": "userName"}, {"type": "levelAtPeriodEnd"}], serviceAwardLevels=ladder),
        )

        assert _values(results) == {"Erin": ["l1", "L1"], "Frank": None}

    def test_no_columns_returns_actor_ids(self, seeded):
        actor_ids = compile_statistics(seeded, _request(requirements={"totalEditsAtLeast": 50}))

        assert actor_ids == [1, 2]

    def test_no_columns_honours_level_requirements(self, seeded):
        actor_ids = compile_statistics(
            seeded, _request(requirements={"hasLevel": ["l1"]}, serviceAwardLevels=LADDER)
        )

        assert actor_ids == [2, 3]

    def test_ordering_counter_and_item_count(self, seeded):
        request = _request(
            [{"type": "counter"}, {"type": "userName"}, {"type": "editsInPeriod"}],
            orderBy=[{"columnId": "column2", "direction": "desc"}],
            itemCount=2,
            skipBotsFromCounting=True,
        )

        results = compile_statistics(seeded, request)

        assert [(r.column_data[0], r.name) for r in results] == [("", "Bob"), (1, "Alice"), (2, "carol")]
        assert results[0].groups == ["bot"]

    def test_flagless_bots_come_from_known_wikis(self, seeded, tmp_path):
        path = known_wikis_path(str(tmp_path))
        path.parent.mkdir(parents=True)
        path.write_text(json.dumps([{
            "id": TEST_WIKI,
            "domain": "test.wikipedia.org",
            "replicaDatabaseName": "testwiki_p",
            "languageCode": "en",
            "timeZone": "UTC",
            "flaglessBots": ["carol"],
        }]), encoding="utf-8")
        request = _request(
            [{"type": "counter"}, {"type": "userName"}, {"type": "editsInPeriod"}],
            orderBy=[{"columnId": "column2", "direction": "desc"}],
            skipBotsFromCounting=True,
        )

        results = compile_statistics(seeded, request, resources_path=str(tmp_path))

        assert [(r.column_data[0], r.name) for r in results] == [
            ("", "Bob"), (1, "Alice"), ("", "carol"), (2, "192.0.2.1"),
        ]

    def test_missing_known_wikis_means_no_flagless_bots(self, tmp_path):
        request = _request([{"type": "counter"}], skipBotsFromCounting=True)

        assert resolve_flagless_bots(request, str(tmp_path)) == ()

    def test_request_ladder_takes_precedence(self, tmp_path):
        request = _request(requirements={"hasLevel": ["l1"]}, serviceAwardLevels=LADDER)

        assert [level.id for level in resolve_ladder(request, str(tmp_path))] == ["l1", "l2"]

    def test_missing_ladder_file_means_no_levels(self, tmp_path, caplog):
        request = _request(requirements={"hasLevel": ["l1"]})

        assert resolve_ladder(request, str(tmp_path)) is None
        assert "No service award ladder" in caplog.text

    def test_ladder_not_loaded_without_level_usage(self, tmp_path):
        assert resolve_ladder(_request([{"type": "editsInPeriod"}]), str(tmp_path)) is None


# ============================================================================
# Error boundary
# ============================================================================

def test_database_failure_is_wrapped(seeded):
    request = _request([{"type": "userName"}, {"type": "editsInPeriod"}])

    with pytest.raises(StatisticsQueryError) as exc_info:
        compile_statistics(
            seeded,
            request,
            naming_strategy=lambda wiki, dimension, kind: f"missing_{wiki}_{dimension.value}_{kind.value}",
        )

    error = exc_info.value
    assert error.user_message() == "Unable to compute statistics."
    assert error.wiki_id == TEST_WIKI
    assert isinstance(error.__cause__, SQLAlchemyError)
    assert "missing_" not in error.user_message()
