"""
Join Analyzer Tests (Unit)
==========================

WHAT: analyze_request() key collection and deduplication.
WHY: Every duplicated key is an extra as-of join in the final query; every
     missing key is an alias the generator cannot resolve.

REFERENCES:
- backend/wikistats/statistics/analyzer.py
"""

from datetime import date

from wikistats.schema import Dimension, TableKind
from wikistats.statistics.analyzer import (
    ActivityRangeKey,
    Boundary,
    ChangeTagDiscriminator,
    LevelSnapshot,
    LogDiscriminator,
    NamespaceDiscriminator,
    RequiredJoinKey,
    analyze_request,
)
from wikistats.statistics.model import ActivitySource
from wikistats.statistics.query import StatisticsRequest


def _request(columns=(), requirements=None, start="2023-01-01", end="2023-12-31") -> StatisticsRequest:
    payload = {"wikiId": "testwiki", "endDate": end, "columns": list(columns)}
    if start is not None:
        payload["startDate"] = start
    if requirements is not None:
        payload["requirements"] = requirements
    return StatisticsRequest.model_validate(payload)


def _aliases(plan):
    return [key.alias_name for key in plan.join_keys]


def test_period_columns_share_two_snapshots():
    plan = analyze_request(_request([{"type": "editsInPeriod"}, {"type": "revertedEditsInPeriod"}]))

    assert _aliases(plan) == ["actorBefore_20230101", "actorEnd_20231231"]


def test_requirement_on_window_end_reuses_column_key():
    plan = analyze_request(
        _request([{"type": "editsInPeriod"}], requirements={"totalEditsAtLeast": 10})
    )

    assert len(plan.join_keys) == 2


def test_requirement_epoch_adds_window_keys():
    plan = analyze_request(
        _request(
            [{"type": "editsInPeriod"}],
            requirements={"inPeriodEditsAtLeast": {"count": 5, "period": 30, "epoch": -7}},
        )
    )

    assert _aliases(plan) == [
        "actorBefore_20230101",
        "actorEnd_20231231",
        "actorBefore_20231124",
        "actorEnd_20231224",
    ]


def test_wiki_ratio_adds_wiki_snapshots():
    plan = analyze_request(_request([{"type": "editsInPeriodPercentageToWikiTotal"}]))

    assert {key.dimension for key in plan.join_keys} == {Dimension.ACTOR, Dimension.WIKI}
    assert plan.needs_period_start(Dimension.WIKI)
    assert plan.needs_period_end(Dimension.WIKI)


def test_timeless_list_skips_start_dependent_keys():
    plan = analyze_request(
        _request(
            [{"type": "editsInPeriod"}],
            requirements={"totalEditsAtLeast": {"count": 5, "epoch": "startOfSelectedPeriod"}},
            start=None,
        )
    )

    assert _aliases(plan) == ["actorEnd_20231231"]
    assert not plan.needs_period_start(Dimension.ACTOR)


def test_discriminated_keys_carry_scope_in_alias():
    plan = analyze_request(
        _request(
            [
                {"type": "editsInNamespaceSinceRegistration", "namespace": [0, -1]},
                {"type": "editsSinceRegistrationByChangeTag", "changeTag": {"changeTagId": 7, "namespace": 2}},
                {"type": "logEventsSinceRegistrationByType", "logFilter": {"logType": "block", "logAction": "re-block"}},
            ]
        )
    )

    assert _aliases(plan) == [
        "actorEnd_Ns0_20231231",
        "actorEnd_NsM1_20231231",
        "actorEnd_Ct7Ns2_20231231",
        "actorEnd_LtblockLare_2d_block_20231231",
    ]
    assert plan.join_keys[2].table_kind is TableKind.NAMESPACE_CHANGE_TAG
    assert plan.join_keys[3].table_kind is TableKind.LOG_TYPE_ACTION


def test_own_total_ratio_adds_plain_actor_snapshot():
    plan = analyze_request(
        _request([{"type": "editsInNamespaceSinceRegistrationPercentageToOwnTotalEdits", "namespace": 4}])
    )

    assert plan.join_keys == (
        RequiredJoinKey(Dimension.ACTOR, Boundary.END, date(2023, 12, 31), NamespaceDiscriminator(4)),
        RequiredJoinKey(Dimension.ACTOR, Boundary.END, date(2023, 12, 31)),
    )


def test_activity_ranges_are_deduplicated():
    plan = analyze_request(
        _request(
            [
                {"type": "firstEditDate"},
                {"type": "lastEditDate"},
                {"type": "daysBetweenFirstAndLastEdit"},
                {"type": "lastLogEventDateByType", "logFilter": [{"logType": "block"}, {"logAction": "delete"}]},
            ]
        )
    )

    assert plan.activity_ranges == (
        ActivityRangeKey(ActivitySource.EDITS, date(2023, 12, 31)),
        ActivityRangeKey(ActivitySource.LOG_FILTER, date(2023, 12, 31), LogDiscriminator(log_type="block")),
        ActivityRangeKey(ActivitySource.LOG_FILTER, date(2023, 12, 31), LogDiscriminator(log_action="delete")),
    )
    assert plan.join_keys == ()
    assert [key.alias_name for key in plan.activity_ranges] == [
        "editDates_20231231",
        "logDates_Ltblock_20231231",
        "logDates_Ladelete_20231231",
    ]


def test_level_columns_register_snapshots_and_joins():
    plan = analyze_request(_request([{"type": "levelAtPeriodEndWithChange"}]))

    assert plan.level_snapshots == (
        LevelSnapshot(Boundary.BEFORE, date(2023, 1, 1)),
        LevelSnapshot(Boundary.END, date(2023, 12, 31)),
    )
    assert _aliases(plan) == ["actorBefore_20230101", "actorEnd_20231231"]
    assert plan.level_snapshot(Boundary.END, date(2023, 12, 31)) is not None
    assert plan.level_snapshot(Boundary.BEFORE, None) is None


def test_level_requirement_without_change_needs_end_only():
    plan = analyze_request(_request(requirements={"hasLevel": ["l1"]}))

    assert plan.level_snapshots == (LevelSnapshot(Boundary.END, date(2023, 12, 31)),)


def test_registration_and_group_requirements_need_no_joins():
    plan = analyze_request(
        _request(
            [{"type": "registrationDate"}, {"type": "userGroups"}],
            requirements={"registrationStatus": "registered", "userGroups": ["sysop"]},
        )
    )

    assert plan.join_keys == ()
    assert plan.activity_ranges == ()


def test_change_tag_discriminator_table_kind():
    assert ChangeTagDiscriminator(7).table_kind is TableKind.CHANGE_TAG
    assert ChangeTagDiscriminator(7, namespace=0).table_kind is TableKind.NAMESPACE_CHANGE_TAG
