"""
Statistics Metric Registry
==========================

**Status**: Active

Single source of truth for every column kind and every eligibility
requirement the compiler understands.

WHY THIS FILE EXISTS
--------------------
The portal offers dozens of list columns ("edits in period", "reverted edits
in namespace since registration as a fraction of own edits", ...) that differ
only in a handful of properties:

    - which counter they read (edits, reverted edits, thanks, ...)
    - over which span (in period vs since registration)
    - against which discriminator (none, namespace, change tag, log filter)
    - whether they are a ratio (to the wiki total, to own total edits)

Instead of one hand-written branch per column type, each `ColumnType` maps to
a frozen `ColumnDefinition`, and the analyzer/generator dispatch on its
`ColumnKind`. Adding a column is one enum member plus one registry entry.

EXHAUSTIVENESS
--------------
`ColumnType` and `REQUIREMENT_DEFINITIONS` are closed sets. The checks at the
bottom of this module (and in query.py / analyzer.py / generator.py) fail at
import time when an enum member has no definition or a kind has no handler.

RELATED FILES
-------------
- wikistats/schema.py: CounterField pairs and table layout
- wikistats/statistics/query.py: Request models referencing ColumnType
- wikistats/statistics/analyzer.py: Join requirements per ColumnKind
- wikistats/statistics/generator.py: SQL per ColumnKind / RequirementKind
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from wikistats.schema import (
    ACTIVE_DAYS,
    CHARACTER_CHANGES,
    EDITS,
    LOG_EVENTS,
    RECEIVED_THANKS,
    REVERTED_EDITS,
    SENT_THANKS,
    CounterField,
)


# =============================================================================
# COLUMN TYPES
# =============================================================================

class ColumnType(str, Enum):
    """Every column a list can request. Values are the wire tags."""

    # Filled in during post-processing
    COUNTER = "counter"
    USER_NAME = "userName"
    USER_GROUPS = "userGroups"

    # Edits
    EDITS_IN_PERIOD = "editsInPeriod"
    EDITS_IN_PERIOD_PERCENTAGE_TO_WIKI_TOTAL = "editsInPeriodPercentageToWikiTotal"
    EDITS_SINCE_REGISTRATION = "editsSinceRegistration"
    EDITS_SINCE_REGISTRATION_PERCENTAGE_TO_WIKI_TOTAL = "editsSinceRegistrationPercentageToWikiTotal"

    # Reverted edits
    REVERTED_EDITS_IN_PERIOD = "revertedEditsInPeriod"
    REVERTED_EDITS_IN_PERIOD_PERCENTAGE_TO_WIKI_TOTAL = "revertedEditsInPeriodPercentageToWikiTotal"
    REVERTED_EDITS_IN_PERIOD_PERCENTAGE_TO_OWN_TOTAL_EDITS = "revertedEditsInPeriodPercentageToOwnTotalEdits"
    REVERTED_EDITS_SINCE_REGISTRATION = "revertedEditsSinceRegistration"
    REVERTED_EDITS_SINCE_REGISTRATION_PERCENTAGE_TO_WIKI_TOTAL = "revertedEditsSinceRegistrationPercentageToWikiTotal"
    REVERTED_EDITS_SINCE_REGISTRATION_PERCENTAGE_TO_OWN_TOTAL_EDITS = "revertedEditsSinceRegistrationPercentageToOwnTotalEdits"

    # Character changes
    CHARACTER_CHANGES_IN_PERIOD = "characterChangesInPeriod"
    CHARACTER_CHANGES_IN_PERIOD_PERCENTAGE_TO_WIKI_TOTAL = "characterChangesInPeriodPercentageToWikiTotal"
    CHARACTER_CHANGES_SINCE_REGISTRATION = "characterChangesSinceRegistration"
    CHARACTER_CHANGES_SINCE_REGISTRATION_PERCENTAGE_TO_WIKI_TOTAL = "characterChangesSinceRegistrationPercentageToWikiTotal"

    # Thanks
    RECEIVED_THANKS_IN_PERIOD = "receivedThanksInPeriod"
    RECEIVED_THANKS_IN_PERIOD_PERCENTAGE_TO_WIKI_TOTAL = "receivedThanksInPeriodPercentageToWikiTotal"
    RECEIVED_THANKS_SINCE_REGISTRATION = "receivedThanksSinceRegistration"
    RECEIVED_THANKS_SINCE_REGISTRATION_PERCENTAGE_TO_WIKI_TOTAL = "receivedThanksSinceRegistrationPercentageToWikiTotal"
    SENT_THANKS_IN_PERIOD = "sentThanksInPeriod"
    SENT_THANKS_IN_PERIOD_PERCENTAGE_TO_WIKI_TOTAL = "sentThanksInPeriodPercentageToWikiTotal"
    SENT_THANKS_SINCE_REGISTRATION = "sentThanksSinceRegistration"
    SENT_THANKS_SINCE_REGISTRATION_PERCENTAGE_TO_WIKI_TOTAL = "sentThanksSinceRegistrationPercentageToWikiTotal"

    # Log events
    LOG_EVENTS_IN_PERIOD = "logEventsInPeriod"
    LOG_EVENTS_IN_PERIOD_PERCENTAGE_TO_WIKI_TOTAL = "logEventsInPeriodPercentageToWikiTotal"
    LOG_EVENTS_SINCE_REGISTRATION = "logEventsSinceRegistration"
    LOG_EVENTS_SINCE_REGISTRATION_PERCENTAGE_TO_WIKI_TOTAL = "logEventsSinceRegistrationPercentageToWikiTotal"

    # Active days
    ACTIVE_DAYS_IN_PERIOD = "activeDaysInPeriod"
    ACTIVE_DAYS_SINCE_REGISTRATION = "activeDaysSinceRegistration"

    # Namespace-parameterized
    EDITS_IN_NAMESPACE_IN_PERIOD = "editsInNamespaceInPeriod"
    EDITS_IN_NAMESPACE_IN_PERIOD_PERCENTAGE_TO_WIKI_TOTAL = "editsInNamespaceInPeriodPercentageToWikiTotal"
    EDITS_IN_NAMESPACE_IN_PERIOD_PERCENTAGE_TO_OWN_TOTAL_EDITS = "editsInNamespaceInPeriodPercentageToOwnTotalEdits"
    EDITS_IN_NAMESPACE_SINCE_REGISTRATION = "editsInNamespaceSinceRegistration"
    EDITS_IN_NAMESPACE_SINCE_REGISTRATION_PERCENTAGE_TO_WIKI_TOTAL = "editsInNamespaceSinceRegistrationPercentageToWikiTotal"
    EDITS_IN_NAMESPACE_SINCE_REGISTRATION_PERCENTAGE_TO_OWN_TOTAL_EDITS = "editsInNamespaceSinceRegistrationPercentageToOwnTotalEdits"
    REVERTED_EDITS_IN_NAMESPACE_IN_PERIOD = "revertedEditsInNamespaceInPeriod"
    REVERTED_EDITS_IN_NAMESPACE_IN_PERIOD_PERCENTAGE_TO_WIKI_TOTAL = "revertedEditsInNamespaceInPeriodPercentageToWikiTotal"
    REVERTED_EDITS_IN_NAMESPACE_IN_PERIOD_PERCENTAGE_TO_OWN_TOTAL_EDITS = "revertedEditsInNamespaceInPeriodPercentageToOwnTotalEdits"
    REVERTED_EDITS_IN_NAMESPACE_SINCE_REGISTRATION = "revertedEditsInNamespaceSinceRegistration"
    REVERTED_EDITS_IN_NAMESPACE_SINCE_REGISTRATION_PERCENTAGE_TO_WIKI_TOTAL = "revertedEditsInNamespaceSinceRegistrationPercentageToWikiTotal"
    REVERTED_EDITS_IN_NAMESPACE_SINCE_REGISTRATION_PERCENTAGE_TO_OWN_TOTAL_EDITS = "revertedEditsInNamespaceSinceRegistrationPercentageToOwnTotalEdits"
    CHARACTER_CHANGES_IN_NAMESPACE_IN_PERIOD = "characterChangesInNamespaceInPeriod"
    CHARACTER_CHANGES_IN_NAMESPACE_IN_PERIOD_PERCENTAGE_TO_WIKI_TOTAL = "characterChangesInNamespaceInPeriodPercentageToWikiTotal"
    CHARACTER_CHANGES_IN_NAMESPACE_SINCE_REGISTRATION = "characterChangesInNamespaceSinceRegistration"
    CHARACTER_CHANGES_IN_NAMESPACE_SINCE_REGISTRATION_PERCENTAGE_TO_WIKI_TOTAL = "characterChangesInNamespaceSinceRegistrationPercentageToWikiTotal"

    # Change-tag-parameterized
    EDITS_IN_PERIOD_BY_CHANGE_TAG = "editsInPeriodByChangeTag"
    EDITS_SINCE_REGISTRATION_BY_CHANGE_TAG = "editsSinceRegistrationByChangeTag"
    CHARACTER_CHANGES_IN_PERIOD_BY_CHANGE_TAG = "characterChangesInPeriodByChangeTag"
    CHARACTER_CHANGES_SINCE_REGISTRATION_BY_CHANGE_TAG = "characterChangesSinceRegistrationByChangeTag"

    # Log-filter-parameterized
    LOG_EVENTS_IN_PERIOD_BY_TYPE = "logEventsInPeriodByType"
    LOG_EVENTS_SINCE_REGISTRATION_BY_TYPE = "logEventsSinceRegistrationByType"
    FIRST_LOG_EVENT_DATE_BY_TYPE = "firstLogEventDateByType"
    LAST_LOG_EVENT_DATE_BY_TYPE = "lastLogEventDateByType"

    # Dates and day counts
    REGISTRATION_DATE = "registrationDate"
    DAYS_SINCE_REGISTRATION = "daysSinceRegistration"
    FIRST_EDIT_DATE = "firstEditDate"
    LAST_EDIT_DATE = "lastEditDate"
    DAYS_BETWEEN_FIRST_AND_LAST_EDIT = "daysBetweenFirstAndLastEdit"
    FIRST_LOG_EVENT_DATE = "firstLogEventDate"
    LAST_LOG_EVENT_DATE = "lastLogEventDate"
    DAYS_BETWEEN_FIRST_AND_LAST_LOG_EVENT = "daysBetweenFirstAndLastLogEvent"

    # Averages
    AVERAGE_EDITS_PER_DAY_IN_PERIOD = "averageEditsPerDayInPeriod"
    AVERAGE_EDITS_PER_DAY_SINCE_REGISTRATION = "averageEditsPerDaySinceRegistration"
    AVERAGE_LOG_EVENTS_PER_DAY_IN_PERIOD = "averageLogEventsPerDayInPeriod"
    AVERAGE_LOG_EVENTS_PER_DAY_SINCE_REGISTRATION = "averageLogEventsPerDaySinceRegistration"

    # Service award levels
    LEVEL_AT_PERIOD_START = "levelAtPeriodStart"
    LEVEL_AT_PERIOD_END = "levelAtPeriodEnd"
    LEVEL_AT_PERIOD_END_WITH_CHANGE = "levelAtPeriodEndWithChange"
    LEVEL_SORT_ORDER = "levelSortOrder"

    # Milestones crossed during the period
    EDITS_SINCE_REGISTRATION_MILESTONE = "editsSinceRegistrationMilestone"
    REVERTED_EDITS_SINCE_REGISTRATION_MILESTONE = "revertedEditsSinceRegistrationMilestone"
    CHARACTER_CHANGES_SINCE_REGISTRATION_MILESTONE = "characterChangesSinceRegistrationMilestone"
    RECEIVED_THANKS_SINCE_REGISTRATION_MILESTONE = "receivedThanksSinceRegistrationMilestone"
    SENT_THANKS_SINCE_REGISTRATION_MILESTONE = "sentThanksSinceRegistrationMilestone"
    LOG_EVENTS_SINCE_REGISTRATION_MILESTONE = "logEventsSinceRegistrationMilestone"
    ACTIVE_DAYS_SINCE_REGISTRATION_MILESTONE = "activeDaysSinceRegistrationMilestone"


# =============================================================================
# COLUMN DEFINITION VOCABULARY
# =============================================================================

class ColumnKind(Enum):
    """How a column is computed; the analyzer and generator dispatch on this."""
    POST_PROCESSED = "postProcessed"
    COUNTER = "counter"
    NAMESPACE_COUNTER = "namespaceCounter"
    CHANGE_TAG_COUNTER = "changeTagCounter"
    LOG_COUNTER = "logCounter"
    LOG_DATE = "logDate"
    ACTIVITY_DATE = "activityDate"
    ACTIVITY_DAYS_BETWEEN = "activityDaysBetween"
    REGISTRATION_DATE = "registrationDate"
    DAYS_SINCE_REGISTRATION = "daysSinceRegistration"
    AVERAGE_PER_DAY = "averagePerDay"
    LEVEL = "level"
    MILESTONE = "milestone"


class Span(Enum):
    IN_PERIOD = "inPeriod"
    SINCE_REGISTRATION = "sinceRegistration"


class Ratio(Enum):
    NONE = "none"
    WIKI_TOTAL = "wikiTotal"
    OWN_TOTAL_EDITS = "ownTotalEdits"


class ParameterShape(Enum):
    """Payload a ColumnSpec must carry for its type."""
    NONE = "none"
    NAMESPACE = "namespace"
    CHANGE_TAG = "changeTag"
    LOG_FILTER = "logFilter"
    MILESTONES = "milestones"


class ValueType(Enum):
    """Type tag driving post-processing coercion and export formatting."""
    INTEGER = "integer"
    FLOAT = "float"
    DATE = "date"
    TEXT = "text"
    TEXT_LIST = "textList"
    LEVEL = "level"
    LEVEL_WITH_CHANGE = "levelWithChange"
    COUNTER = "counter"


class ActivitySource(Enum):
    """Activity whose first/last dates a date column reports."""
    EDITS = "edits"
    LOG_EVENTS = "logEvents"
    LOG_FILTER = "logFilter"


class LevelMoment(Enum):
    START = "start"
    END = "end"
    END_WITH_CHANGE = "endWithChange"
    SORT_ORDER = "sortOrder"


@dataclass(frozen=True)
class ColumnDefinition:
    """
    Static description of one ColumnType.

    PARAMETERS:
        kind: Computation strategy
        value_type: Type tag of the produced value
        shape: Parameter the ColumnSpec must carry
        counter: Counter read by counter/milestone/average columns
        span: In period or since registration
        ratio: Optional denominator
        activity: Source of first/last date columns
        first: First (True) or last (False) date for date columns
        level_moment: Which level value a level column reports
    """
    kind: ColumnKind
    value_type: ValueType
    shape: ParameterShape = ParameterShape.NONE
    counter: Optional[CounterField] = None
    span: Optional[Span] = None
    ratio: Ratio = Ratio.NONE
    activity: Optional[ActivitySource] = None
    first: bool = True
    level_moment: Optional[LevelMoment] = None


def _counter(counter: CounterField, span: Span, ratio: Ratio = Ratio.NONE) -> ColumnDefinition:
    return ColumnDefinition(
        kind=ColumnKind.COUNTER,
        value_type=ValueType.INTEGER if ratio is Ratio.NONE else ValueType.FLOAT,
        counter=counter,
        span=span,
        ratio=ratio,
    )


def _namespace_counter(counter: CounterField, span: Span, ratio: Ratio = Ratio.NONE) -> ColumnDefinition:
    return ColumnDefinition(
        kind=ColumnKind.NAMESPACE_COUNTER,
        value_type=ValueType.INTEGER if ratio is Ratio.NONE else ValueType.FLOAT,
        shape=ParameterShape.NAMESPACE,
        counter=counter,
        span=span,
        ratio=ratio,
    )


def _change_tag_counter(counter: CounterField, span: Span) -> ColumnDefinition:
    return ColumnDefinition(
        kind=ColumnKind.CHANGE_TAG_COUNTER,
        value_type=ValueType.INTEGER,
        shape=ParameterShape.CHANGE_TAG,
        counter=counter,
        span=span,
    )


def _activity_date(activity: ActivitySource, first: bool) -> ColumnDefinition:
    return ColumnDefinition(
        kind=ColumnKind.LOG_DATE if activity is ActivitySource.LOG_FILTER else ColumnKind.ACTIVITY_DATE,
        value_type=ValueType.DATE,
        shape=ParameterShape.LOG_FILTER if activity is ActivitySource.LOG_FILTER else ParameterShape.NONE,
        activity=activity,
        first=first,
    )


def _average(counter: CounterField, span: Span) -> ColumnDefinition:
    return ColumnDefinition(
        kind=ColumnKind.AVERAGE_PER_DAY,
        value_type=ValueType.FLOAT,
        counter=counter,
        span=span,
    )


def _level(moment: LevelMoment, value_type: ValueType) -> ColumnDefinition:
    return ColumnDefinition(kind=ColumnKind.LEVEL, value_type=value_type, level_moment=moment)


def _milestone(counter: CounterField) -> ColumnDefinition:
    return ColumnDefinition(
        kind=ColumnKind.MILESTONE,
        value_type=ValueType.INTEGER,
        shape=ParameterShape.MILESTONES,
        counter=counter,
        span=Span.SINCE_REGISTRATION,
    )


_IN = Span.IN_PERIOD
_SINCE = Span.SINCE_REGISTRATION
_WIKI = Ratio.WIKI_TOTAL
_OWN = Ratio.OWN_TOTAL_EDITS

T = ColumnType

COLUMN_DEFINITIONS: Dict[ColumnType, ColumnDefinition] = {
    T.COUNTER: ColumnDefinition(kind=ColumnKind.POST_PROCESSED, value_type=ValueType.COUNTER),
    T.USER_NAME: ColumnDefinition(kind=ColumnKind.POST_PROCESSED, value_type=ValueType.TEXT),
    T.USER_GROUPS: ColumnDefinition(kind=ColumnKind.POST_PROCESSED, value_type=ValueType.TEXT_LIST),

    T.EDITS_IN_PERIOD: _counter(EDITS, _IN),
    T.EDITS_IN_PERIOD_PERCENTAGE_TO_WIKI_TOTAL: _counter(EDITS, _IN, _WIKI),
    T.EDITS_SINCE_REGISTRATION: _counter(EDITS, _SINCE),
    T.EDITS_SINCE_REGISTRATION_PERCENTAGE_TO_WIKI_TOTAL: _counter(EDITS, _SINCE, _WIKI),

    T.REVERTED_EDITS_IN_PERIOD: _counter(REVERTED_EDITS, _IN),
    T.REVERTED_EDITS_IN_PERIOD_PERCENTAGE_TO_WIKI_TOTAL: _counter(REVERTED_EDITS, _IN, _WIKI),
    T.REVERTED_EDITS_IN_PERIOD_PERCENTAGE_TO_OWN_TOTAL_EDITS: _counter(REVERTED_EDITS, _IN, _OWN),
    T.REVERTED_EDITS_SINCE_REGISTRATION: _counter(REVERTED_EDITS, _SINCE),
    T.REVERTED_EDITS_SINCE_REGISTRATION_PERCENTAGE_TO_WIKI_TOTAL: _counter(REVERTED_EDITS, _SINCE, _WIKI),
    T.REVERTED_EDITS_SINCE_REGISTRATION_PERCENTAGE_TO_OWN_TOTAL_EDITS: _counter(REVERTED_EDITS, _SINCE, _OWN),

    T.CHARACTER_CHANGES_IN_PERIOD: _counter(CHARACTER_CHANGES, _IN),
    T.CHARACTER_CHANGES_IN_PERIOD_PERCENTAGE_TO_WIKI_TOTAL: _counter(CHARACTER_CHANGES, _IN, _WIKI),
    T.CHARACTER_CHANGES_SINCE_REGISTRATION: _counter(CHARACTER_CHANGES, _SINCE),
    T.CHARACTER_CHANGES_SINCE_REGISTRATION_PERCENTAGE_TO_WIKI_TOTAL: _counter(CHARACTER_CHANGES, _SINCE, _WIKI),

    T.RECEIVED_THANKS_IN_PERIOD: _counter(RECEIVED_THANKS, _IN),
    T.RECEIVED_THANKS_IN_PERIOD_PERCENTAGE_TO_WIKI_TOTAL: _counter(RECEIVED_THANKS, _IN, _WIKI),
    T.RECEIVED_THANKS_SINCE_REGISTRATION: _counter(RECEIVED_THANKS, _SINCE),
    T.RECEIVED_THANKS_SINCE_REGISTRATION_PERCENTAGE_TO_WIKI_TOTAL: _counter(RECEIVED_THANKS, _SINCE, _WIKI),
    T.SENT_THANKS_IN_PERIOD: _counter(SENT_THANKS, _IN),
    T.SENT_THANKS_IN_PERIOD_PERCENTAGE_TO_WIKI_TOTAL: _counter(SENT_THANKS, _IN, _WIKI),
    T.SENT_THANKS_SINCE_REGISTRATION: _counter(SENT_THANKS, _SINCE),
    T.SENT_THANKS_SINCE_REGISTRATION_PERCENTAGE_TO_WIKI_TOTAL: _counter(SENT_THANKS, _SINCE, _WIKI),

    T.LOG_EVENTS_IN_PERIOD: _counter(LOG_EVENTS, _IN),
    T.LOG_EVENTS_IN_PERIOD_PERCENTAGE_TO_WIKI_TOTAL: _counter(LOG_EVENTS, _IN, _WIKI),
    T.LOG_EVENTS_SINCE_REGISTRATION: _counter(LOG_EVENTS, _SINCE),
    T.LOG_EVENTS_SINCE_REGISTRATION_PERCENTAGE_TO_WIKI_TOTAL: _counter(LOG_EVENTS, _SINCE, _WIKI),

    T.ACTIVE_DAYS_IN_PERIOD: _counter(ACTIVE_DAYS, _IN),
    T.ACTIVE_DAYS_SINCE_REGISTRATION: _counter(ACTIVE_DAYS, _SINCE),

    T.EDITS_IN_NAMESPACE_IN_PERIOD: _namespace_counter(EDITS, _IN),
    T.EDITS_IN_NAMESPACE_IN_PERIOD_PERCENTAGE_TO_WIKI_TOTAL: _namespace_counter(EDITS, _IN, _WIKI),
    T.EDITS_IN_NAMESPACE_IN_PERIOD_PERCENTAGE_TO_OWN_TOTAL_EDITS: _namespace_counter(EDITS, _IN, _OWN),
    T.EDITS_IN_NAMESPACE_SINCE_REGISTRATION: _namespace_counter(EDITS, _SINCE),
    T.EDITS_IN_NAMESPACE_SINCE_REGISTRATION_PERCENTAGE_TO_WIKI_TOTAL: _namespace_counter(EDITS, _SINCE, _WIKI),
    T.EDITS_IN_NAMESPACE_SINCE_REGISTRATION_PERCENTAGE_TO_OWN_TOTAL_EDITS: _namespace_counter(EDITS, _SINCE, _OWN),
    T.REVERTED_EDITS_IN_NAMESPACE_IN_PERIOD: _namespace_counter(REVERTED_EDITS, _IN),
    T.REVERTED_EDITS_IN_NAMESPACE_IN_PERIOD_PERCENTAGE_TO_WIKI_TOTAL: _namespace_counter(REVERTED_EDITS, _IN, _WIKI),
    T.REVERTED_EDITS_IN_NAMESPACE_IN_PERIOD_PERCENTAGE_TO_OWN_TOTAL_EDITS: _namespace_counter(REVERTED_EDITS, _IN, _OWN),
    T.REVERTED_EDITS_IN_NAMESPACE_SINCE_REGISTRATION: _namespace_counter(REVERTED_EDITS, _SINCE),
    T.REVERTED_EDITS_IN_NAMESPACE_SINCE_REGISTRATION_PERCENTAGE_TO_WIKI_TOTAL: _namespace_counter(REVERTED_EDITS, _SINCE, _WIKI),
    T.REVERTED_EDITS_IN_NAMESPACE_SINCE_REGISTRATION_PERCENTAGE_TO_OWN_TOTAL_EDITS: _namespace_counter(REVERTED_EDITS, _SINCE, _OWN),
    T.CHARACTER_CHANGES_IN_NAMESPACE_IN_PERIOD: _namespace_counter(CHARACTER_CHANGES, _IN),
    T.CHARACTER_CHANGES_IN_NAMESPACE_IN_PERIOD_PERCENTAGE_TO_WIKI_TOTAL: _namespace_counter(CHARACTER_CHANGES, _IN, _WIKI),
    T.CHARACTER_CHANGES_IN_NAMESPACE_SINCE_REGISTRATION: _namespace_counter(CHARACTER_CHANGES, _SINCE),
    T.CHARACTER_CHANGES_IN_NAMESPACE_SINCE_REGISTRATION_PERCENTAGE_TO_WIKI_TOTAL: _namespace_counter(CHARACTER_CHANGES, _SINCE, _WIKI),

    T.EDITS_IN_PERIOD_BY_CHANGE_TAG: _change_tag_counter(EDITS, _IN),
    T.EDITS_SINCE_REGISTRATION_BY_CHANGE_TAG: _change_tag_counter(EDITS, _SINCE),
    T.CHARACTER_CHANGES_IN_PERIOD_BY_CHANGE_TAG: _change_tag_counter(CHARACTER_CHANGES, _IN),
    T.CHARACTER_CHANGES_SINCE_REGISTRATION_BY_CHANGE_TAG: _change_tag_counter(CHARACTER_CHANGES, _SINCE),

    T.LOG_EVENTS_IN_PERIOD_BY_TYPE: ColumnDefinition(
        kind=ColumnKind.LOG_COUNTER, value_type=ValueType.INTEGER,
        shape=ParameterShape.LOG_FILTER, counter=LOG_EVENTS, span=_IN,
    ),
    T.LOG_EVENTS_SINCE_REGISTRATION_BY_TYPE: ColumnDefinition(
        kind=ColumnKind.LOG_COUNTER, value_type=ValueType.INTEGER,
        shape=ParameterShape.LOG_FILTER, counter=LOG_EVENTS, span=_SINCE,
    ),
    T.FIRST_LOG_EVENT_DATE_BY_TYPE: _activity_date(ActivitySource.LOG_FILTER, first=True),
    T.LAST_LOG_EVENT_DATE_BY_TYPE: _activity_date(ActivitySource.LOG_FILTER, first=False),

    T.REGISTRATION_DATE: ColumnDefinition(kind=ColumnKind.REGISTRATION_DATE, value_type=ValueType.DATE),
    T.DAYS_SINCE_REGISTRATION: ColumnDefinition(kind=ColumnKind.DAYS_SINCE_REGISTRATION, value_type=ValueType.INTEGER),
    T.FIRST_EDIT_DATE: _activity_date(ActivitySource.EDITS, first=True),
    T.LAST_EDIT_DATE: _activity_date(ActivitySource.EDITS, first=False),
    T.DAYS_BETWEEN_FIRST_AND_LAST_EDIT: ColumnDefinition(
        kind=ColumnKind.ACTIVITY_DAYS_BETWEEN, value_type=ValueType.INTEGER, activity=ActivitySource.EDITS,
    ),
    T.FIRST_LOG_EVENT_DATE: _activity_date(ActivitySource.LOG_EVENTS, first=True),
    T.LAST_LOG_EVENT_DATE: _activity_date(ActivitySource.LOG_EVENTS, first=False),
    T.DAYS_BETWEEN_FIRST_AND_LAST_LOG_EVENT: ColumnDefinition(
        kind=ColumnKind.ACTIVITY_DAYS_BETWEEN, value_type=ValueType.INTEGER, activity=ActivitySource.LOG_EVENTS,
    ),

    T.AVERAGE_EDITS_PER_DAY_IN_PERIOD: _average(EDITS, _IN),
    T.AVERAGE_EDITS_PER_DAY_SINCE_REGISTRATION: _average(EDITS, _SINCE),
    T.AVERAGE_LOG_EVENTS_PER_DAY_IN_PERIOD: _average(LOG_EVENTS, _IN),
    T.AVERAGE_LOG_EVENTS_PER_DAY_SINCE_REGISTRATION: _average(LOG_EVENTS, _SINCE),

    T.LEVEL_AT_PERIOD_START: _level(LevelMoment.START, ValueType.LEVEL),
    T.LEVEL_AT_PERIOD_END: _level(LevelMoment.END, ValueType.LEVEL),
    T.LEVEL_AT_PERIOD_END_WITH_CHANGE: _level(LevelMoment.END_WITH_CHANGE, ValueType.LEVEL_WITH_CHANGE),
    T.LEVEL_SORT_ORDER: _level(LevelMoment.SORT_ORDER, ValueType.FLOAT),

    T.EDITS_SINCE_REGISTRATION_MILESTONE: _milestone(EDITS),
    T.REVERTED_EDITS_SINCE_REGISTRATION_MILESTONE: _milestone(REVERTED_EDITS),
    T.CHARACTER_CHANGES_SINCE_REGISTRATION_MILESTONE: _milestone(CHARACTER_CHANGES),
    T.RECEIVED_THANKS_SINCE_REGISTRATION_MILESTONE: _milestone(RECEIVED_THANKS),
    T.SENT_THANKS_SINCE_REGISTRATION_MILESTONE: _milestone(SENT_THANKS),
    T.LOG_EVENTS_SINCE_REGISTRATION_MILESTONE: _milestone(LOG_EVENTS),
    T.ACTIVE_DAYS_SINCE_REGISTRATION_MILESTONE: _milestone(ACTIVE_DAYS),
}


def get_column_definition(column_type: ColumnType) -> ColumnDefinition:
    return COLUMN_DEFINITIONS[column_type]


# =============================================================================
# REQUIREMENT DEFINITIONS
# =============================================================================

class RequirementKind(Enum):
    """How an eligibility requirement is evaluated."""
    REGISTRATION_STATUS = "registrationStatus"
    REGISTRATION_AGE = "registrationAge"
    IN_USER_GROUPS = "inUserGroups"
    NOT_IN_USER_GROUPS = "notInUserGroups"
    HAS_TEMPLATES = "hasTemplates"
    HAS_NO_TEMPLATES = "hasNoTemplates"
    TOTAL = "total"
    IN_PERIOD = "inPeriod"
    MILESTONE_IN_PERIOD = "milestoneInPeriod"
    NAMESPACE_TOTAL = "namespaceTotal"
    NAMESPACE_IN_PERIOD = "namespaceInPeriod"
    CHANGE_TAG_TOTAL = "changeTagTotal"
    CHANGE_TAG_IN_PERIOD = "changeTagInPeriod"
    LEVEL = "level"


class Comparison(Enum):
    AT_LEAST = ">="
    AT_MOST = "<="


@dataclass(frozen=True)
class RequirementDefinition:
    """
    Static description of one EligibilityRequirement field.

    PARAMETERS:
        kind: Evaluation strategy
        counter: Counter compared by threshold requirements
        comparison: Direction of threshold requirements
        changed: For level requirements, whether the level must have changed
    """
    kind: RequirementKind
    counter: Optional[CounterField] = None
    comparison: Optional[Comparison] = None
    changed: bool = False


_GE = Comparison.AT_LEAST
_LE = Comparison.AT_MOST
R = RequirementKind

# Keys are EligibilityRequirement field names
REQUIREMENT_DEFINITIONS: Dict[str, RequirementDefinition] = {
    "registration_status": RequirementDefinition(R.REGISTRATION_STATUS),
    "registration_age_at_least": RequirementDefinition(R.REGISTRATION_AGE, comparison=_GE),
    "registration_age_at_most": RequirementDefinition(R.REGISTRATION_AGE, comparison=_LE),
    "user_groups": RequirementDefinition(R.IN_USER_GROUPS),
    "not_in_user_groups": RequirementDefinition(R.NOT_IN_USER_GROUPS),
    "has_user_page_templates": RequirementDefinition(R.HAS_TEMPLATES),
    "has_no_user_page_templates": RequirementDefinition(R.HAS_NO_TEMPLATES),

    "total_edits_at_least": RequirementDefinition(R.TOTAL, EDITS, _GE),
    "total_edits_at_most": RequirementDefinition(R.TOTAL, EDITS, _LE),
    "in_period_edits_at_least": RequirementDefinition(R.IN_PERIOD, EDITS, _GE),
    "in_period_edits_at_most": RequirementDefinition(R.IN_PERIOD, EDITS, _LE),
    "total_reverted_edits_at_least": RequirementDefinition(R.TOTAL, REVERTED_EDITS, _GE),
    "total_reverted_edits_at_most": RequirementDefinition(R.TOTAL, REVERTED_EDITS, _LE),
    "in_period_reverted_edits_at_least": RequirementDefinition(R.IN_PERIOD, REVERTED_EDITS, _GE),
    "in_period_reverted_edits_at_most": RequirementDefinition(R.IN_PERIOD, REVERTED_EDITS, _LE),
    "total_received_thanks_at_least": RequirementDefinition(R.TOTAL, RECEIVED_THANKS, _GE),
    "total_received_thanks_at_most": RequirementDefinition(R.TOTAL, RECEIVED_THANKS, _LE),
    "in_period_received_thanks_at_least": RequirementDefinition(R.IN_PERIOD, RECEIVED_THANKS, _GE),
    "in_period_received_thanks_at_most": RequirementDefinition(R.IN_PERIOD, RECEIVED_THANKS, _LE),
    "total_active_days_at_least": RequirementDefinition(R.TOTAL, ACTIVE_DAYS, _GE),
    "total_active_days_at_most": RequirementDefinition(R.TOTAL, ACTIVE_DAYS, _LE),
    "in_period_active_days_at_least": RequirementDefinition(R.IN_PERIOD, ACTIVE_DAYS, _GE),
    "in_period_active_days_at_most": RequirementDefinition(R.IN_PERIOD, ACTIVE_DAYS, _LE),

    "total_edits_milestone_reached_in_period": RequirementDefinition(R.MILESTONE_IN_PERIOD, EDITS),
    "total_reverted_edits_milestone_reached_in_period": RequirementDefinition(R.MILESTONE_IN_PERIOD, REVERTED_EDITS),
    "total_received_thanks_milestone_reached_in_period": RequirementDefinition(R.MILESTONE_IN_PERIOD, RECEIVED_THANKS),
    "total_active_days_milestone_reached_in_period": RequirementDefinition(R.MILESTONE_IN_PERIOD, ACTIVE_DAYS),

    "total_edits_in_namespace_at_least": RequirementDefinition(R.NAMESPACE_TOTAL, EDITS, _GE),
    "total_edits_in_namespace_at_most": RequirementDefinition(R.NAMESPACE_TOTAL, EDITS, _LE),
    "in_period_edits_in_namespace_at_least": RequirementDefinition(R.NAMESPACE_IN_PERIOD, EDITS, _GE),
    "in_period_edits_in_namespace_at_most": RequirementDefinition(R.NAMESPACE_IN_PERIOD, EDITS, _LE),

    "total_edits_with_change_tag_at_least": RequirementDefinition(R.CHANGE_TAG_TOTAL, EDITS, _GE),
    "total_edits_with_change_tag_at_most": RequirementDefinition(R.CHANGE_TAG_TOTAL, EDITS, _LE),
    "in_period_edits_with_change_tag_at_least": RequirementDefinition(R.CHANGE_TAG_IN_PERIOD, EDITS, _GE),
    "in_period_edits_with_change_tag_at_most": RequirementDefinition(R.CHANGE_TAG_IN_PERIOD, EDITS, _LE),

    "has_level": RequirementDefinition(R.LEVEL),
    "has_level_and_changed": RequirementDefinition(R.LEVEL, changed=True),
}


# =============================================================================
# EXHAUSTIVENESS
# =============================================================================

_missing_columns = set(ColumnType) - set(COLUMN_DEFINITIONS)
if _missing_columns:
    raise RuntimeError(f"ColumnType members without definition: {sorted(m.value for m in _missing_columns)}")
