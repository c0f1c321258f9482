"""
Statistics Request Models
=========================

Pydantic models for one statistics request: the columns to compute, the
eligibility requirements actors must meet, the reporting window and the
sort/limit rules.

The wire format is camelCase JSON, the shape list and pyramid configurations
use:

    {
      "wikiId": "huwiki",
      "columns": [
        {"type": "counter"},
        {"type": "userName"},
        {"type": "editsInNamespaceInPeriod", "namespace": [0, 2], "columnId": "mainEdits"}
      ],
      "requirements": {
        "registrationStatus": "registered",
        "totalEditsAtLeast": 100,
        "inPeriodEditsAtLeast": {"count": 10, "period": 30, "epoch": -7}
      },
      "orderBy": [{"columnId": "mainEdits", "direction": "desc"}],
      "itemCount": 100,
      "startDate": "2023-01-01",
      "endDate": "2023-12-31",
      "skipBotsFromCounting": true
    }

Parsing a request is the validation step: shape errors surface as
pydantic.ValidationError before any SQL is built. The compiler trusts a
parsed request.

Related files:
- wikistats/statistics/model.py: ColumnType and the requirement registry
- wikistats/statistics/analyzer.py: Consumes these models
- wikistats/pyramids.py: Reuses EligibilityRequirement for pyramid groups
"""

from __future__ import annotations

from datetime import date
from typing import Any, Literal, Optional, Tuple, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from wikistats.statistics.model import (
    REQUIREMENT_DEFINITIONS,
    ColumnType,
    ParameterShape,
    get_column_definition,
)

START_OF_SELECTED_PERIOD = "startOfSelectedPeriod"

# Day offset from endDate (usually negative), or the day before startDate
Epoch = Union[int, Literal["startOfSelectedPeriod"], None]


class _RequestModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )


def _as_tuple(value: Any) -> Any:
    """Accept a single value where a list is allowed."""
    if value is None or isinstance(value, (list, tuple)):
        return value
    return (value,)


# =============================================================================
# FILTERS AND THRESHOLDS
# =============================================================================

class ChangeTagFilter(_RequestModel):
    """Edits carrying one change tag, optionally restricted to one namespace."""
    change_tag_id: int
    namespace: Optional[int] = None


class LogFilter(_RequestModel):
    """Log events of a type, an action, or a type/action pair."""
    log_type: Optional[str] = None
    log_action: Optional[str] = None

    @model_validator(mode="after")
    def _require_type_or_action(self):
        if self.log_type is None and self.log_action is None:
            raise ValueError("A log filter needs logType, logAction or both")
        return self


class TotalThreshold(_RequestModel):
    """Cumulative value at the epoch date compared to `count`."""
    count: int = Field(validation_alias=AliasChoices("count", "edits"))
    epoch: Epoch = None


class PeriodThreshold(_RequestModel):
    """Value accumulated during `period` days ending at the epoch date."""
    count: int = Field(validation_alias=AliasChoices("count", "edits"))
    period: int = Field(ge=0)
    epoch: Epoch = None


class _NamespaceScoped(_RequestModel):
    namespace: Tuple[int, ...]

    @field_validator("namespace", mode="before")
    @classmethod
    def _wrap_namespace(cls, v):
        return _as_tuple(v)


class NamespaceTotalThreshold(_NamespaceScoped):
    count: int = Field(validation_alias=AliasChoices("count", "edits"))
    epoch: Epoch = None


class NamespacePeriodThreshold(_NamespaceScoped):
    count: int = Field(validation_alias=AliasChoices("count", "edits"))
    period: int = Field(ge=0)
    epoch: Epoch = None


class _ChangeTagScoped(_RequestModel):
    change_tag: Tuple[ChangeTagFilter, ...]

    @field_validator("change_tag", mode="before")
    @classmethod
    def _wrap_change_tag(cls, v):
        return _as_tuple(v)


class ChangeTagTotalThreshold(_ChangeTagScoped):
    count: int = Field(validation_alias=AliasChoices("count", "edits"))
    epoch: Epoch = None


class ChangeTagPeriodThreshold(_ChangeTagScoped):
    count: int = Field(validation_alias=AliasChoices("count", "edits"))
    period: int = Field(ge=0)
    epoch: Epoch = None


# =============================================================================
# ELIGIBILITY REQUIREMENT
# =============================================================================

class EligibilityRequirement(_RequestModel):
    """
    Conditions an actor must satisfy to appear in the result. All present
    fields are ANDed.

    Evaluated in SQL, except `hasLevel` / `hasLevelAndChanged` which need the
    service-award level computed in post-processing.
    """
    registration_status: Optional[Tuple[Literal["registered", "anon"], ...]] = None
    registration_age_at_least: Optional[int] = None
    registration_age_at_most: Optional[int] = None
    user_groups: Optional[Tuple[str, ...]] = None
    not_in_user_groups: Optional[Tuple[str, ...]] = None
    has_user_page_templates: Optional[Tuple[str, ...]] = None
    has_no_user_page_templates: Optional[Tuple[str, ...]] = None

    total_edits_at_least: Optional[TotalThreshold] = None
    total_edits_at_most: Optional[TotalThreshold] = None
    in_period_edits_at_least: Optional[PeriodThreshold] = None
    in_period_edits_at_most: Optional[PeriodThreshold] = None
    total_reverted_edits_at_least: Optional[TotalThreshold] = None
    total_reverted_edits_at_most: Optional[TotalThreshold] = None
    in_period_reverted_edits_at_least: Optional[PeriodThreshold] = None
    in_period_reverted_edits_at_most: Optional[PeriodThreshold] = None
    total_received_thanks_at_least: Optional[TotalThreshold] = None
    total_received_thanks_at_most: Optional[TotalThreshold] = None
    in_period_received_thanks_at_least: Optional[PeriodThreshold] = None
    in_period_received_thanks_at_most: Optional[PeriodThreshold] = None
    total_active_days_at_least: Optional[TotalThreshold] = None
    total_active_days_at_most: Optional[TotalThreshold] = None
    in_period_active_days_at_least: Optional[PeriodThreshold] = None
    in_period_active_days_at_most: Optional[PeriodThreshold] = None

    total_edits_milestone_reached_in_period: Optional[Tuple[int, ...]] = None
    total_reverted_edits_milestone_reached_in_period: Optional[Tuple[int, ...]] = None
    total_received_thanks_milestone_reached_in_period: Optional[Tuple[int, ...]] = None
    total_active_days_milestone_reached_in_period: Optional[Tuple[int, ...]] = None

    total_edits_in_namespace_at_least: Optional[NamespaceTotalThreshold] = None
    total_edits_in_namespace_at_most: Optional[NamespaceTotalThreshold] = None
    in_period_edits_in_namespace_at_least: Optional[NamespacePeriodThreshold] = None
    in_period_edits_in_namespace_at_most: Optional[NamespacePeriodThreshold] = None

    total_edits_with_change_tag_at_least: Optional[ChangeTagTotalThreshold] = None
    total_edits_with_change_tag_at_most: Optional[ChangeTagTotalThreshold] = None
    in_period_edits_with_change_tag_at_least: Optional[ChangeTagPeriodThreshold] = None
    in_period_edits_with_change_tag_at_most: Optional[ChangeTagPeriodThreshold] = None

    has_level: Optional[Tuple[str, ...]] = None
    has_level_and_changed: Optional[Tuple[str, ...]] = None

    @field_validator(
        "registration_status", "user_groups", "not_in_user_groups",
        "has_user_page_templates", "has_no_user_page_templates",
        "has_level", "has_level_and_changed",
        mode="before",
    )
    @classmethod
    def _wrap_single_values(cls, v):
        return _as_tuple(v)

    @field_validator(
        "total_edits_at_least", "total_edits_at_most",
        "total_reverted_edits_at_least", "total_reverted_edits_at_most",
        "total_received_thanks_at_least", "total_received_thanks_at_most",
        "total_active_days_at_least", "total_active_days_at_most",
        mode="before",
    )
    @classmethod
    def _wrap_plain_count(cls, v):
        """`"totalEditsAtLeast": 100` is shorthand for `{"count": 100}`."""
        if isinstance(v, int) and not isinstance(v, bool):
            return {"count": v}
        return v

    def present_fields(self) -> Tuple[str, ...]:
        """Names of the requirement fields set on this object, in declaration order."""
        return tuple(name for name in type(self).model_fields if getattr(self, name) is not None)


_unregistered = set(EligibilityRequirement.model_fields) ^ set(REQUIREMENT_DEFINITIONS)
if _unregistered:
    raise RuntimeError(f"EligibilityRequirement fields out of sync with registry: {sorted(_unregistered)}")


# =============================================================================
# COLUMNS
# =============================================================================

class ColumnSpec(_RequestModel):
    """
    One requested output column.

    The `type` tag selects the computation; parameterized types carry
    exactly the payload their ParameterShape names.
    """
    type: ColumnType
    column_id: Optional[str] = None
    namespace: Optional[Tuple[int, ...]] = None
    change_tag: Optional[Tuple[ChangeTagFilter, ...]] = None
    log_filter: Optional[Tuple[LogFilter, ...]] = None
    milestones: Optional[Tuple[int, ...]] = None
    filter_by_rule: Optional[Literal["moreThanZero"]] = None

    @field_validator("namespace", "change_tag", "log_filter", "milestones", mode="before")
    @classmethod
    def _wrap_parameters(cls, v):
        return _as_tuple(v)

    @model_validator(mode="after")
    def _check_shape(self):
        shape = get_column_definition(self.type).shape
        payloads = {
            ParameterShape.NAMESPACE: self.namespace,
            ParameterShape.CHANGE_TAG: self.change_tag,
            ParameterShape.LOG_FILTER: self.log_filter,
            ParameterShape.MILESTONES: self.milestones,
        }
        for payload_shape, value in payloads.items():
            if payload_shape is shape and not value and payload_shape is not ParameterShape.MILESTONES:
                raise ValueError(f"Column '{self.type.value}' requires '{payload_shape.value}'")
            if payload_shape is not shape and value is not None:
                raise ValueError(f"Column '{self.type.value}' does not accept '{payload_shape.value}'")
        return self


class OrderBy(_RequestModel):
    column_id: str
    direction: Literal["asc", "desc"] = "asc"

    @field_validator("direction", mode="before")
    @classmethod
    def _normalize_direction(cls, v):
        if isinstance(v, str):
            return {"ascending": "asc", "descending": "desc"}.get(v.lower(), v.lower())
        return v


# =============================================================================
# SERVICE AWARD LADDER
# =============================================================================

class ServiceAwardLevel(_RequestModel):
    """One rung of a wiki's service-award ladder."""
    id: str
    label: str
    required_contributions: int = Field(ge=0)
    required_active_days: int = Field(ge=0)


# =============================================================================
# REQUEST
# =============================================================================

class StatisticsRequest(_RequestModel):
    """
    Everything needed to compile and run one statistics query.

    Validation:
    - endDate is required; startDate is optional (timeless list)
    - startDate must not be after endDate
    - itemCount 0 or absent means unbounded
    """
    wiki_id: str
    columns: Tuple[ColumnSpec, ...] = ()
    requirements: Optional[EligibilityRequirement] = None
    order_by: Tuple[OrderBy, ...] = ()
    item_count: Optional[int] = Field(default=None, ge=0)
    start_date: Optional[date] = None
    end_date: date
    skip_bots_from_counting: bool = False
    service_award_levels: Optional[Tuple[ServiceAwardLevel, ...]] = None

    @field_validator("end_date")
    @classmethod
    def _check_range(cls, v, info):
        """Ensure end date is not before start date."""
        if v and info.data.get("start_date") and v < info.data["start_date"]:
            raise ValueError("endDate must be >= startDate")
        return v

    def column_ids(self) -> Tuple[str, ...]:
        """Identifier of each column: its columnId, or `column{i}` when unnamed."""
        return tuple(
            column.column_id or f"column{index}"
            for index, column in enumerate(self.columns)
        )
