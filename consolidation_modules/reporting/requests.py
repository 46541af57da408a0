"""
Consolidated report request DTOs.

Parses the camelCase query parameters accepted by the trial balance,
statement, entity breakdown and drill-down endpoints into typed, validated values.
Every parse failure raises ``InvalidRequestError`` naming the parameter.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Self, TypeVar
from uuid import UUID

from consolidation_kernel.domain.periods import Granularity, Period
from consolidation_kernel.exceptions import InvalidRequestError, InvalidScheduleError
from consolidation_modules.reporting.models import BreakdownBy, ColumnType, Scope

E = TypeVar("E", bound=Enum)

_TRUE = frozenset({"true", "1", "yes"})
_FALSE = frozenset({"false", "0", "no"})


# =========================================================================
# Parameter parsing
# =========================================================================


def _get(params: Mapping[str, str], name: str) -> str | None:
    value = params.get(name)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def parse_uuid(params: Mapping[str, str], name: str, required: bool = False) -> UUID | None:
    raw = _get(params, name)
    if raw is None:
        if required:
            raise InvalidRequestError(name, "is required")
        return None
    try:
        return UUID(raw)
    except ValueError:
        raise InvalidRequestError(name, f"{raw!r} is not a UUID") from None


def parse_int(params: Mapping[str, str], name: str, required: bool = False) -> int | None:
    raw = _get(params, name)
    if raw is None:
        if required:
            raise InvalidRequestError(name, "is required")
        return None
    try:
        return int(raw)
    except ValueError:
        raise InvalidRequestError(name, f"{raw!r} is not an integer") from None


def parse_bool(params: Mapping[str, str], name: str) -> bool | None:
    raw = _get(params, name)
    if raw is None:
        return None
    lowered = raw.lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise InvalidRequestError(name, f"{raw!r} is not a boolean")


def parse_enum(params: Mapping[str, str], name: str, enum_type: type[E], default: E) -> E:
    raw = _get(params, name)
    if raw is None:
        return default
    try:
        return enum_type(raw.lower())
    except ValueError:
        allowed = ", ".join(m.value for m in enum_type)
        raise InvalidRequestError(name, f"{raw!r} is not one of {allowed}") from None


def parse_period(
    params: Mapping[str, str],
    year_name: str,
    month_name: str,
    required: bool = False,
) -> Period | None:
    """Year and month parameters as a Period. Both or neither must be given."""
    year = parse_int(params, year_name, required)
    month = parse_int(params, month_name, required)
    if year is None and month is None:
        return None
    if year is None:
        raise InvalidRequestError(year_name, f"is required with {month_name}")
    if month is None:
        raise InvalidRequestError(month_name, f"is required with {year_name}")
    try:
        return Period(year, month)
    except InvalidScheduleError as exc:
        raise InvalidRequestError(month_name, exc.reason) from None


# =========================================================================
# Requests
# =========================================================================


@dataclass(frozen=True)
class ReportScope:
    """Organization-wide, or one entity, or one reporting entity."""

    scope: Scope = Scope.ORGANIZATION
    entity_id: UUID | None = None
    reporting_entity_id: UUID | None = None

    def __post_init__(self):
        if self.scope == Scope.ENTITY and self.entity_id is None and self.reporting_entity_id is None:
            raise InvalidRequestError("entityId", "is required when scope is entity")

    @classmethod
    def from_query_params(cls, params: Mapping[str, str]) -> Self:
        entity_id = parse_uuid(params, "entityId")
        reporting_entity_id = parse_uuid(params, "reportingEntityId")
        default = Scope.ENTITY if entity_id or reporting_entity_id else Scope.ORGANIZATION
        return cls(
            scope=parse_enum(params, "scope", Scope, default),
            entity_id=entity_id,
            reporting_entity_id=reporting_entity_id,
        )


@dataclass(frozen=True)
class TrialBalanceRequest:
    organization_id: UUID
    period: Period
    compare_period: Period | None = None
    scope: ReportScope = ReportScope()
    include_allocations: bool | None = None
    include_pro_forma: bool | None = None

    @classmethod
    def from_query_params(cls, params: Mapping[str, str]) -> Self:
        return cls(
            organization_id=parse_uuid(params, "organizationId", required=True),
            period=parse_period(params, "periodYear", "periodMonth", required=True),
            compare_period=parse_period(params, "comparePeriodYear", "comparePeriodMonth"),
            scope=ReportScope.from_query_params(params),
            include_allocations=parse_bool(params, "includeAllocations"),
            include_pro_forma=parse_bool(params, "includeProForma"),
        )


@dataclass(frozen=True)
class StatementRequest:
    """
    Financial statements over a month range.

    ``startYear``/``startMonth`` and ``endYear``/``endMonth`` give the
    range; ``periodYear``/``periodMonth`` alone requests a single month.
    """

    organization_id: UUID
    start: Period
    end: Period
    granularity: Granularity = Granularity.MONTHLY
    scope: ReportScope = ReportScope()
    include_budget: bool = False
    include_yoy: bool = False
    include_allocations: bool | None = None
    include_pro_forma: bool | None = None
    ebitda: bool = False

    def __post_init__(self):
        if self.end < self.start:
            raise InvalidRequestError("endMonth", f"{self.end} is before {self.start}")

    @classmethod
    def _range(cls, params: Mapping[str, str]) -> tuple[Period, Period]:
        start = parse_period(params, "startYear", "startMonth")
        end = parse_period(params, "endYear", "endMonth")
        single = parse_period(params, "periodYear", "periodMonth")
        if start is None and end is None:
            if single is None:
                raise InvalidRequestError("startYear", "a period or a start/end range is required")
            return single, single
        if start is None:
            raise InvalidRequestError("startYear", "is required with endYear")
        if end is None:
            raise InvalidRequestError("endYear", "is required with startYear")
        return start, end

    @classmethod
    def from_query_params(cls, params: Mapping[str, str]) -> Self:
        start, end = cls._range(params)
        return cls(
            organization_id=parse_uuid(params, "organizationId", required=True),
            start=start,
            end=end,
            granularity=parse_enum(params, "granularity", Granularity, Granularity.MONTHLY),
            scope=ReportScope.from_query_params(params),
            include_budget=bool(parse_bool(params, "includeBudget")),
            include_yoy=bool(parse_bool(params, "includeYoY")),
            include_allocations=parse_bool(params, "includeAllocations"),
            include_pro_forma=parse_bool(params, "includeProForma"),
            ebitda=bool(parse_bool(params, "ebitdaOnly")),
        )


@dataclass(frozen=True)
class EntityBreakdownRequest:
    """
    Statements over one month range, one column per entity or reporting entity.

    The range is read like ``StatementRequest``; ``breakdown`` picks the
    column kind.  ``scope`` narrows which entities get columns.
    """

    organization_id: UUID
    start: Period
    end: Period
    breakdown: BreakdownBy = BreakdownBy.ENTITY
    scope: ReportScope = ReportScope()
    include_allocations: bool | None = None
    include_pro_forma: bool | None = None
    ebitda: bool = False

    def __post_init__(self):
        if self.end < self.start:
            raise InvalidRequestError("endMonth", f"{self.end} is before {self.start}")

    @classmethod
    def from_query_params(cls, params: Mapping[str, str]) -> Self:
        start, end = StatementRequest._range(params)
        return cls(
            organization_id=parse_uuid(params, "organizationId", required=True),
            start=start,
            end=end,
            breakdown=parse_enum(params, "breakdown", BreakdownBy, BreakdownBy.ENTITY),
            scope=ReportScope.from_query_params(params),
            include_allocations=parse_bool(params, "includeAllocations"),
            include_pro_forma=parse_bool(params, "includeProForma"),
            ebitda=bool(parse_bool(params, "ebitdaOnly")),
        )


@dataclass(frozen=True)
class DrillDownRequest:
    """One statement cell: line, bucket and column within a statement request."""

    statements: StatementRequest
    statement_id: str
    line_id: str
    period_key: str
    column_type: ColumnType = ColumnType.ACTUAL

    @classmethod
    def from_query_params(cls, params: Mapping[str, str]) -> Self:
        statement_id = _get(params, "statementId")
        line_id = _get(params, "lineId")
        period_key = _get(params, "periodKey")
        if statement_id is None:
            raise InvalidRequestError("statementId", "is required")
        if line_id is None:
            raise InvalidRequestError("lineId", "is required")
        if period_key is None:
            raise InvalidRequestError("periodKey", "is required")
        return cls(
            statements=StatementRequest.from_query_params(params),
            statement_id=statement_id,
            line_id=line_id,
            period_key=period_key,
            column_type=parse_enum(params, "columnType", ColumnType, ColumnType.ACTUAL),
        )
