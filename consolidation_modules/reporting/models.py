"""
Consolidated Reporting Domain Models (``consolidation_modules.reporting.models``).

Responsibility
--------------
Frozen dataclass value objects returned by consolidated reporting:
the consolidated trial balance with its entity breakdown, financial
statements laid out by template, the same statements broken out into
entity or reporting-entity columns, and drill-down detail for one cell.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.  Built by the
pure functions in ``trial_balance.py``, ``statements.py`` and
``drilldown.py``; returned to callers by ``ConsolidationService``.

Invariants enforced
-------------------
* All models are ``frozen=True`` (immutable after construction).
* All monetary fields use ``Decimal`` -- NEVER ``float``.
* Statement line amounts are ``None`` only for margin lines whose
  denominator is zero.

Failure modes
-------------
* Construction with invalid enum values raises ``ValueError``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from uuid import UUID

from consolidation_engines.adjustments import AdjustmentKind, InvalidAdjustment
from consolidation_engines.aggregator import UnmappedAccountBalance
from consolidation_kernel.domain.periods import Granularity, Period, PeriodBucket
from consolidation_kernel.domain.snapshot import (
    AccountClassification,
    EliminationType,
    NormalBalance,
)

ZERO = Decimal("0")


# =========================================================================
# Enums
# =========================================================================


class ReportType(str, Enum):
    TRIAL_BALANCE = "trial_balance"
    FINANCIAL_STATEMENTS = "financial_statements"
    DRILL_DOWN = "drill_down"
    UNMAPPED = "unmapped"
    ENTITY_BREAKDOWN = "entity_breakdown"


class BreakdownBy(str, Enum):
    """What each breakdown column stands for."""

    ENTITY = "entity"
    REPORTING_ENTITY = "reporting_entity"


class BreakdownColumnKind(str, Enum):
    ENTITY = "entity"
    REPORTING_ENTITY = "reporting_entity"
    OTHER = "other"
    ELIMINATIONS = "eliminations"
    CONSOLIDATED = "consolidated"


class Scope(str, Enum):
    """Whole organization, or a single entity / reporting entity."""

    ORGANIZATION = "organization"
    ENTITY = "entity"


class ColumnType(str, Enum):
    ACTUAL = "actual"
    BUDGET = "budget"
    PRIOR_YEAR = "prior_year"


class LineKind(str, Enum):
    ACCOUNT = "account"
    SECTION_TOTAL = "section_total"
    COMPUTED = "computed"
    MARGIN = "margin"


# =========================================================================
# Report Metadata
# =========================================================================


@dataclass(frozen=True)
class ReportMetadata:
    """Metadata attached to every consolidated report."""

    report_type: ReportType
    organization_id: UUID
    organization_name: str
    currency: str
    generated_at: str  # ISO format timestamp from injected clock
    scope: Scope = Scope.ORGANIZATION
    entity_ids: tuple[UUID, ...] | None = None
    include_allocations: bool = True
    include_pro_forma: bool = True


# =========================================================================
# Consolidated Trial Balance
# =========================================================================


@dataclass(frozen=True)
class EntityBreakdown:
    """
    One entity's share of a master account.

    The row with ``entity_id`` None carries consolidation-level
    eliminations.  Rows sum to the account.
    """

    entity_id: UUID | None
    entity_code: str
    entity_name: str
    ending_balance: Decimal
    adjustments: Decimal
    adjusted_balance: Decimal
    compare_adjusted_balance: Decimal | None = None


@dataclass(frozen=True)
class ConsolidatedAccount:
    """One master account in the consolidated trial balance."""

    master_account_id: UUID
    account_number: str
    account_name: str
    classification: AccountClassification
    account_type: str
    normal_balance: NormalBalance
    mapped_entities: tuple[str, ...]
    entity_breakdown: tuple[EntityBreakdown, ...]
    ending_balance: Decimal
    debit_total: Decimal
    credit_total: Decimal
    adjustments: Decimal
    elimination_adjustments: Decimal
    adjusted_balance: Decimal
    compare_ending_balance: Decimal | None = None
    compare_adjusted_balance: Decimal | None = None
    change_from_compare: Decimal | None = None

    @property
    def display_name(self) -> str:
        return f"{self.account_number} - {self.account_name}"


@dataclass(frozen=True)
class ClassificationTotals:
    total_assets: Decimal = ZERO
    total_liabilities: Decimal = ZERO
    total_equity: Decimal = ZERO
    total_revenue: Decimal = ZERO
    total_expenses: Decimal = ZERO

    @property
    def net_income(self) -> Decimal:
        return self.total_revenue - self.total_expenses

    def __sub__(self, other: ClassificationTotals) -> ClassificationTotals:
        return ClassificationTotals(
            total_assets=self.total_assets - other.total_assets,
            total_liabilities=self.total_liabilities - other.total_liabilities,
            total_equity=self.total_equity - other.total_equity,
            total_revenue=self.total_revenue - other.total_revenue,
            total_expenses=self.total_expenses - other.total_expenses,
        )


@dataclass(frozen=True)
class EliminationLine:
    """A posted elimination as shown alongside the trial balance."""

    elimination_id: UUID
    elimination_type: EliminationType
    debit_master_account_id: UUID
    credit_master_account_id: UUID
    amount: Decimal
    description: str = ""


@dataclass(frozen=True)
class TrialBalanceReport:
    """Consolidated trial balance for one month, with optional comparison month."""

    metadata: ReportMetadata
    period: Period
    accounts: tuple[ConsolidatedAccount, ...]
    totals: ClassificationTotals
    compare_period: Period | None = None
    compare_totals: ClassificationTotals | None = None
    totals_change: ClassificationTotals | None = None
    unmapped: tuple[UnmappedAccountBalance, ...] = ()
    eliminations: tuple[EliminationLine, ...] = ()
    invalid_adjustments: tuple[InvalidAdjustment, ...] = ()

    def account(self, master_account_id: UUID) -> ConsolidatedAccount | None:
        for a in self.accounts:
            if a.master_account_id == master_account_id:
                return a
        return None


# =========================================================================
# Financial Statements
# =========================================================================


@dataclass(frozen=True)
class StatementLine:
    """
    One rendered line.  ``amounts`` is keyed by bucket key.

    Margin lines hold ratios (0.2500 == 25%) and None where revenue is zero.
    """

    id: str
    label: str
    kind: LineKind
    section_id: str | None = None
    master_account_id: UUID | None = None
    amounts: dict[str, Decimal | None] = field(default_factory=dict)
    budget_amounts: dict[str, Decimal | None] | None = None
    prior_year_amounts: dict[str, Decimal | None] | None = None
    is_grand_total: bool = False
    indent: int = 0

    @property
    def is_percentage(self) -> bool:
        return self.kind == LineKind.MARGIN


@dataclass(frozen=True)
class StatementData:
    id: str
    title: str
    periods: tuple[PeriodBucket, ...]
    lines: tuple[StatementLine, ...]
    is_ebitda: bool = False

    def line(self, line_id: str) -> StatementLine | None:
        for line in self.lines:
            if line.id == line_id:
                return line
        return None


@dataclass(frozen=True)
class FinancialStatementsReport:
    metadata: ReportMetadata
    granularity: Granularity
    start: Period
    end: Period
    statements: tuple[StatementData, ...]
    unmapped: tuple[UnmappedAccountBalance, ...] = ()
    invalid_adjustments: tuple[InvalidAdjustment, ...] = ()

    def statement(self, statement_id: str) -> StatementData | None:
        for s in self.statements:
            if s.id == statement_id:
                return s
        return None


# =========================================================================
# Entity breakdown
# =========================================================================


@dataclass(frozen=True)
class BreakdownColumn:
    """
    One column of an entity breakdown.

    ``key`` indexes every line's ``amounts``.  ``entity_ids`` lists the
    entities folded into the column; empty for eliminations.
    """

    key: str
    label: str
    name: str
    kind: BreakdownColumnKind
    entity_ids: tuple[UUID, ...] = ()


@dataclass(frozen=True)
class EntityBreakdownReport:
    metadata: ReportMetadata
    breakdown: BreakdownBy
    start: Period
    end: Period
    columns: tuple[BreakdownColumn, ...]
    statements: tuple[StatementData, ...]
    unmapped: tuple[UnmappedAccountBalance, ...] = ()
    invalid_adjustments: tuple[InvalidAdjustment, ...] = ()

    def statement(self, statement_id: str) -> StatementData | None:
        for s in self.statements:
            if s.id == statement_id:
                return s
        return None

    def column(self, key: str) -> BreakdownColumn | None:
        for c in self.columns:
            if c.key == key:
                return c
        return None


# =========================================================================
# Drill-down
# =========================================================================


@dataclass(frozen=True)
class DrillDownRow:
    """One entity account's raw balance contributing to a cell."""

    entity_id: UUID
    entity_code: str
    entity_name: str
    account_id: UUID
    account_name: str
    account_number: str | None
    amount: Decimal


@dataclass(frozen=True)
class AdjustmentRow:
    """One adjustment's contribution to a cell, summed over the bucket months."""

    adjustment_id: UUID
    type: AdjustmentKind
    entity_id: UUID | None
    entity_code: str
    entity_name: str
    description: str
    amount: Decimal


@dataclass(frozen=True)
class DrillDownGroup:
    """
    Contributions to one master account.

    ``sign`` is -1 when the account's section is subtracted by the line
    being drilled; row amounts already carry that sign.
    """

    master_account_id: UUID
    account_number: str
    account_name: str
    sign: int
    rows: tuple[DrillDownRow, ...]
    adjustments: tuple[AdjustmentRow, ...]
    subtotal: Decimal


@dataclass(frozen=True)
class DrillDownResult:
    statement_id: str
    line_id: str
    period_key: str
    column_type: ColumnType
    groups: tuple[DrillDownGroup, ...] = ()
    total: Decimal = ZERO
    is_decomposable: bool = True
