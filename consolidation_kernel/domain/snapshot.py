"""
Snapshot -- immutable source rows for one consolidation request.

Responsibility:
    Defines the frozen DTOs every consolidation computation reads:
    entities, the master chart of accounts, entity accounts, account
    mappings, raw ledger balances, budget amounts, and the three kinds of
    manual adjustment (allocation/reclass, pro forma, elimination).
    ConsolidationSnapshot bundles them so each derived view is a pure
    function of one loaded snapshot.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    ORM models convert to these DTOs via ``to_dto()``; engines and
    reporting modules never see ORM objects.

Invariants enforced:
    - All monetary fields are Decimal, never float.
    - An allocation is either an InterEntityAllocation (two entities, one
      master account) or a ReclassAdjustment (one entity, two master
      accounts).  The two shapes are separate types.
    - Schedules are a closed sum type: ExactSchedule, RepeatingSchedule,
      SpreadSchedule, each carrying only its own fields.

Failure modes:
    - None at construction beyond Period validation.  Malformed schedules
      that reached storage are tolerated here and reported by the
      scheduler as invalid with a zero contribution.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from functools import cached_property
from uuid import UUID

from consolidation_kernel.domain.periods import Period


class AccountClassification(str, Enum):
    """Top-level classification of a master account."""

    ASSET = "Asset"
    LIABILITY = "Liability"
    EQUITY = "Equity"
    REVENUE = "Revenue"
    EXPENSE = "Expense"

    @property
    def is_income_statement(self) -> bool:
        """Revenue and Expense balances are period activity, not positions."""
        return self in (AccountClassification.REVENUE, AccountClassification.EXPENSE)


class NormalBalance(str, Enum):
    DEBIT = "debit"
    CREDIT = "credit"


def natural_balance(
    debit_total: Decimal,
    credit_total: Decimal,
    normal_balance: NormalBalance,
) -> Decimal:
    """Balance in the account's natural sign (positive when normal)."""
    if normal_balance == NormalBalance.DEBIT:
        return debit_total - credit_total
    return credit_total - debit_total


# ---------------------------------------------------------------------------
# Reference data
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EntityInfo:
    id: UUID
    code: str
    name: str
    is_active: bool = True


@dataclass(frozen=True)
class ReportingEntityInfo:
    """A named group of entities reported together."""

    id: UUID
    name: str
    member_ids: frozenset[UUID] = frozenset()


@dataclass(frozen=True)
class MasterAccountInfo:
    """One node of the consolidated chart of accounts."""

    id: UUID
    number: str
    name: str
    classification: AccountClassification
    account_type: str
    normal_balance: NormalBalance
    is_active: bool = True
    display_order: int = 0

    @property
    def display_name(self) -> str:
        return f"{self.number} - {self.name}"


@dataclass(frozen=True)
class EntityAccountInfo:
    """A ledger account in one entity's own chart."""

    id: UUID
    entity_id: UUID
    name: str
    number: str | None = None
    classification: str | None = None
    is_active: bool = True


@dataclass(frozen=True)
class AccountMappingRecord:
    """(entity, entity account) -> master account."""

    entity_id: UUID
    entity_account_id: UUID
    master_account_id: UUID


@dataclass(frozen=True)
class RawBalance:
    """One entity account's ledger totals for one month."""

    entity_id: UUID
    account_id: UUID
    period: Period
    debit_total: Decimal
    credit_total: Decimal


@dataclass(frozen=True)
class BudgetAmount:
    """Budgeted amount for one entity account and month, in natural sign."""

    entity_id: UUID
    account_id: UUID
    period: Period
    amount: Decimal


# ---------------------------------------------------------------------------
# Schedules
# ---------------------------------------------------------------------------


class ScheduleType(str, Enum):
    SINGLE_MONTH = "single_month"
    MONTHLY_SPREAD = "monthly_spread"


@dataclass(frozen=True)
class ExactSchedule:
    """Full amount in one month."""

    period: Period


@dataclass(frozen=True)
class RepeatingSchedule:
    """Full amount in every month from start through end inclusive."""

    start: Period
    end: Period


@dataclass(frozen=True)
class SpreadSchedule:
    """Amount divided evenly across every month from start through end."""

    start: Period
    end: Period


Schedule = ExactSchedule | RepeatingSchedule | SpreadSchedule


def schedule_type_of(schedule: Schedule) -> ScheduleType:
    if isinstance(schedule, SpreadSchedule):
        return ScheduleType.MONTHLY_SPREAD
    return ScheduleType.SINGLE_MONTH


# ---------------------------------------------------------------------------
# Adjustments
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InterEntityAllocation:
    """
    Moves an amount of one master account from one entity to another.

    Guarantees:
        Contributions to the two entities always net to zero.
    """

    id: UUID
    source_entity_id: UUID
    destination_entity_id: UUID
    master_account_id: UUID
    amount: Decimal
    schedule: Schedule
    description: str = ""
    is_excluded: bool = False


@dataclass(frozen=True)
class ReclassAdjustment:
    """
    Moves an amount between two master accounts within one entity.

    Guarantees:
        Contributions to the two master accounts always net to zero.
    """

    id: UUID
    entity_id: UUID
    master_account_id: UUID
    destination_master_account_id: UUID
    amount: Decimal
    schedule: Schedule
    description: str = ""
    is_excluded: bool = False


Allocation = InterEntityAllocation | ReclassAdjustment


@dataclass(frozen=True)
class ProFormaAdjustment:
    """
    Single-entity, single-month delta.

    When ``offset_master_account_id`` is set the offset account receives
    the negated amount for the same entity and month.
    """

    id: UUID
    entity_id: UUID
    master_account_id: UUID
    period: Period
    amount: Decimal
    description: str = ""
    is_excluded: bool = False
    offset_master_account_id: UUID | None = None


class EliminationStatus(str, Enum):
    """
    Lifecycle: DRAFT -> POSTED -> REVERSED.

    Only POSTED entries affect balances.
    """

    DRAFT = "draft"
    POSTED = "posted"
    REVERSED = "reversed"


class EliminationType(str, Enum):
    INTERCOMPANY = "intercompany"
    RECLASSIFICATION = "reclassification"
    ADJUSTMENT = "adjustment"


@dataclass(frozen=True)
class Elimination:
    """Consolidation-level debit/credit pair, not attributed to any entity."""

    id: UUID
    debit_master_account_id: UUID
    credit_master_account_id: UUID
    amount: Decimal
    period: Period
    status: EliminationStatus = EliminationStatus.DRAFT
    elimination_type: EliminationType = EliminationType.INTERCOMPANY
    description: str = ""
    memo: str | None = None


@dataclass(frozen=True)
class UnreadableAllocation:
    """A stored allocation row whose schedule columns do not form a Schedule."""

    id: UUID
    reason: str


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ConsolidationSnapshot:
    """
    Every source row a consolidation request needs, loaded once.

    Contract:
        Built by SnapshotSelector (or directly in tests).  All reporting
        functions take a snapshot plus request parameters and return new
        values; nothing mutates the snapshot.

    Non-goals:
        No lazy loading.  A month missing from ``balances`` simply has no
        activity.
    """

    organization_id: UUID
    entities: tuple[EntityInfo, ...] = ()
    master_accounts: tuple[MasterAccountInfo, ...] = ()
    entity_accounts: tuple[EntityAccountInfo, ...] = ()
    mappings: tuple[AccountMappingRecord, ...] = ()
    balances: tuple[RawBalance, ...] = ()
    budgets: tuple[BudgetAmount, ...] = ()
    allocations: tuple[Allocation, ...] = ()
    pro_formas: tuple[ProFormaAdjustment, ...] = ()
    eliminations: tuple[Elimination, ...] = ()
    reporting_entities: tuple[ReportingEntityInfo, ...] = field(default=())
    unreadable_allocations: tuple[UnreadableAllocation, ...] = ()

    @cached_property
    def entities_by_id(self) -> dict[UUID, EntityInfo]:
        return {e.id: e for e in self.entities}

    @cached_property
    def master_accounts_by_id(self) -> dict[UUID, MasterAccountInfo]:
        return {a.id: a for a in self.master_accounts}

    @cached_property
    def entity_accounts_by_id(self) -> dict[UUID, EntityAccountInfo]:
        return {a.id: a for a in self.entity_accounts}

    @cached_property
    def reporting_entities_by_id(self) -> dict[UUID, ReportingEntityInfo]:
        return {r.id: r for r in self.reporting_entities}

    @cached_property
    def _balances_by_period(self) -> dict[Period, tuple[RawBalance, ...]]:
        return _group_by_period(self.balances)

    @cached_property
    def _budgets_by_period(self) -> dict[Period, tuple[BudgetAmount, ...]]:
        return _group_by_period(self.budgets)

    def balances_for(self, period: Period) -> tuple[RawBalance, ...]:
        return self._balances_by_period.get(period, ())

    def budgets_for(self, period: Period) -> tuple[BudgetAmount, ...]:
        return self._budgets_by_period.get(period, ())


def _group_by_period(rows) -> dict:
    grouped: dict = defaultdict(list)
    for row in rows:
        grouped[row.period].append(row)
    return {period: tuple(items) for period, items in grouped.items()}
