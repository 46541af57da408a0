"""
Consolidated Trial Balance Builder (``consolidation_modules.reporting.trial_balance``).

Responsibility
--------------
Run the month pipeline (aggregate -> adjustments -> eliminations) over a
``ConsolidationSnapshot`` and combine the results into one adjusted
balance per master account, with an entity breakdown and optional
comparison-month deltas.

Architecture position
---------------------
**Modules layer** -- pure functions over a loaded snapshot, ZERO I/O.
Calls the engines; called by ``statements.py``, ``drilldown.py`` and
``ConsolidationService``.

Invariants enforced
-------------------
* ``adjusted_balance = ending_balance + adjustments + elimination_adjustments``
  for every master account.
* The entity breakdown (including the eliminations row) sums to the
  master account's ending, adjustment and adjusted figures.
* ``net_income = total_revenue - total_expenses``.
* The comparison month runs through exactly the same pipeline.

Failure modes
-------------
* None raised for data problems.  Unmapped balances and invalid stored
  schedules are returned on the report.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from decimal import Decimal
from uuid import UUID

from consolidation_engines.adjustments import (
    AdjustmentSet,
    InvalidAdjustment,
    evaluate_adjustments,
)
from consolidation_engines.aggregator import (
    AggregatedBalances,
    aggregate_balances,
    aggregate_budget,
)
from consolidation_engines.eliminations import EliminationSet, evaluate_eliminations
from consolidation_engines.mapping_index import AccountMappingIndex
from consolidation_kernel.domain.periods import Period
from consolidation_kernel.domain.snapshot import (
    AccountClassification,
    ConsolidationSnapshot,
    EliminationStatus,
    MasterAccountInfo,
)
from consolidation_modules.reporting.config import ConsolidationConfig
from consolidation_modules.reporting.models import (
    ClassificationTotals,
    ConsolidatedAccount,
    EliminationLine,
    EntityBreakdown,
    ReportMetadata,
    TrialBalanceReport,
)

ZERO = Decimal("0")

ELIMINATIONS_CODE = "ELIM"
ELIMINATIONS_NAME = "Eliminations"


@dataclass(frozen=True)
class PipelineOptions:
    """
    What a month run folds in.

    ``entity_ids`` None means the whole organization.  Eliminations only
    apply at organization scope; ``for_scope`` enforces that.
    """

    entity_ids: frozenset[UUID] | None = None
    include_allocations: bool = True
    include_pro_forma: bool = True
    include_eliminations: bool = True
    precision: int = 2

    @classmethod
    def for_scope(
        cls,
        entity_ids: frozenset[UUID] | None,
        include_allocations: bool = True,
        include_pro_forma: bool = True,
        precision: int = 2,
    ) -> PipelineOptions:
        return cls(
            entity_ids=entity_ids,
            include_allocations=include_allocations,
            include_pro_forma=include_pro_forma,
            include_eliminations=entity_ids is None,
            precision=precision,
        )


@dataclass(frozen=True)
class MonthResult:
    """Raw, adjustment and elimination figures for one month."""

    period: Period
    raw: AggregatedBalances
    adjustments: AdjustmentSet
    eliminations: EliminationSet

    def adjusted_by_account(self) -> dict[UUID, Decimal]:
        totals: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
        for source in (
            self.raw.by_account,
            self.adjustments.by_account(),
            self.eliminations.by_account(),
        ):
            for master_id, amount in source.items():
                totals[master_id] += amount
        return dict(totals)

    def adjusted_by_entity(self) -> dict[tuple[UUID, UUID], Decimal]:
        """Per (entity, master account), without eliminations."""
        totals: dict[tuple[UUID, UUID], Decimal] = defaultdict(lambda: ZERO)
        for key, amount in self.raw.by_entity.items():
            totals[key] += amount
        for key, amount in self.adjustments.by_entity_account().items():
            totals[key] += amount
        return dict(totals)

    def active_account_ids(self) -> set[UUID]:
        """Master accounts touched by a balance, adjustment or elimination."""
        ids = set(self.raw.by_account) | set(self.raw.debit_totals)
        ids.update(d.master_account_id for d in self.adjustments.deltas)
        ids.update(d.master_account_id for d in self.eliminations.deltas)
        return ids


def run_month(
    snapshot: ConsolidationSnapshot,
    index: AccountMappingIndex,
    period: Period,
    options: PipelineOptions,
) -> MonthResult:
    raw = aggregate_balances(snapshot, index, period, options.entity_ids)
    adjustments = evaluate_adjustments(
        snapshot.allocations,
        snapshot.pro_formas,
        period,
        include_allocations=options.include_allocations,
        include_pro_forma=options.include_pro_forma,
        entity_ids=options.entity_ids,
        precision=options.precision,
    )
    if options.include_allocations and snapshot.unreadable_allocations:
        adjustments = replace(adjustments, invalid=adjustments.invalid + tuple(
            InvalidAdjustment(u.id, u.reason) for u in snapshot.unreadable_allocations
        ))
    if options.include_eliminations:
        eliminations = evaluate_eliminations(
            snapshot.eliminations, snapshot.master_accounts_by_id, period,
        )
    else:
        eliminations = EliminationSet(period=period)
    return MonthResult(period, raw, adjustments, eliminations)


def run_budget_month(
    snapshot: ConsolidationSnapshot,
    index: AccountMappingIndex,
    period: Period,
    options: PipelineOptions,
) -> MonthResult:
    """Budget figures for one month. Budgets carry no adjustments or eliminations."""
    raw = aggregate_budget(snapshot, index, period, options.entity_ids)
    return MonthResult(period, raw, AdjustmentSet(period=period), EliminationSet(period=period))


def run_months(
    snapshot: ConsolidationSnapshot,
    index: AccountMappingIndex,
    periods: Iterable[Period],
    options: PipelineOptions,
    budget: bool = False,
) -> dict[Period, MonthResult]:
    runner = run_budget_month if budget else run_month
    return {p: runner(snapshot, index, p, options) for p in sorted(set(periods))}


def classification_totals(
    adjusted: Mapping[UUID, Decimal],
    master_accounts: Mapping[UUID, MasterAccountInfo],
) -> ClassificationTotals:
    sums: dict[AccountClassification, Decimal] = defaultdict(lambda: ZERO)
    for master_id, amount in adjusted.items():
        account = master_accounts.get(master_id)
        if account is not None:
            sums[account.classification] += amount
    return ClassificationTotals(
        total_assets=sums[AccountClassification.ASSET],
        total_liabilities=sums[AccountClassification.LIABILITY],
        total_equity=sums[AccountClassification.EQUITY],
        total_revenue=sums[AccountClassification.REVENUE],
        total_expenses=sums[AccountClassification.EXPENSE],
    )


def _entity_breakdown(
    snapshot: ConsolidationSnapshot,
    master_id: UUID,
    current: MonthResult,
    compare: MonthResult | None,
) -> tuple[EntityBreakdown, ...]:
    raw_by_entity = {e: v for (e, m), v in current.raw.by_entity.items() if m == master_id}
    adj_by_entity = {
        e: v for (e, m), v in current.adjustments.by_entity_account().items() if m == master_id
    }
    compare_by_entity: dict[UUID, Decimal] = {}
    if compare is not None:
        compare_by_entity = {
            e: v for (e, m), v in compare.adjusted_by_entity().items() if m == master_id
        }

    entity_ids = set(raw_by_entity) | set(adj_by_entity) | set(compare_by_entity)

    def sort_key(entity_id: UUID) -> tuple[str, str]:
        entity = snapshot.entities_by_id.get(entity_id)
        return (entity.code if entity else "~", str(entity_id))

    rows: list[EntityBreakdown] = []
    for entity_id in sorted(entity_ids, key=sort_key):
        entity = snapshot.entities_by_id.get(entity_id)
        ending = raw_by_entity.get(entity_id, ZERO)
        adjustments = adj_by_entity.get(entity_id, ZERO)
        rows.append(
            EntityBreakdown(
                entity_id=entity_id,
                entity_code=entity.code if entity else "???",
                entity_name=entity.name if entity else "Unknown",
                ending_balance=ending,
                adjustments=adjustments,
                adjusted_balance=ending + adjustments,
                compare_adjusted_balance=(
                    compare_by_entity.get(entity_id, ZERO) if compare is not None else None
                ),
            )
        )

    elim = current.eliminations.by_account().get(master_id)
    compare_elim = compare.eliminations.by_account().get(master_id) if compare is not None else None
    if elim is not None or compare_elim is not None:
        rows.append(
            EntityBreakdown(
                entity_id=None,
                entity_code=ELIMINATIONS_CODE,
                entity_name=ELIMINATIONS_NAME,
                ending_balance=ZERO,
                adjustments=elim or ZERO,
                adjusted_balance=elim or ZERO,
                compare_adjusted_balance=(
                    (compare_elim or ZERO) if compare is not None else None
                ),
            )
        )
    return tuple(rows)


def _mapped_entity_codes(
    snapshot: ConsolidationSnapshot,
    index: AccountMappingIndex,
    master_id: UUID,
    entity_ids: frozenset[UUID] | None,
) -> tuple[str, ...]:
    codes = set()
    for entity_id, _account_id in index.members_of(master_id):
        if entity_ids is not None and entity_id not in entity_ids:
            continue
        entity = snapshot.entities_by_id.get(entity_id)
        if entity is not None:
            codes.add(entity.code)
    return tuple(sorted(codes))


def consolidated_account_ids(
    snapshot: ConsolidationSnapshot,
    results: Iterable[MonthResult],
    include_zero_balances: bool,
) -> list[UUID]:
    """Master accounts to list, in chart order."""
    ids: set[UUID] = set()
    for result in results:
        ids |= result.active_account_ids()
    if include_zero_balances:
        ids.update(a.id for a in snapshot.master_accounts if a.is_active)
    accounts = [snapshot.master_accounts_by_id[i] for i in ids if i in snapshot.master_accounts_by_id]
    accounts.sort(key=lambda a: (a.display_order, a.number, a.name))
    return [a.id for a in accounts]


def build_trial_balance(
    snapshot: ConsolidationSnapshot,
    index: AccountMappingIndex,
    period: Period,
    options: PipelineOptions,
    config: ConsolidationConfig,
    metadata: ReportMetadata,
    compare_period: Period | None = None,
) -> TrialBalanceReport:
    """
    Consolidated trial balance for ``period``.

    When ``compare_period`` is given the whole pipeline runs again for it
    and the per-account and per-classification changes are attached.
    """
    current = run_month(snapshot, index, period, options)
    compare = (
        run_month(snapshot, index, compare_period, options)
        if compare_period is not None else None
    )

    adjusted = current.adjusted_by_account()
    adjustments = current.adjustments.by_account()
    eliminations = current.eliminations.by_account()
    compare_adjusted = compare.adjusted_by_account() if compare is not None else {}

    results = [current] + ([compare] if compare is not None else [])
    accounts: list[ConsolidatedAccount] = []
    for master_id in consolidated_account_ids(snapshot, results, config.include_zero_balances):
        master = snapshot.master_accounts_by_id[master_id]
        compare_adj = compare_adjusted.get(master_id, ZERO) if compare is not None else None
        adjusted_balance = adjusted.get(master_id, ZERO)
        accounts.append(
            ConsolidatedAccount(
                master_account_id=master_id,
                account_number=master.number,
                account_name=master.name,
                classification=master.classification,
                account_type=master.account_type,
                normal_balance=master.normal_balance,
                mapped_entities=_mapped_entity_codes(snapshot, index, master_id, options.entity_ids),
                entity_breakdown=_entity_breakdown(snapshot, master_id, current, compare),
                ending_balance=current.raw.account_balance(master_id),
                debit_total=current.raw.debit_totals.get(master_id, ZERO),
                credit_total=current.raw.credit_totals.get(master_id, ZERO),
                adjustments=adjustments.get(master_id, ZERO),
                elimination_adjustments=eliminations.get(master_id, ZERO),
                adjusted_balance=adjusted_balance,
                compare_ending_balance=(
                    compare.raw.account_balance(master_id) if compare is not None else None
                ),
                compare_adjusted_balance=compare_adj,
                change_from_compare=(
                    adjusted_balance - compare_adj if compare_adj is not None else None
                ),
            )
        )

    totals = classification_totals(adjusted, snapshot.master_accounts_by_id)
    compare_totals = (
        classification_totals(compare_adjusted, snapshot.master_accounts_by_id)
        if compare is not None else None
    )

    elimination_lines: tuple[EliminationLine, ...] = ()
    if options.include_eliminations:
        elimination_lines = tuple(
            EliminationLine(
                elimination_id=e.id,
                elimination_type=e.elimination_type,
                debit_master_account_id=e.debit_master_account_id,
                credit_master_account_id=e.credit_master_account_id,
                amount=e.amount,
                description=e.description,
            )
            for e in snapshot.eliminations
            if e.period == period and e.status == EliminationStatus.POSTED
        )

    return TrialBalanceReport(
        metadata=metadata,
        period=period,
        accounts=tuple(accounts),
        totals=totals,
        compare_period=compare_period,
        compare_totals=compare_totals,
        totals_change=totals - compare_totals if compare_totals is not None else None,
        unmapped=current.raw.unmapped,
        eliminations=elimination_lines,
        invalid_adjustments=current.adjustments.invalid,
    )
