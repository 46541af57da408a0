"""
Module: consolidation_engines.aggregator
Responsibility:
    Sum raw ledger balances (or budget amounts) for one month per master
    account and per (entity, master account), and collect the entity
    accounts that carry a balance but no usable mapping.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Balances are expressed in the master account's natural sign:
      debit - credit for debit-normal accounts, credit - debit otherwise.
    - For every master account, the per-entity amounts sum to the
      account total.
    - A balance on an unmapped or orphaned entity account never reaches a
      master account total.  It is listed in ``unmapped`` when nonzero.

Failure modes:
    - None.  Rows for entities outside the requested scope are skipped.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID

from consolidation_engines.mapping_index import AccountMappingIndex, MappingStatus
from consolidation_engines.tracer import traced_engine
from consolidation_kernel.domain.periods import Period
from consolidation_kernel.domain.snapshot import (
    ConsolidationSnapshot,
    natural_balance,
)

ZERO = Decimal("0")


@dataclass(frozen=True)
class UnmappedAccountBalance:
    """An entity account with a balance that no master account receives."""

    entity_id: UUID
    entity_code: str
    entity_name: str
    account_id: UUID
    account_name: str
    account_number: str | None
    period: Period
    balance: Decimal
    reason: MappingStatus
    master_account_id: UUID | None = None


@dataclass(frozen=True)
class AggregatedBalances:
    """
    Raw balances for one month, keyed by master account.

    ``by_entity`` is keyed by (entity_id, master_account_id).
    """

    period: Period
    by_account: dict[UUID, Decimal] = field(default_factory=dict)
    by_entity: dict[tuple[UUID, UUID], Decimal] = field(default_factory=dict)
    debit_totals: dict[UUID, Decimal] = field(default_factory=dict)
    credit_totals: dict[UUID, Decimal] = field(default_factory=dict)
    unmapped: tuple[UnmappedAccountBalance, ...] = ()

    def account_balance(self, master_account_id: UUID) -> Decimal:
        return self.by_account.get(master_account_id, ZERO)


def _in_scope(entity_id: UUID, entity_ids: frozenset[UUID] | None) -> bool:
    return entity_ids is None or entity_id in entity_ids


def _unmapped_row(
    snapshot: ConsolidationSnapshot,
    index: AccountMappingIndex,
    entity_id: UUID,
    account_id: UUID,
    period: Period,
    balance: Decimal,
) -> UnmappedAccountBalance:
    entity = snapshot.entities_by_id.get(entity_id)
    account = snapshot.entity_accounts_by_id.get(account_id)
    status = index.status(entity_id, account_id)
    if account is None:
        # The balance outlived its account record.
        status = MappingStatus.ORPHANED
    return UnmappedAccountBalance(
        entity_id=entity_id,
        entity_code=entity.code if entity else "???",
        entity_name=entity.name if entity else "Unknown",
        account_id=account_id,
        account_name=account.name if account else "Unknown account",
        account_number=account.number if account else None,
        period=period,
        balance=balance,
        reason=status,
        master_account_id=index.mapped_master_id(entity_id, account_id),
    )


@traced_engine("aggregator", "1.0", fingerprint_fields=("period", "entity_ids"))
def aggregate_balances(
    snapshot: ConsolidationSnapshot,
    index: AccountMappingIndex,
    period: Period,
    entity_ids: frozenset[UUID] | None = None,
) -> AggregatedBalances:
    """Aggregate the snapshot's ledger balances for one month."""
    by_account: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
    by_entity: dict[tuple[UUID, UUID], Decimal] = defaultdict(lambda: ZERO)
    debits: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
    credits: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
    unmapped: list[UnmappedAccountBalance] = []

    for row in snapshot.balances_for(period):
        if not _in_scope(row.entity_id, entity_ids):
            continue
        master_id = index.resolve(row.entity_id, row.account_id)
        master = snapshot.master_accounts_by_id.get(master_id) if master_id else None
        if master is None:
            raw = row.debit_total - row.credit_total
            if raw != ZERO:
                unmapped.append(
                    _unmapped_row(snapshot, index, row.entity_id, row.account_id, period, raw)
                )
            continue

        amount = natural_balance(row.debit_total, row.credit_total, master.normal_balance)
        by_account[master.id] += amount
        by_entity[(row.entity_id, master.id)] += amount
        debits[master.id] += row.debit_total
        credits[master.id] += row.credit_total

    return AggregatedBalances(
        period=period,
        by_account=dict(by_account),
        by_entity=dict(by_entity),
        debit_totals=dict(debits),
        credit_totals=dict(credits),
        unmapped=tuple(unmapped),
    )


@traced_engine("budget_aggregator", "1.0", fingerprint_fields=("period", "entity_ids"))
def aggregate_budget(
    snapshot: ConsolidationSnapshot,
    index: AccountMappingIndex,
    period: Period,
    entity_ids: frozenset[UUID] | None = None,
) -> AggregatedBalances:
    """Aggregate budget amounts for one month. Budget amounts are already natural-sign."""
    by_account: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
    by_entity: dict[tuple[UUID, UUID], Decimal] = defaultdict(lambda: ZERO)

    for row in snapshot.budgets_for(period):
        if not _in_scope(row.entity_id, entity_ids):
            continue
        master_id = index.resolve(row.entity_id, row.account_id)
        if master_id is None or master_id not in snapshot.master_accounts_by_id:
            continue
        by_account[master_id] += row.amount
        by_entity[(row.entity_id, master_id)] += row.amount

    return AggregatedBalances(
        period=period,
        by_account=dict(by_account),
        by_entity=dict(by_entity),
    )


def unmapped_balances(
    snapshot: ConsolidationSnapshot,
    index: AccountMappingIndex,
    periods: Iterable[Period],
    entity_ids: frozenset[UUID] | None = None,
) -> list[UnmappedAccountBalance]:
    """Unmapped and orphaned balances across several months, in month order."""
    rows: list[UnmappedAccountBalance] = []
    for period in sorted(set(periods)):
        rows.extend(aggregate_balances(snapshot, index, period, entity_ids).unmapped)
    return rows

