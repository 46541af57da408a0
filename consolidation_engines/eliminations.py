"""
Module: consolidation_engines.eliminations
Responsibility:
    Turn posted elimination entries for one month into signed deltas keyed
    by master account.  Eliminations are consolidation-level and carry no
    entity attribution.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Only POSTED entries contribute; DRAFT and REVERSED are inert.
    - Each entry contributes a debit of ``amount`` to its debit account and
      a credit of ``amount`` to its credit account, so total debits always
      equal total credits.
    - Deltas are in the natural sign of the master account: a debit raises
      a debit-normal account and lowers a credit-normal one, and a credit
      does the reverse.  An account missing from the chart is treated as
      debit-normal.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from consolidation_engines.tracer import traced_engine
from consolidation_kernel.domain.periods import Period
from consolidation_kernel.domain.snapshot import (
    Elimination,
    EliminationStatus,
    EliminationType,
    MasterAccountInfo,
    NormalBalance,
)

ZERO = Decimal("0")


@dataclass(frozen=True)
class EliminationDelta:
    """One side of one posted elimination."""

    elimination_id: UUID
    master_account_id: UUID
    amount: Decimal
    debit_amount: Decimal
    credit_amount: Decimal
    elimination_type: EliminationType
    description: str = ""


@dataclass(frozen=True)
class EliminationSet:
    period: Period
    deltas: tuple[EliminationDelta, ...] = ()

    def by_account(self) -> dict[UUID, Decimal]:
        totals: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
        for delta in self.deltas:
            totals[delta.master_account_id] += delta.amount
        return dict(totals)

    @property
    def total_debits(self) -> Decimal:
        return sum((d.debit_amount for d in self.deltas), ZERO)

    @property
    def total_credits(self) -> Decimal:
        return sum((d.credit_amount for d in self.deltas), ZERO)

    @property
    def is_balanced(self) -> bool:
        return self.total_debits == self.total_credits


def _natural(
    master_accounts: Mapping[UUID, MasterAccountInfo],
    master_account_id: UUID,
    debit: Decimal,
    credit: Decimal,
) -> Decimal:
    account = master_accounts.get(master_account_id)
    if account is not None and account.normal_balance == NormalBalance.CREDIT:
        return credit - debit
    return debit - credit


def elimination_deltas(
    elimination: Elimination,
    master_accounts: Mapping[UUID, MasterAccountInfo],
) -> list[EliminationDelta]:
    """Debit and credit sides of one elimination, regardless of period."""
    if elimination.status != EliminationStatus.POSTED:
        return []
    amount = elimination.amount
    return [
        EliminationDelta(
            elimination_id=elimination.id,
            master_account_id=elimination.debit_master_account_id,
            amount=_natural(master_accounts, elimination.debit_master_account_id, amount, ZERO),
            debit_amount=amount,
            credit_amount=ZERO,
            elimination_type=elimination.elimination_type,
            description=elimination.description,
        ),
        EliminationDelta(
            elimination_id=elimination.id,
            master_account_id=elimination.credit_master_account_id,
            amount=_natural(master_accounts, elimination.credit_master_account_id, ZERO, amount),
            debit_amount=ZERO,
            credit_amount=amount,
            elimination_type=elimination.elimination_type,
            description=elimination.description,
        ),
    ]


@traced_engine("eliminations", "1.0", fingerprint_fields=("period",))
def evaluate_eliminations(
    eliminations: Iterable[Elimination],
    master_accounts: Mapping[UUID, MasterAccountInfo],
    period: Period,
) -> EliminationSet:
    """Deltas from every posted elimination in ``period``."""
    deltas: list[EliminationDelta] = []
    for elimination in eliminations:
        if elimination.period == period:
            deltas.extend(elimination_deltas(elimination, master_accounts))
    return EliminationSet(period=period, deltas=tuple(deltas))
