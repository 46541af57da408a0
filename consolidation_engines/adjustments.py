"""
Module: consolidation_engines.adjustments
Responsibility:
    Evaluate allocation, reclass and pro forma adjustments for one month
    into signed deltas keyed by (entity, master account).

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Inter-entity allocation of A on master account M: source entity gets
      -A on M, destination entity gets +A on M.  The pair sums to zero.
    - Reclass of A from M to M2 within entity E: E gets -A on M and +A on
      M2.  The pair sums to zero.
    - Pro forma of A on M: entity gets +A on M, and -A on the offset
      account when one is set.
    - Excluded adjustments produce no deltas.
    - With an entity scope, only the in-scope side of a pair is kept.
    - Amounts are in the natural sign of the master account.

Failure modes:
    - None raised.  A stored schedule that can't be evaluated yields no
      deltas and is listed in ``AdjustmentSet.invalid`` with a warning log.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from uuid import UUID

from consolidation_engines.scheduler import scheduled_amount
from consolidation_engines.tracer import traced_engine
from consolidation_kernel.domain.periods import Period
from consolidation_kernel.domain.snapshot import (
    Allocation,
    InterEntityAllocation,
    ProFormaAdjustment,
    ReclassAdjustment,
)
from consolidation_kernel.logging_config import get_logger

logger = get_logger("engines.adjustments")

ZERO = Decimal("0")


class AdjustmentKind(str, Enum):
    ALLOCATION = "allocation"
    RECLASS = "reclass"
    PRO_FORMA = "pro_forma"
    ELIMINATION = "elimination"


@dataclass(frozen=True)
class AdjustmentDelta:
    """One signed effect of one adjustment on one (entity, master account)."""

    adjustment_id: UUID
    kind: AdjustmentKind
    entity_id: UUID
    master_account_id: UUID
    amount: Decimal
    description: str = ""
    is_offset: bool = False


@dataclass(frozen=True)
class InvalidAdjustment:
    adjustment_id: UUID
    reason: str


@dataclass(frozen=True)
class AdjustmentSet:
    """All adjustment deltas for one month."""

    period: Period
    deltas: tuple[AdjustmentDelta, ...] = ()
    invalid: tuple[InvalidAdjustment, ...] = ()

    def by_entity_account(self) -> dict[tuple[UUID, UUID], Decimal]:
        totals: dict[tuple[UUID, UUID], Decimal] = defaultdict(lambda: ZERO)
        for delta in self.deltas:
            totals[(delta.entity_id, delta.master_account_id)] += delta.amount
        return dict(totals)

    def by_account(self) -> dict[UUID, Decimal]:
        totals: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
        for delta in self.deltas:
            totals[delta.master_account_id] += delta.amount
        return dict(totals)


def allocation_deltas(
    allocation: Allocation,
    period: Period,
    precision: int = 2,
) -> list[AdjustmentDelta]:
    """
    Both sides of one allocation or reclass for one month.

    Returns an empty list when the allocation is excluded, its schedule
    doesn't cover ``period``, or its schedule is invalid.  Otherwise the
    returned amounts always sum to zero.
    """
    if allocation.is_excluded:
        return []
    scheduled = scheduled_amount(allocation.amount, allocation.schedule, period, precision)
    if not scheduled.covers or scheduled.amount == ZERO:
        return []
    amount = scheduled.amount

    match allocation:
        case InterEntityAllocation():
            return [
                AdjustmentDelta(
                    allocation.id, AdjustmentKind.ALLOCATION,
                    allocation.source_entity_id, allocation.master_account_id,
                    -amount, allocation.description,
                ),
                AdjustmentDelta(
                    allocation.id, AdjustmentKind.ALLOCATION,
                    allocation.destination_entity_id, allocation.master_account_id,
                    amount, allocation.description,
                ),
            ]
        case ReclassAdjustment():
            return [
                AdjustmentDelta(
                    allocation.id, AdjustmentKind.RECLASS,
                    allocation.entity_id, allocation.master_account_id,
                    -amount, allocation.description,
                ),
                AdjustmentDelta(
                    allocation.id, AdjustmentKind.RECLASS,
                    allocation.entity_id, allocation.destination_master_account_id,
                    amount, allocation.description,
                ),
            ]
    raise TypeError(f"Unknown allocation type: {type(allocation).__name__}")


def pro_forma_deltas(pro_forma: ProFormaAdjustment, period: Period) -> list[AdjustmentDelta]:
    """Pro forma effect for one month: exact period match only, never spread."""
    if pro_forma.is_excluded or pro_forma.period != period:
        return []
    deltas = [
        AdjustmentDelta(
            pro_forma.id, AdjustmentKind.PRO_FORMA,
            pro_forma.entity_id, pro_forma.master_account_id,
            pro_forma.amount, pro_forma.description,
        )
    ]
    if pro_forma.offset_master_account_id is not None:
        deltas.append(
            AdjustmentDelta(
                pro_forma.id, AdjustmentKind.PRO_FORMA,
                pro_forma.entity_id, pro_forma.offset_master_account_id,
                -pro_forma.amount, pro_forma.description, is_offset=True,
            )
        )
    return deltas


@traced_engine(
    "adjustments", "1.0",
    fingerprint_fields=("period", "include_allocations", "include_pro_forma", "entity_ids"),
)
def evaluate_adjustments(
    allocations: Iterable[Allocation],
    pro_formas: Iterable[ProFormaAdjustment],
    period: Period,
    include_allocations: bool = True,
    include_pro_forma: bool = True,
    entity_ids: frozenset[UUID] | None = None,
    precision: int = 2,
) -> AdjustmentSet:
    """Evaluate every applicable adjustment for one month."""
    deltas: list[AdjustmentDelta] = []
    invalid: list[InvalidAdjustment] = []

    if include_allocations:
        for allocation in allocations:
            scheduled = scheduled_amount(allocation.amount, allocation.schedule, period, precision)
            if not scheduled.is_valid:
                logger.warning(
                    "adjustment_schedule_invalid",
                    extra={
                        "adjustment_id": str(allocation.id),
                        "reason": scheduled.invalid_reason,
                    },
                )
                invalid.append(InvalidAdjustment(allocation.id, scheduled.invalid_reason))
                continue
            deltas.extend(allocation_deltas(allocation, period, precision))

    if include_pro_forma:
        for pro_forma in pro_formas:
            deltas.extend(pro_forma_deltas(pro_forma, period))

    if entity_ids is not None:
        deltas = [d for d in deltas if d.entity_id in entity_ids]

    return AdjustmentSet(period=period, deltas=tuple(deltas), invalid=tuple(invalid))
