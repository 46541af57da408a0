"""
Module: consolidation_engines
Responsibility:
    Re-exports the pure calculation engines of the consolidation pipeline.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May import consolidation_kernel (domain, exceptions, logging) only.
    MUST NOT import consolidation_modules.

Invariants enforced:
    - Decimal-only arithmetic.
    - Determinism: identical inputs always produce identical outputs.
    - No clock access and no session access.

Usage:
    from consolidation_engines import build_mapping_index, aggregate_balances
    from consolidation_engines import evaluate_adjustments, evaluate_eliminations
"""

from consolidation_engines.adjustments import (
    AdjustmentDelta,
    AdjustmentKind,
    AdjustmentSet,
    InvalidAdjustment,
    allocation_deltas,
    evaluate_adjustments,
    pro_forma_deltas,
)
from consolidation_engines.aggregator import (
    AggregatedBalances,
    UnmappedAccountBalance,
    aggregate_balances,
    aggregate_budget,
    unmapped_balances,
)
from consolidation_engines.eliminations import (
    EliminationDelta,
    EliminationSet,
    elimination_deltas,
    evaluate_eliminations,
)
from consolidation_engines.mapping_index import (
    AccountMappingIndex,
    MappingStatus,
    build_mapping_index,
)
from consolidation_engines.scheduler import (
    ScheduledAmount,
    schedule_months,
    scheduled_amount,
    spread_amounts,
)
from consolidation_engines.tracer import traced_engine

__all__ = [
    "AccountMappingIndex",
    "AdjustmentDelta",
    "AdjustmentKind",
    "AdjustmentSet",
    "AggregatedBalances",
    "EliminationDelta",
    "EliminationSet",
    "InvalidAdjustment",
    "MappingStatus",
    "ScheduledAmount",
    "UnmappedAccountBalance",
    "aggregate_balances",
    "aggregate_budget",
    "allocation_deltas",
    "build_mapping_index",
    "elimination_deltas",
    "evaluate_adjustments",
    "evaluate_eliminations",
    "pro_forma_deltas",
    "schedule_months",
    "scheduled_amount",
    "spread_amounts",
    "traced_engine",
    "unmapped_balances",
]
