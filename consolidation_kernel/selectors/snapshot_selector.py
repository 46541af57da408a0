"""
Module: consolidation_kernel.selectors.snapshot_selector
Responsibility: The single read path of the consolidation pipeline.  Loads
    every source row an organization's consolidation request needs for a
    set of months into one immutable ConsolidationSnapshot.
Architecture position: Kernel > Selectors.  May import models/ and domain/.

Invariants enforced:
    - Read-only.  No add/flush/commit.
    - Balances, budgets, pro forma adjustments and eliminations are
      restricted to the requested months.  Allocations are loaded whole; a
      schedule may start before the first requested month.
    - Every row is converted to its frozen DTO before leaving this module.

Failure modes:
    - Returns an empty snapshot for an unknown organization.
    - An allocation row whose schedule columns don't form a Schedule is
      left out of ``allocations``, listed in ``unreadable_allocations``
      and logged as a warning.  Loading never raises for it.
"""

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from consolidation_kernel.domain.periods import Period
from consolidation_kernel.domain.snapshot import (
    Allocation,
    ConsolidationSnapshot,
    UnreadableAllocation,
)
from consolidation_kernel.exceptions import InvalidScheduleError
from consolidation_kernel.logging_config import get_logger
from consolidation_kernel.models.account import (
    EntityAccountModel,
    EntityModel,
    MasterAccountMappingModel,
    MasterAccountModel,
    ReportingEntityModel,
)
from consolidation_kernel.models.adjustment import (
    AllocationAdjustmentModel,
    EliminationModel,
    ProFormaAdjustmentModel,
)
from consolidation_kernel.models.balance import BudgetAmountModel, GLBalanceModel
from consolidation_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.snapshot")


def _allocation_dtos(
    rows: Iterable[AllocationAdjustmentModel],
) -> tuple[tuple[Allocation, ...], tuple[UnreadableAllocation, ...]]:
    """Convert allocation rows, setting aside rows whose schedule can't be built."""
    readable: list[Allocation] = []
    unreadable: list[UnreadableAllocation] = []
    for row in rows:
        try:
            readable.append(row.to_dto())
        except InvalidScheduleError as exc:
            logger.warning(
                "allocation_row_unreadable",
                extra={"allocation_id": str(row.id), "reason": str(exc)},
            )
            unreadable.append(UnreadableAllocation(row.id, str(exc)))
    return tuple(readable), tuple(unreadable)


def _month_key(year_column, month_column):
    # Same ordering as Period.index; lets one IN clause select arbitrary months.
    return year_column * 12 + (month_column - 1)


class SnapshotSelector(BaseSelector):
    """
    Loads a ConsolidationSnapshot for one organization.

    Contract:
        ``load(organization_id, periods, include_budget=False)`` returns a
        snapshot holding active entities, all master accounts (inactive
        ones are needed to classify orphaned mappings), entity accounts,
        mappings, reporting entities, and the period-bound rows.
    """

    def __init__(self, session: Session):
        super().__init__(session)

    def load(
        self,
        organization_id: UUID,
        periods: Iterable[Period],
        include_budget: bool = False,
    ) -> ConsolidationSnapshot:
        months = sorted(set(periods))
        month_keys = [p.index for p in months]

        entities = self.session.scalars(
            select(EntityModel)
            .where(EntityModel.organization_id == organization_id)
            .where(EntityModel.is_active.is_(True))
            .order_by(EntityModel.code)
        ).all()
        entity_ids = [e.id for e in entities]

        master_accounts = self.session.scalars(
            select(MasterAccountModel)
            .where(MasterAccountModel.organization_id == organization_id)
            .order_by(
                MasterAccountModel.classification,
                MasterAccountModel.display_order,
                MasterAccountModel.account_number,
            )
        ).all()

        mappings = self.session.scalars(
            select(MasterAccountMappingModel)
            .where(MasterAccountMappingModel.organization_id == organization_id)
        ).all()

        reporting_entities = self.session.scalars(
            select(ReportingEntityModel)
            .where(ReportingEntityModel.organization_id == organization_id)
        ).all()

        entity_accounts = []
        balances = []
        budgets = []
        if entity_ids:
            entity_accounts = self.session.scalars(
                select(EntityAccountModel).where(EntityAccountModel.entity_id.in_(entity_ids))
            ).all()

            if month_keys:
                balances = self.session.scalars(
                    select(GLBalanceModel)
                    .where(GLBalanceModel.entity_id.in_(entity_ids))
                    .where(
                        _month_key(GLBalanceModel.period_year, GLBalanceModel.period_month)
                        .in_(month_keys)
                    )
                ).all()

                if include_budget:
                    budgets = self.session.scalars(
                        select(BudgetAmountModel)
                        .where(BudgetAmountModel.entity_id.in_(entity_ids))
                        .where(
                            _month_key(BudgetAmountModel.period_year, BudgetAmountModel.period_month)
                            .in_(month_keys)
                        )
                    ).all()

        allocations = self.session.scalars(
            select(AllocationAdjustmentModel)
            .where(AllocationAdjustmentModel.organization_id == organization_id)
        ).all()

        pro_formas = []
        eliminations = []
        if month_keys:
            pro_formas = self.session.scalars(
                select(ProFormaAdjustmentModel)
                .where(ProFormaAdjustmentModel.organization_id == organization_id)
                .where(
                    _month_key(ProFormaAdjustmentModel.period_year, ProFormaAdjustmentModel.period_month)
                    .in_(month_keys)
                )
            ).all()
            eliminations = self.session.scalars(
                select(EliminationModel)
                .where(EliminationModel.organization_id == organization_id)
                .where(
                    _month_key(EliminationModel.period_year, EliminationModel.period_month)
                    .in_(month_keys)
                )
            ).all()

        allocation_dtos, unreadable_allocations = _allocation_dtos(allocations)
        snapshot = ConsolidationSnapshot(
            organization_id=organization_id,
            entities=tuple(e.to_dto() for e in entities),
            master_accounts=tuple(a.to_dto() for a in master_accounts),
            entity_accounts=tuple(a.to_dto() for a in entity_accounts),
            mappings=tuple(m.to_dto() for m in mappings),
            balances=tuple(b.to_dto() for b in balances),
            budgets=tuple(b.to_dto() for b in budgets),
            allocations=allocation_dtos,
            pro_formas=tuple(p.to_dto() for p in pro_formas),
            eliminations=tuple(e.to_dto() for e in eliminations),
            reporting_entities=tuple(r.to_dto() for r in reporting_entities),
            unreadable_allocations=unreadable_allocations,
        )

        logger.debug(
            "snapshot_loaded",
            extra={
                "organization_id": str(organization_id),
                "month_count": len(months),
                "entity_count": len(snapshot.entities),
                "balance_count": len(snapshot.balances),
                "allocation_count": len(snapshot.allocations),
                "elimination_count": len(snapshot.eliminations),
            },
        )
        return snapshot
