"""ORM models for consolidation source rows and manual adjustments."""

from consolidation_kernel.models.account import (
    EntityAccountModel,
    EntityModel,
    MasterAccountMappingModel,
    MasterAccountModel,
    ReportingEntityMemberModel,
    ReportingEntityModel,
)
from consolidation_kernel.models.adjustment import (
    AllocationAdjustmentModel,
    EliminationModel,
    ProFormaAdjustmentModel,
)
from consolidation_kernel.models.balance import BudgetAmountModel, GLBalanceModel


def import_all_models() -> None:
    """No-op hook: importing this package registers every table on Base.metadata."""


__all__ = [
    "AllocationAdjustmentModel",
    "BudgetAmountModel",
    "EliminationModel",
    "EntityAccountModel",
    "EntityModel",
    "GLBalanceModel",
    "MasterAccountMappingModel",
    "MasterAccountModel",
    "ProFormaAdjustmentModel",
    "ReportingEntityMemberModel",
    "ReportingEntityModel",
    "import_all_models",
]
