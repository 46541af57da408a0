"""
Consolidated Reporting Module (``consolidation_modules.reporting``).

Responsibility
--------------
Read-only module that produces consolidated views across entities: the
consolidated trial balance with entity breakdown, income statement and
balance sheet laid out by YAML template (with budget and prior-year
columns), the same statements split into entity or reporting-entity
columns, line-level drill-down, and the unmapped-account report.

Architecture position
---------------------
**Modules layer** -- every computation is a pure function of one loaded
``ConsolidationSnapshot``.  ``ConsolidationService`` loads the snapshot
and calls the builders.

Invariants enforced
-------------------
* Nothing consolidated is persisted; every view is recomputed per request.
* Per-entity breakdowns always sum to the consolidated figures.

Failure modes
-------------
* Unmapped and orphaned balances are reported, never raised.
* Margin lines with zero revenue have no value (rendered "-").
"""

from consolidation_modules.reporting.config import ConsolidationConfig
from consolidation_modules.reporting.models import (
    AdjustmentRow,
    BreakdownBy,
    BreakdownColumn,
    BreakdownColumnKind,
    ClassificationTotals,
    ColumnType,
    ConsolidatedAccount,
    DrillDownGroup,
    DrillDownResult,
    DrillDownRow,
    EliminationLine,
    EntityBreakdown,
    EntityBreakdownReport,
    FinancialStatementsReport,
    LineKind,
    ReportMetadata,
    ReportType,
    Scope,
    StatementData,
    StatementLine,
    TrialBalanceReport,
)
from consolidation_modules.reporting.requests import (
    DrillDownRequest,
    EntityBreakdownRequest,
    ReportScope,
    StatementRequest,
    TrialBalanceRequest,
)
from consolidation_modules.reporting.service import ConsolidationService
from consolidation_modules.reporting.statements import render_statement, render_to_dict

__all__ = [
    # Service
    "ConsolidationService",
    # Config
    "ConsolidationConfig",
    # Requests
    "ReportScope",
    "TrialBalanceRequest",
    "StatementRequest",
    "EntityBreakdownRequest",
    "DrillDownRequest",
    # Models
    "ReportType",
    "Scope",
    "ColumnType",
    "LineKind",
    "ReportMetadata",
    "EntityBreakdown",
    "ConsolidatedAccount",
    "ClassificationTotals",
    "EliminationLine",
    "TrialBalanceReport",
    "StatementLine",
    "StatementData",
    "FinancialStatementsReport",
    "BreakdownBy",
    "BreakdownColumnKind",
    "BreakdownColumn",
    "EntityBreakdownReport",
    "DrillDownRow",
    "AdjustmentRow",
    "DrillDownGroup",
    "DrillDownResult",
    # Rendering
    "render_statement",
    "render_to_dict",
]
