"""
Consolidated Reporting Service (``consolidation_modules.reporting.service``).

Responsibility
--------------
Orchestrates consolidated report generation -- trial balance, income
statement and balance sheet, their entity and reporting-entity
breakdowns, drill-down, and the unmapped-account report -- by loading
one ``ConsolidationSnapshot`` per request through ``SnapshotSelector``
and handing it to the pure builders in ``trial_balance.py``,
``statements.py`` and ``drilldown.py``.  This is a **read-only** service.

Architecture position
---------------------
**Modules layer** -- thin glue.  ``ConsolidationService`` is the sole
public entry point for consolidated reads.  Constructor: ``session`` +
``clock`` + ``config`` (+ optional statement templates).

Invariants enforced
-------------------
* Read-only -- nothing is added, flushed or committed.
* Each request loads exactly one snapshot; every figure in the response
  is a pure function of it, so retries are idempotent.
* Eliminations apply only at organization scope.
* All monetary amounts use ``Decimal`` -- NEVER ``float``.

Failure modes
-------------
* Selector query failure  -> exception propagates (read-only, nothing
  to roll back).
* Bad scope (unknown entity or reporting entity)  -> ``InvalidRequestError``.
* Unknown statement / period key / line  -> ``StatementNotFoundError`` /
  ``PeriodKeyNotFoundError`` / ``LineNotFoundError``.
* Conflicting account mappings  -> ``DuplicateMappingError``.
"""

from __future__ import annotations

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy.orm import Session

from consolidation_config import StatementTemplate, get_statement_templates
from consolidation_engines.adjustments import InvalidAdjustment
from consolidation_engines.aggregator import UnmappedAccountBalance, unmapped_balances
from consolidation_engines.mapping_index import (
    AccountMappingIndex,
    MappingStatus,
    build_mapping_index,
)
from consolidation_kernel.domain.clock import Clock, SystemClock
from consolidation_kernel.domain.periods import Period, months_between, periods_in_range, range_bucket
from consolidation_kernel.domain.snapshot import ConsolidationSnapshot
from consolidation_kernel.exceptions import (
    InvalidRequestError,
    PeriodKeyNotFoundError,
    StatementNotFoundError,
)
from consolidation_kernel.logging_config import LogContext, get_logger
from consolidation_kernel.selectors.snapshot_selector import SnapshotSelector
from consolidation_modules.reporting.config import ConsolidationConfig
from consolidation_modules.reporting.drilldown import drill_down
from consolidation_modules.reporting.models import (
    BreakdownBy,
    BreakdownColumn,
    BreakdownColumnKind,
    ColumnType,
    DrillDownResult,
    EntityBreakdownReport,
    FinancialStatementsReport,
    ReportMetadata,
    ReportType,
    Scope,
    TrialBalanceReport,
)
from consolidation_modules.reporting.requests import (
    DrillDownRequest,
    EntityBreakdownRequest,
    ReportScope,
    StatementRequest,
    TrialBalanceRequest,
)
from consolidation_modules.reporting.statements import (
    PRIOR_YEAR_SHIFT,
    build_breakdown_statement,
    build_statement,
)
from consolidation_modules.reporting.trial_balance import (
    ELIMINATIONS_CODE,
    ELIMINATIONS_NAME,
    MonthResult,
    PipelineOptions,
    build_trial_balance,
    run_months,
)

logger = get_logger("modules.reporting.service")

STATEMENT_ORDER = ("income_statement", "balance_sheet")

OTHER_COLUMN = "other"
ELIMINATIONS_COLUMN = "eliminations"
CONSOLIDATED_COLUMN = "consolidated"


class ConsolidationService:
    """
    Consolidated report generation service.

    Contract
    --------
    * Every public method returns a typed report DTO.
    * All methods are **read-only** -- no mutations to the database.

    Guarantees
    ----------
    * Report generation delegates to pure functions; no consolidation
      arithmetic lives in this class.
    * Clock is injectable for deterministic testing.

    Non-goals
    ---------
    * Does NOT check that the caller may see the organization.
    * Does NOT cache snapshots between requests.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: ConsolidationConfig | None = None,
        templates: dict[str, StatementTemplate] | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or ConsolidationConfig.with_defaults()
        self._templates = templates if templates is not None else get_statement_templates()
        self._selector = SnapshotSelector(session)

        logger.info(
            "consolidation_service_initialized",
            extra={
                "organization_name": self._config.organization_name,
                "default_currency": self._config.default_currency,
                "statement_ids": sorted(self._templates),
            },
        )

    # =========================================================================
    # Internal helpers
    # =========================================================================

    def _load(
        self,
        organization_id: UUID,
        months: set[Period],
        include_budget: bool = False,
    ) -> tuple[ConsolidationSnapshot, AccountMappingIndex]:
        snapshot = self._selector.load(organization_id, months, include_budget=include_budget)
        index = build_mapping_index(snapshot.mappings, snapshot.master_accounts)
        return snapshot, index

    def _entity_ids(
        self, snapshot: ConsolidationSnapshot, scope: ReportScope,
    ) -> frozenset[UUID] | None:
        """Entities in scope, or None for the whole organization."""
        if scope.scope == Scope.ORGANIZATION:
            return None
        if scope.reporting_entity_id is not None:
            group = snapshot.reporting_entities_by_id.get(scope.reporting_entity_id)
            if group is None:
                raise InvalidRequestError(
                    "reportingEntityId", f"{scope.reporting_entity_id} is not a reporting entity",
                )
            return group.member_ids
        if scope.entity_id not in snapshot.entities_by_id:
            raise InvalidRequestError("entityId", f"{scope.entity_id} is not an active entity")
        return frozenset({scope.entity_id})

    def _options(
        self,
        entity_ids: frozenset[UUID] | None,
        include_allocations: bool | None,
        include_pro_forma: bool | None,
    ) -> PipelineOptions:
        return PipelineOptions.for_scope(
            entity_ids,
            include_allocations=(
                self._config.default_include_allocations
                if include_allocations is None else include_allocations
            ),
            include_pro_forma=(
                self._config.default_include_pro_forma
                if include_pro_forma is None else include_pro_forma
            ),
            precision=self._config.amount_precision,
        )

    def _build_metadata(
        self,
        report_type: ReportType,
        organization_id: UUID,
        scope: ReportScope,
        entity_ids: frozenset[UUID] | None,
        options: PipelineOptions,
    ) -> ReportMetadata:
        """Build report metadata with injected clock timestamp."""
        return ReportMetadata(
            report_type=report_type,
            organization_id=organization_id,
            organization_name=self._config.organization_name,
            currency=self._config.default_currency,
            generated_at=self._clock.now().isoformat(),
            scope=scope.scope,
            entity_ids=tuple(sorted(entity_ids, key=str)) if entity_ids is not None else None,
            include_allocations=options.include_allocations,
            include_pro_forma=options.include_pro_forma,
        )

    def _template(self, statement_id: str) -> StatementTemplate:
        template = self._templates.get(statement_id)
        if template is None:
            raise StatementNotFoundError(statement_id)
        return template

    def _breakdown_columns(
        self,
        snapshot: ConsolidationSnapshot,
        breakdown: BreakdownBy,
        entity_ids: frozenset[UUID] | None,
    ) -> list[BreakdownColumn]:
        """Entity or reporting-entity columns over the entities in scope, by name."""
        in_scope = sorted(
            (e for e in snapshot.entities if entity_ids is None or e.id in entity_ids),
            key=lambda e: (e.name, e.code),
        )
        if breakdown == BreakdownBy.ENTITY:
            return [
                BreakdownColumn(str(e.id), e.code, e.name, BreakdownColumnKind.ENTITY, (e.id,))
                for e in in_scope
            ]

        columns: list[BreakdownColumn] = []
        grouped: set[UUID] = set()
        for group in sorted(snapshot.reporting_entities, key=lambda r: r.name):
            members = tuple(e.id for e in in_scope if e.id in group.member_ids)
            if not members:
                continue
            grouped.update(members)
            columns.append(BreakdownColumn(
                str(group.id), group.name, group.name, BreakdownColumnKind.REPORTING_ENTITY, members,
            ))
        other = tuple(e.id for e in in_scope if e.id not in grouped)
        if other:
            columns.append(BreakdownColumn(
                OTHER_COLUMN, "Other", "Entities outside every reporting entity",
                BreakdownColumnKind.OTHER, other,
            ))
        return columns

    def _consolidated_column(
        self,
        snapshot: ConsolidationSnapshot,
        scope: ReportScope,
        entity_ids: frozenset[UUID] | None,
    ) -> BreakdownColumn:
        label, name = "Consolidated", self._config.organization_name
        if entity_ids is not None and scope.reporting_entity_id is not None:
            label = name = snapshot.reporting_entities_by_id[scope.reporting_entity_id].name
        members = entity_ids if entity_ids is not None else (e.id for e in snapshot.entities)
        return BreakdownColumn(
            CONSOLIDATED_COLUMN, label, name, BreakdownColumnKind.CONSOLIDATED,
            tuple(sorted(members, key=str)),
        )

    def _ordered_templates(self) -> list[StatementTemplate]:
        known = [self._templates[s] for s in STATEMENT_ORDER if s in self._templates]
        rest = [t for k, t in sorted(self._templates.items()) if k not in STATEMENT_ORDER]
        return known + rest

    # =========================================================================
    # Public API
    # =========================================================================

    def trial_balance(self, request: TrialBalanceRequest) -> TrialBalanceReport:
        """
        Generate the consolidated trial balance for one month.

        Args:
            request: Organization, month, optional comparison month, scope
                and adjustment toggles.

        Returns:
            TrialBalanceReport with entity breakdowns, classification
            totals and the unmapped-account report.
        """
        with LogContext.bind(
            organization_id=request.organization_id, report_type=ReportType.TRIAL_BALANCE,
        ):
            months = {request.period}
            if request.compare_period is not None:
                months.add(request.compare_period)
            snapshot, index = self._load(request.organization_id, months)
            entity_ids = self._entity_ids(snapshot, request.scope)
            options = self._options(
                entity_ids, request.include_allocations, request.include_pro_forma,
            )
            metadata = self._build_metadata(
                ReportType.TRIAL_BALANCE, request.organization_id, request.scope, entity_ids, options,
            )

            report = build_trial_balance(
                snapshot, index, request.period, options, self._config, metadata,
                compare_period=request.compare_period,
            )

            logger.info(
                "consolidated_trial_balance_generated",
                extra={
                    "period": request.period.key,
                    "compare_period": request.compare_period.key if request.compare_period else None,
                    "scope": request.scope.scope.value,
                    "account_count": len(report.accounts),
                    "unmapped_count": len(report.unmapped),
                    "invalid_adjustment_count": len(report.invalid_adjustments),
                    "net_income": str(report.totals.net_income),
                },
            )
            return report

    def financial_statements(self, request: StatementRequest) -> FinancialStatementsReport:
        """
        Generate every configured statement over a month range.

        Income statement amounts sum each bucket's months; balance sheet
        amounts are taken at each bucket's last month.  Budget and
        prior-year columns are added when requested.
        """
        with LogContext.bind(
            organization_id=request.organization_id, report_type=ReportType.FINANCIAL_STATEMENTS,
        ):
            buckets = periods_in_range(request.start, request.end, request.granularity)
            months = set(months_between(request.start, request.end))
            prior_months = {p.shift(PRIOR_YEAR_SHIFT) for p in months} if request.include_yoy else set()

            snapshot, index = self._load(
                request.organization_id, months | prior_months, include_budget=request.include_budget,
            )
            entity_ids = self._entity_ids(snapshot, request.scope)
            options = self._options(
                entity_ids, request.include_allocations, request.include_pro_forma,
            )
            metadata = self._build_metadata(
                ReportType.FINANCIAL_STATEMENTS, request.organization_id, request.scope, entity_ids, options,
            )

            actual = run_months(snapshot, index, months, options)
            budget = run_months(snapshot, index, months, options, budget=True) if request.include_budget else None
            prior = run_months(snapshot, index, prior_months, options) if request.include_yoy else None

            statements = tuple(
                build_statement(
                    template,
                    snapshot,
                    buckets,
                    actual,
                    budget=budget,
                    prior_year=prior,
                    ebitda=request.ebitda,
                    include_zero_balances=self._config.include_zero_balances,
                    ratio_precision=self._config.ratio_precision,
                )
                for template in self._ordered_templates()
            )

            report = FinancialStatementsReport(
                metadata=metadata,
                granularity=request.granularity,
                start=request.start,
                end=request.end,
                statements=statements,
                unmapped=tuple(u for p in sorted(actual) for u in actual[p].raw.unmapped),
                invalid_adjustments=_distinct_invalid(actual.values()),
            )

            logger.info(
                "financial_statements_generated",
                extra={
                    "start": request.start.key,
                    "end": request.end.key,
                    "granularity": request.granularity.value,
                    "bucket_count": len(buckets),
                    "statement_ids": [s.id for s in statements],
                    "include_budget": request.include_budget,
                    "include_yoy": request.include_yoy,
                    "ebitda": request.ebitda,
                },
            )
            return report

    def entity_breakdown_statements(self, request: EntityBreakdownRequest) -> EntityBreakdownReport:
        """
        Generate every configured statement over one month range, one
        column per entity or reporting entity.

        Each column runs the pipeline at its own entity scope, so it
        carries its share of allocations and pro formas.  At organization
        scope an eliminations column follows when a posted elimination
        falls in the range.  The last column is the consolidated figure
        for the requested scope.

        On amount lines the entity columns plus eliminations sum to the
        consolidated column.  Reporting entities that share a member both
        count it, so their columns can exceed the total.  Margin lines are
        ratios within each column.
        """
        with LogContext.bind(
            organization_id=request.organization_id, report_type=ReportType.ENTITY_BREAKDOWN,
        ):
            bucket = range_bucket(request.start, request.end)
            months = set(bucket.months)
            snapshot, index = self._load(request.organization_id, months)
            entity_ids = self._entity_ids(snapshot, request.scope)
            options = self._options(
                entity_ids, request.include_allocations, request.include_pro_forma,
            )
            metadata = self._build_metadata(
                ReportType.ENTITY_BREAKDOWN, request.organization_id, request.scope, entity_ids, options,
            )

            columns = self._breakdown_columns(snapshot, request.breakdown, entity_ids)
            results = {
                column.key: run_months(snapshot, index, months, PipelineOptions.for_scope(
                    frozenset(column.entity_ids),
                    include_allocations=options.include_allocations,
                    include_pro_forma=options.include_pro_forma,
                    precision=options.precision,
                ))
                for column in columns
            }

            if options.include_eliminations:
                eliminations_only = PipelineOptions(
                    entity_ids=frozenset(),
                    include_allocations=False,
                    include_pro_forma=False,
                    precision=options.precision,
                )
                eliminations = run_months(snapshot, index, months, eliminations_only)
                if any(r.eliminations.deltas for r in eliminations.values()):
                    columns.append(BreakdownColumn(
                        ELIMINATIONS_COLUMN, ELIMINATIONS_CODE, ELIMINATIONS_NAME,
                        BreakdownColumnKind.ELIMINATIONS,
                    ))
                    results[ELIMINATIONS_COLUMN] = eliminations

            consolidated = run_months(snapshot, index, months, options)
            columns.append(self._consolidated_column(snapshot, request.scope, entity_ids))
            results[CONSOLIDATED_COLUMN] = consolidated

            statements = tuple(
                build_breakdown_statement(
                    template,
                    snapshot,
                    bucket,
                    {column.key: results[column.key] for column in columns},
                    ebitda=request.ebitda,
                    include_zero_balances=self._config.include_zero_balances,
                    ratio_precision=self._config.ratio_precision,
                )
                for template in self._ordered_templates()
            )

            report = EntityBreakdownReport(
                metadata=metadata,
                breakdown=request.breakdown,
                start=request.start,
                end=request.end,
                columns=tuple(columns),
                statements=statements,
                unmapped=tuple(u for p in sorted(consolidated) for u in consolidated[p].raw.unmapped),
                invalid_adjustments=_distinct_invalid(consolidated.values()),
            )

            logger.info(
                "entity_breakdown_generated",
                extra={
                    "start": request.start.key,
                    "end": request.end.key,
                    "breakdown": request.breakdown.value,
                    "scope": request.scope.scope.value,
                    "column_count": len(columns),
                    "statement_ids": [s.id for s in statements],
                    "ebitda": request.ebitda,
                },
            )
            return report

    def drill_down(self, request: DrillDownRequest) -> DrillDownResult:
        """
        Decompose one statement cell into entity-account and adjustment rows.

        Raises:
            StatementNotFoundError: Unknown ``statement_id``.
            PeriodKeyNotFoundError: ``period_key`` is not a bucket of the range.
            LineNotFoundError: ``line_id`` does not resolve on the template.
        """
        statements = request.statements
        with LogContext.bind(
            organization_id=statements.organization_id, report_type=ReportType.DRILL_DOWN,
        ):
            template = self._template(request.statement_id)
            buckets = periods_in_range(statements.start, statements.end, statements.granularity)
            bucket = next((b for b in buckets if b.key == request.period_key), None)
            if bucket is None:
                raise PeriodKeyNotFoundError(request.period_key)

            months = set(bucket.months)
            if request.column_type == ColumnType.PRIOR_YEAR:
                months = {p.shift(PRIOR_YEAR_SHIFT) for p in months}
            snapshot, index = self._load(
                statements.organization_id,
                months,
                include_budget=request.column_type == ColumnType.BUDGET,
            )
            entity_ids = self._entity_ids(snapshot, statements.scope)
            options = self._options(
                entity_ids, statements.include_allocations, statements.include_pro_forma,
            )

            result = drill_down(
                template,
                snapshot,
                index,
                request.line_id,
                bucket,
                request.column_type,
                options,
                zero_tolerance=self._config.drill_down_zero_tolerance,
            )

            logger.info(
                "drill_down_generated",
                extra={
                    "statement_id": request.statement_id,
                    "line_id": request.line_id,
                    "period_key": request.period_key,
                    "column_type": request.column_type.value,
                    "group_count": len(result.groups),
                    "total": str(result.total),
                    "is_decomposable": result.is_decomposable,
                },
            )
            return result

    def unmapped_report(
        self,
        organization_id: UUID,
        start: Period,
        end: Period,
        scope: ReportScope | None = None,
    ) -> list[UnmappedAccountBalance]:
        """Every unmapped or orphaned entity-account balance, month by month."""
        if end < start:
            raise InvalidRequestError("endMonth", f"{end} is before {start}")
        scope = scope or ReportScope()
        with LogContext.bind(organization_id=organization_id, report_type=ReportType.UNMAPPED):
            months = months_between(start, end)
            snapshot, index = self._load(organization_id, set(months))
            entity_ids = self._entity_ids(snapshot, scope)
            rows = unmapped_balances(snapshot, index, months, entity_ids)

            logger.info(
                "unmapped_report_generated",
                extra={
                    "start": start.key,
                    "end": end.key,
                    "row_count": len(rows),
                    "orphaned_count": sum(1 for r in rows if r.reason == MappingStatus.ORPHANED),
                },
            )
            return rows


def _distinct_invalid(results: Iterable[MonthResult]) -> tuple[InvalidAdjustment, ...]:
    seen: dict[UUID, InvalidAdjustment] = {}
    for result in results:
        for item in result.adjustments.invalid:
            seen.setdefault(item.adjustment_id, item)
    return tuple(seen.values())
