"""
Drill-Down Aggregator (``consolidation_modules.reporting.drilldown``).

Responsibility
--------------
Re-express one statement cell (line x period bucket x column) as the
entity-account rows and adjustment rows whose sum is that cell.

Architecture position
---------------------
**Modules layer** -- pure function over a loaded snapshot, ZERO I/O.
Uses the same month pipeline and account placement as the statement
builder, so the totals agree by construction.

Invariants enforced
-------------------
* Result ``total`` equals the statement amount of the drilled cell.
* Rows are grouped by master account.  For a computed line each group
  carries the sign of its section in the formula, and row amounts are
  already multiplied by it.
* Rows whose absolute amount is below the zero tolerance are hidden; the
  group subtotal still includes them.
* Rows are ordered by absolute amount, groups by absolute subtotal,
  largest first.
* Margin lines have no additive decomposition: the result is empty with
  ``is_decomposable=False``.

Failure modes
-------------
* ``LineNotFoundError`` for a line id the template cannot produce.
"""

from __future__ import annotations

from collections import defaultdict
from decimal import Decimal
from uuid import UUID

from consolidation_config.schema import MARGIN_SUFFIX, SECTION_TOTAL_SUFFIX, StatementTemplate
from consolidation_engines.adjustments import AdjustmentKind
from consolidation_engines.mapping_index import AccountMappingIndex
from consolidation_kernel.domain.periods import Period, PeriodBucket
from consolidation_kernel.domain.snapshot import (
    ConsolidationSnapshot,
    MasterAccountInfo,
    natural_balance,
)
from consolidation_kernel.exceptions import LineNotFoundError
from consolidation_kernel.logging_config import get_logger
from consolidation_modules.reporting.models import (
    AdjustmentRow,
    ColumnType,
    DrillDownGroup,
    DrillDownResult,
    DrillDownRow,
)
from consolidation_modules.reporting.statements import (
    PRIOR_YEAR_SHIFT,
    bucket_months,
    place_accounts,
)
from consolidation_modules.reporting.trial_balance import (
    ELIMINATIONS_CODE,
    ELIMINATIONS_NAME,
    MonthResult,
    PipelineOptions,
    run_months,
)

logger = get_logger("modules.reporting.drilldown")

ZERO = Decimal("0")

RECLASS_SUFFIX = " (reclass)"
OFFSET_SUFFIX = " (offset)"


def resolve_line(template: StatementTemplate, line_id: str) -> list[tuple[str, int, UUID | None]]:
    """
    Sections (with sign) that make up a line.

    Returns (section_id, sign, master_account_id) triples; the master
    account is set only for an account line.  Margin lines return [].
    """
    if line_id.endswith(MARGIN_SUFFIX) and template.margin_line(line_id) is not None:
        return []

    computed = template.computed_line(line_id)
    if computed is not None:
        return [(term.section_id, term.sign, None) for term in computed.formula]

    section_id, sep, rest = line_id.partition("-")
    section = template.section(section_id)
    if not sep or section is None:
        raise LineNotFoundError(template.id, line_id)
    if f"-{rest}" == SECTION_TOTAL_SUFFIX:
        return [(section.id, 1, None)]
    try:
        master_id = UUID(rest)
    except ValueError:
        raise LineNotFoundError(template.id, line_id) from None
    return [(section.id, 1, master_id)]


def _collect_raw_rows(
    snapshot: ConsolidationSnapshot,
    index: AccountMappingIndex,
    master: MasterAccountInfo,
    months: tuple[Period, ...],
    column_type: ColumnType,
    entity_ids: frozenset[UUID] | None,
    sign: int,
) -> list[DrillDownRow]:
    amounts: dict[tuple[UUID, UUID], Decimal] = defaultdict(lambda: ZERO)
    for period in months:
        if column_type == ColumnType.BUDGET:
            for row in snapshot.budgets_for(period):
                if entity_ids is not None and row.entity_id not in entity_ids:
                    continue
                if index.resolve(row.entity_id, row.account_id) == master.id:
                    amounts[(row.entity_id, row.account_id)] += row.amount
        else:
            for row in snapshot.balances_for(period):
                if entity_ids is not None and row.entity_id not in entity_ids:
                    continue
                if index.resolve(row.entity_id, row.account_id) == master.id:
                    amounts[(row.entity_id, row.account_id)] += natural_balance(
                        row.debit_total, row.credit_total, master.normal_balance,
                    )

    rows = []
    for (entity_id, account_id), amount in amounts.items():
        entity = snapshot.entities_by_id.get(entity_id)
        account = snapshot.entity_accounts_by_id.get(account_id)
        rows.append(
            DrillDownRow(
                entity_id=entity_id,
                entity_code=entity.code if entity else "???",
                entity_name=entity.name if entity else "Unknown",
                account_id=account_id,
                account_name=account.name if account else "Unknown account",
                account_number=account.number if account else None,
                amount=sign * amount,
            )
        )
    return rows


def _collect_adjustment_rows(
    snapshot: ConsolidationSnapshot,
    master: MasterAccountInfo,
    months: tuple[Period, ...],
    results: dict[Period, MonthResult],
    sign: int,
) -> list[AdjustmentRow]:
    grouped: dict[tuple, Decimal] = defaultdict(lambda: ZERO)
    for period in months:
        result = results[period]
        for delta in result.adjustments.deltas:
            if delta.master_account_id != master.id:
                continue
            description = delta.description
            if delta.kind == AdjustmentKind.RECLASS:
                description += RECLASS_SUFFIX
            elif delta.is_offset:
                description += OFFSET_SUFFIX
            key = (delta.adjustment_id, delta.kind, delta.entity_id, description)
            grouped[key] += delta.amount
        for delta in result.eliminations.deltas:
            if delta.master_account_id != master.id:
                continue
            key = (delta.elimination_id, AdjustmentKind.ELIMINATION, None, delta.description)
            grouped[key] += delta.amount

    rows = []
    for (adjustment_id, kind, entity_id, description), amount in grouped.items():
        entity = snapshot.entities_by_id.get(entity_id) if entity_id is not None else None
        if entity_id is None:
            code, name = ELIMINATIONS_CODE, ELIMINATIONS_NAME
        else:
            code = entity.code if entity else "???"
            name = entity.name if entity else "Unknown"
        rows.append(
            AdjustmentRow(
                adjustment_id=adjustment_id,
                type=kind,
                entity_id=entity_id,
                entity_code=code,
                entity_name=name,
                description=description,
                amount=sign * amount,
            )
        )
    return rows


def drill_down(
    template: StatementTemplate,
    snapshot: ConsolidationSnapshot,
    index: AccountMappingIndex,
    line_id: str,
    bucket: PeriodBucket,
    column_type: ColumnType,
    options: PipelineOptions,
    zero_tolerance: Decimal = Decimal("0.005"),
) -> DrillDownResult:
    """
    Decompose one statement cell.

    Args:
        bucket: The unshifted bucket as shown on the statement; the
            prior-year column is shifted back twelve months here.
        options: The same pipeline options the statement was built with.
    """
    parts = resolve_line(template, line_id)
    if not parts:
        return DrillDownResult(
            statement_id=template.id,
            line_id=line_id,
            period_key=bucket.key,
            column_type=column_type,
            is_decomposable=False,
        )

    shift = PRIOR_YEAR_SHIFT if column_type == ColumnType.PRIOR_YEAR else 0
    placed = place_accounts(template, snapshot.master_accounts)

    targets: list[tuple[MasterAccountInfo, int]] = []
    for section_id, sign, master_id in parts:
        if master_id is None:
            targets.extend((m, sign) for m in placed[section_id])
            continue
        found = [m for m in placed[section_id] if m.id == master_id]
        if not found:
            raise LineNotFoundError(template.id, line_id)
        targets.append((found[0], sign))

    months_needed = {p for master, _ in targets for p in bucket_months(bucket, master, shift)}
    results = run_months(
        snapshot, index, months_needed, options, budget=column_type == ColumnType.BUDGET,
    )

    groups: list[DrillDownGroup] = []
    for master, sign in targets:
        months = bucket_months(bucket, master, shift)
        rows = _collect_raw_rows(snapshot, index, master, months, column_type, options.entity_ids, sign)
        adjustments = (
            _collect_adjustment_rows(snapshot, master, months, results, sign)
            if column_type != ColumnType.BUDGET else []
        )
        subtotal = sum((r.amount for r in rows), ZERO) + sum((a.amount for a in adjustments), ZERO)
        rows = sorted(
            (r for r in rows if abs(r.amount) >= zero_tolerance), key=lambda r: -abs(r.amount),
        )
        adjustments = sorted(
            (a for a in adjustments if abs(a.amount) >= zero_tolerance), key=lambda a: -abs(a.amount),
        )
        if not rows and not adjustments and subtotal == ZERO:
            continue
        groups.append(
            DrillDownGroup(
                master_account_id=master.id,
                account_number=master.number,
                account_name=master.name,
                sign=sign,
                rows=tuple(rows),
                adjustments=tuple(adjustments),
                subtotal=subtotal,
            )
        )

    groups.sort(key=lambda g: -abs(g.subtotal))
    total = sum((g.subtotal for g in groups), ZERO)

    logger.debug(
        "drill_down_resolved",
        extra={
            "statement_id": template.id,
            "line_id": line_id,
            "period_key": bucket.key,
            "column_type": column_type.value,
            "group_count": len(groups),
            "total": str(total),
        },
    )
    return DrillDownResult(
        statement_id=template.id,
        line_id=line_id,
        period_key=bucket.key,
        column_type=column_type,
        groups=tuple(groups),
        total=total,
    )
