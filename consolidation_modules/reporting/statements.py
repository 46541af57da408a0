"""
Statement Section Builder (``consolidation_modules.reporting.statements``).

Responsibility
--------------
Lay adjusted master-account balances out on a ``StatementTemplate``:
account lines grouped into sections, section subtotals, computed lines,
and margin ratios, one amount per period bucket.  Optional budget and
prior-year columns run the same layout over their own month results.
``build_breakdown_statement`` lays out one bucket with a column per
entity or reporting entity instead.

Architecture position
---------------------
**Modules layer** -- pure transformation functions with ZERO I/O.
Consumes the ``MonthResult`` maps produced by ``trial_balance.run_months``.

Invariants enforced
-------------------
* Income statement accounts (Revenue/Expense) sum the bucket's months;
  balance sheet accounts take the bucket's last month.
* Each section total equals the sum of its account lines.
* A computed line is the signed sum of its section totals.
* A margin line is numerator / denominator section total, rounded to
  ``ratio_precision``; it is None (rendered "-") when the denominator is 0.
* With ``ebitda=True`` every line after the template's EBITDA cutoff is
  dropped.

Failure modes
-------------
* None.  Accounts whose classification the template does not show are
  left off the statement.
"""

from __future__ import annotations

import dataclasses
from collections import defaultdict
from collections.abc import Callable, Iterable, Mapping
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from uuid import UUID

from consolidation_config.schema import StatementTemplate
from consolidation_kernel.domain.periods import Period, PeriodBucket
from consolidation_kernel.domain.snapshot import ConsolidationSnapshot, MasterAccountInfo
from consolidation_modules.reporting.models import LineKind, StatementData, StatementLine
from consolidation_modules.reporting.trial_balance import MonthResult

ZERO = Decimal("0")

PRIOR_YEAR_SHIFT = -12


# =========================================================================
# Account placement
# =========================================================================


def account_line_id(section_id: str, master_account_id: UUID) -> str:
    return f"{section_id}-{master_account_id}"


def place_accounts(
    template: StatementTemplate,
    accounts: Iterable[MasterAccountInfo],
) -> dict[str, list[MasterAccountInfo]]:
    """Accounts per section id, in chart order."""
    placed: dict[str, list[MasterAccountInfo]] = {s.id: [] for s in template.sections}
    ordered = sorted(accounts, key=lambda a: (a.display_order, a.number, a.name))
    for account in ordered:
        section = template.section_for(account.classification, account.account_type, account.name)
        if section is not None:
            placed[section.id].append(account)
    return placed


def bucket_months(bucket: PeriodBucket, master: MasterAccountInfo, shift: int = 0) -> tuple[Period, ...]:
    """Months that make up one account's amount in one bucket."""
    if master.classification.is_income_statement:
        months = bucket.months
    else:
        months = (bucket.last,)
    return tuple(p.shift(shift) for p in months) if shift else months


# =========================================================================
# Column computation
# =========================================================================


def _adjusted_maps(results: Mapping[Period, MonthResult]) -> dict[Period, dict[UUID, Decimal]]:
    return {p: r.adjusted_by_account() for p, r in results.items()}


def _ratio(numerator: Decimal, denominator: Decimal, precision: int) -> Decimal | None:
    if denominator == ZERO:
        return None
    quantum = Decimal(1).scaleb(-precision)
    return (numerator / denominator).quantize(quantum, rounding=ROUND_HALF_UP)


def _column_values(
    template: StatementTemplate,
    placed: Mapping[str, list[MasterAccountInfo]],
    buckets: tuple[PeriodBucket, ...],
    results: Mapping[Period, MonthResult],
    shift: int,
    ratio_precision: int,
) -> dict[str, dict[str, Decimal | None]]:
    """Every line's amount per bucket key for one column."""
    adjusted = _adjusted_maps(results)
    values: dict[str, dict[str, Decimal | None]] = {}
    section_totals: dict[str, dict[str, Decimal]] = {}

    for section in template.sections:
        totals: dict[str, Decimal] = defaultdict(lambda: ZERO)
        for master in placed[section.id]:
            amounts: dict[str, Decimal | None] = {}
            for bucket in buckets:
                amount = sum(
                    (adjusted.get(p, {}).get(master.id, ZERO) for p in bucket_months(bucket, master, shift)),
                    ZERO,
                )
                amounts[bucket.key] = amount
                totals[bucket.key] += amount
            values[account_line_id(section.id, master.id)] = amounts
        section_totals[section.id] = {b.key: totals[b.key] for b in buckets}
        values[section.total_line_id] = dict(section_totals[section.id])

    for computed in template.computed_lines:
        values[computed.id] = {
            b.key: sum(
                (term.sign * section_totals[term.section_id][b.key] for term in computed.formula),
                ZERO,
            )
            for b in buckets
        }

    for margin in template.margin_lines:
        values[margin.id] = {
            b.key: _ratio(
                values[margin.numerator][b.key],
                section_totals[margin.denominator_section][b.key],
                ratio_precision,
            )
            for b in buckets
        }

    return values


def _has_activity(values: Mapping[str, Decimal | None]) -> bool:
    return any(v is not None and v != ZERO for v in values.values())


# =========================================================================
# Statement builder
# =========================================================================


def build_statement(
    template: StatementTemplate,
    snapshot: ConsolidationSnapshot,
    buckets: Iterable[PeriodBucket],
    actual: Mapping[Period, MonthResult],
    budget: Mapping[Period, MonthResult] | None = None,
    prior_year: Mapping[Period, MonthResult] | None = None,
    ebitda: bool = False,
    include_zero_balances: bool = False,
    ratio_precision: int = 4,
) -> StatementData:
    """
    Build one statement from month results.

    Args:
        actual: Month results covering every month of ``buckets``.
        budget: Budget month results for the same months, if wanted.
        prior_year: Month results for every month shifted back twelve
            months, if wanted.
        ebitda: Drop every line after the template's EBITDA cutoff.
        include_zero_balances: Show account lines with no activity.

    Returns:
        StatementData with lines in presentation order.
    """
    buckets = tuple(buckets)
    placed = place_accounts(template, snapshot.master_accounts)

    actual_values = _column_values(template, placed, buckets, actual, 0, ratio_precision)
    budget_values = (
        _column_values(template, placed, buckets, budget, 0, ratio_precision)
        if budget is not None else None
    )
    prior_values = (
        _column_values(template, placed, buckets, prior_year, PRIOR_YEAR_SHIFT, ratio_precision)
        if prior_year is not None else None
    )

    def make_line(
        line_id: str,
        label: str,
        kind: LineKind,
        section_id: str | None = None,
        master_account_id: UUID | None = None,
        is_grand_total: bool = False,
        indent: int = 0,
    ) -> StatementLine:
        return StatementLine(
            id=line_id,
            label=label,
            kind=kind,
            section_id=section_id,
            master_account_id=master_account_id,
            amounts=actual_values[line_id],
            budget_amounts=budget_values[line_id] if budget_values is not None else None,
            prior_year_amounts=prior_values[line_id] if prior_values is not None else None,
            is_grand_total=is_grand_total,
            indent=indent,
        )

    def show_account(line_id: str, master: MasterAccountInfo) -> bool:
        active = any(
            _has_activity(column[line_id])
            for column in (actual_values, budget_values, prior_values)
            if column is not None
        )
        return active or (include_zero_balances and master.is_active)

    cutoff = template.ebitda_cutoff if ebitda else None
    return StatementData(
        id=template.id,
        title=template.title,
        periods=buckets,
        lines=tuple(_lay_out(template, placed, make_line, show_account, cutoff)),
        is_ebitda=cutoff is not None,
    )


def build_breakdown_statement(
    template: StatementTemplate,
    snapshot: ConsolidationSnapshot,
    bucket: PeriodBucket,
    columns: Mapping[str, Mapping[Period, MonthResult]],
    ebitda: bool = False,
    include_zero_balances: bool = False,
    ratio_precision: int = 4,
) -> StatementData:
    """
    Build one statement with a column per slice of the organization.

    ``columns`` maps a column key to the month results of that slice
    (one entity, one reporting entity, the eliminations, the whole
    scope).  Every line's ``amounts`` is keyed by column key, in the
    order of ``columns``, and covers the single ``bucket``.  An account
    line is shown when any column has activity on it.
    """
    placed = place_accounts(template, snapshot.master_accounts)
    values = {
        key: _column_values(template, placed, (bucket,), results, 0, ratio_precision)
        for key, results in columns.items()
    }

    def amounts(line_id: str) -> dict[str, Decimal | None]:
        return {key: column[line_id][bucket.key] for key, column in values.items()}

    def make_line(
        line_id: str,
        label: str,
        kind: LineKind,
        section_id: str | None = None,
        master_account_id: UUID | None = None,
        is_grand_total: bool = False,
        indent: int = 0,
    ) -> StatementLine:
        return StatementLine(
            id=line_id,
            label=label,
            kind=kind,
            section_id=section_id,
            master_account_id=master_account_id,
            amounts=amounts(line_id),
            is_grand_total=is_grand_total,
            indent=indent,
        )

    def show_account(line_id: str, master: MasterAccountInfo) -> bool:
        return _has_activity(amounts(line_id)) or (include_zero_balances and master.is_active)

    cutoff = template.ebitda_cutoff if ebitda else None
    return StatementData(
        id=template.id,
        title=template.title,
        periods=(bucket,),
        lines=tuple(_lay_out(template, placed, make_line, show_account, cutoff)),
        is_ebitda=cutoff is not None,
    )


def _lay_out(
    template: StatementTemplate,
    placed: Mapping[str, list[MasterAccountInfo]],
    make_line: Callable[..., StatementLine],
    show_account: Callable[[str, MasterAccountInfo], bool],
    cutoff: str | None,
) -> list[StatementLine]:
    """Lines in presentation order, stopping after ``cutoff`` when set."""
    lines: list[StatementLine] = []

    def emit(line: StatementLine) -> bool:
        """Append a line; True once the cutoff has been reached."""
        lines.append(line)
        return cutoff is not None and line.id == cutoff

    done = False
    for section in template.sections:
        for master in placed[section.id]:
            line_id = account_line_id(section.id, master.id)
            if not show_account(line_id, master):
                continue
            lines.append(
                make_line(
                    line_id, master.display_name, LineKind.ACCOUNT,
                    section_id=section.id, master_account_id=master.id, indent=1,
                )
            )
        done = emit(
            make_line(section.total_line_id, f"Total {section.title}", LineKind.SECTION_TOTAL, section_id=section.id)
        )
        if done:
            break
        for computed in template.computed_lines:
            if computed.after_section != section.id:
                continue
            done = emit(
                make_line(computed.id, computed.label, LineKind.COMPUTED, is_grand_total=computed.is_grand_total)
            )
            if done:
                break
            for margin in template.margin_lines:
                if margin.numerator != computed.id:
                    continue
                done = emit(make_line(margin.id, margin.label, LineKind.MARGIN))
                if done:
                    break
            if done:
                break
        if done:
            break

    return lines


# =========================================================================
# Rendering helpers
# =========================================================================


def format_amount(value: Decimal | None, is_percentage: bool = False) -> str:
    """Display string for one cell: "-" for no value, "25.0%" for ratios."""
    if value is None:
        return "-"
    if is_percentage:
        pct = (value * 100).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
        return f"{pct}%"
    return str(value)


def _render_amounts(amounts: dict[str, Decimal | None] | None, is_percentage: bool) -> dict | None:
    if amounts is None:
        return None
    return {key: format_amount(value, is_percentage) for key, value in amounts.items()}


def render_statement(statement: StatementData) -> dict:
    """Convert a statement to plain dicts with string amounts."""
    return {
        "id": statement.id,
        "title": statement.title,
        "is_ebitda": statement.is_ebitda,
        "periods": [{"key": b.key, "label": b.label} for b in statement.periods],
        "lines": [
            {
                "id": line.id,
                "label": line.label,
                "kind": line.kind.value,
                "indent": line.indent,
                "is_grand_total": line.is_grand_total,
                "is_percentage": line.is_percentage,
                "amounts": _render_amounts(line.amounts, line.is_percentage),
                "budget_amounts": _render_amounts(line.budget_amounts, line.is_percentage),
                "prior_year_amounts": _render_amounts(line.prior_year_amounts, line.is_percentage),
            }
            for line in statement.lines
        ],
    }


def render_to_dict(obj: object) -> dict | list | str | int | float | bool | None:
    """
    Convert any report dataclass to a plain dict for JSON serialization.

    Handles:
    - Decimal -> str (preserving precision)
    - UUID -> str
    - date -> ISO format string
    - Enum -> .value
    - Nested frozen dataclasses -> nested dicts
    - Tuples, sets and frozensets -> lists
    - None preserved
    """
    if obj is None:
        return None
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (list, tuple)):
        return [render_to_dict(item) for item in obj]
    if isinstance(obj, (set, frozenset)):
        return sorted(render_to_dict(item) for item in obj)
    if isinstance(obj, dict):
        return {str(render_to_dict(k)): render_to_dict(v) for k, v in obj.items()}
    if isinstance(obj, Period):
        return obj.key
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {
            f.name: render_to_dict(getattr(obj, f.name))
            for f in dataclasses.fields(obj)
        }
    if isinstance(obj, (str, int, float, bool)):
        return obj
    return str(obj)
