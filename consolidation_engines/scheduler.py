"""
Module: consolidation_engines.scheduler
Responsibility:
    Expand an adjustment schedule into the months it covers and compute
    the amount it contributes to one target month.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Imports only consolidation_kernel.domain.

Invariants enforced:
    - Exact schedules contribute the full amount in their one month.
    - Repeating schedules contribute the full amount, undivided, in every
      month from start through end inclusive, boundary months included.
    - Spread schedules over N months contribute amounts that sum to
      exactly the total.  Each month differs from total / N by at most one
      unit of the rounding precision: month i receives
      round(total * (i+1) / N) - round(total * i / N).
    - A schedule whose end precedes its start contributes zero and is
      reported with an ``invalid_reason``; reads never raise for it.

Failure modes:
    - None raised.  Creation-time rejection of malformed schedules lives in
      consolidation_modules.adjustments.validation.

Usage:
    from consolidation_engines.scheduler import scheduled_amount

    result = scheduled_amount(Decimal("6000"), SpreadSchedule(jan, jun), Period(2025, 3))
    result.amount  # Decimal("1000.00")
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from consolidation_kernel.domain.periods import Period, month_count, months_between
from consolidation_kernel.domain.snapshot import (
    ExactSchedule,
    RepeatingSchedule,
    Schedule,
    SpreadSchedule,
)

ZERO = Decimal("0")


@dataclass(frozen=True)
class ScheduledAmount:
    """
    Contribution of one schedule to one month.

    Guarantees:
        ``amount`` is zero whenever ``covers`` is False or the schedule is
        invalid.
    """

    amount: Decimal
    covers: bool
    invalid_reason: str | None = None

    @property
    def is_valid(self) -> bool:
        return self.invalid_reason is None


def schedule_bounds(schedule: Schedule) -> tuple[Period, Period]:
    """First and last month named by the schedule."""
    match schedule:
        case ExactSchedule(period=period):
            return period, period
        case RepeatingSchedule(start=start, end=end) | SpreadSchedule(start=start, end=end):
            return start, end
    raise TypeError(f"Unknown schedule type: {type(schedule).__name__}")


def invalid_reason(schedule: Schedule) -> str | None:
    """Why a stored schedule can't be evaluated, or None when it can."""
    start, end = schedule_bounds(schedule)
    if month_count(start, end) < 1:
        return f"end {end} is before start {start}"
    return None


def schedule_months(schedule: Schedule) -> tuple[Period, ...]:
    """Every month the schedule covers. Empty for an invalid schedule."""
    if invalid_reason(schedule) is not None:
        return ()
    start, end = schedule_bounds(schedule)
    return months_between(start, end)


def _quantum(precision: int) -> Decimal:
    return Decimal(1).scaleb(-precision)


def spread_amounts(total: Decimal, months: int, precision: int = 2) -> list[Decimal]:
    """
    Divide ``total`` into ``months`` parts that sum exactly to ``total``.

    Cumulative rounding keeps every part within one quantum of
    total / months and puts the residual pennies where they fall
    rather than all in the final month.
    """
    if months < 1:
        return []
    quantum = _quantum(precision)
    parts: list[Decimal] = []
    previous = ZERO
    for i in range(1, months + 1):
        if i == months:
            cumulative = total
        else:
            cumulative = (total * i / months).quantize(quantum, rounding=ROUND_HALF_UP)
        parts.append(cumulative - previous)
        previous = cumulative
    return parts


def scheduled_amount(
    amount: Decimal,
    schedule: Schedule,
    target: Period,
    precision: int = 2,
) -> ScheduledAmount:
    """
    Amount a schedule contributes to ``target``.

    Exact and repeating schedules contribute the whole amount in each month
    they cover.  A spread contributes its share from ``spread_amounts``:
    shares are quantized to ``precision`` places, so each month lies within
    one quantum (10 ** -precision) of amount / months, and the shares over
    the whole schedule sum exactly to ``amount``.
    """
    reason = invalid_reason(schedule)
    if reason is not None:
        return ScheduledAmount(amount=ZERO, covers=False, invalid_reason=reason)

    start, end = schedule_bounds(schedule)
    if not start <= target <= end:
        return ScheduledAmount(amount=ZERO, covers=False)

    match schedule:
        case ExactSchedule() | RepeatingSchedule():
            return ScheduledAmount(amount=amount, covers=True)
        case SpreadSchedule():
            parts = spread_amounts(amount, month_count(start, end), precision)
            return ScheduledAmount(amount=parts[target.index - start.index], covers=True)
    raise TypeError(f"Unknown schedule type: {type(schedule).__name__}")
