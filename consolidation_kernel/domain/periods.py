"""
Periods -- calendar-month arithmetic and reporting buckets.

Responsibility:
    Represents a fiscal month as an ordered value, counts inclusive month
    ranges, and groups month ranges into monthly, quarterly and yearly
    reporting buckets with stable keys and display labels.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Period.month is always in 1..12.
    - month_count(start, end) == end.index - start.index + 1.
    - Buckets produced by periods_in_range cover every month of the range
      exactly once, in chronological order.

Failure modes:
    - InvalidScheduleError from Period() for a month outside 1..12.
    - InvalidRequestError from periods_in_range and range_bucket for an
      inverted range.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from consolidation_kernel.exceptions import InvalidRequestError, InvalidScheduleError

_MONTH_ABBR = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)


@dataclass(frozen=True, order=True)
class Period:
    """A calendar month. Ordered chronologically."""

    year: int
    month: int

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12:
            raise InvalidScheduleError("month", f"{self.month} is outside 1..12")

    @property
    def index(self) -> int:
        """Months since year 0; consecutive months differ by exactly one."""
        return self.year * 12 + (self.month - 1)

    @classmethod
    def from_index(cls, index: int) -> Period:
        return cls(index // 12, index % 12 + 1)

    def shift(self, months: int) -> Period:
        return Period.from_index(self.index + months)

    def next(self) -> Period:
        return self.shift(1)

    def previous(self) -> Period:
        return self.shift(-1)

    @property
    def quarter(self) -> int:
        return (self.month - 1) // 3 + 1

    @property
    def key(self) -> str:
        return f"{self.year}-{self.month:02d}"

    @property
    def label(self) -> str:
        return f"{_MONTH_ABBR[self.month - 1]}-{self.year % 100:02d}"

    def __str__(self) -> str:
        return self.key


def month_count(start: Period, end: Period) -> int:
    """Inclusive number of months from start to end. Less than 1 if inverted."""
    return end.index - start.index + 1


def months_between(start: Period, end: Period) -> tuple[Period, ...]:
    """Every month from start through end inclusive. Empty if inverted."""
    return tuple(Period.from_index(i) for i in range(start.index, end.index + 1))


class Granularity(str, Enum):
    """Reporting bucket size."""

    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


@dataclass(frozen=True)
class PeriodBucket:
    """
    One reporting column: a contiguous run of months.

    Income statement amounts sum over ``months``; balance sheet amounts
    take the bucket's ``last`` month.
    """

    key: str
    label: str
    months: tuple[Period, ...]

    @property
    def first(self) -> Period:
        return self.months[0]

    @property
    def last(self) -> Period:
        return self.months[-1]

    def shift(self, months: int) -> PeriodBucket:
        """Same bucket moved by a number of months (prior-year uses -12)."""
        shifted = tuple(p.shift(months) for p in self.months)
        return PeriodBucket(key=self.key, label=self.label, months=shifted)


def _bucket_key(period: Period, granularity: Granularity) -> tuple[str, str]:
    yy = f"{period.year % 100:02d}"
    match granularity:
        case Granularity.MONTHLY:
            return period.key, period.label
        case Granularity.QUARTERLY:
            return f"{period.year}-Q{period.quarter}", f"Q{period.quarter} {yy}"
        case Granularity.YEARLY:
            return f"FY{period.year}", f"FY {yy}"
    raise InvalidRequestError("granularity", f"unsupported value {granularity!r}")


def periods_in_range(
    start: Period,
    end: Period,
    granularity: Granularity = Granularity.MONTHLY,
) -> list[PeriodBucket]:
    """
    Group start..end into buckets of the requested granularity.

    Partial quarters and years at either edge are clipped to the range,
    so a Feb..Apr quarterly request yields ``2025-Q1`` (Feb, Mar) and
    ``2025-Q2`` (Apr).
    """
    if month_count(start, end) < 1:
        raise InvalidRequestError("endPeriod", f"{end} is before {start}")

    buckets: list[PeriodBucket] = []
    current_key: str | None = None
    current_label = ""
    current_months: list[Period] = []

    for period in months_between(start, end):
        key, label = _bucket_key(period, granularity)
        if key != current_key:
            if current_key is not None:
                buckets.append(PeriodBucket(current_key, current_label, tuple(current_months)))
            current_key, current_label, current_months = key, label, []
        current_months.append(period)

    if current_key is not None:
        buckets.append(PeriodBucket(current_key, current_label, tuple(current_months)))
    return buckets


def range_bucket(start: Period, end: Period) -> PeriodBucket:
    """The whole of start..end as a single bucket."""
    if month_count(start, end) < 1:
        raise InvalidRequestError("endPeriod", f"{end} is before {start}")
    if start == end:
        return PeriodBucket(start.key, start.label, (start,))
    return PeriodBucket(f"{start.key}..{end.key}", f"{start.label} - {end.label}", months_between(start, end))
