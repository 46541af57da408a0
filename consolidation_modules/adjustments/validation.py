"""
Adjustment creation rules.

Pure checks run before an allocation, pro forma adjustment or elimination
reaches storage.  Each rule raises a typed ``ValidationError`` subclass
with the offending field; nothing is coerced.

``allocation_from_fields`` builds an allocation DTO from the flat field
set the adjustment forms submit (one record shape for both inter-entity
allocations and reclasses) and validates it.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from uuid import UUID

from consolidation_kernel.domain.periods import Period, month_count
from consolidation_kernel.domain.snapshot import (
    Allocation,
    Elimination,
    EliminationStatus,
    ExactSchedule,
    InterEntityAllocation,
    ProFormaAdjustment,
    ReclassAdjustment,
    RepeatingSchedule,
    Schedule,
    ScheduleType,
    SpreadSchedule,
)
from consolidation_kernel.exceptions import (
    InterEntityAllocationError,
    InvalidAmountError,
    InvalidRequestError,
    InvalidScheduleError,
    ReclassAccountError,
)

MIN_REPEAT_MONTHS = 2


def validate_amount(value: object) -> Decimal:
    """A finite, nonzero Decimal. Floats are rejected to keep amounts exact."""
    if isinstance(value, (float, bool)):
        raise InvalidAmountError(value, "must be a Decimal, integer or numeric string")
    try:
        amount = Decimal(str(value).strip()) if not isinstance(value, Decimal) else value
    except InvalidOperation:
        raise InvalidAmountError(value, "is not numeric") from None
    if not amount.is_finite():
        raise InvalidAmountError(value, "must be finite")
    if amount == 0:
        raise InvalidAmountError(value, "must be nonzero")
    return amount


def validate_schedule(schedule: Schedule) -> None:
    match schedule:
        case ExactSchedule():
            return
        case RepeatingSchedule(start=start, end=end):
            count = month_count(start, end)
            if count < 1:
                raise InvalidScheduleError("repeatEndMonth", f"repeat end {end} is before start {start}")
            if count < MIN_REPEAT_MONTHS:
                raise InvalidScheduleError(
                    "repeatEndMonth", f"a repeating schedule must span at least {MIN_REPEAT_MONTHS} months",
                )
        case SpreadSchedule(start=start, end=end):
            if month_count(start, end) < 1:
                raise InvalidScheduleError("endMonth", f"end {end} is before start {start}")
        case _:
            raise InvalidScheduleError("scheduleType", f"unknown schedule {type(schedule).__name__}")


def validate_allocation(allocation: Allocation) -> None:
    validate_amount(allocation.amount)
    validate_schedule(allocation.schedule)
    match allocation:
        case InterEntityAllocation():
            if allocation.source_entity_id == allocation.destination_entity_id:
                raise InterEntityAllocationError(str(allocation.source_entity_id))
        case ReclassAdjustment():
            if allocation.destination_master_account_id is None:
                raise ReclassAccountError(str(allocation.master_account_id), None)
            if allocation.destination_master_account_id == allocation.master_account_id:
                raise ReclassAccountError(
                    str(allocation.master_account_id),
                    str(allocation.destination_master_account_id),
                )


def validate_pro_forma(pro_forma: ProFormaAdjustment) -> None:
    validate_amount(pro_forma.amount)
    if pro_forma.offset_master_account_id == pro_forma.master_account_id:
        raise InvalidRequestError(
            "offsetMasterAccountId", "must differ from masterAccountId",
        )


def validate_elimination(elimination: Elimination) -> None:
    amount = validate_amount(elimination.amount)
    if amount < 0:
        raise InvalidAmountError(elimination.amount, "must be positive")
    if elimination.debit_master_account_id == elimination.credit_master_account_id:
        raise InvalidRequestError(
            "creditMasterAccountId", "must differ from debitMasterAccountId",
        )
    if elimination.status == EliminationStatus.REVERSED:
        raise InvalidRequestError("status", "an elimination cannot be created as reversed")


def _period(year: int | None, month: int | None, year_field: str, month_field: str) -> Period:
    if year is None:
        raise InvalidScheduleError(year_field, "is required")
    if month is None:
        raise InvalidScheduleError(month_field, "is required")
    if not 1 <= month <= 12:
        raise InvalidScheduleError(month_field, f"{month} is outside 1..12")
    return Period(year, month)


def schedule_from_fields(
    schedule_type: ScheduleType | str,
    period_year: int | None = None,
    period_month: int | None = None,
    is_repeating: bool = False,
    repeat_end_year: int | None = None,
    repeat_end_month: int | None = None,
    start_year: int | None = None,
    start_month: int | None = None,
    end_year: int | None = None,
    end_month: int | None = None,
) -> Schedule:
    """Build and validate a Schedule from flat form fields."""
    try:
        kind = ScheduleType(schedule_type)
    except ValueError:
        raise InvalidScheduleError("scheduleType", f"unknown schedule type {schedule_type!r}") from None

    if kind == ScheduleType.MONTHLY_SPREAD:
        schedule: Schedule = SpreadSchedule(
            start=_period(start_year, start_month, "startYear", "startMonth"),
            end=_period(end_year, end_month, "endYear", "endMonth"),
        )
    else:
        start = _period(period_year, period_month, "periodYear", "periodMonth")
        if is_repeating:
            schedule = RepeatingSchedule(
                start=start,
                end=_period(repeat_end_year, repeat_end_month, "repeatEndYear", "repeatEndMonth"),
            )
        else:
            schedule = ExactSchedule(period=start)

    validate_schedule(schedule)
    return schedule


def allocation_from_fields(
    id: UUID,
    source_entity_id: UUID,
    destination_entity_id: UUID | None,
    master_account_id: UUID,
    amount: object,
    schedule: Schedule,
    destination_master_account_id: UUID | None = None,
    is_reclass: bool = False,
    description: str = "",
    is_excluded: bool = False,
) -> Allocation:
    """
    One allocation DTO from the flat adjustment-form field set.

    A reclass needs a destination master account different from the
    source account and stays within ``source_entity_id``.  An inter-entity
    allocation needs a different destination entity and no destination
    master account.
    """
    value = validate_amount(amount)
    if is_reclass:
        if destination_master_account_id is None:
            raise ReclassAccountError(str(master_account_id), None)
        if destination_entity_id is not None and destination_entity_id != source_entity_id:
            raise InvalidRequestError(
                "destinationEntityId", "a reclass stays within the source entity",
            )
        allocation: Allocation = ReclassAdjustment(
            id=id,
            entity_id=source_entity_id,
            master_account_id=master_account_id,
            destination_master_account_id=destination_master_account_id,
            amount=value,
            schedule=schedule,
            description=description,
            is_excluded=is_excluded,
        )
    else:
        if destination_master_account_id is not None:
            raise InvalidRequestError(
                "destinationMasterAccountId", "is only allowed on a reclass",
            )
        if destination_entity_id is None:
            raise InvalidRequestError("destinationEntityId", "is required")
        allocation = InterEntityAllocation(
            id=id,
            source_entity_id=source_entity_id,
            destination_entity_id=destination_entity_id,
            master_account_id=master_account_id,
            amount=value,
            schedule=schedule,
            description=description,
            is_excluded=is_excluded,
        )
    validate_allocation(allocation)
    return allocation
