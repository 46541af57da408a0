"""
Hypothesis-based property tests for the consolidation pipeline.

Properties checked:
- Spreads: parts sum exactly to the total, one part per month, parts
  within one cent of each other
- Allocations and reclasses: deltas always net to zero
- Exclusion toggle: excluding then re-including restores every figure
- Trial balance: entity breakdown rows sum to the account totals
- Eliminations: every evaluated set is balanced
- Periods: shift and from_index agree with month arithmetic

NO database, NO I/O.
"""

from dataclasses import replace
from decimal import Decimal

from hypothesis import HealthCheck, assume, given, settings
from hypothesis import strategies as st
from hypothesis.strategies import composite

from consolidation_engines.adjustments import allocation_deltas, evaluate_adjustments
from consolidation_engines.eliminations import evaluate_eliminations
from consolidation_engines.mapping_index import build_mapping_index
from consolidation_engines.scheduler import spread_amounts
from consolidation_kernel.domain.periods import Period, month_count, months_between
from consolidation_kernel.domain.snapshot import (
    Elimination,
    EliminationStatus,
    InterEntityAllocation,
    ReclassAdjustment,
    SpreadSchedule,
)
from consolidation_modules.reporting.config import ConsolidationConfig
from consolidation_modules.reporting.models import ReportMetadata, ReportType
from consolidation_modules.reporting.trial_balance import PipelineOptions, build_trial_balance
from tests.factories import (
    CHART,
    HQ,
    JUN,
    ORG_ID,
    RENT,
    SALES,
    SUPPLIES,
    SUPPLIES_VEHICLE,
    WEST,
    activity,
    make_snapshot,
    uid,
)

CENT = Decimal("0.01")
ZERO = Decimal("0")
MASTERS = {m.id: m for m in CHART}

PROPERTY_SETTINGS = settings(
    max_examples=60,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
)


@composite
def money_amounts(draw, min_value="-999999999.99", max_value="999999999.99"):
    """Nonzero two-place Decimal amounts."""
    amount = draw(st.decimals(
        min_value=Decimal(min_value),
        max_value=Decimal(max_value),
        places=2,
        allow_nan=False,
        allow_infinity=False,
    ))
    assume(amount != ZERO)
    return amount


@composite
def periods(draw):
    return Period(draw(st.integers(2000, 2040)), draw(st.integers(1, 12)))


@composite
def spread_schedules(draw):
    start = draw(periods())
    return SpreadSchedule(start, start.shift(draw(st.integers(0, 35))))


@composite
def allocations(draw):
    """An inter-entity allocation or a reclass over a random spread."""
    schedule = draw(spread_schedules())
    amount = draw(money_amounts())
    if draw(st.booleans()):
        return InterEntityAllocation(
            id=uid(f"allocation/{draw(st.integers(0, 10_000))}"),
            source_entity_id=HQ.id,
            destination_entity_id=WEST.id,
            master_account_id=RENT.id,
            amount=amount,
            schedule=schedule,
        )
    return ReclassAdjustment(
        id=uid(f"reclass/{draw(st.integers(0, 10_000))}"),
        entity_id=draw(st.sampled_from([HQ.id, WEST.id])),
        master_account_id=SUPPLIES.id,
        destination_master_account_id=SUPPLIES_VEHICLE.id,
        amount=amount,
        schedule=schedule,
    )


@composite
def eliminations(draw):
    debit, credit = draw(st.lists(st.sampled_from(CHART), min_size=2, max_size=2, unique=True))
    return Elimination(
        id=uid(f"elimination/{draw(st.integers(0, 10_000))}"),
        debit_master_account_id=debit.id,
        credit_master_account_id=credit.id,
        amount=draw(money_amounts(min_value="0.01")),
        period=JUN,
        status=draw(st.sampled_from(list(EliminationStatus))),
    )


def _metadata() -> ReportMetadata:
    return ReportMetadata(
        report_type=ReportType.TRIAL_BALANCE,
        organization_id=ORG_ID,
        organization_name="Property Organization",
        currency="USD",
        generated_at="2025-01-01T12:00:00+00:00",
    )


def _trial_balance(snapshot, period=JUN):
    index = build_mapping_index(snapshot.mappings, snapshot.master_accounts)
    return build_trial_balance(
        snapshot, index, period, PipelineOptions(), ConsolidationConfig(), _metadata(),
    )


def _figures(report) -> dict:
    return {
        a.master_account_id: (
            a.adjusted_balance,
            tuple((r.entity_code, r.adjusted_balance) for r in a.entity_breakdown),
        )
        for a in report.accounts
    }


class TestSpreadProperties:

    @given(total=money_amounts(), months=st.integers(1, 120))
    @PROPERTY_SETTINGS
    def test_parts_sum_to_total(self, total, months):
        parts = spread_amounts(total, months)
        assert len(parts) == months
        assert sum(parts, ZERO) == total

    @given(total=money_amounts(), months=st.integers(1, 120))
    @PROPERTY_SETTINGS
    def test_parts_within_one_cent(self, total, months):
        parts = spread_amounts(total, months)
        assert max(parts) - min(parts) <= CENT
        assert all(p == p.quantize(CENT) for p in parts)


class TestAllocationProperties:

    @given(allocation=allocations(), offset=st.integers(-2, 40))
    @PROPERTY_SETTINGS
    def test_deltas_net_to_zero(self, allocation, offset):
        period = allocation.schedule.start.shift(offset)
        deltas = allocation_deltas(allocation, period)
        assert sum((d.amount for d in deltas), ZERO) == ZERO

    @given(allocation=allocations())
    @PROPERTY_SETTINGS
    def test_whole_schedule_distributes_amount(self, allocation):
        start, end = allocation.schedule.start, allocation.schedule.end
        months = months_between(start, end)
        moved = ZERO
        for period in months:
            result = evaluate_adjustments([allocation], [], period)
            assert result.invalid == ()
            # destination side follows the source side
            moved += sum((d.amount for d in result.deltas[1::2]), ZERO)
        assert moved == allocation.amount
        assert len(months) == month_count(start, end)

    @given(allocation=allocations(), rent=money_amounts(), sales=money_amounts())
    @PROPERTY_SETTINGS
    def test_exclusion_toggle_restores_figures(self, allocation, rent, sales):
        period = allocation.schedule.start
        balances = [activity(HQ, RENT, period, rent), activity(WEST, SALES, period, sales)]
        included = make_snapshot(balances=balances, allocations=[allocation])
        excluded = make_snapshot(balances=balances, allocations=[replace(allocation, is_excluded=True)])
        restored = make_snapshot(
            balances=balances,
            allocations=[replace(replace(allocation, is_excluded=True), is_excluded=False)],
        )
        without = make_snapshot(balances=balances)

        assert _figures(_trial_balance(excluded, period)) == _figures(_trial_balance(without, period))
        assert _figures(_trial_balance(restored, period)) == _figures(_trial_balance(included, period))


class TestTrialBalanceProperties:

    @given(
        amounts=st.lists(money_amounts(), min_size=4, max_size=4),
        allocation=allocations(),
        posted=st.lists(eliminations(), max_size=3),
    )
    @PROPERTY_SETTINGS
    def test_breakdown_sums_to_account(self, amounts, allocation, posted):
        allocation = replace(allocation, schedule=SpreadSchedule(JUN, JUN))
        snapshot = make_snapshot(
            balances=[
                activity(HQ, RENT, JUN, amounts[0]),
                activity(WEST, RENT, JUN, amounts[1]),
                activity(HQ, SUPPLIES, JUN, amounts[2]),
                activity(WEST, SALES, JUN, amounts[3]),
            ],
            allocations=[allocation],
            eliminations=posted,
        )
        report = _trial_balance(snapshot)

        for account in report.accounts:
            rows = account.entity_breakdown
            assert sum((r.adjusted_balance for r in rows), ZERO) == account.adjusted_balance
            assert sum((r.ending_balance for r in rows), ZERO) == account.ending_balance
            assert account.adjusted_balance == (
                account.ending_balance + account.adjustments + account.elimination_adjustments
            )


class TestEliminationProperties:

    @given(entries=st.lists(eliminations(), max_size=8))
    @PROPERTY_SETTINGS
    def test_always_balanced(self, entries):
        result = evaluate_eliminations(entries, MASTERS, JUN)
        posted = [e for e in entries if e.status == EliminationStatus.POSTED]

        assert result.is_balanced
        assert result.total_debits == sum((e.amount for e in posted), ZERO)
        assert len(result.deltas) == 2 * len(posted)


class TestPeriodProperties:

    @given(period=periods(), months=st.integers(-600, 600))
    @PROPERTY_SETTINGS
    def test_shift_round_trip(self, period, months):
        shifted = period.shift(months)
        assert shifted.shift(-months) == period
        assert shifted.index - period.index == months
        assert Period.from_index(period.index) == period
        assert 1 <= shifted.month <= 12
