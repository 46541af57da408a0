"""
Tests for SnapshotSelector.

Covers:
- Active-entity filtering and organization isolation
- Month filtering of balances, budgets, pro formas and eliminations
- Allocations loaded regardless of the requested months
- ORM rows converted back to equal DTOs
- Allocation rows with an out-of-range month set aside, not fatal
"""

from decimal import Decimal

import pytest
from sqlalchemy import text, update
from sqlalchemy.exc import IntegrityError

from consolidation_kernel.domain.periods import Period
from consolidation_kernel.domain.snapshot import (
    Elimination,
    EliminationStatus,
    EliminationType,
    EntityInfo,
    ExactSchedule,
    InterEntityAllocation,
    ProFormaAdjustment,
    ReclassAdjustment,
    ReportingEntityInfo,
    RepeatingSchedule,
    SpreadSchedule,
)
from consolidation_kernel.models.adjustment import AllocationAdjustmentModel
from consolidation_kernel.selectors.snapshot_selector import SnapshotSelector
from tests.factories import (
    CHART,
    HQ,
    IC_PAYABLE,
    IC_RECEIVABLE,
    JAN,
    JUN,
    MAR,
    ORG_ID,
    RENT,
    SALES,
    SUPPLIES,
    SUPPLIES_VEHICLE,
    WEST,
    activity,
    budget,
    make_snapshot,
    seed_database,
    uid,
)

CLOSED = EntityInfo(id=uid("entity/CLOSED"), code="CLOSED", name="Closed Branch", is_active=False)
GROUP = ReportingEntityInfo(id=uid("reporting-entity/all"), name="All regions", member_ids=frozenset({HQ.id, WEST.id}))

SPREAD = InterEntityAllocation(
    id=uid("allocation/spread"),
    source_entity_id=HQ.id,
    destination_entity_id=WEST.id,
    master_account_id=RENT.id,
    amount=Decimal("1200"),
    schedule=SpreadSchedule(Period(2024, 7), JUN),
    description="Lease spread",
)
REPEATING = ReclassAdjustment(
    id=uid("allocation/repeating"),
    entity_id=HQ.id,
    master_account_id=SUPPLIES.id,
    destination_master_account_id=SUPPLIES_VEHICLE.id,
    amount=Decimal("45.50"),
    schedule=RepeatingSchedule(JAN, JUN),
    is_excluded=True,
)
EXACT = InterEntityAllocation(
    id=uid("allocation/exact"),
    source_entity_id=WEST.id,
    destination_entity_id=HQ.id,
    master_account_id=SALES.id,
    amount=Decimal("-300"),
    schedule=ExactSchedule(MAR),
)
ACCRUAL = ProFormaAdjustment(
    id=uid("pro-forma/accrual"),
    entity_id=WEST.id,
    master_account_id=SALES.id,
    period=JUN,
    amount=Decimal("250"),
    description="Accrual",
    offset_master_account_id=IC_RECEIVABLE.id,
)
MARCH_ACCRUAL = ProFormaAdjustment(
    id=uid("pro-forma/march"),
    entity_id=HQ.id,
    master_account_id=SALES.id,
    period=MAR,
    amount=Decimal("10"),
)
ELIMINATION = Elimination(
    id=uid("elimination/june"),
    debit_master_account_id=IC_PAYABLE.id,
    credit_master_account_id=IC_RECEIVABLE.id,
    amount=Decimal("800"),
    period=JUN,
    status=EliminationStatus.POSTED,
    elimination_type=EliminationType.RECLASSIFICATION,
    description="Intercompany loan reclass",
    memo="Year-end",
)


def _seed(session):
    snapshot = make_snapshot(
        entities=(HQ, WEST, CLOSED),
        balances=[
            activity(HQ, RENT, JUN, "1000"),
            activity(HQ, RENT, MAR, "900"),
            activity(WEST, SALES, Period(2024, 6), "700"),
            activity(CLOSED, RENT, JUN, "55"),
        ],
        budgets=[budget(HQ, SALES, JUN, "5000"), budget(HQ, SALES, MAR, "4000")],
        allocations=[SPREAD, REPEATING, EXACT],
        pro_formas=[ACCRUAL, MARCH_ACCRUAL],
        eliminations=[ELIMINATION],
        reporting_entities=(GROUP,),
    )
    seed_database(session, snapshot)
    return snapshot


class TestScope:

    def test_only_active_entities(self, session):
        _seed(session)
        loaded = SnapshotSelector(session).load(ORG_ID, [JUN])

        assert {e.code for e in loaded.entities} == {"HQ", "WEST"}
        assert all(b.entity_id != CLOSED.id for b in loaded.balances)
        assert all(a.entity_id != CLOSED.id for a in loaded.entity_accounts)

    def test_every_master_account(self, session):
        _seed(session)
        loaded = SnapshotSelector(session).load(ORG_ID, [JUN])
        assert set(loaded.master_accounts) == set(CHART)

    def test_other_organization_empty(self, session):
        _seed(session)
        loaded = SnapshotSelector(session).load(uid("other-org"), [JUN])
        assert loaded.entities == ()
        assert loaded.master_accounts == ()
        assert loaded.balances == ()
        assert loaded.allocations == ()


class TestMonthFilter:

    def test_balances(self, session):
        _seed(session)
        loaded = SnapshotSelector(session).load(ORG_ID, [JUN])
        assert {b.period for b in loaded.balances} == {JUN}
        assert loaded.balances[0].debit_total == Decimal("1000")

    def test_several_months_across_years(self, session):
        _seed(session)
        loaded = SnapshotSelector(session).load(ORG_ID, [Period(2024, 6), MAR])
        assert {b.period for b in loaded.balances} == {Period(2024, 6), MAR}

    def test_budgets_only_when_asked(self, session):
        _seed(session)
        selector = SnapshotSelector(session)
        assert selector.load(ORG_ID, [JUN]).budgets == ()
        budgets = selector.load(ORG_ID, [JUN], include_budget=True).budgets
        assert [b.amount for b in budgets] == [Decimal("5000")]

    def test_pro_formas_and_eliminations(self, session):
        _seed(session)
        loaded = SnapshotSelector(session).load(ORG_ID, [JUN])
        assert [p.id for p in loaded.pro_formas] == [ACCRUAL.id]
        assert [e.id for e in loaded.eliminations] == [ELIMINATION.id]

    def test_allocations_loaded_whole(self, session):
        _seed(session)
        loaded = SnapshotSelector(session).load(ORG_ID, [Period(2026, 1)])
        assert {a.id for a in loaded.allocations} == {SPREAD.id, REPEATING.id, EXACT.id}
        assert loaded.eliminations == ()


class TestRoundTrip:

    def test_allocations(self, session):
        _seed(session)
        loaded = {a.id: a for a in SnapshotSelector(session).load(ORG_ID, [JUN]).allocations}
        assert loaded[SPREAD.id] == SPREAD
        assert loaded[REPEATING.id] == REPEATING
        assert loaded[EXACT.id] == EXACT

    def test_pro_forma_and_elimination(self, session):
        _seed(session)
        loaded = SnapshotSelector(session).load(ORG_ID, [JUN])
        assert loaded.pro_formas[0] == ACCRUAL
        assert loaded.eliminations[0] == ELIMINATION

    def test_reporting_entities(self, session):
        _seed(session)
        loaded = SnapshotSelector(session).load(ORG_ID, [JUN])
        assert loaded.reporting_entities == (GROUP,)

    def test_mappings(self, session):
        snapshot = _seed(session)
        loaded = SnapshotSelector(session).load(ORG_ID, [JUN])
        assert set(loaded.mappings) == set(snapshot.mappings)


def _corrupt_month(session, allocation_id, **columns):
    """Write month values the CHECK constraints would refuse, as a foreign writer might."""
    session.execute(text("PRAGMA ignore_check_constraints = ON"))
    try:
        session.execute(
            update(AllocationAdjustmentModel)
            .where(AllocationAdjustmentModel.id == allocation_id)
            .values(**columns)
        )
        session.flush()
    finally:
        session.execute(text("PRAGMA ignore_check_constraints = OFF"))
    session.expire_all()


class TestUnreadableAllocations:

    def test_month_out_of_range_rejected_on_write(self, session):
        _seed(session)
        with pytest.raises(IntegrityError):
            session.execute(
                update(AllocationAdjustmentModel)
                .where(AllocationAdjustmentModel.id == EXACT.id)
                .values(period_month=13)
            )
            session.flush()

    def test_bad_row_set_aside(self, session):
        _seed(session)
        _corrupt_month(session, EXACT.id, period_month=13)

        loaded = SnapshotSelector(session).load(ORG_ID, [JUN])

        assert {a.id for a in loaded.allocations} == {SPREAD.id, REPEATING.id}
        (unreadable,) = loaded.unreadable_allocations
        assert unreadable.id == EXACT.id
        assert "13" in unreadable.reason

    def test_bad_spread_end_set_aside(self, session):
        _seed(session)
        _corrupt_month(session, SPREAD.id, end_month=0)

        loaded = SnapshotSelector(session).load(ORG_ID, [JUN])
        assert [u.id for u in loaded.unreadable_allocations] == [SPREAD.id]
        assert SPREAD.id not in {a.id for a in loaded.allocations}

    def test_bad_row_logged(self, session, captured_logs):
        _seed(session)
        _corrupt_month(session, EXACT.id, period_month=13)

        SnapshotSelector(session).load(ORG_ID, [JUN])

        (record,) = [r for r in captured_logs() if r["message"] == "allocation_row_unreadable"]
        assert record["level"] == "WARNING"
        assert record["allocation_id"] == str(EXACT.id)

    def test_clean_load_has_none(self, session):
        _seed(session)
        assert SnapshotSelector(session).load(ORG_ID, [JUN]).unreadable_allocations == ()
