"""
Tests for AdjustmentService against SQLite.

Covers:
- Create, update, exclude/include and delete for allocations and pro formas
- Elimination lifecycle: draft -> posted -> reversed, with audit stamps
- Rejected transitions, unknown ids and validation failures
- Rollback leaves nothing behind
- Exclusion flows through to consolidated figures
"""

from datetime import UTC, datetime
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from consolidation_kernel.domain.snapshot import (
    Elimination,
    EliminationStatus,
    ExactSchedule,
    InterEntityAllocation,
    ProFormaAdjustment,
    ReclassAdjustment,
    SpreadSchedule,
)
from consolidation_kernel.exceptions import (
    AdjustmentNotFoundError,
    EliminationNotFoundError,
    InterEntityAllocationError,
    InvalidRequestError,
    InvalidStatusTransitionError,
    ReclassAccountError,
)
from consolidation_kernel.models.adjustment import (
    AllocationAdjustmentModel,
    EliminationModel,
    ProFormaAdjustmentModel,
)
from consolidation_modules.adjustments import ALLOWED_TRANSITIONS, AdjustmentService
from consolidation_modules.reporting import ConsolidationService
from consolidation_modules.reporting.requests import TrialBalanceRequest
from tests.factories import (
    ACTOR_ID,
    HQ,
    IC_PAYABLE,
    IC_RECEIVABLE,
    JAN,
    JUN,
    MAR,
    ORG_ID,
    RECEIVABLES,
    RENT,
    SALES,
    SUPPLIES,
    SUPPLIES_VEHICLE,
    WEST,
    activity,
    make_snapshot,
    seed_database,
    uid,
)

EDITOR_ID = uid("actor/editor")


@pytest.fixture
def service(session, deterministic_clock):
    return AdjustmentService(session, deterministic_clock)


def _rent_share(**overrides) -> InterEntityAllocation:
    fields = dict(
        id=uid("allocation/rent-share"),
        source_entity_id=HQ.id,
        destination_entity_id=WEST.id,
        master_account_id=RENT.id,
        amount=Decimal("600"),
        schedule=SpreadSchedule(JAN, JUN),
        description="Shared rent",
    )
    fields.update(overrides)
    return InterEntityAllocation(**fields)


def _accrual(**overrides) -> ProFormaAdjustment:
    fields = dict(
        id=uid("pro-forma/accrual"),
        entity_id=WEST.id,
        master_account_id=SALES.id,
        period=JUN,
        amount=Decimal("1200"),
        description="Accrued revenue",
        offset_master_account_id=RECEIVABLES.id,
    )
    fields.update(overrides)
    return ProFormaAdjustment(**fields)


def _intercompany(**overrides) -> Elimination:
    fields = dict(
        id=uid("elimination/intercompany"),
        debit_master_account_id=IC_PAYABLE.id,
        credit_master_account_id=IC_RECEIVABLE.id,
        amount=Decimal("2000"),
        period=JUN,
        description="Intercompany balance",
    )
    fields.update(overrides)
    return Elimination(**fields)


def _count(session, model) -> int:
    return session.scalar(select(func.count()).select_from(model))


class TestAllocations:

    def test_create_round_trips(self, service, session):
        created = service.create_allocation(_rent_share(), ORG_ID, ACTOR_ID)

        assert created.id == _rent_share().id
        assert created.schedule == SpreadSchedule(JAN, JUN)
        assert created.amount == Decimal("600")
        row = session.get(AllocationAdjustmentModel, created.id)
        assert row.created_by_id == ACTOR_ID
        assert row.organization_id == ORG_ID

    def test_create_reclass(self, service):
        reclass = ReclassAdjustment(
            id=uid("allocation/fuel"),
            entity_id=HQ.id,
            master_account_id=SUPPLIES.id,
            destination_master_account_id=SUPPLIES_VEHICLE.id,
            amount=Decimal("75"),
            schedule=ExactSchedule(MAR),
        )
        created = service.create_allocation(reclass, ORG_ID, ACTOR_ID)
        assert isinstance(created, ReclassAdjustment)
        assert created.destination_master_account_id == SUPPLIES_VEHICLE.id

    def test_invalid_allocation_not_written(self, service, session):
        with pytest.raises(InterEntityAllocationError):
            service.create_allocation(_rent_share(destination_entity_id=HQ.id), ORG_ID, ACTOR_ID)
        assert _count(session, AllocationAdjustmentModel) == 0

    def test_reclass_without_destination_account_not_written(self, service, session):
        reclass = ReclassAdjustment(
            id=uid("allocation/fuel"),
            entity_id=HQ.id,
            master_account_id=SUPPLIES.id,
            destination_master_account_id=None,
            amount=Decimal("75"),
            schedule=ExactSchedule(MAR),
        )
        with pytest.raises(ReclassAccountError):
            service.create_allocation(reclass, ORG_ID, ACTOR_ID)
        assert _count(session, AllocationAdjustmentModel) == 0

    def test_update_to_reclass_without_destination_rejected(self, service, session):
        service.create_allocation(_rent_share(), ORG_ID, ACTOR_ID)
        reclass = ReclassAdjustment(
            id=_rent_share().id,
            entity_id=HQ.id,
            master_account_id=RENT.id,
            destination_master_account_id=None,
            amount=Decimal("600"),
            schedule=SpreadSchedule(JAN, JUN),
        )
        with pytest.raises(ReclassAccountError):
            service.update_allocation(reclass, EDITOR_ID)
        row = session.get(AllocationAdjustmentModel, reclass.id)
        assert row.destination_entity_id == WEST.id
        assert row.destination_master_account_id is None

    def test_update(self, service, session):
        service.create_allocation(_rent_share(), ORG_ID, ACTOR_ID)
        updated = service.update_allocation(
            _rent_share(amount=Decimal("900"), schedule=ExactSchedule(JUN)), EDITOR_ID,
        )
        assert updated.amount == Decimal("900")
        assert updated.schedule == ExactSchedule(JUN)
        assert session.get(AllocationAdjustmentModel, updated.id).updated_by_id == EDITOR_ID

    def test_exclude_and_include(self, service):
        service.create_allocation(_rent_share(), ORG_ID, ACTOR_ID)
        assert service.set_allocation_excluded(_rent_share().id, True, EDITOR_ID).is_excluded
        assert not service.set_allocation_excluded(_rent_share().id, False, EDITOR_ID).is_excluded

    def test_delete(self, service, session):
        service.create_allocation(_rent_share(), ORG_ID, ACTOR_ID)
        service.delete_allocation(_rent_share().id, EDITOR_ID)
        assert _count(session, AllocationAdjustmentModel) == 0

    def test_unknown_id(self, service):
        with pytest.raises(AdjustmentNotFoundError) as exc_info:
            service.update_allocation(_rent_share(), EDITOR_ID)
        assert exc_info.value.kind == "allocation"

    def test_logs_commit(self, service, captured_logs):
        service.create_allocation(_rent_share(), ORG_ID, ACTOR_ID)
        events = [r["message"] for r in captured_logs()]
        assert "allocation_create_started" in events
        assert "allocation_committed" in events


class TestProForma:

    def test_create_and_update(self, service):
        created = service.create_pro_forma(_accrual(), ORG_ID, ACTOR_ID)
        assert created.offset_master_account_id == RECEIVABLES.id

        updated = service.update_pro_forma(_accrual(amount=Decimal("-50"), offset_master_account_id=None), EDITOR_ID)
        assert updated.amount == Decimal("-50")
        assert updated.offset_master_account_id is None

    def test_offset_equal_to_master_rejected(self, service, session):
        with pytest.raises(InvalidRequestError):
            service.create_pro_forma(_accrual(offset_master_account_id=SALES.id), ORG_ID, ACTOR_ID)
        assert _count(session, ProFormaAdjustmentModel) == 0

    def test_exclude_and_delete(self, service, session):
        service.create_pro_forma(_accrual(), ORG_ID, ACTOR_ID)
        assert service.set_pro_forma_excluded(_accrual().id, True, EDITOR_ID).is_excluded
        service.delete_pro_forma(_accrual().id, EDITOR_ID)
        assert _count(session, ProFormaAdjustmentModel) == 0

    def test_unknown_id(self, service):
        with pytest.raises(AdjustmentNotFoundError) as exc_info:
            service.delete_pro_forma(uid("pro-forma/missing"), EDITOR_ID)
        assert exc_info.value.kind == "pro_forma"


class TestEliminationLifecycle:

    def test_created_as_draft(self, service, session):
        created = service.create_elimination(_intercompany(), ORG_ID, ACTOR_ID)
        assert created.status == EliminationStatus.DRAFT
        assert session.get(EliminationModel, created.id).posted_at is None

    def test_created_as_posted_is_stamped(self, service, session):
        created = service.create_elimination(
            _intercompany(status=EliminationStatus.POSTED), ORG_ID, ACTOR_ID,
        )
        row = session.get(EliminationModel, created.id)
        assert created.status == EliminationStatus.POSTED
        assert row.posted_by_id == ACTOR_ID
        assert row.posted_at is not None

    def test_post_then_reverse(self, service, session, deterministic_clock):
        service.create_elimination(_intercompany(), ORG_ID, ACTOR_ID)
        elimination_id = _intercompany().id

        deterministic_clock.set_time(datetime(2025, 7, 5, 9, 30, tzinfo=UTC))
        posted = service.post_elimination(elimination_id, EDITOR_ID)
        assert posted.status == EliminationStatus.POSTED

        reversed_ = service.reverse_elimination(elimination_id, ACTOR_ID)
        assert reversed_.status == EliminationStatus.REVERSED

        row = session.get(EliminationModel, elimination_id)
        assert row.posted_by_id == EDITOR_ID
        assert row.reversed_by_id == ACTOR_ID
        assert row.posted_at.replace(tzinfo=None) == datetime(2025, 7, 5, 9, 30)

    @pytest.mark.parametrize("path", [
        (EliminationStatus.REVERSED,),
        (EliminationStatus.POSTED, EliminationStatus.POSTED),
        (EliminationStatus.POSTED, EliminationStatus.REVERSED, EliminationStatus.POSTED),
        (EliminationStatus.POSTED, EliminationStatus.DRAFT),
    ])
    def test_rejected_transitions(self, service, path):
        service.create_elimination(_intercompany(), ORG_ID, ACTOR_ID)
        elimination_id = _intercompany().id
        *allowed, rejected = path
        for status in allowed:
            service.set_elimination_status(elimination_id, status, EDITOR_ID)
        with pytest.raises(InvalidStatusTransitionError) as exc_info:
            service.set_elimination_status(elimination_id, rejected, EDITOR_ID)
        assert exc_info.value.to_status == rejected.value

    def test_allowed_transitions(self):
        assert ALLOWED_TRANSITIONS == {
            (EliminationStatus.DRAFT, EliminationStatus.POSTED),
            (EliminationStatus.POSTED, EliminationStatus.REVERSED),
        }

    def test_rejection_logged(self, service, captured_logs):
        service.create_elimination(_intercompany(), ORG_ID, ACTOR_ID)
        with pytest.raises(InvalidStatusTransitionError):
            service.reverse_elimination(_intercompany().id, EDITOR_ID)
        events = [r for r in captured_logs() if r["message"] == "elimination_transition_rejected"]
        assert events[0]["from_status"] == "draft"
        assert events[0]["level"] == "WARNING"

    def test_update_keeps_status(self, service):
        service.create_elimination(_intercompany(status=EliminationStatus.POSTED), ORG_ID, ACTOR_ID)
        updated = service.update_elimination(
            _intercompany(amount=Decimal("1500"), status=EliminationStatus.DRAFT), EDITOR_ID,
        )
        assert updated.amount == Decimal("1500")
        assert updated.status == EliminationStatus.POSTED

    def test_same_accounts_rejected(self, service, session):
        with pytest.raises(InvalidRequestError):
            service.create_elimination(
                _intercompany(credit_master_account_id=IC_PAYABLE.id), ORG_ID, ACTOR_ID,
            )
        assert _count(session, EliminationModel) == 0

    def test_unknown_id(self, service):
        with pytest.raises(EliminationNotFoundError):
            service.post_elimination(uid("elimination/missing"), EDITOR_ID)

    def test_delete(self, service, session):
        service.create_elimination(_intercompany(), ORG_ID, ACTOR_ID)
        service.delete_elimination(_intercompany().id, EDITOR_ID)
        assert _count(session, EliminationModel) == 0


class TestEffectOnReports:
    """Mutations are visible to the next consolidated read."""

    def test_exclusion_and_posting(self, service, session, deterministic_clock):
        seed_database(session, make_snapshot(balances=[
            activity(HQ, RENT, JUN, "1000"),
            activity(HQ, IC_RECEIVABLE, JUN, "2000"),
            activity(WEST, IC_PAYABLE, JUN, "2000"),
        ]))
        reports = ConsolidationService(session, deterministic_clock)
        request = TrialBalanceRequest(organization_id=ORG_ID, period=JUN)

        service.create_allocation(_rent_share(), ORG_ID, ACTOR_ID)
        rows = {r.entity_code: r.adjusted_balance for r in reports.trial_balance(request).account(RENT.id).entity_breakdown}
        assert rows == {"HQ": Decimal("900"), "WEST": Decimal("100")}

        service.set_allocation_excluded(_rent_share().id, True, EDITOR_ID)
        rows = {r.entity_code: r.adjusted_balance for r in reports.trial_balance(request).account(RENT.id).entity_breakdown}
        assert rows == {"HQ": Decimal("1000")}

        service.create_elimination(_intercompany(), ORG_ID, ACTOR_ID)
        assert reports.trial_balance(request).account(IC_RECEIVABLE.id).adjusted_balance == Decimal("2000")

        service.post_elimination(_intercompany().id, EDITOR_ID)
        assert reports.trial_balance(request).account(IC_RECEIVABLE.id).adjusted_balance == Decimal("0")

        service.reverse_elimination(_intercompany().id, EDITOR_ID)
        assert reports.trial_balance(request).account(IC_RECEIVABLE.id).adjusted_balance == Decimal("2000")
