"""
Adjustment Mutation Service (``consolidation_modules.adjustments.service``).

Responsibility
--------------
Create, update, delete and exclude/include allocation and pro forma
adjustments, and create, edit, post, reverse and delete eliminations.
Every input passes the rules in ``validation.py`` before it is written.

Architecture position
---------------------
**Modules layer** -- thin glue over the kernel ORM models.  Constructor:
``session`` + ``clock``.

Invariants enforced
-------------------
* Each public method owns the transaction boundary: ``commit`` on
  success, ``rollback`` and re-raise on any exception.
* Each mutation touches exactly one row; concurrent edits of the same
  row are last-writer-wins.
* Elimination status moves only draft -> posted and posted -> reversed.
* Excluded adjustments and reversed eliminations stay in storage.

Failure modes
-------------
* Validation failure  -> typed ``ValidationError``, nothing written.
* Unknown id  -> ``AdjustmentNotFoundError`` / ``EliminationNotFoundError``.
* Illegal status change  -> ``InvalidStatusTransitionError``.

Audit relevance
---------------
Structured log events at operation start and commit for every public
method, carrying the row id, amount and actor.  Posting and reversal
record their timestamp and actor on the elimination row.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from consolidation_kernel.domain.clock import Clock, SystemClock
from consolidation_kernel.domain.snapshot import (
    Allocation,
    Elimination,
    EliminationStatus,
    ProFormaAdjustment,
)
from consolidation_kernel.exceptions import (
    AdjustmentNotFoundError,
    EliminationNotFoundError,
    InvalidStatusTransitionError,
)
from consolidation_kernel.logging_config import LogContext, get_logger
from consolidation_kernel.models.adjustment import (
    AllocationAdjustmentModel,
    EliminationModel,
    ProFormaAdjustmentModel,
)
from consolidation_modules.adjustments.validation import (
    validate_allocation,
    validate_elimination,
    validate_pro_forma,
)

logger = get_logger("modules.adjustments.service")

ALLOWED_TRANSITIONS: frozenset[tuple[EliminationStatus, EliminationStatus]] = frozenset({
    (EliminationStatus.DRAFT, EliminationStatus.POSTED),
    (EliminationStatus.POSTED, EliminationStatus.REVERSED),
})


class AdjustmentService:
    """
    Mutation surface for manual consolidation adjustments.

    Contract
    --------
    * Methods take and return frozen kernel DTOs, never ORM rows.
    * ``actor_id`` is recorded as creator or last updater.

    Non-goals
    ---------
    * Does NOT check that the actor may edit the organization.
    * Does NOT verify that referenced entities and master accounts exist;
      a dangling reference simply contributes nowhere.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    # =========================================================================
    # Internal helpers
    # =========================================================================

    def _allocation_row(self, allocation_id: UUID) -> AllocationAdjustmentModel:
        row = self._session.get(AllocationAdjustmentModel, allocation_id)
        if row is None:
            raise AdjustmentNotFoundError(str(allocation_id), "allocation")
        return row

    def _pro_forma_row(self, pro_forma_id: UUID) -> ProFormaAdjustmentModel:
        row = self._session.get(ProFormaAdjustmentModel, pro_forma_id)
        if row is None:
            raise AdjustmentNotFoundError(str(pro_forma_id), "pro_forma")
        return row

    def _elimination_row(self, elimination_id: UUID) -> EliminationModel:
        row = self._session.get(EliminationModel, elimination_id)
        if row is None:
            raise EliminationNotFoundError(str(elimination_id))
        return row

    # =========================================================================
    # Allocations and reclasses
    # =========================================================================

    def create_allocation(
        self, allocation: Allocation, organization_id: UUID, actor_id: UUID,
    ) -> Allocation:
        """Validate and store a new inter-entity allocation or reclass."""
        with LogContext.bind(organization_id=organization_id, actor_id=actor_id):
            try:
                logger.info("allocation_create_started", extra={
                    "allocation_id": str(allocation.id),
                    "kind": type(allocation).__name__,
                    "amount": str(allocation.amount),
                })
                validate_allocation(allocation)
                row = AllocationAdjustmentModel.from_dto(allocation, organization_id, actor_id)
                self._session.add(row)
                self._session.flush()
                result = row.to_dto()
                self._session.commit()
                logger.info("allocation_committed", extra={"allocation_id": str(allocation.id)})
                return result
            except Exception:
                self._session.rollback()
                raise

    def update_allocation(self, allocation: Allocation, actor_id: UUID) -> Allocation:
        """Replace every business field of an existing allocation."""
        with LogContext.bind(actor_id=actor_id):
            try:
                logger.info("allocation_update_started", extra={
                    "allocation_id": str(allocation.id),
                    "amount": str(allocation.amount),
                })
                validate_allocation(allocation)
                row = self._allocation_row(allocation.id)
                row.apply_dto(allocation)
                row.updated_by_id = actor_id
                self._session.flush()
                result = row.to_dto()
                self._session.commit()
                logger.info("allocation_committed", extra={"allocation_id": str(allocation.id)})
                return result
            except Exception:
                self._session.rollback()
                raise

    def set_allocation_excluded(
        self, allocation_id: UUID, is_excluded: bool, actor_id: UUID,
    ) -> Allocation:
        """Exclude an allocation from every view, or include it again."""
        with LogContext.bind(actor_id=actor_id):
            try:
                row = self._allocation_row(allocation_id)
                row.is_excluded = is_excluded
                row.updated_by_id = actor_id
                self._session.flush()
                result = row.to_dto()
                self._session.commit()
                logger.info("allocation_exclusion_set", extra={
                    "allocation_id": str(allocation_id),
                    "is_excluded": is_excluded,
                })
                return result
            except Exception:
                self._session.rollback()
                raise

    def delete_allocation(self, allocation_id: UUID, actor_id: UUID) -> None:
        with LogContext.bind(actor_id=actor_id):
            try:
                row = self._allocation_row(allocation_id)
                self._session.delete(row)
                self._session.commit()
                logger.info("allocation_deleted", extra={"allocation_id": str(allocation_id)})
            except Exception:
                self._session.rollback()
                raise

    # =========================================================================
    # Pro forma adjustments
    # =========================================================================

    def create_pro_forma(
        self, pro_forma: ProFormaAdjustment, organization_id: UUID, actor_id: UUID,
    ) -> ProFormaAdjustment:
        with LogContext.bind(organization_id=organization_id, actor_id=actor_id):
            try:
                logger.info("pro_forma_create_started", extra={
                    "pro_forma_id": str(pro_forma.id),
                    "period": pro_forma.period.key,
                    "amount": str(pro_forma.amount),
                })
                validate_pro_forma(pro_forma)
                row = ProFormaAdjustmentModel.from_dto(pro_forma, organization_id, actor_id)
                self._session.add(row)
                self._session.flush()
                result = row.to_dto()
                self._session.commit()
                logger.info("pro_forma_committed", extra={"pro_forma_id": str(pro_forma.id)})
                return result
            except Exception:
                self._session.rollback()
                raise

    def update_pro_forma(self, pro_forma: ProFormaAdjustment, actor_id: UUID) -> ProFormaAdjustment:
        with LogContext.bind(actor_id=actor_id):
            try:
                logger.info("pro_forma_update_started", extra={
                    "pro_forma_id": str(pro_forma.id),
                    "amount": str(pro_forma.amount),
                })
                validate_pro_forma(pro_forma)
                row = self._pro_forma_row(pro_forma.id)
                row.apply_dto(pro_forma)
                row.updated_by_id = actor_id
                self._session.flush()
                result = row.to_dto()
                self._session.commit()
                logger.info("pro_forma_committed", extra={"pro_forma_id": str(pro_forma.id)})
                return result
            except Exception:
                self._session.rollback()
                raise

    def set_pro_forma_excluded(
        self, pro_forma_id: UUID, is_excluded: bool, actor_id: UUID,
    ) -> ProFormaAdjustment:
        with LogContext.bind(actor_id=actor_id):
            try:
                row = self._pro_forma_row(pro_forma_id)
                row.is_excluded = is_excluded
                row.updated_by_id = actor_id
                self._session.flush()
                result = row.to_dto()
                self._session.commit()
                logger.info("pro_forma_exclusion_set", extra={
                    "pro_forma_id": str(pro_forma_id),
                    "is_excluded": is_excluded,
                })
                return result
            except Exception:
                self._session.rollback()
                raise

    def delete_pro_forma(self, pro_forma_id: UUID, actor_id: UUID) -> None:
        with LogContext.bind(actor_id=actor_id):
            try:
                row = self._pro_forma_row(pro_forma_id)
                self._session.delete(row)
                self._session.commit()
                logger.info("pro_forma_deleted", extra={"pro_forma_id": str(pro_forma_id)})
            except Exception:
                self._session.rollback()
                raise

    # =========================================================================
    # Eliminations
    # =========================================================================

    def create_elimination(
        self, elimination: Elimination, organization_id: UUID, actor_id: UUID,
    ) -> Elimination:
        """Store a new elimination as draft, or posted when created posted."""
        with LogContext.bind(organization_id=organization_id, actor_id=actor_id):
            try:
                logger.info("elimination_create_started", extra={
                    "elimination_id": str(elimination.id),
                    "period": elimination.period.key,
                    "amount": str(elimination.amount),
                    "status": elimination.status.value,
                })
                validate_elimination(elimination)
                row = EliminationModel.from_dto(elimination, organization_id, actor_id)
                if elimination.status == EliminationStatus.POSTED:
                    row.posted_at = self._clock.now()
                    row.posted_by_id = actor_id
                self._session.add(row)
                self._session.flush()
                result = row.to_dto()
                self._session.commit()
                logger.info("elimination_committed", extra={"elimination_id": str(elimination.id)})
                return result
            except Exception:
                self._session.rollback()
                raise

    def update_elimination(self, elimination: Elimination, actor_id: UUID) -> Elimination:
        """Edit accounts, amount, period, type and text. Status is left unchanged."""
        with LogContext.bind(actor_id=actor_id):
            try:
                logger.info("elimination_update_started", extra={
                    "elimination_id": str(elimination.id),
                    "amount": str(elimination.amount),
                })
                row = self._elimination_row(elimination.id)
                validate_elimination(
                    Elimination(
                        id=elimination.id,
                        debit_master_account_id=elimination.debit_master_account_id,
                        credit_master_account_id=elimination.credit_master_account_id,
                        amount=elimination.amount,
                        period=elimination.period,
                        elimination_type=elimination.elimination_type,
                    )
                )
                row.apply_dto(elimination)
                row.updated_by_id = actor_id
                self._session.flush()
                result = row.to_dto()
                self._session.commit()
                logger.info("elimination_committed", extra={"elimination_id": str(elimination.id)})
                return result
            except Exception:
                self._session.rollback()
                raise

    def set_elimination_status(
        self, elimination_id: UUID, status: EliminationStatus, actor_id: UUID,
    ) -> Elimination:
        """
        Move an elimination along its lifecycle.

        Raises:
            InvalidStatusTransitionError: For anything other than
                draft -> posted or posted -> reversed.
        """
        with LogContext.bind(actor_id=actor_id):
            try:
                row = self._elimination_row(elimination_id)
                current = EliminationStatus(row.status)
                if (current, status) not in ALLOWED_TRANSITIONS:
                    logger.warning("elimination_transition_rejected", extra={
                        "elimination_id": str(elimination_id),
                        "from_status": current.value,
                        "to_status": status.value,
                    })
                    raise InvalidStatusTransitionError(str(elimination_id), current.value, status.value)

                now = self._clock.now()
                if status == EliminationStatus.POSTED:
                    row.posted_at = now
                    row.posted_by_id = actor_id
                else:
                    row.reversed_at = now
                    row.reversed_by_id = actor_id
                row.status = status.value
                row.updated_by_id = actor_id
                self._session.flush()
                result = row.to_dto()
                self._session.commit()
                logger.info("elimination_status_committed", extra={
                    "elimination_id": str(elimination_id),
                    "from_status": current.value,
                    "to_status": status.value,
                    "amount": str(row.amount),
                })
                return result
            except Exception:
                self._session.rollback()
                raise

    def post_elimination(self, elimination_id: UUID, actor_id: UUID) -> Elimination:
        return self.set_elimination_status(elimination_id, EliminationStatus.POSTED, actor_id)

    def reverse_elimination(self, elimination_id: UUID, actor_id: UUID) -> Elimination:
        return self.set_elimination_status(elimination_id, EliminationStatus.REVERSED, actor_id)

    def delete_elimination(self, elimination_id: UUID, actor_id: UUID) -> None:
        with LogContext.bind(actor_id=actor_id):
            try:
                row = self._elimination_row(elimination_id)
                self._session.delete(row)
                self._session.commit()
                logger.info("elimination_deleted", extra={"elimination_id": str(elimination_id)})
            except Exception:
                self._session.rollback()
                raise
