"""
Module: consolidation_kernel.models.adjustment
Responsibility: ORM rows for the three kinds of manual consolidation
    adjustment: allocations (inter-entity or reclass), pro forma
    adjustments, and consolidation eliminations.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.

Invariants enforced:
    - allocation_adjustments stores both allocation kinds in one table;
      ``destination_master_account_id`` is NULL for an inter-entity
      allocation and set for a reclass.  ``to_dto()`` returns the matching
      frozen DTO type.
    - Schedule columns required by the schedule type are NOT NULL and
      month columns lie in 1..12 (CHECK constraints), so every row written
      through the ORM converts to a Schedule.
    - Elimination status is one of draft / posted / reversed.

Failure modes:
    - IntegrityError when a CHECK constraint rejects a row.  Services
      validate before flushing so this only fires on direct writes.

Audit relevance:
    Excluded adjustments and draft/reversed eliminations stay in storage
    and remain visible.  Posting and reversal timestamps and actors are
    recorded on the elimination row.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from consolidation_kernel.db.base import TrackedBase, UUIDString
from consolidation_kernel.domain.periods import Period
from consolidation_kernel.domain.snapshot import (
    Allocation,
    Elimination,
    EliminationStatus,
    EliminationType,
    ExactSchedule,
    InterEntityAllocation,
    ProFormaAdjustment,
    ReclassAdjustment,
    RepeatingSchedule,
    Schedule,
    ScheduleType,
    SpreadSchedule,
    schedule_type_of,
)


def _schedule_columns(schedule: Schedule) -> dict[str, Any]:
    """Flatten a Schedule into allocation_adjustments column values."""
    columns: dict[str, Any] = {
        "schedule_type": schedule_type_of(schedule).value,
        "period_year": None,
        "period_month": None,
        "is_repeating": False,
        "repeat_end_year": None,
        "repeat_end_month": None,
        "start_year": None,
        "start_month": None,
        "end_year": None,
        "end_month": None,
    }
    match schedule:
        case ExactSchedule(period=period):
            columns.update(period_year=period.year, period_month=period.month)
        case RepeatingSchedule(start=start, end=end):
            columns.update(
                period_year=start.year,
                period_month=start.month,
                is_repeating=True,
                repeat_end_year=end.year,
                repeat_end_month=end.month,
            )
        case SpreadSchedule(start=start, end=end):
            columns.update(
                start_year=start.year,
                start_month=start.month,
                end_year=end.year,
                end_month=end.month,
            )
    return columns


class AllocationAdjustmentModel(TrackedBase):
    """
    A scheduled allocation between entities or between master accounts.

    Guarantees:
        - Inter-entity rows have destination_master_account_id NULL.
        - Reclass rows have source_entity_id == destination_entity_id.
    """

    __tablename__ = "allocation_adjustments"

    __table_args__ = (
        CheckConstraint(
            "schedule_type IN ('single_month', 'monthly_spread')",
            name="ck_allocation_schedule_type",
        ),
        CheckConstraint(
            "schedule_type != 'single_month' "
            "OR (period_year IS NOT NULL AND period_month IS NOT NULL)",
            name="ck_allocation_single_month_fields",
        ),
        CheckConstraint(
            "NOT is_repeating "
            "OR (repeat_end_year IS NOT NULL AND repeat_end_month IS NOT NULL)",
            name="ck_allocation_repeat_fields",
        ),
        CheckConstraint(
            "schedule_type != 'monthly_spread' OR (start_year IS NOT NULL "
            "AND start_month IS NOT NULL AND end_year IS NOT NULL AND end_month IS NOT NULL)",
            name="ck_allocation_spread_fields",
        ),
        CheckConstraint("period_month BETWEEN 1 AND 12", name="ck_allocation_period_month"),
        CheckConstraint("repeat_end_month BETWEEN 1 AND 12", name="ck_allocation_repeat_end_month"),
        CheckConstraint("start_month BETWEEN 1 AND 12", name="ck_allocation_start_month"),
        CheckConstraint("end_month BETWEEN 1 AND 12", name="ck_allocation_end_month"),
        Index("idx_allocation_org", "organization_id"),
    )

    organization_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    source_entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    destination_entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    master_account_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    destination_master_account_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), nullable=True,
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    is_excluded: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    schedule_type: Mapped[str] = mapped_column(String(20), nullable=False)
    period_year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    period_month: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_repeating: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    repeat_end_year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    repeat_end_month: Mapped[int | None] = mapped_column(Integer, nullable=True)
    start_year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    start_month: Mapped[int | None] = mapped_column(Integer, nullable=True)
    end_year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    end_month: Mapped[int | None] = mapped_column(Integer, nullable=True)

    @property
    def is_reclass(self) -> bool:
        return self.destination_master_account_id is not None

    def schedule(self) -> Schedule:
        if self.schedule_type == ScheduleType.MONTHLY_SPREAD.value:
            return SpreadSchedule(
                start=Period(self.start_year, self.start_month),
                end=Period(self.end_year, self.end_month),
            )
        start = Period(self.period_year, self.period_month)
        if self.is_repeating:
            return RepeatingSchedule(
                start=start,
                end=Period(self.repeat_end_year, self.repeat_end_month),
            )
        return ExactSchedule(period=start)

    def to_dto(self) -> Allocation:
        if self.destination_master_account_id is not None:
            return ReclassAdjustment(
                id=self.id,
                entity_id=self.source_entity_id,
                master_account_id=self.master_account_id,
                destination_master_account_id=self.destination_master_account_id,
                amount=self.amount,
                schedule=self.schedule(),
                description=self.description,
                is_excluded=self.is_excluded,
            )
        return InterEntityAllocation(
            id=self.id,
            source_entity_id=self.source_entity_id,
            destination_entity_id=self.destination_entity_id,
            master_account_id=self.master_account_id,
            amount=self.amount,
            schedule=self.schedule(),
            description=self.description,
            is_excluded=self.is_excluded,
        )

    def apply_dto(self, dto: Allocation) -> None:
        """Copy every business field from ``dto`` onto this row."""
        match dto:
            case ReclassAdjustment():
                self.source_entity_id = dto.entity_id
                self.destination_entity_id = dto.entity_id
                self.destination_master_account_id = dto.destination_master_account_id
            case InterEntityAllocation():
                self.source_entity_id = dto.source_entity_id
                self.destination_entity_id = dto.destination_entity_id
                self.destination_master_account_id = None
        self.master_account_id = dto.master_account_id
        self.amount = dto.amount
        self.description = dto.description
        self.is_excluded = dto.is_excluded
        for name, value in _schedule_columns(dto.schedule).items():
            setattr(self, name, value)

    @classmethod
    def from_dto(
        cls, dto: Allocation, organization_id: UUID, created_by_id: UUID,
    ) -> "AllocationAdjustmentModel":
        row = cls(id=dto.id, organization_id=organization_id, created_by_id=created_by_id)
        row.apply_dto(dto)
        return row

    def __repr__(self) -> str:
        kind = "reclass" if self.is_reclass else "allocation"
        return f"<AllocationAdjustmentModel {kind} {self.amount} [{self.schedule_type}]>"


class ProFormaAdjustmentModel(TrackedBase):
    """Single-entity, single-month pro forma delta with optional offset."""

    __tablename__ = "pro_forma_adjustments"

    __table_args__ = (
        CheckConstraint("period_month BETWEEN 1 AND 12", name="ck_pro_forma_month"),
        Index("idx_pro_forma_org_period", "organization_id", "period_year", "period_month"),
    )

    organization_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    master_account_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    offset_master_account_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    period_year: Mapped[int] = mapped_column(Integer, nullable=False)
    period_month: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    is_excluded: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    def to_dto(self) -> ProFormaAdjustment:
        return ProFormaAdjustment(
            id=self.id,
            entity_id=self.entity_id,
            master_account_id=self.master_account_id,
            period=Period(self.period_year, self.period_month),
            amount=self.amount,
            description=self.description,
            is_excluded=self.is_excluded,
            offset_master_account_id=self.offset_master_account_id,
        )

    def apply_dto(self, dto: ProFormaAdjustment) -> None:
        self.entity_id = dto.entity_id
        self.master_account_id = dto.master_account_id
        self.offset_master_account_id = dto.offset_master_account_id
        self.period_year = dto.period.year
        self.period_month = dto.period.month
        self.amount = dto.amount
        self.description = dto.description
        self.is_excluded = dto.is_excluded

    @classmethod
    def from_dto(
        cls, dto: ProFormaAdjustment, organization_id: UUID, created_by_id: UUID,
    ) -> "ProFormaAdjustmentModel":
        row = cls(id=dto.id, organization_id=organization_id, created_by_id=created_by_id)
        row.apply_dto(dto)
        return row


class EliminationModel(TrackedBase):
    """Consolidation-level debit/credit elimination entry."""

    __tablename__ = "consolidation_eliminations"

    __table_args__ = (
        CheckConstraint("period_month BETWEEN 1 AND 12", name="ck_elimination_month"),
        CheckConstraint(
            "status IN ('draft', 'posted', 'reversed')",
            name="ck_elimination_status",
        ),
        CheckConstraint("amount > 0", name="ck_elimination_amount_positive"),
        Index("idx_elimination_org_period", "organization_id", "period_year", "period_month"),
    )

    organization_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    debit_master_account_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    credit_master_account_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    period_year: Mapped[int] = mapped_column(Integer, nullable=False)
    period_month: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=EliminationStatus.DRAFT.value, nullable=False,
    )
    elimination_type: Mapped[str] = mapped_column(
        String(30), default=EliminationType.INTERCOMPANY.value, nullable=False,
    )
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    memo: Mapped[str | None] = mapped_column(Text, nullable=True)
    posted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    posted_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    reversed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reversed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def to_dto(self) -> Elimination:
        return Elimination(
            id=self.id,
            debit_master_account_id=self.debit_master_account_id,
            credit_master_account_id=self.credit_master_account_id,
            amount=self.amount,
            period=Period(self.period_year, self.period_month),
            status=EliminationStatus(self.status),
            elimination_type=EliminationType(self.elimination_type),
            description=self.description,
            memo=self.memo,
        )

    def apply_dto(self, dto: Elimination) -> None:
        """Copy the editable fields. Status changes go through the service."""
        self.debit_master_account_id = dto.debit_master_account_id
        self.credit_master_account_id = dto.credit_master_account_id
        self.amount = dto.amount
        self.period_year = dto.period.year
        self.period_month = dto.period.month
        self.elimination_type = dto.elimination_type.value
        self.description = dto.description
        self.memo = dto.memo

    @classmethod
    def from_dto(
        cls, dto: Elimination, organization_id: UUID, created_by_id: UUID,
    ) -> "EliminationModel":
        row = cls(
            id=dto.id,
            organization_id=organization_id,
            status=dto.status.value,
            created_by_id=created_by_id,
        )
        row.apply_dto(dto)
        return row

    def __repr__(self) -> str:
        return f"<EliminationModel {self.amount} {self.period_year}-{self.period_month:02d} [{self.status}]>"
