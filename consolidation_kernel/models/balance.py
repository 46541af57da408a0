"""
Module: consolidation_kernel.models.balance
Responsibility: ORM rows for externally supplied ledger balances and budget
    amounts, one row per entity account per month.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.

Invariants enforced:
    - One balance row per entity account per month (uq_gl_balance_period).
    - One budget row per entity account per month (uq_budget_period).
    - Months are 1..12 (CHECK constraints).

Audit relevance:
    Loaded by upstream ETL and never written by the consolidation core.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, Index, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from consolidation_kernel.db.base import TrackedBase, UUIDString
from consolidation_kernel.domain.periods import Period
from consolidation_kernel.domain.snapshot import BudgetAmount, RawBalance


class GLBalanceModel(TrackedBase):
    """Debit and credit totals of one entity account for one month."""

    __tablename__ = "gl_balances"

    __table_args__ = (
        UniqueConstraint(
            "account_id", "period_year", "period_month",
            name="uq_gl_balance_period",
        ),
        CheckConstraint("period_month BETWEEN 1 AND 12", name="ck_gl_balance_month"),
        Index("idx_gl_balance_entity_period", "entity_id", "period_year", "period_month"),
    )

    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    account_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    period_year: Mapped[int] = mapped_column(Integer, nullable=False)
    period_month: Mapped[int] = mapped_column(Integer, nullable=False)
    debit_total: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    credit_total: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)

    def to_dto(self) -> RawBalance:
        return RawBalance(
            entity_id=self.entity_id,
            account_id=self.account_id,
            period=Period(self.period_year, self.period_month),
            debit_total=self.debit_total,
            credit_total=self.credit_total,
        )


class BudgetAmountModel(TrackedBase):
    """Budgeted natural-sign amount of one entity account for one month."""

    __tablename__ = "budget_amounts"

    __table_args__ = (
        UniqueConstraint(
            "account_id", "period_year", "period_month",
            name="uq_budget_period",
        ),
        CheckConstraint("period_month BETWEEN 1 AND 12", name="ck_budget_month"),
        Index("idx_budget_entity_period", "entity_id", "period_year", "period_month"),
    )

    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    account_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    period_year: Mapped[int] = mapped_column(Integer, nullable=False)
    period_month: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)

    def to_dto(self) -> BudgetAmount:
        return BudgetAmount(
            entity_id=self.entity_id,
            account_id=self.account_id,
            period=Period(self.period_year, self.period_month),
            amount=self.amount,
        )
