"""
Shared builders for consolidation tests.

One small two-entity organization (HQ and WEST) with a fixed master chart
of accounts.  Every entity carries one ledger account per master account,
mapped one-to-one, plus an unmapped HQ "Suspense" account.  ``make_snapshot``
builds a ConsolidationSnapshot over that structure and ``seed_database``
writes the same rows through the ORM for selector and service tests.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import NAMESPACE_URL, UUID, uuid5

from consolidation_kernel.domain.periods import Period
from consolidation_kernel.domain.snapshot import (
    AccountClassification,
    AccountMappingRecord,
    BudgetAmount,
    ConsolidationSnapshot,
    EntityAccountInfo,
    EntityInfo,
    MasterAccountInfo,
    NormalBalance,
    RawBalance,
    ReportingEntityInfo,
)
from consolidation_kernel.models.account import (
    EntityAccountModel,
    EntityModel,
    MasterAccountMappingModel,
    MasterAccountModel,
    ReportingEntityMemberModel,
    ReportingEntityModel,
)
from consolidation_kernel.models.adjustment import (
    AllocationAdjustmentModel,
    EliminationModel,
    ProFormaAdjustmentModel,
)
from consolidation_kernel.models.balance import BudgetAmountModel, GLBalanceModel


def uid(name: str) -> UUID:
    """Stable UUID for a test fixture name."""
    return uuid5(NAMESPACE_URL, f"consolidation-tests/{name}")


ORG_ID = uid("organization")
ACTOR_ID = uid("actor")

JAN = Period(2025, 1)
FEB = Period(2025, 2)
MAR = Period(2025, 3)
APR = Period(2025, 4)
MAY = Period(2025, 5)
JUN = Period(2025, 6)

HQ = EntityInfo(id=uid("entity/HQ"), code="HQ", name="Headquarters")
WEST = EntityInfo(id=uid("entity/WEST"), code="WEST", name="West Region")
ENTITIES = (HQ, WEST)

_DEBIT_NORMAL = (AccountClassification.ASSET, AccountClassification.EXPENSE)


def master(
    number: str,
    name: str,
    classification: AccountClassification,
    account_type: str,
    display_order: int = 0,
    is_active: bool = True,
) -> MasterAccountInfo:
    normal = NormalBalance.DEBIT if classification in _DEBIT_NORMAL else NormalBalance.CREDIT
    return MasterAccountInfo(
        id=uid(f"master/{number}"),
        number=number,
        name=name,
        classification=classification,
        account_type=account_type,
        normal_balance=normal,
        is_active=is_active,
        display_order=display_order,
    )


CASH = master("1000", "Cash", AccountClassification.ASSET, "Bank", 10)
RECEIVABLES = master("1100", "Accounts Receivable", AccountClassification.ASSET, "Accounts Receivable", 20)
IC_RECEIVABLE = master("1200", "Intercompany Receivable", AccountClassification.ASSET, "Other Current Asset", 30)
EQUIPMENT = master("1500", "Equipment", AccountClassification.ASSET, "Fixed Asset", 40)
PAYABLES = master("2000", "Accounts Payable", AccountClassification.LIABILITY, "Accounts Payable", 50)
IC_PAYABLE = master("2100", "Intercompany Payable", AccountClassification.LIABILITY, "Other Current Liability", 60)
BANK_LOAN = master("2500", "Bank Loan", AccountClassification.LIABILITY, "Long Term Liability", 70)
RETAINED_EARNINGS = master("3000", "Retained Earnings", AccountClassification.EQUITY, "Equity", 80)
SALES = master("4000", "Sales", AccountClassification.REVENUE, "Income", 90)
COST_OF_SALES = master("4500", "Cost of Sales", AccountClassification.EXPENSE, "Cost of Goods Sold", 100)
SUPPLIES = master("5000", "Supplies", AccountClassification.EXPENSE, "Expense", 110)
SUPPLIES_VEHICLE = master("5010", "Supplies-Vehicle", AccountClassification.EXPENSE, "Expense", 120)
RENT = master("6000", "Rent", AccountClassification.EXPENSE, "Expense", 130)
INTEREST_EXPENSE = master("7000", "Interest Expense", AccountClassification.EXPENSE, "Expense", 140)
INTEREST_INCOME = master("8000", "Interest Income", AccountClassification.REVENUE, "Other Income", 150)

CHART = (
    CASH, RECEIVABLES, IC_RECEIVABLE, EQUIPMENT,
    PAYABLES, IC_PAYABLE, BANK_LOAN,
    RETAINED_EARNINGS,
    SALES, COST_OF_SALES, SUPPLIES, SUPPLIES_VEHICLE, RENT, INTEREST_EXPENSE, INTEREST_INCOME,
)

SUSPENSE = EntityAccountInfo(
    id=uid("account/HQ/suspense"),
    entity_id=HQ.id,
    name="Suspense",
    number="9999",
)


def account_id(entity: EntityInfo, account: MasterAccountInfo) -> UUID:
    """Id of the entity's ledger account mapped onto ``account``."""
    return uid(f"account/{entity.code}/{account.number}")


def entity_accounts(
    entities: tuple[EntityInfo, ...] = ENTITIES,
    chart: tuple[MasterAccountInfo, ...] = CHART,
) -> tuple[EntityAccountInfo, ...]:
    rows = [
        EntityAccountInfo(
            id=account_id(e, m),
            entity_id=e.id,
            name=m.name,
            number=m.number,
            classification=m.classification.value,
        )
        for e in entities
        for m in chart
    ]
    rows.append(SUSPENSE)
    return tuple(rows)


def mappings(
    entities: tuple[EntityInfo, ...] = ENTITIES,
    chart: tuple[MasterAccountInfo, ...] = CHART,
) -> tuple[AccountMappingRecord, ...]:
    return tuple(
        AccountMappingRecord(entity_id=e.id, entity_account_id=account_id(e, m), master_account_id=m.id)
        for e in entities
        for m in chart
    )


def balance(
    entity: EntityInfo,
    account: MasterAccountInfo,
    period: Period,
    debit: str | Decimal = "0",
    credit: str | Decimal = "0",
) -> RawBalance:
    return RawBalance(
        entity_id=entity.id,
        account_id=account_id(entity, account),
        period=period,
        debit_total=Decimal(debit),
        credit_total=Decimal(credit),
    )


def activity(
    entity: EntityInfo,
    account: MasterAccountInfo,
    period: Period,
    amount: str | Decimal,
) -> RawBalance:
    """A balance row whose natural-sign balance is ``amount``."""
    value = Decimal(amount)
    normal_side = max(value, Decimal("0"))
    other_side = max(-value, Decimal("0"))
    if account.normal_balance == NormalBalance.DEBIT:
        return balance(entity, account, period, debit=normal_side, credit=other_side)
    return balance(entity, account, period, debit=other_side, credit=normal_side)


def budget(
    entity: EntityInfo,
    account: MasterAccountInfo,
    period: Period,
    amount: str | Decimal,
) -> BudgetAmount:
    return BudgetAmount(
        entity_id=entity.id,
        account_id=account_id(entity, account),
        period=period,
        amount=Decimal(amount),
    )


def make_snapshot(
    *,
    balances=(),
    budgets=(),
    allocations=(),
    pro_formas=(),
    eliminations=(),
    entities: tuple[EntityInfo, ...] = ENTITIES,
    chart: tuple[MasterAccountInfo, ...] = CHART,
    extra_mappings=(),
    reporting_entities: tuple[ReportingEntityInfo, ...] = (),
) -> ConsolidationSnapshot:
    return ConsolidationSnapshot(
        organization_id=ORG_ID,
        entities=entities,
        master_accounts=chart,
        entity_accounts=entity_accounts(entities, chart),
        mappings=mappings(entities, chart) + tuple(extra_mappings),
        balances=tuple(balances),
        budgets=tuple(budgets),
        allocations=tuple(allocations),
        pro_formas=tuple(pro_formas),
        eliminations=tuple(eliminations),
        reporting_entities=reporting_entities,
    )


def seed_database(
    session,
    snapshot: ConsolidationSnapshot,
    organization_id: UUID = ORG_ID,
    actor_id: UUID = ACTOR_ID,
) -> None:
    """Write every row of ``snapshot`` through the ORM and commit."""
    for e in snapshot.entities:
        session.add(EntityModel(
            id=e.id, organization_id=organization_id, code=e.code, name=e.name,
            is_active=e.is_active, created_by_id=actor_id,
        ))
    for m in snapshot.master_accounts:
        session.add(MasterAccountModel(
            id=m.id, organization_id=organization_id, account_number=m.number, name=m.name,
            classification=m.classification.value, account_type=m.account_type,
            normal_balance=m.normal_balance.value, display_order=m.display_order,
            is_active=m.is_active, created_by_id=actor_id,
        ))
    for a in snapshot.entity_accounts:
        session.add(EntityAccountModel(
            id=a.id, entity_id=a.entity_id, name=a.name, account_number=a.number,
            classification=a.classification, is_active=a.is_active, created_by_id=actor_id,
        ))
    for mp in snapshot.mappings:
        session.add(MasterAccountMappingModel(
            organization_id=organization_id, entity_id=mp.entity_id,
            entity_account_id=mp.entity_account_id, master_account_id=mp.master_account_id,
            created_by_id=actor_id,
        ))
    for r in snapshot.reporting_entities:
        group = ReportingEntityModel(
            id=r.id, organization_id=organization_id, name=r.name, created_by_id=actor_id,
        )
        group.members = [
            ReportingEntityMemberModel(entity_id=member_id, created_by_id=actor_id)
            for member_id in sorted(r.member_ids, key=str)
        ]
        session.add(group)
    for b in snapshot.balances:
        session.add(GLBalanceModel(
            entity_id=b.entity_id, account_id=b.account_id,
            period_year=b.period.year, period_month=b.period.month,
            debit_total=b.debit_total, credit_total=b.credit_total, created_by_id=actor_id,
        ))
    for b in snapshot.budgets:
        session.add(BudgetAmountModel(
            entity_id=b.entity_id, account_id=b.account_id,
            period_year=b.period.year, period_month=b.period.month,
            amount=b.amount, created_by_id=actor_id,
        ))
    for a in snapshot.allocations:
        session.add(AllocationAdjustmentModel.from_dto(a, organization_id, actor_id))
    for p in snapshot.pro_formas:
        session.add(ProFormaAdjustmentModel.from_dto(p, organization_id, actor_id))
    for el in snapshot.eliminations:
        session.add(EliminationModel.from_dto(el, organization_id, actor_id))
    session.commit()
