"""
Module: consolidation_kernel.models.account
Responsibility: ORM rows for the organization's structure: entities,
    reporting entity groups, the master chart of accounts, entity-level
    accounts, and the mapping from entity accounts onto master accounts.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.

Invariants enforced:
    - An entity account maps to at most one master account
      (uq_mapping_entity_account).
    - Master account classification and normal balance are stored as the
      enum values of AccountClassification / NormalBalance.

Failure modes:
    - IntegrityError on a second mapping for the same entity account.

Audit relevance:
    These tables are maintained by admin tooling.  The consolidation core
    reads them; mapping rows that point at a missing or inactive master
    account surface as "orphaned" in the unmapped report instead of being
    dropped.
"""

from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from consolidation_kernel.db.base import TrackedBase, UUIDString
from consolidation_kernel.domain.snapshot import (
    AccountClassification,
    AccountMappingRecord,
    EntityAccountInfo,
    EntityInfo,
    MasterAccountInfo,
    NormalBalance,
    ReportingEntityInfo,
)


class EntityModel(TrackedBase):
    """A legal entity whose ledger is consolidated."""

    __tablename__ = "entities"

    __table_args__ = (
        UniqueConstraint("organization_id", "code", name="uq_entity_org_code"),
        Index("idx_entity_org", "organization_id"),
    )

    organization_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    code: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def to_dto(self) -> EntityInfo:
        return EntityInfo(id=self.id, code=self.code, name=self.name, is_active=self.is_active)

    def __repr__(self) -> str:
        return f"<EntityModel {self.code}: {self.name}>"


class ReportingEntityModel(TrackedBase):
    """A named group of entities reported together."""

    __tablename__ = "reporting_entities"

    __table_args__ = (Index("idx_reporting_entity_org", "organization_id"),)

    organization_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    members: Mapped[list["ReportingEntityMemberModel"]] = relationship(
        "ReportingEntityMemberModel",
        back_populates="reporting_entity",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def to_dto(self) -> ReportingEntityInfo:
        return ReportingEntityInfo(
            id=self.id,
            name=self.name,
            member_ids=frozenset(m.entity_id for m in self.members),
        )


class ReportingEntityMemberModel(TrackedBase):
    __tablename__ = "reporting_entity_members"

    __table_args__ = (
        UniqueConstraint("reporting_entity_id", "entity_id", name="uq_reporting_entity_member"),
    )

    reporting_entity_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("reporting_entities.id"), nullable=False,
    )
    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    reporting_entity: Mapped[ReportingEntityModel] = relationship(
        "ReportingEntityModel", back_populates="members",
    )


class MasterAccountModel(TrackedBase):
    """One node of the consolidated chart of accounts."""

    __tablename__ = "master_accounts"

    __table_args__ = (
        UniqueConstraint("organization_id", "account_number", name="uq_master_account_number"),
        Index("idx_master_account_org", "organization_id"),
    )

    organization_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    account_number: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    classification: Mapped[str] = mapped_column(String(20), nullable=False)
    account_type: Mapped[str] = mapped_column(String(50), nullable=False)
    normal_balance: Mapped[str] = mapped_column(String(10), nullable=False)
    display_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def to_dto(self) -> MasterAccountInfo:
        return MasterAccountInfo(
            id=self.id,
            number=self.account_number,
            name=self.name,
            classification=AccountClassification(self.classification),
            account_type=self.account_type,
            normal_balance=NormalBalance(self.normal_balance),
            is_active=self.is_active,
            display_order=self.display_order,
        )

    def __repr__(self) -> str:
        return f"<MasterAccountModel {self.account_number}: {self.name}>"


class EntityAccountModel(TrackedBase):
    """A ledger account in one entity's own chart of accounts."""

    __tablename__ = "entity_accounts"

    __table_args__ = (Index("idx_entity_account_entity", "entity_id"),)

    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    account_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    classification: Mapped[str | None] = mapped_column(String(50), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def to_dto(self) -> EntityAccountInfo:
        return EntityAccountInfo(
            id=self.id,
            entity_id=self.entity_id,
            name=self.name,
            number=self.account_number,
            classification=self.classification,
            is_active=self.is_active,
        )


class MasterAccountMappingModel(TrackedBase):
    """(entity, entity account) -> master account."""

    __tablename__ = "master_account_mappings"

    __table_args__ = (
        UniqueConstraint("entity_id", "entity_account_id", name="uq_mapping_entity_account"),
        Index("idx_mapping_master_account", "master_account_id"),
    )

    organization_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    entity_account_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    master_account_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    def to_dto(self) -> AccountMappingRecord:
        return AccountMappingRecord(
            entity_id=self.entity_id,
            entity_account_id=self.entity_account_id,
            master_account_id=self.master_account_id,
        )
