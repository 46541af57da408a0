"""
Module: consolidation_kernel.db.base
Responsibility: Declarative base classes for the ORM models of source rows
    and manual adjustments.  Fixes the UUID primary key convention, the
    column type map, and the audit columns shared by every table.
Architecture position: Kernel > DB.  Lowest import target of the kernel's
    persistence side.  Must not import models/, selectors/ or outer layers.

Invariants enforced:
    - Every row has a uuid4 primary key stored as String(36), so the same
      schema runs on PostgreSQL and on SQLite in tests.
    - Decimal columns are Numeric(38, 9).  Money is never a float column.
    - TrackedBase rows carry created/updated timestamps and actor ids.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """UUID stored as its 36-character string form."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return None

    def process_result_value(self, value, dialect):
        if value is not None:
            return UUID(value)
        return None


class Base(DeclarativeBase):
    """
    Declarative base for all consolidation tables.

    Guarantees:
        - id is a uuid4 UUID.
        - Decimal annotations map to Numeric(38, 9).
        - datetime annotations map to timezone-aware DateTime.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        UUID: UUIDString(),
    }

    id: Mapped[UUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class TrackedBase(Base):
    """
    Abstract base with audit timestamps and actor tracking.

    Contract:
        created_by_id is required on insert.  updated_at refreshes on every
        UPDATE; updated_by_id is set by the service performing the update.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    created_by_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    updated_by_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )
