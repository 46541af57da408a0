"""
Module: consolidation_engines.mapping_index
Responsibility:
    Resolve an entity-scoped ledger account to its master account and
    expose the inverse (master account -> contributing entity accounts).
    Classifies every entity account as mapped, unmapped or orphaned.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - One entity account resolves to at most one master account.  A second,
      different master account for the same entity account raises
      DuplicateMappingError at build time.
    - A mapping whose master account is missing or inactive is "orphaned":
      ``resolve`` returns None for it, so it is excluded from consolidated
      totals exactly like an unmapped account and reported separately.
    - O(1) lookups after an O(n) build.

Failure modes:
    - DuplicateMappingError on conflicting mappings.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum
from uuid import UUID

from consolidation_engines.tracer import traced_engine
from consolidation_kernel.domain.snapshot import AccountMappingRecord, MasterAccountInfo
from consolidation_kernel.exceptions import DuplicateMappingError
from consolidation_kernel.logging_config import get_logger

logger = get_logger("engines.mapping_index")


class MappingStatus(str, Enum):
    MAPPED = "mapped"
    UNMAPPED = "unmapped"
    ORPHANED = "orphaned"


class AccountMappingIndex:
    """
    Bidirectional index over account mappings.

    Contract:
        Built once per request from the full mapping set and the master
        chart.  Read-only afterwards.
    """

    def __init__(
        self,
        forward: dict[tuple[UUID, UUID], UUID],
        active_master_ids: frozenset[UUID],
    ):
        self._forward = forward
        self._active_master_ids = active_master_ids
        inverse: dict[UUID, list[tuple[UUID, UUID]]] = {}
        for (entity_id, account_id), master_id in forward.items():
            inverse.setdefault(master_id, []).append((entity_id, account_id))
        self._inverse = {k: tuple(v) for k, v in inverse.items()}

    def __len__(self) -> int:
        return len(self._forward)

    def mapped_master_id(self, entity_id: UUID, entity_account_id: UUID) -> UUID | None:
        """Master account named by the mapping, whether or not it is usable."""
        return self._forward.get((entity_id, entity_account_id))

    def status(self, entity_id: UUID, entity_account_id: UUID) -> MappingStatus:
        master_id = self._forward.get((entity_id, entity_account_id))
        if master_id is None:
            return MappingStatus.UNMAPPED
        if master_id not in self._active_master_ids:
            return MappingStatus.ORPHANED
        return MappingStatus.MAPPED

    def resolve(self, entity_id: UUID, entity_account_id: UUID) -> UUID | None:
        """Active master account for an entity account, or None."""
        master_id = self._forward.get((entity_id, entity_account_id))
        if master_id is None or master_id not in self._active_master_ids:
            return None
        return master_id

    def members_of(self, master_account_id: UUID) -> tuple[tuple[UUID, UUID], ...]:
        """(entity_id, entity_account_id) pairs mapped onto a master account."""
        return self._inverse.get(master_account_id, ())


@traced_engine("mapping_index", "1.0")
def build_mapping_index(
    mappings: Iterable[AccountMappingRecord],
    master_accounts: Iterable[MasterAccountInfo],
) -> AccountMappingIndex:
    """Build the index, rejecting conflicting mappings."""
    forward: dict[tuple[UUID, UUID], UUID] = {}
    for mapping in mappings:
        key = (mapping.entity_id, mapping.entity_account_id)
        existing = forward.get(key)
        if existing is not None and existing != mapping.master_account_id:
            logger.error(
                "duplicate_account_mapping",
                extra={
                    "entity_id": str(mapping.entity_id),
                    "entity_account_id": str(mapping.entity_account_id),
                    "existing_master_account_id": str(existing),
                    "conflicting_master_account_id": str(mapping.master_account_id),
                },
            )
            raise DuplicateMappingError(
                str(mapping.entity_id),
                str(mapping.entity_account_id),
                str(existing),
                str(mapping.master_account_id),
            )
        forward[key] = mapping.master_account_id

    active = frozenset(a.id for a in master_accounts if a.is_active)
    return AccountMappingIndex(forward, active)
