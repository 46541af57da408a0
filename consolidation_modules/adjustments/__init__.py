"""
Consolidation Adjustments Module (``consolidation_modules.adjustments``).

Responsibility
--------------
The write side of consolidation: allocations between entities, reclasses
between master accounts, pro forma adjustments, and the elimination
lifecycle (draft -> posted -> reversed).

Architecture position
---------------------
**Modules layer** -- ``validation`` holds the pure creation rules;
``AdjustmentService`` owns one transaction per mutation.

Invariants enforced
-------------------
* Malformed schedules, amounts and account pairs are rejected before
  persistence, never coerced.
* Elimination status transitions are limited to draft -> posted and
  posted -> reversed.
"""

from consolidation_modules.adjustments.service import ALLOWED_TRANSITIONS, AdjustmentService
from consolidation_modules.adjustments.validation import (
    allocation_from_fields,
    schedule_from_fields,
    validate_allocation,
    validate_amount,
    validate_elimination,
    validate_pro_forma,
    validate_schedule,
)

__all__ = [
    "ALLOWED_TRANSITIONS",
    "AdjustmentService",
    "allocation_from_fields",
    "schedule_from_fields",
    "validate_allocation",
    "validate_amount",
    "validate_elimination",
    "validate_pro_forma",
    "validate_schedule",
]
