"""
Typed Exception Hierarchy for the Consolidation Core.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the consolidation core (API handlers, batch refreshes, tests)
must be able to tell a malformed adjustment apart from a missing row or a
bad report request without parsing message strings.

Every error therefore has:
  1. A TYPED exception class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured DATA stored as attributes (not just a message string)

Example:
    try:
        service.create_allocation(draft, actor_id)
    except InvalidScheduleError as e:
        return {"error": e.code, "field": e.field, "message": str(e)}

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ConsolidationError (base)
    |
    +-- ValidationError
    |   +-- InvalidScheduleError
    |   +-- InvalidAmountError
    |   +-- ReclassAccountError
    |   +-- InterEntityAllocationError
    |   +-- InvalidRequestError
    |
    +-- MappingError
    |   +-- DuplicateMappingError
    |
    +-- NotFoundError
    |   +-- AdjustmentNotFoundError
    |   +-- EliminationNotFoundError
    |   +-- PeriodKeyNotFoundError
    |   +-- StatementNotFoundError
    |   +-- LineNotFoundError
    |
    +-- EliminationError
    |   +-- InvalidStatusTransitionError
    |
    +-- TemplateError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                         | When Raised
-------------|------------------------------|-----------------------------------
Validation   | INVALID_SCHEDULE             | End before start, repeat < 2 months
             | INVALID_AMOUNT               | Zero, non-numeric or non-finite
             | INVALID_RECLASS_ACCOUNT      | Reclass missing/duplicate account
             | INVALID_INTER_ENTITY         | Same entity without a reclass
             | INVALID_REQUEST              | Malformed report parameters
-------------|------------------------------|-----------------------------------
Mapping      | DUPLICATE_MAPPING            | Entity account mapped twice
-------------|------------------------------|-----------------------------------
Not found    | ADJUSTMENT_NOT_FOUND         | Adjustment ID doesn't exist
             | ELIMINATION_NOT_FOUND        | Elimination ID doesn't exist
             | PERIOD_KEY_NOT_FOUND         | Drill-down period outside range
             | STATEMENT_NOT_FOUND          | Unknown statement template id
             | LINE_NOT_FOUND               | Drill-down line can't be resolved
-------------|------------------------------|-----------------------------------
Elimination  | INVALID_STATUS_TRANSITION    | Not draft->posted or posted->reversed
-------------|------------------------------|-----------------------------------
Config       | INVALID_STATEMENT_TEMPLATE   | Broken YAML statement template

Data-integrity gaps (unmapped or orphaned balances) are NOT exceptions.
They are reported alongside the consolidated view so totals stay
interpretable against raw entity totals.
"""


class ConsolidationError(Exception):
    """
    Base exception for all consolidation core errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "CONSOLIDATION_ERROR"


# Validation exceptions (rejected before persistence)


class ValidationError(ConsolidationError):
    """Base exception for input rejected before it reaches storage."""

    code: str = "VALIDATION_ERROR"


class InvalidScheduleError(ValidationError):
    """Adjustment schedule is malformed."""

    code: str = "INVALID_SCHEDULE"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid schedule ({field}): {reason}")


class InvalidAmountError(ValidationError):
    """Amount is zero, non-numeric or not finite."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, value: object, reason: str):
        self.value = str(value)
        self.reason = reason
        super().__init__(f"Invalid amount {value!r}: {reason}")


class ReclassAccountError(ValidationError):
    """Reclass is missing its destination account or points at its source."""

    code: str = "INVALID_RECLASS_ACCOUNT"

    def __init__(self, master_account_id: str, destination_master_account_id: str | None):
        self.master_account_id = master_account_id
        self.destination_master_account_id = destination_master_account_id
        if destination_master_account_id is None:
            message = "Reclass requires a destination master account"
        else:
            message = (
                f"Reclass destination {destination_master_account_id} must differ "
                f"from source master account {master_account_id}"
            )
        super().__init__(message)


class InterEntityAllocationError(ValidationError):
    """Inter-entity allocation names the same entity on both sides."""

    code: str = "INVALID_INTER_ENTITY"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(
            f"Inter-entity allocation requires different source and destination "
            f"entities (got {entity_id} twice)"
        )


class InvalidRequestError(ValidationError):
    """Report request parameters are missing or malformed."""

    code: str = "INVALID_REQUEST"

    def __init__(self, parameter: str, reason: str):
        self.parameter = parameter
        self.reason = reason
        super().__init__(f"Invalid request parameter {parameter}: {reason}")


# Mapping exceptions


class MappingError(ConsolidationError):
    """Base exception for account mapping problems."""

    code: str = "MAPPING_ERROR"


class DuplicateMappingError(MappingError):
    """One entity account maps to more than one master account."""

    code: str = "DUPLICATE_MAPPING"

    def __init__(
        self,
        entity_id: str,
        entity_account_id: str,
        existing_master_account_id: str,
        conflicting_master_account_id: str,
    ):
        self.entity_id = entity_id
        self.entity_account_id = entity_account_id
        self.existing_master_account_id = existing_master_account_id
        self.conflicting_master_account_id = conflicting_master_account_id
        super().__init__(
            f"Entity account {entity_account_id} (entity {entity_id}) is mapped to "
            f"both {existing_master_account_id} and {conflicting_master_account_id}"
        )


# Lookup exceptions


class NotFoundError(ConsolidationError):
    """Base exception for missing records or references."""

    code: str = "NOT_FOUND"


class AdjustmentNotFoundError(NotFoundError):
    """Allocation or pro forma adjustment was not found."""

    code: str = "ADJUSTMENT_NOT_FOUND"

    def __init__(self, adjustment_id: str, kind: str):
        self.adjustment_id = adjustment_id
        self.kind = kind
        super().__init__(f"{kind} adjustment not found: {adjustment_id}")


class EliminationNotFoundError(NotFoundError):
    """Elimination entry was not found."""

    code: str = "ELIMINATION_NOT_FOUND"

    def __init__(self, elimination_id: str):
        self.elimination_id = elimination_id
        super().__init__(f"Elimination not found: {elimination_id}")


class PeriodKeyNotFoundError(NotFoundError):
    """Period key is not one of the buckets of the requested range."""

    code: str = "PERIOD_KEY_NOT_FOUND"

    def __init__(self, period_key: str):
        self.period_key = period_key
        super().__init__(f"Period key '{period_key}' not found in range")


class StatementNotFoundError(NotFoundError):
    """No statement template with the given id."""

    code: str = "STATEMENT_NOT_FOUND"

    def __init__(self, statement_id: str):
        self.statement_id = statement_id
        super().__init__(f"Unknown statement: {statement_id}")


class LineNotFoundError(NotFoundError):
    """Drill-down line id can't be resolved against the statement template."""

    code: str = "LINE_NOT_FOUND"

    def __init__(self, statement_id: str, line_id: str):
        self.statement_id = statement_id
        self.line_id = line_id
        super().__init__(f"Cannot resolve line '{line_id}' in statement {statement_id}")


# Elimination lifecycle


class EliminationError(ConsolidationError):
    """Base exception for elimination lifecycle errors."""

    code: str = "ELIMINATION_ERROR"


class InvalidStatusTransitionError(EliminationError):
    """Only draft -> posted and posted -> reversed are permitted."""

    code: str = "INVALID_STATUS_TRANSITION"

    def __init__(self, elimination_id: str, from_status: str, to_status: str):
        self.elimination_id = elimination_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Elimination {elimination_id} cannot move from {from_status} to {to_status}"
        )


# Configuration


class TemplateError(ConsolidationError):
    """Statement template configuration is invalid."""

    code: str = "INVALID_STATEMENT_TEMPLATE"

    def __init__(self, template: str, reason: str):
        self.template = template
        self.reason = reason
        super().__init__(f"Invalid statement template {template}: {reason}")
