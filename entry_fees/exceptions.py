"""
Typed Exception Hierarchy for the Entry Fees Engine.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from EntryFeesError:

    EntryFeesError (base)
    |
    +-- ValidationError                 rejected before storage access
    |   +-- EmptyRequestError
    |   +-- MissingCurrencyError
    |   +-- MissingSourceGroupError
    |   +-- InvalidFeeAmountError
    |   +-- InvalidPeriodRangeError
    |   +-- UnknownStatusError
    |   +-- MissingSubscriptionsError
    |   +-- InvalidAnnouncedTotalError
    |   +-- InvalidCursorError
    |   +-- BatchTooLargeError
    |
    +-- ConflictError                   business rule violated (found by query)
    |   +-- SubscriptionAlreadyAssignedError
    |   +-- DuplicateBatchIdError
    |   +-- DuplicateMappingSourceError
    |   +-- PeriodOverlapError
    |   +-- StatementsAlreadyGeneratedError  concurrent generation for one list
    |   +-- StorageConstraintError      seen only by the store, re-mapped
    |
    +-- NotFoundError
    |   +-- PeriodNotFoundError
    |   +-- StatementNotFoundError
    |   +-- PaymentListNotFoundError
    |   +-- GroupStructureNotFoundError
    |
    +-- StateTransitionError            illegal issue/payment status change
    |
    +-- BatchOperationError             any of the above, pinned to a batch item
    |
    +-- InternalError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                  | When Raised
----------------------|--------------------------------------------------------
VALIDATION_ERROR      | Malformed input (missing currency, negative fee, ...)
CONFLICT              | Double subscription assignment, colliding batch ids,
                      | unique violation caught at commit
PERIOD_OVERLAP        | Half-open period ranges intersect
NOT_FOUND             | Payment list / group structure doesn't exist
PERIOD_NOT_FOUND      | Period id doesn't exist
STATEMENT_NOT_FOUND   | Statement id doesn't exist
INVALID_TRANSITION    | Status change not in the allowed table
INTERNAL_ERROR        | Unexpected failure

ALREADY_CANCELLED is an outcome, not an error: cancelling a cancelled
statement is a successful no-op (see services/statement_lifecycle.py).

===============================================================================
"""

from typing import Any


class EntryFeesError(Exception):
    """
    Base exception for all entry fees engine errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.  Context is stored as public attributes so it
    survives logging and serialization.
    """

    code: str = "ENTRY_FEES_ERROR"

    def to_dict(self) -> dict[str, Any]:
        """Structured representation: code, message and every public attribute."""
        payload: dict[str, Any] = {"code": self.code, "message": str(self)}
        for key, value in vars(self).items():
            if not key.startswith("_"):
                payload[key] = value
        return payload


# Validation


class ValidationError(EntryFeesError):
    """Malformed input, rejected before touching storage."""

    code: str = "VALIDATION_ERROR"


class EmptyRequestError(ValidationError):
    """A required collection is empty."""

    def __init__(self, field: str):
        self.field = field
        super().__init__(f"{field} must not be empty")


class MissingCurrencyError(ValidationError):
    """Subscription fee snapshot has no currency."""

    def __init__(self, subscription_id: str):
        self.subscription_id = subscription_id
        super().__init__(f"Missing currency for subscription {subscription_id}")


class MissingSourceGroupError(ValidationError):
    """Subscription fee snapshot has no originating team."""

    def __init__(self, subscription_id: str):
        self.subscription_id = subscription_id
        super().__init__(f"Missing source group for subscription {subscription_id}")


class InvalidFeeAmountError(ValidationError):
    """Entry fee amount is not a finite, non-negative number."""

    def __init__(self, subscription_id: str, amount: Any):
        self.subscription_id = subscription_id
        self.amount = str(amount)
        super().__init__(
            f"Invalid entry fees amount {amount!r} for subscription {subscription_id}"
        )


class InvalidPeriodRangeError(ValidationError):
    """start_date must be strictly before end_date."""

    def __init__(self, start_date: str, end_date: str):
        self.start_date = start_date
        self.end_date = end_date
        super().__init__(
            f"Invalid range: start_date ({start_date}) must be < end_date ({end_date})"
        )


class UnknownStatusError(ValidationError):
    """Status value is not a member of the axis' closed set."""

    def __init__(self, axis: str, value: Any):
        self.axis = axis
        self.value = str(value)
        super().__init__(f"Unknown {axis} value: {value!r}")


class MissingSubscriptionsError(ValidationError):
    """Requested subscriptions are absent from the subscription feed."""

    def __init__(self, subscription_ids: list[str]):
        self.subscription_ids = subscription_ids
        super().__init__(
            f"{len(subscription_ids)} subscription(s) not found in feed: "
            f"{', '.join(subscription_ids[:5])}"
        )


class InvalidAnnouncedTotalError(ValidationError):
    """Caller-supplied announced total is unusable (bad amount, repeated currency)."""

    def __init__(self, currency: str, reason: str):
        self.currency = currency
        self.reason = reason
        super().__init__(f"Invalid announced total for {currency or '<empty>'}: {reason}")


class InvalidCursorError(ValidationError):
    """Pagination cursor cannot be decoded."""

    def __init__(self, cursor: str):
        self.cursor = cursor
        super().__init__(f"Invalid cursor: {cursor!r}")


class BatchTooLargeError(ValidationError):
    """Batch exceeds the configured item limit."""

    def __init__(self, operation: str, size: int, limit: int):
        self.operation = operation
        self.size = size
        self.limit = limit
        super().__init__(f"{operation} batch of {size} exceeds limit {limit}")


# Conflicts


class ConflictError(EntryFeesError):
    """Business-rule violation found by query."""

    code: str = "CONFLICT"


class SubscriptionAlreadyAssignedError(ConflictError):
    """
    Subscriptions are already attached to a non-cancelled statement.

    ``conflicts`` holds (subscription_id, payment_list_id, statement_id)
    tuples, capped by the configured report limit.
    """

    def __init__(self, conflicts: list[tuple[str, str, str]]):
        self.conflicts = conflicts
        super().__init__(
            f"{len(conflicts)} subscription(s) already assigned to a "
            f"non-cancelled statement"
        )


class DuplicateBatchIdError(ConflictError):
    """Batch repeats an id, or names the same id in two operations."""

    def __init__(self, operation: str, entity_ids: list[str]):
        self.operation = operation
        self.entity_ids = entity_ids
        super().__init__(
            f"Duplicate or colliding ids in {operation}: {', '.join(entity_ids)}"
        )


class DuplicateMappingSourceError(ConflictError):
    """A group structure maps the same source group twice."""

    def __init__(self, source_group_id: str):
        self.source_group_id = source_group_id
        super().__init__(f"Duplicate source_group_id in mappings: {source_group_id}")


class PeriodOverlapError(ConflictError):
    """Entry-fee period half-open ranges intersect."""

    code: str = "PERIOD_OVERLAP"

    def __init__(
        self,
        start_date: str,
        end_date: str,
        existing_period_id: str | None = None,
        detected_by: str = "query",
    ):
        self.start_date = start_date
        self.end_date = end_date
        self.existing_period_id = existing_period_id
        self.detected_by = detected_by
        super().__init__(
            f"Period [{start_date}, {end_date}) overlaps an existing one"
            + (f" ({existing_period_id})" if existing_period_id else "")
        )


class StatementsAlreadyGeneratedError(ConflictError):
    """A concurrent writer inserted statements for the same list first."""

    def __init__(self, payment_list_id: str):
        self.payment_list_id = payment_list_id
        super().__init__(f"Statements already generated for payment list {payment_list_id}")


class StorageConstraintError(ConflictError):
    """Unique/exclusion/check violation reported by the store at write time."""

    def __init__(self, constraint: str | None, sqlstate: str | None, detail: str):
        self.constraint = constraint
        self.sqlstate = sqlstate
        self.detail = detail
        super().__init__(f"Storage constraint violated ({constraint or sqlstate}): {detail}")


# Not found


class NotFoundError(EntryFeesError):
    """Entity with given ID was not found."""

    code: str = "NOT_FOUND"


class PeriodNotFoundError(NotFoundError):
    code: str = "PERIOD_NOT_FOUND"

    def __init__(self, period_id: str):
        self.period_id = period_id
        super().__init__(f"Period not found: {period_id}")


class StatementNotFoundError(NotFoundError):
    code: str = "STATEMENT_NOT_FOUND"

    def __init__(self, statement_id: str):
        self.statement_id = statement_id
        super().__init__(f"Statement not found: {statement_id}")


class PaymentListNotFoundError(NotFoundError):
    def __init__(self, payment_list_id: str):
        self.payment_list_id = payment_list_id
        super().__init__(f"Payment list not found: {payment_list_id}")


class GroupStructureNotFoundError(NotFoundError):
    def __init__(self, group_structure_id: str):
        self.group_structure_id = group_structure_id
        super().__init__(f"Group structure not found: {group_structure_id}")


# State machine


class StateTransitionError(EntryFeesError):
    """Requested status change is not in the allowed transition table."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, axis: str, from_state: str, to_state: str):
        self.axis = axis
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Forbidden {axis} transition: {from_state} -> {to_state}")


# Batch


class BatchOperationError(EntryFeesError):
    """
    A batch item failed; the shared transaction was rolled back.

    Carries the {operation, index, entity_id} of the failing item and the
    underlying error.  ``code`` mirrors the cause so callers keep a single
    vocabulary.
    """

    def __init__(
        self,
        operation: str,
        index: int,
        entity_id: str | None,
        cause: Exception,
    ):
        self.operation = operation
        self.index = index
        self.entity_id = entity_id
        self.cause = cause
        self.code = getattr(cause, "code", InternalError.code)
        super().__init__(f"{operation}[{index}] ({entity_id or '-'}) failed: {cause}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": str(self.cause),
            "operation": self.operation,
            "index": self.index,
            "entity_id": self.entity_id,
        }


class InternalError(EntryFeesError):
    """Unexpected failure."""

    code: str = "INTERNAL_ERROR"
