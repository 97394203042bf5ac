"""
Typed Exception Hierarchy for the Stock Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (the presentation layer, batch reviewers, upstream sync producers)
must react to failures precisely: a validation failure is shown to the user,
an already-reviewed request is an expected concurrent-edit outcome, a storage
failure may be retried.  Matching on message text is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

    try:
        approvals.approve(request_id, reviewer)
    except AlreadyReviewedError as e:
        notify(f"Request {e.request_id} was already {e.status}")
    except StockKernelError as e:
        api_response(code=e.code)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    StockKernelError (base)
    |
    +-- ValidationError
    |   +-- InvalidQuantityError
    |   +-- UnknownTransactionTypeError
    |   +-- TransactionDirectionError
    |   +-- InvalidProductKeyError
    |   +-- InvalidAgencyError
    |   +-- MissingReasonError
    |   +-- UnknownReasonError
    |   +-- MissingJustificationError
    |   +-- NegativeTargetStockError
    |   +-- NegativeStockError
    |   +-- StockIncreaseNotAllowedError
    |   +-- InvalidBatchError
    |   +-- NoOpError
    |   +-- InvalidQueryError
    |
    +-- NotFoundError
    |   +-- AdjustmentNotFoundError
    |   +-- BatchNotFoundError
    |   +-- InventoryRecordNotFoundError
    |   +-- LedgerEntryNotFoundError
    |   +-- AgencyNotFoundError
    |
    +-- ConflictError
    |   +-- AlreadyReviewedError
    |   +-- DuplicateInventoryRecordError
    |
    +-- PermissionDeniedError
    +-- StorageError
    +-- ImmutabilityViolationError
    +-- AuditChainBrokenError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                          | When Raised
-------------|-------------------------------|-----------------------------------------
Validation   | INVALID_QUANTITY              | Zero quantity on a ledger entry
             | UNKNOWN_TRANSACTION_TYPE      | Type outside the closed enum
             | TRANSACTION_DIRECTION         | Inbound with negative qty (or reverse)
             | INVALID_PRODUCT_KEY           | Empty or collapsed key on a write
             | INVALID_AGENCY                | Missing agency id
             | MISSING_REASON                | Empty adjustment reason
             | UNKNOWN_REASON                | Reason not in the active vocabulary
             | MISSING_JUSTIFICATION         | Empty/whitespace justification
             | NEGATIVE_TARGET_STOCK         | Requested target stock < 0
             | NEGATIVE_STOCK                | Approval would drive stock below 0
             | STOCK_INCREASE_NOT_ALLOWED    | Policy forbids positive adjustments
             | INVALID_BATCH                 | Empty batch name or no items
             | NO_OP_ADJUSTMENT              | Target equals current stock
             | INVALID_QUERY                 | Read parameter out of range
-------------|-------------------------------|-----------------------------------------
Not found    | ADJUSTMENT_NOT_FOUND          | Unknown request id
             | BATCH_NOT_FOUND               | Unknown batch id
             | INVENTORY_RECORD_NOT_FOUND    | No authoritative counter for the item
             | LEDGER_ENTRY_NOT_FOUND        | Unknown ledger entry id
             | AGENCY_NOT_FOUND              | Agency has no stock activity
-------------|-------------------------------|-----------------------------------------
Conflict     | ALREADY_REVIEWED              | Request is no longer pending
             | DUPLICATE_INVENTORY_RECORD    | Counter already registered
-------------|-------------------------------|-----------------------------------------
Security     | PERMISSION_DENIED             | Actor lacks the reviewer role / agency
Storage      | STORAGE_ERROR                 | Persistence layer failure
Integrity    | IMMUTABILITY_VIOLATION        | Mutating append-only/terminal records
             | AUDIT_CHAIN_BROKEN            | Hash chain validation failed

===============================================================================
HANDLING PATTERNS
===============================================================================

1. ALREADY_REVIEWED IS TERMINAL.  It is the optimistic-lock outcome of two
   reviewers racing on one request.  Never retry it.

2. STORAGE_ERROR MAY BE RETRIED by the caller for single-item operations.
   Batch operations capture it per item so siblings still complete.

3. VARIANCE IS NOT AN ERROR.  Reconciliation drift is reported through
   ``needs_attention`` on report lines, never raised.
"""


class StockKernelError(Exception):
    """
    Base exception for all stock kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "STOCK_KERNEL_ERROR"


# Validation


class ValidationError(StockKernelError):
    """Malformed or disallowed input."""

    code: str = "VALIDATION_ERROR"


class InvalidQuantityError(ValidationError):
    """Ledger entries must move stock by a non-zero amount."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, quantity: int):
        self.quantity = quantity
        super().__init__(f"Quantity must be a non-zero integer, got {quantity!r}")


class UnknownTransactionTypeError(ValidationError):
    """Transaction type is not one of the recognized kinds."""

    code: str = "UNKNOWN_TRANSACTION_TYPE"

    def __init__(self, transaction_type: str):
        self.transaction_type = transaction_type
        super().__init__(f"Unknown transaction type: {transaction_type!r}")


class TransactionDirectionError(ValidationError):
    """Quantity sign contradicts the transaction type's direction."""

    code: str = "TRANSACTION_DIRECTION"

    def __init__(self, transaction_type: str, quantity: int, expected: str):
        self.transaction_type = transaction_type
        self.quantity = quantity
        self.expected = expected
        super().__init__(
            f"{transaction_type} entries must carry a {expected} quantity, "
            f"got {quantity}"
        )


class InvalidProductKeyError(ValidationError):
    """Product key is empty, or collapsed where a concrete variant is required."""

    code: str = "INVALID_PRODUCT_KEY"

    def __init__(self, product_key: str, reason: str):
        self.product_key = product_key
        self.reason = reason
        super().__init__(f"Invalid product key {product_key!r}: {reason}")


class InvalidAgencyError(ValidationError):
    """Agency id is missing."""

    code: str = "INVALID_AGENCY"

    def __init__(self, agency_id: object):
        self.agency_id = agency_id
        super().__init__(f"Agency id is required, got {agency_id!r}")


class MissingReasonError(ValidationError):
    """Adjustment reason is empty."""

    code: str = "MISSING_REASON"

    def __init__(self):
        super().__init__("Adjustment reason is required")


class UnknownReasonError(ValidationError):
    """Adjustment reason is not in the active reason vocabulary."""

    code: str = "UNKNOWN_REASON"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Unknown or inactive adjustment reason: {reason!r}")


class MissingJustificationError(ValidationError):
    """Adjustment justification is empty or whitespace."""

    code: str = "MISSING_JUSTIFICATION"

    def __init__(self):
        super().__init__("Adjustment justification is required")


class NegativeTargetStockError(ValidationError):
    """Requested target stock is below zero."""

    code: str = "NEGATIVE_TARGET_STOCK"

    def __init__(self, target_stock: int):
        self.target_stock = target_stock
        super().__init__(f"Target stock cannot be negative, got {target_stock}")


class NegativeStockError(ValidationError):
    """Applying a delta would drive authoritative stock below zero."""

    code: str = "NEGATIVE_STOCK"

    def __init__(self, product_key: str, current_stock: int, delta: int):
        self.product_key = product_key
        self.current_stock = current_stock
        self.delta = delta
        super().__init__(
            f"Applying {delta:+d} to {product_key} (stock {current_stock}) "
            f"would make stock negative"
        )


class StockIncreaseNotAllowedError(ValidationError):
    """Policy forbids adjustments that add stock."""

    code: str = "STOCK_INCREASE_NOT_ALLOWED"

    def __init__(self, delta: int):
        self.delta = delta
        super().__init__(
            "Positive stock adjustments are not allowed; stock is added only "
            "through receipts or customer returns"
        )


class InvalidBatchError(ValidationError):
    """Batch submission is missing a name or items."""

    code: str = "INVALID_BATCH"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid batch: {reason}")


class NoOpError(ValidationError):
    """Target stock equals current stock; there is nothing to adjust."""

    code: str = "NO_OP_ADJUSTMENT"

    def __init__(self, product_key: str, current_stock: int):
        self.product_key = product_key
        self.current_stock = current_stock
        super().__init__(
            f"Target stock for {product_key} equals current stock ({current_stock})"
        )


class InvalidQueryError(ValidationError):
    """A read was asked for with a parameter outside its range."""

    code: str = "INVALID_QUERY"

    def __init__(self, parameter: str, value: object, reason: str):
        self.parameter = parameter
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {parameter} {value!r}: {reason}")


# Not found


class NotFoundError(StockKernelError):
    """Referenced entity does not exist."""

    code: str = "NOT_FOUND"


class AdjustmentNotFoundError(NotFoundError):
    code: str = "ADJUSTMENT_NOT_FOUND"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Adjustment request not found: {request_id}")


class BatchNotFoundError(NotFoundError):
    code: str = "BATCH_NOT_FOUND"

    def __init__(self, batch_id: str):
        self.batch_id = batch_id
        super().__init__(f"Adjustment batch not found: {batch_id}")


class InventoryRecordNotFoundError(NotFoundError):
    code: str = "INVENTORY_RECORD_NOT_FOUND"

    def __init__(self, product_key: str, agency_id: str):
        self.product_key = product_key
        self.agency_id = agency_id
        super().__init__(
            f"No inventory record for {product_key} at agency {agency_id}"
        )


class LedgerEntryNotFoundError(NotFoundError):
    code: str = "LEDGER_ENTRY_NOT_FOUND"

    def __init__(self, entry_id: str):
        self.entry_id = entry_id
        super().__init__(f"Ledger entry not found: {entry_id}")


class AgencyNotFoundError(NotFoundError):
    code: str = "AGENCY_NOT_FOUND"

    def __init__(self, agency_id: str):
        self.agency_id = agency_id
        super().__init__(f"No stock activity recorded for agency {agency_id}")


# Conflicts


class ConflictError(StockKernelError):
    """State conflict with a concurrent or earlier write."""

    code: str = "CONFLICT"


class AlreadyReviewedError(ConflictError):
    """
    Request has already left the pending state.

    Expected outcome when two reviewers act on the same request; terminal and
    not retryable.
    """

    code: str = "ALREADY_REVIEWED"

    def __init__(self, request_id: str, status: str):
        self.request_id = request_id
        self.status = status
        super().__init__(f"Adjustment request {request_id} is already {status}")


class DuplicateInventoryRecordError(ConflictError):
    code: str = "DUPLICATE_INVENTORY_RECORD"

    def __init__(self, product_key: str, agency_id: str):
        self.product_key = product_key
        self.agency_id = agency_id
        super().__init__(
            f"Inventory record already exists for {product_key} at agency {agency_id}"
        )


# Security


class PermissionDeniedError(StockKernelError):
    """Actor is not allowed to perform the operation."""

    code: str = "PERMISSION_DENIED"

    def __init__(self, actor_id: str, action: str, reason: str):
        self.actor_id = actor_id
        self.action = action
        self.reason = reason
        super().__init__(f"Actor {actor_id} may not {action}: {reason}")


# Storage


class StorageError(StockKernelError):
    """Persistence layer failure, surfaced as-is to the caller."""

    code: str = "STORAGE_ERROR"

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Storage failure during {operation}: {detail}")


# Integrity


class ImmutabilityViolationError(StockKernelError):
    """Attempt to modify an append-only or terminal record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )


class AuditChainBrokenError(StockKernelError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, audit_event_id: str, expected_hash: str, actual_hash: str):
        self.audit_event_id = audit_event_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at event {audit_event_id}: "
            f"expected {expected_hash}, got {actual_hash}"
        )
