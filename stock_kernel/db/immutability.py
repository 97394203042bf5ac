"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

Reconciliation is only meaningful if history cannot be rewritten.  A ledger
row that could be edited would let anyone make variance disappear; a
reviewed adjustment request that could be flipped would hide who approved
what.  SQLAlchemy fires mapper events before UPDATE/DELETE statements are
emitted for ORM-tracked objects, and the listeners below abort the flush.

    session.flush()
         |
         v
    [before_update event] --> _check_*() --> ImmutabilityViolationError
         |
         v
    [before_delete event] --> _check_*_delete() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity                  | When Immutable                  | Why
------------------------|---------------------------------|-------------------------------
StockTransaction        | ALWAYS (from creation)          | Ledger is append-only
AuditEvent              | ALWAYS (from creation)          | Audit trail is sacred
AdjustmentRequestModel  | Requester fields always;        | The request is its own audit
                        | everything once reviewed; never | record of who asked and who
                        | deleted                         | decided

===============================================================================
NOTES
===============================================================================

The approval service moves a request out of ``pending`` with an ORM-enabled
``UPDATE ... WHERE status = 'pending'`` statement.  Bulk statements do not
fire mapper events, which is correct: that statement IS the sanctioned
transition, and it can only ever match a pending row.

Listeners are registered when ``stock_kernel.models`` is imported.  To
temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
    # ... do forbidden operation ...
    register_immutability_listeners()
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from stock_kernel.exceptions import ImmutabilityViolationError
from stock_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

# Set at submission, never changed afterwards
ADJUSTMENT_REQUEST_FIELDS = frozenset({
    "seq",
    "product_key",
    "product_id",
    "color",
    "size",
    "product_name",
    "agency_id",
    "current_stock_at_request",
    "quantity_delta",
    "target_stock",
    "reason",
    "justification",
    "adjustment_type",
    "requested_by",
    "requested_by_name",
    "requested_at",
    "batch_id",
    "batch_name",
})

_TERMINAL_STATUSES = frozenset({"approved", "rejected"})


def _block(entity_type: str, target, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _check_stock_transaction_update(mapper, connection, target):
    _block(
        "StockTransaction", target, "UPDATE",
        "Ledger entries are append-only; post an adjustment instead",
    )


def _check_stock_transaction_delete(mapper, connection, target):
    _block("StockTransaction", target, "DELETE", "Ledger entries cannot be deleted")


def _check_audit_event_update(mapper, connection, target):
    _block(
        "AuditEvent", target, "UPDATE",
        "Audit events are immutable and cannot be modified",
    )


def _check_audit_event_delete(mapper, connection, target):
    _block("AuditEvent", target, "DELETE", "Audit events cannot be deleted")


def _status_before_flush(target) -> str:
    """Status as stored in the database before this flush."""
    history = get_history(target, "status")
    if history.deleted:
        return str(getattr(history.deleted[0], "value", history.deleted[0]))
    if history.unchanged:
        return str(getattr(history.unchanged[0], "value", history.unchanged[0]))
    return str(getattr(target.status, "value", target.status))


def _check_adjustment_request_update(mapper, connection, target):
    """
    Requester fields never change.  Once reviewed, nothing changes.

    A pending request may have its review fields set (status, reviewer,
    notes, applied stock); that is the review itself.
    """
    insp = inspect(target)

    if _status_before_flush(target) in _TERMINAL_STATUSES:
        for attr in insp.attrs:
            if attr.history.has_changes():
                _block(
                    "AdjustmentRequest", target, "UPDATE",
                    f"Cannot modify field '{attr.key}' on a reviewed request",
                )

    for attr in insp.attrs:
        if attr.key in ADJUSTMENT_REQUEST_FIELDS and attr.history.has_changes():
            _block(
                "AdjustmentRequest", target, "UPDATE",
                f"Cannot modify requester field '{attr.key}'",
            )


def _check_adjustment_request_delete(mapper, connection, target):
    _block(
        "AdjustmentRequest", target, "DELETE",
        "Adjustment requests are never deleted",
    )


def _listeners():
    from stock_kernel.models.adjustment import AdjustmentRequestModel
    from stock_kernel.models.audit_event import AuditEvent
    from stock_kernel.models.transaction import StockTransaction

    return (
        (StockTransaction, "before_update", _check_stock_transaction_update),
        (StockTransaction, "before_delete", _check_stock_transaction_delete),
        (AuditEvent, "before_update", _check_audit_event_update),
        (AuditEvent, "before_delete", _check_audit_event_delete),
        (AdjustmentRequestModel, "before_update", _check_adjustment_request_update),
        (AdjustmentRequestModel, "before_delete", _check_adjustment_request_delete),
    )


def register_immutability_listeners() -> None:
    """Register all immutability listeners.  Safe to call more than once."""
    for target, event_name, fn in _listeners():
        if not event.contains(target, event_name, fn):
            event.listen(target, event_name, fn)


def unregister_immutability_listeners() -> None:
    """
    Remove immutability listeners.

    WARNING: Only use this in tests that intentionally violate immutability.
    """
    for target, event_name, fn in _listeners():
        if event.contains(target, event_name, fn):
            event.remove(target, event_name, fn)
