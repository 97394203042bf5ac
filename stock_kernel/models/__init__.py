"""ORM models for the stock kernel."""

from stock_kernel.models.adjustment import AdjustmentReason, AdjustmentRequestModel
from stock_kernel.models.audit_event import AuditAction, AuditEvent
from stock_kernel.models.inventory import InventoryRecord
from stock_kernel.models.sequence import SequenceCounter
from stock_kernel.models.transaction import StockTransaction

from stock_kernel.db.immutability import register_immutability_listeners

register_immutability_listeners()

__all__ = [
    "AdjustmentReason",
    "AdjustmentRequestModel",
    "AuditAction",
    "AuditEvent",
    "InventoryRecord",
    "SequenceCounter",
    "StockTransaction",
]
