"""Services for the stock kernel (write side)."""

from stock_kernel.services.adjustment_service import AdjustmentRequestService
from stock_kernel.services.approval_service import AdjustmentApprovalService
from stock_kernel.services.auditor_service import AuditorService
from stock_kernel.services.inventory_service import InventoryService
from stock_kernel.services.ledger_service import TransactionLedger
from stock_kernel.services.reason_service import ReasonService
from stock_kernel.services.sequence_service import SequenceService

__all__ = [
    "AdjustmentApprovalService",
    "AdjustmentRequestService",
    "AuditorService",
    "InventoryService",
    "ReasonService",
    "SequenceService",
    "TransactionLedger",
]
