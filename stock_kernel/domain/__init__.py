"""
Pure domain layer.

Value objects, DTOs, the adjustment lifecycle and the aggregation fold,
with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O

All domain objects are immutable and deterministic.
"""

from stock_kernel.domain.adjustment import (
    ADJUSTMENT_TRANSITIONS,
    AdjustmentRequest,
    AdjustmentStatus,
    AdjustmentType,
    BatchGroup,
    BatchItem,
    BatchReviewResult,
    BatchSubmissionResult,
    PendingQueue,
    ReviewDecision,
    ReviewOutcome,
    ReviewOutcomeStatus,
    SubmissionOutcome,
    can_transition,
)
from stock_kernel.domain.aggregation import (
    ReconciliationLine,
    StockAggregate,
    StockClass,
    StockTally,
    build_aggregate,
    classify,
    fold_entries,
    needs_attention,
)
from stock_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from stock_kernel.domain.inventory import InventorySnapshot
from stock_kernel.domain.policy import BatchReviewMode, ReconciliationPolicy
from stock_kernel.domain.transactions import (
    TransactionDraft,
    TransactionEntry,
    TransactionType,
)
from stock_kernel.domain.values import Actor, ProductKey

__all__ = [
    "ADJUSTMENT_TRANSITIONS",
    "Actor",
    "AdjustmentRequest",
    "AdjustmentStatus",
    "AdjustmentType",
    "BatchGroup",
    "BatchItem",
    "BatchReviewMode",
    "BatchReviewResult",
    "BatchSubmissionResult",
    "Clock",
    "DeterministicClock",
    "InventorySnapshot",
    "PendingQueue",
    "ProductKey",
    "ReconciliationLine",
    "ReconciliationPolicy",
    "ReviewDecision",
    "ReviewOutcome",
    "ReviewOutcomeStatus",
    "StockAggregate",
    "StockClass",
    "StockTally",
    "SubmissionOutcome",
    "SystemClock",
    "TransactionDraft",
    "TransactionEntry",
    "TransactionType",
    "build_aggregate",
    "can_transition",
    "classify",
    "fold_entries",
    "needs_attention",
]
