"""
Adjustment request domain types (``stock_kernel.domain.adjustment``).

Responsibility
--------------
Pure value objects for the stock adjustment workflow: the request
lifecycle state machine, the request snapshot, batch submission inputs
and the per-item outcome records returned by batch operations.

Architecture position
---------------------
**Kernel domain layer** -- ZERO I/O.  No imports from ``db/``,
``services/``, ``selectors/``, or outer layers.

Lifecycle
---------
``ADJUSTMENT_TRANSITIONS`` defines the only valid status transitions::

    pending --> approved   (terminal)
    pending --> rejected   (terminal)

A reviewed request never changes again and requests are never deleted;
the row doubles as the audit record of who asked, why, and who decided.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID

from stock_kernel.domain.values import ProductKey


class AdjustmentStatus(str, Enum):
    """Adjustment request lifecycle states."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


ADJUSTMENT_TRANSITIONS: dict[AdjustmentStatus, frozenset[AdjustmentStatus]] = {
    AdjustmentStatus.PENDING: frozenset({
        AdjustmentStatus.APPROVED,
        AdjustmentStatus.REJECTED,
    }),
    AdjustmentStatus.APPROVED: frozenset(),
    AdjustmentStatus.REJECTED: frozenset(),
}

TERMINAL_ADJUSTMENT_STATUSES: frozenset[AdjustmentStatus] = frozenset({
    AdjustmentStatus.APPROVED,
    AdjustmentStatus.REJECTED,
})


def can_transition(current: AdjustmentStatus, target: AdjustmentStatus) -> bool:
    return target in ADJUSTMENT_TRANSITIONS[AdjustmentStatus(current)]


class AdjustmentType(str, Enum):
    """Why the adjustment was raised, as recorded by the requesting screen."""

    MANUAL = "manual"
    BULK = "bulk"
    CORRECTION = "correction"
    DAMAGE = "damage"
    LOSS = "loss"
    FOUND = "found"


class ReviewDecision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


# =========================================================================
# Request snapshot
# =========================================================================


@dataclass(frozen=True)
class AdjustmentRequest:
    """Immutable snapshot of an adjustment request.

    ``current_stock_at_request`` and ``target_stock`` are what the requester
    saw and asked for.  ``applied_stock`` is the authoritative value written
    at approval, which differs from ``target_stock`` when stock moved between
    submission and review.
    """

    id: UUID
    product_key: ProductKey
    agency_id: str
    current_stock_at_request: int
    quantity_delta: int
    target_stock: int
    reason: str
    justification: str
    adjustment_type: AdjustmentType
    requested_by: str
    requested_at: datetime
    status: AdjustmentStatus = AdjustmentStatus.PENDING
    product_name: str | None = None
    requested_by_name: str | None = None
    batch_id: UUID | None = None
    batch_name: str | None = None
    reviewed_by: str | None = None
    reviewed_by_name: str | None = None
    reviewed_at: datetime | None = None
    review_notes: str | None = None
    applied_stock: int | None = None

    @property
    def is_pending(self) -> bool:
        return self.status is AdjustmentStatus.PENDING

    @property
    def is_batched(self) -> bool:
        return self.batch_id is not None


# =========================================================================
# Batch submission
# =========================================================================


@dataclass(frozen=True)
class BatchItem:
    """One line of a bulk adjustment.

    ``reason=None`` means "use the batch default"; an empty string is an
    explicit (and invalid) reason.
    """

    product_key: ProductKey
    target_stock: int
    justification: str
    reason: str | None = None


@dataclass(frozen=True)
class SubmissionOutcome:
    """Result of submitting one batch item."""

    item_index: int
    product_key: ProductKey
    request_id: UUID | None = None
    error_code: str | None = None
    error_message: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.request_id is not None


@dataclass(frozen=True)
class BatchSubmissionResult:
    batch_id: UUID
    batch_name: str
    outcomes: tuple[SubmissionOutcome, ...] = ()

    @property
    def submitted(self) -> tuple[SubmissionOutcome, ...]:
        return tuple(o for o in self.outcomes if o.succeeded)

    @property
    def failed(self) -> tuple[SubmissionOutcome, ...]:
        return tuple(o for o in self.outcomes if not o.succeeded)


# =========================================================================
# Review outcomes
# =========================================================================


class ReviewOutcomeStatus(str, Enum):
    """Per-item status in a batch review result."""

    APPROVED = "approved"
    REJECTED = "rejected"
    FAILED = "failed"  # This item raised
    ROLLED_BACK = "rolled_back"  # Undone because a sibling failed


@dataclass(frozen=True)
class ReviewOutcome:
    request_id: UUID
    status: ReviewOutcomeStatus
    error_code: str | None = None
    error_message: str | None = None
    applied_stock: int | None = None

    @property
    def succeeded(self) -> bool:
        return self.status in (
            ReviewOutcomeStatus.APPROVED,
            ReviewOutcomeStatus.REJECTED,
        )


@dataclass(frozen=True)
class BatchReviewResult:
    """Immutable result of reviewing every member of a batch."""

    batch_id: UUID
    decision: ReviewDecision
    outcomes: tuple[ReviewOutcome, ...] = ()

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.succeeded)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.status is ReviewOutcomeStatus.FAILED)

    @property
    def all_succeeded(self) -> bool:
        return all(o.succeeded for o in self.outcomes)


# =========================================================================
# Review queue views
# =========================================================================


@dataclass(frozen=True)
class BatchGroup:
    """Pending requests that were submitted together."""

    batch_id: UUID
    batch_name: str | None
    requested_by_name: str | None
    requested_at: datetime
    requests: tuple[AdjustmentRequest, ...]

    @property
    def total_items(self) -> int:
        return len(self.requests)

    @property
    def net_delta(self) -> int:
        return sum(r.quantity_delta for r in self.requests)


@dataclass(frozen=True)
class PendingQueue:
    batches: tuple[BatchGroup, ...] = ()
    individual: tuple[AdjustmentRequest, ...] = ()

    @property
    def total(self) -> int:
        return len(self.individual) + sum(b.total_items for b in self.batches)
