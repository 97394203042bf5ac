"""
Reconciliation policy (``stock_kernel.domain.policy``).

The knobs that operators tune per deployment.  Built by ``stock_config``
from YAML and handed to services and selectors; the kernel itself never
reads configuration files.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from stock_kernel.domain.transactions import TransactionType


class BatchReviewMode(str, Enum):
    """How a batch approval/rejection treats a failing member."""

    PER_ITEM = "per_item"  # Members independent; earlier successes kept
    ALL_OR_NOTHING = "all_or_nothing"  # First failure rolls the batch back


DEFAULT_INBOUND_TYPES: frozenset[TransactionType] = frozenset({
    TransactionType.EXTERNAL_RECEIPT,
    TransactionType.RETURN_CUSTOMER,
})

DEFAULT_OUTBOUND_TYPES: frozenset[TransactionType] = frozenset({
    TransactionType.INTERNAL_SALE,
    TransactionType.RETURN_COMPANY,
})


@dataclass(frozen=True)
class ReconciliationPolicy:
    """
    Configuration schema for reconciliation and adjustment review.

        policy = ReconciliationPolicy(
            tolerance_threshold=2,
            reviewer_roles=("superuser", "stock_manager"),
            allow_stock_increase=False,
        )

    ``inbound_types`` and ``outbound_types`` must be disjoint and never
    contain ``adjustment``: corrections are reflected in authoritative stock
    only, never in the IN/OUT totals.
    """

    tolerance_threshold: int = 1
    inbound_types: frozenset[TransactionType] = DEFAULT_INBOUND_TYPES
    outbound_types: frozenset[TransactionType] = DEFAULT_OUTBOUND_TYPES
    reviewer_roles: tuple[str, ...] = ("superuser",)
    allow_stock_increase: bool = True
    batch_review_mode: BatchReviewMode = BatchReviewMode.PER_ITEM
    collapse_variants: bool = False

    def __post_init__(self):
        inbound = frozenset(TransactionType.parse(t) for t in self.inbound_types)
        outbound = frozenset(TransactionType.parse(t) for t in self.outbound_types)
        object.__setattr__(self, "inbound_types", inbound)
        object.__setattr__(self, "outbound_types", outbound)
        object.__setattr__(self, "reviewer_roles", tuple(self.reviewer_roles))
        object.__setattr__(
            self, "batch_review_mode", BatchReviewMode(self.batch_review_mode)
        )

        if isinstance(self.tolerance_threshold, bool) or not isinstance(
            self.tolerance_threshold, int
        ):
            raise ValueError(
                f"tolerance_threshold must be an integer, got {self.tolerance_threshold!r}"
            )
        if self.tolerance_threshold < 0:
            raise ValueError("tolerance_threshold cannot be negative")

        overlap = inbound & outbound
        if overlap:
            raise ValueError(
                f"inbound_types and outbound_types overlap: "
                f"{sorted(t.value for t in overlap)}"
            )
        if TransactionType.ADJUSTMENT in inbound | outbound:
            raise ValueError("adjustment cannot be classified as inbound or outbound")
        if not self.reviewer_roles:
            raise ValueError("reviewer_roles must name at least one role")

    def is_reviewer(self, role: str) -> bool:
        return role in self.reviewer_roles
