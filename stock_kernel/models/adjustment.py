"""
Module: stock_kernel.models.adjustment
Responsibility: ORM persistence for stock adjustment requests and the
    adjustment reason vocabulary.

Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Status values limited by check constraint; the service layer moves a
      request out of ``pending`` with a conditional UPDATE, and the ORM
      listeners in db/immutability.py refuse any change to a reviewed request
      or to the requester's fields.
    - ``quantity_delta`` is never zero and ``target_stock`` never negative.
    - Requests are never deleted.

Failure modes:
    - ImmutabilityViolationError on UPDATE of a terminal request or DELETE.
    - IntegrityError on a duplicate reason name.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base, UUIDString

if TYPE_CHECKING:
    from stock_kernel.domain.adjustment import AdjustmentRequest


class AdjustmentRequestModel(Base):
    """Persistent adjustment request.

    Terminal statuses (approved, rejected) cannot be changed once set.
    """

    __tablename__ = "stock_adjustment_requests"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="ck_stock_adjustment_requests_valid_status",
        ),
        CheckConstraint(
            "quantity_delta <> 0",
            name="ck_stock_adjustment_requests_nonzero_delta",
        ),
        CheckConstraint(
            "target_stock >= 0",
            name="ck_stock_adjustment_requests_target_nonnegative",
        ),
        Index("ix_stock_adjustment_requests_status_seq", "status", "seq"),
        Index("ix_stock_adjustment_requests_batch", "batch_id"),
        Index("ix_stock_adjustment_requests_agency_status", "agency_id", "status"),
    )

    # Submission order; tiebreak for requests sharing a timestamp
    seq: Mapped[int] = mapped_column(nullable=False, unique=True)

    product_key: Mapped[str] = mapped_column(String(255), nullable=False)
    product_id: Mapped[str] = mapped_column(String(100), nullable=False)
    color: Mapped[str] = mapped_column(String(100), nullable=False)
    size: Mapped[str] = mapped_column(String(100), nullable=False)
    product_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    agency_id: Mapped[str] = mapped_column(String(100), nullable=False)

    current_stock_at_request: Mapped[int] = mapped_column(nullable=False)
    quantity_delta: Mapped[int] = mapped_column(nullable=False)
    target_stock: Mapped[int] = mapped_column(nullable=False)

    reason: Mapped[str] = mapped_column(String(100), nullable=False)
    justification: Mapped[str] = mapped_column(Text, nullable=False)
    adjustment_type: Mapped[str] = mapped_column(String(20), nullable=False, default="manual")

    requested_by: Mapped[str] = mapped_column(String(100), nullable=False)
    requested_by_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    requested_at: Mapped[datetime] = mapped_column(nullable=False)

    batch_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    batch_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    reviewed_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    reviewed_by_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    review_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    applied_stock: Mapped[int | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return (
            f"<AdjustmentRequest {self.id} {self.product_key}@{self.agency_id} "
            f"delta={self.quantity_delta} status={self.status}>"
        )

    def to_dto(self) -> AdjustmentRequest:
        """Convert ORM model to frozen domain DTO."""
        from stock_kernel.domain.adjustment import (
            AdjustmentRequest as AdjustmentRequestDTO,
            AdjustmentStatus,
            AdjustmentType,
        )
        from stock_kernel.domain.values import ProductKey

        return AdjustmentRequestDTO(
            id=self.id,
            product_key=ProductKey(self.product_id, self.color, self.size),
            agency_id=self.agency_id,
            current_stock_at_request=self.current_stock_at_request,
            quantity_delta=self.quantity_delta,
            target_stock=self.target_stock,
            reason=self.reason,
            justification=self.justification,
            adjustment_type=AdjustmentType(self.adjustment_type),
            requested_by=self.requested_by,
            requested_at=self.requested_at,
            status=AdjustmentStatus(self.status),
            product_name=self.product_name,
            requested_by_name=self.requested_by_name,
            batch_id=self.batch_id,
            batch_name=self.batch_name,
            reviewed_by=self.reviewed_by,
            reviewed_by_name=self.reviewed_by_name,
            reviewed_at=self.reviewed_at,
            review_notes=self.review_notes,
            applied_stock=self.applied_stock,
        )


class AdjustmentReason(Base):
    """Controlled vocabulary entry for adjustment reasons."""

    __tablename__ = "adjustment_reasons"

    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        flag = "active" if self.is_active else "inactive"
        return f"<AdjustmentReason {self.name!r} {flag}>"
