"""
stock_kernel.services.approval_service -- Adjustment review lifecycle.

Responsibility:
    Moves adjustment requests out of ``pending`` (approve or reject), one at
    a time or a whole batch, and on approval reconciles authoritative stock
    through a new ledger entry.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/, selectors/
    and peer services.

Invariants enforced:
    - Lifecycle: ``pending -> approved | rejected``, both terminal.  The
      transition is a conditional ``UPDATE ... WHERE status = 'pending'``
      whose row count decides the winner between concurrent reviewers;
      there is no read-then-write window.
    - Atomic approval: status change, ledger entry and stock update happen
      inside one SAVEPOINT.  Any failure rolls all three back.
    - The delta is applied to the authoritative stock read under the row
      lock at approval time, not to the value captured at submission.
    - Stock never goes negative through an approval.

Failure modes:
    - PermissionDeniedError: reviewer role not in the policy.
    - AdjustmentNotFoundError / BatchNotFoundError.
    - AlreadyReviewedError: the request left ``pending`` first (terminal,
      not retryable).
    - NegativeStockError: approval would drive stock below zero.
    - StorageError: persistence failure (captured per item in batches).
"""

from __future__ import annotations

from typing import Callable
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from stock_kernel.domain.adjustment import (
    AdjustmentRequest,
    AdjustmentStatus,
    BatchReviewResult,
    ReviewDecision,
    ReviewOutcome,
    ReviewOutcomeStatus,
)
from stock_kernel.domain.clock import Clock
from stock_kernel.domain.policy import BatchReviewMode, ReconciliationPolicy
from stock_kernel.domain.transactions import TransactionDraft, TransactionType
from stock_kernel.domain.values import Actor, ProductKey
from stock_kernel.exceptions import (
    AdjustmentNotFoundError,
    AlreadyReviewedError,
    BatchNotFoundError,
    InventoryRecordNotFoundError,
    NegativeStockError,
    PermissionDeniedError,
    StockKernelError,
)
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.models.adjustment import AdjustmentRequestModel
from stock_kernel.services.auditor_service import AuditorService
from stock_kernel.services.base import BaseService
from stock_kernel.services.inventory_service import InventoryService
from stock_kernel.services.ledger_service import TransactionLedger

logger = get_logger("services.approval")

APPROVAL_SOURCE_SYSTEM = "adjustment_approval"


class AdjustmentApprovalService(BaseService[AdjustmentRequestModel]):
    """
    Approval State Machine for stock adjustments.

    Batch review is dispatched sequentially inside the caller's session; a
    SQLAlchemy session is not thread-safe.  Run independent batches in
    separate sessions for concurrency.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: ReconciliationPolicy | None = None,
        auditor: AuditorService | None = None,
        ledger: TransactionLedger | None = None,
        inventory_service: InventoryService | None = None,
    ):
        super().__init__(session, clock)
        self._policy = policy or ReconciliationPolicy()
        self._auditor = auditor or AuditorService(session, self.clock)
        self._inventory = inventory_service or InventoryService(
            session, self.clock, self._auditor
        )
        self._ledger = ledger or TransactionLedger(
            session,
            self.clock,
            self._policy,
            inventory_service=self._inventory,
        )

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    def _require_reviewer(self, reviewer: Actor, action: str) -> None:
        if not self._policy.is_reviewer(reviewer.role):
            logger.warning(
                "review_permission_denied",
                extra={"actor_id": reviewer.user_id, "role": reviewer.role},
            )
            raise PermissionDeniedError(
                reviewer.user_id,
                action,
                f"role {reviewer.role!r} is not a reviewer role",
            )

    def _load(self, request_id: UUID) -> AdjustmentRequestModel:
        model = self.session.execute(
            select(AdjustmentRequestModel)
            .where(AdjustmentRequestModel.id == request_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if model is None:
            raise AdjustmentNotFoundError(str(request_id))
        return model

    def _load_pending(self, request_id: UUID) -> AdjustmentRequestModel:
        model = self._load(request_id)
        if model.status != AdjustmentStatus.PENDING.value:
            raise AlreadyReviewedError(str(request_id), model.status)
        return model

    def _compare_and_set(
        self,
        request_id: UUID,
        target: AdjustmentStatus,
        reviewer: Actor,
        notes: str | None,
    ) -> None:
        """
        Conditional transition out of ``pending``.

        Zero affected rows means another reviewer got there first.
        """
        result = self.session.execute(
            update(AdjustmentRequestModel)
            .where(
                AdjustmentRequestModel.id == request_id,
                AdjustmentRequestModel.status == AdjustmentStatus.PENDING.value,
            )
            .values(
                status=target.value,
                reviewed_by=reviewer.user_id,
                reviewed_by_name=reviewer.name,
                reviewed_at=self.clock.now(),
                review_notes=notes,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            current = self.session.execute(
                select(AdjustmentRequestModel.status)
                .where(AdjustmentRequestModel.id == request_id)
            ).scalar_one()
            raise AlreadyReviewedError(str(request_id), current)

    # ------------------------------------------------------------------
    # Single-item transitions
    # ------------------------------------------------------------------

    def approve(self, request_id: UUID, reviewer: Actor) -> AdjustmentRequest:
        """
        Approve a pending request and reconcile stock.

        Inside one SAVEPOINT:
            1. pending -> approved (conditional UPDATE).
            2. Lock the inventory record; refuse if stock would go negative.
            3. Append an ``adjustment`` ledger entry that applies the delta
               to the locked stock.
            4. Record the resulting stock on the request.
        """
        self._require_reviewer(reviewer, "approve adjustments")

        with LogContext.bind(actor_id=reviewer.user_id, request_id=str(request_id)):
            model = self._load_pending(request_id)
            product_key = ProductKey(model.product_id, model.color, model.size)
            agency_id = model.agency_id
            delta = model.quantity_delta

            savepoint = self.session.begin_nested()
            try:
                with self._storage_errors("approve_adjustment"):
                    self._compare_and_set(
                        request_id, AdjustmentStatus.APPROVED, reviewer, None
                    )

                    record = self._inventory.lock_record(product_key, agency_id)
                    if record is None:
                        raise InventoryRecordNotFoundError(product_key.code, agency_id)
                    stock_before = record.current_stock
                    if stock_before + delta < 0:
                        raise NegativeStockError(product_key.code, stock_before, delta)

                    entry = self._ledger.append(
                        TransactionDraft(
                            product_key=product_key,
                            agency_id=agency_id,
                            transaction_type=TransactionType.ADJUSTMENT,
                            quantity=delta,
                            reference_name=reviewer.name,
                            reference_id=str(request_id),
                            source_system=APPROVAL_SOURCE_SYSTEM,
                            actor_id=reviewer.user_id,
                            actor_name=reviewer.name,
                            notes=f"{model.reason}: {model.justification}",
                        )
                    )
                    stock_after = stock_before + delta

                    self.session.execute(
                        update(AdjustmentRequestModel)
                        .where(AdjustmentRequestModel.id == request_id)
                        .values(applied_stock=stock_after)
                        .execution_options(synchronize_session=False)
                    )

                    self._auditor.record_adjustment_approved(
                        request_id=model.id,
                        ledger_entry_id=entry.id,
                        stock_before=stock_before,
                        stock_after=stock_after,
                        actor_id=reviewer.user_id,
                    )
                savepoint.commit()
            except Exception:
                savepoint.rollback()
                raise

            logger.info(
                "adjustment_approved",
                extra={
                    "product_key": product_key.code,
                    "agency_id": agency_id,
                    "quantity_delta": delta,
                    "stock_before": stock_before,
                    "stock_after": stock_after,
                    "target_stock": model.target_stock,
                    "ledger_entry_id": str(entry.id),
                },
            )
            if stock_after != model.target_stock:
                logger.info(
                    "adjustment_target_drift",
                    extra={
                        "target_stock": model.target_stock,
                        "applied_stock": stock_after,
                    },
                )

            return self._load(request_id).to_dto()

    def reject(
        self,
        request_id: UUID,
        reviewer: Actor,
        notes: str | None = None,
    ) -> AdjustmentRequest:
        """pending -> rejected.  No ledger entry, no stock change."""
        self._require_reviewer(reviewer, "reject adjustments")

        with LogContext.bind(actor_id=reviewer.user_id, request_id=str(request_id)):
            model = self._load_pending(request_id)

            savepoint = self.session.begin_nested()
            try:
                with self._storage_errors("reject_adjustment"):
                    self._compare_and_set(
                        request_id, AdjustmentStatus.REJECTED, reviewer, notes
                    )
                    self._auditor.record_adjustment_rejected(
                        request_id=model.id,
                        notes=notes,
                        actor_id=reviewer.user_id,
                    )
                savepoint.commit()
            except Exception:
                savepoint.rollback()
                raise

            logger.info(
                "adjustment_rejected",
                extra={"product_key": model.product_key, "agency_id": model.agency_id},
            )
            return self._load(request_id).to_dto()

    # ------------------------------------------------------------------
    # Batch transitions
    # ------------------------------------------------------------------

    def _batch_member_ids(self, batch_id: UUID) -> list[UUID]:
        ids = list(
            self.session.execute(
                select(AdjustmentRequestModel.id)
                .where(AdjustmentRequestModel.batch_id == batch_id)
                .order_by(AdjustmentRequestModel.seq)
            ).scalars()
        )
        if not ids:
            raise BatchNotFoundError(str(batch_id))
        return ids

    def _review_batch(
        self,
        batch_id: UUID,
        decision: ReviewDecision,
        apply_one: Callable[[UUID], AdjustmentRequest],
    ) -> BatchReviewResult:
        member_ids = self._batch_member_ids(batch_id)
        done_status = (
            ReviewOutcomeStatus.APPROVED
            if decision is ReviewDecision.APPROVE
            else ReviewOutcomeStatus.REJECTED
        )
        all_or_nothing = self._policy.batch_review_mode is BatchReviewMode.ALL_OR_NOTHING

        outer = self.session.begin_nested() if all_or_nothing else None
        outcomes: list[ReviewOutcome] = []
        failed_at: int | None = None

        try:
            for index, request_id in enumerate(member_ids):
                try:
                    reviewed = apply_one(request_id)
                    outcomes.append(
                        ReviewOutcome(
                            request_id=request_id,
                            status=done_status,
                            applied_stock=reviewed.applied_stock,
                        )
                    )
                except StockKernelError as exc:
                    logger.warning(
                        "batch_item_review_failed",
                        extra={
                            "request_id": str(request_id),
                            "error_code": exc.code,
                            "error_message": str(exc),
                        },
                    )
                    outcomes.append(
                        ReviewOutcome(
                            request_id=request_id,
                            status=ReviewOutcomeStatus.FAILED,
                            error_code=exc.code,
                            error_message=str(exc),
                        )
                    )
                    if all_or_nothing:
                        failed_at = index
                        break
        except Exception:
            # Unexpected errors propagate; no half-reviewed batch survives them.
            if outer is not None:
                outer.rollback()
            raise

        if outer is not None:
            if failed_at is None:
                outer.commit()
            else:
                outer.rollback()
                outcomes = [
                    o if i == failed_at else ReviewOutcome(
                        request_id=o.request_id,
                        status=ReviewOutcomeStatus.ROLLED_BACK,
                    )
                    for i, o in enumerate(outcomes)
                ] + [
                    ReviewOutcome(
                        request_id=rid,
                        status=ReviewOutcomeStatus.ROLLED_BACK,
                    )
                    for rid in member_ids[failed_at + 1:]
                ]

        result = BatchReviewResult(
            batch_id=batch_id,
            decision=decision,
            outcomes=tuple(outcomes),
        )
        logger.info(
            "batch_review_completed",
            extra={
                "decision": decision.value,
                "mode": self._policy.batch_review_mode.value,
                "total_items": len(outcomes),
                "succeeded": result.succeeded,
                "failed": result.failed,
            },
        )
        return result

    def approve_batch(self, batch_id: UUID, reviewer: Actor) -> BatchReviewResult:
        """
        Approve every member in request order.

        ``per_item``: members are independent and earlier approvals stand
        when a later one fails.  ``all_or_nothing``: the first failure rolls
        the whole batch back.
        """
        self._require_reviewer(reviewer, "approve adjustments")
        with LogContext.bind(actor_id=reviewer.user_id, batch_id=str(batch_id)):
            return self._review_batch(
                batch_id,
                ReviewDecision.APPROVE,
                lambda rid: self.approve(rid, reviewer),
            )

    def reject_batch(
        self,
        batch_id: UUID,
        reviewer: Actor,
        notes: str | None = None,
    ) -> BatchReviewResult:
        self._require_reviewer(reviewer, "reject adjustments")
        with LogContext.bind(actor_id=reviewer.user_id, batch_id=str(batch_id)):
            return self._review_batch(
                batch_id,
                ReviewDecision.REJECT,
                lambda rid: self.reject(rid, reviewer, notes),
            )
