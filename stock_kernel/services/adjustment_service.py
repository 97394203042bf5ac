"""
AdjustmentRequestService -- proposing stock corrections.

Responsibility:
    Validates proposed corrections (one item, or a named batch) and persists
    them as ``pending`` requests.  Authoritative stock is never touched
    here; only an approval moves stock.

Invariants enforced:
    - Reason comes from the active vocabulary; justification is mandatory.
    - ``target_stock >= 0`` and ``target_stock != current stock``.
    - ``quantity_delta = target_stock - current stock`` captured at request
      time; the approval later applies the delta to whatever stock is then.
    - A requester may only adjust their own agency unless they hold a
      reviewer role.
    - Batch items run in their own SAVEPOINT: "submit what is valid, report
      what is not".

Failure modes:
    - ValidationError subclasses, InventoryRecordNotFoundError and
      PermissionDeniedError from ``submit_single``.
    - InvalidBatchError for an empty batch name or item list.
"""

from __future__ import annotations

from typing import Sequence
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_kernel.domain.adjustment import (
    AdjustmentRequest,
    AdjustmentStatus,
    AdjustmentType,
    BatchItem,
    BatchSubmissionResult,
    SubmissionOutcome,
)
from stock_kernel.domain.clock import Clock
from stock_kernel.domain.policy import ReconciliationPolicy
from stock_kernel.domain.values import (
    Actor,
    ProductKey,
    require_agency,
    require_writable_key,
)
from stock_kernel.exceptions import (
    AdjustmentNotFoundError,
    BatchNotFoundError,
    InvalidBatchError,
    InvalidQuantityError,
    InventoryRecordNotFoundError,
    MissingJustificationError,
    MissingReasonError,
    NegativeTargetStockError,
    NoOpError,
    PermissionDeniedError,
    StockIncreaseNotAllowedError,
    StockKernelError,
    UnknownReasonError,
    ValidationError,
)
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.models.adjustment import AdjustmentRequestModel
from stock_kernel.models.inventory import InventoryRecord
from stock_kernel.services.auditor_service import AuditorService
from stock_kernel.services.base import BaseService
from stock_kernel.services.reason_service import ReasonService
from stock_kernel.services.sequence_service import SequenceService

logger = get_logger("services.adjustment")


class AdjustmentRequestService(BaseService[AdjustmentRequestModel]):
    """
    Adjustment Request Engine.

    Non-goals:
        - Does NOT approve anything; see AdjustmentApprovalService.
        - Does NOT call ``session.commit()``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: ReconciliationPolicy | None = None,
        auditor: AuditorService | None = None,
        sequence_service: SequenceService | None = None,
        reason_service: ReasonService | None = None,
    ):
        super().__init__(session, clock)
        self._policy = policy or ReconciliationPolicy()
        self._auditor = auditor or AuditorService(session, self.clock)
        self._sequence = sequence_service or SequenceService(session)
        self._reasons = reason_service or ReasonService(session, self.clock, self._auditor)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _check_requester(self, actor: Actor, agency_id: str) -> None:
        if actor.agency_id != agency_id and not self._policy.is_reviewer(actor.role):
            raise PermissionDeniedError(
                actor.user_id,
                "request adjustments",
                f"actor belongs to agency {actor.agency_id!r}, not {agency_id!r}",
            )

    def _check_reason(self, reason: str | None) -> str:
        if reason is None or not reason.strip():
            raise MissingReasonError()
        reason = reason.strip()
        if not self._reasons.is_active(reason):
            raise UnknownReasonError(reason)
        return reason

    @staticmethod
    def _check_justification(justification: str | None) -> str:
        if justification is None or not justification.strip():
            raise MissingJustificationError()
        return justification.strip()

    @staticmethod
    def _check_target(target_stock: int) -> int:
        if isinstance(target_stock, bool) or not isinstance(target_stock, int):
            raise InvalidQuantityError(target_stock)
        if target_stock < 0:
            raise NegativeTargetStockError(target_stock)
        return target_stock

    @staticmethod
    def _check_type(adjustment_type: AdjustmentType | str) -> AdjustmentType:
        try:
            return AdjustmentType(adjustment_type)
        except ValueError:
            raise ValidationError(
                f"Unknown adjustment type: {adjustment_type!r}"
            ) from None

    def _load_record(self, key: ProductKey, agency_id: str) -> InventoryRecord:
        record = self.session.execute(
            select(InventoryRecord).where(
                InventoryRecord.product_key == key.code,
                InventoryRecord.agency_id == agency_id,
            )
        ).scalar_one_or_none()
        if record is None:
            raise InventoryRecordNotFoundError(key.code, agency_id)
        return record

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def _submit(
        self,
        product_key: ProductKey | str,
        agency_id: str,
        target_stock: int,
        reason: str | None,
        justification: str | None,
        actor: Actor,
        adjustment_type: AdjustmentType,
        batch_id: UUID | None = None,
        batch_name: str | None = None,
    ) -> AdjustmentRequestModel:
        key = require_writable_key(product_key)
        reason = self._check_reason(reason)
        justification = self._check_justification(justification)
        target_stock = self._check_target(target_stock)

        with self._storage_errors("submit_adjustment"):
            record = self._load_record(key, agency_id)
            current = record.current_stock
            delta = target_stock - current
            if delta == 0:
                raise NoOpError(key.code, current)
            if delta > 0 and not self._policy.allow_stock_increase:
                raise StockIncreaseNotAllowedError(delta)

            model = AdjustmentRequestModel(
                seq=self._sequence.next_value(SequenceService.ADJUSTMENT_REQUEST),
                product_key=key.code,
                product_id=key.product_id,
                color=key.color,
                size=key.size,
                product_name=record.product_name,
                agency_id=agency_id,
                current_stock_at_request=current,
                quantity_delta=delta,
                target_stock=target_stock,
                reason=reason,
                justification=justification,
                adjustment_type=adjustment_type.value,
                requested_by=actor.user_id,
                requested_by_name=actor.name,
                requested_at=self.clock.now(),
                batch_id=batch_id,
                batch_name=batch_name,
                status=AdjustmentStatus.PENDING.value,
            )
            self.session.add(model)
            self.session.flush()

            self._auditor.record_adjustment_requested(
                request_id=model.id,
                product_key=key.code,
                agency_id=agency_id,
                quantity_delta=delta,
                reason=reason,
                actor_id=actor.user_id,
                batch_id=batch_id,
            )

        logger.info(
            "adjustment_submitted",
            extra={
                "request_id": str(model.id),
                "product_key": key.code,
                "current_stock": current,
                "target_stock": target_stock,
                "quantity_delta": delta,
                "reason": reason,
            },
        )
        return model

    def submit_single(
        self,
        product_key: ProductKey | str,
        agency_id: str,
        target_stock: int,
        reason: str | None,
        justification: str | None,
        requested_by: Actor,
        *,
        adjustment_type: AdjustmentType | str = AdjustmentType.MANUAL,
    ) -> UUID:
        """
        Persist one pending request.

        Returns:
            The new request id.
        """
        agency_id = require_agency(agency_id)
        adjustment_type = self._check_type(adjustment_type)
        with LogContext.bind(actor_id=requested_by.user_id, agency_id=agency_id):
            self._check_requester(requested_by, agency_id)
            model = self._submit(
                product_key,
                agency_id,
                target_stock,
                reason,
                justification,
                requested_by,
                adjustment_type,
            )
        return model.id

    def submit_batch(
        self,
        batch_name: str,
        items: Sequence[BatchItem],
        agency_id: str,
        requested_by: Actor,
        *,
        default_reason: str | None = None,
        adjustment_type: AdjustmentType | str = AdjustmentType.BULK,
    ) -> BatchSubmissionResult:
        """
        Submit many corrections under one batch id.

        ``default_reason`` fills items whose reason is ``None``; an explicit
        empty reason still fails.  Each item is validated and persisted in
        its own SAVEPOINT, so one bad line never blocks the others.
        """
        if batch_name is None or not batch_name.strip():
            raise InvalidBatchError("batch name is required")
        if not items:
            raise InvalidBatchError("batch has no items")
        batch_name = batch_name.strip()
        agency_id = require_agency(agency_id)
        adjustment_type = self._check_type(adjustment_type)
        batch_id = uuid4()

        outcomes: list[SubmissionOutcome] = []
        with LogContext.bind(
            actor_id=requested_by.user_id,
            agency_id=agency_id,
            batch_id=str(batch_id),
        ):
            self._check_requester(requested_by, agency_id)

            for index, item in enumerate(items):
                reason = default_reason if item.reason is None else item.reason
                savepoint = self.session.begin_nested()
                try:
                    model = self._submit(
                        item.product_key,
                        agency_id,
                        item.target_stock,
                        reason,
                        item.justification,
                        requested_by,
                        adjustment_type,
                        batch_id=batch_id,
                        batch_name=batch_name,
                    )
                    savepoint.commit()
                    outcomes.append(
                        SubmissionOutcome(
                            item_index=index,
                            product_key=item.product_key,
                            request_id=model.id,
                        )
                    )
                except StockKernelError as exc:
                    savepoint.rollback()
                    logger.warning(
                        "batch_item_rejected",
                        extra={
                            "item_index": index,
                            "error_code": exc.code,
                            "error_message": str(exc),
                        },
                    )
                    outcomes.append(
                        SubmissionOutcome(
                            item_index=index,
                            product_key=item.product_key,
                            error_code=exc.code,
                            error_message=str(exc),
                        )
                    )
                except Exception:
                    savepoint.rollback()
                    raise

            result = BatchSubmissionResult(
                batch_id=batch_id,
                batch_name=batch_name,
                outcomes=tuple(outcomes),
            )
            logger.info(
                "batch_submitted",
                extra={
                    "batch_name": batch_name,
                    "total_items": len(outcomes),
                    "submitted": len(result.submitted),
                    "failed": len(result.failed),
                },
            )
        return result

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get_request(self, request_id: UUID) -> AdjustmentRequest:
        model = self.session.execute(
            select(AdjustmentRequestModel)
            .where(AdjustmentRequestModel.id == request_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if model is None:
            raise AdjustmentNotFoundError(str(request_id))
        return model.to_dto()

    def list_batch(self, batch_id: UUID) -> list[AdjustmentRequest]:
        """Members of a batch, oldest first."""
        models = self.session.execute(
            select(AdjustmentRequestModel)
            .where(AdjustmentRequestModel.batch_id == batch_id)
            .order_by(AdjustmentRequestModel.seq)
            .execution_options(populate_existing=True)
        ).scalars().all()
        if not models:
            raise BatchNotFoundError(str(batch_id))
        return [m.to_dto() for m in models]
