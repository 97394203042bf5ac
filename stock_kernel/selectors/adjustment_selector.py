"""
Module: stock_kernel.selectors.adjustment_selector
Responsibility: Review queue and review history for adjustment requests.
Architecture position: Kernel > Selectors.  MUST NOT import from services/.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_kernel.domain.adjustment import (
    AdjustmentRequest,
    AdjustmentStatus,
    BatchGroup,
    PendingQueue,
)
from stock_kernel.exceptions import InvalidQueryError
from stock_kernel.models.adjustment import AdjustmentRequestModel
from stock_kernel.selectors.base import BaseSelector


class AdjustmentSelector(BaseSelector[AdjustmentRequestModel]):

    def __init__(self, session: Session):
        super().__init__(session)

    def pending_queue(self, agency_id: str | None = None) -> PendingQueue:
        """
        Pending requests, oldest first.

        Batched requests are grouped by batch (groups ordered by their first
        member); unbatched requests are listed individually.
        """
        stmt = (
            select(AdjustmentRequestModel)
            .where(AdjustmentRequestModel.status == AdjustmentStatus.PENDING.value)
            .order_by(AdjustmentRequestModel.seq)
            .execution_options(populate_existing=True)
        )
        if agency_id is not None:
            stmt = stmt.where(AdjustmentRequestModel.agency_id == agency_id)
        requests = [m.to_dto() for m in self.session.execute(stmt).scalars()]

        grouped: dict = {}
        individual: list[AdjustmentRequest] = []
        for request in requests:
            if request.is_batched:
                grouped.setdefault(request.batch_id, []).append(request)
            else:
                individual.append(request)

        batches = tuple(
            BatchGroup(
                batch_id=batch_id,
                batch_name=members[0].batch_name,
                requested_by_name=members[0].requested_by_name,
                requested_at=members[0].requested_at,
                requests=tuple(members),
            )
            for batch_id, members in grouped.items()
        )
        return PendingQueue(batches=batches, individual=tuple(individual))

    def review_history(
        self,
        agency_id: str | None = None,
        status: AdjustmentStatus | str | None = None,
        limit: int = 100,
    ) -> list[AdjustmentRequest]:
        """Reviewed requests, most recent review first."""
        if status is None:
            statuses = [AdjustmentStatus.APPROVED.value, AdjustmentStatus.REJECTED.value]
        else:
            try:
                status = AdjustmentStatus(status)
            except ValueError:
                raise InvalidQueryError("status", status, "unknown status") from None
            if status is AdjustmentStatus.PENDING:
                raise InvalidQueryError("status", status.value, "only reviewed requests have a review")
            statuses = [status.value]
        if limit <= 0:
            raise InvalidQueryError("limit", limit, "must be positive")

        stmt = (
            select(AdjustmentRequestModel)
            .where(AdjustmentRequestModel.status.in_(statuses))
            .order_by(
                AdjustmentRequestModel.reviewed_at.desc(),
                AdjustmentRequestModel.seq.desc(),
            )
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        if agency_id is not None:
            stmt = stmt.where(AdjustmentRequestModel.agency_id == agency_id)
        return [m.to_dto() for m in self.session.execute(stmt).scalars()]
