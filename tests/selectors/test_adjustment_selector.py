"""Tests for AdjustmentSelector -- review queue and review history."""

import pytest

from stock_kernel.domain.adjustment import AdjustmentStatus, BatchItem
from stock_kernel.exceptions import InvalidQueryError

AGENCY = "agency-north"


@pytest.fixture
def stocked(register, mug, shirt_red_m, shirt_blue_l):
    register(mug, opening_stock=10)
    register(shirt_red_m, opening_stock=4)
    register(shirt_blue_l, opening_stock=6)
    register(mug, opening_stock=3, agency_id="agency-south")


class TestPendingQueue:

    def test_groups_batches_and_singles(
        self, stocked, adjustment_service, adjustment_selector, requester, reviewer, mug, shirt_red_m, shirt_blue_l
    ):
        single_id = adjustment_service.submit_single(mug, AGENCY, 9, "Lost Items", "one gone", requester)
        batch = adjustment_service.submit_batch(
            "Shelf B",
            [BatchItem(shirt_red_m, 2, "two gone"), BatchItem(shirt_blue_l, 8, "two found")],
            AGENCY,
            requester,
            default_reason="Counting Error",
        )
        adjustment_service.submit_single(mug, "agency-south", 1, "Lost Items", "south", reviewer)

        queue = adjustment_selector.pending_queue(AGENCY)

        assert [r.id for r in queue.individual] == [single_id]
        assert len(queue.batches) == 1
        group = queue.batches[0]
        assert group.batch_id == batch.batch_id
        assert group.batch_name == "Shelf B"
        assert group.requested_by_name == "Clara Clerk"
        assert group.total_items == 2
        assert group.net_delta == 0
        assert queue.total == 3
        assert adjustment_selector.pending_queue().total == 4

    def test_reviewed_requests_leave_queue(
        self, stocked, adjustment_service, approval_service, adjustment_selector, requester, reviewer, mug
    ):
        request_id = adjustment_service.submit_single(mug, AGENCY, 9, "Lost Items", "one gone", requester)
        approval_service.approve(request_id, reviewer)
        assert adjustment_selector.pending_queue(AGENCY).total == 0


class TestReviewHistory:

    def test_newest_review_first_and_filters(
        self, stocked, adjustment_service, approval_service, adjustment_selector,
        requester, reviewer, deterministic_clock, mug, shirt_red_m, shirt_blue_l,
    ):
        first = adjustment_service.submit_single(mug, AGENCY, 9, "Lost Items", "a", requester)
        second = adjustment_service.submit_single(shirt_red_m, AGENCY, 3, "Lost Items", "b", requester)
        adjustment_service.submit_single(shirt_blue_l, AGENCY, 5, "Lost Items", "c", requester)

        approval_service.approve(first, reviewer)
        deterministic_clock.advance(30)
        approval_service.reject(second, reviewer, notes="no")

        history = adjustment_selector.review_history(AGENCY)
        assert [r.id for r in history] == [second, first]

        approved = adjustment_selector.review_history(AGENCY, status="approved")
        assert [r.id for r in approved] == [first]
        assert approved[0].status is AdjustmentStatus.APPROVED

        assert adjustment_selector.review_history("agency-south") == []
        assert len(adjustment_selector.review_history(limit=1)) == 1

    def test_pending_is_not_a_history_status(self, adjustment_selector):
        with pytest.raises(InvalidQueryError) as exc_info:
            adjustment_selector.review_history(status="pending")
        assert exc_info.value.parameter == "status"

    def test_unknown_status(self, adjustment_selector):
        with pytest.raises(InvalidQueryError):
            adjustment_selector.review_history(status="archived")

    def test_limit_must_be_positive(self, adjustment_selector):
        with pytest.raises(InvalidQueryError):
            adjustment_selector.review_history(limit=0)
