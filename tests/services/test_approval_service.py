"""
Tests for AdjustmentApprovalService -- the review state machine.

Covers:
- approve(): status, ledger entry, stock update, applied_stock, audit
- Delta applied to the stock current at approval time
- NegativeStockError rolls back status, ledger and stock together
- Unexpected (non-kernel) errors roll the SAVEPOINT back before propagating
- reject(): notes, no ledger or stock mutation
- Guards: reviewer role, unknown request, terminal states
- Conditional transition loses cleanly when the row already left pending
- approve_batch()/reject_batch() in per_item and all_or_nothing modes
"""

from uuid import uuid4

import pytest

from stock_kernel.domain.adjustment import (
    AdjustmentStatus,
    BatchItem,
    ReviewDecision,
    ReviewOutcomeStatus,
)
from stock_kernel.domain.policy import ReconciliationPolicy
from stock_kernel.domain.transactions import TransactionType
from stock_kernel.exceptions import (
    AdjustmentNotFoundError,
    AlreadyReviewedError,
    BatchNotFoundError,
    NegativeStockError,
    PermissionDeniedError,
)
from stock_kernel.services.approval_service import AdjustmentApprovalService
from stock_kernel.services.ledger_service import TransactionLedger

AGENCY = "agency-north"


@pytest.fixture
def submit(adjustment_service, requester):
    def _submit(key, target, reason="Counting Error", justification="recount"):
        return adjustment_service.submit_single(
            key, AGENCY, target, reason, justification, requester
        )

    return _submit


@pytest.fixture
def batch(adjustment_service, register, requester, mug, shirt_red_m, shirt_blue_l):
    """A three-item batch: mug 10->8, red 4->1, blue 6->5."""
    register(mug, opening_stock=10)
    register(shirt_red_m, opening_stock=4)
    register(shirt_blue_l, opening_stock=6)
    return adjustment_service.submit_batch(
        "Quarterly count",
        [
            BatchItem(mug, 8, "two chipped"),
            BatchItem(shirt_red_m, 1, "three missing"),
            BatchItem(shirt_blue_l, 5, "one missing"),
        ],
        AGENCY,
        requester,
        default_reason="Counting Error",
    )


class TestApprove:

    def test_approve_applies_delta(
        self, approval_service, submit, register, ledger, aggregator, reviewer, mug, deterministic_clock
    ):
        register(mug, opening_stock=10)
        request_id = submit(mug, 7)
        deterministic_clock.advance(60)

        approved = approval_service.approve(request_id, reviewer)

        assert approved.status is AdjustmentStatus.APPROVED
        assert approved.reviewed_by == reviewer.user_id
        assert approved.reviewed_by_name == "Rita Reviewer"
        assert approved.reviewed_at == deterministic_clock.now()
        assert approved.applied_stock == 7
        assert aggregator.current_stock(mug, AGENCY) == 7

        entries = list(ledger.query_by_product_agency(mug, AGENCY))
        assert len(entries) == 1
        entry = entries[0]
        assert entry.transaction_type is TransactionType.ADJUSTMENT
        assert entry.quantity == -3
        assert entry.reference_name == "Rita Reviewer"
        assert entry.reference_id == str(request_id)
        assert entry.actor_name == "Rita Reviewer"
        assert entry.source_system == "adjustment_approval"

    def test_delta_applies_to_current_stock(
        self, approval_service, submit, register, post, aggregator, reviewer, mug, captured_logs
    ):
        register(mug, opening_stock=10)
        request_id = submit(mug, 7)
        post(mug, "internal_sale", -2)

        approved = approval_service.approve(request_id, reviewer)

        assert approved.applied_stock == 5
        assert approved.target_stock == 7
        assert aggregator.current_stock(mug, AGENCY) == 5
        assert any(r["message"] == "adjustment_target_drift" for r in captured_logs())

    def test_negative_stock_rolls_everything_back(
        self, approval_service, adjustment_service, submit, register, post, ledger, aggregator, reviewer, mug
    ):
        register(mug, opening_stock=10)
        request_id = submit(mug, 2)
        post(mug, "internal_sale", -5)

        with pytest.raises(NegativeStockError) as exc_info:
            approval_service.approve(request_id, reviewer)

        assert exc_info.value.current_stock == 5
        assert exc_info.value.delta == -8
        assert adjustment_service.get_request(request_id).status is AdjustmentStatus.PENDING
        assert aggregator.current_stock(mug, AGENCY) == 5
        assert ledger.count() == 1

    def test_increase_round_trip(
        self, approval_service, adjustment_service, submit, register, ledger, aggregator, reviewer, mug
    ):
        register(mug, opening_stock=50)
        request_id = submit(mug, 65, reason="Found Items", justification="back room carton")

        request = adjustment_service.get_request(request_id)
        assert request.is_pending
        assert request.current_stock_at_request == 50
        assert request.quantity_delta == 15
        assert aggregator.current_stock(mug, AGENCY) == 50

        approved = approval_service.approve(request_id, reviewer)

        assert approved.applied_stock == 65
        assert not approved.is_pending
        assert aggregator.current_stock(mug, AGENCY) == 65
        (entry,) = ledger.query_by_product_agency(mug, AGENCY)
        assert entry.transaction_type is TransactionType.ADJUSTMENT
        assert entry.quantity == 15

    def test_unexpected_error_rolls_back_transition(
        self, approval_service, adjustment_service, submit, register, session,
        ledger, aggregator, reviewer, mug, monkeypatch,
    ):
        register(mug, opening_stock=50)
        request_id = submit(mug, 40)

        def _fail(self, draft, **kwargs):
            raise RuntimeError("ledger unavailable")

        monkeypatch.setattr(TransactionLedger, "append", _fail)
        with pytest.raises(RuntimeError):
            approval_service.approve(request_id, reviewer)
        monkeypatch.undo()

        assert not session.in_nested_transaction()
        session.commit()
        assert adjustment_service.get_request(request_id).status is AdjustmentStatus.PENDING
        assert aggregator.current_stock(mug, AGENCY) == 50
        assert ledger.count() == 0

    def test_rejected_role(self, approval_service, submit, register, requester, mug):
        register(mug, opening_stock=10)
        request_id = submit(mug, 7)
        with pytest.raises(PermissionDeniedError) as exc_info:
            approval_service.approve(request_id, requester)
        assert exc_info.value.actor_id == requester.user_id

    def test_custom_reviewer_role(
        self, session, deterministic_clock, submit, register, aggregator, mug
    ):
        from stock_kernel.domain.values import Actor

        service = AdjustmentApprovalService(
            session,
            deterministic_clock,
            ReconciliationPolicy(reviewer_roles=("stock_manager",)),
        )
        register(mug, opening_stock=10)
        request_id = submit(mug, 9)
        manager = Actor("u-mgr", "Mo Manager", "stock_manager")
        assert service.approve(request_id, manager).applied_stock == 9

    def test_unknown_request(self, approval_service, reviewer):
        with pytest.raises(AdjustmentNotFoundError):
            approval_service.approve(uuid4(), reviewer)

    def test_approve_twice(self, approval_service, submit, register, aggregator, reviewer, second_reviewer, mug):
        register(mug, opening_stock=10)
        request_id = submit(mug, 7)
        approval_service.approve(request_id, reviewer)
        with pytest.raises(AlreadyReviewedError) as exc_info:
            approval_service.approve(request_id, second_reviewer)
        assert exc_info.value.status == "approved"
        assert aggregator.current_stock(mug, AGENCY) == 7

    def test_conditional_transition_loses_when_not_pending(
        self, approval_service, submit, register, reviewer, second_reviewer, mug
    ):
        register(mug, opening_stock=10)
        request_id = submit(mug, 7)
        approval_service.reject(request_id, reviewer)
        with pytest.raises(AlreadyReviewedError):
            approval_service._compare_and_set(
                request_id, AdjustmentStatus.APPROVED, second_reviewer, None
            )

    def test_approve_logs_event(self, approval_service, submit, register, reviewer, mug, captured_logs):
        register(mug, opening_stock=10)
        request_id = submit(mug, 7)
        approval_service.approve(request_id, reviewer)
        record = [r for r in captured_logs() if r["message"] == "adjustment_approved"][0]
        assert record["stock_before"] == 10
        assert record["stock_after"] == 7
        assert record["request_id"] == str(request_id)


class TestReject:

    def test_reject_records_notes_only(
        self, approval_service, submit, register, ledger, aggregator, reviewer, mug
    ):
        register(mug, opening_stock=10)
        request_id = submit(mug, 7)
        rejected = approval_service.reject(request_id, reviewer, notes="recount first")
        assert rejected.status is AdjustmentStatus.REJECTED
        assert rejected.review_notes == "recount first"
        assert rejected.applied_stock is None
        assert ledger.count() == 0
        assert aggregator.current_stock(mug, AGENCY) == 10

    def test_cannot_approve_after_reject(self, approval_service, submit, register, reviewer, mug):
        register(mug, opening_stock=10)
        request_id = submit(mug, 7)
        approval_service.reject(request_id, reviewer)
        with pytest.raises(AlreadyReviewedError):
            approval_service.approve(request_id, reviewer)

    def test_reject_requires_reviewer(self, approval_service, submit, register, requester, mug):
        register(mug, opening_stock=10)
        request_id = submit(mug, 7)
        with pytest.raises(PermissionDeniedError):
            approval_service.reject(request_id, requester)


class TestBatchReviewPerItem:

    def test_all_members_approved(self, approval_service, batch, aggregator, reviewer, mug, shirt_red_m, shirt_blue_l):
        result = approval_service.approve_batch(batch.batch_id, reviewer)
        assert result.decision is ReviewDecision.APPROVE
        assert result.all_succeeded
        assert [o.applied_stock for o in result.outcomes] == [8, 1, 5]
        assert aggregator.current_stock(mug, AGENCY) == 8
        assert aggregator.current_stock(shirt_red_m, AGENCY) == 1
        assert aggregator.current_stock(shirt_blue_l, AGENCY) == 5

    def test_failure_keeps_other_approvals(
        self, approval_service, adjustment_service, batch, post, aggregator, reviewer, mug, shirt_red_m, shirt_blue_l
    ):
        post(shirt_red_m, "internal_sale", -3)

        result = approval_service.approve_batch(batch.batch_id, reviewer)

        assert [o.status for o in result.outcomes] == [
            ReviewOutcomeStatus.APPROVED,
            ReviewOutcomeStatus.FAILED,
            ReviewOutcomeStatus.APPROVED,
        ]
        assert result.outcomes[1].error_code == "NEGATIVE_STOCK"
        assert (result.succeeded, result.failed) == (2, 1)
        assert aggregator.current_stock(mug, AGENCY) == 8
        assert aggregator.current_stock(shirt_red_m, AGENCY) == 1
        assert aggregator.current_stock(shirt_blue_l, AGENCY) == 5
        statuses = [r.status for r in adjustment_service.list_batch(batch.batch_id)]
        assert statuses == [AdjustmentStatus.APPROVED, AdjustmentStatus.PENDING, AdjustmentStatus.APPROVED]

    def test_already_reviewed_member_reported(self, approval_service, batch, reviewer):
        first_id = batch.outcomes[0].request_id
        approval_service.reject(first_id, reviewer)
        result = approval_service.approve_batch(batch.batch_id, reviewer)
        assert result.outcomes[0].status is ReviewOutcomeStatus.FAILED
        assert result.outcomes[0].error_code == "ALREADY_REVIEWED"
        assert result.succeeded == 2

    def test_reject_batch(self, approval_service, adjustment_service, batch, ledger, reviewer):
        result = approval_service.reject_batch(batch.batch_id, reviewer, notes="redo the count")
        assert result.decision is ReviewDecision.REJECT
        assert all(o.status is ReviewOutcomeStatus.REJECTED for o in result.outcomes)
        members = adjustment_service.list_batch(batch.batch_id)
        assert {m.review_notes for m in members} == {"redo the count"}
        assert ledger.count() == 0

    def test_unknown_batch(self, approval_service, reviewer):
        with pytest.raises(BatchNotFoundError):
            approval_service.approve_batch(uuid4(), reviewer)

    def test_batch_requires_reviewer(self, approval_service, batch, requester):
        with pytest.raises(PermissionDeniedError):
            approval_service.approve_batch(batch.batch_id, requester)

    def test_batch_logs_completion(self, approval_service, batch, reviewer, captured_logs):
        approval_service.approve_batch(batch.batch_id, reviewer)
        record = [r for r in captured_logs() if r["message"] == "batch_review_completed"][0]
        assert record["succeeded"] == 3
        assert record["mode"] == "per_item"
        assert record["batch_id"] == str(batch.batch_id)


class TestBatchReviewAllOrNothing:

    @pytest.fixture
    def strict_service(self, session, deterministic_clock, auditor_service, inventory_service):
        return AdjustmentApprovalService(
            session,
            deterministic_clock,
            ReconciliationPolicy(batch_review_mode="all_or_nothing"),
            auditor=auditor_service,
            inventory_service=inventory_service,
        )

    def test_success_commits_all(self, strict_service, batch, aggregator, reviewer, mug):
        result = strict_service.approve_batch(batch.batch_id, reviewer)
        assert result.all_succeeded
        assert aggregator.current_stock(mug, AGENCY) == 8

    def test_one_failure_rolls_back_batch(
        self, strict_service, adjustment_service, batch, post, ledger, aggregator,
        auditor_service, reviewer, mug, shirt_red_m, shirt_blue_l,
    ):
        post(shirt_red_m, "internal_sale", -3)

        result = strict_service.approve_batch(batch.batch_id, reviewer)

        assert [o.status for o in result.outcomes] == [
            ReviewOutcomeStatus.ROLLED_BACK,
            ReviewOutcomeStatus.FAILED,
            ReviewOutcomeStatus.ROLLED_BACK,
        ]
        assert result.outcomes[1].error_code == "NEGATIVE_STOCK"
        assert result.succeeded == 0
        members = adjustment_service.list_batch(batch.batch_id)
        assert all(m.status is AdjustmentStatus.PENDING for m in members)
        assert aggregator.current_stock(mug, AGENCY) == 10
        assert aggregator.current_stock(shirt_red_m, AGENCY) == 1
        assert aggregator.current_stock(shirt_blue_l, AGENCY) == 6
        assert ledger.count() == 1
        assert auditor_service.validate_chain() is True

    def test_batch_can_be_approved_after_fix(self, strict_service, batch, post, reviewer, shirt_red_m):
        post(shirt_red_m, "internal_sale", -3)
        strict_service.approve_batch(batch.batch_id, reviewer)
        post(shirt_red_m, "external_receipt", 3)
        assert strict_service.approve_batch(batch.batch_id, reviewer).all_succeeded

    def test_unexpected_error_rolls_back_batch(
        self, strict_service, adjustment_service, batch, session, ledger, aggregator,
        reviewer, mug, monkeypatch,
    ):
        original_append = TransactionLedger.append
        calls = []

        def _fail_second(self, draft, **kwargs):
            calls.append(draft)
            if len(calls) == 2:
                raise RuntimeError("ledger unavailable")
            return original_append(self, draft, **kwargs)

        monkeypatch.setattr(TransactionLedger, "append", _fail_second)
        with pytest.raises(RuntimeError):
            strict_service.approve_batch(batch.batch_id, reviewer)
        monkeypatch.undo()

        assert not session.in_nested_transaction()
        session.commit()
        members = adjustment_service.list_batch(batch.batch_id)
        assert all(m.status is AdjustmentStatus.PENDING for m in members)
        assert aggregator.current_stock(mug, AGENCY) == 10
        assert ledger.count() == 0
