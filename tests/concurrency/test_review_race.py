"""
Review races across independent sessions.

Two reviewers working in separate sessions (separate engines on one file
database) try to move the same request out of pending.  Exactly one wins;
the other sees AlreadyReviewedError and leaves no trace.  Stock changes
committed between submission and approval are respected.
"""

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from stock_kernel.db.engine import build_engine, create_tables
from stock_kernel.domain.adjustment import AdjustmentStatus
from stock_kernel.domain.clock import DeterministicClock
from stock_kernel.domain.transactions import TransactionDraft, TransactionType
from stock_kernel.domain.values import Actor, ProductKey
from stock_kernel.exceptions import AlreadyReviewedError
from stock_kernel.models.transaction import StockTransaction
from stock_kernel.selectors.stock_selector import StockAggregator
from stock_kernel.services.adjustment_service import AdjustmentRequestService
from stock_kernel.services.approval_service import AdjustmentApprovalService
from stock_kernel.services.auditor_service import AuditorService
from stock_kernel.services.inventory_service import InventoryService
from stock_kernel.services.ledger_service import TransactionLedger
from stock_kernel.services.reason_service import ReasonService

AGENCY = "agency-north"
MUG = ProductKey("SKU-200")

CLERK = Actor(user_id="u-clerk", display_name="Clara Clerk", role="agency", agency_id=AGENCY)
RITA = Actor(user_id="u-super", display_name="Rita Reviewer", role="superuser")
RAY = Actor(user_id="u-super-2", display_name="Ray Reviewer", role="superuser")


@pytest.fixture
def engines(tmp_path):
    url = f"sqlite:///{tmp_path / 'race.db'}"
    first = build_engine(url)
    second = build_engine(url)
    create_tables(first)
    yield first, second
    first.dispose()
    second.dispose()


@pytest.fixture
def clock():
    return DeterministicClock()


@pytest.fixture
def request_id(engines, clock):
    """A committed pending request: mug 10 -> 7."""
    with Session(bind=engines[0], expire_on_commit=False) as session:
        ReasonService(session, clock).seed(["Counting Error"])
        InventoryService(session, clock).register_item(MUG, AGENCY, "Mug", 10, RITA)
        clock.advance()
        rid = AdjustmentRequestService(session, clock).submit_single(
            MUG, AGENCY, 7, "Counting Error", "recount", CLERK
        )
        session.commit()
    return rid


def _stock(engine):
    with Session(bind=engine) as session:
        return StockAggregator(session).current_stock(MUG, AGENCY)


def _adjustment_entries(engine):
    with Session(bind=engine) as session:
        return session.execute(
            select(func.count())
            .select_from(StockTransaction)
            .where(StockTransaction.transaction_type == TransactionType.ADJUSTMENT.value)
        ).scalar_one()


class TestReviewRace:

    def test_approve_then_reject_loses(self, engines, clock, request_id):
        first, second = engines

        with Session(bind=first, expire_on_commit=False) as session:
            approved = AdjustmentApprovalService(session, clock).approve(request_id, RITA)
            session.commit()
        assert approved.status is AdjustmentStatus.APPROVED

        with Session(bind=second, expire_on_commit=False) as session:
            with pytest.raises(AlreadyReviewedError) as exc_info:
                AdjustmentApprovalService(session, clock).reject(request_id, RAY, "duplicate")
            session.rollback()
        assert exc_info.value.status == "approved"

        assert _stock(second) == 7
        assert _adjustment_entries(second) == 1

    def test_stale_reader_cannot_approve_twice(self, engines, clock, request_id):
        first, second = engines

        # The second reviewer has already loaded the request while pending.
        stale_session = Session(bind=second, expire_on_commit=False)
        stale = AdjustmentRequestService(stale_session, clock).get_request(request_id)
        stale_session.commit()
        assert stale.status is AdjustmentStatus.PENDING

        with Session(bind=first, expire_on_commit=False) as session:
            AdjustmentApprovalService(session, clock).reject(request_id, RITA, "not justified")
            session.commit()

        with pytest.raises(AlreadyReviewedError):
            AdjustmentApprovalService(stale_session, clock).approve(request_id, RAY)
        stale_session.rollback()
        stale_session.close()

        assert _stock(first) == 10
        assert _adjustment_entries(first) == 0


class TestApprovalAgainstMovedStock:

    def test_delta_applies_to_committed_stock(self, engines, clock, request_id):
        first, second = engines

        # A sale lands after the request was submitted.
        with Session(bind=first, expire_on_commit=False) as session:
            clock.advance()
            TransactionLedger(session, clock).append(
                TransactionDraft(
                    product_key=MUG,
                    agency_id=AGENCY,
                    transaction_type=TransactionType.INTERNAL_SALE,
                    quantity=-2,
                )
            )
            session.commit()
        assert _stock(second) == 8

        with Session(bind=second, expire_on_commit=False) as session:
            clock.advance()
            approved = AdjustmentApprovalService(session, clock).approve(request_id, RAY)
            session.commit()

        assert approved.applied_stock == 5
        assert approved.target_stock == 7
        assert _stock(first) == 5

    def test_audit_chain_spans_sessions(self, engines, clock, request_id):
        first, second = engines

        with Session(bind=second, expire_on_commit=False) as session:
            AdjustmentApprovalService(session, clock).approve(request_id, RAY)
            session.commit()

        with Session(bind=first) as session:
            assert AuditorService(session, clock).validate_chain()
