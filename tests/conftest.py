"""
Pytest fixtures for the stock kernel test suite.

Provides:
- SQLite in-memory database sessions (fresh schema per test)
- Deterministic clock, actors, seeded adjustment reasons
- Wired services and selectors
- Captured structured logs

Concurrency tests build their own file-backed engines; see
tests/concurrency/.
"""

import json
import logging
from io import StringIO
from typing import Generator

import pytest
from sqlalchemy.orm import Session

from stock_kernel.db.engine import build_engine, create_tables
from stock_kernel.domain.clock import DeterministicClock
from stock_kernel.domain.policy import ReconciliationPolicy
from stock_kernel.domain.transactions import TransactionDraft, TransactionType
from stock_kernel.domain.values import Actor, ProductKey
from stock_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from stock_kernel.selectors.adjustment_selector import AdjustmentSelector
from stock_kernel.selectors.reconciliation_selector import ReconciliationReporter
from stock_kernel.selectors.stock_selector import StockAggregator
from stock_kernel.services.adjustment_service import AdjustmentRequestService
from stock_kernel.services.approval_service import AdjustmentApprovalService
from stock_kernel.services.auditor_service import AuditorService
from stock_kernel.services.inventory_service import InventoryService
from stock_kernel.services.ledger_service import TransactionLedger
from stock_kernel.services.reason_service import ReasonService

AGENCY = "agency-north"
OTHER_AGENCY = "agency-south"

SEEDED_REASONS = ("Counting Error", "Damaged Goods", "Found Items", "Lost Items")


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture stock_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, ledger):
            ledger.append(...)
            logs = captured_logs()
            assert any(r["message"] == "ledger_entry_appended" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("stock_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def engine():
    """Fresh in-memory SQLite database with the full schema."""
    eng = build_engine("sqlite://")
    create_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine) -> Generator[Session, None, None]:
    sess = Session(bind=engine, expire_on_commit=False)
    yield sess
    sess.rollback()
    sess.close()


# =============================================================================
# Clock, policy, actors
# =============================================================================


@pytest.fixture
def deterministic_clock():
    return DeterministicClock()


@pytest.fixture
def policy():
    return ReconciliationPolicy()


@pytest.fixture
def requester():
    return Actor(user_id="u-clerk", display_name="Clara Clerk", role="agency", agency_id=AGENCY)


@pytest.fixture
def other_requester():
    return Actor(user_id="u-south", display_name="Sam South", role="agency", agency_id=OTHER_AGENCY)


@pytest.fixture
def reviewer():
    return Actor(user_id="u-super", display_name="Rita Reviewer", role="superuser")


@pytest.fixture
def second_reviewer():
    return Actor(user_id="u-super-2", display_name="Ray Reviewer", role="superuser")


# =============================================================================
# Services and selectors
# =============================================================================


@pytest.fixture
def auditor_service(session, deterministic_clock):
    return AuditorService(session, deterministic_clock)


@pytest.fixture
def inventory_service(session, deterministic_clock, auditor_service):
    return InventoryService(session, deterministic_clock, auditor_service)


@pytest.fixture
def reason_service(session, deterministic_clock, auditor_service):
    return ReasonService(session, deterministic_clock, auditor_service)


@pytest.fixture
def seeded_reasons(reason_service):
    reason_service.seed(SEEDED_REASONS)
    return SEEDED_REASONS


@pytest.fixture
def ledger(session, deterministic_clock, policy, inventory_service):
    return TransactionLedger(
        session, deterministic_clock, policy, inventory_service=inventory_service
    )


@pytest.fixture
def adjustment_service(session, deterministic_clock, policy, auditor_service, reason_service, seeded_reasons):
    return AdjustmentRequestService(
        session,
        deterministic_clock,
        policy,
        auditor=auditor_service,
        reason_service=reason_service,
    )


@pytest.fixture
def approval_service(session, deterministic_clock, policy, auditor_service, ledger, inventory_service):
    return AdjustmentApprovalService(
        session,
        deterministic_clock,
        policy,
        auditor=auditor_service,
        ledger=ledger,
        inventory_service=inventory_service,
    )


@pytest.fixture
def aggregator(session, policy):
    return StockAggregator(session, policy)


@pytest.fixture
def reporter(session, policy):
    return ReconciliationReporter(session, policy)


@pytest.fixture
def adjustment_selector(session):
    return AdjustmentSelector(session)


# =============================================================================
# Data helpers
# =============================================================================


@pytest.fixture
def shirt_red_m():
    return ProductKey("SKU-100", "Red", "M")


@pytest.fixture
def shirt_blue_l():
    return ProductKey("SKU-100", "Blue", "L")


@pytest.fixture
def mug():
    return ProductKey("SKU-200")


@pytest.fixture
def register(inventory_service, reviewer):
    """Register an inventory record at a counted opening value."""

    def _register(key, opening_stock=0, agency_id=AGENCY, product_name=None):
        return inventory_service.register_item(
            key, agency_id, product_name or f"Product {key.product_id}", opening_stock, reviewer
        )

    return _register


@pytest.fixture
def post(ledger, deterministic_clock):
    """Append one movement; each call advances the clock by a second."""

    def _post(key, transaction_type, quantity, agency_id=AGENCY, **kwargs):
        deterministic_clock.advance()
        return ledger.append(
            TransactionDraft(
                product_key=key,
                agency_id=agency_id,
                transaction_type=TransactionType(transaction_type),
                quantity=quantity,
                **kwargs,
            )
        )

    return _post
