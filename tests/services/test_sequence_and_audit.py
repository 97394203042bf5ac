"""
Tests for SequenceService and AuditorService.

Covers:
- Monotonic, gap-free allocation per sequence name
- Hash chain validation after a mixed workflow
- Tamper detection
"""

import pytest
from sqlalchemy import update

from stock_kernel.exceptions import AuditChainBrokenError
from stock_kernel.models.audit_event import AuditAction, AuditEvent
from stock_kernel.services.sequence_service import SequenceService

AGENCY = "agency-north"


class TestSequenceService:

    def test_allocation_is_monotonic_per_name(self, session):
        seq = SequenceService(session)
        assert seq.current_value("custom") is None
        assert [seq.next_value("custom") for _ in range(3)] == [1, 2, 3]
        assert seq.next_value("other") == 1
        assert seq.current_value("custom") == 3


class TestAuditChain:

    def test_chain_validates_after_workflow(
        self, adjustment_service, approval_service, auditor_service, register,
        requester, reviewer, mug, shirt_red_m,
    ):
        register(mug, opening_stock=10)
        register(shirt_red_m, opening_stock=4)
        approved_id = adjustment_service.submit_single(
            mug, AGENCY, 8, "Damaged Goods", "two chipped", requester
        )
        rejected_id = adjustment_service.submit_single(
            shirt_red_m, AGENCY, 6, "Found Items", "behind shelf", requester
        )
        approval_service.approve(approved_id, reviewer)
        approval_service.reject(rejected_id, reviewer, notes="recount first")

        assert auditor_service.validate_chain() is True
        assert auditor_service.get_trace("AdjustmentRequest", approved_id).actions == (
            AuditAction.ADJUSTMENT_REQUESTED,
            AuditAction.ADJUSTMENT_APPROVED,
        )
        assert auditor_service.get_trace("AdjustmentRequest", rejected_id).actions == (
            AuditAction.ADJUSTMENT_REQUESTED,
            AuditAction.ADJUSTMENT_REJECTED,
        )

    def test_empty_chain_is_valid(self, auditor_service):
        assert auditor_service.validate_chain() is True

    def test_tampered_hash_detected(self, session, auditor_service, register, mug):
        register(mug, opening_stock=1)
        register(mug, opening_stock=1, agency_id="agency-south")
        # Bulk UPDATE bypasses the ORM immutability listeners.
        session.execute(
            update(AuditEvent)
            .where(AuditEvent.seq == 1)
            .values(hash="0" * 64)
            .execution_options(synchronize_session=False)
        )
        session.expire_all()
        with pytest.raises(AuditChainBrokenError):
            auditor_service.validate_chain()
