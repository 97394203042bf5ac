"""Tests for ReasonService -- the adjustment reason vocabulary."""

import pytest

from stock_kernel.exceptions import UnknownReasonError


class TestReasonService:

    def test_seed_inserts_sorted_vocabulary(self, reason_service):
        added = reason_service.seed(["Theft", ("Counting Error", "Recount"), "  "])
        assert added == ["Theft", "Counting Error"]
        assert reason_service.active_reasons() == ["Counting Error", "Theft"]

    def test_seed_is_idempotent(self, reason_service):
        reason_service.seed(["Theft"])
        assert reason_service.seed(["Theft", "Other"]) == ["Other"]
        assert reason_service.active_reasons() == ["Other", "Theft"]

    def test_deactivate_retires_reason(self, reason_service):
        reason_service.seed(["Theft", "Other"])
        reason_service.deactivate("Theft")
        assert reason_service.active_reasons() == ["Other"]
        assert not reason_service.is_active("Theft")

    def test_seed_does_not_reactivate(self, reason_service):
        reason_service.seed(["Theft"])
        reason_service.deactivate("Theft")
        assert reason_service.seed(["Theft"]) == []
        assert not reason_service.is_active("Theft")

    def test_deactivate_twice_is_noop(self, reason_service):
        reason_service.seed(["Theft"])
        reason_service.deactivate("Theft")
        reason_service.deactivate("Theft")

    def test_deactivate_unknown(self, reason_service):
        with pytest.raises(UnknownReasonError):
            reason_service.deactivate("Nope")
