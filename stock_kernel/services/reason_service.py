"""
ReasonService -- controlled vocabulary of adjustment reasons.

Reasons are seeded from configuration and can be retired, never deleted:
historical requests keep pointing at the name they were raised with.
"""

from __future__ import annotations

from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock
from stock_kernel.exceptions import UnknownReasonError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.adjustment import AdjustmentReason
from stock_kernel.services.auditor_service import AuditorService
from stock_kernel.services.base import BaseService

logger = get_logger("services.reason")

SYSTEM_ACTOR_ID = "system"


class ReasonService(BaseService[AdjustmentReason]):

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        auditor: AuditorService | None = None,
    ):
        super().__init__(session, clock)
        self._auditor = auditor or AuditorService(session, self.clock)

    def _find(self, name: str) -> AdjustmentReason | None:
        return self.session.execute(
            select(AdjustmentReason).where(AdjustmentReason.name == name)
        ).scalar_one_or_none()

    def seed(
        self,
        reasons: Iterable[str | tuple[str, str | None]],
        actor_id: str = SYSTEM_ACTOR_ID,
    ) -> list[str]:
        """
        Insert reasons that do not exist yet.  Idempotent.

        Each item is a name or a ``(name, description)`` pair.  Existing
        reasons, active or retired, are left untouched.

        Returns:
            Names actually inserted.
        """
        added: list[str] = []
        with self._storage_errors("seed_reasons"):
            for item in reasons:
                name, description = (item, None) if isinstance(item, str) else item
                name = name.strip()
                if not name or self._find(name) is not None:
                    continue
                reason = AdjustmentReason(
                    name=name,
                    description=description,
                    is_active=True,
                    created_at=self.clock.now(),
                )
                self.session.add(reason)
                self.session.flush()
                self._auditor.record_reason_added(reason.id, name, actor_id)
                added.append(name)

        if added:
            logger.info("adjustment_reasons_seeded", extra={"added": added})
        return added

    def deactivate(self, name: str, actor_id: str = SYSTEM_ACTOR_ID) -> None:
        reason = self._find(name)
        if reason is None:
            raise UnknownReasonError(name)
        if not reason.is_active:
            return
        with self._storage_errors("deactivate_reason"):
            reason.is_active = False
            self.session.flush()
            self._auditor.record_reason_deactivated(reason.id, name, actor_id)
        logger.info("adjustment_reason_deactivated", extra={"reason": name})

    def active_reasons(self) -> list[str]:
        return list(
            self.session.execute(
                select(AdjustmentReason.name)
                .where(AdjustmentReason.is_active.is_(True))
                .order_by(AdjustmentReason.name)
            ).scalars()
        )

    def is_active(self, name: str) -> bool:
        return self.session.execute(
            select(AdjustmentReason.id).where(
                AdjustmentReason.name == name,
                AdjustmentReason.is_active.is_(True),
            )
        ).first() is not None
