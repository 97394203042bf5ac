"""
AuditorService -- tamper-evident audit trail and hash chain maintenance.

Responsibility:
    Creates immutable, hash-chained audit events for every significant
    state change of the adjustment workflow and the stock catalog, and
    validates the chain on demand.

Invariants enforced:
    - Sequence monotonicity via SequenceService.
    - Chain integrity: ``hash = H(entity_type, entity_id, action,
      payload_hash, prev_hash)``.  Every event links to its predecessor.
    - Append-only: audit events are never modified or deleted.

Failure modes:
    - AuditChainBrokenError: a recomputed hash does not match the stored
      hash, or prev_hash does not match the predecessor's hash.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.exceptions import AuditChainBrokenError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.audit_event import AuditAction, AuditEvent
from stock_kernel.services.sequence_service import SequenceService
from stock_kernel.utils.hashing import hash_audit_event, hash_payload

logger = get_logger("services.auditor")


@dataclass(frozen=True)
class AuditTraceEntry:
    seq: int
    action: AuditAction
    occurred_at: datetime
    actor_id: str
    payload: dict[str, Any]
    hash: str


@dataclass(frozen=True)
class AuditTrace:
    """All audit events for one entity, oldest first."""

    entity_type: str
    entity_id: UUID
    entries: tuple[AuditTraceEntry, ...]

    @property
    def actions(self) -> tuple[AuditAction, ...]:
        return tuple(e.action for e in self.entries)


class AuditorService:
    """
    Creates and validates tamper-evident audit events.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequence_service = SequenceService(session)

    def _get_last_hash(self) -> str | None:
        return self._session.execute(
            select(AuditEvent.hash)
            .order_by(AuditEvent.seq.desc())
            .limit(1)
        ).scalar_one_or_none()

    def _create_audit_event(
        self,
        entity_type: str,
        entity_id: UUID,
        action: AuditAction,
        actor_id: str,
        payload: dict[str, Any] | None = None,
    ) -> AuditEvent:
        seq = self._sequence_service.next_value(SequenceService.AUDIT_EVENT)
        prev_hash = self._get_last_hash()

        payload_data = payload or {}
        computed_payload_hash = hash_payload(payload_data)

        event_hash = hash_audit_event(
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action.value,
            payload_hash=computed_payload_hash,
            prev_hash=prev_hash,
        )

        audit_event = AuditEvent(
            seq=seq,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action.value,
            actor_id=actor_id,
            occurred_at=self._clock.now(),
            payload=payload_data,
            payload_hash=computed_payload_hash,
            prev_hash=prev_hash,
            hash=event_hash,
        )
        self._session.add(audit_event)
        self._session.flush()

        logger.info(
            "audit_event_created",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": action.value,
                "seq": seq,
            },
        )
        return audit_event

    # Adjustment workflow

    def record_adjustment_requested(
        self,
        request_id: UUID,
        product_key: str,
        agency_id: str,
        quantity_delta: int,
        reason: str,
        actor_id: str,
        batch_id: UUID | None = None,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="AdjustmentRequest",
            entity_id=request_id,
            action=AuditAction.ADJUSTMENT_REQUESTED,
            actor_id=actor_id,
            payload={
                "product_key": product_key,
                "agency_id": agency_id,
                "quantity_delta": quantity_delta,
                "reason": reason,
                "batch_id": str(batch_id) if batch_id else None,
            },
        )

    def record_adjustment_approved(
        self,
        request_id: UUID,
        ledger_entry_id: UUID,
        stock_before: int,
        stock_after: int,
        actor_id: str,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="AdjustmentRequest",
            entity_id=request_id,
            action=AuditAction.ADJUSTMENT_APPROVED,
            actor_id=actor_id,
            payload={
                "ledger_entry_id": str(ledger_entry_id),
                "stock_before": stock_before,
                "stock_after": stock_after,
            },
        )

    def record_adjustment_rejected(
        self,
        request_id: UUID,
        notes: str | None,
        actor_id: str,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="AdjustmentRequest",
            entity_id=request_id,
            action=AuditAction.ADJUSTMENT_REJECTED,
            actor_id=actor_id,
            payload={"notes": notes},
        )

    # Catalog

    def record_stock_registered(
        self,
        record_id: UUID,
        product_key: str,
        agency_id: str,
        opening_stock: int,
        actor_id: str,
    ) -> AuditEvent:
        """Opening stock bypasses the ledger, so this event is its only trace."""
        return self._create_audit_event(
            entity_type="InventoryRecord",
            entity_id=record_id,
            action=AuditAction.STOCK_REGISTERED,
            actor_id=actor_id,
            payload={
                "product_key": product_key,
                "agency_id": agency_id,
                "opening_stock": opening_stock,
            },
        )

    def record_reason_added(self, reason_id: UUID, name: str, actor_id: str) -> AuditEvent:
        return self._create_audit_event(
            entity_type="AdjustmentReason",
            entity_id=reason_id,
            action=AuditAction.REASON_ADDED,
            actor_id=actor_id,
            payload={"name": name},
        )

    def record_reason_deactivated(
        self, reason_id: UUID, name: str, actor_id: str
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="AdjustmentReason",
            entity_id=reason_id,
            action=AuditAction.REASON_DEACTIVATED,
            actor_id=actor_id,
            payload={"name": name},
        )

    # Chain validation

    def validate_chain(self) -> bool:
        """
        Recompute every hash and check every link.

        Raises:
            AuditChainBrokenError: at the first event that does not verify.
        """
        events = self._session.execute(
            select(AuditEvent).order_by(AuditEvent.seq)
        ).scalars().all()

        if not events:
            return True

        if not events[0].is_genesis:
            logger.critical(
                "audit_chain_broken", extra={"audit_event_id": str(events[0].id)}
            )
            raise AuditChainBrokenError(str(events[0].id), "None", events[0].prev_hash)

        for i, event in enumerate(events):
            expected_hash = hash_audit_event(
                entity_type=event.entity_type,
                entity_id=str(event.entity_id),
                action=event.action,
                payload_hash=event.payload_hash,
                prev_hash=event.prev_hash,
            )
            if event.hash != expected_hash:
                logger.critical(
                    "audit_chain_broken", extra={"audit_event_id": str(event.id)}
                )
                raise AuditChainBrokenError(str(event.id), expected_hash, event.hash)

            if i > 0 and event.prev_hash != events[i - 1].hash:
                logger.critical(
                    "audit_chain_broken", extra={"audit_event_id": str(event.id)}
                )
                raise AuditChainBrokenError(
                    str(event.id), events[i - 1].hash, event.prev_hash or "None"
                )

        logger.info("audit_chain_valid", extra={"event_count": len(events)})
        return True

    def get_trace(self, entity_type: str, entity_id: UUID) -> AuditTrace:
        events = self._session.execute(
            select(AuditEvent)
            .where(
                AuditEvent.entity_type == entity_type,
                AuditEvent.entity_id == entity_id,
            )
            .order_by(AuditEvent.seq)
        ).scalars().all()

        return AuditTrace(
            entity_type=entity_type,
            entity_id=entity_id,
            entries=tuple(
                AuditTraceEntry(
                    seq=event.seq,
                    action=AuditAction(event.action),
                    occurred_at=event.occurred_at,
                    actor_id=event.actor_id,
                    payload=event.payload or {},
                    hash=event.hash,
                )
                for event in events
            ),
        )
