"""
Module: stock_kernel.models.audit_event
Responsibility: ORM persistence for the tamper-evident audit hash chain.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Audit records are append-only; no UPDATE or DELETE.
    - hash = H(entity_type | entity_id | action | payload_hash | prev_hash),
      validated by AuditorService.
    - seq is monotonically increasing, allocated by SequenceService.

Every adjustment submission, approval and rejection, every opening stock
registration and every reason catalog change produces an AuditEvent.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base, UUIDString


class AuditAction(str, Enum):
    """Types of auditable actions."""

    ADJUSTMENT_REQUESTED = "adjustment_requested"
    ADJUSTMENT_APPROVED = "adjustment_approved"
    ADJUSTMENT_REJECTED = "adjustment_rejected"

    STOCK_REGISTERED = "stock_registered"

    REASON_ADDED = "reason_added"
    REASON_DEACTIVATED = "reason_deactivated"


class AuditEvent(Base):
    """
    Audit event with hash chain for tamper evidence.

    Rows are never updated or deleted.  Each row's hash includes the previous
    row's hash, so rewriting any earlier row breaks every later hash.
    ``prev_hash`` is None only for the genesis event.
    """

    __tablename__ = "audit_events"

    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
        Index("idx_audit_action", "action"),
    )

    seq: Mapped[int] = mapped_column(nullable=False, unique=True)

    # e.g. "AdjustmentRequest", "InventoryRecord", "AdjustmentReason"
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)

    actor_id: Mapped[str] = mapped_column(String(100), nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditEvent {self.action} on {self.entity_type}:{self.entity_id}>"

    @property
    def is_genesis(self) -> bool:
        return self.prev_hash is None
