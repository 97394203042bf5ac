"""
Module: stock_kernel.models.transaction
Responsibility: ORM persistence for the append-only stock transaction ledger.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Rows are append-only: no UPDATE or DELETE through the ORM (see
      db/immutability.py).  Corrections are new ``adjustment`` rows.
    - ``quantity`` is never zero (check constraint).
    - ``seq`` is unique and allocated from the locked sequence counter, so
      insertion order is total even when business timestamps collide.

Audit relevance:
    The ledger is the transactional history against which counted stock is
    reconciled.  Every approved adjustment lands here with the request id
    in ``reference_id`` and the reviewer in ``reference_name``.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base

if TYPE_CHECKING:
    from stock_kernel.domain.transactions import TransactionEntry


class StockTransaction(Base):
    """One normalized stock movement."""

    __tablename__ = "stock_transactions"

    __table_args__ = (
        CheckConstraint("quantity <> 0", name="ck_stock_transactions_nonzero_qty"),
        CheckConstraint(
            "transaction_type IN ('external_receipt', 'internal_sale', "
            "'return_customer', 'return_company', 'adjustment')",
            name="ck_stock_transactions_valid_type",
        ),
        # Ordered range scan by (product_key, agency_id)
        Index("ix_stock_transactions_key_agency_seq", "product_key", "agency_id", "seq"),
        # Collapsed-key scans across variants
        Index("ix_stock_transactions_product_agency", "product_id", "agency_id"),
        Index("ix_stock_transactions_agency_seq", "agency_id", "seq"),
    )

    seq: Mapped[int] = mapped_column(nullable=False, unique=True)

    product_key: Mapped[str] = mapped_column(String(255), nullable=False)
    product_id: Mapped[str] = mapped_column(String(100), nullable=False)
    color: Mapped[str] = mapped_column(String(100), nullable=False)
    size: Mapped[str] = mapped_column(String(100), nullable=False)
    agency_id: Mapped[str] = mapped_column(String(100), nullable=False)

    transaction_type: Mapped[str] = mapped_column(String(50), nullable=False)
    # Signed: positive increases stock
    quantity: Mapped[int] = mapped_column(nullable=False)

    reference_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    reference_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    occurred_at: Mapped[datetime] = mapped_column(nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(nullable=False)

    source_system: Mapped[str] = mapped_column(String(50), nullable=False, default="manual")
    actor_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    actor_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<StockTransaction seq={self.seq} {self.transaction_type} "
            f"{self.product_key}@{self.agency_id} qty={self.quantity}>"
        )

    def to_dto(self) -> TransactionEntry:
        """Convert ORM row to the frozen ledger entry."""
        from stock_kernel.domain.transactions import TransactionEntry, TransactionType
        from stock_kernel.domain.values import ProductKey

        return TransactionEntry(
            id=self.id,
            seq=self.seq,
            product_key=ProductKey(self.product_id, self.color, self.size),
            agency_id=self.agency_id,
            transaction_type=TransactionType(self.transaction_type),
            quantity=self.quantity,
            occurred_at=self.occurred_at,
            recorded_at=self.recorded_at,
            reference_name=self.reference_name,
            reference_id=self.reference_id,
            source_system=self.source_system,
            actor_id=self.actor_id,
            actor_name=self.actor_name,
            notes=self.notes,
        )
