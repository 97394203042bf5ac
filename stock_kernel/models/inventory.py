"""
Module: stock_kernel.models.inventory
Responsibility: ORM persistence for authoritative stock counters.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One counter per (product_key, agency_id) (unique constraint).
    - ``current_stock`` is only written under a row lock, by a ledger posting
      that applies to stock or by opening registration.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base

if TYPE_CHECKING:
    from stock_kernel.domain.inventory import InventorySnapshot


class InventoryRecord(Base):
    """Authoritative stock for one product variant at one agency."""

    __tablename__ = "inventory_records"

    __table_args__ = (
        UniqueConstraint("product_key", "agency_id", name="uq_inventory_records_key_agency"),
        Index("ix_inventory_records_agency", "agency_id"),
        Index("ix_inventory_records_product_agency", "product_id", "agency_id"),
    )

    product_key: Mapped[str] = mapped_column(String(255), nullable=False)
    product_id: Mapped[str] = mapped_column(String(100), nullable=False)
    color: Mapped[str] = mapped_column(String(100), nullable=False)
    size: Mapped[str] = mapped_column(String(100), nullable=False)
    agency_id: Mapped[str] = mapped_column(String(100), nullable=False)

    product_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    current_stock: Mapped[int] = mapped_column(nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return (
            f"<InventoryRecord {self.product_key}@{self.agency_id} "
            f"stock={self.current_stock}>"
        )

    def to_dto(self) -> InventorySnapshot:
        from stock_kernel.domain.inventory import InventorySnapshot
        from stock_kernel.domain.values import ProductKey

        return InventorySnapshot(
            id=self.id,
            product_key=ProductKey(self.product_id, self.color, self.size),
            agency_id=self.agency_id,
            current_stock=self.current_stock,
            product_name=self.product_name,
            updated_at=self.updated_at,
        )
