"""Inventory record snapshot (``stock_kernel.domain.inventory``)."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from stock_kernel.domain.values import ProductKey


@dataclass(frozen=True)
class InventorySnapshot:
    """Authoritative stock counter for one (product key, agency) pair."""

    id: UUID
    product_key: ProductKey
    agency_id: str
    current_stock: int
    product_name: str | None = None
    updated_at: datetime | None = None
