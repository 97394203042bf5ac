"""
Module: stock_kernel.selectors.stock_selector
Responsibility: Stock Aggregator.  Combines a ledger scan with the
    authoritative counter to produce IN/OUT totals, calculated balance and
    variance for one item at one agency.
Architecture position: Kernel > Selectors.  MUST NOT import from services/.

Invariants enforced:
    - The fold itself lives in ``domain.aggregation`` and is pure.
    - A collapsed key sums every variant's counter and scans every variant's
      entries.
"""

from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from stock_kernel.domain.aggregation import StockAggregate, build_aggregate, fold_entries
from stock_kernel.domain.policy import ReconciliationPolicy
from stock_kernel.domain.values import ProductKey, coerce_product_key
from stock_kernel.models.inventory import InventoryRecord
from stock_kernel.selectors.base import BaseSelector
from stock_kernel.selectors.ledger_selector import LedgerSelector


class StockAggregator(BaseSelector[InventoryRecord]):

    def __init__(self, session: Session, policy: ReconciliationPolicy | None = None):
        super().__init__(session)
        self._policy = policy or ReconciliationPolicy()
        self._ledger = LedgerSelector(session)

    def current_stock(self, product_key: ProductKey | str, agency_id: str) -> int:
        """Authoritative stock; 0 when no record exists."""
        key = coerce_product_key(product_key)
        stmt = select(func.coalesce(func.sum(InventoryRecord.current_stock), 0)).where(
            InventoryRecord.agency_id == agency_id
        )
        if key.is_collapsed:
            stmt = stmt.where(InventoryRecord.product_id == key.product_id)
        else:
            stmt = stmt.where(InventoryRecord.product_key == key.code)
        return int(self.session.execute(stmt).scalar_one())

    def aggregate(self, product_key: ProductKey | str, agency_id: str) -> StockAggregate:
        key = coerce_product_key(product_key)
        tally = fold_entries(self._ledger.scan(key, agency_id), self._policy)
        return build_aggregate(key, agency_id, self.current_stock(key, agency_id), tally)
