"""
Module: stock_kernel.selectors.reconciliation_selector
Responsibility: Reconciliation Reporter.  Per-agency summary of every
    tracked item with its variance and attention flag, and the agency's
    recent movement history.
Architecture position: Kernel > Selectors.  MUST NOT import from services/.

Invariants enforced:
    - Read-only.
    - One line per key with ledger activity or an inventory record, ordered
      by key code.  With ``collapse_variants`` lines are per product.
    - Variance is reported, never raised.

Failure modes:
    - AgencyNotFoundError when the agency has neither inventory records nor
      ledger entries.
"""

from __future__ import annotations

from dataclasses import replace

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stock_kernel.domain.aggregation import (
    ReconciliationLine,
    StockTally,
    build_aggregate,
    needs_attention,
)
from stock_kernel.domain.policy import ReconciliationPolicy
from stock_kernel.domain.transactions import TransactionEntry
from stock_kernel.domain.values import ProductKey
from stock_kernel.exceptions import AgencyNotFoundError, InvalidQueryError, StorageError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.inventory import InventoryRecord
from stock_kernel.models.transaction import StockTransaction
from stock_kernel.selectors.base import BaseSelector
from stock_kernel.selectors.ledger_selector import LedgerSelector

logger = get_logger("selectors.reconciliation")

_SCAN_BATCH_SIZE = 500


class ReconciliationReporter(BaseSelector[InventoryRecord]):
    """
    Builds reconciliation views for the presentation layer.

    ``summary_by_agency`` streams the agency's ledger once and folds each
    entry into the tally of its key, rather than issuing one scan per item.
    """

    def __init__(self, session: Session, policy: ReconciliationPolicy | None = None):
        super().__init__(session)
        self._policy = policy or ReconciliationPolicy()
        self._ledger = LedgerSelector(session)

    def _report_key(self, key: ProductKey) -> ProductKey:
        return key.collapse() if self._policy.collapse_variants else key

    def summary_by_agency(self, agency_id: str) -> tuple[ReconciliationLine, ...]:
        stock: dict[ProductKey, int] = {}
        names: dict[ProductKey, str | None] = {}
        tallies: dict[ProductKey, StockTally] = {}

        try:
            records = self.session.execute(
                select(InventoryRecord).where(InventoryRecord.agency_id == agency_id)
            ).scalars().all()
            for record in records:
                key = self._report_key(
                    ProductKey(record.product_id, record.color, record.size)
                )
                stock[key] = stock.get(key, 0) + record.current_stock
                if names.get(key) is None:
                    names[key] = record.product_name

            rows = self.session.execute(
                select(StockTransaction)
                .where(StockTransaction.agency_id == agency_id)
                .order_by(StockTransaction.seq.asc())
                .execution_options(yield_per=_SCAN_BATCH_SIZE)
            ).scalars()
            for row in rows:
                entry = row.to_dto()
                key = self._report_key(entry.product_key)
                tallies[key] = tallies.get(key, StockTally.empty()) + StockTally.of(
                    entry, self._policy
                )
        except SQLAlchemyError as exc:
            raise StorageError("reconciliation_summary", str(exc)) from exc

        keys = set(stock) | set(tallies)
        if not keys:
            raise AgencyNotFoundError(agency_id)

        lines = []
        for key in sorted(keys, key=lambda k: k.code):
            aggregate = build_aggregate(
                key,
                agency_id,
                stock.get(key, 0),
                tallies.get(key, StockTally.empty()),
            )
            lines.append(
                ReconciliationLine(
                    aggregate=aggregate,
                    product_name=names.get(key),
                    needs_attention=needs_attention(aggregate.variance, self._policy),
                )
            )

        flagged = sum(1 for line in lines if line.needs_attention)
        logger.info(
            "reconciliation_summary_built",
            extra={
                "agency_id": agency_id,
                "lines": len(lines),
                "needs_attention": flagged,
                "collapse_variants": self._policy.collapse_variants,
            },
        )
        return tuple(lines)

    def history(self, agency_id: str, limit: int = 50) -> tuple[TransactionEntry, ...]:
        """
        Most recent ``limit`` entries at the agency, newest first.

        Entries without a recorded actor are attributed to ``"System"``.
        """
        if limit <= 0:
            raise InvalidQueryError("limit", limit, "must be positive")
        if not self._ledger.has_activity(agency_id) and not self._has_records(agency_id):
            raise AgencyNotFoundError(agency_id)
        return tuple(
            replace(entry, actor_name=entry.display_actor)
            for entry in self._ledger.recent_for_agency(agency_id, limit)
        )

    def _has_records(self, agency_id: str) -> bool:
        return self.session.execute(
            select(InventoryRecord.id)
            .where(InventoryRecord.agency_id == agency_id)
            .limit(1)
        ).first() is not None
