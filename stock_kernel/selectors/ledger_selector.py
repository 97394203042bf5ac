"""
Module: stock_kernel.selectors.ledger_selector
Responsibility: Read-only queries over the stock transaction ledger: ordered
    per-item scans, single-entry lookup, counts and recent agency history.
Architecture position: Kernel > Selectors.  May import from models/, domain/
    and selectors/base.py.  MUST NOT import from services/.

Invariants enforced:
    - Scans are ordered by ``seq`` ascending, the ledger's insertion order.
    - ``LedgerScan`` holds no cursor between iterations: every ``iter()``
      issues a fresh query, so a scan can be re-read after new entries land.

Failure modes:
    - StorageError wraps any SQLAlchemy failure raised while streaming.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterator
from uuid import UUID

from sqlalchemy import Select, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stock_kernel.domain.transactions import TransactionEntry
from stock_kernel.domain.values import ProductKey, coerce_product_key
from stock_kernel.exceptions import LedgerEntryNotFoundError, StorageError
from stock_kernel.models.transaction import StockTransaction
from stock_kernel.selectors.base import BaseSelector

_SCAN_BATCH_SIZE = 500


def _key_filter(stmt: Select, product_key: ProductKey) -> Select:
    if product_key.is_collapsed:
        return stmt.where(StockTransaction.product_id == product_key.product_id)
    return stmt.where(StockTransaction.product_key == product_key.code)


class LedgerScan:
    """
    Lazy, restartable iterable of ledger entries for one item at one agency.

    Nothing is read until iteration starts; rows are streamed in batches and
    converted to frozen ``TransactionEntry`` objects one at a time.
    """

    def __init__(
        self,
        session: Session,
        product_key: ProductKey,
        agency_id: str,
        since: datetime | None = None,
    ):
        self._session = session
        self.product_key = product_key
        self.agency_id = agency_id
        self.since = since

    def _statement(self) -> Select:
        stmt = select(StockTransaction).where(
            StockTransaction.agency_id == self.agency_id
        )
        stmt = _key_filter(stmt, self.product_key)
        if self.since is not None:
            stmt = stmt.where(StockTransaction.occurred_at >= self.since)
        return stmt.order_by(StockTransaction.seq.asc())

    def __iter__(self) -> Iterator[TransactionEntry]:
        try:
            result = self._session.execute(
                self._statement().execution_options(yield_per=_SCAN_BATCH_SIZE)
            )
            for row in result.scalars():
                yield row.to_dto()
        except SQLAlchemyError as exc:
            raise StorageError("ledger_scan", str(exc)) from exc

    def __repr__(self) -> str:
        return f"<LedgerScan {self.product_key.code}@{self.agency_id} since={self.since}>"


class LedgerSelector(BaseSelector[StockTransaction]):
    """Read access to ledger entries."""

    def scan(
        self,
        product_key: ProductKey | str,
        agency_id: str,
        since: datetime | None = None,
    ) -> LedgerScan:
        return LedgerScan(self.session, coerce_product_key(product_key), agency_id, since)

    def get(self, entry_id: UUID) -> TransactionEntry:
        row = self.session.get(StockTransaction, entry_id)
        if row is None:
            raise LedgerEntryNotFoundError(str(entry_id))
        return row.to_dto()

    def count(self, agency_id: str | None = None) -> int:
        stmt = select(func.count(StockTransaction.id))
        if agency_id is not None:
            stmt = stmt.where(StockTransaction.agency_id == agency_id)
        return self.session.execute(stmt).scalar_one()

    def recent_for_agency(self, agency_id: str, limit: int) -> list[TransactionEntry]:
        """Newest first, by insertion order."""
        rows = self.session.execute(
            select(StockTransaction)
            .where(StockTransaction.agency_id == agency_id)
            .order_by(StockTransaction.seq.desc())
            .limit(limit)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def has_activity(self, agency_id: str) -> bool:
        return self.session.execute(
            select(StockTransaction.id)
            .where(StockTransaction.agency_id == agency_id)
            .limit(1)
        ).first() is not None
