"""
InventoryService -- authoritative stock counters.

Responsibility:
    Registers inventory records at a counted opening value and provides the
    row-locking primitives every stock mutation goes through.

Invariants enforced:
    - One record per (product key, agency).
    - Opening stock is a manual count: it is written without a ledger entry,
      which is exactly how counted stock legitimately diverges from ledger
      history and why variance exists.
    - Reads for mutation use ``SELECT ... FOR UPDATE`` with populate-existing
      so the value seen is the committed value under the lock, never a stale
      identity-map copy.

Failure modes:
    - DuplicateInventoryRecordError when the record exists.
    - InventoryRecordNotFoundError from ``get``.
    - NegativeStockError for a negative opening count.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock
from stock_kernel.domain.inventory import InventorySnapshot
from stock_kernel.domain.values import (
    Actor,
    ProductKey,
    require_agency,
    require_writable_key,
)
from stock_kernel.exceptions import (
    DuplicateInventoryRecordError,
    InvalidQuantityError,
    InventoryRecordNotFoundError,
    NegativeStockError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.inventory import InventoryRecord
from stock_kernel.services.auditor_service import AuditorService
from stock_kernel.services.base import BaseService

logger = get_logger("services.inventory")


class InventoryService(BaseService[InventoryRecord]):
    """Owns creation of, and locked access to, inventory records."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        auditor: AuditorService | None = None,
    ):
        super().__init__(session, clock)
        self._auditor = auditor or AuditorService(session, self.clock)

    def _select(self, product_key: ProductKey, agency_id: str):
        return select(InventoryRecord).where(
            InventoryRecord.product_key == product_key.code,
            InventoryRecord.agency_id == agency_id,
        )

    def register_item(
        self,
        product_key: ProductKey | str,
        agency_id: str,
        product_name: str | None,
        opening_stock: int,
        actor: Actor,
    ) -> InventorySnapshot:
        """Create the authoritative record at a counted opening value."""
        key = require_writable_key(product_key)
        agency_id = require_agency(agency_id)
        if isinstance(opening_stock, bool) or not isinstance(opening_stock, int):
            raise InvalidQuantityError(opening_stock)
        if opening_stock < 0:
            raise NegativeStockError(key.code, 0, opening_stock)

        with self._storage_errors("register_item"):
            existing = self.session.execute(
                self._select(key, agency_id)
            ).scalar_one_or_none()
            if existing is not None:
                raise DuplicateInventoryRecordError(key.code, agency_id)

            now = self.clock.now()
            record = self._new_record(key, agency_id, now, product_name, opening_stock)
            self.session.add(record)
            self.session.flush()

            self._auditor.record_stock_registered(
                record_id=record.id,
                product_key=key.code,
                agency_id=agency_id,
                opening_stock=opening_stock,
                actor_id=actor.user_id,
            )

        logger.info(
            "inventory_item_registered",
            extra={
                "product_key": key.code,
                "agency_id": agency_id,
                "opening_stock": opening_stock,
                "actor_id": actor.user_id,
            },
        )
        return record.to_dto()

    def get(self, product_key: ProductKey | str, agency_id: str) -> InventorySnapshot:
        key = require_writable_key(product_key)
        record = self.session.execute(
            self._select(key, agency_id)
        ).scalar_one_or_none()
        if record is None:
            raise InventoryRecordNotFoundError(key.code, agency_id)
        return record.to_dto()

    # ------------------------------------------------------------------
    # Locking primitives
    # ------------------------------------------------------------------

    def lock_record(self, product_key: ProductKey, agency_id: str) -> InventoryRecord | None:
        """Row-lock the record and refresh it from the database."""
        return self.session.execute(
            self._select(product_key, agency_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def lock_or_create(
        self, product_key: ProductKey, agency_id: str, now: datetime
    ) -> InventoryRecord:
        """
        Locked record, created at zero when absent.

        Creation races with a concurrent writer are resolved like sequence
        counters: insert in a SAVEPOINT, and on a unique violation re-read
        the winner's row under lock.
        """
        record = self.lock_record(product_key, agency_id)
        if record is not None:
            return record

        savepoint = self.session.begin_nested()
        try:
            record = self._new_record(product_key, agency_id, now)
            self.session.add(record)
            self.session.flush()
            savepoint.commit()
            logger.info(
                "inventory_record_created",
                extra={"product_key": product_key.code, "agency_id": agency_id},
            )
            return record
        except IntegrityError:
            savepoint.rollback()
            record = self.lock_record(product_key, agency_id)
            if record is None:
                raise
            return record

    @staticmethod
    def _new_record(
        key: ProductKey,
        agency_id: str,
        now: datetime,
        product_name: str | None = None,
        current_stock: int = 0,
    ) -> InventoryRecord:
        return InventoryRecord(
            product_key=key.code,
            product_id=key.product_id,
            color=key.color,
            size=key.size,
            agency_id=agency_id,
            product_name=product_name,
            current_stock=current_stock,
            created_at=now,
            updated_at=now,
        )
