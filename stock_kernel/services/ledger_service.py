"""
TransactionLedger -- append-only log of normalized stock movements.

Responsibility:
    Single write path for stock movements.  Upstream producers (supplier
    invoice sync, sales invoicing, returns) and the approval workflow all
    call ``append``; nothing ever updates or deletes an entry.

Invariants enforced:
    - Append-only: entries are immutable once flushed (ORM listeners).
    - ``quantity`` is a non-zero integer.
    - Closed type set: unknown transaction types are rejected here, at the
      boundary, rather than bucketed silently downstream.
    - Direction: inbound types carry positive quantities, outbound types
      negative; ``adjustment`` may carry either sign.
    - Ordering: ``seq`` comes from the locked sequence counter, so entries
      for one item are totally ordered by insertion even when business
      timestamps collide.
    - Applying to stock happens in the same flush as the insert, on the row
      locked by ``InventoryService.lock_or_create``.

Failure modes:
    - ValidationError subclasses for malformed drafts (raised before any
      write).
    - StorageError wrapping SQLAlchemy failures.  Never retried here.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from stock_kernel.domain.aggregation import StockClass, classify
from stock_kernel.domain.clock import Clock
from stock_kernel.domain.policy import ReconciliationPolicy
from stock_kernel.domain.transactions import (
    TransactionDraft,
    TransactionEntry,
    TransactionType,
)
from stock_kernel.domain.values import (
    ProductKey,
    coerce_product_key,
    require_agency,
    require_writable_key,
)
from stock_kernel.exceptions import InvalidQuantityError, TransactionDirectionError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.transaction import StockTransaction
from stock_kernel.selectors.ledger_selector import LedgerScan, LedgerSelector
from stock_kernel.services.base import BaseService
from stock_kernel.services.inventory_service import InventoryService
from stock_kernel.services.sequence_service import SequenceService

logger = get_logger("services.ledger")


class TransactionLedger(BaseService[StockTransaction]):
    """
    Append-only stock transaction ledger.

    Non-goals:
        - No exactly-once delivery: a producer that re-sends a movement
          gets a second entry.
        - Does NOT call ``session.commit()``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: ReconciliationPolicy | None = None,
        sequence_service: SequenceService | None = None,
        inventory_service: InventoryService | None = None,
    ):
        super().__init__(session, clock)
        self._policy = policy or ReconciliationPolicy()
        self._sequence = sequence_service or SequenceService(session)
        self._inventory = inventory_service or InventoryService(session, self.clock)
        self._selector = LedgerSelector(session)

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def _validate(
        self, draft: TransactionDraft
    ) -> tuple[ProductKey, str, TransactionType, int]:
        transaction_type = TransactionType.parse(draft.transaction_type)
        product_key = require_writable_key(draft.product_key)
        agency_id = require_agency(draft.agency_id)

        quantity = draft.quantity
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity == 0:
            raise InvalidQuantityError(quantity)

        kind = classify(transaction_type, self._policy)
        if kind is StockClass.INBOUND and quantity < 0:
            raise TransactionDirectionError(transaction_type.value, quantity, "positive")
        if kind is StockClass.OUTBOUND and quantity > 0:
            raise TransactionDirectionError(transaction_type.value, quantity, "negative")

        return product_key, agency_id, transaction_type, quantity

    def append(
        self, draft: TransactionDraft, *, apply_to_stock: bool = True
    ) -> TransactionEntry:
        """
        Validate and persist one movement.

        With ``apply_to_stock`` the signed quantity is added to the locked
        inventory record (created at zero when absent).  Without it the entry
        is history only, for backfills of movements already reflected in a
        counted stock figure.
        """
        product_key, agency_id, transaction_type, quantity = self._validate(draft)

        with self._storage_errors("ledger_append"):
            seq = self._sequence.next_value(SequenceService.LEDGER_ENTRY)
            now = self.clock.now()

            row = StockTransaction(
                seq=seq,
                product_key=product_key.code,
                product_id=product_key.product_id,
                color=product_key.color,
                size=product_key.size,
                agency_id=agency_id,
                transaction_type=transaction_type.value,
                quantity=quantity,
                reference_name=draft.reference_name,
                reference_id=draft.reference_id,
                occurred_at=draft.occurred_at or now,
                recorded_at=now,
                source_system=draft.source_system,
                actor_id=draft.actor_id,
                actor_name=draft.actor_name,
                notes=draft.notes,
            )
            self.session.add(row)

            stock_after = None
            if apply_to_stock:
                stock_after = self._apply(product_key, agency_id, quantity, now)

            self.session.flush()

        logger.info(
            "ledger_entry_appended",
            extra={
                "entry_id": str(row.id),
                "seq": seq,
                "product_key": product_key.code,
                "agency_id": agency_id,
                "transaction_type": transaction_type.value,
                "quantity": quantity,
                "applied_to_stock": apply_to_stock,
                "stock_after": stock_after,
            },
        )
        return row.to_dto()

    def _apply(
        self, product_key: ProductKey, agency_id: str, quantity: int, now: datetime
    ) -> int:
        record = self._inventory.lock_or_create(product_key, agency_id, now)
        record.current_stock += quantity
        record.updated_at = now
        if record.current_stock < 0:
            # Upstream facts are recorded as reported; the report surfaces it.
            logger.warning(
                "stock_went_negative",
                extra={
                    "product_key": product_key.code,
                    "agency_id": agency_id,
                    "current_stock": record.current_stock,
                },
            )
        return record.current_stock

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def query_by_product_agency(
        self,
        product_key: ProductKey | str,
        agency_id: str,
        since: datetime | None = None,
    ) -> LedgerScan:
        """Lazy scan, ``seq`` ascending.  A collapsed key spans all variants."""
        return self._selector.scan(coerce_product_key(product_key), agency_id, since)

    def get(self, entry_id: UUID) -> TransactionEntry:
        return self._selector.get(entry_id)

    def count(self, agency_id: str | None = None) -> int:
        return self._selector.count(agency_id)
