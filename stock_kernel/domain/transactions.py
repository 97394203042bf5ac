"""
Transaction types and ledger entry value objects (``stock_kernel.domain.transactions``).

Every stock movement, whatever system produced it, is normalized into one
``TransactionEntry`` shape before it reaches the ledger.  The set of
transaction types is closed: upstream producers that emit an unknown type
are rejected at the boundary rather than silently bucketed.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID

from stock_kernel.domain.values import ProductKey
from stock_kernel.exceptions import UnknownTransactionTypeError

SYSTEM_ACTOR_NAME = "System"


class TransactionType(str, Enum):
    """Kinds of stock movement recorded in the ledger."""

    EXTERNAL_RECEIPT = "external_receipt"  # Supplier invoice received
    INTERNAL_SALE = "internal_sale"  # Sales invoice issued
    RETURN_CUSTOMER = "return_customer"  # Customer brought goods back
    RETURN_COMPANY = "return_company"  # Goods sent back to the supplier
    ADJUSTMENT = "adjustment"  # Approved stock correction

    @classmethod
    def parse(cls, value: TransactionType | str) -> TransactionType:
        """Coerce a raw producer value, rejecting anything outside the enum."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise UnknownTransactionTypeError(str(value)) from None


@dataclass(frozen=True)
class TransactionDraft:
    """
    A movement as handed to ``TransactionLedger.append``.

    ``occurred_at`` is the business time reported by the producer; when
    absent the ledger stamps it with the recording time.
    """

    product_key: ProductKey
    agency_id: str
    transaction_type: TransactionType | str
    quantity: int
    reference_name: str | None = None
    reference_id: str | None = None
    occurred_at: datetime | None = None
    source_system: str = "manual"
    actor_id: str | None = None
    actor_name: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class TransactionEntry:
    """Immutable snapshot of a persisted ledger entry."""

    id: UUID
    seq: int
    product_key: ProductKey
    agency_id: str
    transaction_type: TransactionType
    quantity: int
    occurred_at: datetime
    recorded_at: datetime
    reference_name: str | None = None
    reference_id: str | None = None
    source_system: str = "manual"
    actor_id: str | None = None
    actor_name: str | None = None
    notes: str | None = None

    @property
    def display_actor(self) -> str:
        return self.actor_name or SYSTEM_ACTOR_NAME
