"""
Stock aggregation fold (``stock_kernel.domain.aggregation``).

Responsibility
--------------
Derives IN/OUT totals, calculated balance and variance from a stream of
ledger entries.  Pure: the selector layer feeds it entries and the
authoritative counter, nothing here touches the database.

The per-entry contribution is a ``StockTally`` and tallies combine with
``+`` into a commutative monoid (``StockTally.empty()`` is the identity).
The fold is therefore a parallel reduction: any partition of the entries,
tallied separately and summed, yields the same result.

Classification
--------------
* INBOUND  -- types in ``policy.inbound_types``; add to ``stock_in``.
* OUTBOUND -- types in ``policy.outbound_types``; add ``abs(qty)`` to
  ``stock_out``.
* CORRECTION -- ``adjustment`` (and any type the policy does not place on
  either side).  Counted in ``transaction_count`` but excluded from IN/OUT,
  so approved adjustments show up as variance against the calculated
  balance.  This is intentional: variance measures how far counted stock
  has drifted from transactional history.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable

from stock_kernel.domain.policy import ReconciliationPolicy
from stock_kernel.domain.transactions import TransactionEntry, TransactionType
from stock_kernel.domain.values import ProductKey


class StockClass(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"
    CORRECTION = "correction"


def classify(
    entry_type: TransactionType | str, policy: ReconciliationPolicy
) -> StockClass:
    """Place a transaction type on the IN side, the OUT side, or neither."""
    entry_type = TransactionType.parse(entry_type)
    if entry_type is TransactionType.ADJUSTMENT:
        return StockClass.CORRECTION
    if entry_type in policy.inbound_types:
        return StockClass.INBOUND
    if entry_type in policy.outbound_types:
        return StockClass.OUTBOUND
    return StockClass.CORRECTION


def _latest(a: datetime | None, b: datetime | None) -> datetime | None:
    if a is None:
        return b
    if b is None:
        return a
    return max(a, b)


@dataclass(frozen=True)
class StockTally:
    """Partial aggregation result for some subset of ledger entries."""

    stock_in: int = 0
    stock_out: int = 0
    transaction_count: int = 0
    last_transaction_at: datetime | None = None

    @classmethod
    def empty(cls) -> StockTally:
        return cls()

    @classmethod
    def of(cls, entry: TransactionEntry, policy: ReconciliationPolicy) -> StockTally:
        """Tally contributed by a single entry."""
        kind = classify(entry.transaction_type, policy)
        return cls(
            stock_in=abs(entry.quantity) if kind is StockClass.INBOUND else 0,
            stock_out=abs(entry.quantity) if kind is StockClass.OUTBOUND else 0,
            transaction_count=1,
            last_transaction_at=entry.occurred_at,
        )

    def __add__(self, other: StockTally) -> StockTally:
        if not isinstance(other, StockTally):
            return NotImplemented
        return StockTally(
            stock_in=self.stock_in + other.stock_in,
            stock_out=self.stock_out + other.stock_out,
            transaction_count=self.transaction_count + other.transaction_count,
            last_transaction_at=_latest(
                self.last_transaction_at, other.last_transaction_at
            ),
        )

    @property
    def calculated_balance(self) -> int:
        return self.stock_in - self.stock_out


def fold_entries(
    entries: Iterable[TransactionEntry], policy: ReconciliationPolicy
) -> StockTally:
    """Reduce entries to one tally.  Order of ``entries`` does not matter."""
    total = StockTally.empty()
    for entry in entries:
        total = total + StockTally.of(entry, policy)
    return total


@dataclass(frozen=True)
class StockAggregate:
    """Derived stock position for one (product key, agency) pair."""

    product_key: ProductKey
    agency_id: str
    current_stock: int
    stock_in: int
    stock_out: int
    calculated_balance: int
    variance: int
    transaction_count: int = 0
    last_transaction_at: datetime | None = None


def build_aggregate(
    product_key: ProductKey,
    agency_id: str,
    current_stock: int,
    tally: StockTally,
) -> StockAggregate:
    calculated = tally.calculated_balance
    return StockAggregate(
        product_key=product_key,
        agency_id=agency_id,
        current_stock=current_stock,
        stock_in=tally.stock_in,
        stock_out=tally.stock_out,
        calculated_balance=calculated,
        variance=current_stock - calculated,
        transaction_count=tally.transaction_count,
        last_transaction_at=tally.last_transaction_at,
    )


@dataclass(frozen=True)
class ReconciliationLine:
    """A report row: the aggregate plus the attention flag."""

    aggregate: StockAggregate
    product_name: str | None
    needs_attention: bool

    @property
    def product_key(self) -> ProductKey:
        return self.aggregate.product_key

    @property
    def variance(self) -> int:
        return self.aggregate.variance


def needs_attention(variance: int, policy: ReconciliationPolicy) -> bool:
    """Variance beyond tolerance is flagged for review.  It is never an error."""
    return abs(variance) > policy.tolerance_threshold
