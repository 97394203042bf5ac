"""Selectors for the stock kernel (read side)."""

from stock_kernel.selectors.adjustment_selector import AdjustmentSelector
from stock_kernel.selectors.ledger_selector import LedgerScan, LedgerSelector
from stock_kernel.selectors.reconciliation_selector import ReconciliationReporter
from stock_kernel.selectors.stock_selector import StockAggregator

__all__ = [
    "AdjustmentSelector",
    "LedgerScan",
    "LedgerSelector",
    "ReconciliationReporter",
    "StockAggregator",
]
