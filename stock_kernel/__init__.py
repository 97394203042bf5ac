"""
Stock Kernel

An append-only stock ledger with reconciliation and an approval workflow:
- Typed, ordered stock movements per product variant and agency
- Derived IN/OUT totals, calculated balance and variance
- Adjustment requests, single or batched, reviewed by a privileged role
- Full auditability via hash chain
"""

__version__ = "0.1.0"
