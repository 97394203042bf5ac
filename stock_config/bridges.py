"""
Config-to-kernel bridges.

Translates ``stock_config.schema`` types into the kernel's inputs.  The
kernel never imports ``stock_config``; these functions are the only seam.
"""

from __future__ import annotations

from stock_config.schema import StockConfig
from stock_kernel.domain.policy import ReconciliationPolicy


def build_policy(config: StockConfig) -> ReconciliationPolicy:
    """
    Raises:
        ValueError: policy values the kernel rejects (overlapping type
            sets, ``adjustment`` classified, unknown review mode, ...).
        UnknownTransactionTypeError: a type name outside the closed set.
    """
    p = config.policy
    return ReconciliationPolicy(
        tolerance_threshold=p.tolerance_threshold,
        inbound_types=frozenset(p.inbound_types),
        outbound_types=frozenset(p.outbound_types),
        reviewer_roles=p.reviewer_roles,
        allow_stock_increase=p.allow_stock_increase,
        batch_review_mode=p.batch_review_mode,
        collapse_variants=p.collapse_variants,
    )


def reason_seed(config: StockConfig) -> list[tuple[str, str | None]]:
    """Reasons in the shape ``ReasonService.seed`` accepts."""
    return [(r.name, r.description) for r in config.reasons]


def engine_options(config: StockConfig) -> dict:
    """Keyword arguments for ``stock_kernel.db.engine.init_engine_from_url``."""
    options: dict = {"echo": config.database.echo}
    if config.database.pool_size is not None:
        options["pool_size"] = config.database.pool_size
    if config.database.max_overflow is not None:
        options["max_overflow"] = config.database.max_overflow
    return options
