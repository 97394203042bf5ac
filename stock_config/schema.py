"""
StockConfig schema.

The human-authored configuration artifact.  YAML is parsed into these
frozen types by ``stock_config.loader``; ``stock_config.bridges`` turns
them into kernel inputs.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class DatabaseSettings:
    url: str
    echo: bool = False
    pool_size: int | None = None
    max_overflow: int | None = None


@dataclass(frozen=True)
class PolicySettings:
    """Raw policy values; validated when bridged to ``ReconciliationPolicy``."""

    tolerance_threshold: int = 1
    inbound_types: tuple[str, ...] = ("external_receipt", "return_customer")
    outbound_types: tuple[str, ...] = ("internal_sale", "return_company")
    reviewer_roles: tuple[str, ...] = ("superuser",)
    allow_stock_increase: bool = True
    batch_review_mode: str = "per_item"
    collapse_variants: bool = False


@dataclass(frozen=True)
class ReasonDef:
    name: str
    description: str | None = None


@dataclass(frozen=True)
class StockConfig:
    """Complete configuration for one deployment."""

    config_id: str
    version: int
    database: DatabaseSettings
    policy: PolicySettings
    reasons: tuple[ReasonDef, ...] = ()
    log_level: str = "INFO"
    checksum: str = ""
