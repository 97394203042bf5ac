"""
stock_config -- single public entrypoint for stock configuration.

Responsibility:
    Provides the one way to obtain configuration at runtime through
    ``get_active_config()``.  Returns a frozen ``StockConfig``; the bridges
    turn it into a ``ReconciliationPolicy`` and reason seed for the kernel.

Architecture position:
    Configuration sits above ``stock_kernel``.  The kernel MUST NEVER
    import from ``stock_config``.

Failure modes:
    - ``FileNotFoundError`` -- the configured file does not exist.
    - ``ValueError`` / ``KeyError`` -- structural validation failures.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``STOCK_CONFIG_TRACE`` log entry with the config id, version and
    checksum.
"""

from __future__ import annotations

import logging
import os
from dataclasses import replace
from pathlib import Path

from stock_config.bridges import build_policy, engine_options, reason_seed
from stock_config.loader import load_config
from stock_config.schema import StockConfig

_logger = logging.getLogger("stock_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"

CONFIG_PATH_ENV = "STOCK_CONFIG_PATH"
DATABASE_URL_ENV = "DATABASE_URL"


def get_active_config(path: Path | str | None = None) -> StockConfig:
    """
    Load the active configuration.

    Resolution order for the file: ``path``, then ``$STOCK_CONFIG_PATH``,
    then the packaged ``defaults.yaml``.  ``$DATABASE_URL`` overrides
    ``database.url`` regardless of which file was read.
    """
    env_path = os.environ.get(CONFIG_PATH_ENV)
    source = Path(path) if path is not None else Path(env_path) if env_path else DEFAULT_CONFIG_PATH
    if not source.is_file():
        raise FileNotFoundError(f"Stock configuration not found: {source}")

    config = load_config(source)

    database_url = os.environ.get(DATABASE_URL_ENV)
    if database_url:
        config = replace(config, database=replace(config.database, url=database_url))

    # Validate the policy now rather than at first use.
    policy = build_policy(config)

    _logger.info(
        "STOCK_CONFIG_TRACE",
        extra={
            "trace_type": "STOCK_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "source": str(source),
            "reason_count": len(config.reasons),
            "batch_review_mode": policy.batch_review_mode.value,
        },
    )
    return config


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "StockConfig",
    "build_policy",
    "engine_options",
    "get_active_config",
    "reason_seed",
]
