"""
Configuration Loader (``stock_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the frozen dataclasses
of ``stock_config.schema``.  Runtime callers go through
``stock_config.get_active_config()``.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; no silent defaults for required fields.
* ``compute_checksum`` is a deterministic SHA-256 over the parsed source
  for configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from stock_config.schema import (
    DatabaseSettings,
    PolicySettings,
    ReasonDef,
    StockConfig,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def _string_tuple(data: dict[str, Any], key: str, default: tuple[str, ...]) -> tuple[str, ...]:
    value = data.get(key, default)
    if isinstance(value, str) or not isinstance(value, (list, tuple)):
        raise ValueError(f"policy.{key} must be a list, got {value!r}")
    return tuple(str(v) for v in value)


def _bool(data: dict[str, Any], key: str, default: bool) -> bool:
    value = data.get(key, default)
    if not isinstance(value, bool):
        raise ValueError(f"policy.{key} must be true or false, got {value!r}")
    return value


def parse_database(data: dict[str, Any]) -> DatabaseSettings:
    return DatabaseSettings(
        url=data["url"],
        echo=bool(data.get("echo", False)),
        pool_size=data.get("pool_size"),
        max_overflow=data.get("max_overflow"),
    )


def parse_policy(data: dict[str, Any]) -> PolicySettings:
    defaults = PolicySettings()
    threshold = data.get("tolerance_threshold", defaults.tolerance_threshold)
    if isinstance(threshold, bool) or not isinstance(threshold, int):
        raise ValueError(f"policy.tolerance_threshold must be an integer, got {threshold!r}")
    return PolicySettings(
        tolerance_threshold=threshold,
        inbound_types=_string_tuple(data, "inbound_types", defaults.inbound_types),
        outbound_types=_string_tuple(data, "outbound_types", defaults.outbound_types),
        reviewer_roles=_string_tuple(data, "reviewer_roles", defaults.reviewer_roles),
        allow_stock_increase=_bool(data, "allow_stock_increase", defaults.allow_stock_increase),
        batch_review_mode=str(data.get("batch_review_mode", defaults.batch_review_mode)),
        collapse_variants=_bool(data, "collapse_variants", defaults.collapse_variants),
    )


def parse_reason(item: Any) -> ReasonDef:
    """A reason is a bare name or a mapping with ``name`` and ``description``."""
    if isinstance(item, str):
        return ReasonDef(name=item)
    if isinstance(item, dict):
        return ReasonDef(name=item["name"], description=item.get("description"))
    raise ValueError(f"Cannot parse adjustment reason from {item!r}")


def parse_config(data: dict[str, Any]) -> StockConfig:
    """
    Parse a ``StockConfig`` from a dict.

    Raises:
        KeyError: if ``database.url`` is missing.
        ValueError: if a field has the wrong shape.
    """
    reasons = tuple(parse_reason(i) for i in data.get("reasons", []))
    names = [r.name for r in reasons]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise ValueError(f"Duplicate adjustment reasons: {duplicates}")

    return StockConfig(
        config_id=str(data.get("config_id", "stock-default")),
        version=int(data.get("version", 1)),
        database=parse_database(data.get("database", {})),
        policy=parse_policy(data.get("policy", {})),
        reasons=reasons,
        log_level=str(data.get("logging", {}).get("level", "INFO")).upper(),
        checksum=compute_checksum(data),
    )


def load_config(path: Path) -> StockConfig:
    return parse_config(load_yaml_file(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
