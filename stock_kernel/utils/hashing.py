"""
Deterministic hashing utilities.

Audit payloads must hash identically on every run and every backend, so
JSON is canonicalized (sorted keys, no whitespace, fixed encodings for
non-JSON types) before hashing.
"""

import hashlib
import json
from datetime import date, datetime
from enum import Enum
from typing import Any
from uuid import UUID


def _json_serializer(obj: Any) -> Any:
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)

    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonicalize_json(data: dict | list | Any) -> str:
    """Sorted-key, whitespace-free JSON."""
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        default=_json_serializer,
    )


def hash_payload(payload: dict) -> str:
    """Hex SHA-256 of the canonical JSON form of ``payload``."""
    canonical = canonicalize_json(payload)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def hash_audit_event(
    entity_type: str,
    entity_id: str,
    action: str,
    payload_hash: str,
    prev_hash: str | None,
) -> str:
    """
    Compute the chained hash for an audit event.

    The previous event's hash is part of the input, so altering any event
    changes every hash after it.  The genesis event hashes against the
    literal ``GENESIS``.
    """
    data = "|".join([
        entity_type,
        str(entity_id),
        action,
        payload_hash,
        prev_hash or "GENESIS",
    ])
    return hashlib.sha256(data.encode("utf-8")).hexdigest()
