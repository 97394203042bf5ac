"""Database layer - engine, base classes, immutability listeners."""

from stock_kernel.db.base import UUID, Base, UTCDateTime, UUIDString
from stock_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    session_scope,
)

__all__ = [
    "Base",
    "UUID",
    "UUIDString",
    "UTCDateTime",
    "create_tables",
    "drop_tables",
    "get_engine",
    "get_session",
    "init_engine_from_url",
    "session_scope",
]
