"""Database layer - engine, base classes, append-only listeners."""

from erp_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from erp_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    session_scope,
)

__all__ = [
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
]
