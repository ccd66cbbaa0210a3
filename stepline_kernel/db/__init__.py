"""Database layer - engine, session scope and declarative base classes."""

from stepline_kernel.db.base import UUID, Base, TimestampedBase, UUIDString
from stepline_kernel.db.engine import (
    build_engine,
    create_tables,
    get_session_factory,
    init_engine_from_url,
    session_scope,
)

__all__ = [
    "build_engine",
    "create_tables",
    "get_session_factory",
    "init_engine_from_url",
    "session_scope",
    "Base",
    "TimestampedBase",
    "UUIDString",
    "UUID",
]
