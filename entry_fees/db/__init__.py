"""Database layer - engine, base classes, constraint translation."""

from entry_fees.db.base import UUID, Base, UUIDString
from entry_fees.db.engine import (
    create_tables,
    get_engine,
    get_session_factory,
    init_engine_from_url,
    transaction_scope,
)
from entry_fees.db.errors import translate_integrity_error

__all__ = [
    "get_engine",
    "get_session_factory",
    "init_engine_from_url",
    "transaction_scope",
    "create_tables",
    "translate_integrity_error",
    "Base",
    "UUIDString",
    "UUID",
]
