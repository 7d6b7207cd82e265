"""Database engine and session helpers."""

from taskifye.database.session import create_session_factory, create_tables

__all__ = [
    "create_session_factory",
    "create_tables",
]
