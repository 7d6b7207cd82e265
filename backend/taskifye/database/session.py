"""
Database engine and session factory.

Callers build one factory per process from DATABASE_URL (see main.create_app).
"""

import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from taskifye.config import normalize_database_url

logger = logging.getLogger(__name__)


_SQLITE_MEMORY_URLS = ("sqlite://", "sqlite:///:memory:")


def create_session_factory(database_url: str) -> sessionmaker:
    """Build an engine and session factory for the given URL."""
    database_url = normalize_database_url(database_url)
    engine_kwargs = {"pool_pre_ping": True}
    if database_url.startswith("sqlite"):
        # Sessions are used from worker threads via asyncio.to_thread
        engine_kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in _SQLITE_MEMORY_URLS:
            # One shared connection, otherwise every thread sees its own empty database
            engine_kwargs["poolclass"] = StaticPool

    engine = create_engine(database_url, **engine_kwargs)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def create_tables(session_factory: sessionmaker) -> None:
    """Create tables for all registered models (development and tests)."""
    from taskifye.db_base import Base
    from taskifye.models.api_credential import ApiCredential  # noqa: F401

    Base.metadata.create_all(bind=session_factory.kw["bind"])


