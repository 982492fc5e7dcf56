"""Database infrastructure for CardSearch Core."""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from cardsearch_core.config import get_settings


def get_sync_engine() -> Engine:
    """Create a synchronous database engine."""
    settings = get_settings()
    return create_engine(
        settings.database_url,
        pool_pre_ping=True,
        pool_recycle=3600,
        echo=False,
    )


# Shared engine and session factory
_sync_engine = None
_sync_session_factory = None


def get_engine() -> Engine:
    """Get the shared synchronous engine (singleton)."""
    global _sync_engine
    if _sync_engine is None:
        _sync_engine = get_sync_engine()
    return _sync_engine


def get_sync_session_factory() -> sessionmaker[Session]:
    """Get synchronous session factory (singleton)."""
    global _sync_session_factory
    if _sync_session_factory is None:
        _sync_session_factory = sessionmaker(
            bind=get_engine(),
            autocommit=False,
            autoflush=False,
        )
    return _sync_session_factory
