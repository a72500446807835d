"""
Database connection and session management for the catalog.

Provides the catalog engine, session factory, and helper functions
for database operations. The engine is created on first use.
"""

from functools import lru_cache

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from dualstore.catalog.models import Base
from dualstore.config.settings import get_settings
from dualstore.storage.factory import create_data_engine


@lru_cache()
def get_engine() -> Engine:
    """Create the catalog database engine with connection pooling."""
    return create_data_engine(get_settings().catalog_database_url)


@lru_cache()
def get_session_factory() -> sessionmaker:
    """Session factory bound to the catalog engine."""
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=get_engine(),
        expire_on_commit=False,
        future=True,
    )


def init_db(engine: Engine = None) -> None:
    """
    Initialize database by creating all tables.

    This should be called on application startup or handled by migrations.
    """
    Base.metadata.create_all(bind=engine or get_engine())


def check_database_connection(engine: Engine = None) -> bool:
    """
    Check if database connection is healthy.

    Returns:
        True if connection is successful, False otherwise
    """
    try:
        with (engine or get_engine()).connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError:
        return False


def reset_engine() -> None:
    """Dispose the cached engine and forget the session factory."""
    if get_engine.cache_info().currsize:
        get_engine().dispose()
    get_session_factory.cache_clear()
    get_engine.cache_clear()
