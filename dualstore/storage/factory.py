"""
Storage factory for creating data store instances.

Provides singleton access to the relational and document stores based
on configuration.
"""

import logging
from functools import lru_cache

from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from dualstore.config.settings import get_settings
from dualstore.storage.interface import DocumentStore
from dualstore.storage.relational import RelationalStore

logger = logging.getLogger(__name__)


def create_data_engine(url: str):
    """Create the engine for dataset tables."""
    settings = get_settings()

    if url.startswith("sqlite"):
        options = {"connect_args": {"check_same_thread": False}}
        # In-memory SQLite must share one connection across threads
        if ":memory:" in url or url == "sqlite://":
            options["poolclass"] = StaticPool
        return create_engine(url, future=True, **options)

    return create_engine(
        url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=True,
        pool_recycle=3600,
        echo=settings.debug,
        future=True,
    )


@lru_cache()
def get_relational_store() -> RelationalStore:
    """
    Get or create the relational store instance.

    Returns:
        RelationalStore bound to relational_database_url
    """
    settings = get_settings()
    engine = create_data_engine(settings.relational_database_url)
    return RelationalStore(engine, batch_size=settings.insert_batch_size)


@lru_cache()
def get_document_store() -> DocumentStore:
    """
    Get or create the document store instance.

    Returns:
        MongoDocumentStore, or InMemoryDocumentStore when document_backend=memory
    """
    settings = get_settings()

    if settings.document_backend == "memory":
        from dualstore.storage.inmemory import InMemoryDocumentStore
        logger.info("Using in-process document store")
        return InMemoryDocumentStore()

    if settings.document_backend != "mongodb":
        raise ValueError(f"Unknown document backend: {settings.document_backend}")

    from dualstore.storage.mongo import MongoDocumentStore
    logger.info(f"Using MongoDB document store: {settings.mongo_database}")
    return MongoDocumentStore(settings.mongo_url, settings.mongo_database)


def reset_stores() -> None:
    """Reset the store instances (useful for testing)."""
    get_relational_store.cache_clear()
    get_document_store.cache_clear()
