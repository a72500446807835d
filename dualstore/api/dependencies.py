"""
FastAPI dependencies wiring the core services.

Each provider builds the process-wide default; tests replace them via
app.dependency_overrides.
"""

import logging
from functools import lru_cache
from typing import Optional

from fastapi import Depends

from dualstore.catalog.cache import CatalogCache
from dualstore.catalog.database import get_session_factory
from dualstore.catalog.store import CatalogStore
from dualstore.config.settings import get_settings
from dualstore.ingest.orchestrator import JsonOrchestrator
from dualstore.ingest.writer import DualBackendWriter
from dualstore.retrieval.engine import RetrievalEngine
from dualstore.storage.factory import get_document_store, get_relational_store

logger = logging.getLogger(__name__)


@lru_cache()
def get_catalog_cache() -> Optional[CatalogCache]:
    """Redis cache for catalog reads, or None when caching is disabled."""
    settings = get_settings()
    if not settings.cache_enabled:
        return None

    logger.info("Catalog cache enabled")
    return CatalogCache(
        redis_url=settings.redis_url,
        ttl_seconds=settings.cache_ttl_seconds,
        list_ttl_seconds=settings.cache_list_ttl_seconds,
    )


def get_catalog_store() -> CatalogStore:
    settings = get_settings()
    return CatalogStore(
        get_session_factory(),
        cache=get_catalog_cache(),
        search_limit=settings.catalog_search_limit,
    )


def get_orchestrator(catalog: CatalogStore = Depends(get_catalog_store)) -> JsonOrchestrator:
    settings = get_settings()
    writer = DualBackendWriter(get_relational_store(), get_document_store())
    return JsonOrchestrator(writer, catalog, sample_size=settings.profile_sample_size)


def get_retrieval_engine(catalog: CatalogStore = Depends(get_catalog_store)) -> RetrievalEngine:
    settings = get_settings()
    return RetrievalEngine(
        catalog,
        get_relational_store(),
        get_document_store(),
        max_limit=settings.retrieval_max_limit,
        dataset_default_limit=settings.dataset_default_limit,
    )
