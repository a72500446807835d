# Test configuration

import json
import os
import sys

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from dualstore.catalog.models import Base  # noqa: E402
from dualstore.catalog.store import CatalogStore  # noqa: E402
from dualstore.ingest.json_loader import JsonFileLoader  # noqa: E402
from dualstore.ingest.orchestrator import JsonOrchestrator  # noqa: E402
from dualstore.ingest.writer import DualBackendWriter  # noqa: E402
from dualstore.retrieval.engine import RetrievalEngine  # noqa: E402
from dualstore.storage.inmemory import InMemoryDocumentStore  # noqa: E402
from dualstore.storage.relational import RelationalStore  # noqa: E402


def _sqlite_engine():
    return create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )


@pytest.fixture
def test_settings():
    """Override settings for testing"""
    from dualstore.config.settings import Settings
    return Settings(
        catalog_database_url="sqlite://",
        relational_database_url="sqlite://",
        document_backend="memory",
        cache_enabled=False,
    )


@pytest.fixture
def data_engine():
    engine = _sqlite_engine()
    yield engine
    engine.dispose()


@pytest.fixture
def relational_store(data_engine):
    return RelationalStore(data_engine, batch_size=1000)


@pytest.fixture
def document_store():
    return InMemoryDocumentStore()


@pytest.fixture
def session_factory():
    engine = _sqlite_engine()
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)
    engine.dispose()


@pytest.fixture
def catalog(session_factory):
    return CatalogStore(session_factory)


@pytest.fixture
def writer(relational_store, document_store):
    return DualBackendWriter(relational_store, document_store)


@pytest.fixture
def orchestrator(writer, catalog):
    return JsonOrchestrator(writer, catalog, loader=JsonFileLoader(max_size_bytes=10 * 1024 * 1024))


@pytest.fixture
def retrieval_engine(catalog, relational_store, document_store):
    return RetrievalEngine(catalog, relational_store, document_store, max_limit=1000)


@pytest.fixture
def write_json(tmp_path):
    """Write a JSON document to a temp file and return its path."""
    def _write(name, data):
        path = tmp_path / name
        path.write_text(json.dumps(data), encoding="utf-8")
        return str(path)
    return _write


@pytest.fixture
def write_text(tmp_path):
    """Write raw text to a temp file and return its path."""
    def _write(name, content):
        path = tmp_path / name
        path.write_text(content, encoding="utf-8")
        return str(path)
    return _write


@pytest.fixture
def people():
    return [
        {"name": "Alice", "age": 30, "active": True, "tags": ["a", "b"]},
        {"name": "Bob", "age": 25, "active": False, "tags": ["c"]},
        {"name": "Carol", "age": 41, "active": True, "tags": []},
        {"name": "Dave", "age": 35, "active": False, "tags": ["a"]},
    ]


@pytest.fixture
def nested_orders():
    return [
        {"order_id": 1, "customer": {"name": "Alice", "city": "Paris"}, "total": 12.5},
        {"order_id": 2, "customer": {"name": "Bob", "city": "Rome"}, "total": 7.25},
        {"order_id": 3, "customer": {"name": "Carol", "city": "Oslo"}, "total": 99.0},
    ]
