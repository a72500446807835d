"""
Data store abstraction for dataset records.

Provides the relational store and document store backends (MongoDB and
in-process).
"""

from dualstore.storage.interface import DocumentStore, StorageError
from dualstore.storage.inmemory import InMemoryDocumentStore
from dualstore.storage.relational import RelationalStore, build_table
from dualstore.storage.factory import get_document_store, get_relational_store, reset_stores

__all__ = [
    "DocumentStore",
    "StorageError",
    "InMemoryDocumentStore",
    "RelationalStore",
    "build_table",
    "get_document_store",
    "get_relational_store",
    "reset_stores",
]
