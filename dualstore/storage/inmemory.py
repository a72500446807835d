"""
In-process document store.

Thread-safe dictionary-backed implementation of DocumentStore for local
runs and tests. Supports the same filter subset as the MongoDB backend.
"""

import copy
import itertools
import threading
from typing import Any, Dict, List, Optional

from dualstore.storage.interface import DocumentStore, SortSpec, StorageError

_MISSING = object()


def _compare(left: Any, op: str, right: Any) -> bool:
    if op == "$eq":
        return left == right
    if op == "$ne":
        return left != right
    if op == "$in":
        return left in right
    if op == "$nin":
        return left not in right

    # Ordering operators never match missing values or mismatched types
    if left is _MISSING or left is None or right is None:
        return False
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    try:
        if op == "$gt":
            return left > right
        if op == "$gte":
            return left >= right
        if op == "$lt":
            return left < right
        if op == "$lte":
            return left <= right
    except TypeError:
        return False

    raise StorageError(f"Unsupported operator: {op}", operation="find")


def match_document(document: Dict[str, Any], filter: Optional[Dict[str, Any]]) -> bool:
    """Check a document against a query document."""
    for field, condition in (filter or {}).items():
        value = document.get(field, _MISSING)

        if isinstance(condition, dict) and condition and all(k.startswith("$") for k in condition):
            for op, operand in condition.items():
                candidate = None if value is _MISSING and op in ("$eq", "$ne", "$in", "$nin") else value
                if not _compare(candidate, op, operand):
                    return False
        else:
            candidate = None if value is _MISSING else value
            if candidate != condition:
                return False

    return True


def _sort_key(value: Any):
    # Null first, then numbers, strings, objects, arrays, booleans
    if value is _MISSING or value is None:
        return (0, 0)
    if isinstance(value, bool):
        return (5, value)
    if isinstance(value, (int, float)):
        return (1, value)
    if isinstance(value, str):
        return (2, value)
    if isinstance(value, dict):
        return (3, str(value))
    return (4, str(value))


class InMemoryDocumentStore(DocumentStore):
    """Dictionary-backed document store."""

    def __init__(self):
        self._collections: Dict[str, List[Dict[str, Any]]] = {}
        self._lock = threading.Lock()
        self._ids = itertools.count(1)

    def insert_many(self, collection: str, documents: List[Dict[str, Any]]) -> int:
        if not collection:
            raise StorageError("Collection name is required", operation="insert_many")

        with self._lock:
            target = self._collections.setdefault(collection, [])
            for document in documents:
                stored = copy.deepcopy(document)
                stored.setdefault("_id", next(self._ids))
                target.append(stored)
        return len(documents)

    def find(
        self,
        collection: str,
        filter: Optional[Dict[str, Any]] = None,
        projection: Optional[List[str]] = None,
        sort: Optional[SortSpec] = None,
        skip: int = 0,
        limit: int = 0,
    ) -> List[Dict[str, Any]]:
        with self._lock:
            documents = [
                doc for doc in self._collections.get(collection, [])
                if match_document(doc, filter)
            ]

        # Stable sort applied from the least significant key
        for field, direction in reversed(list(sort or [])):
            documents.sort(
                key=lambda doc: _sort_key(doc.get(field, _MISSING)),
                reverse=direction < 0,
            )

        documents = documents[skip:]
        if limit:
            documents = documents[:limit]

        results = []
        for doc in documents:
            if projection:
                doc = {k: doc[k] for k in projection if k in doc}
            results.append(copy.deepcopy(doc))
        return results

    def count(self, collection: str, filter: Optional[Dict[str, Any]] = None) -> int:
        with self._lock:
            return sum(
                1 for doc in self._collections.get(collection, [])
                if match_document(doc, filter)
            )

    def drop_collection(self, collection: str) -> None:
        with self._lock:
            self._collections.pop(collection, None)

    def collection_names(self) -> List[str]:
        with self._lock:
            return list(self._collections)

    def ping(self) -> bool:
        return True
