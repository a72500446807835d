"""
Backend-agnostic retrieval over ingested datasets.

This module handles:
- Resolving a dataset reference (id or name) through the catalog
- Validating filters, projections, sorting and paging
- Dispatching the query to the relational or document store based on
  where the catalog says the records live
- Returning records with their original field names
"""

import json
import logging
import time
from dataclasses import dataclass, field
from decimal import Decimal
from functools import wraps
from typing import Any, Callable, Dict, List, Optional, Tuple

from dualstore.catalog.entry import CatalogEntry, Pagination
from dualstore.catalog.store import CatalogStore
from dualstore.common import metrics
from dualstore.common.errors import (
    DatasetNotFoundError,
    DualStoreError,
    EntityNotFoundError,
    QueryValidationError,
)
from dualstore.ingest.field_analyzer import FieldType
from dualstore.ingest.schema_generator import SchemaDescriptor
from dualstore.retrieval.filters import (
    build_sql_conditions,
    build_sql_order,
    normalize_filter,
    normalize_sort,
)
from dualstore.storage.interface import DocumentStore
from dualstore.storage.relational import RelationalStore, build_table

logger = logging.getLogger(__name__)

# Performance monitoring threshold (milliseconds)
SLOW_QUERY_THRESHOLD_MS = 150

BOOKKEEPING_KEYS = {"_id", "_datasetId", "_importedAt"}
JSON_TEXT_TYPES = {FieldType.ARRAY, FieldType.OBJECT}


def log_query_time(func: Callable) -> Callable:
    """
    Decorator to log query execution time and warn on slow queries.

    Args:
        func: Function to decorate

    Returns:
        Decorated function with timing instrumentation
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        start = time.perf_counter()
        result = func(*args, **kwargs)
        duration_ms = (time.perf_counter() - start) * 1000

        logger.info(f"Query {func.__name__} took {duration_ms:.2f}ms")

        if duration_ms > SLOW_QUERY_THRESHOLD_MS:
            logger.warning(
                f"SLOW QUERY: {func.__name__} exceeded {SLOW_QUERY_THRESHOLD_MS}ms target "
                f"(took {duration_ms:.2f}ms)"
            )

        return result
    return wrapper


def _to_int(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise QueryValidationError(f"{name} must be an integer", operation="retrieve")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise QueryValidationError(f"{name} must be an integer, got {value!r}", operation="retrieve")


@dataclass
class RetrievalRequest:
    """Ad-hoc retrieval against one dataset entity."""
    dataset: str
    entity: str
    filter: Dict[str, Any] = field(default_factory=dict)
    fields: Optional[List[str]] = None
    include: Optional[Any] = None  # accepted, no relations exist
    limit: int = 10
    offset: int = 0
    order_by: Optional[Any] = None
    sort: Optional[Any] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], default_limit: int = 10) -> "RetrievalRequest":
        return cls(
            dataset=data.get("dataset"),
            entity=data.get("entity"),
            filter=data.get("filter") or {},
            fields=data.get("fields"),
            include=data.get("include"),
            limit=data.get("limit", default_limit),
            offset=data.get("offset", 0),
            order_by=data.get("orderBy", data.get("order_by")),
            sort=data.get("sort"),
        )


class RetrievalEngine:
    """Serves dataset records from whichever backend stores them."""

    def __init__(
        self,
        catalog: CatalogStore,
        relational: RelationalStore,
        documents: DocumentStore,
        max_limit: int = 1000,
        dataset_default_limit: int = 100,
    ):
        self.catalog = catalog
        self.relational = relational
        self.documents = documents
        self.max_limit = max_limit
        self.dataset_default_limit = dataset_default_limit

    # ========== Resolution & validation ==========

    def resolve_dataset(self, reference: str) -> CatalogEntry:
        """
        Find a dataset by id, then by name.

        Raises:
            DatasetNotFoundError: If nothing matches
        """
        entry = self.catalog.get(reference) or self.catalog.find_by_name(reference)
        if entry is None:
            raise DatasetNotFoundError(
                f"Dataset not found: {reference}", operation="retrieve", dataset_id=reference)
        return entry

    def _get_entry(self, dataset_id: str) -> CatalogEntry:
        entry = self.catalog.get(dataset_id)
        if entry is None:
            raise DatasetNotFoundError(
                f"Dataset not found: {dataset_id}", operation="retrieve", dataset_id=dataset_id)
        return entry

    def _validate_window(self, limit: Any, offset: Any) -> Tuple[int, int]:
        limit = _to_int(limit, "limit")
        offset = _to_int(offset, "offset")
        if limit < 1 or limit > self.max_limit:
            raise QueryValidationError(
                f"limit must be between 1 and {self.max_limit}", operation="retrieve")
        if offset < 0:
            raise QueryValidationError("offset must be >= 0", operation="retrieve")
        return limit, offset

    def _validate_fields(self, fields: Optional[List[str]]) -> Optional[List[str]]:
        if fields is None:
            return None
        if isinstance(fields, str):
            fields = [f.strip() for f in fields.split(",") if f.strip()]
        if not isinstance(fields, list) or not all(isinstance(f, str) for f in fields):
            raise QueryValidationError("fields must be a list of field names", operation="retrieve")
        return fields or None

    @staticmethod
    def _validate_sort_fields(entry: CatalogEntry, sort: List[Tuple[str, int]]) -> None:
        known = {f["name"] for f in entry.schema.get("fields", [])}
        if not known:
            return
        for name, _ in sort:
            if name not in known:
                raise QueryValidationError(
                    f"Unknown sort field: {name}", operation="retrieve", dataset_id=entry.dataset_id)

    # ========== Backend dispatch ==========

    def _fetch(
        self,
        entry: CatalogEntry,
        filter: Dict[str, Dict[str, Any]],
        fields: Optional[List[str]],
        sort: List[Tuple[str, int]],
        limit: int,
        offset: int,
    ) -> List[Dict[str, Any]]:
        start = time.perf_counter()
        status = "success"
        try:
            if entry.storage == "postgres":
                return self._fetch_relational(entry, filter, fields, sort, limit, offset)
            return self._fetch_documents(entry, filter, fields, sort, limit, offset)
        except DualStoreError:
            status = "failure"
            raise
        finally:
            metrics.record_retrieval(entry.storage, status, time.perf_counter() - start)

    def _fetch_relational(self, entry, filter, fields, sort, limit, offset) -> List[Dict[str, Any]]:
        schema = SchemaDescriptor.from_dict(entry.schema)
        table = build_table(schema)
        field_types = {f["name"]: FieldType(f["type"]) for f in schema.fields}

        conditions = build_sql_conditions(table, schema.columns, field_types, filter)
        rows = self.relational.fetch(
            table,
            where=conditions,
            order_by=build_sql_order(table, schema.columns, sort),
            limit=limit,
            offset=offset,
        )
        return [self._row_to_record(row, schema, field_types, fields) for row in rows]

    @staticmethod
    def _row_to_record(
        row: Dict[str, Any],
        schema: SchemaDescriptor,
        field_types: Dict[str, FieldType],
        fields: Optional[List[str]],
    ) -> Dict[str, Any]:
        record = {}
        for name, column in schema.columns.items():
            if fields and name not in fields:
                continue
            value = row.get(column)
            if value is not None and field_types[name] in JSON_TEXT_TYPES and isinstance(value, str):
                value = json.loads(value)
            elif isinstance(value, Decimal):
                value = int(value) if value == value.to_integral_value() else float(value)
            elif isinstance(value, float) and value.is_integer():
                value = int(value)
            record[name] = value
        return record

    def _fetch_documents(self, entry, filter, fields, sort, limit, offset) -> List[Dict[str, Any]]:
        documents = self.documents.find(
            entry.collection_name,
            filter=filter,
            projection=fields,
            sort=sort or None,
            skip=offset,
            limit=limit,
        )
        return [
            {k: v for k, v in doc.items() if k not in BOOKKEEPING_KEYS}
            for doc in documents
        ]

    def _count(self, entry: CatalogEntry, filter: Dict[str, Dict[str, Any]]) -> int:
        if entry.storage == "postgres":
            schema = SchemaDescriptor.from_dict(entry.schema)
            table = build_table(schema)
            field_types = {f["name"]: FieldType(f["type"]) for f in schema.fields}
            conditions = build_sql_conditions(table, schema.columns, field_types, filter)
            return self.relational.count(table, conditions)
        return self.documents.count(entry.collection_name, filter)

    # ========== Public operations ==========

    @log_query_time
    def retrieve(self, request: RetrievalRequest) -> List[Dict[str, Any]]:
        """
        Retrieve records from a dataset entity.

        Args:
            request: RetrievalRequest

        Returns:
            Matching records with original field names

        Raises:
            QueryValidationError: Missing dataset/entity or invalid parameters
            DatasetNotFoundError: Unknown dataset
            EntityNotFoundError: Entity not part of the dataset
        """
        if not request.dataset:
            raise QueryValidationError("dataset is required", operation="retrieve")
        if not request.entity:
            raise QueryValidationError("entity is required", operation="retrieve")

        limit, offset = self._validate_window(request.limit, request.offset)
        filter = normalize_filter(request.filter)
        sort = normalize_sort(request.order_by, request.sort)
        fields = self._validate_fields(request.fields)

        entry = self.resolve_dataset(request.dataset)
        if request.entity not in entry.entities:
            raise EntityNotFoundError(
                f"Entity {request.entity} not found in dataset {entry.dataset_id}",
                operation="retrieve",
                dataset_id=entry.dataset_id,
            )
        self._validate_sort_fields(entry, sort)

        return self._fetch(entry, filter, fields, sort, limit, offset)

    @log_query_time
    def retrieve_dataset(
        self,
        dataset_id: str,
        page: int = 1,
        limit: Optional[int] = None,
        where: Optional[Dict[str, Any]] = None,
        order_by: Optional[Any] = None,
        sort: Optional[Any] = None,
        fields: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """
        Page through a dataset's records.

        Returns:
            {dataset, data, pagination}
        """
        page = _to_int(page, "page")
        if page < 1:
            raise QueryValidationError("page must be >= 1", operation="retrieve")
        limit, _ = self._validate_window(
            self.dataset_default_limit if limit is None else limit, 0)
        offset = (page - 1) * limit

        filter = normalize_filter(where)
        sort_pairs = normalize_sort(order_by, sort)
        fields = self._validate_fields(fields)

        entry = self._get_entry(dataset_id)
        self._validate_sort_fields(entry, sort_pairs)

        data = self._fetch(entry, filter, fields, sort_pairs, limit, offset)
        total = self._count(entry, filter)

        return {
            "dataset": {
                "id": entry.dataset_id,
                "name": entry.name,
                "storage": entry.storage,
                "entity": entry.default_entity,
                "recordCount": entry.record_count,
            },
            "data": data,
            "pagination": Pagination(page, limit, total).to_dict(),
        }

    def query_dataset(self, dataset_id: str, query: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Run a query document against a dataset.

        Args:
            dataset_id: Dataset id
            query: {page, limit, where|filter, orderBy, sort, fields}
        """
        query = query or {}
        if not isinstance(query, dict):
            raise QueryValidationError("query must be an object", operation="query")

        return self.retrieve_dataset(
            dataset_id,
            page=query.get("page", 1),
            limit=query.get("limit"),
            where=query.get("where", query.get("filter")),
            order_by=query.get("orderBy", query.get("order_by")),
            sort=query.get("sort"),
            fields=query.get("fields"),
        )

    def get_dataset_stats(self, dataset_id: str) -> Dict[str, Any]:
        """Record counts and schema summary for a dataset."""
        entry = self._get_entry(dataset_id)
        fields = entry.schema.get("fields", [])

        return {
            "id": entry.dataset_id,
            "name": entry.name,
            "storage": entry.storage,
            "backend": entry.backend,
            "entity": entry.default_entity,
            "recordCount": entry.record_count,
            "storedCount": self._count(entry, {}),
            "fieldCount": len(fields),
            "fields": [f["name"] for f in fields],
            "nestedFields": [f["name"] for f in fields if f.get("nested")],
            "fallback": bool(entry.processing.get("fallback")),
            "fileSize": entry.file_size,
            "createdAt": entry.created_at.isoformat() if entry.created_at else None,
            "updatedAt": entry.updated_at.isoformat() if entry.updated_at else None,
        }
