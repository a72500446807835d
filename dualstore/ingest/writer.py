"""
Dual-backend writer.

Persists analyzed records to the relational store or the document
store. A relational failure drops the partially created table and
writes the same records as documents instead.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from dualstore.common import metrics
from dualstore.common.errors import StorageWriteError
from dualstore.ingest.backend_selector import StorageBackend, StorageKind
from dualstore.ingest.field_analyzer import FieldType
from dualstore.ingest.schema_generator import SchemaDescriptor
from dualstore.storage.interface import DocumentStore, StorageError
from dualstore.storage.relational import RelationalStore, build_table

logger = logging.getLogger(__name__)

JSON_TEXT_TYPES = {FieldType.ARRAY, FieldType.OBJECT}


def collection_name_for(dataset_id: str) -> str:
    return f"dataset_{dataset_id}"


@dataclass
class WriteResult:
    """Outcome of a dataset write."""
    backend: StorageKind
    count: int
    fallback: bool = False
    error: Optional[str] = None
    entity: Optional[str] = None  # table or collection written


class DualBackendWriter:
    """Routes dataset records to the relational or document store."""

    def __init__(self, relational: RelationalStore, documents: DocumentStore):
        """
        Initialize writer.

        Args:
            relational: Store for SQL datasets
            documents: Store for NoSQL datasets and fallbacks
        """
        self.relational = relational
        self.documents = documents

    def write(
        self,
        backend: StorageBackend,
        schema: SchemaDescriptor,
        dataset_id: str,
        records: List[Any],
    ) -> WriteResult:
        """
        Persist records on the selected backend.

        Args:
            backend: sql or nosql
            schema: Generated schema (table name, DDL, columns)
            dataset_id: Dataset id (names the collection)
            records: Records to persist

        Returns:
            WriteResult describing where the records landed

        Raises:
            StorageWriteError: If the document write fails
        """
        if backend != StorageBackend.SQL:
            return self._write_documents(dataset_id, records)

        try:
            return self._write_relational(schema, records)
        except StorageError as e:
            logger.warning(
                f"Relational write failed for dataset {dataset_id}, falling back to document store: {e}",
                extra={"extra_fields": {"dataset_id": dataset_id, "table": schema.table_name}},
            )
            metrics.record_fallback()
            self._drop_partial_table(schema.table_name)

            result = self._write_documents(dataset_id, records)
            result.fallback = True
            result.error = str(e)
            return result

    def _write_relational(self, schema: SchemaDescriptor, records: List[Dict[str, Any]]) -> WriteResult:
        self.relational.execute_ddl(schema.ddl)
        table = build_table(schema)

        json_columns = {
            schema.columns[f["name"]]
            for f in schema.fields
            if FieldType(f["type"]) in JSON_TEXT_TYPES
        }
        rows = [self._to_row(record, schema.columns, json_columns) for record in records]
        count = self.relational.insert_rows(table, rows)

        logger.info(f"Inserted {count} rows into {schema.table_name}")
        return WriteResult(backend=StorageKind.POSTGRES, count=count, entity=schema.table_name)

    @staticmethod
    def _to_row(record: Dict[str, Any], columns: Dict[str, str], json_columns) -> Dict[str, Any]:
        # Every row carries every column so batches share one statement
        row = {}
        for name, column in columns.items():
            value = record.get(name)
            if value is not None and (column in json_columns or isinstance(value, (dict, list))):
                value = json.dumps(value)
            row[column] = value
        return row

    def _drop_partial_table(self, table_name: str) -> None:
        try:
            self.relational.drop_table(table_name)
        except StorageError as e:
            logger.error(f"Failed to drop partial table {table_name}: {e}")

    def _write_documents(self, dataset_id: str, records: List[Any]) -> WriteResult:
        collection = collection_name_for(dataset_id)
        imported_at = datetime.now(timezone.utc)

        documents = []
        for record in records:
            document = dict(record) if isinstance(record, dict) else {"value": record}
            document["_datasetId"] = dataset_id
            document["_importedAt"] = imported_at
            documents.append(document)

        try:
            count = self.documents.insert_many(collection, documents)
        except StorageError as e:
            raise StorageWriteError(
                f"Document write failed: {e}",
                operation="write",
                dataset_id=dataset_id,
                cause=e,
            )

        logger.info(f"Inserted {count} documents into {collection}")
        return WriteResult(backend=StorageKind.MONGODB, count=count, entity=collection)

    def purge(self, storage: str, dataset_id: str, table_name: Optional[str] = None) -> None:
        """
        Drop the table or collection backing a dataset.

        Args:
            storage: 'postgres' or 'mongodb'
            dataset_id: Dataset id
            table_name: Table name for relational datasets
        """
        if storage == StorageKind.POSTGRES.value and table_name:
            self.relational.drop_table(table_name)
        else:
            self.documents.drop_collection(collection_name_for(dataset_id))
