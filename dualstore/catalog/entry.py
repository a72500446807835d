"""Catalog entry value objects."""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from dualstore.catalog.models import DatasetRecord

STORAGE_BACKENDS = {"postgres": "sql", "mongodb": "nosql"}


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


@dataclass
class CatalogEntry:
    """Metadata describing one ingested dataset."""
    dataset_id: str
    name: str
    original_name: str
    storage: str  # postgres or mongodb
    record_count: int = 0
    file_path: Optional[str] = None
    file_size: int = 0
    mime_type: Optional[str] = "application/json"
    extension: Optional[str] = "json"
    category: str = "json"
    metadata: Dict[str, Any] = field(default_factory=dict)
    schema: Dict[str, Any] = field(default_factory=dict)
    processing: Dict[str, Any] = field(default_factory=dict)
    tags: List[str] = field(default_factory=list)
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def collection_name(self) -> str:
        return f"dataset_{self.dataset_id}"

    @property
    def table_name(self) -> Optional[str]:
        return self.schema.get("tableName") or None

    @property
    def backend(self) -> str:
        return STORAGE_BACKENDS.get(self.storage, "nosql")

    @property
    def entities(self) -> List[str]:
        """Names a retrieval request may use for this dataset."""
        names = [self.collection_name]
        if self.table_name:
            names.insert(0, self.table_name)
        return names

    @property
    def default_entity(self) -> str:
        if self.storage == "postgres" and self.table_name:
            return self.table_name
        return self.collection_name

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.dataset_id,
            "name": self.name,
            "originalName": self.original_name,
            "filePath": self.file_path,
            "fileSize": self.file_size,
            "mimeType": self.mime_type,
            "extension": self.extension,
            "category": self.category,
            "storage": self.storage,
            "backend": self.backend,
            "recordCount": self.record_count,
            "metadata": self.metadata,
            "schema": self.schema,
            "processing": self.processing,
            "tags": self.tags,
            "description": self.description,
            "tableName": self.table_name if self.storage == "postgres" else None,
            "collectionName": self.collection_name if self.storage == "mongodb" else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CatalogEntry":
        return cls(
            dataset_id=data["id"],
            name=data["name"],
            original_name=data["originalName"],
            storage=data["storage"],
            record_count=data.get("recordCount", 0),
            file_path=data.get("filePath"),
            file_size=data.get("fileSize", 0),
            mime_type=data.get("mimeType"),
            extension=data.get("extension"),
            category=data.get("category", "json"),
            metadata=data.get("metadata") or {},
            schema=data.get("schema") or {},
            processing=data.get("processing") or {},
            tags=list(data.get("tags") or []),
            description=data.get("description"),
            created_at=_parse_datetime(data.get("createdAt")),
            updated_at=_parse_datetime(data.get("updatedAt")),
        )

    @classmethod
    def from_record(cls, record: DatasetRecord) -> "CatalogEntry":
        return cls(
            dataset_id=record.dataset_id,
            name=record.name,
            original_name=record.original_name,
            storage=record.storage,
            record_count=record.record_count,
            file_path=record.file_path,
            file_size=record.file_size,
            mime_type=record.mime_type,
            extension=record.extension,
            category=record.category,
            metadata=record.dataset_metadata or {},
            schema=record.schema_info or {},
            processing=record.processing or {},
            tags=list(record.tags or []),
            description=record.description,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )

    def to_record(self) -> DatasetRecord:
        return DatasetRecord(
            dataset_id=self.dataset_id,
            name=self.name,
            original_name=self.original_name,
            file_path=self.file_path,
            file_size=self.file_size,
            mime_type=self.mime_type,
            extension=self.extension,
            category=self.category,
            storage=self.storage,
            record_count=self.record_count,
            dataset_metadata=self.metadata,
            schema_info=self.schema,
            processing=self.processing,
            tags=list(self.tags),
            description=self.description,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


@dataclass
class Pagination:
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "page": self.page,
            "limit": self.limit,
            "total": self.total,
            "totalPages": self.total_pages,
        }


@dataclass
class CatalogPage:
    """One page of catalog entries."""
    entries: List[CatalogEntry]
    pagination: Pagination

    def to_dict(self) -> Dict[str, Any]:
        return {
            "datasets": [entry.to_dict() for entry in self.entries],
            "pagination": self.pagination.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CatalogPage":
        pagination = data["pagination"]
        return cls(
            entries=[CatalogEntry.from_dict(item) for item in data["datasets"]],
            pagination=Pagination(pagination["page"], pagination["limit"], pagination["total"]),
        )
