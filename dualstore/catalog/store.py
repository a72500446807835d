"""
Catalog store: persistence of dataset catalog entries.

All reads and writes of the dataset_catalog table go through this
module. An optional CatalogCache serves repeated reads.
"""

import json
import logging
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any, Dict, Generator, List, Optional

from sqlalchemy import String, cast, func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from dualstore.catalog.cache import CatalogCache
from dualstore.catalog.entry import CatalogEntry, CatalogPage, Pagination
from dualstore.catalog.models import DatasetRecord, utc_now
from dualstore.common.errors import CatalogError, DatasetNotFoundError, QueryValidationError

logger = logging.getLogger(__name__)

SORT_COLUMNS = {
    "created_at": DatasetRecord.created_at,
    "updated_at": DatasetRecord.updated_at,
    "original_name": DatasetRecord.original_name,
    "name": DatasetRecord.name,
    "record_count": DatasetRecord.record_count,
    "file_size": DatasetRecord.file_size,
}

# camelCase aliases accepted from the HTTP layer
SORT_ALIASES = {
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "originalName": "original_name",
    "recordCount": "record_count",
    "fileSize": "file_size",
}

FILTER_COLUMNS = {
    "storage": DatasetRecord.storage,
    "category": DatasetRecord.category,
    "extension": DatasetRecord.extension,
    "mime_type": DatasetRecord.mime_type,
}


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so the value matches literally (escape char \\)."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def next_timestamp(previous: Optional[datetime]) -> datetime:
    """Current UTC time, forced strictly past the previous timestamp."""
    now = utc_now()
    if previous is not None and now <= previous:
        return previous + timedelta(microseconds=1)
    return now


class CatalogStore:
    """CRUD, listing and search over catalog entries."""

    def __init__(
        self,
        session_factory: sessionmaker,
        cache: Optional[CatalogCache] = None,
        search_limit: int = 50,
    ):
        """
        Initialize catalog store.

        Args:
            session_factory: Factory for catalog database sessions
            cache: Optional read-through cache
            search_limit: Maximum search results
        """
        self.session_factory = session_factory
        self.cache = cache
        self.search_limit = search_limit

    @contextmanager
    def _session(self, operation: str, dataset_id: Optional[str] = None) -> Generator[Session, None, None]:
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise CatalogError(
                f"Catalog {operation} failed: {e}",
                operation=operation,
                dataset_id=dataset_id,
                cause=e,
            )
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _invalidate(self, dataset_id: Optional[str] = None) -> None:
        if self.cache is not None:
            self.cache.invalidate(dataset_id)

    def create(self, entry: CatalogEntry) -> CatalogEntry:
        """
        Persist a new catalog entry.

        Raises:
            CatalogError: On duplicate dataset id or database failure
        """
        entry.created_at = entry.created_at or utc_now()
        entry.updated_at = entry.created_at

        try:
            with self._session("create", entry.dataset_id) as session:
                session.add(entry.to_record())
                session.flush()
        except CatalogError as e:
            if isinstance(e.cause, IntegrityError):
                raise CatalogError(
                    f"Dataset already exists: {entry.dataset_id}",
                    operation="create",
                    dataset_id=entry.dataset_id,
                    cause=e.cause,
                )
            raise

        self._invalidate(entry.dataset_id)
        logger.info(f"Catalog entry created: {entry.dataset_id} ({entry.storage})")
        return entry

    def get(self, dataset_id: str) -> Optional[CatalogEntry]:
        if self.cache is not None:
            cached = self.cache.get_entry(dataset_id)
            if cached is not None:
                return CatalogEntry.from_dict(cached)

        with self._session("get", dataset_id) as session:
            record = session.get(DatasetRecord, dataset_id)
            entry = CatalogEntry.from_record(record) if record else None

        if entry is not None and self.cache is not None:
            self.cache.set_entry(dataset_id, entry.to_dict())
        return entry

    def find_by_name(self, name: str) -> Optional[CatalogEntry]:
        """Find the newest dataset by dataset name, then by original file name."""
        with self._session("find_by_name") as session:
            for column in (DatasetRecord.name, DatasetRecord.original_name):
                record = session.scalars(
                    select(DatasetRecord)
                    .where(column == name)
                    .order_by(DatasetRecord.created_at.desc(), DatasetRecord.dataset_id.desc())
                    .limit(1)
                ).first()
                if record is not None:
                    return CatalogEntry.from_record(record)
        return None

    def list(
        self,
        filters: Optional[Dict[str, Any]] = None,
        page: int = 1,
        limit: int = 20,
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> CatalogPage:
        """
        List catalog entries with filtering, sorting and pagination.

        Args:
            filters: storage, category, extension, mime_type, tag
            page: 1-based page number
            limit: Page size
            sort_by: Sort column (snake_case or camelCase)
            sort_order: 'asc' or 'desc'

        Returns:
            CatalogPage
        """
        if page < 1:
            raise QueryValidationError("page must be >= 1", operation="list")
        if limit < 1:
            raise QueryValidationError("limit must be >= 1", operation="list")

        sort_key = SORT_ALIASES.get(sort_by, sort_by)
        if sort_key not in SORT_COLUMNS:
            raise QueryValidationError(f"Unsupported sort field: {sort_by}", operation="list")
        if sort_order.lower() not in ("asc", "desc"):
            raise QueryValidationError(f"Unsupported sort order: {sort_order}", operation="list")

        filters = {k: v for k, v in (filters or {}).items() if v is not None}
        params = {
            "filters": filters,
            "page": page,
            "limit": limit,
            "sort_by": sort_key,
            "sort_order": sort_order.lower(),
        }

        if self.cache is not None:
            cached = self.cache.get_list(params)
            if cached is not None:
                return CatalogPage.from_dict(cached)

        conditions = []
        for key, value in filters.items():
            if key == "tag":
                pattern = f"%{escape_like(json.dumps(str(value)))}%"
                conditions.append(cast(DatasetRecord.tags, String).like(pattern, escape="\\"))
            elif key in FILTER_COLUMNS:
                conditions.append(FILTER_COLUMNS[key] == value)
            else:
                raise QueryValidationError(f"Unsupported filter: {key}", operation="list")

        sort_column = SORT_COLUMNS[sort_key]
        if sort_order.lower() == "asc":
            ordering = (sort_column.asc(), DatasetRecord.dataset_id.asc())
        else:
            ordering = (sort_column.desc(), DatasetRecord.dataset_id.desc())

        # Count and page read in one transaction
        with self._session("list") as session:
            total = session.scalar(
                select(func.count()).select_from(DatasetRecord).where(*conditions))
            records = session.scalars(
                select(DatasetRecord)
                .where(*conditions)
                .order_by(*ordering)
                .offset((page - 1) * limit)
                .limit(limit)
            ).all()
            entries = [CatalogEntry.from_record(r) for r in records]

        result = CatalogPage(entries=entries, pagination=Pagination(page, limit, total or 0))

        if self.cache is not None:
            self.cache.set_list(params, result.to_dict())
        return result

    def update(
        self,
        dataset_id: str,
        tags: Optional[List[str]] = None,
        description: Optional[str] = None,
    ) -> Optional[CatalogEntry]:
        """
        Update user-editable fields. Always advances updated_at.

        Returns:
            Updated entry, or None if the dataset does not exist
        """
        with self._session("update", dataset_id) as session:
            record = session.get(DatasetRecord, dataset_id)
            if record is None:
                return None
            if tags is not None:
                record.tags = list(tags)
            if description is not None:
                record.description = description
            record.updated_at = next_timestamp(record.updated_at)
            session.flush()
            entry = CatalogEntry.from_record(record)

        self._invalidate(dataset_id)
        return entry

    def delete(self, dataset_id: str) -> None:
        """
        Delete a catalog entry.

        Raises:
            DatasetNotFoundError: If the dataset does not exist
        """
        with self._session("delete", dataset_id) as session:
            record = session.get(DatasetRecord, dataset_id)
            if record is None:
                raise DatasetNotFoundError(
                    f"Dataset not found: {dataset_id}", operation="delete", dataset_id=dataset_id)
            session.delete(record)

        self._invalidate(dataset_id)
        logger.info(f"Catalog entry deleted: {dataset_id}")

    def search(self, keyword: str) -> List[CatalogEntry]:
        """Case-insensitive search on names, description and tags."""
        if not keyword or not keyword.strip():
            raise QueryValidationError("Search keyword is required", operation="search")

        if self.cache is not None:
            cached = self.cache.get_search(keyword)
            if cached is not None:
                return [CatalogEntry.from_dict(item) for item in cached]

        pattern = f"%{escape_like(keyword.strip().lower())}%"
        with self._session("search") as session:
            records = session.scalars(
                select(DatasetRecord)
                .where(
                    or_(
                        func.lower(DatasetRecord.original_name).like(pattern, escape="\\"),
                        func.lower(DatasetRecord.name).like(pattern, escape="\\"),
                        func.lower(func.coalesce(DatasetRecord.description, "")).like(pattern, escape="\\"),
                        func.lower(cast(DatasetRecord.tags, String)).like(pattern, escape="\\"),
                    )
                )
                .order_by(DatasetRecord.created_at.desc(), DatasetRecord.dataset_id.desc())
                .limit(self.search_limit)
            ).all()
            entries = [CatalogEntry.from_record(r) for r in records]

        if self.cache is not None:
            self.cache.set_search(keyword, [entry.to_dict() for entry in entries])
        return entries

    def count(self) -> int:
        with self._session("count") as session:
            return session.scalar(select(func.count()).select_from(DatasetRecord)) or 0
