"""
Error types raised by the ingestion and retrieval core.

Every error carries the operation that failed, the dataset it concerns
(when known) and the underlying cause, so the HTTP layer can translate
it into a response without inspecting messages.
"""

from typing import Any, Dict, Optional


class DualStoreError(Exception):
    """Base class for all core errors."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        dataset_id: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.dataset_id = dataset_id
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "operation": self.operation,
            "dataset_id": self.dataset_id,
            "cause": str(self.cause) if self.cause else None,
        }


class InputError(DualStoreError):
    """Missing parameters or an unreadable staged file."""
    pass


class EmptyDatasetError(InputError):
    """The staged file contained no records."""
    pass


class AnalysisError(DualStoreError):
    """The staged file is not valid JSON/NDJSON."""
    pass


class StorageWriteError(DualStoreError):
    """Records could not be persisted by any backend."""
    pass


class CatalogError(DualStoreError):
    """Catalog persistence failed."""
    pass


class DatasetNotFoundError(DualStoreError):
    """No catalog entry matches the requested dataset."""
    pass


class EntityNotFoundError(DatasetNotFoundError):
    """The requested table/collection does not belong to the dataset."""
    pass


class QueryValidationError(DualStoreError):
    """A retrieval request is malformed."""
    pass
