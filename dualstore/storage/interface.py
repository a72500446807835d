"""
Document store interface.

Defines the abstract interface for document backends (MongoDB,
in-process) so the writer and the retrieval engine never depend on a
concrete driver.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Tuple

from dualstore.common.errors import DualStoreError

# (field, 1 | -1)
SortSpec = Sequence[Tuple[str, int]]


class StorageError(DualStoreError):
    """Exception raised for storage-related errors."""
    pass


class DocumentStore(ABC):
    """
    Abstract base class for document backends.

    Filters use the MongoDB query language restricted to top-level
    equality and the $eq/$ne/$gt/$gte/$lt/$lte/$in/$nin operators.
    """

    @abstractmethod
    def insert_many(self, collection: str, documents: List[Dict[str, Any]]) -> int:
        """
        Insert documents into a collection (created on first insert).

        Args:
            collection: Collection name
            documents: Documents to insert

        Returns:
            Number of documents inserted

        Raises:
            StorageError: If the insert fails
        """
        pass

    @abstractmethod
    def find(
        self,
        collection: str,
        filter: Optional[Dict[str, Any]] = None,
        projection: Optional[List[str]] = None,
        sort: Optional[SortSpec] = None,
        skip: int = 0,
        limit: int = 0,
    ) -> List[Dict[str, Any]]:
        """
        Query a collection.

        Args:
            collection: Collection name
            filter: Query document
            projection: Field names to return (all when None)
            sort: (field, direction) pairs; insertion order when None
            skip: Documents to skip
            limit: Maximum documents to return (0 = no limit)

        Returns:
            Matching documents
        """
        pass

    @abstractmethod
    def count(self, collection: str, filter: Optional[Dict[str, Any]] = None) -> int:
        """Count documents matching a filter."""
        pass

    @abstractmethod
    def drop_collection(self, collection: str) -> None:
        """Drop a collection if it exists."""
        pass

    @abstractmethod
    def ping(self) -> bool:
        """Return True if the backend is reachable."""
        pass
