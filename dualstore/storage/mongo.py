"""MongoDB document store backed by pymongo."""

import logging
from typing import Any, Dict, List, Optional

from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.errors import PyMongoError

from dualstore.storage.interface import DocumentStore, SortSpec, StorageError

logger = logging.getLogger(__name__)


class MongoDocumentStore(DocumentStore):
    """
    Document store on a MongoDB database.

    The client is thread-safe and shared by all requests.
    """

    def __init__(
        self,
        url: str,
        database: str,
        client: Optional[MongoClient] = None,
        timeout_ms: int = 5000,
    ):
        """
        Initialize the MongoDB store.

        Args:
            url: MongoDB connection URL
            database: Database name
            client: Preconfigured client (built from url when None)
            timeout_ms: Server selection timeout
        """
        self.client = client or MongoClient(url, serverSelectionTimeoutMS=timeout_ms)
        self.db = self.client[database]

    def insert_many(self, collection: str, documents: List[Dict[str, Any]]) -> int:
        if not documents:
            return 0
        try:
            result = self.db[collection].insert_many(documents, ordered=True)
        except PyMongoError as e:
            raise StorageError(
                f"Failed to insert into collection {collection}: {e}",
                operation="insert_many",
                cause=e,
            )
        return len(result.inserted_ids)

    def find(
        self,
        collection: str,
        filter: Optional[Dict[str, Any]] = None,
        projection: Optional[List[str]] = None,
        sort: Optional[SortSpec] = None,
        skip: int = 0,
        limit: int = 0,
    ) -> List[Dict[str, Any]]:
        fields = {name: 1 for name in projection} if projection else None
        try:
            cursor = self.db[collection].find(filter or {}, fields)
            if sort:
                cursor = cursor.sort(
                    [(name, ASCENDING if direction > 0 else DESCENDING) for name, direction in sort]
                )
            if skip:
                cursor = cursor.skip(skip)
            if limit:
                cursor = cursor.limit(limit)
            return list(cursor)
        except PyMongoError as e:
            raise StorageError(
                f"Failed to query collection {collection}: {e}",
                operation="find",
                cause=e,
            )

    def count(self, collection: str, filter: Optional[Dict[str, Any]] = None) -> int:
        try:
            return self.db[collection].count_documents(filter or {})
        except PyMongoError as e:
            raise StorageError(
                f"Failed to count collection {collection}: {e}",
                operation="count",
                cause=e,
            )

    def drop_collection(self, collection: str) -> None:
        try:
            self.db.drop_collection(collection)
        except PyMongoError as e:
            raise StorageError(
                f"Failed to drop collection {collection}: {e}",
                operation="drop_collection",
                cause=e,
            )

    def ping(self) -> bool:
        try:
            self.client.admin.command("ping")
            return True
        except PyMongoError as e:
            logger.warning(f"MongoDB ping failed: {e}")
            return False
