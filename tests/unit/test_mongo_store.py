"""
Unit tests for the MongoDB document store with a mocked client.
"""

from unittest.mock import MagicMock

import pytest
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import PyMongoError

from dualstore.storage.interface import StorageError
from dualstore.storage.mongo import MongoDocumentStore


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def store(client):
    return MongoDocumentStore("mongodb://unused", "dualstore", client=client)


class TestMongoDocumentStore:

    def test_insert_many(self, store, client):
        collection = client["dualstore"]["c"]
        collection.insert_many.return_value.inserted_ids = [1, 2]

        assert store.insert_many("c", [{"a": 1}, {"a": 2}]) == 2
        collection.insert_many.assert_called_once_with([{"a": 1}, {"a": 2}], ordered=True)

    def test_insert_nothing(self, store, client):
        assert store.insert_many("c", []) == 0
        client["dualstore"]["c"].insert_many.assert_not_called()

    def test_insert_failure_wrapped(self, store, client):
        client["dualstore"]["c"].insert_many.side_effect = PyMongoError("down")

        with pytest.raises(StorageError):
            store.insert_many("c", [{"a": 1}])

    def test_find_applies_cursor_options(self, store, client):
        cursor = MagicMock()
        cursor.sort.return_value = cursor
        cursor.skip.return_value = cursor
        cursor.limit.return_value = cursor
        cursor.__iter__.return_value = iter([{"a": 1}])
        client["dualstore"]["c"].find.return_value = cursor

        docs = store.find("c", {"a": 1}, projection=["a"], sort=[("a", -1), ("b", 1)], skip=5, limit=10)

        assert docs == [{"a": 1}]
        client["dualstore"]["c"].find.assert_called_once_with({"a": 1}, {"a": 1})
        cursor.sort.assert_called_once_with([("a", DESCENDING), ("b", ASCENDING)])
        cursor.skip.assert_called_once_with(5)
        cursor.limit.assert_called_once_with(10)

    def test_count(self, store, client):
        client["dualstore"]["c"].count_documents.return_value = 3

        assert store.count("c") == 3
        client["dualstore"]["c"].count_documents.assert_called_once_with({})

    def test_drop_collection(self, store, client):
        store.drop_collection("c")

        client["dualstore"].drop_collection.assert_called_once_with("c")

    def test_ping_failure(self, store, client):
        client.admin.command.side_effect = PyMongoError("down")

        assert store.ping() is False
