"""
Integration tests for the catalog store against an in-memory database.
"""

from datetime import timedelta
from unittest.mock import Mock
from uuid import uuid4

import pytest

from dualstore.catalog.entry import CatalogEntry
from dualstore.catalog.models import utc_now
from dualstore.catalog.store import CatalogStore, next_timestamp
from dualstore.common.errors import CatalogError, DatasetNotFoundError, QueryValidationError


def make_entry(name="sales", storage="postgres", created_at=None, **kwargs):
    dataset_id = kwargs.pop("dataset_id", str(uuid4()))
    schema = {"tableName": f"dataset_{name}_{dataset_id[:8]}"} if storage == "postgres" else {}
    return CatalogEntry(
        dataset_id=dataset_id,
        name=name,
        original_name=f"{name}.json",
        storage=storage,
        record_count=kwargs.pop("record_count", 10),
        schema=schema,
        created_at=created_at,
        **kwargs,
    )


class TestCatalogCrud:

    def test_create_and_get(self, catalog):
        entry = catalog.create(make_entry(tags=["finance"], description="Q1 sales"))

        loaded = catalog.get(entry.dataset_id)

        assert loaded.name == "sales"
        assert loaded.storage == "postgres"
        assert loaded.tags == ["finance"]
        assert loaded.table_name == entry.table_name
        assert loaded.created_at == loaded.updated_at

    def test_get_missing(self, catalog):
        assert catalog.get("missing") is None

    def test_duplicate_id_rejected(self, catalog):
        entry = make_entry()
        catalog.create(entry)

        with pytest.raises(CatalogError, match="already exists"):
            catalog.create(make_entry(dataset_id=entry.dataset_id))

    def test_update_advances_updated_at(self, catalog):
        entry = catalog.create(make_entry())

        first = catalog.update(entry.dataset_id, tags=["x"])
        second = catalog.update(entry.dataset_id, description="again")

        assert first.tags == ["x"]
        assert second.description == "again"
        assert first.updated_at > entry.created_at
        assert second.updated_at > first.updated_at
        assert second.created_at == entry.created_at

    def test_update_missing(self, catalog):
        assert catalog.update("missing", tags=["x"]) is None

    def test_delete(self, catalog):
        entry = catalog.create(make_entry())

        catalog.delete(entry.dataset_id)

        assert catalog.get(entry.dataset_id) is None
        assert catalog.count() == 0

    def test_delete_missing(self, catalog):
        with pytest.raises(DatasetNotFoundError):
            catalog.delete("missing")

    def test_find_by_name_prefers_newest(self, catalog):
        now = utc_now()
        catalog.create(make_entry(name="sales", created_at=now - timedelta(days=1)))
        newest = catalog.create(make_entry(name="sales", created_at=now))

        assert catalog.find_by_name("sales").dataset_id == newest.dataset_id

    def test_find_by_original_name(self, catalog):
        entry = catalog.create(make_entry(name="sales"))

        assert catalog.find_by_name("sales.json").dataset_id == entry.dataset_id
        assert catalog.find_by_name("nothing") is None


class TestCatalogList:

    def test_pagination(self, catalog):
        start = utc_now()
        for i in range(25):
            catalog.create(make_entry(name=f"d{i}", created_at=start + timedelta(seconds=i)))

        page = catalog.list(page=3, limit=10)

        assert len(page.entries) == 5
        assert page.pagination.total == 25
        assert page.pagination.total_pages == 3
        assert page.to_dict()["pagination"] == {"page": 3, "limit": 10, "total": 25, "totalPages": 3}

    def test_pages_do_not_overlap(self, catalog):
        created_at = utc_now()
        for i in range(7):
            catalog.create(make_entry(name=f"d{i}", created_at=created_at))

        ids = []
        for page in (1, 2, 3):
            ids.extend(e.dataset_id for e in catalog.list(page=page, limit=3).entries)

        assert len(ids) == 7
        assert len(set(ids)) == 7

    def test_default_order_newest_first(self, catalog):
        now = utc_now()
        catalog.create(make_entry(name="old", created_at=now - timedelta(hours=1)))
        catalog.create(make_entry(name="new", created_at=now))

        assert [e.name for e in catalog.list().entries] == ["new", "old"]

    def test_sort_by_camel_case_alias(self, catalog):
        catalog.create(make_entry(name="a", record_count=5))
        catalog.create(make_entry(name="b", record_count=1))

        entries = catalog.list(sort_by="recordCount", sort_order="asc").entries

        assert [e.name for e in entries] == ["b", "a"]

    def test_filter_by_storage(self, catalog):
        catalog.create(make_entry(name="flat", storage="postgres"))
        catalog.create(make_entry(name="nested", storage="mongodb"))

        page = catalog.list(filters={"storage": "mongodb"})

        assert [e.name for e in page.entries] == ["nested"]
        assert page.pagination.total == 1

    def test_filter_by_tag(self, catalog):
        catalog.create(make_entry(name="tagged", tags=["finance", "q1"]))
        catalog.create(make_entry(name="other", tags=["financial"]))

        assert [e.name for e in catalog.list(filters={"tag": "finance"}).entries] == ["tagged"]

    def test_tag_filter_treats_wildcards_literally(self, catalog):
        catalog.create(make_entry(name="underscore", tags=["a_b"]))
        catalog.create(make_entry(name="letter", tags=["axb"]))
        catalog.create(make_entry(name="percent", tags=["100%"]))

        assert [e.name for e in catalog.list(filters={"tag": "a_b"}).entries] == ["underscore"]
        assert [e.name for e in catalog.list(filters={"tag": "%"}).entries] == []

    def test_invalid_parameters(self, catalog):
        with pytest.raises(QueryValidationError):
            catalog.list(page=0)
        with pytest.raises(QueryValidationError):
            catalog.list(sort_by="password")
        with pytest.raises(QueryValidationError):
            catalog.list(sort_order="sideways")
        with pytest.raises(QueryValidationError):
            catalog.list(filters={"owner": "x"})


class TestCatalogSearch:

    def test_search_matches_names_description_and_tags(self, catalog):
        catalog.create(make_entry(name="Sales_2024"))
        catalog.create(make_entry(name="inventory", description="Warehouse SALES stock"))
        catalog.create(make_entry(name="hr", tags=["sales-team"]))
        catalog.create(make_entry(name="weather"))

        names = {e.name for e in catalog.search("sales")}

        assert names == {"Sales_2024", "inventory", "hr"}

    def test_search_limit(self, session_factory):
        store = CatalogStore(session_factory, search_limit=2)
        for i in range(5):
            store.create(make_entry(name=f"sales{i}"))

        assert len(store.search("sales")) == 2

    def test_empty_keyword(self, catalog):
        with pytest.raises(QueryValidationError):
            catalog.search("  ")


class TestCatalogCacheIntegration:

    def test_get_reads_through_cache(self, session_factory):
        cache = Mock()
        cache.get_entry.return_value = None
        store = CatalogStore(session_factory, cache=cache)
        entry = store.create(make_entry())

        store.get(entry.dataset_id)

        cache.invalidate.assert_called_with(entry.dataset_id)
        cache.set_entry.assert_called_once()
        assert cache.set_entry.call_args[0][0] == entry.dataset_id

    def test_cache_hit_skips_database(self, session_factory):
        cached = make_entry(name="cached")
        cached.created_at = cached.updated_at = utc_now()
        cache = Mock()
        cache.get_entry.return_value = cached.to_dict()
        store = CatalogStore(session_factory, cache=cache)

        loaded = store.get(cached.dataset_id)

        assert loaded.name == "cached"
        assert loaded.created_at == cached.created_at


class TestNextTimestamp:

    def test_strictly_after_future_previous(self):
        previous = utc_now() + timedelta(seconds=5)

        assert next_timestamp(previous) > previous

    def test_none_previous(self):
        assert next_timestamp(None) is not None

    def test_timestamps_are_naive_utc(self, catalog):
        entry = catalog.create(make_entry())

        assert next_timestamp(None).tzinfo is None
        assert catalog.get(entry.dataset_id).created_at.tzinfo is None
