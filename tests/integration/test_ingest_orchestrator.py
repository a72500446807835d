"""
Integration tests for the JSON ingestion pipeline.

Runs staged files through analysis, backend selection, writing and
cataloging against SQLite and the in-process document store.
"""

from unittest.mock import Mock

import pytest

from dualstore.common.errors import (
    AnalysisError,
    CatalogError,
    DatasetNotFoundError,
    EmptyDatasetError,
    InputError,
)
from dualstore.ingest.orchestrator import (
    JsonOrchestrator,
    StagedFile,
    create_profile,
    generate_dataset_name,
)
from dualstore.ingest.field_analyzer import FieldAnalyzer
from dualstore.ingest.writer import DualBackendWriter, collection_name_for
from dualstore.storage.interface import StorageError
from dualstore.storage.relational import RelationalStore


class TestGenerateDatasetName:

    def test_stem_is_sanitized(self):
        assert generate_dataset_name("Sales Data-2024.json") == "sales_data_2024"

    def test_empty(self):
        assert generate_dataset_name("") == "dataset"


class TestSqlIngest:

    def test_flat_array_goes_to_relational(self, orchestrator, relational_store, write_json, people):
        result = orchestrator.process_staging_file(StagedFile(write_json("people.json", people)))

        entry = result.entry
        assert entry.storage == "postgres"
        assert entry.record_count == 4
        assert entry.name == "people"
        assert entry.original_name == "people.json"
        assert entry.processing == {"processed": True, "fallback": False, "recommended_backend": "sql"}
        assert relational_store.table_exists(entry.table_name)

    def test_dataset_summary(self, orchestrator, write_json, people):
        result = orchestrator.process_staging_file(
            StagedFile(write_json("people.json", people)), dataset_name="staff")

        dataset = result.dataset
        assert dataset["name"] == "staff"
        assert dataset["backend"] == "postgres"
        assert dataset["default_entity"] == result.entry.table_name
        assert dataset["tables"] == [result.entry.table_name]
        assert dataset["collections"] == []
        assert dataset["schema_version"] == "1.0"
        assert dataset["entities"] == [result.entry.table_name, collection_name_for(result.entry.dataset_id)]

    def test_catalog_metadata(self, orchestrator, catalog, write_json, people):
        result = orchestrator.process_staging_file(StagedFile(write_json("people.json", people)))

        entry = catalog.get(result.entry.dataset_id)
        assert entry.metadata["recordCount"] == 4
        assert entry.metadata["backendDecision"]["backend"] == "sql"
        assert entry.schema["tableName"] == entry.table_name
        assert "CREATE TABLE" in entry.schema["ddl"]
        assert entry.mime_type == "application/json"
        assert entry.extension == "json"

    def test_profile_in_result(self, orchestrator, write_json, people):
        profile = orchestrator.process_staging_file(StagedFile(write_json("people.json", people))).profile

        assert profile["recordCount"] == 4
        assert len(profile["sampleRecords"]) == 3
        assert {f["name"]: f["type"] for f in profile["fields"]}["age"] == "number"

    def test_each_ingest_gets_unique_id(self, orchestrator, write_json, people):
        path = write_json("people.json", people)

        first = orchestrator.process_staging_file(StagedFile(path))
        second = orchestrator.process_staging_file(StagedFile(path))

        assert first.entry.dataset_id != second.entry.dataset_id
        assert first.entry.table_name != second.entry.table_name

    def test_stage_durations_recorded(self, orchestrator, write_json, people):
        result = orchestrator.process_staging_file(StagedFile(write_json("people.json", people)))

        assert set(result.stage_durations_ms) == {
            "analyzing", "schema_generating", "backend_selecting", "writing", "cataloging"}


class TestNoSqlIngest:

    def test_nested_records_go_to_documents(self, orchestrator, document_store, write_json, nested_orders):
        result = orchestrator.process_staging_file(StagedFile(write_json("orders.json", nested_orders)))

        assert result.entry.storage == "mongodb"
        assert result.entry.processing["recommended_backend"] == "nosql"
        assert document_store.count(collection_name_for(result.entry.dataset_id)) == 3
        assert result.dataset["collections"] == [collection_name_for(result.entry.dataset_id)]

    def test_single_object_goes_to_documents(self, orchestrator, write_json):
        result = orchestrator.process_staging_file(StagedFile(write_json("config.json", {"a": 1, "b": "x"})))

        assert result.entry.storage == "mongodb"
        assert result.entry.record_count == 1

    def test_ndjson(self, orchestrator, write_text):
        path = write_text("events.ndjson", '{"a": 1}\n{"a": 2}\nnot json\n\n{"a": 3}\n')

        result = orchestrator.process_staging_file(StagedFile(path))

        assert result.entry.record_count == 3
        assert result.entry.metadata["skippedLines"] == 1
        assert result.entry.mime_type == "application/x-ndjson"


class TestFallback:

    def test_relational_failure_lands_in_documents(self, catalog, document_store, write_json, people):
        relational = Mock(spec=RelationalStore)
        relational.dialect_name = "sqlite"
        relational.insert_rows.side_effect = StorageError("disk full")
        orchestrator = JsonOrchestrator(DualBackendWriter(relational, document_store), catalog)

        result = orchestrator.process_staging_file(StagedFile(write_json("people.json", people)))

        entry = catalog.get(result.entry.dataset_id)
        assert entry.storage == "mongodb"
        assert entry.record_count == len(people)
        assert entry.processing["fallback"] is True
        assert entry.processing["recommended_backend"] == "sql"
        assert "disk full" in entry.metadata["fallbackError"]
        assert document_store.count(collection_name_for(entry.dataset_id)) == len(people)


class TestIngestErrors:

    def test_missing_path(self, orchestrator):
        with pytest.raises(InputError):
            orchestrator.process_staging_file(StagedFile(""))

    def test_missing_file(self, orchestrator, tmp_path):
        with pytest.raises(InputError):
            orchestrator.process_staging_file(StagedFile(str(tmp_path / "nope.json")))

    def test_malformed_json(self, orchestrator, write_text, catalog):
        with pytest.raises(AnalysisError):
            orchestrator.process_staging_file(StagedFile(write_text("bad.json", '{"a": ')))
        assert catalog.count() == 0

    def test_empty_array(self, orchestrator, write_json, catalog):
        with pytest.raises(EmptyDatasetError):
            orchestrator.process_staging_file(StagedFile(write_json("empty.json", [])))
        assert catalog.count() == 0

    def test_catalog_failure_propagates(self, writer, write_json, people):
        catalog = Mock()
        catalog.create.side_effect = CatalogError("db down")
        orchestrator = JsonOrchestrator(writer, catalog)

        with pytest.raises(CatalogError):
            orchestrator.process_staging_file(StagedFile(write_json("people.json", people)))


class TestProfile:

    def test_profile_persists_nothing(self, orchestrator, catalog, document_store, write_json, people):
        path = write_json("people.json", people)

        first = orchestrator.get_profile(path)
        second = orchestrator.get_profile(path)

        assert first == second
        assert catalog.count() == 0
        assert document_store.collection_names() == []

    def test_profile_fields(self, orchestrator, write_json):
        profile = orchestrator.get_profile(write_json("p.json", [{"a": 1, "b": None}, {"a": 2}]))
        fields = {f["name"]: f for f in profile["fields"]}

        assert fields["a"]["required"] is True
        assert fields["b"]["nullable"] is True
        assert fields["a"]["enum"] is None

    def test_create_profile_sample_size(self, people):
        profile = create_profile(FieldAnalyzer().analyze(people), sample_size=2)

        assert profile["sampleRecords"] == people[:2]


class TestDeleteDataset:

    def test_delete_relational(self, orchestrator, catalog, relational_store, write_json, people):
        entry = orchestrator.process_staging_file(StagedFile(write_json("people.json", people))).entry

        orchestrator.delete_dataset(entry.dataset_id)

        assert catalog.get(entry.dataset_id) is None
        assert not relational_store.table_exists(entry.table_name)

    def test_delete_documents(self, orchestrator, document_store, write_json, nested_orders):
        entry = orchestrator.process_staging_file(StagedFile(write_json("orders.json", nested_orders))).entry

        orchestrator.delete_dataset(entry.dataset_id)

        assert document_store.count(entry.collection_name) == 0

    def test_delete_missing(self, orchestrator):
        with pytest.raises(DatasetNotFoundError):
            orchestrator.delete_dataset("missing")
