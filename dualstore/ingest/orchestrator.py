"""Ingestion orchestrator for staged JSON/NDJSON files."""

import logging
import os
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional
from uuid import uuid4

from dualstore.catalog.entry import CatalogEntry
from dualstore.catalog.store import CatalogStore
from dualstore.common import metrics
from dualstore.common.errors import (
    CatalogError,
    DatasetNotFoundError,
    DualStoreError,
    EmptyDatasetError,
    InputError,
)
from dualstore.common.logging_config import PerformanceTracker, dataset_context
from dualstore.ingest.backend_selector import BackendDecision, StorageBackend, explain_backend
from dualstore.ingest.field_analyzer import AnalysisResult, FieldAnalyzer
from dualstore.ingest.json_loader import JsonFileLoader, detect_data_type
from dualstore.ingest.schema_generator import SchemaDescriptor, SchemaGenerator, resolve_type
from dualstore.ingest.writer import DualBackendWriter, WriteResult

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "1.0"

MIME_TYPES = {
    "json": "application/json",
    "ndjson": "application/x-ndjson",
}


class IngestStage(str, Enum):
    ANALYZING = "analyzing"
    SCHEMA_GENERATING = "schema_generating"
    BACKEND_SELECTING = "backend_selecting"
    WRITING = "writing"
    CATALOGING = "cataloging"
    DONE = "done"


@dataclass
class StagedFile:
    """Reference to a file placed in staging by the upload layer."""
    file_path: str
    original_filename: Optional[str] = None
    size: int = 0
    mime_type: Optional[str] = None

    def __post_init__(self):
        if not self.original_filename and self.file_path:
            self.original_filename = os.path.basename(self.file_path)


@dataclass
class IngestResult:
    """Result of a completed ingest."""
    entry: CatalogEntry
    dataset: Dict[str, Any]
    profile: Dict[str, Any]
    write: WriteResult
    stage: IngestStage = IngestStage.DONE
    stage_durations_ms: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dataset": self.dataset,
            "profile": self.profile,
            "processing": self.entry.processing,
        }


def generate_dataset_name(filename: str) -> str:
    """Default dataset name: file stem, non-word characters replaced, lower case."""
    stem = os.path.splitext(os.path.basename(filename or ""))[0]
    return re.sub(r"[^A-Za-z0-9_]", "_", stem).lower() or "dataset"


def create_profile(analysis: AnalysisResult, sample_size: int = 3) -> Dict[str, Any]:
    """
    Build the profile shown to users before/after ingest.

    Args:
        analysis: Analyzer output
        sample_size: Number of sample records

    Returns:
        {fields, sampleRecords, recordCount}
    """
    fields = []
    for name, info in analysis.fields.items():
        fields.append({
            "name": name,
            "type": resolve_type(info.types_observed).value,
            "required": not info.nullable,
            "nullable": info.nullable,
            "enum": None,
            "nested": info.nested,
            "array": info.array,
        })

    return {
        "fields": fields,
        "sampleRecords": analysis.records[:sample_size],
        "recordCount": analysis.record_count,
    }


class JsonOrchestrator:
    """
    Drives a staged file through analysis, schema generation, backend
    selection, writing and cataloging.
    """

    def __init__(
        self,
        writer: DualBackendWriter,
        catalog: CatalogStore,
        loader: Optional[JsonFileLoader] = None,
        analyzer: Optional[FieldAnalyzer] = None,
        generator: Optional[SchemaGenerator] = None,
        sample_size: int = 3,
    ):
        self.writer = writer
        self.catalog = catalog
        self.loader = loader or JsonFileLoader()
        self.analyzer = analyzer or FieldAnalyzer()
        self.generator = generator or SchemaGenerator(dialect=writer.relational.dialect_name)
        self.sample_size = sample_size

    def _load_and_analyze(self, file_path: str, original_filename: Optional[str] = None) -> AnalysisResult:
        if not file_path:
            raise InputError("filePath is required", operation="analyze")

        data_type = detect_data_type(file_path, original_filename)
        loaded = self.loader.load(file_path, data_type=data_type)
        analysis = self.analyzer.analyze(
            loaded.data, data_type=loaded.data_type, skipped_lines=loaded.skipped_lines)
        analysis.size_bytes = loaded.size_bytes
        analysis.extension = loaded.extension
        return analysis

    @metrics.track_ingest_time
    def process_staging_file(
        self,
        staged_file: StagedFile,
        dataset_name: Optional[str] = None,
    ) -> IngestResult:
        """
        Ingest a staged file end to end.

        Args:
            staged_file: Staged file reference
            dataset_name: Dataset name (derived from the file name if None)

        Returns:
            IngestResult with the dataset summary and profile

        Raises:
            InputError: Missing or unreadable file, empty dataset
            AnalysisError: Malformed JSON
            StorageWriteError: Records could not be written
            CatalogError: Catalog entry could not be created
        """
        if staged_file is None or not staged_file.file_path:
            raise InputError("filePath is required", operation="ingest")

        dataset_id = str(uuid4())
        name = dataset_name or generate_dataset_name(staged_file.original_filename)
        durations: Dict[str, float] = {}

        try:
            with dataset_context(dataset_id):
                with PerformanceTracker(
                        f"ingest.{IngestStage.ANALYZING.value}", logger) as tracker:
                    analysis = self._load_and_analyze(staged_file.file_path, staged_file.original_filename)
                durations[IngestStage.ANALYZING.value] = tracker.duration_ms

                if analysis.record_count == 0:
                    raise EmptyDatasetError(
                        f"No records found in {staged_file.original_filename}",
                        operation="ingest",
                        dataset_id=dataset_id,
                    )

                with PerformanceTracker(
                        f"ingest.{IngestStage.SCHEMA_GENERATING.value}", logger) as tracker:
                    schema = self.generator.generate(name, dataset_id, analysis)
                durations[IngestStage.SCHEMA_GENERATING.value] = tracker.duration_ms

                with PerformanceTracker(
                        f"ingest.{IngestStage.BACKEND_SELECTING.value}", logger) as tracker:
                    decision = explain_backend(analysis.fields)
                    backend = decision.backend
                    if backend == StorageBackend.SQL and not analysis.is_tabular:
                        backend = StorageBackend.NOSQL
                        logger.info(
                            f"Dataset {dataset_id} is not an array of objects; using document store")
                durations[IngestStage.BACKEND_SELECTING.value] = tracker.duration_ms

                with PerformanceTracker(
                        f"ingest.{IngestStage.WRITING.value}", logger, backend=backend.value) as tracker:
                    write_result = self.writer.write(backend, schema, dataset_id, analysis.records)
                durations[IngestStage.WRITING.value] = tracker.duration_ms

                with PerformanceTracker(
                        f"ingest.{IngestStage.CATALOGING.value}", logger) as tracker:
                    entry = self._catalog(
                        dataset_id, name, staged_file, analysis, schema, decision, write_result)
                durations[IngestStage.CATALOGING.value] = tracker.duration_ms

        except DualStoreError:
            metrics.record_ingest("none", "failure")
            raise

        metrics.record_ingest(entry.storage, "success", entry.record_count)
        logger.info(
            f"Ingest complete: {dataset_id} -> {entry.storage}",
            extra={"extra_fields": {
                "dataset_id": dataset_id,
                "storage": entry.storage,
                "record_count": entry.record_count,
                "fallback": write_result.fallback,
            }},
        )

        return IngestResult(
            entry=entry,
            dataset=self.build_dataset_summary(entry),
            profile=create_profile(analysis, self.sample_size),
            write=write_result,
            stage_durations_ms=durations,
        )

    def _catalog(
        self,
        dataset_id: str,
        name: str,
        staged_file: StagedFile,
        analysis: AnalysisResult,
        schema: SchemaDescriptor,
        decision: BackendDecision,
        write_result: WriteResult,
    ) -> CatalogEntry:
        metadata = analysis.to_metadata()
        metadata["backendDecision"] = decision.to_dict()
        if write_result.error:
            metadata["fallbackError"] = write_result.error

        entry = CatalogEntry(
            dataset_id=dataset_id,
            name=name,
            original_name=staged_file.original_filename,
            storage=write_result.backend.value,
            record_count=write_result.count,
            file_path=staged_file.file_path,
            file_size=staged_file.size or analysis.size_bytes,
            mime_type=staged_file.mime_type or MIME_TYPES[analysis.data_type],
            extension=analysis.extension or analysis.data_type,
            category="json",
            metadata=metadata,
            schema=schema.to_dict(),
            processing={
                "processed": True,
                "fallback": write_result.fallback,
                "recommended_backend": decision.backend.value,
            },
        )

        try:
            return self.catalog.create(entry)
        except CatalogError:
            logger.error(
                f"Catalog write failed; data for dataset {dataset_id} is orphaned in {write_result.entity}",
                extra={"extra_fields": {"dataset_id": dataset_id, "entity": write_result.entity}},
            )
            raise

    def build_dataset_summary(self, entry: CatalogEntry) -> Dict[str, Any]:
        """Summary of where and how a dataset is stored."""
        is_sql = entry.storage == "postgres"
        return {
            "id": entry.dataset_id,
            "name": entry.name,
            "backend": entry.storage,
            "default_entity": entry.default_entity,
            "schema_version": SCHEMA_VERSION,
            "created_at": entry.created_at.isoformat() if entry.created_at else None,
            "connection_info": {
                "type": entry.storage,
                "entity": entry.default_entity,
                "recordCount": entry.record_count,
            },
            "entities": entry.entities,
            "tables": [entry.table_name] if is_sql else [],
            "collections": [] if is_sql else [entry.collection_name],
        }

    def get_profile(self, file_path: str) -> Dict[str, Any]:
        """
        Profile a staged file without persisting anything.

        Args:
            file_path: Path to the staged file

        Returns:
            {fields, sampleRecords, recordCount}
        """
        with PerformanceTracker("ingest.profile", logger, file_path=file_path):
            analysis = self._load_and_analyze(file_path)
        return create_profile(analysis, self.sample_size)

    def delete_dataset(self, dataset_id: str) -> None:
        """
        Remove a dataset's records and its catalog entry.

        Raises:
            DatasetNotFoundError: If the dataset does not exist
        """
        entry = self.catalog.get(dataset_id)
        if entry is None:
            raise DatasetNotFoundError(
                f"Dataset not found: {dataset_id}", operation="delete", dataset_id=dataset_id)

        with dataset_context(dataset_id), PerformanceTracker("ingest.delete", logger, storage=entry.storage):
            self.writer.purge(entry.storage, dataset_id, entry.table_name)
            self.catalog.delete(dataset_id)
