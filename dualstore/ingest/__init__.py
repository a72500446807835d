"""
Ingest module for JSON processing.

Provides field analysis, backend selection and schema generation for
routing JSON datasets to relational or document storage.
"""

from dualstore.ingest.field_analyzer import (
    AnalysisResult,
    FieldAnalyzer,
    FieldInfo,
    FieldType,
    detect_field_type,
)
from dualstore.ingest.backend_selector import (
    BackendDecision,
    StorageBackend,
    StorageKind,
    determine_backend,
    explain_backend,
)
from dualstore.ingest.schema_generator import (
    SchemaDescriptor,
    SchemaGenerator,
    resolve_type,
)
from dualstore.ingest.json_loader import JsonFileLoader, LoadedDocument

__all__ = [  # ruff: noqa: RUF022
    # Field Analysis
    "AnalysisResult",
    "FieldAnalyzer",
    "FieldInfo",
    "FieldType",
    "detect_field_type",
    # Backend Selection
    "BackendDecision",
    "StorageBackend",
    "StorageKind",
    "determine_backend",
    "explain_backend",
    # Schema Generation
    "SchemaDescriptor",
    "SchemaGenerator",
    "resolve_type",
    # Loading
    "JsonFileLoader",
    "LoadedDocument",
]
