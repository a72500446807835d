"""Dual-store JSON ingestion, cataloging and retrieval service."""

__version__ = "1.0.0"
