"""
Database models for the dataset catalog.

One row per ingested dataset, recording where its records live and the
schema inferred at ingest time.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import (  # type: ignore
    BigInteger, CheckConstraint, DateTime, Index, Integer, JSON, String, Text
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column  # type: ignore


def utc_now() -> datetime:
    """Current UTC time as a naive datetime, matching the DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


class DatasetRecord(Base):
    """
    Catalog entry for an ingested dataset.

    The storage column is the only source of truth for which backend
    holds the dataset's records.
    """
    __tablename__ = "dataset_catalog"

    dataset_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    original_name: Mapped[str] = mapped_column(String(512), nullable=False)
    file_path: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    mime_type: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    extension: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    category: Mapped[str] = mapped_column(String(64), nullable=False, default="json")
    storage: Mapped[str] = mapped_column(String(16), nullable=False)
    record_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Attribute names avoid DeclarativeBase.metadata
    dataset_metadata: Mapped[Dict[str, Any]] = mapped_column(
        "metadata", JSON, nullable=False, default=dict)
    schema_info: Mapped[Dict[str, Any]] = mapped_column(
        "schema", JSON, nullable=False, default=dict)
    processing: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    tags: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now, nullable=False)

    __table_args__ = (
        CheckConstraint("storage IN ('postgres', 'mongodb')", name="ck_dataset_catalog_storage"),
        Index("idx_dataset_catalog_name", "name"),
        Index("idx_dataset_catalog_original_name", "original_name"),
        Index("idx_dataset_catalog_storage", "storage"),
        Index("idx_dataset_catalog_created_at", "created_at"),
    )
