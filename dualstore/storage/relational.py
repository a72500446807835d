"""
Relational data store.

Executes generated DDL, bulk inserts records and runs filtered reads
against the per-dataset tables through SQLAlchemy Core.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Float,
    Integer,
    MetaData,
    Numeric,
    Table,
    Text,
    func,
    inspect,
    select,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from dualstore.ingest.field_analyzer import FieldType
from dualstore.ingest.schema_generator import SchemaDescriptor
from dualstore.storage.interface import StorageError

logger = logging.getLogger(__name__)

# Exact decimals on PostgreSQL; SQLite has no decimal storage
NUMBER_TYPE = Numeric(asdecimal=True).with_variant(Float(), "sqlite")

COLUMN_TYPES = {
    FieldType.NUMBER: NUMBER_TYPE,
    FieldType.BOOLEAN: Boolean,
    FieldType.STRING: Text,
    FieldType.ARRAY: Text,
    FieldType.OBJECT: Text,
}


def build_table(schema: SchemaDescriptor, metadata: Optional[MetaData] = None) -> Table:
    """
    Build a typed Core Table for a generated schema.

    Args:
        schema: Schema descriptor of the dataset
        metadata: MetaData to attach to (fresh one when None)

    Returns:
        Table mirroring the generated DDL
    """
    columns = [
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("created_at", DateTime),
    ]
    for field in schema.fields:
        if field.get("integer"):
            column_type = BigInteger
        else:
            column_type = COLUMN_TYPES[FieldType(field["type"])]
        columns.append(Column(schema.columns[field["name"]], column_type, nullable=True))

    return Table(schema.table_name, metadata or MetaData(), *columns)


class RelationalStore:
    """Handle on the relational database holding SQL datasets."""

    def __init__(self, engine: Engine, batch_size: int = 1000):
        """
        Initialize relational store.

        Args:
            engine: SQLAlchemy engine
            batch_size: Rows per INSERT batch
        """
        self.engine = engine
        self.batch_size = batch_size

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    def execute_ddl(self, ddl: str) -> None:
        """Run a CREATE TABLE statement."""
        try:
            with self.engine.begin() as conn:
                conn.execute(text(ddl))
        except SQLAlchemyError as e:
            raise StorageError(f"DDL execution failed: {e}", operation="create_table", cause=e)

    def insert_rows(self, table: Table, rows: List[Dict[str, Any]]) -> int:
        """
        Insert rows in batches inside one transaction.

        Args:
            table: Target table
            rows: Column-keyed row dictionaries

        Returns:
            Number of rows inserted
        """
        if not rows:
            return 0

        try:
            with self.engine.begin() as conn:
                for start in range(0, len(rows), self.batch_size):
                    conn.execute(table.insert(), rows[start:start + self.batch_size])
        except (SQLAlchemyError, TypeError, ValueError, OverflowError) as e:
            raise StorageError(
                f"Insert into {table.name} failed: {e}", operation="insert", cause=e)

        return len(rows)

    def drop_table(self, table_name: str) -> None:
        """Drop a table if it exists."""
        try:
            Table(table_name, MetaData()).drop(self.engine, checkfirst=True)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to drop table {table_name}: {e}", operation="drop_table", cause=e)

    def table_exists(self, table_name: str) -> bool:
        try:
            return inspect(self.engine).has_table(table_name)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to inspect table {table_name}: {e}", operation="inspect", cause=e)

    def fetch(
        self,
        table: Table,
        where: Sequence[Any] = (),
        order_by: Sequence[Any] = (),
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Dict[str, Any]]:
        """
        Select rows as dictionaries keyed by column name.

        Args:
            table: Source table
            where: SQLAlchemy boolean clauses (AND-ed)
            order_by: SQLAlchemy order clauses; insertion order when empty
            limit: Maximum rows
            offset: Rows to skip
        """
        stmt = select(table).where(*where)
        stmt = stmt.order_by(*order_by) if order_by else stmt.order_by(table.c.id)
        if limit is not None:
            stmt = stmt.limit(limit)
        if offset:
            stmt = stmt.offset(offset)

        try:
            with self.engine.connect() as conn:
                return [dict(row) for row in conn.execute(stmt).mappings()]
        except SQLAlchemyError as e:
            raise StorageError(f"Query on {table.name} failed: {e}", operation="fetch", cause=e)

    def count(self, table: Table, where: Sequence[Any] = ()) -> int:
        stmt = select(func.count()).select_from(table).where(*where)
        try:
            with self.engine.connect() as conn:
                return conn.execute(stmt).scalar_one()
        except SQLAlchemyError as e:
            raise StorageError(f"Count on {table.name} failed: {e}", operation="count", cause=e)

    def ping(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.warning(f"Relational store ping failed: {e}")
            return False
