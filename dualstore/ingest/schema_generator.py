"""
Schema Generator for analyzed JSON datasets.

Turns a field map into everything the storage layer needs: a table
name, CREATE TABLE DDL for the relational path, a draft-07 JSON Schema
describing the records, and the ordered field list kept in the catalog.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set

from dualstore.ingest.field_analyzer import AnalysisResult, FieldInfo, FieldType

# PostgreSQL truncates identifiers beyond this length
MAX_IDENTIFIER_LENGTH = 63

# Highest priority first; a widened column keeps the strongest scalar type
TYPE_PRIORITY = [
    FieldType.NUMBER,
    FieldType.BOOLEAN,
    FieldType.STRING,
    FieldType.ARRAY,
    FieldType.OBJECT,
]

SQL_TYPES = {
    FieldType.NUMBER: "NUMERIC",
    FieldType.BOOLEAN: "BOOLEAN",
    FieldType.STRING: "TEXT",
    FieldType.ARRAY: "TEXT",  # JSON text
    FieldType.OBJECT: "TEXT",  # JSON text
}

# Numbers that were all JSON integers keep exact 64-bit storage
INTEGER_SQL_TYPE = "BIGINT"

SURROGATE_COLUMNS = {"id", "created_at"}

RESERVED_WORDS = {
    "all", "analyse", "analyze", "and", "any", "array", "as", "asc",
    "asymmetric", "authorization", "between", "binary", "both", "by", "case",
    "cast", "check", "collate", "collation", "column", "concurrently",
    "constraint", "create", "cross", "current_catalog", "current_date",
    "current_role", "current_schema", "current_time", "current_timestamp",
    "current_user", "default", "deferrable", "delete", "desc", "distinct", "do",
    "drop", "else", "end", "except", "false", "fetch", "for", "foreign",
    "freeze", "from", "full", "grant", "group", "having", "ilike", "in",
    "index", "initially", "inner", "insert", "intersect", "into", "is",
    "isnull", "join", "key", "lateral", "leading", "left", "like", "limit",
    "localtime", "localtimestamp", "natural", "not", "notnull", "null",
    "offset", "on", "only", "or", "order", "outer", "overlaps", "placing",
    "primary", "references", "returning", "right", "select", "session_user",
    "similar", "some", "symmetric", "system_user", "table", "tablesample",
    "then", "to", "trailing", "true", "union", "unique", "update", "user",
    "using", "value", "values", "variadic", "verbose", "when", "where",
    "window", "with",
}

_INVALID_CHARS = re.compile(r"[^a-z0-9_]")


def sanitize_identifier(name: str) -> str:
    """Lower-case a name and replace characters outside [a-z0-9_]."""
    return _INVALID_CHARS.sub("_", str(name).lower())


def is_integer_field(info: FieldInfo) -> bool:
    """True when a field resolves to number and every observed number was an int."""
    return resolve_type(info.types_observed) == FieldType.NUMBER and info.integral


def resolve_type(types: Iterable[FieldType]) -> FieldType:
    """
    Pick the single column type for a set of observed types.

    Args:
        types: Observed FieldType tags (null is ignored)

    Returns:
        The highest-priority observed type, or STRING when nothing but
        null (or nothing at all) was observed
    """
    observed = set(types)
    for candidate in TYPE_PRIORITY:
        if candidate in observed:
            return candidate
    return FieldType.STRING


@dataclass
class SchemaDescriptor:
    """Generated schema for one dataset."""
    table_name: str
    ddl: str
    json_schema: Dict[str, Any]
    fields: List[Dict[str, Any]]
    columns: Dict[str, str] = field(default_factory=dict)  # field name -> column name

    def field_type(self, name: str) -> FieldType:
        for entry in self.fields:
            if entry["name"] == name:
                return FieldType(entry["type"])
        raise KeyError(name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tableName": self.table_name,
            "ddl": self.ddl,
            "jsonSchema": self.json_schema,
            "fields": self.fields,
            "columns": self.columns,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SchemaDescriptor":
        return cls(
            table_name=data.get("tableName", ""),
            ddl=data.get("ddl", ""),
            json_schema=data.get("jsonSchema", {}),
            fields=list(data.get("fields", [])),
            columns=dict(data.get("columns", {})),
        )


class SchemaGenerator:
    """
    Generates storage schemas from field analysis.

    The surrogate key clause depends on the SQL dialect so the same DDL
    path serves PostgreSQL in production and SQLite in local runs.
    """

    def __init__(self, dialect: str = "postgresql"):
        """
        Initialize schema generator.

        Args:
            dialect: SQLAlchemy dialect name of the relational store
        """
        self.dialect = dialect

    def generate_table_name(self, dataset_name: str, dataset_id: str) -> str:
        """
        Build the table name for a dataset.

        Args:
            dataset_name: Human dataset name
            dataset_id: Freshly generated dataset id (uuid string)

        Returns:
            dataset_<name>_<first 8 hex chars of id>, at most 63 chars
        """
        name = sanitize_identifier(dataset_name).strip("_") or "data"
        suffix = "_" + dataset_id.replace("-", "")[:8].lower()
        prefix = f"dataset_{name}"[: MAX_IDENTIFIER_LENGTH - len(suffix)]
        return prefix + suffix

    def sanitize_column_name(self, name: str, used: Optional[Set[str]] = None) -> str:
        """
        Sanitize a field name into a column name.

        Args:
            name: Original field name
            used: Column names already taken in this table

        Returns:
            SQL-safe, unique column name
        """
        column = sanitize_identifier(name) or "field"

        # Ensure it doesn't start with a number
        if column[0].isdigit():
            column = f"col_{column}"

        if column in RESERVED_WORDS or column in SURROGATE_COLUMNS:
            column = f"{column}_col"

        column = column[:MAX_IDENTIFIER_LENGTH]

        if used is not None:
            base = column
            counter = 2
            while column in used or column in SURROGATE_COLUMNS:
                tail = f"_{counter}"
                column = base[: MAX_IDENTIFIER_LENGTH - len(tail)] + tail
                counter += 1
            used.add(column)

        return column

    def generate_columns(self, fields: Dict[str, FieldInfo]) -> Dict[str, str]:
        """Map each field name to its column name, in discovery order."""
        used: Set[str] = set()
        return {name: self.sanitize_column_name(name, used) for name in fields}

    def _surrogate_clause(self) -> str:
        if self.dialect == "sqlite":
            return "id INTEGER PRIMARY KEY AUTOINCREMENT"
        return "id SERIAL PRIMARY KEY"

    def generate_postgres_ddl(
        self,
        table_name: str,
        fields: Dict[str, FieldInfo],
        columns: Optional[Dict[str, str]] = None,
    ) -> str:
        """
        Generate the CREATE TABLE statement.

        Args:
            table_name: Name for the table
            fields: Field map from the analyzer
            columns: Precomputed field -> column mapping

        Returns:
            CREATE TABLE SQL statement
        """
        columns = columns or self.generate_columns(fields)

        definitions = [
            f"    {self._surrogate_clause()}",
            "    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP",
        ]
        for name, info in fields.items():
            if is_integer_field(info):
                sql_type = INTEGER_SQL_TYPE
            else:
                sql_type = SQL_TYPES[resolve_type(info.types_observed)]
            definitions.append(f"    {columns[name]} {sql_type}")

        return f"CREATE TABLE {table_name} (\n" + ",\n".join(definitions) + "\n)"

    def _json_schema_property(self, info: FieldInfo) -> Dict[str, Any]:
        types = [t.value for t in info.ordered_types] or [FieldType.STRING.value]
        prop: Dict[str, Any] = {
            "type": types[0] if len(types) == 1 else types,
            "nullable": info.nullable,
            "nested": info.nested,
            "array": info.array,
        }

        if info.nested_fields:
            prop["properties"] = {
                name: self._json_schema_property(sub)
                for name, sub in info.nested_fields.items()
            }

        if info.array and info.nested:
            prop["items"] = {"type": "object"}

        return prop

    def generate_json_schema(self, fields: Dict[str, FieldInfo]) -> Dict[str, Any]:
        """Generate a draft-07 JSON Schema for the records."""
        return {
            "$schema": "http://json-schema.org/draft-07/schema#",
            "type": "object",
            "properties": {
                name: self._json_schema_property(info) for name, info in fields.items()
            },
            "required": [name for name, info in fields.items() if not info.nullable],
        }

    def generate_field_list(self, fields: Dict[str, FieldInfo]) -> List[Dict[str, Any]]:
        """Ordered field descriptions kept in the catalog."""
        return [
            {
                "name": name,
                "type": resolve_type(info.types_observed).value,
                "nullable": info.nullable,
                "nested": info.nested,
                "array": info.array,
                "integer": is_integer_field(info),
                "enum": None,
            }
            for name, info in fields.items()
        ]

    def generate(
        self,
        dataset_name: str,
        dataset_id: str,
        analysis: AnalysisResult,
    ) -> SchemaDescriptor:
        """
        Generate the full schema descriptor for an analyzed dataset.

        Args:
            dataset_name: Human dataset name
            dataset_id: Dataset id embedded in the table name
            analysis: Analyzer output

        Returns:
            SchemaDescriptor
        """
        table_name = self.generate_table_name(dataset_name, dataset_id)
        columns = self.generate_columns(analysis.fields)

        return SchemaDescriptor(
            table_name=table_name,
            ddl=self.generate_postgres_ddl(table_name, analysis.fields, columns),
            json_schema=self.generate_json_schema(analysis.fields),
            fields=self.generate_field_list(analysis.fields),
            columns=columns,
        )
