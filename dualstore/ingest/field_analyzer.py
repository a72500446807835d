"""
JSON Field Analyzer.

Walks parsed JSON documents and builds, per top-level field, the set of
observed types, nullability, array-ness and nesting information. Nested
objects are described structurally but never flattened into dotted paths.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set


class FieldType(str, Enum):
    """Enumeration of JSON value types."""
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"
    NULL = "null"


# Canonical order used when serializing type sets
TYPE_ORDER = [
    FieldType.STRING,
    FieldType.NUMBER,
    FieldType.BOOLEAN,
    FieldType.ARRAY,
    FieldType.OBJECT,
    FieldType.NULL,
]


def detect_field_type(value: Any) -> FieldType:
    """
    Detect the JSON type of a value.

    Args:
        value: The value to check

    Returns:
        FieldType enum value
    """
    if value is None:
        return FieldType.NULL
    elif isinstance(value, bool):
        return FieldType.BOOLEAN
    elif isinstance(value, (int, float)):
        return FieldType.NUMBER
    elif isinstance(value, str):
        return FieldType.STRING
    elif isinstance(value, list):
        return FieldType.ARRAY
    elif isinstance(value, dict):
        return FieldType.OBJECT
    else:
        return FieldType.STRING  # Fallback


def is_nested_value(value: Any) -> bool:
    """True for objects and for arrays that are not flat arrays of scalars."""
    if isinstance(value, dict):
        return True
    if isinstance(value, list):
        return any(isinstance(item, (dict, list)) for item in value)
    return False


def container_depth(value: Any) -> int:
    """Number of container levels below a value (0 for scalars)."""
    if isinstance(value, dict):
        return 1 + max((container_depth(v) for v in value.values()), default=0)
    if isinstance(value, list):
        return 1 + max((container_depth(v) for v in value), default=0)
    return 0


class FieldInfo:
    """Observations for a single field name."""

    def __init__(self, name: str):
        self.name = name
        self.types_observed: Set[FieldType] = set()
        self.nullable = False
        self.nested = False
        self.presence_count = 0
        self.integral = True
        self.max_depth = 0
        self.nested_fields: Dict[str, "FieldInfo"] = {}
        self._object_count = 0

    @property
    def array(self) -> bool:
        return FieldType.ARRAY in self.types_observed

    @property
    def ordered_types(self) -> List[FieldType]:
        return [t for t in TYPE_ORDER if t in self.types_observed]

    def observe(self, value: Any, depth: int = 1, max_nested_depth: int = 3) -> None:
        """Record a value occurrence for this field."""
        field_type = detect_field_type(value)
        self.presence_count += 1
        self.types_observed.add(field_type)

        if value is None:
            self.nullable = True
        elif isinstance(value, float):
            self.integral = False
        if is_nested_value(value):
            self.nested = True

        self.max_depth = max(self.max_depth, container_depth(value))

        if field_type == FieldType.OBJECT:
            if depth < max_nested_depth:
                merge_object_fields(
                    self.nested_fields,
                    value,
                    prior_count=self._object_count,
                    depth=depth + 1,
                    max_nested_depth=max_nested_depth,
                )
            self._object_count += 1

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "types": [t.value for t in self.ordered_types],
            "nullable": self.nullable,
            "nested": self.nested,
            "array": self.array,
            "maxDepth": self.max_depth,
            "presence": self.presence_count,
        }
        if self.nested_fields:
            result["nestedFields"] = {
                name: info.to_dict() for name, info in self.nested_fields.items()
            }
        return result


def merge_object_fields(
    fields: Dict[str, FieldInfo],
    obj: Dict[str, Any],
    prior_count: int,
    depth: int = 1,
    max_nested_depth: int = 3,
) -> None:
    """
    Merge the keys of one object into a field map.

    Args:
        fields: Field map to update (insertion order = discovery order)
        obj: The object occurrence
        prior_count: Number of objects already merged into this map
        depth: Nesting level of obj (1 = top-level record)
        max_nested_depth: Deepest level whose keys are described
    """
    for key, value in obj.items():
        info = fields.get(key)
        if info is None:
            info = FieldInfo(key)
            # Earlier occurrences lacked this key
            if prior_count > 0:
                info.nullable = True
            fields[key] = info
        info.observe(value, depth, max_nested_depth)

    for key, info in fields.items():
        if key not in obj:
            info.nullable = True


@dataclass
class AnalysisResult:
    """Outcome of analyzing one parsed file."""
    fields: Dict[str, FieldInfo]
    records: List[Any]
    data_type: str = "json"  # json or ndjson
    shape: str = "empty"  # array, object, scalar or empty
    skipped_lines: int = 0
    object_records: int = field(default=0)
    size_bytes: int = 0
    extension: Optional[str] = None

    @property
    def record_count(self) -> int:
        return len(self.records)

    @property
    def is_tabular(self) -> bool:
        """True when the payload is a non-empty array of objects."""
        return (
            self.shape == "array"
            and self.record_count > 0
            and self.object_records == self.record_count
        )

    @property
    def has_nested_fields(self) -> bool:
        return any(info.nested for info in self.fields.values())

    def to_metadata(self) -> Dict[str, Any]:
        """Serializable view kept in the catalog for profile/debug display."""
        return {
            "type": self.shape,
            "dataType": self.data_type,
            "recordCount": self.record_count,
            "skippedLines": self.skipped_lines,
            "maxDepth": max((f.max_depth for f in self.fields.values()), default=0),
            "fields": {name: info.to_dict() for name, info in self.fields.items()},
        }


class FieldAnalyzer:
    """
    Analyzer for parsed JSON payloads.

    A top-level array is treated as a sequence of records; any other
    document is a single record. Field types are unioned across records.
    """

    def __init__(self, max_nested_depth: int = 3):
        """
        Initialize analyzer.

        Args:
            max_nested_depth: Deepest object level whose keys are described
        """
        self.max_nested_depth = max_nested_depth

    def analyze(
        self,
        data: Any,
        data_type: str = "json",
        skipped_lines: int = 0,
    ) -> AnalysisResult:
        """
        Analyze a parsed document (or list of NDJSON records).

        Args:
            data: Parsed JSON value
            data_type: 'json' or 'ndjson'
            skipped_lines: Malformed NDJSON lines dropped by the loader

        Returns:
            AnalysisResult with the field map and the record set
        """
        if isinstance(data, list):
            records = data
            shape = "array" if data else "empty"
        elif isinstance(data, dict):
            records = [data]
            shape = "object"
        else:
            records = [data]
            shape = "scalar"

        result = self.analyze_records(records, data_type=data_type, skipped_lines=skipped_lines)
        result.shape = shape
        return result

    def analyze_records(
        self,
        records: List[Any],
        data_type: str = "json",
        skipped_lines: int = 0,
        fields: Optional[Dict[str, FieldInfo]] = None,
    ) -> AnalysisResult:
        """Analyze an already split sequence of records."""
        fields = {} if fields is None else fields
        object_records = 0

        for record in records:
            if not isinstance(record, dict):
                continue
            merge_object_fields(
                fields,
                record,
                prior_count=object_records,
                depth=1,
                max_nested_depth=self.max_nested_depth,
            )
            object_records += 1

        # Non-object records never carry the keys
        if object_records < len(records):
            for info in fields.values():
                info.nullable = True

        return AnalysisResult(
            fields=fields,
            records=records,
            data_type=data_type,
            shape="array" if records else "empty",
            skipped_lines=skipped_lines,
            object_records=object_records,
        )
