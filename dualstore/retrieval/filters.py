"""
Filter and sort normalization for retrieval requests.

Requests use a small MongoDB-style filter language. This module
validates it, and translates it into SQLAlchemy clauses for datasets
stored in relational tables.
"""

import json
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import Table, and_, false, or_, true
from sqlalchemy.sql.elements import ColumnElement

from dualstore.common.errors import QueryValidationError
from dualstore.ingest.field_analyzer import FieldType

SUPPORTED_OPERATORS = {"$eq", "$ne", "$gt", "$gte", "$lt", "$lte", "$in", "$nin"}
LIST_OPERATORS = {"$in", "$nin"}

SORT_DIRECTIONS = {
    1: 1,
    -1: -1,
    "1": 1,
    "-1": -1,
    "asc": 1,
    "ascending": 1,
    "desc": -1,
    "descending": -1,
}


def parse_query_value(raw: str) -> Any:
    """Decode a query-string value as JSON when possible ('30' -> 30, 'true' -> True)."""
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        return raw


def normalize_filter(filter: Optional[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    """
    Validate a filter and expand bare values into {"$eq": value}.

    Raises:
        QueryValidationError: If the filter is malformed or uses an
            unsupported operator
    """
    if filter is None:
        return {}
    if not isinstance(filter, dict):
        raise QueryValidationError("filter must be an object", operation="retrieve")

    normalized: Dict[str, Dict[str, Any]] = {}
    for field, condition in filter.items():
        if isinstance(condition, dict) and any(str(k).startswith("$") for k in condition):
            for op, operand in condition.items():
                if op not in SUPPORTED_OPERATORS:
                    raise QueryValidationError(
                        f"Unsupported operator {op} on field {field}", operation="retrieve")
                if op in LIST_OPERATORS and not isinstance(operand, list):
                    raise QueryValidationError(
                        f"Operator {op} on field {field} requires a list", operation="retrieve")
            normalized[field] = dict(condition)
        else:
            normalized[field] = {"$eq": condition}
    return normalized


def _direction(value: Any) -> int:
    key = value.lower() if isinstance(value, str) else value
    if isinstance(key, bool) or key not in SORT_DIRECTIONS:
        raise QueryValidationError(f"Invalid sort direction: {value!r}", operation="retrieve")
    return SORT_DIRECTIONS[key]


def normalize_sort(order_by: Any = None, sort: Any = None) -> List[Tuple[str, int]]:
    """
    Combine order_by and sort into (field, direction) pairs.

    Args:
        order_by: Field name (or list of names) sorted ascending; a
            leading '-' sorts descending
        sort: Mapping {field: direction} or list of [field, direction]
            pairs, direction being 1, -1, 'asc' or 'desc'

    Returns:
        Ordered list of (field, 1 | -1)
    """
    pairs: List[Tuple[str, int]] = []

    if order_by:
        names = [order_by] if isinstance(order_by, str) else order_by
        if not isinstance(names, (list, tuple)):
            raise QueryValidationError("orderBy must be a field name", operation="retrieve")
        for name in names:
            if not isinstance(name, str) or not name.strip("-"):
                raise QueryValidationError(f"Invalid orderBy field: {name!r}", operation="retrieve")
            if name.startswith("-"):
                pairs.append((name[1:], -1))
            else:
                pairs.append((name, 1))

    if sort:
        if isinstance(sort, dict):
            items: Sequence[Any] = list(sort.items())
        elif isinstance(sort, (list, tuple)):
            items = sort
        else:
            raise QueryValidationError("sort must be an object or a list of pairs", operation="retrieve")

        for item in items:
            if not isinstance(item, (list, tuple)) or len(item) != 2 or not isinstance(item[0], str):
                raise QueryValidationError(f"Invalid sort entry: {item!r}", operation="retrieve")
            pairs.append((item[0], _direction(item[1])))

    return pairs


def _coerce(field: str, field_type: FieldType, value: Any) -> Any:
    if value is None:
        return None
    if field_type == FieldType.NUMBER:
        if isinstance(value, bool):
            raise QueryValidationError(f"Field {field} expects a number", operation="retrieve")
        if isinstance(value, (int, float)):
            return value
        if isinstance(value, str) and value.strip().lstrip("-").isdigit():
            return int(value)
        try:
            return float(value)
        except (TypeError, ValueError):
            raise QueryValidationError(
                f"Field {field} expects a number, got {value!r}", operation="retrieve")
    if field_type == FieldType.BOOLEAN:
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.lower() in ("true", "false"):
            return value.lower() == "true"
        raise QueryValidationError(f"Field {field} expects a boolean, got {value!r}", operation="retrieve")
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return value if isinstance(value, str) else str(value)


def _clause(column, op: str, value: Any) -> ColumnElement:
    if op == "$eq":
        return column.is_(None) if value is None else column == value
    if op == "$ne":
        return column.isnot(None) if value is None else or_(column != value, column.is_(None))
    if op == "$gt":
        return column > value
    if op == "$gte":
        return column >= value
    if op == "$lt":
        return column < value
    if op == "$lte":
        return column <= value

    present = [v for v in value if v is not None]
    has_null = len(present) != len(value)
    if op == "$in":
        clause = column.in_(present) if present else false()
        return or_(clause, column.is_(None)) if has_null else clause
    if op == "$nin":
        if has_null:
            return and_(column.isnot(None), column.notin_(present)) if present else column.isnot(None)
        return or_(column.notin_(present), column.is_(None)) if present else true()

    raise QueryValidationError(f"Unsupported operator: {op}", operation="retrieve")


def _absent_clause(op: str, value: Any) -> ColumnElement:
    # A field the table lacks reads as null in every row
    if op == "$eq":
        matches = value is None
    elif op == "$ne":
        matches = value is not None
    elif op == "$in":
        matches = None in value
    elif op == "$nin":
        matches = None not in value
    else:
        matches = False
    return true() if matches else false()


def build_sql_conditions(
    table: Table,
    columns: Dict[str, str],
    field_types: Dict[str, FieldType],
    filter: Dict[str, Dict[str, Any]],
) -> List[ColumnElement]:
    """
    Translate a normalized filter into SQLAlchemy clauses.

    Args:
        table: Dataset table
        columns: Field name -> column name
        field_types: Field name -> resolved column type
        filter: Output of normalize_filter

    Returns:
        List of clauses. Fields missing from the table behave as null,
        the way absent keys do in the document stores.
    """
    conditions: List[ColumnElement] = []
    for field, condition in filter.items():
        if field not in columns:
            conditions.extend(_absent_clause(op, operand) for op, operand in condition.items())
            continue
        column = table.c[columns[field]]
        field_type = field_types[field]

        for op, operand in condition.items():
            if op in LIST_OPERATORS:
                value = [_coerce(field, field_type, v) for v in operand]
            else:
                value = _coerce(field, field_type, operand)
            conditions.append(_clause(column, op, value))

    return conditions


def build_sql_order(
    table: Table,
    columns: Dict[str, str],
    sort: List[Tuple[str, int]],
) -> List[Any]:
    """Translate (field, direction) pairs into ORDER BY clauses."""
    clauses = []
    for field, direction in sort:
        if field not in columns:
            raise QueryValidationError(f"Unknown sort field: {field}", operation="retrieve")
        column = table.c[columns[field]]
        clauses.append(column.asc() if direction > 0 else column.desc())
    # Insertion order breaks ties
    clauses.append(table.c.id.asc())
    return clauses
