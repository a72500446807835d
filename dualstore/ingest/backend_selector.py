"""Backend selection for analyzed datasets: relational or document storage."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List

from dualstore.ingest.field_analyzer import FieldInfo


class StorageBackend(str, Enum):
    """Recommended storage family."""
    SQL = "sql"
    NOSQL = "nosql"


class StorageKind(str, Enum):
    """Concrete store that holds a dataset's rows."""
    POSTGRES = "postgres"
    MONGODB = "mongodb"


BACKEND_STORAGE = {
    StorageBackend.SQL: StorageKind.POSTGRES,
    StorageBackend.NOSQL: StorageKind.MONGODB,
}


@dataclass
class BackendDecision:
    """Result of the backend selection."""
    backend: StorageBackend
    reason: str
    nested_fields: List[str] = field(default_factory=list)

    @property
    def storage(self) -> StorageKind:
        return BACKEND_STORAGE[self.backend]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "backend": self.backend.value,
            "reason": self.reason,
            "nestedFields": self.nested_fields,
        }


def determine_backend(fields: Dict[str, FieldInfo]) -> StorageBackend:
    """Any nested field sends the whole dataset to the document store."""
    if any(info.nested for info in fields.values()):
        return StorageBackend.NOSQL
    return StorageBackend.SQL


def explain_backend(fields: Dict[str, FieldInfo]) -> BackendDecision:
    """Select a backend and describe why."""
    nested = [name for name, info in fields.items() if info.nested]

    if nested:
        reason = (
            f"Nested structures found in {len(nested)} field(s) "
            f"({', '.join(nested[:5])}); storing as documents"
        )
        return BackendDecision(StorageBackend.NOSQL, reason, nested)

    if not fields:
        reason = "No object fields detected; flat relational layout"
    else:
        reason = f"All {len(fields)} field(s) are flat scalars or scalar arrays; storing as a table"

    return BackendDecision(determine_backend(fields), reason)
