"""Pure import types (no I/O)."""

from inventory_ingestion.domain.types import (
    CANDIDATE_FIELDS,
    ColumnEvent,
    FieldMapping,
    FieldType,
    ImportMapping,
    MappingResult,
)

__all__ = [
    "CANDIDATE_FIELDS",
    "ColumnEvent",
    "FieldMapping",
    "FieldType",
    "ImportMapping",
    "MappingResult",
]
