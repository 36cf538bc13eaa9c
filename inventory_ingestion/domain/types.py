"""
inventory_ingestion.domain.types -- Pure frozen dataclasses for historical imports.

ZERO I/O.  Imports only from inventory_kernel.domain.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from inventory_kernel.domain.dtos import EventKind, ImportIssue

# Fields a mapping may fill; they match CandidateEvent attributes.
CANDIDATE_FIELDS = frozenset({
    "kind",
    "item_id",
    "item_name",
    "quantity",
    "occurred_at",
    "event_date",
    "actor_id",
    "notes",
    "recipient",
    "reason",
})


class FieldType(str, Enum):
    """Target type of a mapped field."""

    STRING = "string"
    DECIMAL = "decimal"
    DATE = "date"
    DATETIME = "datetime"
    UUID = "uuid"


@dataclass(frozen=True)
class FieldMapping:
    """Single field mapping: source column -> candidate field with type and transform."""

    source: str
    target: str
    field_type: FieldType = FieldType.STRING
    required: bool = False
    default: Any = None
    format: str | None = None  # e.g. "%m/%d/%Y"
    transform: str | None = None  # "strip", "upper", "lower", "title"


@dataclass(frozen=True)
class ColumnEvent:
    """
    One quantity column of a wide sheet (one row per item, one column per
    delivery or giveaway day).  Every positive cell becomes an event at
    ``occurred_at``.
    """

    column: str
    occurred_at: datetime
    reason: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class ImportMapping:
    """
    Compiled import mapping: source format, options and field mappings.

    ``kind`` fixes the event kind for every row; when None the rows must map
    a ``kind`` field.  ``column_events`` switches to the wide layout, where
    field_mappings describe the per-row fields (item name, notes) and each
    ColumnEvent contributes the quantity.
    """

    name: str
    source_format: str  # "csv", "json", "xlsx"
    kind: EventKind | None = None
    source_options: dict[str, Any] = field(default_factory=dict)
    field_mappings: tuple[FieldMapping, ...] = ()
    column_events: tuple[ColumnEvent, ...] = ()

    @property
    def is_wide(self) -> bool:
        return bool(self.column_events)


@dataclass(frozen=True)
class MappingResult:
    """Result of applying field mappings to a raw record."""

    success: bool
    mapped_data: dict[str, Any] = field(default_factory=dict)
    errors: tuple[ImportIssue, ...] = ()
