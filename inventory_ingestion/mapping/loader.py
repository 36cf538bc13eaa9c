"""
Import mapping definitions: YAML loading and the built-in mappings.

A mapping file looks like::

    name: master_inventory_withdrawals
    source_format: csv
    kind: withdrawn
    source_options: {skip_rows: 2}
    fields:
      - {source: Item, target: item_name, required: true, transform: strip}
    columns:
      - {column: "Packed OUT Tues Nov 4", occurred_at: 2024-11-04, reason: Packed out}
"""

from __future__ import annotations

from datetime import date, datetime, time
from pathlib import Path
from typing import Any, Mapping

import yaml

from inventory_ingestion.domain.types import (
    CANDIDATE_FIELDS,
    ColumnEvent,
    FieldMapping,
    FieldType,
    ImportMapping,
)
from inventory_ingestion.mapping.engine import parse_kind

SOURCE_FORMATS = frozenset({"csv", "json", "xlsx"})

_FIELD_KEYS = frozenset({"source", "target", "type", "required", "default", "format", "transform"})


def _to_datetime(value: Any, where: str) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time())
    try:
        return datetime.fromisoformat(str(value))
    except ValueError as exc:
        raise ValueError(f"{where}: invalid occurred_at {value!r}") from exc


def _compile_field(raw: Mapping[str, Any], where: str) -> FieldMapping:
    unknown = set(raw) - _FIELD_KEYS
    if unknown:
        raise ValueError(f"{where}: unknown keys {sorted(unknown)}")
    if "source" not in raw or "target" not in raw:
        raise ValueError(f"{where}: 'source' and 'target' are required")
    target = raw["target"]
    if target not in CANDIDATE_FIELDS:
        raise ValueError(f"{where}: unknown target {target!r}")
    try:
        field_type = FieldType(raw.get("type", _default_type(target)))
    except ValueError as exc:
        raise ValueError(f"{where}: unknown type {raw.get('type')!r}") from exc
    return FieldMapping(
        source=str(raw["source"]),
        target=target,
        field_type=field_type,
        required=bool(raw.get("required", False)),
        default=raw.get("default"),
        format=raw.get("format"),
        transform=raw.get("transform"),
    )


def _default_type(target: str) -> str:
    return {
        "quantity": FieldType.DECIMAL.value,
        "occurred_at": FieldType.DATETIME.value,
        "event_date": FieldType.DATE.value,
        "item_id": FieldType.UUID.value,
        "actor_id": FieldType.UUID.value,
    }.get(target, FieldType.STRING.value)


def compile_mapping(data: Mapping[str, Any]) -> ImportMapping:
    """
    Build an ImportMapping from a parsed definition.

    Raises:
        ValueError: On unknown formats, kinds, targets or field types.
    """
    name = data.get("name") or "unnamed"
    source_format = str(data.get("source_format", "csv")).lower()
    if source_format not in SOURCE_FORMATS:
        raise ValueError(f"mapping {name}: unsupported source_format {source_format!r}")

    kind = None
    if data.get("kind") is not None:
        kind = parse_kind(data["kind"])
        if kind is None:
            raise ValueError(f"mapping {name}: unknown kind {data['kind']!r}")

    fields = tuple(
        _compile_field(raw, f"mapping {name} field {i}")
        for i, raw in enumerate(data.get("fields") or ())
    )
    columns = tuple(
        ColumnEvent(
            column=str(raw["column"]),
            occurred_at=_to_datetime(raw.get("occurred_at"), f"mapping {name} column {raw['column']!r}"),
            reason=raw.get("reason"),
            notes=raw.get("notes"),
        )
        for raw in data.get("columns") or ()
    )
    if kind is None and not any(f.target == "kind" for f in fields):
        raise ValueError(f"mapping {name}: set 'kind' or map a 'kind' field")
    if not columns and not any(f.target == "quantity" for f in fields):
        raise ValueError(f"mapping {name}: map a 'quantity' field or list quantity columns")

    return ImportMapping(
        name=name,
        source_format=source_format,
        kind=kind,
        source_options=dict(data.get("source_options") or {}),
        field_mappings=fields,
        column_events=columns,
    )


def load_mapping_file(path: Path) -> ImportMapping:
    """Load and compile a YAML mapping definition."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping definition")
    data.setdefault("name", Path(path).stem)
    return compile_mapping(data)


def _long_fields(kind_column: bool) -> list[dict[str, Any]]:
    fields: list[dict[str, Any]] = [
        {"source": "item", "target": "item_name", "required": True, "transform": "strip"},
        {"source": "quantity", "target": "quantity", "required": True},
        {"source": "occurred_at", "target": "occurred_at"},
        {"source": "date", "target": "event_date"},
        {"source": "notes", "target": "notes"},
        {"source": "recipient", "target": "recipient"},
        {"source": "reason", "target": "reason"},
    ]
    if kind_column:
        fields.append({"source": "type", "target": "kind", "required": True})
    return fields


BUILTIN_MAPPINGS: dict[str, ImportMapping] = {
    "events_csv": compile_mapping(
        {"name": "events_csv", "source_format": "csv", "fields": _long_fields(True)}
    ),
    "events_json": compile_mapping(
        {"name": "events_json", "source_format": "json", "fields": _long_fields(True)}
    ),
    "collections_csv": compile_mapping(
        {
            "name": "collections_csv",
            "source_format": "csv",
            "kind": "collected",
            "fields": _long_fields(False),
        }
    ),
    "withdrawals_csv": compile_mapping(
        {
            "name": "withdrawals_csv",
            "source_format": "csv",
            "kind": "withdrawn",
            "fields": _long_fields(False),
        }
    ),
}
