"""
Mapping engine: pure transformation from raw source dict to CandidateEvents.

Coerces text cells (CSV) and typed cells (JSON, XLSX) to the candidate's
field types.  ZERO I/O; item names are resolved later by the
reconciliation service.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from inventory_kernel.domain.dtos import CandidateEvent, EventKind, ImportIssue

from inventory_ingestion.domain.types import (
    FieldMapping,
    FieldType,
    ImportMapping,
    MappingResult,
)

_DATE_FORMATS = ("%Y-%m-%d", "%Y/%m/%d", "%m/%d/%Y", "%d/%m/%Y", "%m/%d/%y")

_KIND_ALIASES = {
    "collected": EventKind.COLLECTED,
    "collection": EventKind.COLLECTED,
    "received": EventKind.COLLECTED,
    "in": EventKind.COLLECTED,
    "withdrawn": EventKind.WITHDRAWN,
    "withdrawal": EventKind.WITHDRAWN,
    "distributed": EventKind.WITHDRAWN,
    "out": EventKind.WITHDRAWN,
}


# -----------------------------------------------------------------------------
# Result types
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class CoercionResult:
    """Result of coercing a cell to a target type."""

    success: bool
    value: Any = None
    code: str | None = None
    message: str | None = None


def _fail(code: str, message: str) -> CoercionResult:
    return CoercionResult(success=False, code=code, message=message)


# -----------------------------------------------------------------------------
# Transforms (pure)
# -----------------------------------------------------------------------------


def apply_transform(value: Any, transform: str | None) -> Any:
    """Apply a named string transform.  Non-strings pass through."""
    if not isinstance(value, str) or not transform:
        return value
    t = transform.strip().lower()
    if t in ("strip", "trim"):
        return value.strip()
    if t == "upper":
        return value.upper()
    if t == "lower":
        return value.lower()
    if t == "title":
        return value.strip().title()
    return value


def _parse_date(s: str, format_str: str | None) -> date | None:
    formats = (format_str,) + _DATE_FORMATS if format_str else _DATE_FORMATS
    for fmt in formats:
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    return None


def coerce_value(value: Any, field_type: FieldType, format_str: str | None = None) -> CoercionResult:
    """
    Coerce a cell to ``field_type``.  Pure function.

    Dates without a time become midnight datetimes when a DATETIME is
    wanted; the day timezone is applied later.
    """
    if field_type is FieldType.STRING:
        return CoercionResult(success=True, value=str(value).strip())

    if field_type is FieldType.DECIMAL:
        if isinstance(value, bool):
            return _fail("INVALID_DECIMAL", f"Cannot coerce to decimal: {value!r}")
        if isinstance(value, (int, float, Decimal)):
            s = str(value)
        else:
            s = str(value).strip().replace(",", "")
        try:
            number = Decimal(s)
        except InvalidOperation:
            return _fail("INVALID_DECIMAL", f"Cannot coerce to decimal: {value!r}")
        if not number.is_finite():
            return _fail("INVALID_DECIMAL", f"Not a finite number: {value!r}")
        return CoercionResult(success=True, value=number)

    if field_type is FieldType.DATE:
        if isinstance(value, datetime):
            return CoercionResult(success=True, value=value.date())
        if isinstance(value, date):
            return CoercionResult(success=True, value=value)
        parsed = _parse_date(str(value).strip(), format_str)
        if parsed is None:
            return _fail("INVALID_DATE_FORMAT", f"Cannot parse date: {value!r}")
        return CoercionResult(success=True, value=parsed)

    if field_type is FieldType.DATETIME:
        if isinstance(value, datetime):
            return CoercionResult(success=True, value=value)
        if isinstance(value, date):
            return CoercionResult(success=True, value=datetime.combine(value, time()))
        s = str(value).strip()
        if format_str:
            try:
                return CoercionResult(success=True, value=datetime.strptime(s, format_str))
            except ValueError:
                pass
        try:
            return CoercionResult(success=True, value=datetime.fromisoformat(s.replace("Z", "+00:00")))
        except ValueError:
            parsed = _parse_date(s, None)
            if parsed is None:
                return _fail("INVALID_DATETIME_FORMAT", f"Cannot parse datetime: {value!r}")
            return CoercionResult(success=True, value=datetime.combine(parsed, time()))

    if field_type is FieldType.UUID:
        if isinstance(value, UUID):
            return CoercionResult(success=True, value=value)
        try:
            return CoercionResult(success=True, value=UUID(str(value).strip()))
        except ValueError:
            return _fail("INVALID_UUID_FORMAT", f"Invalid UUID: {value!r}")

    return _fail("UNSUPPORTED_TYPE", f"Unsupported field_type: {field_type}")


def parse_kind(value: Any) -> EventKind | None:
    if isinstance(value, EventKind):
        return value
    return _KIND_ALIASES.get(str(value).strip().lower())


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


# -----------------------------------------------------------------------------
# Apply mapping (pure)
# -----------------------------------------------------------------------------


def apply_mapping(
    raw_data: dict[str, Any],
    field_mappings: tuple[FieldMapping, ...],
    source_row: int | None = None,
) -> MappingResult:
    """
    Apply field mappings to a raw source record.

    Missing required -> error; missing optional -> default (if any).
    """
    errors: list[ImportIssue] = []
    mapped: dict[str, Any] = {}

    for fm in field_mappings:
        raw_value = raw_data.get(fm.source)
        if _is_blank(raw_value):
            if fm.required:
                errors.append(
                    ImportIssue(
                        source_row,
                        "MISSING_REQUIRED_FIELD",
                        f"Required field {fm.source!r} is missing",
                    )
                )
            elif fm.default is not None:
                mapped[fm.target] = fm.default
            continue

        value = apply_transform(raw_value, fm.transform)
        coerced = coerce_value(value, fm.field_type, fm.format)
        if not coerced.success:
            errors.append(ImportIssue(source_row, coerced.code, f"{fm.source}: {coerced.message}"))
            continue
        mapped[fm.target] = coerced.value

    return MappingResult(success=not errors, mapped_data=mapped, errors=tuple(errors))


def _occurred_at(data: dict[str, Any]) -> datetime | None:
    if data.get("occurred_at") is not None:
        return data["occurred_at"]
    if data.get("event_date") is not None:
        return datetime.combine(data["event_date"], time())
    return None


def to_candidates(
    raw_data: dict[str, Any],
    mapping: ImportMapping,
    source_row: int | None = None,
) -> tuple[list[CandidateEvent], list[ImportIssue]]:
    """
    Map one source record to candidate events.

    A long-layout record yields at most one candidate; a wide-layout record
    yields one candidate per positive quantity column.
    """
    result = apply_mapping(raw_data, mapping.field_mappings, source_row)
    if not result.success:
        return [], list(result.errors)
    data = result.mapped_data

    kind = mapping.kind or parse_kind(data.get("kind", ""))
    if kind is None:
        return [], [ImportIssue(source_row, "INVALID_KIND", f"Unknown event kind: {data.get('kind')!r}")]

    common = {
        "kind": kind,
        "item_id": data.get("item_id"),
        "item_name": data.get("item_name"),
        "actor_id": data.get("actor_id"),
        "recipient": data.get("recipient"),
        "source_row": source_row,
    }

    if not mapping.is_wide:
        if data.get("quantity") is None:
            return [], [ImportIssue(source_row, "MISSING_REQUIRED_FIELD", "quantity is missing")]
        return [
            CandidateEvent(
                occurred_at=_occurred_at(data),
                quantity=data["quantity"],
                event_date=data.get("event_date"),
                notes=data.get("notes"),
                reason=data.get("reason"),
                **common,
            )
        ], []

    candidates: list[CandidateEvent] = []
    issues: list[ImportIssue] = []
    for column in mapping.column_events:
        cell = raw_data.get(column.column)
        if _is_blank(cell):
            continue
        coerced = coerce_value(cell, FieldType.DECIMAL)
        if not coerced.success:
            issues.append(ImportIssue(source_row, "INVALID_QUANTITY", f"{column.column}: {coerced.message}"))
            continue
        if coerced.value <= 0:
            continue
        candidates.append(
            CandidateEvent(
                occurred_at=column.occurred_at,
                quantity=coerced.value,
                notes=column.notes or data.get("notes"),
                reason=column.reason or data.get("reason"),
                **common,
            )
        )
    return candidates, issues
