"""
XLSX source adapter for spreadsheet inventories (master inventory sheets,
delivery logs).

Supports flexible layout:
  - sheet by index (0-based) or name
  - header row by index or auto-detect (scans the first rows for
    inventory-like column names)
  - skip_rows before header
  - normalizes cell values (strip, blank -> empty string, whole floats -> int)

Auto-detect looks for a row containing at least 2 of: item, name, quantity,
qty, date, category, collected, withdrawn, notes, reason.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from pathlib import Path
from typing import Any, Iterator

import openpyxl

from inventory_ingestion.adapters.base import SAMPLE_SIZE, SourceProbe

_HEADER_KEYWORDS = frozenset({
    "item", "item name", "name", "description",
    "quantity", "qty", "count", "amount",
    "date", "collected", "withdrawn", "received", "given out",
    "category", "unit", "notes", "reason", "recipient",
})

_MAX_COLUMNS = 50
_HEADER_SEARCH_ROWS = 15


def _normalize_header_cell(value: Any) -> str:
    if value is None:
        return ""
    return re.sub(r"\s+", " ", str(value)).strip()


def _cell_value(row: Any, col_idx: int) -> Any:
    """Cell value from an openpyxl row (0-based column index)."""
    if col_idx >= len(row):
        return ""
    v = row[col_idx].value
    if v is None:
        return ""
    if isinstance(v, float):
        return int(v) if v == int(v) else v
    if isinstance(v, (int, date, datetime)):
        return v
    return str(v).strip()


def _row_keywords(row: Any) -> set[str]:
    keywords = set()
    for c in range(min(len(row), _MAX_COLUMNS)):
        v = _cell_value(row, c)
        if not isinstance(v, str) or not v:
            continue
        v_lower = v.lower()
        for kw in _HEADER_KEYWORDS:
            if kw == v_lower or kw in v_lower:
                keywords.add(kw)
    return keywords


def _detect_header_row(rows: list, min_keywords: int = 2) -> int:
    for i, row in enumerate(rows[:_HEADER_SEARCH_ROWS]):
        if len(_row_keywords(row)) >= min_keywords:
            return i
    return 0


def _headers(header_row: Any) -> list[str]:
    ncols = 0
    for c in range(min(len(header_row), _MAX_COLUMNS)):
        if _cell_value(header_row, c) != "":
            ncols = c + 1
    headers: list[str] = []
    for c in range(max(ncols, 1)):
        key = _normalize_header_cell(_cell_value(header_row, c)) or f"Column_{c + 1}"
        base, cnt = key, 0
        while key in headers:
            cnt += 1
            key = f"{base}_{cnt}"
        headers.append(key)
    return headers


class XlsxSourceAdapter:
    """
    Read .xlsx files as one dict per row, keyed by the header row.

    source_options:
      sheet: 0-based sheet index (int) or sheet name (str). Default: active sheet.
      skip_rows: rows to skip at top of sheet before header/data. Default: 0.
      header_row: 0-based row index (after skip_rows) used as header when
        auto_detect_header is false.
      auto_detect_header: scan the first rows for a header (default true).
    """

    def _get_sheet(self, wb: Any, options: dict[str, Any]) -> Any:
        sheet_ref = options.get("sheet")
        if sheet_ref is None:
            return wb.active
        if isinstance(sheet_ref, int):
            return wb.worksheets[sheet_ref]
        return wb[sheet_ref]

    def _header_index(self, rows: list, options: dict[str, Any]) -> int:
        if options.get("auto_detect_header", True):
            return _detect_header_row(rows)
        return int(options.get("header_row", 0))

    def _rows(self, source_path: Path, options: dict[str, Any]) -> Iterator[dict[str, Any]]:
        wb = openpyxl.load_workbook(source_path, read_only=True, data_only=True)
        try:
            sheet = self._get_sheet(wb, options)
            skip_rows = int(options.get("skip_rows", 0))
            rows = list(sheet.iter_rows(min_row=1 + skip_rows))
            if not rows:
                return
            hi = self._header_index(rows, options)
            headers = _headers(rows[hi])
            for row in rows[hi + 1:]:
                vals = [_cell_value(row, c) for c in range(len(headers))]
                if any(v != "" for v in vals):
                    yield dict(zip(headers, vals))
        finally:
            wb.close()

    def read(self, source_path: Path, options: dict[str, Any]) -> Iterator[dict[str, Any]]:
        yield from self._rows(source_path, options)

    def probe(self, source_path: Path, options: dict[str, Any]) -> SourceProbe:
        sample: list[dict[str, Any]] = []
        count = 0
        for row in self._rows(source_path, options):
            count += 1
            if len(sample) < SAMPLE_SIZE:
                sample.append(row)
        return SourceProbe(
            row_count=count,
            columns=tuple(sample[0]) if sample else (),
            sample_rows=tuple(sample),
        )
