"""
CSV source adapter.

Uses csv.DictReader. Configurable: delimiter, encoding, skip_rows (for
spreadsheet exports with banner rows above the header). Handles BOM via
utf-8-sig when encoding is utf-8. Streams rows.
"""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Any, Iterator

from inventory_ingestion.adapters.base import SAMPLE_SIZE, SourceProbe


def _get_encoding(options: dict[str, Any]) -> str:
    enc = options.get("encoding", "utf-8")
    if enc.lower() == "utf-8":
        return "utf-8-sig"  # Strip BOM if present
    return enc


def _clean(row: dict[str | None, Any]) -> dict[str, Any]:
    # DictReader puts surplus cells under the None key
    return {k.strip(): v for k, v in row.items() if k is not None}


class CsvSourceAdapter:
    """Read CSV files as one dict per row. Streams; does not load entire file."""

    def read(self, source_path: Path, options: dict[str, Any]) -> Iterator[dict[str, Any]]:
        encoding = _get_encoding(options)
        delimiter = options.get("delimiter", ",")
        skip_rows = int(options.get("skip_rows", 0))

        with source_path.open("r", encoding=encoding, newline="") as f:
            for _ in range(skip_rows):
                next(f, None)
            for row in csv.DictReader(f, delimiter=delimiter):
                if not any((v or "").strip() for v in row.values() if isinstance(v, str)):
                    continue
                yield _clean(row)

    def probe(self, source_path: Path, options: dict[str, Any]) -> SourceProbe:
        encoding = _get_encoding(options)
        delimiter = options.get("delimiter", ",")
        skip_rows = int(options.get("skip_rows", 0))

        with source_path.open("r", encoding=encoding, newline="") as f:
            for _ in range(skip_rows):
                next(f, None)
            reader = csv.DictReader(f, delimiter=delimiter)
            columns = tuple(c.strip() for c in (reader.fieldnames or ()))
            sample: list[dict[str, Any]] = []
            count = 0
            for row in reader:
                count += 1
                if len(sample) < SAMPLE_SIZE:
                    sample.append(_clean(row))

        return SourceProbe(
            row_count=count,
            columns=columns,
            sample_rows=tuple(sample),
            encoding=encoding,
            detected_delimiter=delimiter,
        )
