"""
JSON source adapter.

Handles JSON array (file is [{...}, {...}, ...]) and JSON Lines (one object per line).
Configurable: json_path for nested arrays (e.g. "data.records"), format "array" | "jsonl".
Keys are stripped and lowercased so mappings match regardless of JSON casing.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Iterator

from inventory_ingestion.adapters.base import SAMPLE_SIZE, SourceProbe


def _get_nested(data: Any, path: str) -> Any:
    """Follow dot-separated path into dict/list. Returns None if key missing."""
    for key in path.split("."):
        key = key.strip()
        if not key:
            continue
        if isinstance(data, list):
            try:
                data = data[int(key)]
            except (ValueError, IndexError):
                return None
        elif isinstance(data, dict) and key in data:
            data = data[key]
        else:
            return None
    return data


def _normalize_row_keys(item: dict[str, Any]) -> dict[str, Any]:
    return {str(k).strip().lower(): v for k, v in item.items() if isinstance(k, str)}


def _all_keys(rows: list[dict[str, Any]]) -> tuple[str, ...]:
    seen: set[str] = set()
    for row in rows:
        seen.update(row.keys())
    return tuple(sorted(seen))


class JsonSourceAdapter:
    """Read JSON array or JSON Lines files as one dict per record."""

    def _records(self, source_path: Path, options: dict[str, Any]) -> Iterator[Any]:
        encoding = options.get("encoding", "utf-8")
        if options.get("format", "array") == "jsonl":
            with source_path.open("r", encoding=encoding) as f:
                for line in f:
                    line = line.strip()
                    if line:
                        yield json.loads(line)
            return

        with source_path.open("r", encoding=encoding) as f:
            data = json.load(f)
        json_path = options.get("json_path")
        root = _get_nested(data, json_path) if json_path else data
        if not isinstance(root, list):
            raise ValueError(
                f"{source_path.name}: expected a JSON array"
                + (f" at {json_path!r}" if json_path else "")
            )
        yield from root

    def read(self, source_path: Path, options: dict[str, Any]) -> Iterator[dict[str, Any]]:
        for item in self._records(source_path, options):
            if isinstance(item, dict):
                yield _normalize_row_keys(item)

    def probe(self, source_path: Path, options: dict[str, Any]) -> SourceProbe:
        sample: list[dict[str, Any]] = []
        count = 0
        for row in self.read(source_path, options):
            count += 1
            if len(sample) < SAMPLE_SIZE:
                sample.append(row)
        return SourceProbe(
            row_count=count,
            columns=_all_keys(sample),
            sample_rows=tuple(sample),
            encoding=options.get("encoding", "utf-8"),
            detected_delimiter=None,
        )
