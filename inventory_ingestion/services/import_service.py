"""
Import service: read -> map -> reconcile.

Orchestrates source adapters, the mapping engine and the ledger facade's
duplicate-safe import.  Uses structured logging (LogContext,
get_logger("ingestion.*")).  The facade owns the transaction: an import
file is written completely or not at all.
"""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from typing import Any, Callable

from inventory_kernel.domain.dtos import CandidateEvent, ImportIssue, ImportResult
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_services.inventory_service import InventoryLedgerService

from inventory_ingestion.adapters.base import SourceAdapter, SourceProbe
from inventory_ingestion.adapters.csv_adapter import CsvSourceAdapter
from inventory_ingestion.adapters.json_adapter import JsonSourceAdapter
from inventory_ingestion.adapters.xlsx_adapter import XlsxSourceAdapter
from inventory_ingestion.domain.types import ImportMapping
from inventory_ingestion.mapping.engine import to_candidates
from inventory_ingestion.mapping.loader import BUILTIN_MAPPINGS

logger = get_logger("ingestion.import_service")


def _default_adapters() -> dict[str, SourceAdapter]:
    return {
        "csv": CsvSourceAdapter(),
        "json": JsonSourceAdapter(),
        "xlsx": XlsxSourceAdapter(),
    }


class ImportService:
    """Reads historical files and hands their events to the ledger."""

    def __init__(
        self,
        ledger: InventoryLedgerService,
        adapters: dict[str, SourceAdapter] | None = None,
        mapping_registry: Callable[[str], ImportMapping | None] | dict[str, ImportMapping] | None = None,
    ):
        self._ledger = ledger
        self._adapters = adapters if adapters is not None else _default_adapters()
        if callable(mapping_registry):
            self._get_mapping = mapping_registry
        elif isinstance(mapping_registry, dict):
            self._get_mapping = mapping_registry.get
        else:
            self._get_mapping = BUILTIN_MAPPINGS.get

    def resolve_mapping(self, mapping: ImportMapping | str) -> ImportMapping:
        if isinstance(mapping, ImportMapping):
            return mapping
        found = self._get_mapping(mapping)
        if found is None:
            raise ValueError(f"Unknown import mapping {mapping!r}")
        return found

    def _adapter(self, mapping: ImportMapping) -> SourceAdapter:
        adapter = self._adapters.get(mapping.source_format)
        if not adapter:
            raise ValueError(f"No adapter for source_format {mapping.source_format!r}")
        return adapter

    def probe_source(self, source_path: Path, mapping: ImportMapping | str) -> SourceProbe:
        """Preview source file: row count, columns, sample data."""
        mapping = self.resolve_mapping(mapping)
        return self._adapter(mapping).probe(source_path, mapping.source_options)

    def read_candidates(
        self,
        source_path: Path,
        mapping: ImportMapping | str,
    ) -> tuple[list[CandidateEvent], list[ImportIssue]]:
        """Map every source row to candidate events; unmappable rows become issues."""
        mapping = self.resolve_mapping(mapping)
        candidates: list[CandidateEvent] = []
        issues: list[ImportIssue] = []
        rows = self._adapter(mapping).read(source_path, mapping.source_options)
        for row_index, raw_row in enumerate(rows, start=1):
            found, problems = to_candidates(raw_row, mapping, row_index)
            candidates.extend(found)
            issues.extend(problems)
        logger.info(
            "source_mapped",
            extra={
                "mapping_name": mapping.name,
                "candidate_count": len(candidates),
                "issue_count": len(issues),
            },
        )
        return candidates, issues

    def import_file(
        self,
        source_path: Path,
        mapping: ImportMapping | str,
        deduplicate: bool = True,
        source: str | None = None,
        options: dict[str, Any] | None = None,
    ) -> ImportResult:
        """
        Import one file.

        Args:
            source_path: File to read.
            mapping: An ImportMapping or the name of a registered one.
            deduplicate: Skip events already in the ledger (default).
            source: Source label stored on the batches; defaults to the
                file name.
            options: Overrides merged into the mapping's source options.

        Returns:
            The ledger's ImportResult, with mapping failures counted as
            skipped_invalid.
        """
        mapping = self.resolve_mapping(mapping)
        if options:
            mapping = replace(mapping, source_options={**mapping.source_options, **options})
        label = source or source_path.name

        with LogContext.bind(import_source=label):
            logger.info(
                "import_file_started",
                extra={"mapping_name": mapping.name, "source_filename": source_path.name},
            )
            candidates, issues = self.read_candidates(source_path, mapping)
            result = self._ledger.import_historical_events(label, candidates, deduplicate)
            if issues:
                result = replace(
                    result,
                    skipped_invalid=result.skipped_invalid + len(issues),
                    errors=tuple(issues) + result.errors,
                )
            logger.info(
                "import_file_completed",
                extra={
                    "imported": result.imported,
                    "skipped_duplicate": result.skipped_duplicate,
                    "skipped_invalid": result.skipped_invalid,
                },
            )
            return result
