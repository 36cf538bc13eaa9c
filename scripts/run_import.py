#!/usr/bin/env python3
"""
Import historical collections and withdrawals from a CSV, JSON or XLSX file.

Events already in the ledger (same kind, item and instant) are skipped and
reported unless --no-dedup is given.  The whole file is imported in one
transaction; the stock aggregate is rebuilt afterwards.

Usage:
    python3 scripts/run_import.py --mapping <name|mapping.yaml> --file <path> [options]

Examples:
    # One event per row, kind in a "type" column
    python3 scripts/run_import.py --mapping events_csv --file history.csv

    # Wide master-inventory sheet described by a mapping file
    python3 scripts/run_import.py --mapping master_withdrawals.yaml --file master.csv

    # Probe source file (row count, columns, sample) without importing
    python3 scripts/run_import.py --mapping events_csv --file history.csv --probe-only
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from _common import add_common_args, open_ledger


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Import historical inventory events with duplicate detection.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--mapping",
        required=True,
        help="Built-in mapping name (events_csv, events_json, collections_csv, "
        "withdrawals_csv) or path to a mapping YAML file.",
    )
    parser.add_argument("--file", required=True, type=Path, help="Source file.")
    parser.add_argument("--source", default=None, help="Source label (default: file name).")
    parser.add_argument(
        "--skip-rows",
        type=int,
        default=None,
        help="Rows to skip above the header (overrides the mapping).",
    )
    parser.add_argument(
        "--no-dedup",
        action="store_true",
        help="Write every valid row even if it duplicates a stored event.",
    )
    parser.add_argument(
        "--probe-only",
        action="store_true",
        help="Probe source file (row count, columns, sample rows) and exit. No DB writes.",
    )
    add_common_args(parser)
    return parser.parse_args()


def main() -> int:
    args = _parse_args()
    source_path = args.file.resolve()
    if not source_path.is_file():
        print(f"ERROR: File not found: {source_path}", file=sys.stderr)
        return 1

    from inventory_ingestion import ImportService
    from inventory_ingestion.mapping import load_mapping_file

    mapping = args.mapping
    if mapping.endswith((".yaml", ".yml")):
        try:
            mapping = load_mapping_file(Path(mapping))
        except (OSError, ValueError) as e:
            print(f"ERROR: Invalid mapping file: {e}", file=sys.stderr)
            return 1

    session, ledger = open_ledger(args)
    try:
        importer = ImportService(ledger)
        try:
            mapping = importer.resolve_mapping(mapping)
        except ValueError as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return 1

        if args.probe_only:
            probe = importer.probe_source(source_path, mapping)
            print(f"Rows: {probe.row_count}")
            print(f"Columns: {list(probe.columns)}")
            print("Sample (first 3):")
            for i, row in enumerate(probe.sample_rows[:3], 1):
                print(f"  {i}: {row}")
            return 0

        options = {"skip_rows": args.skip_rows} if args.skip_rows is not None else None
        print(f"Importing {source_path} with mapping {mapping.name}...")
        result = importer.import_file(
            source_path,
            mapping,
            deduplicate=not args.no_dedup,
            source=args.source,
            options=options,
        )
        print(f"  Imported: {result.imported}")
        print(f"  Skipped (duplicate): {result.skipped_duplicate}")
        print(f"  Skipped (invalid): {result.skipped_invalid}")
        print(f"  Batches written: {len(result.batch_ids)}")
        for issue in result.errors[:10]:
            print(f"  Row {issue.source_row}: [{issue.code}] {issue.message}")
        if len(result.errors) > 10:
            print(f"  ... and {len(result.errors) - 10} more.")
        return 0
    finally:
        session.close()


if __name__ == "__main__":
    sys.exit(main())
