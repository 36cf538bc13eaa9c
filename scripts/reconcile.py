#!/usr/bin/env python3
"""
Reconcile the ledger: duplicate removal and expected-total verification.

Without --execute, duplicates are only listed (dry run).  With --expected,
per-item totals from a YAML file are compared with the ledger:

    expected:
      - item: Rice (5kg)       # item name or item_id
        collected: 120
      - item_id: 6f1c...       # any of collected / withdrawn / stock
        stock: 40

Exit status is 1 when expected totals do not match.

Usage:
    python3 scripts/reconcile.py [--execute] [--expected totals.yaml]
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from uuid import UUID

import yaml

from _common import add_common_args, open_ledger

from inventory_kernel.domain.dtos import ExpectedTotal, TotalMeasure
from inventory_kernel.selectors.item_selector import ItemSelector


def _load_expected(path: Path, items: ItemSelector) -> list[ExpectedTotal]:
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    entries = data.get("expected", []) if isinstance(data, dict) else data
    totals: list[ExpectedTotal] = []
    for i, entry in enumerate(entries):
        if entry.get("item_id"):
            item_id = UUID(str(entry["item_id"]))
        else:
            found = items.by_name(str(entry.get("item", "")))
            if found is None:
                raise ValueError(f"entry {i}: unknown item {entry.get('item')!r}")
            item_id = found.item_id
        measures = [m for m in TotalMeasure if m.value in entry]
        if not measures:
            raise ValueError(f"entry {i}: give one of collected, withdrawn, stock")
        for measure in measures:
            totals.append(ExpectedTotal(item_id, entry[measure.value], measure))
    return totals


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Find and remove duplicate events; verify expected totals.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--execute",
        action="store_true",
        help="Delete duplicates (default: dry run, list only).",
    )
    parser.add_argument("--expected", type=Path, default=None, help="Expected totals YAML.")
    add_common_args(parser)
    args = parser.parse_args()

    session, ledger = open_ledger(args)
    try:
        removal = ledger.remove_duplicates(dry_run=not args.execute)
        print(f"Duplicate groups: {len(removal.groups)} ({removal.duplicate_count} extra lines)")
        for group in removal.groups[:20]:
            print(
                f"  {group.kind.value} item={group.item_id} at {group.occurred_at.isoformat()}: "
                f"keep {group.keep.line_id}, drop {len(group.duplicates)} "
                f"(excess {group.excess_quantity})"
            )
        if removal.dry_run:
            if removal.groups:
                print("Dry run: re-run with --execute to remove them.")
        else:
            print(f"Removed {removal.lines_removed} lines and {removal.headers_removed} empty batches.")

        if args.expected is None:
            return 0

        try:
            expected = _load_expected(args.expected, ItemSelector(session))
        except (OSError, ValueError) as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return 1
        deltas = ledger.verify_totals(expected)
        mismatches = [d for d in deltas if not d.matches]
        for d in deltas:
            mark = "ok" if d.matches else "MISMATCH"
            print(
                f"  {d.item_name} {d.measure.value}: expected {d.expected}, "
                f"actual {d.actual}, delta {d.delta} [{mark}]"
            )
        print(f"{len(deltas) - len(mismatches)} of {len(deltas)} totals match.")
        return 1 if mismatches else 0
    finally:
        session.close()


if __name__ == "__main__":
    sys.exit(main())
