#!/usr/bin/env python3
"""
Recompute the cached stock aggregate from the ledger lines.

Safe to run at any time: the rebuild is a full recompute and is idempotent.

Usage:
    python3 scripts/rebuild_aggregates.py [--db-url URL] [--config FILE]
"""

from __future__ import annotations

import argparse
import sys

from _common import add_common_args, open_ledger


def main() -> int:
    parser = argparse.ArgumentParser(description="Rebuild the stock aggregate.")
    add_common_args(parser)
    args = parser.parse_args()

    session, ledger = open_ledger(args)
    try:
        before = ledger.get_current_stock()
        result = ledger.rebuild_aggregates()
        print(f"Aggregate was {before.aggregate_status} (version {before.aggregate_version}).")
        print(f"Rebuilt {result.item_count} items; version {result.version} at {result.rebuilt_at}.")
        return 0
    finally:
        session.close()


if __name__ == "__main__":
    sys.exit(main())
