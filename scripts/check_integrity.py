#!/usr/bin/env python3
"""
Find batch headers left without lines by a failed write.

Exit status is 1 when orphans are found and not repaired.

Usage:
    python3 scripts/check_integrity.py [--repair]
"""

from __future__ import annotations

import argparse
import sys

from _common import add_common_args, open_ledger


def main() -> int:
    parser = argparse.ArgumentParser(description="Check for orphaned batch headers.")
    parser.add_argument("--repair", action="store_true", help="Delete orphaned headers.")
    add_common_args(parser)
    args = parser.parse_args()

    session, ledger = open_ledger(args)
    try:
        report = ledger.check_integrity(repair=args.repair)
        if report.is_clean:
            print("No orphaned headers.")
            return 0
        for issue in report.issues:
            print(f"  {issue.kind.batch_name} {issue.batch_id} ({issue.event_date}): {issue.problem}")
        if args.repair:
            print(f"Removed {report.repaired} orphaned headers.")
            return 0
        print(f"{len(report.issues)} orphaned headers. Re-run with --repair to remove them.")
        return 1
    finally:
        session.close()


if __name__ == "__main__":
    sys.exit(main())
