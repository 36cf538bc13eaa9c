"""
Inventory Kernel - relief operation goods ledger

An append-only inventory ledger with:
- Header-then-lines batch commits with compensating rollback
- Cached per-item stock with explicit dirty/rebuild state
- Daily opening/closing balance recurrence and point-in-time snapshots
- Duplicate-safe reconciliation of imported historical events
"""

__version__ = "0.1.0"
