"""Pure domain core: DTOs, clock, calendar, validation, balances, dedup."""

from inventory_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from inventory_kernel.domain.dtos import (
    ActorActivity,
    BatchView,
    CandidateEvent,
    CategoryGroup,
    CommitResult,
    CommitStatus,
    DailyBalanceRow,
    EventKind,
    ExpectedTotal,
    ImportIssue,
    ImportResult,
    ItemQuantity,
    LedgerEvent,
    RebuildResult,
    RowPolicy,
    Snapshot,
    StockReport,
    StockRow,
    TotalMeasure,
)

__all__ = [
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "ActorActivity",
    "BatchView",
    "CandidateEvent",
    "CategoryGroup",
    "CommitResult",
    "CommitStatus",
    "DailyBalanceRow",
    "EventKind",
    "ExpectedTotal",
    "ImportIssue",
    "ImportResult",
    "ItemQuantity",
    "LedgerEvent",
    "RebuildResult",
    "RowPolicy",
    "Snapshot",
    "StockReport",
    "StockRow",
    "TotalMeasure",
]
