"""
inventory_services -- Package init and public API.

Responsibility:
    Orchestration over the inventory kernel: the ledger facade that owns
    transaction boundaries, and read-only projections for dashboards and
    reports.

Architecture position:
    Services -- the outermost layer callers import.

    Dependency direction:
        inventory_services/ -> inventory_kernel/, inventory_config/  (allowed)
        inventory_kernel/   -> inventory_services/                   (FORBIDDEN)
"""

from inventory_services.inventory_service import InventoryLedgerService
from inventory_services.projections import (
    CategoryTrendPoint,
    InventoryBreakdownRow,
    InventoryProjections,
    InventoryStats,
    ReportsSummary,
    TrendPoint,
    WithdrawalBreakdown,
)

__all__ = [
    "CategoryTrendPoint",
    "InventoryBreakdownRow",
    "InventoryLedgerService",
    "InventoryProjections",
    "InventoryStats",
    "ReportsSummary",
    "TrendPoint",
    "WithdrawalBreakdown",
]
