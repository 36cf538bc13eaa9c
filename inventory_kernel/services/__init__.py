"""Write-side services for the inventory kernel."""

from inventory_kernel.services.aggregate_service import BalanceAggregator
from inventory_kernel.services.base import BaseService
from inventory_kernel.services.catalog_service import CatalogService
from inventory_kernel.services.commit_protocol import BatchCommitter, PreparedBatch
from inventory_kernel.services.event_store import BatchHeader, LedgerEventStore
from inventory_kernel.services.integrity_service import IntegrityService
from inventory_kernel.services.kit_service import KitService
from inventory_kernel.services.locks import ItemLockRegistry
from inventory_kernel.services.reconciliation_service import ReconciliationService

__all__ = [
    "BalanceAggregator",
    "BaseService",
    "BatchCommitter",
    "BatchHeader",
    "CatalogService",
    "IntegrityService",
    "ItemLockRegistry",
    "KitService",
    "LedgerEventStore",
    "PreparedBatch",
    "ReconciliationService",
]
