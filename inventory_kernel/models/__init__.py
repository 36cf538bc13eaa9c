"""Domain models for the inventory kernel."""

from inventory_kernel.models.aggregate import (
    STOCK_AGGREGATE,
    AggregateState,
    AggregateStatus,
    StockAggregate,
)
from inventory_kernel.models.batch import (
    BatchOrigin,
    BatchTables,
    Collection,
    CollectionLine,
    Withdrawal,
    WithdrawalLine,
    batch_tables,
)
from inventory_kernel.models.item import UNCATEGORIZED, Item, ItemCategory
from inventory_kernel.models.kit import KitTemplate, KitTemplateLine

__all__ = [
    "Item",
    "ItemCategory",
    "UNCATEGORIZED",
    "KitTemplate",
    "KitTemplateLine",
    "Collection",
    "CollectionLine",
    "Withdrawal",
    "WithdrawalLine",
    "BatchOrigin",
    "BatchTables",
    "batch_tables",
    "StockAggregate",
    "AggregateState",
    "AggregateStatus",
    "STOCK_AGGREGATE",
]
