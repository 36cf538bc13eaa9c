"""Read-only query selectors for the inventory kernel."""

from inventory_kernel.selectors.balance_selector import DailyBalanceSelector
from inventory_kernel.selectors.base import BaseSelector
from inventory_kernel.selectors.event_selector import EventSelector
from inventory_kernel.selectors.item_selector import CategoryView, ItemSelector, ItemView
from inventory_kernel.selectors.kit_selector import KitLineView, KitSelector, KitTemplateView
from inventory_kernel.selectors.snapshot_selector import SnapshotSelector
from inventory_kernel.selectors.stock_selector import StockSelector

__all__ = [
    "BaseSelector",
    "CategoryView",
    "DailyBalanceSelector",
    "EventSelector",
    "ItemSelector",
    "ItemView",
    "KitLineView",
    "KitSelector",
    "KitTemplateView",
    "SnapshotSelector",
    "StockSelector",
]
