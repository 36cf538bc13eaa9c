"""
Read-only inventory projections (``inventory_services.projections``).

Responsibility
--------------
Dashboard and report figures derived from the ledger: low-stock items,
headline stats for a day, stock trends per item and per category, withdrawn
quantities broken down by recipient and reason, and the all-time summary.
Bridges the kernel selectors to the pure grouping functions in
``inventory_kernel.domain.balances``.

Architecture position
---------------------
**Services layer**, read-only.  Constructor: ``session`` + ``clock`` +
``settings``.  Nothing here writes events or changes the aggregate state
beyond the aggregator creating its state row on first use.

Invariants enforced
-------------------
* All quantities are ``Decimal``.
* Negative stock is reported as is and always counts as low stock.
* Trend series use the ``ALL`` row policy so every requested item has a
  point for every day.
* An item's breakdowns sum to its withdrawn total.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from sqlalchemy.orm import Session

from inventory_config import InventorySettings
from inventory_kernel.db.types import ZERO
from inventory_kernel.domain.balances import group_by_category
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import (
    CategoryGroup,
    DailyBalanceRow,
    EventKind,
    RowPolicy,
    StockRow,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.selectors.balance_selector import DailyBalanceSelector
from inventory_kernel.selectors.event_selector import EventSelector
from inventory_kernel.selectors.item_selector import ItemSelector
from inventory_kernel.services.aggregate_service import BalanceAggregator

logger = get_logger("services.projections")


@dataclass(frozen=True)
class InventoryStats:
    """Headline figures for one day."""

    day: date
    total_items: int
    collections_today: int
    withdrawals_today: int
    total_stock: Decimal
    total_collected: Decimal
    total_withdrawn: Decimal
    low_stock_count: int


@dataclass(frozen=True)
class TrendPoint:
    day: date
    item_id: UUID
    item_name: str
    stock: Decimal


@dataclass(frozen=True)
class CategoryTrendPoint:
    day: date
    category_name: str
    total_stock: Decimal


@dataclass(frozen=True)
class ReportsSummary:
    """All-time counts and totals."""

    item_count: int
    active_item_count: int
    collection_count: int
    withdrawal_count: int
    total_collected: Decimal
    total_withdrawn: Decimal
    total_stock: Decimal
    first_collection_date: date | None


@dataclass(frozen=True)
class WithdrawalBreakdown:
    """Withdrawn quantity of one item for one recipient and reason."""

    item_id: UUID
    item_name: str
    category_name: str
    recipient: str | None
    reason: str | None
    quantity: Decimal


@dataclass(frozen=True)
class InventoryBreakdownRow:
    row: StockRow
    breakdowns: tuple[WithdrawalBreakdown, ...]


class InventoryProjections:
    """
    Read-only reporting over the inventory ledger.

    Contract
    --------
    * Every method returns plain DTOs and performs no ledger writes.
    * Stock figures come from the aggregate when it is clean, else from a
      full scan (the aggregator decides).
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: InventorySettings | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._settings = settings or InventorySettings()
        self._items = ItemSelector(session)
        self._events = EventSelector(session)
        self._aggregator = BalanceAggregator(session, self._clock)
        self._balances = DailyBalanceSelector(
            session, max_range_days=self._settings.reports.max_range_days
        )

    def low_stock_items(self) -> list[StockRow]:
        """Active items at or below their threshold, lowest stock first."""
        rows = [
            row
            for row in self._aggregator.stock_rows(active_only=True)
            if row.is_low or row.is_negative
        ]
        rows.sort(key=lambda r: (r.stock, r.item_name))
        return rows

    def inventory_stats(self, today: date) -> InventoryStats:
        rows = self._aggregator.stock_rows(active_only=True)
        stats = InventoryStats(
            day=today,
            total_items=len(rows),
            collections_today=self._events.count_batches(EventKind.COLLECTED, today),
            withdrawals_today=self._events.count_batches(EventKind.WITHDRAWN, today),
            total_stock=sum((r.stock for r in rows), ZERO),
            total_collected=sum((r.collected for r in rows), ZERO),
            total_withdrawn=sum((r.withdrawn for r in rows), ZERO),
            low_stock_count=sum(1 for r in rows if r.is_low or r.is_negative),
        )
        logger.info(
            "inventory_stats_computed",
            extra={"day": today, "total_items": stats.total_items},
        )
        return stats

    def _all_rows(self, start_date: date, end_date: date) -> list[DailyBalanceRow]:
        return self._balances.daily_balances(start_date, end_date, row_policy=RowPolicy.ALL)

    def inventory_trends(
        self,
        start_date: date,
        end_date: date,
        item_ids: Iterable[UUID] | None = None,
    ) -> list[TrendPoint]:
        """Closing stock per day per item, ordered by day then item name."""
        wanted = set(item_ids) if item_ids is not None else None
        return [
            TrendPoint(day=r.date, item_id=r.item_id, item_name=r.item_name, stock=r.closing_balance)
            for r in self._all_rows(start_date, end_date)
            if wanted is None or r.item_id in wanted
        ]

    def category_trends(
        self,
        start_date: date,
        end_date: date,
        category_id: UUID | None = None,
    ) -> list[CategoryTrendPoint]:
        """Total closing stock per category per day."""
        only: str | None = None
        if category_id is not None:
            names = {c.category_id: c.name for c in self._items.categories()}
            only = names.get(category_id)
            if only is None:
                return []

        totals: dict[tuple[date, str], Decimal] = defaultdict(lambda: ZERO)
        for row in self._all_rows(start_date, end_date):
            if only is None or row.category_name == only:
                totals[(row.date, row.category_name)] += row.closing_balance

        order = self._items.category_order()
        points = [
            CategoryTrendPoint(day=day, category_name=name, total_stock=total)
            for (day, name), total in totals.items()
        ]
        points.sort(key=lambda p: (p.day, order.get(p.category_name, 0), p.category_name))
        return points

    def reports_summary(self) -> ReportsSummary:
        rows = self._aggregator.stock_rows()
        return ReportsSummary(
            item_count=len(rows),
            active_item_count=sum(1 for r in rows if r.is_active),
            collection_count=self._events.count_batches(EventKind.COLLECTED),
            withdrawal_count=self._events.count_batches(EventKind.WITHDRAWN),
            total_collected=sum((r.collected for r in rows), ZERO),
            total_withdrawn=sum((r.withdrawn for r in rows), ZERO),
            total_stock=sum((r.stock for r in rows), ZERO),
            first_collection_date=self._events.first_event_date(EventKind.COLLECTED),
        )

    def group_by_category(self, rows: Iterable[DailyBalanceRow]) -> tuple[CategoryGroup, ...]:
        return group_by_category(rows, self._items.category_order())

    def withdrawal_breakdowns(self, item_id: UUID | None = None) -> list[WithdrawalBreakdown]:
        """
        Withdrawn totals per item, recipient and reason, ordered by item name
        then recipient.  Withdrawals with no recipient sort first.
        """
        rows = {r.item_id: r for r in self._aggregator.stock_rows()}
        breakdowns = [
            WithdrawalBreakdown(
                item_id=t.item_id,
                item_name=rows[t.item_id].item_name,
                category_name=rows[t.item_id].category_name,
                recipient=t.recipient,
                reason=t.reason,
                quantity=t.quantity,
            )
            for t in self._events.withdrawn_by_destination(item_id)
        ]
        breakdowns.sort(key=lambda b: (b.item_name, b.recipient or "", b.reason or ""))
        return breakdowns

    def inventory_with_breakdowns(self) -> list[InventoryBreakdownRow]:
        """Stock rows of active items, each with its withdrawal breakdowns."""
        by_item: dict[UUID, list[WithdrawalBreakdown]] = defaultdict(list)
        for breakdown in self.withdrawal_breakdowns():
            by_item[breakdown.item_id].append(breakdown)
        rows = sorted(self._aggregator.stock_rows(active_only=True), key=lambda r: r.item_name)
        return [InventoryBreakdownRow(row=r, breakdowns=tuple(by_item[r.item_id])) for r in rows]
