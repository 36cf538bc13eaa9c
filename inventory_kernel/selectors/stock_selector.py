"""
Module: inventory_kernel.selectors.stock_selector
Responsibility: All-time stock totals per item, computed two ways: straight
    from ledger lines (the reference) and from the cached aggregate table.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - full_scan() is derived exclusively from collection and withdrawal
      lines and is the yardstick every cache consistency check uses.
    - stock = collected - withdrawn, never clamped at zero.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from inventory_kernel.db.types import ZERO
from inventory_kernel.domain.dtos import UNCATEGORIZED, EventKind, StockRow
from inventory_kernel.models.aggregate import (
    STOCK_AGGREGATE,
    AggregateState,
    StockAggregate,
)
from inventory_kernel.models.batch import batch_tables
from inventory_kernel.models.item import Item
from inventory_kernel.selectors.base import BaseSelector


def _row(item: Item, collected: Decimal | None, withdrawn: Decimal | None) -> StockRow:
    return StockRow(
        item_id=item.id,
        item_name=item.name,
        category_name=item.category.name if item.category is not None else UNCATEGORIZED,
        unit_type=item.unit_type,
        low_stock_threshold=item.low_stock_threshold,
        is_active=item.is_active,
        collected=collected if collected is not None else ZERO,
        withdrawn=withdrawn if withdrawn is not None else ZERO,
    )


class StockSelector(BaseSelector[StockAggregate]):
    """
    Selector for per-item stock totals.

    Non-goals:
        Does not decide whether the cache may be trusted; that is the
        BalanceAggregator's job (it consults state()).
    """

    def __init__(self, session: Session):
        super().__init__(session)

    def _totals_subquery(self, kind: EventKind):
        line = batch_tables(kind).line
        return (
            select(line.item_id.label("item_id"), func.sum(line.quantity).label("total"))
            .group_by(line.item_id)
            .subquery()
        )

    def full_scan(self, item_id: UUID | None = None, active_only: bool = False) -> list[StockRow]:
        """
        Totals per item computed from every ledger line.

        Items without events report zero.  Ordered by item name.
        """
        collected = self._totals_subquery(EventKind.COLLECTED)
        withdrawn = self._totals_subquery(EventKind.WITHDRAWN)
        stmt = (
            select(Item, collected.c.total, withdrawn.c.total)
            .outerjoin(collected, collected.c.item_id == Item.id)
            .outerjoin(withdrawn, withdrawn.c.item_id == Item.id)
            .order_by(Item.name)
        )
        if item_id is not None:
            stmt = stmt.where(Item.id == item_id)
        if active_only:
            stmt = stmt.where(Item.is_active.is_(True))
        return [_row(item, c, w) for item, c, w in self.session.execute(stmt)]

    def cached(self, item_id: UUID | None = None, active_only: bool = False) -> list[StockRow]:
        """
        Totals per item from the aggregate table.

        Items with no aggregate row report zero (they have no events).
        """
        stmt = (
            select(Item, StockAggregate.total_collected, StockAggregate.total_withdrawn)
            .outerjoin(StockAggregate, StockAggregate.item_id == Item.id)
            .order_by(Item.name)
        )
        if item_id is not None:
            stmt = stmt.where(Item.id == item_id)
        if active_only:
            stmt = stmt.where(Item.is_active.is_(True))
        return [_row(item, c, w) for item, c, w in self.session.execute(stmt)]

    def state(self) -> AggregateState | None:
        """The stock aggregate's state row, if it was ever initialized."""
        stmt = select(AggregateState).where(AggregateState.name == STOCK_AGGREGATE)
        return self.session.execute(stmt).scalar_one_or_none()
