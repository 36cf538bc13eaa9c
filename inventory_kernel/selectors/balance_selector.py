"""
Module: inventory_kernel.selectors.balance_selector
Responsibility: Daily balance report -- opening, collected, withdrawn and
    closing per item per day over a date range.
Architecture position: Kernel > Selectors.  SQL does the aggregation; the
    recurrence itself is inventory_kernel.domain.balances.roll_daily_balances.

Invariants enforced:
    - Opening at start_date is one full-history aggregate (event_date <
      start_date), so every range is O(items x days) regardless of history.
    - closing(d) = opening(d) + collected(d) - withdrawn(d) and
      opening(d + 1) = closing(d) on every emitted row.

Failure modes:
    - InvalidDateRangeError if start_date > end_date or the range is longer
      than max_range_days.
    - UnknownItemError if item_id names no item.
"""

from datetime import date

from sqlalchemy.orm import Session

from inventory_kernel.domain.balances import roll_daily_balances
from inventory_kernel.domain.calendar import days_between, iter_days
from inventory_kernel.domain.dtos import DailyBalanceRow, RowPolicy
from inventory_kernel.exceptions import InvalidDateRangeError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.batch import CollectionLine
from inventory_kernel.selectors.base import BaseSelector
from inventory_kernel.selectors.event_selector import EventSelector
from inventory_kernel.selectors.item_selector import ItemSelector

logger = get_logger("selectors.balance")

DEFAULT_MAX_RANGE_DAYS = 366


class DailyBalanceSelector(BaseSelector[CollectionLine]):
    """Computes DailyBalanceRow reports from raw ledger events."""

    def __init__(
        self,
        session: Session,
        max_range_days: int = DEFAULT_MAX_RANGE_DAYS,
        default_policy: RowPolicy = RowPolicy.ACTIVE_OR_NONZERO,
    ):
        super().__init__(session)
        self.max_range_days = max_range_days
        self.default_policy = default_policy
        self._items = ItemSelector(session)
        self._events = EventSelector(session)

    def validate_range(self, start_date: date, end_date: date) -> None:
        if start_date > end_date:
            raise InvalidDateRangeError(
                start_date, end_date, "start date is after end date"
            )
        span = days_between(start_date, end_date)
        if span > self.max_range_days:
            raise InvalidDateRangeError(
                start_date,
                end_date,
                f"range of {span} days exceeds the maximum of {self.max_range_days}",
            )

    def daily_balances(
        self,
        start_date: date,
        end_date: date,
        item_id=None,
        row_policy: RowPolicy | None = None,
    ) -> list[DailyBalanceRow]:
        """
        Daily balance rows for [start_date, end_date].

        Args:
            start_date: First day, inclusive.
            end_date: Last day, inclusive.
            item_id: Restrict to one item (active or not); default is all
                active items.
            row_policy: Which items emit rows; defaults to the selector's
                policy (ACTIVE_OR_NONZERO unless configured otherwise).

        Returns:
            Rows sorted by date, then item name.
        """
        self.validate_range(start_date, end_date)
        policy = row_policy or self.default_policy

        items = self._items.item_refs(item_id=item_id, active_only=True)
        if not items:
            return []
        item_ids = [i.item_id for i in items]

        openings = self._events.opening_balances(start_date, item_ids)
        movements = self._events.daily_movements(start_date, end_date, item_ids)
        days = list(iter_days(start_date, end_date))

        rows = roll_daily_balances(items, days, openings, movements, policy)
        logger.debug(
            "daily_balances_computed",
            extra={
                "start_date": start_date,
                "end_date": end_date,
                "item_count": len(items),
                "row_count": len(rows),
                "row_policy": policy.value,
            },
        )
        return rows
