"""
Module: inventory_kernel.selectors.snapshot_selector
Responsibility: Point-in-time review of one day -- every item's opening,
    movements and closing on that day, grouped by category, with a summary.
    Also answers previous/next day navigation.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - snapshot(day) rows are exactly daily_balances(day, day, ALL).
    - "Today" is the caller's clock in the day timezone; nothing after it
      can be viewed.

Failure modes:
    - DateOutOfRangeError for a day after today.
    - SnapshotNavigationError when previous_day() would go before the
      earliest event (or the store is empty), or next_day() past today.
"""

from datetime import date, timedelta, timezone, tzinfo

from sqlalchemy.orm import Session

from inventory_kernel.domain.balances import group_by_category, summarize_snapshot
from inventory_kernel.domain.clock import Clock
from inventory_kernel.domain.dtos import RowPolicy, Snapshot
from inventory_kernel.exceptions import DateOutOfRangeError, SnapshotNavigationError
from inventory_kernel.models.batch import CollectionLine
from inventory_kernel.selectors.balance_selector import DailyBalanceSelector
from inventory_kernel.selectors.base import BaseSelector
from inventory_kernel.selectors.event_selector import EventSelector
from inventory_kernel.selectors.item_selector import ItemSelector

_ONE_DAY = timedelta(days=1)


class SnapshotSelector(BaseSelector[CollectionLine]):
    """Single-day snapshot and day navigation."""

    def __init__(self, session: Session, clock: Clock, day_tz: tzinfo = timezone.utc):
        super().__init__(session)
        self.clock = clock
        self.day_tz = day_tz
        self._balances = DailyBalanceSelector(session)
        self._events = EventSelector(session)
        self._items = ItemSelector(session)

    def today(self) -> date:
        return self.clock.today(self.day_tz)

    def snapshot(self, day: date, item_id=None) -> Snapshot:
        today = self.today()
        if day > today:
            raise DateOutOfRangeError(day, f"cannot view future dates (today is {today})")

        rows = self._balances.daily_balances(day, day, item_id, row_policy=RowPolicy.ALL)
        categories = group_by_category(rows, self._items.category_order())
        return Snapshot(
            date=day,
            rows=tuple(rows),
            categories=categories,
            summary=summarize_snapshot(rows),
            earliest_date=self._events.earliest_event_date(),
        )

    def previous_day(self, day: date) -> date:
        earliest = self._events.earliest_event_date()
        if earliest is None:
            raise SnapshotNavigationError(day, "previous", "no events recorded")
        target = day - _ONE_DAY
        if target < earliest:
            raise SnapshotNavigationError(
                day, "previous", f"earliest available date is {earliest}"
            )
        return target

    def next_day(self, day: date) -> date:
        target = day + _ONE_DAY
        today = self.today()
        if target > today:
            raise SnapshotNavigationError(day, "next", f"cannot view future dates (today is {today})")
        return target
