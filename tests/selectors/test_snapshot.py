"""Single-day snapshot and previous/next navigation."""

from datetime import date
from decimal import Decimal

import pytest

from inventory_kernel.domain.dtos import UNCATEGORIZED
from inventory_kernel.exceptions import DateOutOfRangeError, SnapshotNavigationError

TODAY = date(2025, 11, 15)


class TestSnapshot:
    def test_future_date_rejected(self, ledger):
        with pytest.raises(DateOutOfRangeError):
            ledger.get_snapshot(date(2025, 11, 16))

    def test_today_allowed(self, ledger, widget):
        snapshot = ledger.get_snapshot(TODAY)
        assert snapshot.date == TODAY
        assert snapshot.earliest_date is None

    def test_includes_every_active_item(self, env, widget, gadget):
        env.collect(widget, 10, day=3)
        snapshot = env.ledger.get_snapshot(date(2025, 11, 3))
        assert snapshot.summary.total_items == 2
        assert snapshot.summary.items_with_activity == 1
        assert snapshot.summary.total_collected == Decimal("10")
        assert snapshot.earliest_date == date(2025, 11, 3)

    def test_categories_in_order(self, env):
        pantry = env.category("Pantry", order_index=2)
        hygiene = env.category("Hygiene", order_index=1)
        env.item("Rice", category_id=pantry)
        env.item("Soap", category_id=hygiene)
        env.item("Misc")
        snapshot = env.ledger.get_snapshot(TODAY)
        assert [g.category_name for g in snapshot.categories] == ["Hygiene", "Pantry", UNCATEGORIZED]


class TestNavigation:
    def test_previous_day(self, env, widget):
        env.collect(widget, 1, day=3)
        assert env.ledger.get_previous_day(date(2025, 11, 5)) == date(2025, 11, 4)
        assert env.ledger.get_previous_day(date(2025, 11, 4)) == date(2025, 11, 3)

    def test_previous_day_stops_at_earliest(self, env, widget):
        env.collect(widget, 1, day=3)
        with pytest.raises(SnapshotNavigationError) as info:
            env.ledger.get_previous_day(date(2025, 11, 3))
        assert info.value.direction == "previous"

    def test_previous_day_on_empty_store(self, ledger):
        with pytest.raises(SnapshotNavigationError):
            ledger.get_previous_day(TODAY)

    def test_next_day(self, ledger):
        assert ledger.get_next_day(date(2025, 11, 14)) == TODAY

    def test_next_day_stops_at_today(self, ledger):
        with pytest.raises(SnapshotNavigationError) as info:
            ledger.get_next_day(TODAY)
        assert info.value.direction == "next"
