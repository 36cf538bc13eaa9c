"""Item name matching keys, day boundaries and the deterministic clock."""

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from inventory_kernel.domain.calendar import (
    days_between,
    iter_days,
    local_date,
    resolve_timezone,
)
from inventory_kernel.domain.clock import DeterministicClock
from inventory_kernel.domain.naming import normalize_item_name


class TestNormalizeItemName:
    @pytest.mark.parametrize(
        "raw",
        ["Water Bottles", "water  bottles", "Water Bottles (24 pk)", "  WATER BOTTLES  "],
    )
    def test_variants_share_key(self, raw):
        assert normalize_item_name(raw) == "water bottles"


class TestCalendar:
    def test_resolve_utc(self):
        assert resolve_timezone(None) is timezone.utc
        assert resolve_timezone("utc") is timezone.utc

    def test_resolve_iana(self):
        assert resolve_timezone("America/New_York") == ZoneInfo("America/New_York")

    def test_local_date_crosses_midnight(self):
        instant = datetime(2025, 11, 2, 3, 0, tzinfo=timezone.utc)
        assert local_date(instant, ZoneInfo("America/New_York")) == date(2025, 11, 1)
        assert local_date(instant, timezone.utc) == date(2025, 11, 2)

    def test_iter_days_inclusive(self):
        days = list(iter_days(date(2025, 10, 30), date(2025, 11, 2)))
        assert days[0] == date(2025, 10, 30)
        assert days[-1] == date(2025, 11, 2)
        assert len(days) == 4

    def test_days_between(self):
        assert days_between(date(2025, 11, 1), date(2025, 11, 1)) == 1
        assert days_between(date(2025, 11, 2), date(2025, 11, 1)) == 0


class TestDeterministicClock:
    def test_default_time(self):
        assert DeterministicClock().now() == datetime(2025, 11, 15, 12, 0, tzinfo=timezone.utc)

    def test_tick_and_advance(self):
        clock = DeterministicClock()
        first = clock.now()
        assert (clock.tick() - first).total_seconds() == 1
        clock.advance(59)
        assert (clock.now() - first).total_seconds() == 60

    def test_today_in_timezone(self):
        clock = DeterministicClock(datetime(2025, 11, 15, 2, 0, tzinfo=timezone.utc))
        assert clock.today() == date(2025, 11, 15)
        assert clock.today(ZoneInfo("America/Los_Angeles")) == date(2025, 11, 14)

    def test_set_time_resets_advance(self):
        clock = DeterministicClock()
        clock.advance(10)
        target = datetime(2025, 1, 1, tzinfo=timezone.utc)
        clock.set_time(target)
        assert clock.now() == target
