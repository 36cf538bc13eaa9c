"""
Duplicate key and grouping rules for historical imports.

Key = (kind, item, instant in UTC).  Equality is exact.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

from inventory_kernel.domain.dedup import (
    dedup_key,
    find_duplicate_groups,
    group_into_batches,
    partition_candidates,
)
from inventory_kernel.domain.dtos import CandidateEvent, EventKind, StoredLine

WIDGET = uuid4()
GADGET = uuid4()
T0 = datetime(2025, 11, 1, 10, 0, tzinfo=timezone.utc)


def candidate(item_id=WIDGET, occurred_at=T0, kind=EventKind.COLLECTED, row=None):
    return CandidateEvent(
        kind=kind, occurred_at=occurred_at, quantity=Decimal("1"), item_id=item_id, source_row=row
    )


def stored(recorded_at, item_id=WIDGET, row=None):
    return StoredLine(
        kind=EventKind.COLLECTED,
        line_id=uuid4(),
        batch_id=uuid4(),
        item_id=item_id,
        quantity=Decimal("5"),
        occurred_at=T0,
        recorded_at=recorded_at,
        source_row=row,
    )


class TestDedupKey:
    def test_same_instant_other_offset_is_same_key(self):
        plus_one = timezone(timedelta(hours=1))
        local = T0.astimezone(plus_one)
        assert dedup_key(EventKind.COLLECTED, WIDGET, local) == dedup_key(
            EventKind.COLLECTED, WIDGET, T0
        )

    def test_naive_instant_read_in_day_timezone(self):
        minus_five = timezone(timedelta(hours=-5))
        naive = datetime(2025, 11, 1, 5, 0)
        assert dedup_key(EventKind.COLLECTED, WIDGET, naive, minus_five)[2] == T0

    def test_kind_is_part_of_key(self):
        assert dedup_key(EventKind.COLLECTED, WIDGET, T0) != dedup_key(
            EventKind.WITHDRAWN, WIDGET, T0
        )


class TestPartitionCandidates:
    def test_existing_key_is_duplicate(self):
        existing = {dedup_key(EventKind.COLLECTED, WIDGET, T0): "collection line x"}
        accepted, duplicates = partition_candidates([candidate()], existing)
        assert accepted == []
        assert duplicates[0].existing == "collection line x"

    def test_repeat_within_one_call(self):
        accepted, duplicates = partition_candidates([candidate(row=1), candidate(row=2)], {})
        assert len(accepted) == 1
        assert duplicates[0].existing == "candidate row 1"

    def test_one_second_apart_is_not_duplicate(self):
        """Known limitation: near-identical timestamps are not merged."""
        accepted, duplicates = partition_candidates(
            [candidate(), candidate(occurred_at=T0 + timedelta(seconds=1))], {}
        )
        assert len(accepted) == 2
        assert duplicates == []


class TestGroupIntoBatches:
    def test_one_header_per_kind_and_instant(self):
        groups = group_into_batches(
            [
                candidate(WIDGET),
                candidate(GADGET),
                candidate(WIDGET, kind=EventKind.WITHDRAWN),
                candidate(WIDGET, occurred_at=T0 - timedelta(days=1)),
            ]
        )
        assert [(kind, instant, len(members)) for kind, instant, members in groups] == [
            (EventKind.COLLECTED, T0 - timedelta(days=1), 1),
            (EventKind.COLLECTED, T0, 2),
            (EventKind.WITHDRAWN, T0, 1),
        ]

    def test_repeated_item_opens_second_header(self):
        groups = group_into_batches([candidate(WIDGET), candidate(WIDGET)])
        assert len(groups) == 2
        assert all(len(members) == 1 for _, _, members in groups)


class TestFindDuplicateGroups:
    def test_survivor_is_earliest_recorded(self):
        early = stored(T0)
        late = stored(T0 + timedelta(minutes=5))
        groups = find_duplicate_groups([late, early])
        assert len(groups) == 1
        assert groups[0].keep == early
        assert groups[0].duplicates == (late,)
        assert groups[0].excess_quantity == Decimal("5")

    def test_source_row_breaks_ties(self):
        second = stored(T0, row=2)
        first = stored(T0, row=1)
        groups = find_duplicate_groups([second, first])
        assert groups[0].keep == first

    def test_distinct_items_are_not_grouped(self):
        assert find_duplicate_groups([stored(T0), stored(T0, item_id=GADGET)]) == ()
