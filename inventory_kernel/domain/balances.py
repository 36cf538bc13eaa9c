"""
Daily balances -- the opening/closing recurrence, as a pure function.

Responsibility:
    Given an item set, a day range, each item's opening balance at the first
    day and the per-day collected/withdrawn sums, produce one
    DailyBalanceRow per emitted item-day.  Also folds report rows into
    snapshot summaries and category groups.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  The selectors run
    the SQL aggregates and hand the figures to this module.

Invariants enforced:
    - closing(d) = opening(d) + collected(d) - withdrawn(d)
    - opening(d + 1) = closing(d)
    - Negative closings are kept as-is.
    - Output order: date ascending, then item name ascending.
"""

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Iterable, Mapping, Sequence
from uuid import UUID

from inventory_kernel.db.types import ZERO
from inventory_kernel.domain.dtos import (
    CategoryGroup,
    DailyBalanceRow,
    ItemRef,
    RowPolicy,
    UNCATEGORIZED,
    SnapshotSummary,
)

# (item_id, day) -> (collected, withdrawn)
Movements = Mapping[tuple[UUID, date], tuple[Decimal, Decimal]]


def _emits_rows(
    item: ItemRef,
    opening: Decimal,
    days: Sequence[date],
    movements: Movements,
    policy: RowPolicy,
) -> bool:
    if policy is RowPolicy.ALL:
        return True
    if opening != 0:
        return True
    return any((item.item_id, day) in movements for day in days)


def roll_daily_balances(
    items: Iterable[ItemRef],
    days: Sequence[date],
    openings: Mapping[UUID, Decimal],
    movements: Movements,
    policy: RowPolicy = RowPolicy.ACTIVE_OR_NONZERO,
) -> list[DailyBalanceRow]:
    """
    Run the daily recurrence for every item over ``days``.

    Args:
        items: Items to report.
        days: Consecutive days, ascending.
        openings: Opening balance at ``days[0]`` per item (missing = 0).
        movements: Per item-day collected and withdrawn sums (missing = 0).
        policy: Which items emit rows.

    Returns:
        Rows sorted by date, then item name.
    """
    rows: list[DailyBalanceRow] = []
    for item in items:
        opening = openings.get(item.item_id, ZERO)
        if not _emits_rows(item, opening, days, movements, policy):
            continue
        balance = opening
        for day in days:
            collected, withdrawn = movements.get((item.item_id, day), (ZERO, ZERO))
            closing = balance + collected - withdrawn
            rows.append(
                DailyBalanceRow(
                    date=day,
                    item_id=item.item_id,
                    item_name=item.name,
                    category_name=item.category_name,
                    opening_balance=balance,
                    daily_collected=collected,
                    daily_withdrawn=withdrawn,
                    closing_balance=closing,
                )
            )
            balance = closing
    rows.sort(key=lambda r: (r.date, r.item_name))
    return rows


def summarize_snapshot(rows: Sequence[DailyBalanceRow]) -> SnapshotSummary:
    """Totals over the rows of a single-day report."""
    total_collected = sum((r.daily_collected for r in rows), ZERO)
    total_withdrawn = sum((r.daily_withdrawn for r in rows), ZERO)
    return SnapshotSummary(
        total_items=len({r.item_id for r in rows}),
        total_collected=total_collected,
        total_withdrawn=total_withdrawn,
        net_change=total_collected - total_withdrawn,
        items_with_activity=len({r.item_id for r in rows if r.has_activity}),
    )


def group_by_category(
    rows: Iterable[DailyBalanceRow],
    category_order: Mapping[str, int] | None = None,
) -> tuple[CategoryGroup, ...]:
    """
    Group rows by category name.

    Categories sort by ``category_order`` (missing = 0), then name.
    ``Uncategorized`` always comes last.  Rows keep their input order
    within a group.
    """
    order = category_order or {}
    grouped: dict[str, list[DailyBalanceRow]] = defaultdict(list)
    for row in rows:
        grouped[row.category_name].append(row)

    def sort_key(name: str) -> tuple[int, int, str]:
        if name == UNCATEGORIZED:
            return (1, 0, name)
        return (0, order.get(name, 0), name)

    return tuple(
        CategoryGroup(category_name=name, rows=tuple(grouped[name]))
        for name in sorted(grouped, key=sort_key)
    )
