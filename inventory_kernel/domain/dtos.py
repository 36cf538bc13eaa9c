"""
Data Transfer Objects -- the values that cross the kernel boundary.

Responsibility:
    Frozen dataclasses for ledger events, report rows, commit results and
    import results.  Selectors and services return these, never ORM rows.

Architecture position:
    Kernel > Domain -- pure, no I/O, no ORM imports.

Invariants enforced:
    - DailyBalanceRow.closing == opening + collected - withdrawn.
    - Quantities are Decimal everywhere.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping
from uuid import UUID

from inventory_kernel.db.types import ZERO, to_quantity
from inventory_kernel.exceptions import InvalidQuantityError, UnknownItemError

UNCATEGORIZED = "Uncategorized"


class EventKind(str, Enum):
    """The two ledger event kinds: credit (collected) and debit (withdrawn)."""

    COLLECTED = "collected"
    WITHDRAWN = "withdrawn"

    @property
    def batch_name(self) -> str:
        return "collection" if self is EventKind.COLLECTED else "withdrawal"

    @property
    def sign(self) -> int:
        return 1 if self is EventKind.COLLECTED else -1


class RowPolicy(str, Enum):
    """
    Which item-days a daily balance report emits.

    ACTIVE_OR_NONZERO: every day for items with an event inside the range or
        a nonzero opening balance; nothing for the rest.
    ALL: every day for every item in the requested set.
    """

    ACTIVE_OR_NONZERO = "active_or_nonzero"
    ALL = "all"


@dataclass(frozen=True)
class ItemQuantity:
    """One requested line: an item and a quantity."""

    item_id: UUID
    quantity: Decimal

    @classmethod
    def coerce(cls, value: "ItemQuantity | Mapping[str, Any]") -> "ItemQuantity":
        """
        Accept an ItemQuantity or a mapping with item_id/quantity keys.

        Raises:
            UnknownItemError: item_id missing or not a UUID.
            InvalidQuantityError: quantity missing, non-numeric or non-finite.
        """
        if isinstance(value, ItemQuantity):
            return value
        raw_id = value.get("item_id")
        if isinstance(raw_id, UUID):
            item_id = raw_id
        else:
            try:
                item_id = UUID(str(raw_id))
            except ValueError as exc:
                raise UnknownItemError(str(raw_id)) from exc
        raw_quantity = value.get("quantity")
        try:
            quantity = to_quantity(raw_quantity)
        except ValueError as exc:
            raise InvalidQuantityError(item_id, raw_quantity) from exc
        return cls(item_id=item_id, quantity=quantity)


@dataclass(frozen=True)
class CatalogEntry:
    """The slice of an Item that validation needs."""

    item_id: UUID
    name: str
    is_active: bool


@dataclass(frozen=True)
class LedgerEvent:
    """A single collected or withdrawn line, as read from the store."""

    kind: EventKind
    event_id: UUID
    batch_id: UUID
    item_id: UUID
    quantity: Decimal
    event_date: date
    occurred_at: datetime
    actor_id: UUID
    notes: str | None = None
    recipient: str | None = None
    reason: str | None = None

    @property
    def signed_quantity(self) -> Decimal:
        return self.quantity * self.kind.sign


@dataclass(frozen=True)
class ItemRef:
    """Item identity plus the presentation fields reports need."""

    item_id: UUID
    name: str
    category_name: str
    category_order: int | None = None


@dataclass(frozen=True)
class DailyBalanceRow:
    """Opening, movements and closing for one item on one day."""

    date: date
    item_id: UUID
    item_name: str
    category_name: str
    opening_balance: Decimal
    daily_collected: Decimal
    daily_withdrawn: Decimal
    closing_balance: Decimal

    @property
    def net_change(self) -> Decimal:
        return self.daily_collected - self.daily_withdrawn

    @property
    def has_activity(self) -> bool:
        return self.daily_collected > 0 or self.daily_withdrawn > 0

    @property
    def is_negative(self) -> bool:
        """Negative closing stock is flagged, never clamped."""
        return self.closing_balance < 0


@dataclass(frozen=True)
class SnapshotSummary:
    total_items: int
    total_collected: Decimal
    total_withdrawn: Decimal
    net_change: Decimal
    items_with_activity: int


@dataclass(frozen=True)
class CategoryGroup:
    category_name: str
    rows: tuple[DailyBalanceRow, ...]

    @property
    def total_closing(self) -> Decimal:
        return sum((r.closing_balance for r in self.rows), ZERO)


@dataclass(frozen=True)
class Snapshot:
    """Point-in-time review of a single day."""

    date: date
    rows: tuple[DailyBalanceRow, ...]
    categories: tuple[CategoryGroup, ...]
    summary: SnapshotSummary
    earliest_date: date | None = None


@dataclass(frozen=True)
class StockRow:
    """All-time totals for one item."""

    item_id: UUID
    item_name: str
    category_name: str
    unit_type: str
    low_stock_threshold: Decimal
    is_active: bool
    collected: Decimal
    withdrawn: Decimal

    @property
    def stock(self) -> Decimal:
        return self.collected - self.withdrawn

    @property
    def is_negative(self) -> bool:
        return self.stock < 0

    @property
    def is_low(self) -> bool:
        return self.stock <= self.low_stock_threshold


@dataclass(frozen=True)
class StockReport:
    """Current stock rows plus the cache state they were served from."""

    rows: tuple[StockRow, ...]
    aggregate_status: str
    aggregate_version: int

    @property
    def is_stale(self) -> bool:
        return self.aggregate_status != "clean"


class CommitStatus(str, Enum):
    """Per-write state machine of the commit protocol."""

    PENDING = "pending"
    HEADER_WRITTEN = "header_written"
    LINES_WRITTEN = "lines_written"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


@dataclass(frozen=True)
class CommitResult:
    """Result of a successful batch commit."""

    kind: EventKind
    batch_id: UUID
    status: CommitStatus
    line_count: int
    aggregate_refreshed: bool = True
    warnings: tuple[str, ...] = ()

    @property
    def id(self) -> UUID:
        return self.batch_id

    @property
    def stale_aggregate(self) -> bool:
        return not self.aggregate_refreshed


@dataclass(frozen=True)
class RebuildResult:
    item_count: int
    version: int
    rebuilt_at: datetime


@dataclass(frozen=True)
class CandidateEvent:
    """
    An externally sourced historical event offered for import.

    ``item_id`` or ``item_name`` must identify the item; the import service
    resolves names against the catalog.
    """

    kind: EventKind
    occurred_at: datetime
    quantity: Decimal
    item_id: UUID | None = None
    item_name: str | None = None
    actor_id: UUID | None = None
    event_date: date | None = None
    notes: str | None = None
    recipient: str | None = None
    reason: str | None = None
    source_row: int | None = None


@dataclass(frozen=True)
class ImportIssue:
    """One rejected candidate (invalid or duplicate) with its reason."""

    source_row: int | None
    code: str
    message: str


@dataclass(frozen=True)
class ImportResult:
    source: str
    imported: int
    skipped_duplicate: int
    skipped_invalid: int
    errors: tuple[ImportIssue, ...] = ()
    batch_ids: tuple[UUID, ...] = ()

    @property
    def total(self) -> int:
        return self.imported + self.skipped_duplicate + self.skipped_invalid


@dataclass(frozen=True)
class StoredLine:
    """A stored line as seen by the duplicate scanner."""

    kind: EventKind
    line_id: UUID
    batch_id: UUID
    item_id: UUID
    quantity: Decimal
    occurred_at: datetime
    recorded_at: datetime
    source_row: int | None = None


@dataclass(frozen=True)
class DuplicateGroup:
    """Lines sharing one duplicate key; ``keep`` survives, ``duplicates`` go."""

    kind: EventKind
    item_id: UUID
    occurred_at: datetime
    keep: StoredLine
    duplicates: tuple[StoredLine, ...]

    @property
    def excess_quantity(self) -> Decimal:
        return sum((d.quantity for d in self.duplicates), ZERO)


@dataclass(frozen=True)
class DuplicateRemovalResult:
    dry_run: bool
    groups: tuple[DuplicateGroup, ...]
    lines_removed: int
    headers_removed: int
    rebuilt: bool

    @property
    def duplicate_count(self) -> int:
        return sum(len(g.duplicates) for g in self.groups)


class TotalMeasure(str, Enum):
    """Which all-time figure an expected total refers to."""

    COLLECTED = "collected"
    WITHDRAWN = "withdrawn"
    STOCK = "stock"


@dataclass(frozen=True)
class ExpectedTotal:
    item_id: UUID
    expected: Decimal
    measure: TotalMeasure = TotalMeasure.COLLECTED


@dataclass(frozen=True)
class ReconciliationDelta:
    item_id: UUID
    item_name: str
    measure: TotalMeasure
    expected: Decimal
    actual: Decimal

    @property
    def delta(self) -> Decimal:
        return self.actual - self.expected

    @property
    def matches(self) -> bool:
        return self.delta == 0


@dataclass(frozen=True)
class IntegrityIssue:
    kind: EventKind
    batch_id: UUID
    event_date: date
    origin: str
    problem: str


@dataclass(frozen=True)
class IntegrityReport:
    issues: tuple[IntegrityIssue, ...]
    repaired: int = 0

    @property
    def is_clean(self) -> bool:
        return not self.issues


@dataclass(frozen=True)
class BatchView:
    """A header with its lines, as returned by batch lookups."""

    kind: EventKind
    batch_id: UUID
    actor_id: UUID
    event_date: date
    occurred_at: datetime
    origin: str
    notes: str | None
    lines: tuple[ItemQuantity, ...]
    recipient: str | None = None
    reason: str | None = None
    import_source: str | None = None
    kit_template_id: UUID | None = None
    kits_created: int | None = None

    @property
    def total_quantity(self) -> Decimal:
        return sum((line.quantity for line in self.lines), ZERO)


@dataclass(frozen=True)
class ActorActivity:
    """What one actor recorded since a given day, newest batches first."""

    actor_id: UUID
    since: date
    recent_collections: tuple[BatchView, ...]
    recent_withdrawals: tuple[BatchView, ...]

    @property
    def collection_count(self) -> int:
        return len(self.recent_collections)

    @property
    def withdrawal_count(self) -> int:
        return len(self.recent_withdrawals)

    @property
    def items_collected(self) -> Decimal:
        return sum((b.total_quantity for b in self.recent_collections), ZERO)

    @property
    def items_withdrawn(self) -> Decimal:
        return sum((b.total_quantity for b in self.recent_withdrawals), ZERO)


@dataclass(frozen=True)
class DestinationTotal:
    """Withdrawn quantity of one item for one (recipient, reason) pair."""

    item_id: UUID
    recipient: str | None
    reason: str | None
    quantity: Decimal
