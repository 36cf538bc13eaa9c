"""
Module: inventory_kernel.models.aggregate
Responsibility: ORM persistence for the cached stock aggregate (a
    materialized view with explicit invalidation) and its state machine row.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - One StockAggregate row per item (UNIQUE item_id).
    - current_stock == total_collected - total_withdrawn on every row.
    - Exactly one AggregateState row per aggregate name.  Its status is the
      observable staleness signal: CLEAN rows agree with a full event scan;
      DIRTY or REBUILDING rows may not.

Audit relevance:
    Nothing here is a source of truth.  Both tables can be truncated and
    rebuilt from collection/withdrawal lines at any time.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import Base, UUIDString
from inventory_kernel.db.types import ZERO, QuantityType, UTCDateTime

STOCK_AGGREGATE = "stock"


class AggregateStatus(str, Enum):
    """Cache state machine: CLEAN -> DIRTY -> REBUILDING -> CLEAN."""

    CLEAN = "clean"
    DIRTY = "dirty"
    REBUILDING = "rebuilding"


class StockAggregate(Base):
    """Cached all-time totals for one item."""

    __tablename__ = "stock_aggregates"

    item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("items.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    total_collected: Mapped[Decimal] = mapped_column(
        QuantityType(), nullable=False, default=ZERO
    )

    total_withdrawn: Mapped[Decimal] = mapped_column(
        QuantityType(), nullable=False, default=ZERO
    )

    # Never clamped: negative stock is a surfaced data/process problem
    current_stock: Mapped[Decimal] = mapped_column(
        QuantityType(), nullable=False, default=ZERO
    )

    refreshed_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)


class AggregateState(Base):
    """State machine row for a cached aggregate."""

    __tablename__ = "aggregate_states"

    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)

    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=AggregateStatus.CLEAN.value,
    )

    # Bumped on every refresh or rebuild
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    last_refreshed_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True
    )

    last_rebuilt_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True
    )

    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    @property
    def is_clean(self) -> bool:
        return self.status == AggregateStatus.CLEAN.value
