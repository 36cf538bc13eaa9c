"""
Module: inventory_kernel.models.batch
Responsibility: ORM persistence for ledger batches -- collection and
    withdrawal headers and their line events.  These rows are the single
    source of truth for every stock figure in the system.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - quantity > 0 on every line (CHECK constraint, also validated in memory
      before any write).
    - At most one line per item within one header (UNIQUE(header, item)).
    - Deleting a header cascades to its lines (ON DELETE CASCADE plus ORM
      delete-orphan cascade).
    - Items cannot be deleted while referenced (ON DELETE RESTRICT).

Failure modes:
    - IntegrityError on a duplicate (header, item) pair or a non-positive
      quantity that slipped past in-memory validation.

Layout:
    collections        collection_lines
    withdrawals        withdrawal_lines
    The events table is partitioned logically by kind; each line carries its
    item reference, quantity and header reference, and inherits date and
    timestamp from the header.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, NamedTuple
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from inventory_kernel.db.base import Base, UUIDString
from inventory_kernel.db.types import QuantityType, UTCDateTime


class BatchOrigin(str, Enum):
    """Where a batch came from."""

    ENTRY = "entry"
    IMPORT = "import"


class Collection(Base):
    """Collection header: one donation drop-off with 1..N line events."""

    __tablename__ = "collections"

    __table_args__ = (
        Index("idx_collections_event_date", "event_date"),
        Index("idx_collections_occurred_at", "occurred_at"),
    )

    # Submitted-by actor
    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    # Calendar day in the canonical day timezone
    event_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Full instant (UTC); used for ordering and duplicate detection
    occurred_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    origin: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=BatchOrigin.ENTRY.value,
    )

    import_source: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # When the ledger accepted the batch
    recorded_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    lines: Mapped[list["CollectionLine"]] = relationship(
        back_populates="header",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="CollectionLine.source_row",
    )


class CollectionLine(Base):
    """One collected quantity of one item (a credit event)."""

    __tablename__ = "collection_lines"

    __table_args__ = (
        UniqueConstraint("collection_id", "item_id", name="uq_collection_line_item"),
        CheckConstraint("quantity > 0", name="ck_collection_line_quantity_positive"),
        Index("idx_collection_lines_item", "item_id"),
        Index("idx_collection_lines_collection", "collection_id"),
    )

    collection_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("collections.id", ondelete="CASCADE"),
        nullable=False,
    )

    item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("items.id", ondelete="RESTRICT"),
        nullable=False,
    )

    quantity: Mapped[Decimal] = mapped_column(QuantityType(), nullable=False)

    # Row number in an imported source file
    source_row: Mapped[int | None] = mapped_column(Integer, nullable=True)

    header: Mapped[Collection] = relationship(back_populates="lines")

    @property
    def batch_id(self) -> UUID:
        return self.collection_id


class Withdrawal(Base):
    """Withdrawal/distribution header: goods given out, 1..N line events."""

    __tablename__ = "withdrawals"

    __table_args__ = (
        Index("idx_withdrawals_event_date", "event_date"),
        Index("idx_withdrawals_occurred_at", "occurred_at"),
    )

    # Withdrawn-by actor
    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    event_date: Mapped[date] = mapped_column(Date, nullable=False)

    occurred_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    # Church name, location, or person
    recipient: Mapped[str | None] = mapped_column(Text, nullable=True)

    reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Set when the withdrawal was prefilled from a kit template
    kit_template_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("kit_templates.id", ondelete="RESTRICT"),
        nullable=True,
    )

    kits_created: Mapped[int | None] = mapped_column(Integer, nullable=True)

    origin: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=BatchOrigin.ENTRY.value,
    )

    import_source: Mapped[str | None] = mapped_column(String(255), nullable=True)

    recorded_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    lines: Mapped[list["WithdrawalLine"]] = relationship(
        back_populates="header",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="WithdrawalLine.source_row",
    )


class WithdrawalLine(Base):
    """One withdrawn quantity of one item (a debit event)."""

    __tablename__ = "withdrawal_lines"

    __table_args__ = (
        UniqueConstraint("withdrawal_id", "item_id", name="uq_withdrawal_line_item"),
        CheckConstraint("quantity > 0", name="ck_withdrawal_line_quantity_positive"),
        Index("idx_withdrawal_lines_item", "item_id"),
        Index("idx_withdrawal_lines_withdrawal", "withdrawal_id"),
    )

    withdrawal_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("withdrawals.id", ondelete="CASCADE"),
        nullable=False,
    )

    item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("items.id", ondelete="RESTRICT"),
        nullable=False,
    )

    quantity: Mapped[Decimal] = mapped_column(QuantityType(), nullable=False)

    source_row: Mapped[int | None] = mapped_column(Integer, nullable=True)

    header: Mapped[Withdrawal] = relationship(back_populates="lines")

    @property
    def batch_id(self) -> UUID:
        return self.withdrawal_id


class BatchTables(NamedTuple):
    """Header model, line model and the line's header foreign key column."""

    header: type
    line: type
    header_fk: Any


_BATCH_TABLES = {
    "collected": BatchTables(Collection, CollectionLine, CollectionLine.collection_id),
    "withdrawn": BatchTables(Withdrawal, WithdrawalLine, WithdrawalLine.withdrawal_id),
}


def batch_tables(kind: str) -> BatchTables:
    """Tables for an event kind ("collected" or "withdrawn")."""
    return _BATCH_TABLES[str(getattr(kind, "value", kind))]
