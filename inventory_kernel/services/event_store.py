"""
LedgerEventStore -- append-only writes of collection and withdrawal batches.

Responsibility:
    Validates batch lines against the catalog and persists headers and
    lines.  Exposes the individual steps (header insert, line insert,
    header delete) that the commit protocol sequences.

Architecture position:
    Kernel > Services.  Flushes inside the caller's transaction; never
    commits.

Invariants enforced:
    - A batch is validated as a whole before anything is written: one bad
      line rejects the batch.
    - Lines carry no date of their own; they inherit it from the header.
    - Stored events are never updated.  The only deletes are the
      compensating header delete and operator-driven duplicate removal.
    - append() leaves the stock aggregate either refreshed or DIRTY, never
      CLEAN and behind the lines.

Failure modes:
    - LedgerValidationError subclasses from validate().
    - SQLAlchemyError from the insert/delete steps (callers decide whether
      that becomes PartialWriteError, OrphanedHeaderError or StorageError).
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, Mapping
from uuid import UUID

from sqlalchemy import delete
from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import EventKind, ItemQuantity
from inventory_kernel.domain.validation import validate_batch
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.batch import BatchOrigin, Collection, batch_tables
from inventory_kernel.selectors.item_selector import ItemSelector
from inventory_kernel.services.aggregate_service import BalanceAggregator, line_deltas
from inventory_kernel.services.base import BaseService

logger = get_logger("services.event_store")


@dataclass(frozen=True)
class BatchHeader:
    """Header fields of a batch about to be written."""

    batch_id: UUID
    actor_id: UUID
    occurred_at: datetime
    event_date: date
    notes: str | None = None
    recipient: str | None = None
    reason: str | None = None
    origin: BatchOrigin = BatchOrigin.ENTRY
    import_source: str | None = None
    kit_template_id: UUID | None = None
    kits_created: int | None = None


class LedgerEventStore(BaseService[Collection]):
    """Write side of the ledger event store."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        aggregator: BalanceAggregator | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._items = ItemSelector(session)
        self._aggregator = aggregator or BalanceAggregator(session, self._clock)

    def validate(
        self,
        kind: EventKind,
        lines: Iterable[ItemQuantity],
        require_active: bool = True,
    ) -> tuple[ItemQuantity, ...]:
        """
        Validate a batch's lines against the catalog.

        Raises:
            EmptyBatchError, NonPositiveQuantityError, InvalidQuantityError,
            UnknownItemError, InactiveItemError, DuplicateItemInBatchError.
        """
        lines = list(lines)
        catalog = self._items.catalog_entries(line.item_id for line in lines)
        return validate_batch(kind, lines, catalog, require_active=require_active)

    def insert_header(self, kind: EventKind, header: BatchHeader):
        """Insert and flush a header row.  Returns the ORM header."""
        model = batch_tables(kind).header
        fields = {
            "id": header.batch_id,
            "actor_id": header.actor_id,
            "event_date": header.event_date,
            "occurred_at": header.occurred_at,
            "notes": header.notes,
            "origin": header.origin.value,
            "import_source": header.import_source,
            "recorded_at": self._clock.now_utc(),
        }
        if kind is EventKind.WITHDRAWN:
            fields["recipient"] = header.recipient
            fields["reason"] = header.reason
            fields["kit_template_id"] = header.kit_template_id
            fields["kits_created"] = header.kits_created
        row = model(**fields)
        self.session.add(row)
        self.session.flush()
        return row

    def insert_lines(
        self,
        kind: EventKind,
        batch_id: UUID,
        lines: Iterable[ItemQuantity],
        source_rows: Mapping[UUID, int] | None = None,
    ) -> int:
        """Insert all lines of a batch in one flush.  Returns the line count."""
        tables = batch_tables(kind)
        rows = [
            tables.line(
                **{
                    tables.header_fk.key: batch_id,
                    "item_id": line.item_id,
                    "quantity": line.quantity,
                    "source_row": (source_rows or {}).get(line.item_id),
                }
            )
            for line in lines
        ]
        self.session.add_all(rows)
        self.session.flush()
        return len(rows)

    def delete_header(self, kind: EventKind, header) -> None:
        """Delete a header (its lines cascade) and flush."""
        batch_id = header.id
        self.session.delete(header)
        self.session.flush()
        logger.info(
            "batch_header_deleted",
            extra={"kind": kind.value, "batch_id": batch_id},
        )

    def delete_headers(self, kind: EventKind, batch_ids: Iterable[UUID]) -> int:
        ids = list(batch_ids)
        if not ids:
            return 0
        header = batch_tables(kind).header
        result = self.session.execute(
            delete(header).where(header.id.in_(ids)).execution_options(
                synchronize_session=False
            )
        )
        return result.rowcount

    def delete_lines(self, kind: EventKind, line_ids: Iterable[UUID]) -> int:
        """Delete lines by id.  Used only by duplicate removal."""
        ids = list(line_ids)
        if not ids:
            return 0
        line = batch_tables(kind).line
        result = self.session.execute(
            delete(line).where(line.id.in_(ids)).execution_options(
                synchronize_session=False
            )
        )
        return result.rowcount

    def append(
        self,
        kind: EventKind,
        header: BatchHeader,
        lines: Iterable[ItemQuantity],
        source_rows: Mapping[UUID, int] | None = None,
        require_active: bool = True,
    ):
        """
        Validate and write a whole batch, then bring the stock cache up to
        date.

        The cache is refreshed with the batch's deltas.  When that is not
        possible (already stale, or the refresh fails) it is left DIRTY, so
        readers fall back to a full scan.  No compensating rollback happens
        here; BatchCommitter is the write path that provides one.

        Returns:
            The persisted ORM header.
        """
        validated = self.validate(kind, lines, require_active=require_active)
        row = self.insert_header(kind, header)
        count = self.insert_lines(kind, header.batch_id, validated, source_rows)
        refreshed = self._aggregator.refresh(line_deltas(kind, validated))
        logger.info(
            "batch_appended",
            extra={
                "kind": kind.value,
                "batch_id": header.batch_id,
                "line_count": count,
                "origin": header.origin.value,
                "aggregate_refreshed": refreshed,
            },
        )
        return row
