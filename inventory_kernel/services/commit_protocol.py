"""
BatchCommitter -- header-then-lines batch commit with compensating rollback.

Responsibility:
    Turns a submitted collection or withdrawal into persisted rows in two
    phases.  prepare_*() validates everything in memory and returns a
    PreparedBatch; commit() writes the header, then all lines in one
    batch, then refreshes the stock aggregate.

Architecture position:
    Kernel > Services.  Runs inside the caller's transaction (the service
    facade commits or rolls back).  Line inserts run in a SAVEPOINT so that
    a failed line insert can be undone without losing the session.

Invariants enforced:
    - State machine per write:
          PENDING -> HEADER_WRITTEN -> LINES_WRITTEN -> COMMITTED
          HEADER_WRITTEN -> ROLLED_BACK   (compensating delete)
    - A header never survives a failed write without its lines: a failed
      line insert deletes the header before PartialWriteError is raised.
    - A failed aggregate refresh never fails the write; the result carries
      a stale_aggregate warning instead.

Failure modes:
    - LedgerValidationError / InsufficientStockError from prepare_*(): no
      write has happened.
    - PartialWriteError: lines failed, header removed, ledger unchanged.
      Not retryable when the cause was an IntegrityError.
    - OrphanedHeaderError: lines failed and the header delete failed too.
      IntegrityService finds and repairs the orphan.
    - SQLAlchemyError from the header insert propagates unchanged (the
      facade maps it to StorageError).

Known race:
    prepare_withdrawal() and commit() are separate steps and the stock check
    takes no lock.  Two withdrawals prepared against the same stock both
    succeed and may drive it negative; negative stock is surfaced, never
    clamped.  See ItemLockRegistry for the opt-in serialization point.
"""

import time
from dataclasses import dataclass, field
from datetime import date, datetime, timezone, tzinfo
from decimal import Decimal
from typing import Any, Iterable, Mapping
from uuid import UUID, uuid4

from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from inventory_kernel.db.types import ensure_utc
from inventory_kernel.domain.calendar import local_date
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import (
    CommitResult,
    CommitStatus,
    EventKind,
    ItemQuantity,
)
from inventory_kernel.domain.validation import check_stock_sufficiency
from inventory_kernel.exceptions import OrphanedHeaderError, PartialWriteError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.batch import BatchOrigin
from inventory_kernel.selectors.item_selector import ItemSelector
from inventory_kernel.services.aggregate_service import BalanceAggregator, line_deltas
from inventory_kernel.services.event_store import BatchHeader, LedgerEventStore

logger = get_logger("services.commit_protocol")

STALE_AGGREGATE_WARNING = "stale_aggregate"


@dataclass
class PreparedBatch:
    """
    A validated batch waiting to be committed.

    ``status`` follows the write through the commit state machine; a
    prepared batch can be committed once.
    """

    kind: EventKind
    header: BatchHeader
    lines: tuple[ItemQuantity, ...]
    source_rows: Mapping[UUID, int] = field(default_factory=dict)
    status: CommitStatus = CommitStatus.PENDING

    @property
    def batch_id(self) -> UUID:
        return self.header.batch_id

    def deltas(self) -> dict[UUID, tuple[Decimal, Decimal]]:
        return line_deltas(self.kind, self.lines)


class BatchCommitter:
    """Two-phase writer for collection and withdrawal batches."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        day_tz: tzinfo = timezone.utc,
        store: LedgerEventStore | None = None,
        aggregator: BalanceAggregator | None = None,
    ):
        self.session = session
        self._clock = clock or SystemClock()
        self._day_tz = day_tz
        self._aggregator = aggregator or BalanceAggregator(session, self._clock)
        self._store = store or LedgerEventStore(session, self._clock, self._aggregator)
        self._items = ItemSelector(session)

    # ------------------------------------------------------------------
    # Phase 1: prepare
    # ------------------------------------------------------------------

    def _header(
        self,
        actor_id: UUID,
        occurred_at: datetime | None,
        event_date: date | None = None,
        **fields: Any,
    ) -> BatchHeader:
        instant = ensure_utc(occurred_at, self._day_tz) if occurred_at else self._clock.now_utc()
        return BatchHeader(
            batch_id=uuid4(),
            actor_id=actor_id,
            occurred_at=instant,
            event_date=event_date or local_date(instant, self._day_tz),
            **fields,
        )

    def prepare_collection(
        self,
        actor_id: UUID,
        items: Iterable[ItemQuantity | Mapping[str, Any]],
        notes: str | None = None,
        occurred_at: datetime | None = None,
    ) -> PreparedBatch:
        """
        Validate a collection in memory.

        Raises:
            LedgerValidationError subclasses; nothing is written.
        """
        lines = self._store.validate(
            EventKind.COLLECTED, (ItemQuantity.coerce(i) for i in items)
        )
        return PreparedBatch(
            kind=EventKind.COLLECTED,
            header=self._header(actor_id, occurred_at, notes=notes),
            lines=lines,
        )

    def prepare_withdrawal(
        self,
        actor_id: UUID,
        items: Iterable[ItemQuantity | Mapping[str, Any]],
        recipient: str | None = None,
        reason: str | None = None,
        notes: str | None = None,
        occurred_at: datetime | None = None,
        kit_template_id: UUID | None = None,
        kits_created: int | None = None,
    ) -> PreparedBatch:
        """
        Validate a withdrawal in memory, including stock sufficiency.

        Raises:
            LedgerValidationError subclasses, InsufficientStockError;
            nothing is written.
        """
        lines = self._store.validate(
            EventKind.WITHDRAWN, (ItemQuantity.coerce(i) for i in items)
        )
        item_ids = [line.item_id for line in lines]
        available = self._aggregator.current_stock_many(item_ids)
        check_stock_sufficiency(lines, available, self._items.catalog_entries(item_ids))
        return PreparedBatch(
            kind=EventKind.WITHDRAWN,
            header=self._header(
                actor_id,
                occurred_at,
                notes=notes,
                recipient=recipient,
                reason=reason,
                kit_template_id=kit_template_id,
                kits_created=kits_created,
            ),
            lines=lines,
        )

    def prepare_import(
        self,
        kind: EventKind,
        actor_id: UUID,
        lines: Iterable[ItemQuantity],
        occurred_at: datetime,
        import_source: str,
        event_date: date | None = None,
        source_rows: Mapping[UUID, int] | None = None,
        notes: str | None = None,
        recipient: str | None = None,
        reason: str | None = None,
    ) -> PreparedBatch:
        """
        Validate a historical batch.  No stock check applies, and inactive
        items are accepted.
        """
        validated = self._store.validate(kind, lines, require_active=False)
        fields: dict[str, Any] = {
            "notes": notes,
            "origin": BatchOrigin.IMPORT,
            "import_source": import_source,
        }
        if kind is EventKind.WITHDRAWN:
            fields.update(recipient=recipient, reason=reason)
        return PreparedBatch(
            kind=kind,
            header=self._header(actor_id, occurred_at, event_date, **fields),
            lines=validated,
            source_rows=dict(source_rows or {}),
        )

    # ------------------------------------------------------------------
    # Phase 2: commit
    # ------------------------------------------------------------------

    def _transition(self, prepared: PreparedBatch, status: CommitStatus) -> None:
        logger.debug(
            "commit_state_changed",
            extra={
                "batch_id": prepared.batch_id,
                "from_status": prepared.status.value,
                "to_status": status.value,
            },
        )
        prepared.status = status

    def _compensate(self, prepared: PreparedBatch, header_row, cause: Exception) -> None:
        """Delete the header of a failed write and raise the matching error."""
        kind_name = prepared.kind.batch_name
        try:
            self._store.delete_header(prepared.kind, header_row)
        except SQLAlchemyError as rollback_exc:
            logger.critical(
                "batch_header_orphaned",
                extra={
                    "kind": prepared.kind.value,
                    "batch_id": prepared.batch_id,
                    "cause": str(cause),
                    "rollback_error": str(rollback_exc),
                },
            )
            raise OrphanedHeaderError(
                kind_name, prepared.batch_id, str(cause), str(rollback_exc)
            ) from cause

        self._transition(prepared, CommitStatus.ROLLED_BACK)
        logger.warning(
            "batch_rolled_back",
            extra={
                "kind": prepared.kind.value,
                "batch_id": prepared.batch_id,
                "cause": str(cause),
            },
        )
        retryable = isinstance(cause, DBAPIError) and not isinstance(cause, IntegrityError)
        raise PartialWriteError(
            kind_name, prepared.batch_id, str(cause), retryable=retryable
        ) from cause

    def commit(self, prepared: PreparedBatch, refresh_aggregate: bool = True) -> CommitResult:
        """
        Write a prepared batch: header, then lines, then aggregate refresh.

        Args:
            prepared: Result of a prepare_*() call, still PENDING.
            refresh_aggregate: False when the caller rebuilds the aggregate
                afterwards (historical imports).

        Raises:
            ValueError: If the batch was already committed or rolled back.
            PartialWriteError, OrphanedHeaderError: see module docstring.
        """
        if prepared.status is not CommitStatus.PENDING:
            raise ValueError(
                f"Batch {prepared.batch_id} is {prepared.status.value}, not pending"
            )
        t0 = time.monotonic()

        header_row = self._store.insert_header(prepared.kind, prepared.header)
        self._transition(prepared, CommitStatus.HEADER_WRITTEN)

        try:
            with self.session.begin_nested():
                self._store.insert_lines(
                    prepared.kind, prepared.batch_id, prepared.lines, prepared.source_rows
                )
        except SQLAlchemyError as exc:
            logger.error(
                "batch_lines_failed",
                extra={"kind": prepared.kind.value, "batch_id": prepared.batch_id},
                exc_info=True,
            )
            self._compensate(prepared, header_row, exc)
        self._transition(prepared, CommitStatus.LINES_WRITTEN)

        refreshed = True
        warnings: tuple[str, ...] = ()
        if refresh_aggregate:
            refreshed = self._aggregator.refresh(prepared.deltas())
            if not refreshed:
                warnings = (STALE_AGGREGATE_WARNING,)
        self._transition(prepared, CommitStatus.COMMITTED)

        logger.info(
            f"{prepared.kind.batch_name}_committed",
            extra={
                "batch_id": prepared.batch_id,
                "line_count": len(prepared.lines),
                "origin": prepared.header.origin.value,
                "aggregate_refreshed": refreshed,
                "duration_ms": round((time.monotonic() - t0) * 1000, 2),
            },
        )
        return CommitResult(
            kind=prepared.kind,
            batch_id=prepared.batch_id,
            status=prepared.status,
            line_count=len(prepared.lines),
            aggregate_refreshed=refreshed,
            warnings=warnings,
        )
