"""
inventory_services.inventory_service -- the ledger's external interface.

Responsibility:
    InventoryLedgerService is what callers (web handlers, import jobs,
    operator scripts) talk to.  It wires the kernel services for one
    session, owns the transaction boundary of every call, binds the logging
    context, and maps storage failures to StorageError.

Architecture position:
    Services -- orchestration over the kernel.  Reads settings from
    inventory_config and passes plain values (timezone, limits) down.

Invariants enforced:
    - Every call runs to completion or failure in the caller's thread and
      owns one transaction: commit on success, rollback on failure
      (auto_commit=True).  With auto_commit=False the caller decides.
    - Business errors propagate unchanged; SQLAlchemy errors become
      StorageError (retryable).
    - The aggregate refresh after a submit never fails the submit; the
      CommitResult carries a stale_aggregate warning instead.
    - With ledger.serialize_withdrawals, a withdrawal holds per-item locks
      from its stock check until its transaction commits.

Usage:
    service = InventoryLedgerService(session, clock=SystemClock())
    result = service.submit_collection(actor_id, [{"item_id": w, "quantity": 100}])
    report = service.get_current_stock()
"""

from __future__ import annotations

import time
from contextlib import nullcontext
from datetime import date, datetime, timedelta
from typing import Any, Callable, Iterable, Mapping, TypeVar
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from inventory_config import InventorySettings
from inventory_kernel.domain.calendar import resolve_timezone
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import (
    ActorActivity,
    BatchView,
    CandidateEvent,
    CommitResult,
    DailyBalanceRow,
    DuplicateGroup,
    DuplicateRemovalResult,
    EventKind,
    ExpectedTotal,
    ImportResult,
    IntegrityReport,
    ItemQuantity,
    LedgerEvent,
    RebuildResult,
    ReconciliationDelta,
    RowPolicy,
    Snapshot,
    StockReport,
)
from inventory_kernel.domain.validation import expand_kit
from inventory_kernel.exceptions import StorageError
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.selectors.balance_selector import DailyBalanceSelector
from inventory_kernel.selectors.event_selector import EventSelector
from inventory_kernel.selectors.kit_selector import KitSelector, KitTemplateView
from inventory_kernel.selectors.snapshot_selector import SnapshotSelector
from inventory_kernel.services.aggregate_service import BalanceAggregator
from inventory_kernel.services.commit_protocol import BatchCommitter
from inventory_kernel.services.event_store import LedgerEventStore
from inventory_kernel.services.integrity_service import IntegrityService
from inventory_kernel.services.locks import ItemLockRegistry
from inventory_kernel.services.reconciliation_service import ReconciliationService

logger = get_logger("services.inventory")

T = TypeVar("T")

# Shared by every service instance in the process so that locks serialize
# withdrawals across sessions and threads.
_PROCESS_LOCKS = ItemLockRegistry()


class InventoryLedgerService:
    """
    Facade over the inventory kernel.

    Contract:
        Receives a Session and optional Clock / settings; constructs every
        kernel service once, sharing the session, clock and day timezone.

    Non-goals:
        - Authentication, authorization and presentation.
        - Catalog and kit administration (CatalogService, KitService).
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: InventorySettings | None = None,
        auto_commit: bool = True,
        lock_registry: ItemLockRegistry | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._settings = settings or InventorySettings()
        self._auto_commit = auto_commit
        self._day_tz = resolve_timezone(self._settings.ledger.day_timezone)
        self._locks = lock_registry or _PROCESS_LOCKS

        self.aggregator = BalanceAggregator(session, self._clock)
        self.store = LedgerEventStore(session, self._clock, self.aggregator)
        self.committer = BatchCommitter(
            session,
            self._clock,
            self._day_tz,
            store=self.store,
            aggregator=self.aggregator,
        )
        self.reconciliation = ReconciliationService(
            session,
            self._clock,
            self._day_tz,
            import_actor_id=UUID(self._settings.ledger.import_actor_id),
        )
        self.integrity = IntegrityService(session)
        self.events = EventSelector(session)
        self.kits = KitSelector(session)
        self.balances = DailyBalanceSelector(
            session,
            max_range_days=self._settings.reports.max_range_days,
            default_policy=RowPolicy(self._settings.reports.row_policy),
        )
        self.snapshots = SnapshotSelector(session, self._clock, self._day_tz)

    @property
    def session(self) -> Session:
        return self._session

    @property
    def settings(self) -> InventorySettings:
        return self._settings

    # ------------------------------------------------------------------
    # Transaction and logging envelope
    # ------------------------------------------------------------------

    def _write(self, operation: str, fn: Callable[[], T], actor_id: UUID | None = None) -> T:
        with LogContext.bind(
            correlation_id=str(uuid4()),
            actor_id=str(actor_id) if actor_id else None,
        ):
            t0 = time.monotonic()
            try:
                result = fn()
                if self._auto_commit:
                    self._session.commit()
            except SQLAlchemyError as exc:
                if self._auto_commit:
                    self._session.rollback()
                logger.error(
                    f"{operation}_failed",
                    extra={"duration_ms": round((time.monotonic() - t0) * 1000, 2)},
                    exc_info=True,
                )
                raise StorageError(operation, str(exc)) from exc
            except Exception:
                if self._auto_commit:
                    self._session.rollback()
                logger.warning(
                    f"{operation}_rejected",
                    extra={"duration_ms": round((time.monotonic() - t0) * 1000, 2)},
                    exc_info=True,
                )
                raise
            logger.info(
                f"{operation}_completed",
                extra={"duration_ms": round((time.monotonic() - t0) * 1000, 2)},
            )
            return result

    def _read(self, operation: str, fn: Callable[[], T]) -> T:
        try:
            return fn()
        except SQLAlchemyError as exc:
            logger.error(f"{operation}_failed", exc_info=True)
            raise StorageError(operation, str(exc)) from exc

    # ------------------------------------------------------------------
    # Submissions
    # ------------------------------------------------------------------

    def submit_collection(
        self,
        actor_id: UUID,
        items: Iterable[ItemQuantity | Mapping[str, Any]],
        notes: str | None = None,
        occurred_at: datetime | None = None,
    ) -> CommitResult:
        """
        Record a collection (goods received).

        Raises:
            LedgerValidationError subclasses, PartialWriteError,
            OrphanedHeaderError, StorageError.
        """

        def run() -> CommitResult:
            prepared = self.committer.prepare_collection(
                actor_id, items, notes=notes, occurred_at=occurred_at
            )
            with LogContext.bind(batch_id=str(prepared.batch_id)):
                return self.committer.commit(prepared)

        return self._write("submit_collection", run, actor_id)

    def submit_withdrawal(
        self,
        actor_id: UUID,
        items: Iterable[ItemQuantity | Mapping[str, Any]],
        recipient: str | None = None,
        reason: str | None = None,
        notes: str | None = None,
        occurred_at: datetime | None = None,
        kit_template_id: UUID | None = None,
        kits_created: int | None = None,
    ) -> CommitResult:
        """
        Record a withdrawal (goods given out).

        Raises:
            LedgerValidationError subclasses, InsufficientStockError,
            PartialWriteError, OrphanedHeaderError, StorageError.
        """
        lines = [ItemQuantity.coerce(i) for i in items]

        def run() -> CommitResult:
            prepared = self.committer.prepare_withdrawal(
                actor_id,
                lines,
                recipient=recipient,
                reason=reason,
                notes=notes,
                occurred_at=occurred_at,
                kit_template_id=kit_template_id,
                kits_created=kits_created,
            )
            with LogContext.bind(batch_id=str(prepared.batch_id)):
                return self.committer.commit(prepared)

        guard = (
            self._locks.hold(line.item_id for line in lines)
            if self._settings.ledger.serialize_withdrawals
            else nullcontext()
        )
        with guard:
            return self._write("submit_withdrawal", run, actor_id)

    def submit_kit_withdrawal(
        self,
        actor_id: UUID,
        kit_template_id: UUID,
        kits: int,
        recipient: str | None = None,
        reason: str | None = None,
        notes: str | None = None,
        occurred_at: datetime | None = None,
    ) -> CommitResult:
        """
        Withdraw ``kits`` copies of a kit template.  The batch records the
        kit and the count alongside the expanded per-item lines.

        Raises:
            KitTemplateNotFoundError, InvalidKitCountError, plus everything
            submit_withdrawal() raises.
        """
        kit = self._read("submit_kit_withdrawal", lambda: self.kits.get(kit_template_id))
        lines = expand_kit(kit_template_id, kit.item_quantities(), kits)
        return self.submit_withdrawal(
            actor_id,
            lines,
            recipient=recipient,
            reason=reason,
            notes=notes,
            occurred_at=occurred_at,
            kit_template_id=kit_template_id,
            kits_created=kits,
        )

    # ------------------------------------------------------------------
    # Stock and reports
    # ------------------------------------------------------------------

    def get_current_stock(self, item_id: UUID | None = None) -> StockReport:
        """Per-item collected, withdrawn and stock, plus the cache state."""
        return self._read(
            "get_current_stock",
            lambda: self.aggregator.report(item_id=item_id, active_only=item_id is None),
        )

    def get_daily_balances(
        self,
        start_date: date,
        end_date: date,
        item_id: UUID | None = None,
        row_policy: RowPolicy | None = None,
    ) -> list[DailyBalanceRow]:
        return self._read(
            "get_daily_balances",
            lambda: self.balances.daily_balances(start_date, end_date, item_id, row_policy),
        )

    def get_snapshot(self, day: date, item_id: UUID | None = None) -> Snapshot:
        return self._read("get_snapshot", lambda: self.snapshots.snapshot(day, item_id))

    def get_previous_day(self, day: date) -> date:
        return self._read("get_previous_day", lambda: self.snapshots.previous_day(day))

    def get_next_day(self, day: date) -> date:
        return self._read("get_next_day", lambda: self.snapshots.next_day(day))

    def get_earliest_event_date(self) -> date | None:
        return self._read("get_earliest_event_date", self.events.earliest_event_date)

    def get_events(
        self,
        item_id: UUID | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        kind: EventKind | None = None,
    ) -> list[LedgerEvent]:
        return self._read(
            "get_events",
            lambda: list(self.events.query(item_id, start_date, end_date, kind)),
        )

    # ------------------------------------------------------------------
    # Batch lookups
    # ------------------------------------------------------------------

    def get_batch(self, kind: EventKind, batch_id: UUID) -> BatchView:
        return self._read("get_batch", lambda: self.events.get_batch(kind, batch_id))

    def recent_batches(self, kind: EventKind, limit: int | None = None) -> list[BatchView]:
        limit = limit or self._settings.reports.recent_batch_limit
        return self._read("recent_batches", lambda: self.events.recent_batches(kind, limit))

    def batches_on(self, kind: EventKind, day: date) -> list[BatchView]:
        return self._read("batches_on", lambda: self.events.batches_on(kind, day))

    def batches_between(
        self, kind: EventKind, start_date: date, end_date: date
    ) -> list[BatchView]:
        """Batches dated inside the inclusive range, newest first."""
        return self._read(
            "batches_between", lambda: self.events.batches_between(kind, start_date, end_date)
        )

    def get_actor_activity(self, actor_id: UUID, days: int = 30) -> ActorActivity:
        """Batches ``actor_id`` recorded over the last ``days`` calendar days."""
        today = self._clock.today(self._day_tz)
        return self._read(
            "get_actor_activity",
            lambda: self.events.actor_activity(actor_id, today - timedelta(days=days), today),
        )

    # ------------------------------------------------------------------
    # Kit templates
    # ------------------------------------------------------------------

    def get_kit_templates(self) -> list[KitTemplateView]:
        """Active kit templates ordered by name."""
        return self._read("get_kit_templates", self.kits.list_kits)

    def get_kit_template(self, kit_template_id: UUID) -> KitTemplateView:
        """
        Raises:
            KitTemplateNotFoundError: If no active kit has this id.
        """
        return self._read("get_kit_template", lambda: self.kits.get(kit_template_id))

    # ------------------------------------------------------------------
    # Import, reconciliation, maintenance
    # ------------------------------------------------------------------

    def import_historical_events(
        self,
        source: str,
        candidates: Iterable[CandidateEvent],
        deduplicate: bool = True,
    ) -> ImportResult:
        return self._write(
            "import_historical_events",
            lambda: self.reconciliation.import_batch(source, candidates, deduplicate),
        )

    def rebuild_aggregates(self) -> RebuildResult:
        """Full recompute of the stock cache.  Idempotent."""
        return self._write("rebuild_aggregates", self.aggregator.rebuild)

    def check_integrity(self, repair: bool = False) -> IntegrityReport:
        return self._write("check_integrity", lambda: self.integrity.check(repair=repair))

    def find_duplicates(
        self, kind: EventKind | None = None, item_id: UUID | None = None
    ) -> tuple[DuplicateGroup, ...]:
        return self._read(
            "find_duplicates", lambda: self.reconciliation.find_duplicates(kind, item_id)
        )

    def remove_duplicates(self, dry_run: bool = True) -> DuplicateRemovalResult:
        return self._write(
            "remove_duplicates", lambda: self.reconciliation.remove_duplicates(dry_run)
        )

    def verify_totals(self, expected: Iterable[ExpectedTotal]) -> list[ReconciliationDelta]:
        return self._read("verify_totals", lambda: self.reconciliation.verify_totals(expected))
