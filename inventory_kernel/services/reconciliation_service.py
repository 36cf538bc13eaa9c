"""
ReconciliationService -- duplicate-safe import of historical events.

Responsibility:
    Imports externally sourced collection and withdrawal records without
    double-counting events the ledger already holds, finds and removes
    duplicates already stored, and compares operator-supplied expected
    totals with the ledger.

Architecture position:
    Kernel > Services.  Uses the commit protocol for writes and the
    aggregator for invalidation and rebuild.  Flushes only.

Invariants enforced:
    - Duplicate key = (kind, item_id, instant in UTC); naive instants are
      read in the day timezone.  Exact equality only.
    - A duplicate candidate is skipped and reported, never raised.
    - Accepted candidates are written as one import header per
      (kind, instant).  No stock check applies to historical events.
    - The aggregate is marked DIRTY before events are written or deleted
      here and rebuilt from scratch afterwards.

Failure modes:
    - Invalid candidates (unknown item, non-numeric or non-positive
      quantity, missing timestamp) are counted in skipped_invalid with an
      ImportIssue.
    - PartialWriteError / OrphanedHeaderError from a batch write abort the
      import; the facade rolls back the whole transaction.
"""

import time
from dataclasses import replace
from datetime import timezone, tzinfo
from typing import Iterable
from uuid import UUID

from sqlalchemy.orm import Session

from inventory_kernel.db.types import ZERO, round_quantity, to_quantity
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dedup import (
    canonical_instant,
    find_duplicate_groups,
    group_into_batches,
    partition_candidates,
)
from inventory_kernel.domain.dtos import (
    CandidateEvent,
    DuplicateGroup,
    DuplicateRemovalResult,
    EventKind,
    ExpectedTotal,
    ImportIssue,
    ImportResult,
    ItemQuantity,
    ReconciliationDelta,
    TotalMeasure,
)
from inventory_kernel.domain.naming import normalize_item_name
from inventory_kernel.exceptions import (
    DuplicateEventError,
    InvalidQuantityError,
    NonPositiveQuantityError,
    UnknownItemError,
)
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.selectors.event_selector import EventSelector
from inventory_kernel.selectors.item_selector import ItemSelector
from inventory_kernel.selectors.stock_selector import StockSelector
from inventory_kernel.services.aggregate_service import BalanceAggregator
from inventory_kernel.services.commit_protocol import BatchCommitter
from inventory_kernel.services.event_store import LedgerEventStore

logger = get_logger("services.reconciliation")

# Actor recorded on imported batches whose source names no actor
IMPORT_ACTOR_ID = UUID("00000000-0000-0000-0000-000000000000")


class ReconciliationService:
    """Import, duplicate scan and total verification for the ledger."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        day_tz: tzinfo = timezone.utc,
        import_actor_id: UUID = IMPORT_ACTOR_ID,
    ):
        self.session = session
        self._clock = clock or SystemClock()
        self._day_tz = day_tz
        self._import_actor_id = import_actor_id
        self._events = EventSelector(session)
        self._items = ItemSelector(session)
        self._stock = StockSelector(session)
        self._aggregator = BalanceAggregator(session, self._clock)
        self._store = LedgerEventStore(session, self._clock, self._aggregator)
        self._committer = BatchCommitter(
            session,
            self._clock,
            day_tz,
            store=self._store,
            aggregator=self._aggregator,
        )

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    def _name_index(self) -> dict[str, UUID]:
        index: dict[str, UUID] = {}
        for item in self._items.list_items():
            index.setdefault(normalize_item_name(item.name), item.item_id)
        return index

    def _resolve(
        self,
        candidates: Iterable[CandidateEvent],
    ) -> tuple[list[CandidateEvent], list[ImportIssue]]:
        """Resolve item references and check quantities and timestamps."""
        names = self._name_index()
        known_ids = {item.item_id for item in self._items.list_items()}
        resolved: list[CandidateEvent] = []
        issues: list[ImportIssue] = []

        for position, candidate in enumerate(candidates):
            row = candidate.source_row if candidate.source_row is not None else position
            if candidate.occurred_at is None:
                issues.append(ImportIssue(row, "MISSING_TIMESTAMP", "occurred_at is required"))
                continue

            item_id = candidate.item_id
            if item_id is None and candidate.item_name:
                item_id = names.get(normalize_item_name(candidate.item_name))
            if item_id is None or item_id not in known_ids:
                error = UnknownItemError(candidate.item_id or candidate.item_name)
                issues.append(ImportIssue(row, error.code, str(error)))
                continue

            try:
                quantity = to_quantity(candidate.quantity)
            except ValueError:
                error = InvalidQuantityError(item_id, candidate.quantity)
                issues.append(ImportIssue(row, error.code, str(error)))
                continue
            if quantity <= 0 or round_quantity(quantity) <= 0:
                error = NonPositiveQuantityError(item_id, quantity)
                issues.append(ImportIssue(row, error.code, str(error)))
                continue

            resolved.append(
                replace(
                    candidate,
                    item_id=item_id,
                    quantity=round_quantity(quantity),
                    occurred_at=canonical_instant(candidate.occurred_at, self._day_tz),
                    source_row=row,
                )
            )
        return resolved, issues

    def import_batch(
        self,
        source: str,
        candidates: Iterable[CandidateEvent],
        deduplicate: bool = True,
    ) -> ImportResult:
        """
        Import historical events.

        Args:
            source: Name of the external source (file name, system name).
            candidates: Events to import, in source order.
            deduplicate: When False, every valid candidate is written even
                if it duplicates a stored event.

        Returns:
            ImportResult with counts, issues and the new batch ids.
        """
        t0 = time.monotonic()
        with LogContext.bind(import_source=source):
            resolved, issues = self._resolve(candidates)
            skipped_invalid = len(issues)

            duplicates = []
            if deduplicate and resolved:
                instants = [c.occurred_at for c in resolved]
                existing = self._events.existing_keys(
                    {c.item_id for c in resolved}, (min(instants), max(instants))
                )
                resolved, duplicates = partition_candidates(resolved, existing, self._day_tz)
                for dup in duplicates:
                    error = DuplicateEventError(
                        dup.candidate.kind.value,
                        dup.candidate.item_id,
                        dup.candidate.occurred_at.isoformat(),
                        dup.existing,
                    )
                    issues.append(ImportIssue(dup.candidate.source_row, error.code, str(error)))

            batch_ids: list[UUID] = []
            if resolved:
                self._aggregator.mark_dirty(f"import from {source}")
                for kind, instant, members in group_into_batches(resolved, self._day_tz):
                    batch_ids.append(self._write_group(source, kind, instant, members))
                self._aggregator.rebuild()

            result = ImportResult(
                source=source,
                imported=len(resolved),
                skipped_duplicate=len(duplicates),
                skipped_invalid=skipped_invalid,
                errors=tuple(issues),
                batch_ids=tuple(batch_ids),
            )
            logger.info(
                "import_completed",
                extra={
                    "imported": result.imported,
                    "skipped_duplicate": result.skipped_duplicate,
                    "skipped_invalid": result.skipped_invalid,
                    "batch_count": len(batch_ids),
                    "deduplicate": deduplicate,
                    "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                },
            )
            return result

    def _write_group(self, source, kind, instant, members: list[CandidateEvent]) -> UUID:
        first = members[0]
        prepared = self._committer.prepare_import(
            kind=kind,
            actor_id=first.actor_id or self._import_actor_id,
            lines=[ItemQuantity(m.item_id, m.quantity) for m in members],
            occurred_at=instant,
            import_source=source,
            event_date=first.event_date,
            source_rows={m.item_id: m.source_row for m in members if m.source_row is not None},
            notes=first.notes,
            recipient=first.recipient,
            reason=first.reason,
        )
        self._committer.commit(prepared, refresh_aggregate=False)
        return prepared.batch_id

    # ------------------------------------------------------------------
    # Stored duplicates
    # ------------------------------------------------------------------

    def find_duplicates(
        self, kind: EventKind | None = None, item_id: UUID | None = None
    ) -> tuple[DuplicateGroup, ...]:
        """Duplicate groups among stored lines; the first of each group is kept."""
        groups = find_duplicate_groups(self._events.stored_lines(kind=kind, item_id=item_id))
        logger.info(
            "duplicate_scan_completed",
            extra={
                "group_count": len(groups),
                "duplicate_count": sum(len(g.duplicates) for g in groups),
            },
        )
        return groups

    def remove_duplicates(self, dry_run: bool = True) -> DuplicateRemovalResult:
        """
        Delete every duplicate line but the first of its group.

        With dry_run (the default) nothing changes; the result lists what
        would be removed.
        """
        groups = self.find_duplicates()
        if dry_run or not groups:
            return DuplicateRemovalResult(
                dry_run=dry_run,
                groups=groups,
                lines_removed=0,
                headers_removed=0,
                rebuilt=False,
            )

        self._aggregator.mark_dirty("duplicate removal")
        lines_removed = 0
        headers_removed = 0
        for kind in EventKind:
            doomed = [d for g in groups if g.kind is kind for d in g.duplicates]
            if not doomed:
                continue
            lines_removed += self._store.delete_lines(kind, (d.line_id for d in doomed))
            touched = {d.batch_id for d in doomed}
            empty = [
                batch_id
                for batch_id, _, _ in self._events.headers_without_lines(kind)
                if batch_id in touched
            ]
            headers_removed += self._store.delete_headers(kind, empty)
        self.session.expire_all()
        self._aggregator.rebuild()

        logger.warning(
            "duplicates_removed",
            extra={"lines_removed": lines_removed, "headers_removed": headers_removed},
        )
        return DuplicateRemovalResult(
            dry_run=False,
            groups=groups,
            lines_removed=lines_removed,
            headers_removed=headers_removed,
            rebuilt=True,
        )

    # ------------------------------------------------------------------
    # Expected totals
    # ------------------------------------------------------------------

    def verify_totals(self, expected: Iterable[ExpectedTotal]) -> list[ReconciliationDelta]:
        """
        Compare expected per-item totals with the ledger (full scan).

        Raises:
            UnknownItemError: If an expected total names no item.
        """
        rows = {row.item_id: row for row in self._stock.full_scan()}
        deltas: list[ReconciliationDelta] = []
        for exp in expected:
            row = rows.get(exp.item_id)
            if row is None:
                raise UnknownItemError(exp.item_id)
            if exp.measure is TotalMeasure.COLLECTED:
                actual = row.collected
            elif exp.measure is TotalMeasure.WITHDRAWN:
                actual = row.withdrawn
            else:
                actual = row.stock
            deltas.append(
                ReconciliationDelta(
                    item_id=row.item_id,
                    item_name=row.item_name,
                    measure=exp.measure,
                    expected=to_quantity(exp.expected),
                    actual=actual,
                )
            )
        mismatches = [d for d in deltas if not d.matches]
        if mismatches:
            logger.warning(
                "totals_mismatch",
                extra={
                    "mismatch_count": len(mismatches),
                    "net_delta": sum((d.delta for d in mismatches), ZERO),
                },
            )
        return deltas
