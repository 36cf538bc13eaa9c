"""
Module: inventory_kernel.selectors.event_selector
Responsibility: Read-only queries over the ledger event store: ordered event
    streams, the earliest event date, opening balances and per-day movement
    sums, withdrawn totals per destination, stored lines for duplicate
    scans, and batch lookups by id, day, date range and actor.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - query() is lazy and restartable: each call issues a new scan, ordered
      by occurred_at, then kind, then event id.
    - Opening balances are a single SQL aggregate over every event before
      the start date, never a walk from the first day.
    - Only headers that own at least one line count as events.

Failure modes:
    - BatchNotFoundError from get_batch() for an unknown header id.
"""

import heapq
from collections import defaultdict
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Iterator
from uuid import UUID

from sqlalchemy import exists, func, select
from sqlalchemy.orm import Session, selectinload

from inventory_kernel.db.types import ZERO
from inventory_kernel.domain.dedup import DedupKey, dedup_key
from inventory_kernel.domain.dtos import (
    ActorActivity,
    BatchView,
    DestinationTotal,
    EventKind,
    ItemQuantity,
    LedgerEvent,
    StoredLine,
)
from inventory_kernel.exceptions import BatchNotFoundError, InvalidDateRangeError
from inventory_kernel.models.batch import (
    CollectionLine,
    Withdrawal,
    WithdrawalLine,
    batch_tables,
)
from inventory_kernel.selectors.base import BaseSelector

_STREAM_CHUNK = 500


class EventSelector(BaseSelector[CollectionLine]):
    """
    Selector for collection and withdrawal events.

    Contract:
        Events are read from line rows joined to their header; a line takes
        its date, timestamp and actor from the header.
    """

    def __init__(self, session: Session):
        super().__init__(session)

    # ------------------------------------------------------------------
    # Event streams
    # ------------------------------------------------------------------

    def _kind_stream(
        self,
        kind: EventKind,
        item_id: UUID | None,
        start_date: date | None,
        end_date: date | None,
    ) -> Iterator[LedgerEvent]:
        tables = batch_tables(kind)
        header, line = tables.header, tables.line
        stmt = select(line, header).join(header, tables.header_fk == header.id)
        if item_id is not None:
            stmt = stmt.where(line.item_id == item_id)
        if start_date is not None:
            stmt = stmt.where(header.event_date >= start_date)
        if end_date is not None:
            stmt = stmt.where(header.event_date <= end_date)
        stmt = stmt.order_by(header.occurred_at, line.id).execution_options(
            yield_per=_STREAM_CHUNK
        )

        for ln, hd in self.session.execute(stmt):
            yield LedgerEvent(
                kind=kind,
                event_id=ln.id,
                batch_id=hd.id,
                item_id=ln.item_id,
                quantity=ln.quantity,
                event_date=hd.event_date,
                occurred_at=hd.occurred_at,
                actor_id=hd.actor_id,
                notes=hd.notes,
                recipient=getattr(hd, "recipient", None),
                reason=getattr(hd, "reason", None),
            )

    def query(
        self,
        item_id: UUID | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        kind: EventKind | None = None,
    ) -> Iterator[LedgerEvent]:
        """
        Lazy, ordered stream of ledger events.

        Args:
            item_id: Restrict to one item.
            start_date: Inclusive lower bound on event_date.
            end_date: Inclusive upper bound on event_date.
            kind: Restrict to one event kind.

        Returns:
            Iterator of LedgerEvent ordered by (occurred_at, kind, event_id).
        """
        kinds = [kind] if kind is not None else list(EventKind)
        streams = [self._kind_stream(k, item_id, start_date, end_date) for k in kinds]
        return heapq.merge(
            *streams,
            key=lambda e: (e.occurred_at, e.kind.value, str(e.event_id)),
        )

    def first_event_date(self, kind: EventKind) -> date | None:
        """Earliest event_date among headers of one kind that own a line."""
        tables = batch_tables(kind)
        stmt = select(func.min(tables.header.event_date)).where(
            exists().where(tables.header_fk == tables.header.id)
        )
        return self.session.execute(stmt).scalar()

    def earliest_event_date(self) -> date | None:
        """Smallest event_date of any header owning at least one line."""
        found = [d for d in (self.first_event_date(kind) for kind in EventKind) if d is not None]
        return min(found) if found else None

    # ------------------------------------------------------------------
    # Aggregates for the balance calculator
    # ------------------------------------------------------------------

    def _totals_before(
        self, kind: EventKind, before: date, item_ids: list[UUID] | None
    ) -> dict[UUID, Decimal]:
        tables = batch_tables(kind)
        line, header = tables.line, tables.header
        stmt = (
            select(line.item_id, func.sum(line.quantity))
            .join(header, tables.header_fk == header.id)
            .where(header.event_date < before)
            .group_by(line.item_id)
        )
        if item_ids is not None:
            stmt = stmt.where(line.item_id.in_(item_ids))
        return {
            item_id: Decimal(str(total)) for item_id, total in self.session.execute(stmt)
        }

    def opening_balances(
        self, before: date, item_ids: Iterable[UUID] | None = None
    ) -> dict[UUID, Decimal]:
        """
        Per item: sum(collected) - sum(withdrawn) over events with
        event_date < ``before``.
        """
        ids = list(item_ids) if item_ids is not None else None
        collected = self._totals_before(EventKind.COLLECTED, before, ids)
        withdrawn = self._totals_before(EventKind.WITHDRAWN, before, ids)
        return {
            item_id: collected.get(item_id, ZERO) - withdrawn.get(item_id, ZERO)
            for item_id in set(collected) | set(withdrawn)
        }

    def daily_movements(
        self,
        start_date: date,
        end_date: date,
        item_ids: Iterable[UUID] | None = None,
    ) -> dict[tuple[UUID, date], tuple[Decimal, Decimal]]:
        """Per (item, day) collected and withdrawn sums inside the range."""
        ids = list(item_ids) if item_ids is not None else None
        sums: dict[tuple[UUID, date], list[Decimal]] = defaultdict(lambda: [ZERO, ZERO])
        for position, kind in enumerate((EventKind.COLLECTED, EventKind.WITHDRAWN)):
            tables = batch_tables(kind)
            line, header = tables.line, tables.header
            stmt = (
                select(line.item_id, header.event_date, func.sum(line.quantity))
                .join(header, tables.header_fk == header.id)
                .where(header.event_date >= start_date, header.event_date <= end_date)
                .group_by(line.item_id, header.event_date)
            )
            if ids is not None:
                stmt = stmt.where(line.item_id.in_(ids))
            for item_id, day, total in self.session.execute(stmt):
                sums[(item_id, day)][position] = Decimal(str(total))
        return {key: (pair[0], pair[1]) for key, pair in sums.items()}

    def withdrawn_by_destination(self, item_id: UUID | None = None) -> list[DestinationTotal]:
        """Withdrawn totals per (item, recipient, reason) over the whole ledger."""
        stmt = (
            select(
                WithdrawalLine.item_id,
                Withdrawal.recipient,
                Withdrawal.reason,
                func.sum(WithdrawalLine.quantity),
            )
            .join(Withdrawal, WithdrawalLine.withdrawal_id == Withdrawal.id)
            .group_by(WithdrawalLine.item_id, Withdrawal.recipient, Withdrawal.reason)
        )
        if item_id is not None:
            stmt = stmt.where(WithdrawalLine.item_id == item_id)
        return [
            DestinationTotal(
                item_id=row[0],
                recipient=row[1],
                reason=row[2],
                quantity=Decimal(str(row[3])),
            )
            for row in self.session.execute(stmt)
        ]

    # ------------------------------------------------------------------
    # Duplicate detection support
    # ------------------------------------------------------------------

    def stored_lines(
        self,
        kind: EventKind | None = None,
        item_id: UUID | None = None,
        item_ids: Iterable[UUID] | None = None,
        occurred_between: tuple[datetime, datetime] | None = None,
    ) -> Iterator[StoredLine]:
        """Stored lines with the fields the duplicate scanner needs."""
        ids = list(item_ids) if item_ids is not None else None
        kinds = [kind] if kind is not None else list(EventKind)
        for k in kinds:
            tables = batch_tables(k)
            line, header = tables.line, tables.header
            stmt = select(
                line.id,
                tables.header_fk,
                line.item_id,
                line.quantity,
                line.source_row,
                header.occurred_at,
                header.recorded_at,
            ).join(header, tables.header_fk == header.id)
            if item_id is not None:
                stmt = stmt.where(line.item_id == item_id)
            if ids is not None:
                stmt = stmt.where(line.item_id.in_(ids))
            if occurred_between is not None:
                low, high = occurred_between
                stmt = stmt.where(header.occurred_at >= low, header.occurred_at <= high)
            stmt = stmt.execution_options(yield_per=_STREAM_CHUNK)
            for row in self.session.execute(stmt):
                yield StoredLine(
                    kind=k,
                    line_id=row[0],
                    batch_id=row[1],
                    item_id=row[2],
                    quantity=row[3],
                    source_row=row[4],
                    occurred_at=row[5],
                    recorded_at=row[6],
                )

    def existing_keys(
        self,
        item_ids: Iterable[UUID],
        occurred_between: tuple[datetime, datetime],
    ) -> dict[DedupKey, str]:
        """Duplicate keys already in the store for the given items and window."""
        keys: dict[DedupKey, str] = {}
        for stored in self.stored_lines(item_ids=item_ids, occurred_between=occurred_between):
            key = dedup_key(stored.kind, stored.item_id, stored.occurred_at)
            keys.setdefault(key, f"{stored.kind.batch_name} line {stored.line_id}")
        return keys

    # ------------------------------------------------------------------
    # Batch lookups
    # ------------------------------------------------------------------

    def _to_batch_view(self, kind: EventKind, header) -> BatchView:
        return BatchView(
            kind=kind,
            batch_id=header.id,
            actor_id=header.actor_id,
            event_date=header.event_date,
            occurred_at=header.occurred_at,
            origin=header.origin,
            notes=header.notes,
            lines=tuple(
                ItemQuantity(item_id=ln.item_id, quantity=ln.quantity)
                for ln in header.lines
            ),
            recipient=getattr(header, "recipient", None),
            reason=getattr(header, "reason", None),
            import_source=header.import_source,
            kit_template_id=getattr(header, "kit_template_id", None),
            kits_created=getattr(header, "kits_created", None),
        )

    def get_batch(self, kind: EventKind, batch_id: UUID) -> BatchView:
        """
        Raises:
            BatchNotFoundError: If no header of this kind has the id.
        """
        header = self.session.get(batch_tables(kind).header, batch_id)
        if header is None:
            raise BatchNotFoundError(kind.batch_name, batch_id)
        return self._to_batch_view(kind, header)

    def recent_batches(self, kind: EventKind, limit: int = 10) -> list[BatchView]:
        """Most recent batches first (by occurred_at)."""
        header = batch_tables(kind).header
        stmt = (
            select(header)
            .options(selectinload(header.lines))
            .order_by(header.occurred_at.desc(), header.id)
            .limit(limit)
        )
        return [self._to_batch_view(kind, h) for h in self.session.execute(stmt).scalars()]

    def batches_on(self, kind: EventKind, day: date) -> list[BatchView]:
        """Batches dated ``day``, in occurrence order."""
        header = batch_tables(kind).header
        stmt = (
            select(header)
            .options(selectinload(header.lines))
            .where(header.event_date == day)
            .order_by(header.occurred_at, header.id)
        )
        return [self._to_batch_view(kind, h) for h in self.session.execute(stmt).scalars()]

    def batches_between(
        self,
        kind: EventKind,
        start_date: date,
        end_date: date,
        actor_id: UUID | None = None,
    ) -> list[BatchView]:
        """
        Batches dated inside [start_date, end_date], newest first.

        Raises:
            InvalidDateRangeError: If start_date is after end_date.
        """
        if start_date > end_date:
            raise InvalidDateRangeError(start_date, end_date, "start date is after end date")
        header = batch_tables(kind).header
        stmt = (
            select(header)
            .options(selectinload(header.lines))
            .where(header.event_date >= start_date, header.event_date <= end_date)
            .order_by(header.occurred_at.desc(), header.id)
        )
        if actor_id is not None:
            stmt = stmt.where(header.actor_id == actor_id)
        return [self._to_batch_view(kind, h) for h in self.session.execute(stmt).scalars()]

    def actor_activity(self, actor_id: UUID, since: date, until: date) -> ActorActivity:
        """Batches recorded by one actor and dated inside [since, until]."""
        return ActorActivity(
            actor_id=actor_id,
            since=since,
            recent_collections=tuple(
                self.batches_between(EventKind.COLLECTED, since, until, actor_id)
            ),
            recent_withdrawals=tuple(
                self.batches_between(EventKind.WITHDRAWN, since, until, actor_id)
            ),
        )

    def count_batches(self, kind: EventKind, day: date | None = None) -> int:
        header = batch_tables(kind).header
        stmt = select(func.count(header.id))
        if day is not None:
            stmt = stmt.where(header.event_date == day)
        return self.session.execute(stmt).scalar_one()

    def headers_without_lines(self, kind: EventKind) -> list[tuple[UUID, date, str]]:
        """(batch_id, event_date, origin) of every header that owns no line."""
        tables = batch_tables(kind)
        stmt = (
            select(tables.header.id, tables.header.event_date, tables.header.origin)
            .where(~exists().where(tables.header_fk == tables.header.id))
            .order_by(tables.header.event_date, tables.header.id)
        )
        return [(row[0], row[1], row[2]) for row in self.session.execute(stmt)]
