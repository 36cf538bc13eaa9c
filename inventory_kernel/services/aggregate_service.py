"""
BalanceAggregator -- cached per-item stock with explicit invalidation.

Responsibility:
    Maintains the stock_aggregates table as a materialized view over the
    ledger lines.  Applies incremental deltas after each committed batch,
    rebuilds from scratch on request, and tracks whether the cache can be
    trusted through the AggregateState row.

Architecture position:
    Kernel > Services.  Runs inside the caller's transaction; incremental
    refreshes run in a SAVEPOINT so that a failed refresh never undoes the
    batch it follows.

Invariants enforced:
    - State machine: CLEAN -> DIRTY (refresh failed, or events about to be
      deleted) -> REBUILDING -> CLEAN.  Only rebuild() returns to CLEAN.
    - Readers never see a DIRTY cache: current_stock() falls back to a full
      scan of the ledger unless the state is CLEAN.
    - rebuild() recomputes everything from lines (never incremental) and is
      idempotent.

Failure modes:
    - refresh() does not raise for storage errors; it marks the cache DIRTY,
      records last_error and reports False so the caller can attach a
      stale_aggregate warning to its result.
    - require_clean() raises AggregateStalenessError (strict tooling only).
"""

import time
from decimal import Decimal
from typing import Iterable, Mapping
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from inventory_kernel.db.types import ZERO
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import (
    EventKind,
    ItemQuantity,
    RebuildResult,
    StockReport,
    StockRow,
)
from inventory_kernel.exceptions import AggregateStalenessError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.aggregate import (
    STOCK_AGGREGATE,
    AggregateState,
    AggregateStatus,
    StockAggregate,
)
from inventory_kernel.selectors.stock_selector import StockSelector
from inventory_kernel.services.base import BaseService

logger = get_logger("services.aggregate")

# item_id -> (collected delta, withdrawn delta)
StockDeltas = Mapping[UUID, tuple[Decimal, Decimal]]


def line_deltas(kind: EventKind, lines: Iterable[ItemQuantity]) -> dict[UUID, tuple[Decimal, Decimal]]:
    """Per-item deltas for one batch of lines."""
    if kind is EventKind.COLLECTED:
        return {line.item_id: (line.quantity, ZERO) for line in lines}
    return {line.item_id: (ZERO, line.quantity) for line in lines}


class BalanceAggregator(BaseService[StockAggregate]):
    """Owner of the cached stock aggregate and its state row."""

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._stock = StockSelector(session)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def state(self) -> AggregateState:
        """The state row, created CLEAN on first use (an empty cache of an
        empty ledger is consistent)."""
        state = self._stock.state()
        if state is None:
            state = AggregateState(
                name=STOCK_AGGREGATE,
                status=AggregateStatus.CLEAN.value,
                version=0,
            )
            self.session.add(state)
            self.session.flush()
        return state

    def is_clean(self) -> bool:
        return self.state().is_clean

    def mark_dirty(self, reason: str) -> None:
        """Invalidate the cache.  Readers fall back to full scans until rebuild()."""
        state = self.state()
        state.status = AggregateStatus.DIRTY.value
        state.last_error = reason
        self.session.flush()
        logger.warning("aggregate_marked_dirty", extra={"reason": reason})

    def require_clean(self) -> AggregateState:
        """
        Raises:
            AggregateStalenessError: If the cache is DIRTY or REBUILDING.
        """
        state = self.state()
        if not state.is_clean:
            raise AggregateStalenessError(state.status, state.last_error)
        return state

    # ------------------------------------------------------------------
    # Incremental refresh
    # ------------------------------------------------------------------

    def _apply_deltas(self, deltas: StockDeltas) -> None:
        now = self._clock.now_utc()
        stmt = select(StockAggregate).where(StockAggregate.item_id.in_(list(deltas)))
        existing = {row.item_id: row for row in self.session.execute(stmt).scalars()}
        for item_id, (collected, withdrawn) in deltas.items():
            row = existing.get(item_id)
            if row is None:
                row = StockAggregate(
                    item_id=item_id,
                    total_collected=ZERO,
                    total_withdrawn=ZERO,
                    current_stock=ZERO,
                    refreshed_at=now,
                )
                self.session.add(row)
            row.total_collected = row.total_collected + collected
            row.total_withdrawn = row.total_withdrawn + withdrawn
            row.current_stock = row.total_collected - row.total_withdrawn
            row.refreshed_at = now
        state = self.state()
        state.version = state.version + 1
        state.last_refreshed_at = now
        self.session.flush()

    def refresh(self, deltas: StockDeltas) -> bool:
        """
        Apply per-item deltas to a CLEAN cache.

        Returns:
            True if the cache is CLEAN and up to date afterwards; False if
            it was already stale or the refresh failed (it is then DIRTY).
        """
        state = self.state()
        if not state.is_clean:
            logger.info(
                "aggregate_refresh_skipped",
                extra={"status": state.status, "item_count": len(deltas)},
            )
            return False

        try:
            with self.session.begin_nested():
                self._apply_deltas(deltas)
        except SQLAlchemyError as exc:
            logger.error(
                "aggregate_refresh_failed",
                extra={"item_count": len(deltas)},
                exc_info=True,
            )
            self.session.expire_all()
            self.mark_dirty(f"refresh failed: {exc}")
            return False

        logger.debug(
            "aggregate_refreshed",
            extra={"item_count": len(deltas), "version": state.version},
        )
        return True

    # ------------------------------------------------------------------
    # Full rebuild
    # ------------------------------------------------------------------

    def rebuild(self) -> RebuildResult:
        """Recompute every row from the ledger and mark the cache CLEAN."""
        t0 = time.monotonic()
        state = self.state()
        state.status = AggregateStatus.REBUILDING.value
        self.session.flush()
        logger.info("aggregate_rebuild_started", extra={"version": state.version})

        now = self._clock.now_utc()
        self.session.execute(delete(StockAggregate))
        rows = self._stock.full_scan()
        for row in rows:
            self.session.add(
                StockAggregate(
                    item_id=row.item_id,
                    total_collected=row.collected,
                    total_withdrawn=row.withdrawn,
                    current_stock=row.stock,
                    refreshed_at=now,
                )
            )

        state.status = AggregateStatus.CLEAN.value
        state.version = state.version + 1
        state.last_rebuilt_at = now
        state.last_refreshed_at = now
        state.last_error = None
        self.session.flush()

        logger.info(
            "aggregate_rebuild_completed",
            extra={
                "item_count": len(rows),
                "version": state.version,
                "duration_ms": round((time.monotonic() - t0) * 1000, 2),
            },
        )
        return RebuildResult(item_count=len(rows), version=state.version, rebuilt_at=now)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def stock_rows(self, item_id: UUID | None = None, active_only: bool = False) -> list[StockRow]:
        """Rows from the cache when CLEAN, else from a full scan."""
        if self.is_clean():
            return self._stock.cached(item_id=item_id, active_only=active_only)
        return self._stock.full_scan(item_id=item_id, active_only=active_only)

    def current_stock(self, item_id: UUID) -> Decimal:
        rows = self.stock_rows(item_id=item_id)
        return rows[0].stock if rows else ZERO

    def current_stock_many(self, item_ids) -> dict[UUID, Decimal]:
        wanted = set(item_ids)
        return {r.item_id: r.stock for r in self.stock_rows() if r.item_id in wanted}

    def report(self, item_id: UUID | None = None, active_only: bool = True) -> StockReport:
        state = self.state()
        return StockReport(
            rows=tuple(self.stock_rows(item_id=item_id, active_only=active_only)),
            aggregate_status=state.status,
            aggregate_version=state.version,
        )
