"""
ItemLockRegistry -- optional per-item serialization of withdrawals.

The stock check and the write are separate steps, so two concurrent
withdrawals may each pass the check and together oversell.  Deployments
that want a serialization point enable ``ledger.serialize_withdrawals`` and
the service facade holds these locks around prepare + commit.

Scope is one process.  Multiple processes need a database-level lock
(e.g. SELECT ... FOR UPDATE on the aggregate rows) instead.
"""

import threading
from contextlib import contextmanager
from typing import Iterable, Iterator
from uuid import UUID


class ItemLockRegistry:
    """One re-entrant lock per item id, created on demand."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[UUID, threading.RLock] = {}

    def _lock_for(self, item_id: UUID) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(item_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[item_id] = lock
            return lock

    @contextmanager
    def hold(self, item_ids: Iterable[UUID]) -> Iterator[None]:
        """Acquire the locks of all items, in id order to avoid deadlocks."""
        locks = [self._lock_for(i) for i in sorted(set(item_ids), key=str)]
        acquired = []
        try:
            for lock in locks:
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
