"""
Duplicate detection for historical imports and stored-ledger scans.

Responsibility:
    Computes the duplicate key of an event, partitions import candidates
    into accepted and duplicate, groups accepted candidates into headers,
    and finds duplicate groups among stored lines.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Key = (kind, item_id, instant normalized to UTC).  Naive instants are
      read in the day timezone before normalization.
    - Equality is exact.  Two records of one real event whose timestamps
      differ by any amount are NOT detected; this is a known limitation.
    - Within a duplicate group the survivor is the first line by
      (recorded_at, source_row, id).
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from typing import Iterable, Mapping
from uuid import UUID

from inventory_kernel.db.types import ensure_utc
from inventory_kernel.domain.dtos import (
    CandidateEvent,
    DuplicateGroup,
    EventKind,
    StoredLine,
)

DedupKey = tuple[EventKind, UUID, datetime]


def canonical_instant(occurred_at: datetime, tz: tzinfo = timezone.utc) -> datetime:
    """UTC instant of ``occurred_at``; naive values are read in ``tz``."""
    return ensure_utc(occurred_at, default_tz=tz)


def dedup_key(
    kind: EventKind,
    item_id: UUID,
    occurred_at: datetime,
    tz: tzinfo = timezone.utc,
) -> DedupKey:
    return (kind, item_id, canonical_instant(occurred_at, tz))


@dataclass(frozen=True)
class CandidateDuplicate:
    """A rejected candidate and a description of what it collided with."""

    candidate: CandidateEvent
    existing: str


def partition_candidates(
    candidates: Iterable[CandidateEvent],
    existing: Mapping[DedupKey, str],
    tz: tzinfo = timezone.utc,
) -> tuple[list[CandidateEvent], list[CandidateDuplicate]]:
    """
    Split resolved candidates (``item_id`` set) into accepted and duplicate.

    ``existing`` maps keys already in the store to a description of the
    stored line.  A candidate is a duplicate if its key is in ``existing``
    or belongs to an earlier candidate of the same call.
    """
    seen: dict[DedupKey, str] = dict(existing)
    accepted: list[CandidateEvent] = []
    duplicates: list[CandidateDuplicate] = []
    for position, candidate in enumerate(candidates):
        key = dedup_key(candidate.kind, candidate.item_id, candidate.occurred_at, tz)
        if key in seen:
            duplicates.append(CandidateDuplicate(candidate, seen[key]))
            continue
        row = candidate.source_row if candidate.source_row is not None else position
        seen[key] = f"candidate row {row}"
        accepted.append(candidate)
    return accepted, duplicates


def group_into_batches(
    candidates: Iterable[CandidateEvent],
    tz: tzinfo = timezone.utc,
) -> list[tuple[EventKind, datetime, list[CandidateEvent]]]:
    """
    Group candidates into headers, one per (kind, instant).

    A header holds at most one line per item, so a repeated item at the
    same instant opens a further header for that key.  Groups come back
    ordered by instant, then kind.
    """
    batches: dict[tuple[EventKind, datetime], list[dict[UUID, CandidateEvent]]] = (
        defaultdict(list)
    )
    for candidate in candidates:
        key = (candidate.kind, canonical_instant(candidate.occurred_at, tz))
        for batch in batches[key]:
            if candidate.item_id not in batch:
                batch[candidate.item_id] = candidate
                break
        else:
            batches[key].append({candidate.item_id: candidate})

    ordered = sorted(batches, key=lambda k: (k[1], k[0].value))
    return [
        (kind, instant, list(batch.values()))
        for kind, instant in ordered
        for batch in batches[(kind, instant)]
    ]


def _survivor_order(line: StoredLine) -> tuple:
    return (
        line.recorded_at,
        line.source_row is None,
        line.source_row or 0,
        str(line.line_id),
    )


def find_duplicate_groups(lines: Iterable[StoredLine]) -> tuple[DuplicateGroup, ...]:
    """Groups of stored lines sharing a duplicate key, survivor first."""
    by_key: dict[DedupKey, list[StoredLine]] = defaultdict(list)
    for line in lines:
        by_key[dedup_key(line.kind, line.item_id, line.occurred_at)].append(line)

    groups = []
    for (kind, item_id, instant), members in by_key.items():
        if len(members) < 2:
            continue
        members.sort(key=_survivor_order)
        groups.append(
            DuplicateGroup(
                kind=kind,
                item_id=item_id,
                occurred_at=instant,
                keep=members[0],
                duplicates=tuple(members[1:]),
            )
        )
    groups.sort(key=lambda g: (g.occurred_at, g.kind.value, str(g.item_id)))
    return tuple(groups)
