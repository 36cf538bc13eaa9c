"""
IntegrityService -- detection and repair of orphaned batch headers.

A header without lines is what a write leaves behind when both the line
insert and its compensating header delete failed (OrphanedHeaderError).
This service finds such headers and, on request, deletes them.  They carry
no quantity, so removing them never changes a stock figure.
"""

from sqlalchemy.orm import Session

from inventory_kernel.domain.dtos import EventKind, IntegrityIssue, IntegrityReport
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.batch import BatchOrigin, Collection
from inventory_kernel.selectors.event_selector import EventSelector
from inventory_kernel.services.base import BaseService
from inventory_kernel.services.event_store import LedgerEventStore

logger = get_logger("services.integrity")

ORPHANED_HEADER = "orphaned_header"


class IntegrityService(BaseService[Collection]):
    """Finds headers that own no line."""

    def __init__(self, session: Session):
        super().__init__(session)
        self._events = EventSelector(session)
        self._store = LedgerEventStore(session)

    def find_orphans(self) -> list[IntegrityIssue]:
        """Entry-origin headers without lines."""
        issues = []
        for kind in EventKind:
            for batch_id, event_date, origin in self._events.headers_without_lines(kind):
                if origin == BatchOrigin.IMPORT.value:
                    continue
                issues.append(
                    IntegrityIssue(
                        kind=kind,
                        batch_id=batch_id,
                        event_date=event_date,
                        origin=origin,
                        problem=ORPHANED_HEADER,
                    )
                )
        return issues

    def check(self, repair: bool = False) -> IntegrityReport:
        """
        Report orphaned headers; with ``repair`` delete them.

        Returns:
            IntegrityReport listing what was found and how many were removed.
        """
        issues = self.find_orphans()
        repaired = 0
        if repair:
            for kind in EventKind:
                repaired += self._store.delete_headers(
                    kind, [i.batch_id for i in issues if i.kind is kind]
                )
            self.session.expire_all()

        if issues:
            logger.warning(
                "orphaned_headers_found",
                extra={"issue_count": len(issues), "repaired": repaired},
            )
        else:
            logger.info("integrity_check_clean")
        return IntegrityReport(issues=tuple(issues), repaired=repaired)
