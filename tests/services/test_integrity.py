"""Orphaned header detection and repair."""

from datetime import date
from uuid import uuid4

from inventory_kernel.domain.dtos import EventKind
from inventory_kernel.models.batch import BatchOrigin
from inventory_kernel.services.event_store import BatchHeader
from inventory_services import InventoryProjections


def _orphan(ledger, actor_id, when, kind=EventKind.WITHDRAWN, origin=BatchOrigin.ENTRY):
    header = BatchHeader(
        batch_id=uuid4(),
        actor_id=actor_id,
        occurred_at=when,
        event_date=when.date(),
        origin=origin,
        import_source="legacy" if origin is BatchOrigin.IMPORT else None,
    )
    ledger.store.insert_header(kind, header)
    ledger.session.commit()
    return header.batch_id


class TestIntegrityCheck:
    def test_clean_ledger(self, env, widget):
        env.collect(widget, 5)
        report = env.ledger.check_integrity()
        assert report.is_clean
        assert report.repaired == 0

    def test_reports_orphans_without_repair(self, ledger, test_actor_id, on):
        batch_id = _orphan(ledger, test_actor_id, on(3))
        report = ledger.check_integrity()
        assert not report.is_clean
        issue = report.issues[0]
        assert (issue.kind, issue.batch_id, issue.event_date) == (
            EventKind.WITHDRAWN,
            batch_id,
            date(2025, 11, 3),
        )
        assert report.repaired == 0
        assert not ledger.check_integrity().is_clean

    def test_repair_deletes_orphans(self, ledger, test_actor_id, on):
        _orphan(ledger, test_actor_id, on(3))
        _orphan(ledger, test_actor_id, on(4), kind=EventKind.COLLECTED)
        report = ledger.check_integrity(repair=True)
        assert report.repaired == 2
        assert ledger.check_integrity().is_clean

    def test_import_headers_ignored(self, ledger, test_actor_id, on):
        _orphan(ledger, test_actor_id, on(3), origin=BatchOrigin.IMPORT)
        assert ledger.check_integrity().is_clean

    def test_orphans_do_not_move_earliest_date(self, env, widget, test_actor_id, on):
        env.collect(widget, 1, day=5)
        _orphan(env.ledger, test_actor_id, on(2))
        assert env.ledger.get_earliest_event_date() == date(2025, 11, 5)

    def test_orphans_do_not_move_first_collection_date(self, env, widget, test_actor_id, on):
        env.collect(widget, 1, day=5)
        _orphan(env.ledger, test_actor_id, on(2), kind=EventKind.COLLECTED)
        assert env.ledger.events.first_event_date(EventKind.COLLECTED) == date(2025, 11, 5)
        projections = InventoryProjections(env.session, clock=env.clock, settings=env.settings)
        assert projections.reports_summary().first_collection_date == date(2025, 11, 5)
