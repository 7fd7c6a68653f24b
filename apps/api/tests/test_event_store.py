"""Tests for the append-only event store and ingest pipeline."""

from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import OperationalError

from compliance_api.errors import StorageError, ValidationError
from compliance_api.events.store import EventStore
from compliance_api.models import ComplianceEvent, DailyAnalytics
from conftest import NOW, make_event


class TestInsert:
    def test_insert_returns_event_id(self, db):
        result = EventStore(db).insert(make_event())

        assert result.created is True
        assert result.event_id is not None
        assert db.query(ComplianceEvent).count() == 1

    def test_redelivery_is_idempotent(self, db):
        store = EventStore(db)
        first = store.insert(make_event(source_message_id="dup-1"))
        second = store.insert(make_event(source_message_id="dup-1", risk_level="Critical"))

        assert second.created is False
        assert second.event_id == first.event_id
        assert db.query(ComplianceEvent).count() == 1
        assert store.get(first.event_id).risk_level == "Low"

    def test_same_message_id_in_another_channel_is_distinct(self, db):
        store = EventStore(db)
        store.insert(make_event(source_message_id="m-1", channel_id="a"))
        store.insert(make_event(source_message_id="m-1", channel_id="b"))
        assert db.query(ComplianceEvent).count() == 2

    def test_concurrent_delivery_returns_winning_event(self, db, monkeypatch):
        store = EventStore(db)
        first = store.insert(make_event(source_message_id="race-1"))
        lookup = store._find_by_message
        misses = []

        def stale_lookup(channel_id, source_message_id):
            # The other delivery commits between our lookup and our insert
            if not misses:
                misses.append(source_message_id)
                return None
            return lookup(channel_id, source_message_id)

        monkeypatch.setattr(store, "_find_by_message", stale_lookup)
        second = store.insert(make_event(source_message_id="race-1", risk_level="Critical"))

        assert misses == ["race-1"]
        assert second.created is False
        assert second.event_id == first.event_id
        assert db.query(ComplianceEvent).count() == 1
        assert store.get(first.event_id).risk_level == "Low"

    def test_unresolvable_integrity_error_is_storage_error(self, db, monkeypatch):
        store = EventStore(db)
        store.insert(make_event(source_message_id="race-2"))
        monkeypatch.setattr(store, "_find_by_message", lambda channel_id, source_message_id: None)

        with pytest.raises(StorageError):
            store.insert(make_event(source_message_id="race-2"))
        assert db.query(ComplianceEvent).count() == 1

    def test_database_failure_is_storage_error(self, db, monkeypatch):
        def broken_commit():
            raise OperationalError("INSERT", {}, Exception("database is gone"))

        monkeypatch.setattr(db, "commit", broken_commit)
        with pytest.raises(StorageError):
            EventStore(db).insert(make_event())


class TestQuery:
    def test_ordered_by_created_at_then_id(self, db):
        store = EventStore(db)
        later = store.insert(make_event(now=NOW + timedelta(hours=1))).event_id
        first = store.insert(make_event(now=NOW)).event_id
        tie = store.insert(make_event(now=NOW)).event_id

        ids = [e.id for e in store.query("proj-a")]
        assert ids == [first, tie, later]

    def test_filters(self, db):
        store = EventStore(db)
        store.insert(make_event(regulation="GDPR"))
        store.insert(make_event(regulation="SOX"))
        store.insert(make_event(project_id="proj-b"))
        store.insert(make_event(now=NOW - timedelta(days=3)))

        assert len(store.query("proj-a", start=NOW - timedelta(hours=1))) == 2
        assert len(store.query("proj-a", regulation="SOX")) == 1
        assert len(store.query("all")) == 4
        assert len(store.query("all", end=NOW)) == 1

    def test_recent_returns_newest_oldest_first(self, db):
        store = EventStore(db)
        for hours in range(5):
            store.insert(make_event(now=NOW + timedelta(hours=hours)))

        recent = store.recent("proj-a", limit=3)
        assert [e.created_at for e in recent] == [NOW + timedelta(hours=h) for h in (2, 3, 4)]


class TestUpdateStatus:
    def test_review_sets_reviewed_at(self, db):
        store = EventStore(db)
        event_id = store.insert(make_event()).event_id
        reviewed = NOW + timedelta(hours=5)

        event = store.update_status(event_id, "Completed", now=reviewed)

        assert event.status == "Completed"
        assert event.reviewed_at == reviewed

    def test_unknown_status_rejected(self, db):
        store = EventStore(db)
        event_id = store.insert(make_event()).event_id
        with pytest.raises(ValidationError):
            store.update_status(event_id, "Archived")

    def test_unknown_event_rejected(self, db):
        with pytest.raises(ValidationError):
            EventStore(db).update_status(999, "Completed")


class TestIngestService:
    def test_ingest_recomputes_rollup(self, db, ingest_service):
        ingest_service.ingest(make_event(risk_level="High"), now=NOW)

        rollup = db.query(DailyAnalytics).one()
        assert rollup.project_id == "proj-a"
        assert rollup.date == NOW.date()
        assert rollup.total_events == 1
        assert rollup.compliance_score == 95.0

    def test_high_risk_event_queues_alert_and_prediction(self, ingest_service, queue):
        ingest_service.ingest(make_event(risk_level="Critical"), now=NOW)

        alerts = queue.tasks("deliver_alert")
        assert len(alerts) == 1
        assert alerts[0][0]["alert_type"] == "high_risk_event"
        assert queue.tasks("refresh_predictions") == [("proj-a",)]

    def test_low_risk_event_queues_nothing(self, ingest_service, queue):
        ingest_service.ingest(make_event(risk_level="Low"), now=NOW)
        assert queue.calls == []

    def test_redelivery_does_not_alert_twice(self, ingest_service, queue):
        ingest_service.ingest(make_event(source_message_id="x", risk_level="High"), now=NOW)
        ingest_service.ingest(make_event(source_message_id="x", risk_level="High"), now=NOW)
        assert len(queue.tasks("deliver_alert")) == 1

    def test_broker_outage_does_not_fail_ingest(self, db):
        from compliance_api.alerts.service import AlertService
        from compliance_api.events.service import IngestService
        from conftest import FakeQueue

        broken = FakeQueue(fail=True)
        service = IngestService(db, alert_service=AlertService(enqueue=broken), enqueue=broken)

        result = service.ingest(make_event(risk_level="High"), now=NOW)

        assert result.created is True
        assert db.query(ComplianceEvent).count() == 1

    def test_status_update_refreshes_rollup(self, db, ingest_service):
        event_id = ingest_service.ingest(make_event(risk_level="High"), now=NOW).event_id
        ingest_service.update_status(event_id, "Completed", now=NOW + timedelta(hours=1))

        assert db.query(DailyAnalytics).one().compliance_score == 100.0

    def test_event_is_immutable_apart_from_status(self, db, ingest_service):
        event_id = ingest_service.ingest(make_event(), now=NOW).event_id
        before = ingest_service.store.get(event_id)
        snapshot = (before.created_at, before.risk_level, before.message_text)

        ingest_service.update_status(event_id, "Dismissed", now=datetime(2026, 3, 11))
        after = ingest_service.store.get(event_id)
        assert (after.created_at, after.risk_level, after.message_text) == snapshot
