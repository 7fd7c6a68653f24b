"""Audit chain builder with hash chaining."""

import json
import logging
from collections import Counter
from contextlib import contextmanager
from datetime import date, datetime, time, timedelta
from typing import Optional

import redis
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from compliance_api.errors import ChainIntegrityError, StorageError, ValidationError
from compliance_api.events.store import EventStore
from compliance_api.ledger.chain import (
    canonical_event,
    compute_report_hash,
    order_events,
    serialize_partition,
    verify_chain,
)
from compliance_api.models import GENESIS_HASH, AuditRecord
from compliance_api.models.event import HIGH_RISK_LEVELS
from compliance_api.utils.clock import utcnow
from compliance_api.utils.metrics import audit_exports, audit_records_written, chain_verifications

logger = logging.getLogger(__name__)

AUDIT_LOCK_NAME = "compliance:audit-chain:lock"
DEFAULT_EXPORTER = "system-cron"


class AuditRunInProgress(StorageError):
    """Another audit run holds the chain lock."""


@contextmanager
def audit_run_lock(redis_url: str, timeout: int):
    """Global single-writer lock for audit runs.

    Raises:
        AuditRunInProgress: if another run holds the lock.
    """
    client = redis.Redis.from_url(redis_url)
    lock = client.lock(AUDIT_LOCK_NAME, timeout=timeout, blocking_timeout=0)
    if not lock.acquire(blocking=False):
        raise AuditRunInProgress("Another audit export run is in progress")
    try:
        yield lock
    finally:
        try:
            lock.release()
        except redis.exceptions.LockError:
            logger.warning("Audit lock expired before release")


def storage_key_for(project_id: str, period_start: date, report_hash: str) -> str:
    return f"{project_id}/{period_start.isoformat()}/{report_hash}.json"


def partition_summary(events: list) -> dict:
    """Derived counts stored alongside an audit record."""
    return {
        "total_events": len(events),
        "by_type": dict(Counter(e.event_type for e in events)),
        "by_risk": dict(Counter(e.risk_level for e in events)),
        "high_priority_count": sum(1 for e in events if e.risk_level in HIGH_RISK_LEVELS),
        "unique_users": len({e.user_id for e in events if e.user_id}),
    }


class AuditChainBuilder:
    """Appends audit records to the single global chain.

    A run must hold ``audit_run_lock``; the unique ``previous_hash``
    constraint rejects a second writer that slips past it.
    """

    def __init__(self, db: Session, storage=None):
        """Initialize builder.

        Args:
            db: database session
            storage: optional ``S3Storage``; records are exported when given
        """
        self.db = db
        self.store = EventStore(db)
        self.storage = storage
        self.failed_exports: list[int] = []

    def tail(self) -> Optional[AuditRecord]:
        return self.db.query(AuditRecord).order_by(AuditRecord.sequence.desc()).first()

    def tail_hash(self) -> str:
        last = self.tail()
        return last.report_hash if last else GENESIS_HASH

    def records(self, project_id: Optional[str] = None, limit: Optional[int] = None) -> list[AuditRecord]:
        q = self.db.query(AuditRecord)
        if project_id:
            q = q.filter(AuditRecord.project_id == project_id)
        q = q.order_by(AuditRecord.sequence.asc())
        if limit:
            q = q.limit(limit)
        return q.all()

    def _completed_partitions(self, period_start: date, period_end: date) -> set[tuple[str, str]]:
        rows = (
            self.db.query(AuditRecord.project_id, AuditRecord.regulation)
            .filter(AuditRecord.period_start == period_start, AuditRecord.period_end == period_end)
            .all()
        )
        return {(row[0], row[1]) for row in rows}

    def _overlapping_periods(self, period_start: date, period_end: date) -> list[tuple[date, date]]:
        """Chained periods that overlap ``[period_start, period_end)`` without matching it."""
        rows = (
            self.db.query(AuditRecord.period_start, AuditRecord.period_end)
            .filter(AuditRecord.period_start < period_end, AuditRecord.period_end > period_start)
            .distinct()
            .all()
        )
        return sorted(
            (row[0], row[1]) for row in rows if (row[0], row[1]) != (period_start, period_end)
        )

    def run(
        self,
        period_start: date,
        period_end: Optional[date] = None,
        exported_by: str = DEFAULT_EXPORTER,
        now: Optional[datetime] = None,
    ) -> list[AuditRecord]:
        """Chain every (project, regulation) partition of a period.

        The period covers events created in ``[period_start, period_end)``;
        ``period_end`` defaults to the following day. Partitions are
        processed in lexicographic order, each committed before the next
        is hashed. Partitions already recorded for the same period are
        skipped, so a failed run can be retried. A period that overlaps an
        already chained period without matching it exactly is rejected, so
        no event is covered by two records.

        Returns:
            Records appended by this run (empty for an empty period).

        Raises:
            ValidationError: the period is empty or overlaps a chained one.
            StorageError: a record could not be persisted. Earlier records
                of the run stay committed.
        """
        period_end = period_end or period_start + timedelta(days=1)
        if period_end <= period_start:
            raise ValidationError(
                "Audit period must end after it starts",
                errors=[{"field": "period_end", "message": "must be after period_start"}],
            )
        overlapping = self._overlapping_periods(period_start, period_end)
        if overlapping:
            chained = ", ".join(f"{start.isoformat()}..{end.isoformat()}" for start, end in overlapping)
            raise ValidationError(
                f"Audit period overlaps already chained periods: {chained}",
                errors=[{"field": "period", "message": f"overlaps {chained}"}],
            )
        now = now or utcnow()
        events = self.store.query(
            None,
            datetime.combine(period_start, time.min),
            datetime.combine(period_end, time.min),
        )
        if not events:
            logger.info("No events for audit period", extra={"period_start": period_start.isoformat()})
            return []

        partitions: dict[tuple[str, str], list] = {}
        for event in events:
            partitions.setdefault((event.project_id, event.regulation), []).append(event)

        done = self._completed_partitions(period_start, period_end)
        written = []
        for key in sorted(partitions):
            if key in done:
                logger.info("Partition already chained, skipping", extra={"partition": "::".join(key)})
                continue
            written.append(self._append(key, order_events(partitions[key]), period_start, period_end, exported_by, now))

        logger.info(
            "Audit export run complete",
            extra={"period_start": period_start.isoformat(), "records": len(written)},
        )

        if self.storage is not None:
            for record in written:
                if not self.export_record(record):
                    self.failed_exports.append(record.id)
        return written

    def _append(
        self,
        key: tuple[str, str],
        events: list,
        period_start: date,
        period_end: date,
        exported_by: str,
        now: datetime,
    ) -> AuditRecord:
        project_id, regulation = key
        last = self.tail()
        previous_hash = last.report_hash if last else GENESIS_HASH
        sequence = last.sequence + 1 if last else 1

        serialized = serialize_partition(project_id, regulation, period_start, period_end, events)
        report_hash = compute_report_hash(serialized, previous_hash)
        summary = partition_summary(events)

        record = AuditRecord(
            sequence=sequence,
            project_id=project_id,
            regulation=regulation,
            period_start=period_start,
            period_end=period_end,
            event_ids=[e.id for e in events],
            report_hash=report_hash,
            previous_hash=previous_hash,
            summary=summary,
            metadata_json={"event_types": summary["by_type"], "risk_levels": summary["by_risk"]},
            storage_key=storage_key_for(project_id, period_start, report_hash),
            exported_by=exported_by,
            export_timestamp=now,
        )
        try:
            self.db.add(record)
            self.db.commit()
            self.db.refresh(record)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                f"Failed to persist audit record: {e}",
                extra={"partition": f"{project_id}::{regulation}"},
                exc_info=True,
            )
            raise StorageError(f"Audit record for {project_id}::{regulation} not persisted: {e}") from e

        audit_records_written.inc()
        logger.info(
            "Audit record appended",
            extra={"record_id": record.id, "sequence": sequence, "report_hash": report_hash},
        )
        return record

    def export_document(self, record: AuditRecord) -> dict:
        """The self-contained document uploaded for offline verification."""
        events = self.store.get_many(record.event_ids)
        return {
            "sequence": record.sequence,
            "project_id": record.project_id,
            "regulation": record.regulation,
            "period_start": record.period_start.isoformat(),
            "period_end": record.period_end.isoformat(),
            "event_ids": record.event_ids,
            "events": [canonical_event(events[i]) for i in record.event_ids if i in events],
            "summary": record.summary,
            "metadata": record.metadata_json,
            "report_hash": record.report_hash,
            "previous_hash": record.previous_hash,
            "exported_by": record.exported_by,
            "export_timestamp": record.export_timestamp.isoformat(),
        }

    def export_record(self, record: AuditRecord) -> bool:
        """Upload one record; failures are logged and left for retry."""
        try:
            body = json.dumps(self.export_document(record), sort_keys=True, indent=2).encode("utf-8")
            self.storage.upload_object(record.storage_key, body, content_type="application/json")
        except Exception as e:
            audit_exports.labels(status="failed").inc()
            logger.warning(
                f"Audit record export failed: {e}",
                extra={"record_id": record.id, "storage_key": record.storage_key},
                exc_info=True,
            )
            return False
        audit_exports.labels(status="success").inc()
        return True

    def verify(self) -> dict:
        """Verify the whole chain.

        Returns:
            ``{"valid": True, "records_checked": n}`` or
            ``{"valid": False, "records_checked": n, "first_invalid_record": {...}}``
        """
        records = self.records()
        event_ids = sorted({event_id for record in records for event_id in record.event_ids})
        events_by_id = self.store.get_many(event_ids)
        try:
            checked = verify_chain(records, events_by_id)
        except ChainIntegrityError as e:
            chain_verifications.labels(result="invalid").inc()
            logger.error(
                f"Audit chain integrity failure: {e.message}",
                extra={"record_id": e.record_id, "sequence": e.sequence},
            )
            return {
                "valid": False,
                "records_checked": e.records_checked,
                "first_invalid_record": e.to_dict(),
            }
        chain_verifications.labels(result="valid").inc()
        return {"valid": True, "records_checked": checked}
