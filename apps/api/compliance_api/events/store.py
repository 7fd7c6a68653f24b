"""Append-only event store.

Events are keyed for idempotent re-delivery on
``(channel_id, source_message_id)``. The unique constraint is the
concurrency contract: racing inserts of the same message converge on one
row and every caller gets the same ``event_id`` back.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from compliance_api.errors import StorageError, ValidationError
from compliance_api.ingestion.normalizer import CanonicalEvent
from compliance_api.models import ComplianceEvent, EventStatus
from compliance_api.utils.clock import utcnow

logger = logging.getLogger(__name__)

ALL_PROJECTS = "all"


@dataclass(frozen=True)
class InsertResult:
    """Outcome of an insert; ``created`` is False for a re-delivery."""

    event_id: int
    created: bool
    event: ComplianceEvent


class EventStore:
    """Append-only persistence of compliance events."""

    def __init__(self, db: Session):
        """Initialize event store."""
        self.db = db

    def _find_by_message(self, channel_id: str, source_message_id: str) -> Optional[ComplianceEvent]:
        return (
            self.db.query(ComplianceEvent)
            .filter(
                ComplianceEvent.channel_id == channel_id,
                ComplianceEvent.source_message_id == source_message_id,
            )
            .first()
        )

    def insert(self, event: CanonicalEvent) -> InsertResult:
        """Persist a canonical event and commit.

        Re-delivery of an already stored ``(channel_id, source_message_id)``
        is a successful no-op returning the stored event id.

        Raises:
            StorageError: if the database rejects or cannot take the write.
        """
        try:
            existing = self._find_by_message(event.channel_id, event.source_message_id)
            if existing is not None:
                logger.info(
                    "Duplicate event delivery ignored",
                    extra={"event_id": existing.id, "channel_id": event.channel_id},
                )
                return InsertResult(event_id=existing.id, created=False, event=existing)

            row = ComplianceEvent(**event.to_row())
            self.db.add(row)
            self.db.commit()
            self.db.refresh(row)
        except IntegrityError:
            # Lost a race with a concurrent delivery of the same message.
            self.db.rollback()
            existing = self._find_by_message(event.channel_id, event.source_message_id)
            if existing is None:
                raise StorageError("Event insert rejected by integrity constraint")
            return InsertResult(event_id=existing.id, created=False, event=existing)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Event insert failed: {e}", exc_info=True)
            raise StorageError(f"Event store unavailable: {e}") from e

        logger.info(
            "Compliance event stored",
            extra={"event_id": row.id, "project_id": row.project_id, "risk_level": row.risk_level},
        )
        return InsertResult(event_id=row.id, created=True, event=row)

    def get(self, event_id: int) -> Optional[ComplianceEvent]:
        return self.db.query(ComplianceEvent).filter(ComplianceEvent.id == event_id).first()

    def get_many(self, event_ids: list[int]) -> dict[int, ComplianceEvent]:
        """Fetch events by id; missing ids are absent from the result."""
        if not event_ids:
            return {}
        rows = self.db.query(ComplianceEvent).filter(ComplianceEvent.id.in_(event_ids)).all()
        return {row.id: row for row in rows}

    def query(
        self,
        project_id: Optional[str],
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        regulation: Optional[str] = None,
    ) -> list[ComplianceEvent]:
        """Events in ``[start, end)`` ordered by ``created_at`` then ``event_id``.

        ``project_id`` of None or ``"all"`` spans every project.
        """
        try:
            q = self.db.query(ComplianceEvent)
            if project_id and project_id != ALL_PROJECTS:
                q = q.filter(ComplianceEvent.project_id == project_id)
            if start is not None:
                q = q.filter(ComplianceEvent.created_at >= start)
            if end is not None:
                q = q.filter(ComplianceEvent.created_at < end)
            if regulation and regulation.lower() != ALL_PROJECTS:
                q = q.filter(ComplianceEvent.regulation == regulation)
            return q.order_by(ComplianceEvent.created_at.asc(), ComplianceEvent.id.asc()).all()
        except SQLAlchemyError as e:
            raise StorageError(f"Event query failed: {e}") from e

    def recent(self, project_id: str, limit: int = 100) -> list[ComplianceEvent]:
        """The newest ``limit`` events of a project, returned oldest first."""
        try:
            rows = (
                self.db.query(ComplianceEvent)
                .filter(ComplianceEvent.project_id == project_id)
                .order_by(ComplianceEvent.created_at.desc(), ComplianceEvent.id.desc())
                .limit(limit)
                .all()
            )
        except SQLAlchemyError as e:
            raise StorageError(f"Event query failed: {e}") from e
        return list(reversed(rows))

    def update_status(self, event_id: int, status: str, now: Optional[datetime] = None) -> ComplianceEvent:
        """Apply a review action; the only mutation an event accepts.

        Raises:
            ValidationError: unknown status or event.
            StorageError: write failed.
        """
        allowed = {member.value for member in EventStatus}
        if status not in allowed:
            raise ValidationError(
                f"Unknown status: {status}",
                errors=[{"field": "status", "message": f"must be one of {sorted(allowed)}"}],
            )
        event = self.get(event_id)
        if event is None:
            raise ValidationError(
                f"Event {event_id} not found",
                errors=[{"field": "event_id", "message": "not found"}],
            )
        try:
            event.status = status
            if status == EventStatus.PENDING_REVIEW.value:
                event.reviewed_at = None
            elif event.reviewed_at is None:
                event.reviewed_at = now or utcnow()
            self.db.commit()
            self.db.refresh(event)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageError(f"Status update failed: {e}") from e
        logger.info("Event status updated", extra={"event_id": event_id, "status": status})
        return event
