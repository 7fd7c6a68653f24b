"""Ingest service: store, roll up, then notify."""

import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from compliance_api.alerts.service import AlertService
from compliance_api.analytics.aggregator import AnalyticsAggregator
from compliance_api.celery_client import REFRESH_PREDICTIONS_TASK, enqueue as celery_enqueue
from compliance_api.events.store import EventStore, InsertResult
from compliance_api.ingestion.normalizer import CanonicalEvent
from compliance_api.models import ComplianceEvent
from compliance_api.utils.clock import utcnow

logger = logging.getLogger(__name__)


class IngestService:
    """Runs the ingest pipeline for one canonical event.

    The event commit is the durability boundary. The rollup is recomputed
    synchronously, also on re-delivery, so a rollup left stale by an
    earlier failure is repaired. Alerts and prediction refreshes are
    best-effort.
    """

    def __init__(
        self,
        db: Session,
        alert_service: Optional[AlertService] = None,
        enqueue: Optional[Callable] = None,
    ):
        """Initialize ingest service."""
        self.db = db
        self.store = EventStore(db)
        self.aggregator = AnalyticsAggregator(db)
        self.alerts = alert_service or AlertService()
        self.enqueue = enqueue or celery_enqueue

    def ingest(self, event: CanonicalEvent, now: Optional[datetime] = None) -> InsertResult:
        """Store an event and refresh the day's rollup.

        Raises:
            StorageError: the event or its rollup could not be written.
        """
        now = now or utcnow()
        result = self.store.insert(event)
        stored = result.event
        self.aggregator.recompute(stored.project_id, stored.created_at.date())

        if result.created:
            self.alerts.notify_ingested(stored, now)
            if stored.is_high_risk:
                self.request_prediction(stored.project_id)
        return result

    def update_status(self, event_id: int, status: str, now: Optional[datetime] = None) -> ComplianceEvent:
        """Apply a review action and refresh the rollup of the event's day."""
        event = self.store.update_status(event_id, status, now)
        self.aggregator.recompute(event.project_id, event.created_at.date())
        return event

    def request_prediction(self, project_id: str) -> bool:
        """Queue a prediction refresh for a project. Best-effort."""
        try:
            self.enqueue(REFRESH_PREDICTIONS_TASK, project_id)
        except Exception as e:
            logger.warning(
                f"Failed to enqueue prediction refresh: {e}",
                extra={"project_id": project_id},
                exc_info=True,
            )
            return False
        return True
