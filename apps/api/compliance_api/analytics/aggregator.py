"""Daily analytics rollups.

Every recompute is a full scan of the day's events followed by a
last-writer-wins overwrite of the row, so concurrent or replayed triggers
converge on the same values regardless of ordering.
"""

import logging
from datetime import date, datetime, time, timedelta
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from compliance_api.analytics.scoring import rollup_metrics
from compliance_api.errors import StorageError
from compliance_api.events.store import EventStore
from compliance_api.models import DailyAnalytics
from compliance_api.utils.clock import utcnow

logger = logging.getLogger(__name__)


def day_bounds(day: date) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


class AnalyticsAggregator:
    """Owns the per-project, per-day rollup rows."""

    def __init__(self, db: Session):
        """Initialize aggregator."""
        self.db = db
        self.store = EventStore(db)

    def _get(self, project_id: str, day: date) -> Optional[DailyAnalytics]:
        return (
            self.db.query(DailyAnalytics)
            .filter(DailyAnalytics.project_id == project_id, DailyAnalytics.date == day)
            .first()
        )

    def recompute(self, project_id: str, day: Optional[date] = None) -> DailyAnalytics:
        """Recompute and persist the rollup for ``(project_id, day)``.

        Raises:
            StorageError: if the rollup cannot be written.
        """
        day = day or utcnow().date()
        start, end = day_bounds(day)
        metrics = rollup_metrics(self.store.query(project_id, start, end))

        for attempt in range(2):
            try:
                row = self._get(project_id, day)
                if row is None:
                    row = DailyAnalytics(project_id=project_id, date=day)
                    self.db.add(row)
                for field, value in metrics.items():
                    setattr(row, field, value)
                row.updated_at = utcnow()
                self.db.commit()
                self.db.refresh(row)
                break
            except IntegrityError:
                # A concurrent recompute created the row first; overwrite it.
                self.db.rollback()
                if attempt:
                    raise StorageError(f"Rollup upsert for {project_id}/{day} kept conflicting")
            except SQLAlchemyError as e:
                self.db.rollback()
                raise StorageError(f"Rollup recompute failed: {e}") from e

        logger.debug(
            "Rollup recomputed",
            extra={"project_id": project_id, "date": day.isoformat(), "score": row.compliance_score},
        )
        return row

    def rollups(self, project_id: Optional[str], days: int = 30, until: Optional[date] = None) -> list[DailyAnalytics]:
        """Rollups for the ``days`` days ending at ``until``, oldest first.

        ``project_id`` of None or ``"all"`` returns every project's rows.
        """
        until = until or utcnow().date()
        since = until - timedelta(days=days - 1)
        try:
            q = self.db.query(DailyAnalytics).filter(
                DailyAnalytics.date >= since,
                DailyAnalytics.date <= until,
            )
            if project_id and project_id != "all":
                q = q.filter(DailyAnalytics.project_id == project_id)
            return q.order_by(DailyAnalytics.date.asc(), DailyAnalytics.project_id.asc()).all()
        except SQLAlchemyError as e:
            raise StorageError(f"Rollup query failed: {e}") from e
