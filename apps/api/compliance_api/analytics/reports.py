"""On-demand summary and health reports over a rolling window."""

import logging
from collections import Counter, defaultdict
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from compliance_api.analytics.aggregator import AnalyticsAggregator
from compliance_api.analytics.scoring import (
    count_high_risk_pending,
    count_overdue,
    detailed_compliance_score,
    score_trend,
)
from compliance_api.events.store import ALL_PROJECTS, EventStore
from compliance_api.models.event import EventType
from compliance_api.utils.clock import utcnow

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_DAYS = 30
PENDING_DESCRIPTION_LENGTH = 100
ON_TRACK_SCORE = 90
AT_RISK_SCORE = 70


def regulation_status(score: float) -> str:
    if score >= ON_TRACK_SCORE:
        return "on_track"
    if score >= AT_RISK_SCORE:
        return "at_risk"
    return "critical"


def _truncate(text: Optional[str], length: int = PENDING_DESCRIPTION_LENGTH) -> str:
    text = text or ""
    return text if len(text) <= length else text[:length] + "..."


class ReportService:
    """Summary and health views for a project or for all projects."""

    def __init__(self, db: Session):
        """Initialize report service."""
        self.db = db
        self.store = EventStore(db)
        self.aggregator = AnalyticsAggregator(db)

    def _window(self, project_id: str, regulation: Optional[str], window_days: int, now: datetime) -> list:
        return self.store.query(project_id, start=now - timedelta(days=window_days), regulation=regulation)

    def summary(
        self,
        project_id: str = ALL_PROJECTS,
        regulation: Optional[str] = None,
        window_days: int = DEFAULT_WINDOW_DAYS,
        now: Optional[datetime] = None,
    ) -> dict:
        """Aggregated counts, score, pending actions and timeline."""
        now = now or utcnow()
        events = self._window(project_id, regulation, window_days, now)
        by_type = Counter(e.event_type for e in events)

        return {
            "project_id": project_id,
            "regulation": (regulation or ALL_PROJECTS).upper(),
            "period": f"Last {window_days} days",
            "total_events": len(events),
            "compliance_score": detailed_compliance_score(events, now),
            "approvals": by_type.get(EventType.APPROVAL.value, 0),
            "risks": by_type.get(EventType.RISK_DISCUSSION.value, 0),
            "decisions": by_type.get(EventType.DECISION.value, 0),
            "milestones": by_type.get(EventType.MILESTONE.value, 0),
            "events_by_type": dict(by_type),
            "events_by_regulation": dict(Counter(e.regulation for e in events)),
            "events_by_risk": dict(Counter(e.risk_level for e in events)),
            "pending_actions": [
                {
                    "event_id": e.id,
                    "type": e.event_type,
                    "description": _truncate(e.message_text),
                    "risk": e.risk_level,
                    "deadline": e.deadline.isoformat() if e.deadline else None,
                    "url": e.evidence_url,
                }
                for e in events
                if e.is_pending
            ],
            "timeline": [
                {
                    "date": e.occurred_at.isoformat(),
                    "type": e.event_type,
                    "regulation": e.regulation,
                    "risk": e.risk_level,
                    "user": e.user_name,
                }
                for e in events
            ],
        }

    def health(
        self,
        project_id: str = ALL_PROJECTS,
        window_days: int = DEFAULT_WINDOW_DAYS,
        now: Optional[datetime] = None,
    ) -> dict:
        """Current score, trend and per-regulation breakdown."""
        now = now or utcnow()
        events = self._window(project_id, None, window_days, now)

        by_regulation = defaultdict(list)
        for event in events:
            by_regulation[event.regulation].append(event)
        regulations = []
        for name in sorted(by_regulation):
            score = detailed_compliance_score(by_regulation[name], now)
            regulations.append(
                {
                    "regulation": name,
                    "score": score,
                    "status": regulation_status(score),
                    "events": len(by_regulation[name]),
                }
            )

        # Daily mean across projects when reporting on all of them.
        daily = defaultdict(list)
        for rollup in self.aggregator.rollups(project_id, days=window_days, until=now.date()):
            daily[rollup.date].append(rollup.compliance_score)
        daily_scores = [sum(scores) / len(scores) for _, scores in sorted(daily.items())]

        return {
            "project_id": project_id,
            "score": detailed_compliance_score(events, now),
            "trend": score_trend(daily_scores),
            "regulations": regulations,
            "high_priority": count_high_risk_pending(events),
            "overdue": count_overdue(events, now),
            "missing_docs": sum(1 for e in events if e.is_pending and not e.evidence_url),
        }
