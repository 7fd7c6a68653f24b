"""Feature extraction for risk prediction.

Pure: takes already-loaded events and rollups plus a clock. Inputs that
come from outside the event store (dependency chain length, team
workload) are explicit arguments with documented defaults.
"""

from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Sequence

import numpy as np

from compliance_api.analytics.scoring import count_pending_approvals, score_trend
from compliance_api.errors import PredictionInputError
from compliance_api.models.event import HIGH_RISK_LEVELS, EventStatus, EventType

DEFAULT_DEPENDENCY_CHAIN_LENGTH = 3
DEFAULT_TEAM_WORKLOAD = 0.7
DEFAULT_RESPONSE_TIME_HOURS = 48.0
DEFAULT_DAYS_UNTIL_DEADLINE = 14
DEFAULT_HISTORICAL_DELAY_RATE = 0.3
VELOCITY_WINDOW_DAYS = 7


@dataclass(frozen=True)
class FeatureVector:
    avg_response_time_hours: float
    pending_approvals: int
    days_until_deadline: int
    dependency_chain_length: int
    team_workload: float
    historical_delay_rate: float
    event_velocity: float
    high_risk_count: int
    recent_trend: str = "stable"
    events_analyzed: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def average_response_time(events: Sequence, now: datetime) -> float:
    """Mean hours from creation to review over approval events.

    Approvals still pending count with their current age. Without any
    approvals the default of 48 hours is used.
    """
    samples = []
    for event in events:
        if event.event_type != EventType.APPROVAL.value:
            continue
        if event.status == EventStatus.PENDING_REVIEW.value:
            end = now
        elif event.reviewed_at is not None:
            end = event.reviewed_at
        else:
            continue
        samples.append(max(0.0, (end - event.created_at).total_seconds() / 3600))
    if not samples:
        return DEFAULT_RESPONSE_TIME_HOURS
    return round(float(np.mean(samples)), 2)


def days_until_deadline(events: Sequence, now: datetime) -> int:
    """Whole days to the nearest future deadline of a pending event."""
    upcoming = [
        e.deadline
        for e in events
        if e.deadline is not None and e.deadline >= now and e.status == EventStatus.PENDING_REVIEW.value
    ]
    if not upcoming:
        return DEFAULT_DAYS_UNTIL_DEADLINE
    return (min(upcoming) - now).days


def historical_delay_rate(rollups: Sequence) -> float:
    """Share of the period's approvals still pending at rollup time."""
    if not rollups:
        return DEFAULT_HISTORICAL_DELAY_RATE
    approvals = sum((r.events_by_type or {}).get(EventType.APPROVAL.value, 0) for r in rollups)
    if not approvals:
        return DEFAULT_HISTORICAL_DELAY_RATE
    pending = sum(r.pending_approvals for r in rollups)
    return round(min(1.0, pending / approvals), 3)


def event_velocity(events: Sequence, now: datetime) -> float:
    """Events per day over the last 7 days."""
    since = now - timedelta(days=VELOCITY_WINDOW_DAYS)
    recent = sum(1 for e in events if e.created_at >= since)
    return round(recent / VELOCITY_WINDOW_DAYS, 3)


def extract_features(
    events: Sequence,
    rollups: Sequence,
    now: datetime,
    dependency_chain_length: int = DEFAULT_DEPENDENCY_CHAIN_LENGTH,
    team_workload: float = DEFAULT_TEAM_WORKLOAD,
    min_events: int = 1,
) -> FeatureVector:
    """Build the feature vector for one project.

    Args:
        events: the project's recent events (up to 100)
        rollups: the project's daily rollups (up to 30 days), oldest first
        now: reference time
        dependency_chain_length: cross-team dependency depth
        team_workload: team utilisation in [0, 1]
        min_events: minimum history required

    Raises:
        PredictionInputError: fewer than ``min_events`` events.
    """
    if len(events) < min_events:
        raise PredictionInputError(
            f"Need at least {min_events} events to predict, found {len(events)}"
        )
    return FeatureVector(
        avg_response_time_hours=average_response_time(events, now),
        pending_approvals=count_pending_approvals(events),
        days_until_deadline=days_until_deadline(events, now),
        dependency_chain_length=dependency_chain_length,
        team_workload=team_workload,
        historical_delay_rate=historical_delay_rate(rollups),
        event_velocity=event_velocity(events, now),
        high_risk_count=sum(1 for e in events if e.risk_level in HIGH_RISK_LEVELS),
        recent_trend=score_trend([r.compliance_score for r in rollups]),
        events_analyzed=len(events),
    )
