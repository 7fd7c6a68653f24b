"""Compliance score formulas.

Two variants are kept side by side and callers choose between them:

- ``compliance_score``: ingest-time score stored on the daily rollup.
- ``detailed_compliance_score``: point-in-time score for summaries and
  health checks, with coverage and recency bonuses and an overdue penalty.
"""

from collections import Counter
from datetime import datetime, timedelta
from typing import Iterable, Optional, Sequence

from compliance_api.models.event import HIGH_RISK_LEVELS, EventStatus, EventType
from compliance_api.utils.clock import utcnow

HIGH_RISK_PENDING_PENALTY = 5
PENDING_APPROVAL_PENALTY = 3
OVERDUE_PENALTY = 10
COVERAGE_POINTS_PER_TYPE = 2
MAX_COVERAGE_BONUS = 10
MAX_RECENCY_BONUS = 10
RECENCY_WINDOW = timedelta(days=7)
EMPTY_WINDOW_SCORE = 50.0

_PENDING = EventStatus.PENDING_REVIEW.value


def _clamp(score: float) -> float:
    return max(0.0, min(100.0, score))


def count_high_risk_pending(events: Iterable) -> int:
    return sum(1 for e in events if e.risk_level in HIGH_RISK_LEVELS and e.status == _PENDING)


def count_pending_approvals(events: Iterable) -> int:
    return sum(1 for e in events if e.event_type == EventType.APPROVAL.value and e.status == _PENDING)


def count_overdue(events: Iterable, now: datetime) -> int:
    return sum(1 for e in events if e.deadline is not None and e.deadline < now and e.status == _PENDING)


def compliance_score(events: Iterable) -> float:
    """Ingest-time score.

    100, minus 5 per High/Critical event still pending review, minus 3 per
    approval still pending review, clamped to [0, 100].
    """
    events = list(events)
    score = 100
    score -= HIGH_RISK_PENDING_PENALTY * count_high_risk_pending(events)
    score -= PENDING_APPROVAL_PENALTY * count_pending_approvals(events)
    return float(_clamp(score))


def detailed_compliance_score(events: Iterable, now: Optional[datetime] = None) -> float:
    """Point-in-time score over a window of events.

    Starts at 100, subtracts 5 per High/Critical event pending review and
    10 per pending event whose deadline has passed, then adds a coverage
    bonus of 2 per distinct event type (max 10) and a recency bonus of up
    to 10 for the share of events created in the last 7 days. Clamped to
    [0, 100] and rounded to one decimal. An empty window scores 50.
    """
    events = list(events)
    if not events:
        return EMPTY_WINDOW_SCORE
    now = now or utcnow()

    score = 100.0
    score -= HIGH_RISK_PENDING_PENALTY * count_high_risk_pending(events)
    score -= OVERDUE_PENALTY * count_overdue(events, now)

    distinct_types = len({e.event_type for e in events})
    score += min(distinct_types * COVERAGE_POINTS_PER_TYPE, MAX_COVERAGE_BONUS)

    recent = sum(1 for e in events if e.created_at >= now - RECENCY_WINDOW)
    score += min(MAX_RECENCY_BONUS, MAX_RECENCY_BONUS * recent / len(events))

    return round(_clamp(score), 1)


TREND_BAND = 5.0
TREND_WINDOW_DAYS = 7


def score_trend(daily_scores: Sequence[float]) -> str:
    """``improving``, ``declining`` or ``stable`` from daily scores, oldest first.

    Compares the mean of the last 7 scores with the mean of the 7 before
    them; moves within 5 points are stable.
    """
    recent = daily_scores[-TREND_WINDOW_DAYS:]
    previous = daily_scores[-2 * TREND_WINDOW_DAYS:-TREND_WINDOW_DAYS]
    if not recent or not previous:
        return "stable"
    delta = sum(recent) / len(recent) - sum(previous) / len(previous)
    if delta > TREND_BAND:
        return "improving"
    if delta < -TREND_BAND:
        return "declining"
    return "stable"


def rollup_metrics(events: Iterable) -> dict:
    """Full recompute of one day's rollup values from its events."""
    events = list(events)
    return {
        "total_events": len(events),
        "high_risk_count": sum(1 for e in events if e.risk_level in HIGH_RISK_LEVELS),
        "pending_approvals": count_pending_approvals(events),
        "events_by_type": dict(Counter(e.event_type for e in events)),
        "events_by_regulation": dict(Counter(e.regulation for e in events)),
        "compliance_score": compliance_score(events),
    }
