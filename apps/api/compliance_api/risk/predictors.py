"""Rule-based risk predictors.

Each predictor is a fixed list of indicator triggers. A triggered
indicator adds its weight to the predictor's probability (capped at 1.0)
and contributes an explanatory factor and, usually, a recommendation.
Weights are non-negative, so probabilities are monotone in every trigger.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Optional

from compliance_api.risk.features import FeatureVector

INCLUSION_THRESHOLD = 0.3


@dataclass(frozen=True)
class Recommendation:
    action: str
    priority: str
    estimated_effort: str
    expected_risk_reduction: float

    def to_dict(self) -> dict:
        return {
            "action": self.action,
            "priority": self.priority,
            "estimated_effort": self.estimated_effort,
            "expected_risk_reduction": self.expected_risk_reduction,
        }


@dataclass(frozen=True)
class Trigger:
    factor: str
    weight: float
    threshold: float
    value: Callable[[FeatureVector], float]
    fires: Callable[[FeatureVector], bool]
    recommendation: Optional[Recommendation] = None


@dataclass(frozen=True)
class Predictor:
    category: str
    title: str
    teams: tuple[str, ...]
    confidence: float
    delay_days: Callable[[FeatureVector], int]
    triggers: tuple[Trigger, ...] = field(default_factory=tuple)

    def evaluate(self, features: FeatureVector) -> tuple[float, list[dict], list[dict]]:
        """Probability, factors and recommendations for a feature vector."""
        probability = 0.0
        factors = []
        recommendations = []
        for trigger in self.triggers:
            if not trigger.fires(features):
                continue
            probability += trigger.weight
            factors.append(
                {
                    "factor": trigger.factor,
                    "impact_score": trigger.weight,
                    "current_value": trigger.value(features),
                    "threshold_value": trigger.threshold,
                }
            )
            if trigger.recommendation is not None:
                recommendations.append(trigger.recommendation.to_dict())
        return round(min(1.0, probability), 4), factors, recommendations


APPROVAL_DELAY = Predictor(
    category="approval_delay",
    title="Approval Process Delay Risk",
    teams=("Compliance Team", "Legal"),
    confidence=0.85,
    # Half days round up
    delay_days=lambda f: math.floor(f.avg_response_time_hours / 24 + 0.5),
    triggers=(
        Trigger(
            factor="Slow average response time",
            weight=0.35,
            threshold=48,
            value=lambda f: f.avg_response_time_hours,
            fires=lambda f: f.avg_response_time_hours > 72,
            recommendation=Recommendation("Escalate to manager for priority review", "high", "30 minutes", 0.25),
        ),
        Trigger(
            factor="High number of pending approvals",
            weight=0.3,
            threshold=3,
            value=lambda f: f.pending_approvals,
            fires=lambda f: f.pending_approvals > 5,
            recommendation=Recommendation("Schedule dedicated approval session", "high", "2 hours", 0.3),
        ),
        Trigger(
            factor="Tight deadline",
            weight=0.25,
            threshold=14,
            value=lambda f: f.days_until_deadline,
            fires=lambda f: f.days_until_deadline < 7,
            recommendation=Recommendation("Request expedited review process", "critical", "1 hour", 0.2),
        ),
    ),
)

DEPENDENCY_BOTTLENECK = Predictor(
    category="dependency_bottleneck",
    title="Cross-Team Dependency Delay",
    teams=("Engineering", "Product", "Legal"),
    confidence=0.78,
    delay_days=lambda f: f.dependency_chain_length * 2,
    triggers=(
        Trigger(
            factor="Complex dependency chain",
            weight=0.4,
            threshold=3,
            value=lambda f: f.dependency_chain_length,
            fires=lambda f: f.dependency_chain_length > 4,
            recommendation=Recommendation("Parallelize independent tasks", "medium", "4 hours", 0.25),
        ),
        Trigger(
            factor="Team approaching capacity",
            weight=0.35,
            threshold=0.75,
            value=lambda f: f.team_workload,
            fires=lambda f: f.team_workload > 0.85,
            recommendation=Recommendation(
                "Allocate additional resources or extend timeline", "high", "Varies", 0.35
            ),
        ),
        Trigger(
            factor="High historical delay rate",
            weight=0.2,
            threshold=0.25,
            value=lambda f: f.historical_delay_rate,
            fires=lambda f: f.historical_delay_rate > 0.4,
        ),
    ),
)

DOCUMENTATION_GAP = Predictor(
    category="documentation_gap",
    title="Incomplete Compliance Documentation",
    teams=("Compliance Team",),
    confidence=0.72,
    delay_days=lambda f: 7,
    triggers=(
        Trigger(
            factor="Low compliance event velocity",
            weight=0.45,
            threshold=1.0,
            value=lambda f: f.event_velocity,
            fires=lambda f: f.event_velocity < 0.5,
            recommendation=Recommendation("Schedule documentation sprint", "high", "1 day", 0.4),
        ),
        Trigger(
            factor="Deadline approaching with sparse documentation",
            weight=0.3,
            threshold=14,
            value=lambda f: f.days_until_deadline,
            fires=lambda f: f.days_until_deadline < 14 and f.event_velocity < 1.0,
            recommendation=Recommendation(
                "Auto-generate draft documentation from existing events", "critical", "2 hours", 0.3
            ),
        ),
    ),
)

RESOURCE_CONSTRAINT = Predictor(
    category="resource_constraint",
    title="Team Bandwidth Limitation",
    teams=("All Teams",),
    confidence=0.8,
    delay_days=lambda f: 5,
    triggers=(
        Trigger(
            factor="Team severely overloaded",
            weight=0.5,
            threshold=0.75,
            value=lambda f: f.team_workload,
            fires=lambda f: f.team_workload > 0.9,
            recommendation=Recommendation(
                "Bring in external contractors or extend deadline", "critical", "Varies", 0.45
            ),
        ),
    ),
)

PREDICTORS = (APPROVAL_DELAY, DEPENDENCY_BOTTLENECK, DOCUMENTATION_GAP, RESOURCE_CONSTRAINT)


def severity_for(probability: float) -> str:
    """Severity band for a probability (closed lower bounds)."""
    if probability >= 0.85:
        return "Critical"
    if probability >= 0.70:
        return "High"
    if probability >= 0.50:
        return "Medium"
    return "Low"


def impact_date(now: datetime, horizon_days: int, delay_days: int) -> datetime:
    return now + timedelta(days=min(horizon_days, delay_days))


def run_predictors(
    features: FeatureVector,
    horizon_days: int,
    now: datetime,
    predictors=PREDICTORS,
) -> list[dict]:
    """Evaluate every predictor and return emitted risks, most probable first.

    A predictor is emitted only when its probability exceeds 0.3. Ties keep
    predictor order.
    """
    risks = []
    for predictor in predictors:
        probability, factors, recommendations = predictor.evaluate(features)
        if probability <= INCLUSION_THRESHOLD:
            continue
        risks.append(
            {
                "category": predictor.category,
                "title": predictor.title,
                "severity": severity_for(probability),
                "probability": probability,
                "impact_date": impact_date(now, horizon_days, predictor.delay_days(features)),
                "affected_teams": list(predictor.teams),
                "factors": factors,
                "recommendations": recommendations,
                "confidence": predictor.confidence,
            }
        )
    # sorted() is stable
    return sorted(risks, key=lambda risk: risk["probability"], reverse=True)


def overall_risk_score(risks: list[dict]) -> float:
    """Mean probability as a 0-100 score, one decimal; 0 without risks."""
    if not risks:
        return 0.0
    mean = sum(risk["probability"] for risk in risks) / len(risks)
    return round(mean * 100, 1)
