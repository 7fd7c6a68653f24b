"""Risk prediction service."""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from compliance_api.analytics.aggregator import AnalyticsAggregator
from compliance_api.errors import PredictionInputError, StorageError
from compliance_api.events.store import EventStore
from compliance_api.models import RiskPrediction
from compliance_api.risk.features import extract_features
from compliance_api.risk.predictors import overall_risk_score, run_predictors
from compliance_api.settings import get_settings
from compliance_api.utils.clock import utcnow
from compliance_api.utils.metrics import predictions_generated

logger = logging.getLogger(__name__)

EVENT_HISTORY_LIMIT = 100
ROLLUP_HISTORY_DAYS = 30
SEVERITIES = ("Critical", "High", "Medium", "Low")


def build_response(project_id: str, status: str, risks: list[dict], features: Optional[dict]) -> dict:
    return {
        "project_id": project_id,
        "status": status,
        "risks": [{**risk, "impact_date": risk["impact_date"].isoformat()} for risk in risks],
        "summary": {
            "total_risks": len(risks),
            "by_severity": {
                severity.lower(): sum(1 for risk in risks if risk["severity"] == severity)
                for severity in SEVERITIES
            },
            "overall_risk_score": overall_risk_score(risks),
        },
        "features": features,
    }


class RiskPredictionService:
    """Derives features for a project and runs the predictor ensemble.

    Reads events and rollups; the only write is the traceability copy of
    each emitted prediction.
    """

    def __init__(self, db: Session):
        """Initialize prediction service."""
        self.db = db
        self.settings = get_settings()
        self.store = EventStore(db)
        self.aggregator = AnalyticsAggregator(db)

    def predict(
        self,
        project_id: str,
        days_ahead: Optional[int] = None,
        now: Optional[datetime] = None,
        dependency_chain_length: Optional[int] = None,
        team_workload: Optional[float] = None,
        persist: bool = True,
    ) -> dict:
        """Predict compliance risks for a project over ``days_ahead`` days.

        Insufficient history gives ``status == "insufficient_data"`` and no
        risks; a project with history but no triggered predictor gives
        ``status == "ok"`` and no risks.
        """
        now = now or utcnow()
        if days_ahead is None:
            days_ahead = self.settings.prediction_default_days_ahead
        if dependency_chain_length is None:
            dependency_chain_length = self.settings.prediction_dependency_chain_length
        if team_workload is None:
            team_workload = self.settings.prediction_team_workload

        events = self.store.recent(project_id, limit=EVENT_HISTORY_LIMIT)
        rollups = self.aggregator.rollups(project_id, days=ROLLUP_HISTORY_DAYS, until=now.date())
        try:
            features = extract_features(
                events,
                rollups,
                now,
                dependency_chain_length=dependency_chain_length,
                team_workload=team_workload,
                min_events=self.settings.prediction_min_events,
            )
        except PredictionInputError as e:
            logger.info(f"Skipping prediction: {e}", extra={"project_id": project_id})
            return build_response(project_id, "insufficient_data", [], None)

        risks = run_predictors(features, days_ahead, now)
        if persist and risks:
            self._persist(project_id, risks, now)

        for risk in risks:
            predictions_generated.labels(risk_category=risk["category"], severity=risk["severity"]).inc()
        logger.info(
            "Risk prediction complete",
            extra={"project_id": project_id, "risks": len(risks)},
        )
        return build_response(project_id, "ok", risks, features.to_dict())

    def _persist(self, project_id: str, risks: list[dict], now: datetime) -> None:
        try:
            for risk in risks:
                self.db.add(
                    RiskPrediction(
                        project_id=project_id,
                        risk_category=risk["category"],
                        title=risk["title"],
                        severity=risk["severity"],
                        probability=risk["probability"],
                        predicted_impact_date=risk["impact_date"],
                        affected_teams=risk["affected_teams"],
                        contributing_factors=risk["factors"],
                        recommendations=risk["recommendations"],
                        confidence=risk["confidence"],
                        status="Active",
                        created_at=now,
                    )
                )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageError(f"Failed to persist predictions: {e}") from e
