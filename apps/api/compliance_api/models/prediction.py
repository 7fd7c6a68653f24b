"""Risk prediction model."""

from sqlalchemy import Column, DateTime, Float, Integer, JSON, String

from compliance_api.db.base import Base
from compliance_api.utils.clock import utcnow


class RiskPrediction(Base):
    """Persisted prediction output, kept for traceability only."""

    __tablename__ = "risk_predictions"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(String(255), nullable=False, index=True)
    risk_category = Column(String(50), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    severity = Column(String(20), nullable=False, index=True)
    probability = Column(Float, nullable=False)
    predicted_impact_date = Column(DateTime, nullable=False)
    affected_teams = Column(JSON, nullable=False, default=list)
    contributing_factors = Column(JSON, nullable=False, default=list)
    recommendations = Column(JSON, nullable=False, default=list)
    confidence = Column(Float, nullable=False)
    status = Column(String(20), nullable=False, default="Active")
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
