"""Daily analytics rollup model."""

from sqlalchemy import Column, Date, DateTime, Float, Integer, JSON, String, UniqueConstraint

from compliance_api.db.base import Base
from compliance_api.utils.clock import utcnow


class DailyAnalytics(Base):
    """One rollup row per (project_id, date), fully recomputed on every write."""

    __tablename__ = "compliance_analytics"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(String(255), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    total_events = Column(Integer, nullable=False, default=0)
    compliance_score = Column(Float, nullable=False, default=100.0)
    high_risk_count = Column(Integer, nullable=False, default=0)
    pending_approvals = Column(Integer, nullable=False, default=0)
    events_by_type = Column(JSON, nullable=False, default=dict)
    events_by_regulation = Column(JSON, nullable=False, default=dict)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("project_id", "date", name="uq_analytics_project_date"),
    )
