"""Compliance event models."""

from enum import Enum

from sqlalchemy import Column, DateTime, Float, Index, Integer, JSON, String, Text, UniqueConstraint

from compliance_api.db.base import Base
from compliance_api.utils.clock import utcnow


class EventType(str, Enum):
    APPROVAL = "approval"
    DECISION = "decision"
    RISK_DISCUSSION = "risk_discussion"
    MILESTONE = "milestone"
    AUDIT_ACTION = "audit_action"
    OTHER = "other"


class RiskLevel(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class EventStatus(str, Enum):
    PENDING_REVIEW = "Pending Review"
    COMPLETED = "Completed"
    DISMISSED = "Dismissed"


HIGH_RISK_LEVELS = (RiskLevel.HIGH.value, RiskLevel.CRITICAL.value)
DEFAULT_REGULATION = "General"


class ComplianceEvent(Base):
    """Append-only compliance event.

    Every column is fixed at insert time except ``status`` and
    ``reviewed_at``, which only change through review actions.
    """

    __tablename__ = "compliance_events"

    id = Column(Integer, primary_key=True, index=True)  # event_id
    source_message_id = Column(String(255), nullable=False)
    channel_id = Column(String(255), nullable=False, index=True)
    channel_name = Column(String(255), nullable=False, default="")
    project_id = Column(String(255), nullable=False, index=True)
    user_id = Column(String(255), nullable=False, default="")
    user_name = Column(String(255), nullable=False, default="")
    event_type = Column(String(50), nullable=False, index=True)
    regulation = Column(String(100), nullable=False, default=DEFAULT_REGULATION, index=True)
    risk_level = Column(String(20), nullable=False, default=RiskLevel.LOW.value, index=True)
    decision_type = Column(String(100), nullable=True)
    status = Column(String(30), nullable=False, default=EventStatus.PENDING_REVIEW.value, index=True)
    confidence_score = Column(Float, nullable=False, default=0.0)
    deadline = Column(DateTime, nullable=True, index=True)
    stakeholders = Column(JSON, nullable=False, default=list)
    message_text = Column(Text, nullable=False, default="")
    evidence_url = Column(Text, nullable=True)
    extraction_entities = Column(JSON, nullable=False, default=dict)  # Raw labeled entities
    occurred_at = Column(DateTime, nullable=False)  # Source message timestamp
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    reviewed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("channel_id", "source_message_id", name="uq_event_channel_message"),
        Index("ix_compliance_events_project_created", "project_id", "created_at"),
    )

    @property
    def event_id(self) -> int:
        return self.id

    @property
    def is_high_risk(self) -> bool:
        return self.risk_level in HIGH_RISK_LEVELS

    @property
    def is_pending(self) -> bool:
        return self.status == EventStatus.PENDING_REVIEW.value
