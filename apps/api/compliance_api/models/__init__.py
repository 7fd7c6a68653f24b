"""Database models - import all models here for Alembic discovery."""

from compliance_api.models.analytics import DailyAnalytics
from compliance_api.models.audit import GENESIS_HASH, AuditRecord
from compliance_api.models.event import (
    ComplianceEvent,
    EventStatus,
    EventType,
    RiskLevel,
)
from compliance_api.models.prediction import RiskPrediction

__all__ = [
    "ComplianceEvent",
    "EventStatus",
    "EventType",
    "RiskLevel",
    "DailyAnalytics",
    "AuditRecord",
    "GENESIS_HASH",
    "RiskPrediction",
]
