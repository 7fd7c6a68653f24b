"""Audit chain models."""

from sqlalchemy import BigInteger, Column, Date, DateTime, Integer, JSON, String, Text

from compliance_api.db.base import Base
from compliance_api.utils.clock import utcnow

GENESIS_HASH = "0" * 64


class AuditRecord(Base):
    """Immutable node of the global audit hash chain.

    No row is ever updated or deleted. ``previous_hash`` is unique so two
    writers extending the same tail cannot both commit.
    """

    __tablename__ = "audit_records"

    id = Column(Integer, primary_key=True, index=True)
    sequence = Column(BigInteger, nullable=False, unique=True, index=True)
    project_id = Column(String(255), nullable=False, index=True)
    regulation = Column(String(100), nullable=False, index=True)
    period_start = Column(Date, nullable=False, index=True)
    period_end = Column(Date, nullable=False)
    event_ids = Column(JSON, nullable=False)  # Ordered as hashed
    report_hash = Column(String(64), nullable=False, unique=True, index=True)
    previous_hash = Column(String(64), nullable=False, unique=True)
    summary = Column(JSON, nullable=False)
    metadata_json = Column(JSON, nullable=False, default=dict)
    storage_key = Column(Text, nullable=True)
    exported_by = Column(String(100), nullable=False, default="system-cron")
    export_timestamp = Column(DateTime, default=utcnow, nullable=False)
