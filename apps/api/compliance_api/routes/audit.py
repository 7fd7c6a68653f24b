"""Audit chain endpoints."""

import logging
from datetime import date, datetime
from typing import Callable, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from compliance_api.celery_client import RUN_AUDIT_EXPORT_TASK, enqueue
from compliance_api.db.session import get_db
from compliance_api.ledger.service import AuditChainBuilder
from compliance_api.settings import get_settings

router = APIRouter(prefix="/v1", tags=["audit"])
logger = logging.getLogger(__name__)


class AuditExportRequest(BaseModel):
    """Trigger for an audit export run; defaults to yesterday."""

    period_start: Optional[date] = None
    period_end: Optional[date] = None


class AuditExportResponse(BaseModel):
    status: str
    task_id: str
    period_start: Optional[date] = None


class AuditRecordResponse(BaseModel):
    record_id: int
    sequence: int
    project_id: str
    regulation: str
    period_start: date
    period_end: date
    event_ids: list[int]
    report_hash: str
    previous_hash: str
    summary: dict
    metadata: dict
    storage_url: Optional[str] = None
    exported_by: str
    export_timestamp: datetime


def get_task_queue() -> Callable:
    return enqueue


@router.post("/audit-exports", response_model=AuditExportResponse, status_code=status.HTTP_202_ACCEPTED)
def trigger_audit_export(
    request_data: AuditExportRequest,
    queue: Callable = Depends(get_task_queue),
):
    """Queue an audit export run; the worker serializes runs globally."""
    period_start = request_data.period_start.isoformat() if request_data.period_start else None
    period_end = request_data.period_end.isoformat() if request_data.period_end else None
    try:
        task_id = queue(RUN_AUDIT_EXPORT_TASK, period_start, period_end)
    except Exception as e:
        logger.error(f"Failed to enqueue audit export: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Task queue unavailable",
            headers={"Retry-After": "30"},
        ) from e
    return AuditExportResponse(status="queued", task_id=task_id, period_start=request_data.period_start)


@router.get("/audit-records", response_model=list[AuditRecordResponse])
def list_audit_records(
    project_id: Optional[str] = None,
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    """Audit records in chain order."""
    bucket = get_settings().minio_bucket
    return [
        AuditRecordResponse(
            record_id=record.id,
            sequence=record.sequence,
            project_id=record.project_id,
            regulation=record.regulation,
            period_start=record.period_start,
            period_end=record.period_end,
            event_ids=record.event_ids,
            report_hash=record.report_hash,
            previous_hash=record.previous_hash,
            summary=record.summary,
            metadata=record.metadata_json or {},
            storage_url=f"s3://{bucket}/{record.storage_key}" if record.storage_key else None,
            exported_by=record.exported_by,
            export_timestamp=record.export_timestamp,
        )
        for record in AuditChainBuilder(db).records(project_id=project_id, limit=limit)
    ]


@router.get("/audit-chain/verify")
def verify_audit_chain(db: Session = Depends(get_db)):
    """Recompute the whole chain; reports the first invalid record."""
    return AuditChainBuilder(db).verify()
