"""Celery tasks for async operations."""

import logging
from datetime import date, timedelta
from typing import Optional

import httpx
from celery import Task
from sqlalchemy.orm import Session

from compliance_worker.celery_app import celery_app
from compliance_worker.db import new_session
from compliance_worker.settings import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()


class DatabaseTask(Task):
    """Task with database session."""

    _db: Optional[Session] = None

    @property
    def db(self) -> Session:
        """Get database session."""
        if self._db is None:
            self._db = new_session()
        return self._db

    def after_return(self, *args, **kwargs):
        """Close database session after task."""
        if self._db:
            self._db.close()
            self._db = None


def _storage():
    if not settings.audit_export_enabled:
        return None
    from compliance_api.storage.s3 import S3Storage

    return S3Storage()


@celery_app.task(base=DatabaseTask, bind=True, max_retries=5)
def run_audit_export(self, period_start: Optional[str] = None, period_end: Optional[str] = None):
    """Chain one period's events; defaults to the previous UTC day."""
    from compliance_api.errors import StorageError
    from compliance_api.ledger.service import AuditChainBuilder, AuditRunInProgress, audit_run_lock
    from compliance_api.utils.clock import utcnow

    start = date.fromisoformat(period_start) if period_start else utcnow().date() - timedelta(days=1)
    end = date.fromisoformat(period_end) if period_end else None
    log_extra = {"task": "run_audit_export", "period_start": start.isoformat()}

    try:
        with audit_run_lock(settings.redis_url, settings.audit_lock_timeout_seconds):
            builder = AuditChainBuilder(self.db, storage=_storage())
            records = builder.run(start, end)
    except AuditRunInProgress as e:
        logger.warning("Audit export already running, retrying later", extra=log_extra)
        raise self.retry(exc=e, countdown=settings.audit_lock_retry_seconds)
    except StorageError as e:
        # Completed partitions are skipped on retry
        logger.error(f"Audit export failed: {e}", extra=log_extra)
        raise self.retry(exc=e, countdown=60 * (2 ** self.request.retries))

    for record_id in builder.failed_exports:
        export_audit_record.apply_async(args=[record_id], countdown=60)

    logger.info("Audit export finished", extra={**log_extra, "records": len(records)})
    return {"status": "completed", "records": len(records), "record_ids": [r.id for r in records]}


@celery_app.task(base=DatabaseTask, bind=True, max_retries=5)
def export_audit_record(self, record_id: int):
    """Upload an audit record that missed its export."""
    from compliance_api.ledger.service import AuditChainBuilder
    from compliance_api.models import AuditRecord

    storage = _storage()
    if storage is None:
        return {"status": "disabled"}

    record = self.db.query(AuditRecord).filter(AuditRecord.id == record_id).first()
    if not record:
        logger.error(f"Audit record {record_id} not found")
        return {"status": "not_found"}
    if storage.object_exists(record.storage_key):
        return {"status": "exists"}

    if not AuditChainBuilder(self.db, storage=storage).export_record(record):
        raise self.retry(countdown=60 * (2 ** self.request.retries))
    return {"status": "exported", "storage_key": record.storage_key}


@celery_app.task(
    bind=True,
    max_retries=3,
    autoretry_for=(httpx.HTTPError,),
    retry_backoff=True,
    retry_backoff_max=600,
    retry_jitter=True,
)
def deliver_alert(self, notification: dict):
    """POST a notification to the alert sink."""
    from compliance_api.alerts.service import AlertService

    status_code = AlertService().deliver(notification)
    return {"status": "delivered", "status_code": status_code}


@celery_app.task(base=DatabaseTask, bind=True, max_retries=3)
def refresh_predictions(self, project_id: str, days_ahead: Optional[int] = None):
    """Regenerate and persist risk predictions for a project."""
    from compliance_api.risk.engine import RiskPredictionService

    result = RiskPredictionService(self.db).predict(project_id, days_ahead=days_ahead)
    return {"status": result["status"], "total_risks": result["summary"]["total_risks"]}
