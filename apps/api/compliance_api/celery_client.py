"""Shared Celery client for API to enqueue tasks.

This module provides a singleton Celery instance configured to match
the worker's expectations (serializer, timezone, etc.). Tasks are
enqueued by name so the API never imports worker code.
"""

import logging
from typing import Optional

from celery import Celery

from compliance_api.settings import get_settings

logger = logging.getLogger(__name__)

_celery_app: Optional[Celery] = None

DELIVER_ALERT_TASK = "compliance_worker.tasks.deliver_alert"
REFRESH_PREDICTIONS_TASK = "compliance_worker.tasks.refresh_predictions"
RUN_AUDIT_EXPORT_TASK = "compliance_worker.tasks.run_audit_export"


def get_celery_app() -> Celery:
    """Get or create singleton Celery app instance."""
    global _celery_app

    if _celery_app is None:
        settings = get_settings()

        _celery_app = Celery("compliance_api")
        _celery_app.conf.update(
            broker_url=settings.redis_url,
            result_backend=settings.redis_url,
            task_serializer="json",
            accept_content=["json"],
            result_serializer="json",
            timezone="UTC",
            enable_utc=True,
            broker_connection_retry_on_startup=False,
        )

        logger.info("Initialized Celery client for compliance_api")

    return _celery_app


def enqueue(task_name: str, *args, **kwargs) -> str:
    """Enqueue a worker task by name and return its id."""
    signature = get_celery_app().signature(task_name, args=list(args), kwargs=kwargs)
    result = signature.apply_async(retry=True, retry_policy={"max_retries": 2, "interval_start": 0.2})
    return result.id
