"""Celery application configuration."""

from celery import Celery
from celery.schedules import crontab

from compliance_worker.settings import get_settings

settings = get_settings()
settings.validate_production_settings()

celery_app = Celery(
    "compliance_worker",
    broker=settings.redis_url,
    backend=settings.redis_url,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=30 * 60,  # 30 minutes
    task_soft_time_limit=25 * 60,  # 25 minutes
    beat_schedule={
        # Chains the previous UTC day once per day
        "daily-audit-export": {
            "task": "compliance_worker.tasks.run_audit_export",
            "schedule": crontab(hour=settings.audit_export_hour_utc, minute=0),
        },
    },
)

# Import tasks to register them with Celery
# This must be done after celery_app is created
from compliance_worker import tasks  # noqa: F401, E402
