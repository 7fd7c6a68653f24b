"""Alert notifications for high-risk events and approaching deadlines.

The API only builds and enqueues notifications; the worker performs the
HTTP delivery with retries. Enqueue failures are logged and never reach
the ingest caller.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

import httpx

from compliance_api.celery_client import DELIVER_ALERT_TASK, enqueue as celery_enqueue
from compliance_api.settings import get_settings
from compliance_api.utils.clock import utcnow
from compliance_api.utils.metrics import alert_dispatches

logger = logging.getLogger(__name__)

RISK_ALERT = "high_risk_event"
DEADLINE_ALERT = "deadline_approaching"


def deadline_hours_remaining(deadline: Optional[datetime], now: datetime) -> Optional[float]:
    if deadline is None:
        return None
    return (deadline - now).total_seconds() / 3600


def build_risk_alert(event) -> dict:
    return {
        "alert_type": RISK_ALERT,
        "title": f"{event.risk_level} risk compliance event",
        "text": f"A {event.risk_level} risk {event.event_type} was recorded for {event.regulation}.",
        "severity": event.risk_level,
        "project_id": event.project_id,
        "channel_id": event.channel_id,
        "event_id": event.id,
        "fields": {
            "Type": event.event_type,
            "Regulation": event.regulation,
            "Raised by": event.user_name or event.user_id,
            "Deadline": event.deadline.isoformat() if event.deadline else None,
        },
    }


def build_deadline_alert(event, hours_remaining: float) -> dict:
    hours = round(hours_remaining)
    return {
        "alert_type": DEADLINE_ALERT,
        "title": f"Deadline Alert - {hours} Hours Remaining",
        "text": (
            f"This compliance item has a deadline in {hours} hours. "
            "Please ensure all approvals and reviews are completed on time."
        ),
        "severity": event.risk_level,
        "project_id": event.project_id,
        "channel_id": event.channel_id,
        "event_id": event.id,
        "fields": {
            "Type": event.event_type,
            "Regulation": event.regulation,
            "Deadline": event.deadline.isoformat(),
            "Time remaining": f"{hours} hours",
        },
    }


class AlertService:
    """Builds, enqueues and delivers alert notifications."""

    def __init__(self, enqueue: Optional[Callable] = None, http_client: Optional[httpx.Client] = None):
        """Initialize alert service.

        Args:
            enqueue: ``enqueue(task_name, *args)``; defaults to the Celery client
            http_client: client used by ``deliver``
        """
        self.settings = get_settings()
        self.enqueue = enqueue or celery_enqueue
        self.http_client = http_client

    def alerts_for(self, event, now: Optional[datetime] = None) -> list[dict]:
        """Notifications a freshly stored event calls for."""
        now = now or utcnow()
        alerts = []
        if event.is_high_risk:
            alerts.append(build_risk_alert(event))

        hours = deadline_hours_remaining(event.deadline, now)
        lower = self.settings.deadline_alert_hours
        upper = lower + self.settings.deadline_alert_window_hours
        if hours is not None and lower <= hours <= upper:
            alerts.append(build_deadline_alert(event, hours))
        return alerts

    def dispatch(self, notification: dict) -> bool:
        """Hand a notification to the worker. Best-effort."""
        if not self.settings.alerts_enabled:
            logger.debug("Alert sink not configured, dropping notification")
            alert_dispatches.labels(alert_type=notification["alert_type"], status="disabled").inc()
            return False
        try:
            self.enqueue(DELIVER_ALERT_TASK, notification)
        except Exception as e:
            alert_dispatches.labels(alert_type=notification["alert_type"], status="failed").inc()
            logger.warning(
                f"Failed to enqueue alert delivery: {e}",
                extra={"event_id": notification.get("event_id")},
                exc_info=True,
            )
            return False
        alert_dispatches.labels(alert_type=notification["alert_type"], status="queued").inc()
        return True

    def notify_ingested(self, event, now: Optional[datetime] = None) -> list[dict]:
        """Dispatch every alert for a stored event; returns those queued."""
        return [alert for alert in self.alerts_for(event, now) if self.dispatch(alert)]

    def deliver(self, notification: dict) -> int:
        """POST a notification to the alert sink (called by the worker).

        Raises:
            httpx.HTTPError: on transport failure or a non-2xx response.
        """
        payload = {**notification, "sent_at": utcnow().isoformat()}
        client = self.http_client or httpx.Client(timeout=self.settings.alert_timeout_seconds)
        try:
            response = client.post(self.settings.alert_webhook_url, json=payload)
            response.raise_for_status()
        finally:
            if self.http_client is None:
                client.close()
        logger.info(
            "Alert delivered",
            extra={"alert_type": notification.get("alert_type"), "status_code": response.status_code},
        )
        return response.status_code
