"""Tests for alert building, dispatch and delivery."""

from datetime import timedelta

import httpx
import pytest

from compliance_api.alerts.service import DEADLINE_ALERT, RISK_ALERT, AlertService
from compliance_api.settings import get_settings
from conftest import NOW, FakeQueue


def _types(alerts):
    return [alert["alert_type"] for alert in alerts]


class TestAlertsFor:
    def test_high_risk_event(self, store_event):
        event = store_event(risk_level="High", user_name="Dana")
        alerts = AlertService(enqueue=FakeQueue()).alerts_for(event, NOW)

        assert _types(alerts) == [RISK_ALERT]
        assert alerts[0]["event_id"] == event.id
        assert alerts[0]["fields"]["Raised by"] == "Dana"

    def test_low_risk_without_deadline(self, store_event):
        event = store_event()
        assert AlertService(enqueue=FakeQueue()).alerts_for(event, NOW) == []

    @pytest.mark.parametrize("hours,expected", [(47, []), (48, [DEADLINE_ALERT]), (49.5, [DEADLINE_ALERT]), (50, [DEADLINE_ALERT]), (51, [])])
    def test_deadline_window(self, store_event, hours, expected):
        event = store_event(deadline=NOW + timedelta(hours=hours))
        assert _types(AlertService(enqueue=FakeQueue()).alerts_for(event, NOW)) == expected

    def test_deadline_alert_text(self, store_event):
        event = store_event(risk_level="Critical", deadline=NOW + timedelta(hours=49))
        alerts = AlertService(enqueue=FakeQueue()).alerts_for(event, NOW)

        assert _types(alerts) == [RISK_ALERT, DEADLINE_ALERT]
        assert alerts[1]["title"] == "Deadline Alert - 49 Hours Remaining"


class TestDispatch:
    def test_queues_delivery_task(self):
        queue = FakeQueue()
        assert AlertService(enqueue=queue).dispatch({"alert_type": RISK_ALERT, "event_id": 1}) is True
        assert queue.tasks("deliver_alert") == [({"alert_type": RISK_ALERT, "event_id": 1},)]

    def test_broker_failure_is_swallowed(self):
        assert AlertService(enqueue=FakeQueue(fail=True)).dispatch({"alert_type": RISK_ALERT}) is False

    def test_disabled_sink_drops_notifications(self, monkeypatch):
        monkeypatch.setattr(get_settings(), "alert_webhook_url", "")
        queue = FakeQueue()

        assert AlertService(enqueue=queue).dispatch({"alert_type": RISK_ALERT}) is False
        assert queue.calls == []


class TestDeliver:
    def test_posts_notification(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"ok": True})

        client = httpx.Client(transport=httpx.MockTransport(handler))
        status = AlertService(enqueue=FakeQueue(), http_client=client).deliver({"alert_type": RISK_ALERT, "title": "t"})

        assert status == 200
        assert str(seen[0].url) == "http://alerts.test/hook"
        assert b'"sent_at"' in seen[0].content

    def test_sink_error_raises_for_retry(self):
        client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(500)))

        with pytest.raises(httpx.HTTPStatusError):
            AlertService(enqueue=FakeQueue(), http_client=client).deliver({"alert_type": RISK_ALERT})
