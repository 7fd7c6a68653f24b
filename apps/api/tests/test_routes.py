"""Tests for the HTTP surface."""

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from compliance_api.db.session import get_db
from compliance_api.ledger.service import AuditChainBuilder
from compliance_api.main import app
from compliance_api.routes.audit import get_task_queue
from compliance_api.routes.events import get_extraction_client, get_ingest_service
from conftest import NOW, FakeQueue

EVENT = {
    "channel_id": "chan-r",
    "message_id": "m-1",
    "project_id": "proj-r",
    "event_type": "approval",
    "regulation": "SOX",
    "risk_level": "Medium",
    "text": "Finance signed off the Q1 controls review",
    "user_name": "Lee",
}


@pytest.fixture
def client(db, ingest_service, queue):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_ingest_service] = lambda: ingest_service
    app.dependency_overrides[get_task_queue] = lambda: queue
    yield TestClient(app)
    app.dependency_overrides.clear()


class StubExtraction:
    def __init__(self, result):
        self.result = result

    def extract(self, text):
        return self.result


class TestIngest:
    def test_json_body(self, client):
        response = client.post("/v1/events", json=EVENT)

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["created"] is True
        assert isinstance(data["event_id"], int)

    def test_urlencoded_form(self, client):
        response = client.post("/v1/events", data={**EVENT, "message_id": "m-form"})
        assert response.status_code == 200
        assert response.json()["created"] is True

    def test_multipart_form(self, client):
        response = client.post(
            "/v1/events",
            data={**EVENT, "message_id": "m-multi"},
            files={"attachment": ("note.txt", b"ignored", "text/plain")},
        )
        assert response.status_code == 200

    def test_redelivery_reports_existing_event(self, client):
        first = client.post("/v1/events", json=EVENT).json()
        second = client.post("/v1/events", json=EVENT).json()

        assert second["created"] is False
        assert second["event_id"] == first["event_id"]
        assert second["message"] == "Compliance event already stored"

    def test_missing_identity_fields(self, client):
        response = client.post("/v1/events", json={"text": "hello"})

        assert response.status_code == 422
        fields = {error["field"] for error in response.json()["errors"]}
        assert {"channel_id", "source_message_id"} <= fields

    def test_malformed_json(self, client):
        response = client.post("/v1/events", content=b"{oops", headers={"content-type": "application/json"})
        assert response.status_code == 422

    def test_high_risk_ingest_queues_alert(self, client, queue):
        client.post("/v1/events", json={**EVENT, "message_id": "m-hot", "risk_level": "Critical"})
        assert len(queue.tasks("deliver_alert")) == 1


class TestExtract:
    def test_labeled_message_is_stored(self, client):
        app.dependency_overrides[get_extraction_client] = lambda: StubExtraction(
            {"entities": {"compliance_event": {"value": "decision"}}, "confidence": 0.7}
        )
        response = client.post(
            "/v1/events/extract",
            json={"text": "We decided to encrypt backups", "channel_id": "chan-x", "message_id": "m-x"},
        )

        data = response.json()
        assert response.status_code == 200
        assert data["extracted"] is True
        assert data["created"] is True

    def test_unlabeled_message_is_not_stored(self, client):
        app.dependency_overrides[get_extraction_client] = lambda: StubExtraction({"entities": {}, "confidence": 0.1})
        response = client.post(
            "/v1/events/extract",
            json={"text": "lunch?", "channel_id": "chan-x", "message_id": "m-y"},
        )
        assert response.json()["extracted"] is False
        assert response.json()["event_id"] is None


class TestReview:
    def test_status_update(self, client):
        event_id = client.post("/v1/events", json=EVENT).json()["event_id"]

        response = client.patch(f"/v1/events/{event_id}/status", json={"status": "Completed"})

        assert response.status_code == 200
        assert response.json()["status"] == "Completed"
        assert response.json()["reviewed_at"] is not None

    def test_unknown_status(self, client):
        event_id = client.post("/v1/events", json=EVENT).json()["event_id"]
        response = client.patch(f"/v1/events/{event_id}/status", json={"status": "Archived"})
        assert response.status_code == 422

    def test_list_events(self, client):
        client.post("/v1/events", json=EVENT)
        client.post("/v1/events", json={**EVENT, "message_id": "m-2", "project_id": "proj-other"})

        events = client.get("/v1/events", params={"project_id": "proj-r"}).json()
        assert [e["source_message_id"] for e in events] == ["m-1"]


class TestReports:
    def test_summary(self, client):
        client.post("/v1/events", json=EVENT)
        client.post("/v1/events", json={**EVENT, "message_id": "m-2", "event_type": "decision"})

        data = client.get("/v1/summary", params={"project_id": "proj-r"}).json()

        assert data["total_events"] == 2
        assert data["approvals"] == 1
        assert data["decisions"] == 1
        assert data["regulation"] == "ALL"
        assert len(data["pending_actions"]) == 2

    def test_health_score(self, client):
        client.post("/v1/events", json=EVENT)

        data = client.get("/v1/health-score", params={"project_id": "proj-r"}).json()

        assert data["regulations"][0]["regulation"] == "SOX"
        assert data["trend"] == "stable"
        assert data["missing_docs"] == 1


class TestPredictions:
    def test_project_required(self, client):
        assert client.get("/v1/predictions").status_code == 422

    def test_horizon_bounds(self, client):
        assert client.get("/v1/predictions", params={"project_id": "p", "days_ahead": 0}).status_code == 422
        assert client.get("/v1/predictions", params={"project_id": "p", "days_ahead": 91}).status_code == 422

    def test_predictions(self, client):
        client.post("/v1/events", json=EVENT)
        data = client.get("/v1/predictions", params={"project_id": "proj-r", "team_workload": 0.95}).json()

        assert data["status"] == "ok"
        assert "resource_constraint" in [risk["category"] for risk in data["risks"]]

    def test_unknown_project(self, client):
        assert client.get("/v1/predictions", params={"project_id": "ghost"}).json()["status"] == "insufficient_data"


class TestAudit:
    def test_export_is_queued(self, client, queue):
        response = client.post("/v1/audit-exports", json={"period_start": "2026-03-09"})

        assert response.status_code == 202
        assert response.json()["status"] == "queued"
        assert queue.tasks("run_audit_export") == [("2026-03-09", None)]

    def test_export_without_broker(self, client):
        app.dependency_overrides[get_task_queue] = lambda: FakeQueue(fail=True)
        response = client.post("/v1/audit-exports", json={})
        assert response.status_code == 503

    def test_records_and_verify(self, client, db, store_event):
        store_event()
        store_event(regulation="SOX")
        AuditChainBuilder(db).run(NOW.date(), now=NOW + timedelta(days=1))

        records = client.get("/v1/audit-records").json()
        assert [r["sequence"] for r in records] == [1, 2]
        assert records[0]["storage_url"].startswith("s3://compliance-audit-logs/proj-a/")

        assert client.get("/v1/audit-chain/verify").json() == {"valid": True, "records_checked": 2}
