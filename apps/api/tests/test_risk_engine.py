"""Tests for feature extraction and the prediction service."""

from datetime import timedelta
from types import SimpleNamespace

import pytest

from compliance_api.errors import PredictionInputError
from compliance_api.models import RiskPrediction
from compliance_api.risk.engine import RiskPredictionService
from compliance_api.risk.features import (
    average_response_time,
    days_until_deadline,
    event_velocity,
    extract_features,
    historical_delay_rate,
)
from conftest import NOW


def fake_event(event_type="approval", status="Pending Review", created_at=NOW, reviewed_at=None, deadline=None):
    return SimpleNamespace(
        event_type=event_type,
        status=status,
        created_at=created_at,
        reviewed_at=reviewed_at,
        deadline=deadline,
        risk_level="Low",
    )


class TestFeatures:
    def test_response_time_mixes_reviewed_and_pending(self):
        events = [
            fake_event(status="Completed", created_at=NOW - timedelta(hours=30), reviewed_at=NOW - timedelta(hours=20)),
            fake_event(created_at=NOW - timedelta(hours=30)),
            fake_event("decision", created_at=NOW - timedelta(days=20)),
        ]
        assert average_response_time(events, NOW) == 20.0

    def test_response_time_default_without_approvals(self):
        assert average_response_time([fake_event("decision")], NOW) == 48.0

    def test_nearest_pending_future_deadline(self):
        events = [
            fake_event(deadline=NOW + timedelta(days=9)),
            fake_event(deadline=NOW + timedelta(days=3, hours=5)),
            fake_event(deadline=NOW - timedelta(days=1)),
            fake_event(status="Completed", deadline=NOW + timedelta(days=1)),
        ]
        assert days_until_deadline(events, NOW) == 3
        assert days_until_deadline([], NOW) == 14

    def test_historical_delay_rate(self):
        rollups = [
            SimpleNamespace(events_by_type={"approval": 4}, pending_approvals=1),
            SimpleNamespace(events_by_type={"approval": 4, "decision": 2}, pending_approvals=3),
        ]
        assert historical_delay_rate(rollups) == 0.5
        assert historical_delay_rate([]) == 0.3
        assert historical_delay_rate([SimpleNamespace(events_by_type={}, pending_approvals=0)]) == 0.3

    def test_velocity_counts_last_week(self):
        events = [fake_event(created_at=NOW - timedelta(days=d)) for d in (0, 1, 2, 10)]
        assert event_velocity(events, NOW) == round(3 / 7, 3)

    def test_insufficient_history(self):
        with pytest.raises(PredictionInputError):
            extract_features([], [], NOW)

    def test_external_inputs_are_explicit(self):
        features = extract_features([fake_event()], [], NOW, dependency_chain_length=6, team_workload=0.2)
        assert features.dependency_chain_length == 6
        assert features.team_workload == 0.2
        assert features.events_analyzed == 1


class TestRiskPredictionService:
    def test_no_history_is_insufficient_data(self, db):
        response = RiskPredictionService(db).predict("nobody", now=NOW)

        assert response["status"] == "insufficient_data"
        assert response["risks"] == []
        assert response["summary"]["overall_risk_score"] == 0.0
        assert db.query(RiskPrediction).count() == 0

    def test_backlog_of_slow_approvals_is_critical(self, db, store_event):
        created = NOW - timedelta(days=4)
        for _ in range(7):
            store_event(now=created, event_type="approval", deadline=NOW + timedelta(days=3))

        response = RiskPredictionService(db).predict("proj-a", days_ahead=7, now=NOW)

        assert response["status"] == "ok"
        top = response["risks"][0]
        assert top["category"] == "approval_delay"
        assert top["severity"] == "Critical"
        assert top["probability"] == 0.9
        assert top["impact_date"] == (NOW + timedelta(days=4)).isoformat()
        assert response["summary"]["by_severity"]["critical"] == 1
        assert response["features"]["pending_approvals"] == 7
        assert response["features"]["historical_delay_rate"] == 1.0

        rows = db.query(RiskPrediction).all()
        assert len(rows) == len(response["risks"])
        assert {row.status for row in rows} == {"Active"}

    def test_sparse_history_flags_documentation_gap(self, db, store_event):
        store_event(now=NOW - timedelta(hours=1))

        response = RiskPredictionService(db).predict("proj-a", now=NOW, persist=False)

        assert [r["category"] for r in response["risks"]] == ["documentation_gap"]
        assert response["risks"][0]["severity"] == "Low"
        assert response["features"]["avg_response_time_hours"] == 48.0
        assert response["features"]["days_until_deadline"] == 14
        assert db.query(RiskPrediction).count() == 0

    def test_repeatable(self, db, store_event):
        store_event(now=NOW - timedelta(days=1), event_type="approval")
        service = RiskPredictionService(db)

        first = service.predict("proj-a", now=NOW, persist=False)
        second = service.predict("proj-a", now=NOW, persist=False)
        assert first == second
