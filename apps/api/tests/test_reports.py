"""Tests for summary and health reports."""

from datetime import timedelta

import pytest

from compliance_api.analytics.reports import ReportService, regulation_status
from conftest import NOW


@pytest.mark.parametrize("score,expected", [(100, "on_track"), (90, "on_track"), (89.9, "at_risk"), (70, "at_risk"), (69.9, "critical")])
def test_regulation_status(score, expected):
    assert regulation_status(score) == expected


class TestSummary:
    def test_counts_and_pending_actions(self, db, store_event):
        store_event(event_type="approval", message_text="x" * 150, evidence_url="https://chat.example.com/p1")
        store_event(event_type="risk_discussion", risk_level="High")
        store_event(event_type="decision", status="Completed")
        store_event(now=NOW - timedelta(days=45))

        summary = ReportService(db).summary("proj-a", now=NOW)

        assert summary["total_events"] == 3
        assert (summary["approvals"], summary["risks"], summary["decisions"]) == (1, 1, 1)
        assert summary["events_by_risk"] == {"Low": 2, "High": 1}
        assert len(summary["pending_actions"]) == 2
        assert summary["pending_actions"][0]["description"] == "x" * 100 + "..."
        assert summary["pending_actions"][0]["url"] == "https://chat.example.com/p1"
        assert len(summary["timeline"]) == 3

    def test_regulation_filter(self, db, store_event):
        store_event(regulation="GDPR")
        store_event(regulation="SOX")

        summary = ReportService(db).summary("all", regulation="SOX", now=NOW)

        assert summary["total_events"] == 1
        assert summary["regulation"] == "SOX"

    def test_empty_window(self, db):
        summary = ReportService(db).summary("proj-a", now=NOW)
        assert summary["total_events"] == 0
        assert summary["compliance_score"] == 50.0


class TestHealth:
    def test_per_regulation_breakdown(self, db, store_event):
        store_event(regulation="GDPR", event_type="decision", status="Completed")
        for _ in range(8):
            store_event(regulation="SOX", risk_level="Critical")
        store_event(regulation="SOX", deadline=NOW - timedelta(days=2), now=NOW - timedelta(days=5))

        health = ReportService(db).health("proj-a", now=NOW)

        by_name = {r["regulation"]: r for r in health["regulations"]}
        assert list(by_name) == ["GDPR", "SOX"]
        assert by_name["SOX"]["status"] == "critical"
        assert by_name["SOX"]["events"] == 9
        assert health["high_priority"] == 8
        assert health["overdue"] == 1
        assert health["missing_docs"] == 9

    def test_trend_from_rollups(self, db, store_event):
        # A week of clean days followed by a week of high-risk backlog
        for offset in range(14, 7, -1):
            store_event(now=NOW - timedelta(days=offset))
        for offset in range(7, 0, -1):
            store_event(now=NOW - timedelta(days=offset), risk_level="Critical")
            store_event(now=NOW - timedelta(days=offset), risk_level="Critical")

        assert ReportService(db).health("proj-a", now=NOW)["trend"] == "declining"
