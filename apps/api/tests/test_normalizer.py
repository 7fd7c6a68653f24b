"""Tests for event normalization."""

from datetime import datetime

import pytest

from compliance_api.errors import ValidationError
from compliance_api.ingestion.normalizer import normalize_event, parse_timestamp

NOW = datetime(2026, 3, 10, 12, 0, 0)


class TestNormalizeEvent:
    """Canonical event construction from loose payloads."""

    def test_minimal_payload_gets_defaults(self):
        event = normalize_event({"channel_id": "c1", "source_message_id": "m1"}, now=NOW)

        assert event.project_id == "c1"
        assert event.regulation == "General"
        assert event.risk_level == "Low"
        assert event.event_type == "other"
        assert event.status == "Pending Review"
        assert event.created_at == NOW
        assert event.to_row()["occurred_at"] == NOW

    @pytest.mark.parametrize("missing", ["channel_id", "source_message_id"])
    def test_missing_required_field_is_rejected(self, missing):
        payload = {"channel_id": "c1", "source_message_id": "m1"}
        del payload[missing]

        with pytest.raises(ValidationError) as exc_info:
            normalize_event(payload, now=NOW)

        assert {"field": missing, "message": "field required"} in exc_info.value.errors

    def test_blank_required_field_is_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            normalize_event({"channel_id": "  ", "source_message_id": "m1"}, now=NOW)
        assert exc_info.value.errors[0]["field"] == "channel_id"

    def test_status_in_payload_is_ignored(self):
        event = normalize_event(
            {"channel_id": "c1", "source_message_id": "m1", "status": "Completed"},
            now=NOW,
        )
        assert event.status == "Pending Review"

    @pytest.mark.parametrize(
        "raw,expected",
        [("high", "High"), ("CRITICAL", "Critical"), ("medium", "Medium"), ("severe", "Low"), (None, "Low")],
    )
    def test_risk_level_coercion(self, raw, expected):
        event = normalize_event({"channel_id": "c", "source_message_id": "m", "risk_level": raw}, now=NOW)
        assert event.risk_level == expected

    @pytest.mark.parametrize("raw", ["", "unknown", "N/A", "null", None])
    def test_unknown_regulation_defaults_to_general(self, raw):
        event = normalize_event({"channel_id": "c", "source_message_id": "m", "regulation": raw}, now=NOW)
        assert event.regulation == "General"

    def test_event_type_normalization(self):
        event = normalize_event(
            {"channel_id": "c", "source_message_id": "m", "event_type": "Risk Discussion"}, now=NOW
        )
        assert event.event_type == "risk_discussion"

    @pytest.mark.parametrize("raw,expected", [("0.75", 0.75), (1.7, 1.0), (-2, 0.0), ("abc", 0.0)])
    def test_confidence_is_clamped(self, raw, expected):
        event = normalize_event(
            {"channel_id": "c", "source_message_id": "m", "confidence_score": raw}, now=NOW
        )
        assert event.confidence_score == expected

    def test_stakeholders_become_sorted_set(self):
        event = normalize_event(
            {"channel_id": "c", "source_message_id": "m", "stakeholders": "bob, alice,bob"}, now=NOW
        )
        assert event.stakeholders == ("alice", "bob")

    def test_unparseable_deadline_reports_field(self):
        with pytest.raises(ValidationError) as exc_info:
            normalize_event(
                {"channel_id": "c", "source_message_id": "m", "deadline": "next tuesday"}, now=NOW
            )
        assert exc_info.value.errors[0]["field"] == "deadline"
        assert "unrecognised timestamp" in exc_info.value.errors[0]["message"]

    def test_extraction_entities_from_json_string(self):
        event = normalize_event(
            {
                "channel_id": "c",
                "source_message_id": "m",
                "extraction_entities": '{"risk_level": {"value": "High"}}',
            },
            now=NOW,
        )
        assert event.extraction_entities == {"risk_level": {"value": "High"}}


class TestParseTimestamp:
    @pytest.mark.parametrize(
        "value",
        [
            "2026-03-10T12:00:00Z",
            "2026-03-10T14:00:00+02:00",
            "2026-03-10 12:00:00",
            1773144000,
            1773144000000,
            "1773144000",
        ],
    )
    def test_formats_agree(self, value):
        assert parse_timestamp(value) == datetime(2026, 3, 10, 12, 0, 0)

    def test_empty_values(self):
        assert parse_timestamp(None) is None
        assert parse_timestamp("") is None
        assert parse_timestamp("null") is None

    def test_garbage_raises(self):
        with pytest.raises(ValueError):
            parse_timestamp("yesterday-ish")
