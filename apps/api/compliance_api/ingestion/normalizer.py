"""Event normalization: loosely typed payload -> canonical event.

Pure; performs no I/O. Field names are expected in canonical form
(see ``compliance_api.ingestion.decoders`` for wire-shape handling).
"""

import json
import logging
from datetime import date, datetime, timezone
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError
from pydantic import field_validator, model_validator

from compliance_api.errors import ValidationError
from compliance_api.models.event import DEFAULT_REGULATION, EventStatus, EventType, RiskLevel
from compliance_api.utils.clock import to_naive_utc, utcnow

logger = logging.getLogger(__name__)

_UNKNOWN_REGULATIONS = {"", "unknown", "none", "null", "n/a"}
_DATETIME_FORMATS = ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d %H:%M", "%Y-%m-%d")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Coerce a wire timestamp to naive UTC.

    Accepts datetimes, dates, ISO-8601 strings (``Z`` suffix allowed),
    ``YYYY-MM-DD HH:MM:SS`` strings and epoch seconds or milliseconds.
    Empty values give None; anything else raises ValueError.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, bool):
        raise ValueError("not a timestamp")
    if isinstance(value, (int, float)):
        seconds = value / 1000 if value > 1e11 else value
        return datetime.fromtimestamp(seconds, tz=timezone.utc).replace(tzinfo=None)

    text = str(value).strip()
    if not text or text.lower() in ("null", "none"):
        return None
    if text.isdigit():
        return parse_timestamp(int(text))
    try:
        return to_naive_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))
    except ValueError:
        pass
    for fmt in _DATETIME_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    raise ValueError(f"unrecognised timestamp: {text!r}")


def _required_text(value: Any) -> str:
    if value is None:
        raise ValueError("field required")
    text = str(value).strip()
    if not text:
        raise ValueError("field required")
    return text


def _optional_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


class CanonicalEvent(BaseModel):
    """Validated, canonical compliance event ready for the event store."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    channel_id: str
    source_message_id: str
    project_id: str
    channel_name: str = ""
    user_id: str = ""
    user_name: str = ""
    event_type: str = EventType.OTHER.value
    regulation: str = DEFAULT_REGULATION
    risk_level: str = RiskLevel.LOW.value
    decision_type: Optional[str] = None
    confidence_score: float = 0.0
    deadline: Optional[datetime] = None
    stakeholders: tuple[str, ...] = ()
    message_text: str = ""
    evidence_url: Optional[str] = None
    extraction_entities: dict = Field(default_factory=dict)
    occurred_at: Optional[datetime] = None
    status: str = EventStatus.PENDING_REVIEW.value
    created_at: datetime

    @model_validator(mode="before")
    @classmethod
    def _default_project(cls, data: Any) -> Any:
        if isinstance(data, dict):
            project_id = data.get("project_id")
            if project_id is None or not str(project_id).strip():
                data = {**data, "project_id": data.get("channel_id")}
        return data

    @field_validator("channel_id", "source_message_id", "project_id", mode="before")
    @classmethod
    def _require_text(cls, value: Any) -> str:
        return _required_text(value)

    @field_validator("channel_name", "user_id", "user_name", "message_text", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:
        return _optional_text(value)

    @field_validator("decision_type", "evidence_url", mode="before")
    @classmethod
    def _nullable_text(cls, value: Any) -> Optional[str]:
        text = _optional_text(value)
        return text or None

    @field_validator("event_type", mode="before")
    @classmethod
    def _event_type(cls, value: Any) -> str:
        text = _optional_text(value).lower().replace("-", "_").replace(" ", "_")
        known = {member.value for member in EventType}
        return text if text in known else EventType.OTHER.value

    @field_validator("regulation", mode="before")
    @classmethod
    def _regulation(cls, value: Any) -> str:
        text = _optional_text(value)
        if text.lower() in _UNKNOWN_REGULATIONS:
            return DEFAULT_REGULATION
        return text

    @field_validator("risk_level", mode="before")
    @classmethod
    def _risk_level(cls, value: Any) -> str:
        text = _optional_text(value).lower()
        for level in RiskLevel:
            if level.value.lower() == text:
                return level.value
        return RiskLevel.LOW.value

    @field_validator("confidence_score", mode="before")
    @classmethod
    def _confidence(cls, value: Any) -> float:
        try:
            score = float(value)
        except (TypeError, ValueError):
            return 0.0
        if score != score:  # NaN
            return 0.0
        return max(0.0, min(1.0, score))

    @field_validator("deadline", "occurred_at", mode="before")
    @classmethod
    def _timestamp(cls, value: Any) -> Optional[datetime]:
        return parse_timestamp(value)

    @field_validator("stakeholders", mode="before")
    @classmethod
    def _stakeholders(cls, value: Any) -> tuple[str, ...]:
        if value is None:
            return ()
        if isinstance(value, str):
            text = value.strip()
            if not text:
                return ()
            if text.startswith("["):
                try:
                    value = json.loads(text)
                except json.JSONDecodeError:
                    value = text.strip("[]").split(",")
            else:
                value = text.split(",")
        if isinstance(value, Mapping):
            value = list(value.values())
        members = {str(item).strip() for item in value if item is not None}
        return tuple(sorted(member for member in members if member))

    @field_validator("extraction_entities", mode="before")
    @classmethod
    def _entities(cls, value: Any) -> dict:
        if value is None:
            return {}
        if isinstance(value, str):
            try:
                value = json.loads(value) if value.strip() else {}
            except json.JSONDecodeError:
                logger.debug("Discarding unparseable extraction entities")
                return {}
        return dict(value) if isinstance(value, Mapping) else {}

    def to_row(self) -> dict:
        """Column values for ``ComplianceEvent``."""
        row = self.model_dump()
        row["stakeholders"] = list(self.stakeholders)
        row["occurred_at"] = self.occurred_at or self.created_at
        return row


def normalize_event(payload: Mapping[str, Any], now: Optional[datetime] = None) -> CanonicalEvent:
    """Validate and canonicalize an inbound payload.

    ``channel_id`` and ``source_message_id`` are mandatory. The result is
    always ``Pending Review`` and stamped with ``created_at = now``.

    Raises:
        ValidationError: with one entry per offending field.
    """
    now = now or utcnow()
    data = dict(payload)
    data.pop("status", None)
    data["created_at"] = now
    try:
        return CanonicalEvent.model_validate(data)
    except PydanticValidationError as exc:
        errors = [
            {
                "field": ".".join(str(part) for part in error["loc"]) or "payload",
                "message": "field required" if error["type"] == "missing" else error["msg"].removeprefix("Value error, "),
            }
            for error in exc.errors()
        ]
        fields = ", ".join(sorted({error["field"] for error in errors}))
        raise ValidationError(f"Invalid compliance event payload: {fields}", errors=errors) from exc
