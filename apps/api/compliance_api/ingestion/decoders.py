"""Wire decoders for the ingest boundary.

Each supported encoding has one decoder that turns a raw request body into
a field mapping with canonical key names. ``decode_event`` picks the
decoder for a content type and hands the mapping to the normalizer, so
encoding differences never reach the domain.
"""

import json
import re
from datetime import datetime
from typing import Any, Mapping, Optional, Union
from urllib.parse import parse_qsl

from compliance_api.errors import ValidationError
from compliance_api.ingestion.normalizer import CanonicalEvent, normalize_event

# Caller-specific field names mapped onto canonical ones.
FIELD_ALIASES = {
    "message_id": "source_message_id",
    "msg_id": "source_message_id",
    "channel": "channel_id",
    "project": "project_id",
    "timestamp": "occurred_at",
    "time_stamp": "occurred_at",
    "zia_entities": "extraction_entities",
    "entities": "extraction_entities",
    "confidence": "confidence_score",
    "risk": "risk_level",
    "type": "event_type",
    "text": "message_text",
}

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def canonical_key(key: str) -> str:
    """Lower-case a wire key, normalise separators and resolve aliases."""
    normalized = str(key).strip().replace("-", "_").replace(" ", "_")
    snake = _CAMEL_BOUNDARY.sub("_", normalized).lower()
    return FIELD_ALIASES.get(snake, snake)


def canonicalize_keys(fields: Mapping[str, Any]) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for key, value in fields.items():
        name = canonical_key(key)
        # Canonically named fields win over aliases.
        if name in result and str(key) != name:
            continue
        result[name] = value
    return result


class JSONBodyDecoder:
    """``application/json`` bodies: a single JSON object."""

    content_types = ("application/json", "text/json")

    def decode(self, raw: Union[bytes, str, Mapping[str, Any]]) -> dict[str, Any]:
        if isinstance(raw, Mapping):
            return canonicalize_keys(raw)
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="replace")
        try:
            body = json.loads(raw) if raw.strip() else {}
        except json.JSONDecodeError as exc:
            raise ValidationError(
                "Request body is not valid JSON",
                errors=[{"field": "body", "message": str(exc)}],
            ) from exc
        if not isinstance(body, dict):
            raise ValidationError(
                "Request body must be a JSON object",
                errors=[{"field": "body", "message": f"expected object, got {type(body).__name__}"}],
            )
        return canonicalize_keys(body)


class FormDecoder:
    """Flattened key/value bodies; every value arrives as a string.

    Structured fields (stakeholders, extraction entities) may be embedded
    JSON or comma-separated text; the normalizer coerces both.
    """

    content_types = ("application/x-www-form-urlencoded", "multipart/form-data")

    def decode(self, raw: Union[bytes, str, Mapping[str, Any]]) -> dict[str, Any]:
        if isinstance(raw, Mapping):
            items = list(raw.items())
        else:
            if isinstance(raw, bytes):
                raw = raw.decode("utf-8", errors="replace")
            items = parse_qsl(raw, keep_blank_values=True)
        fields: dict[str, Any] = {}
        for key, value in items:
            if isinstance(value, str):
                value = value.strip()
                if value == "":
                    value = None
            fields[key] = value
        return canonicalize_keys(fields)


JSON_DECODER = JSONBodyDecoder()
FORM_DECODER = FormDecoder()
DECODERS = (JSON_DECODER, FORM_DECODER)


def decoder_for(content_type: Optional[str]):
    """Select a decoder by media type; JSON is the default."""
    media_type = (content_type or "").split(";")[0].strip().lower()
    for decoder in DECODERS:
        if media_type in decoder.content_types:
            return decoder
    return JSON_DECODER


def decode_event(
    raw: Union[bytes, str, Mapping[str, Any]],
    content_type: Optional[str] = None,
    now: Optional[datetime] = None,
) -> CanonicalEvent:
    """Decode a raw ingest body of any supported encoding into a canonical event."""
    fields = decoder_for(content_type).decode(raw)
    return normalize_event(fields, now=now)
