"""Client for the external entity-extraction service.

The service is an opaque classifier: given message text it returns the
labeled entities it found and an overall confidence::

    {"entities": {"compliance_event": {"value": "approval"}, ...},
     "confidence": 0.91}
"""

import logging
from typing import Any, Mapping, Optional

import httpx

from compliance_api.errors import ExtractionError
from compliance_api.settings import get_settings

logger = logging.getLogger(__name__)

EXTRACTION_ENTITIES = ["compliance_event", "regulation_type", "risk_level", "decision_type"]


def _entity_value(entities: Mapping[str, Any], name: str) -> Optional[Any]:
    entity = entities.get(name)
    if isinstance(entity, Mapping):
        return entity.get("value")
    return entity


class ExtractionClient:
    """Synchronous HTTP client for the extraction service."""

    def __init__(self, http_client: Optional[httpx.Client] = None):
        """Initialize extraction client."""
        self.settings = get_settings()
        self.http_client = http_client

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.settings.extraction_api_token:
            headers["Authorization"] = f"Bearer {self.settings.extraction_api_token}"
        return headers

    def extract(self, text: str) -> dict:
        """Label compliance entities in ``text``.

        Raises:
            ExtractionError: transport failure, non-2xx status or a body
                without an ``entities`` object.
        """
        body = {
            "text": text,
            "model_id": self.settings.extraction_model_id,
            "entities": EXTRACTION_ENTITIES,
        }
        url = f"{self.settings.extraction_api_url.rstrip('/')}/skills/extract"
        client = self.http_client or httpx.Client(timeout=self.settings.extraction_timeout_seconds)
        try:
            response = client.post(url, json=body, headers=self._headers())
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Extraction request failed: {e}")
            raise ExtractionError(f"Extraction service error: {e}") from e
        finally:
            if self.http_client is None:
                client.close()

        if not isinstance(data, dict) or not isinstance(data.get("entities"), dict):
            raise ExtractionError("Extraction response has no entities object")
        return data


def payload_from_extraction(message: Mapping[str, Any], extraction: Mapping[str, Any]) -> Optional[dict]:
    """Map an extraction result plus message provenance to an ingest payload.

    Returns None when no ``compliance_event`` entity was labeled.
    """
    entities = extraction.get("entities") or {}
    event_type = _entity_value(entities, "compliance_event")
    if not event_type:
        return None
    return {
        "channel_id": message.get("channel_id"),
        "channel_name": message.get("channel_name"),
        "source_message_id": message.get("message_id") or message.get("source_message_id"),
        "project_id": message.get("project_id"),
        "user_id": message.get("user_id"),
        "user_name": message.get("user_name"),
        "occurred_at": message.get("timestamp"),
        "event_type": event_type,
        "regulation": _entity_value(entities, "regulation_type"),
        "risk_level": _entity_value(entities, "risk_level"),
        "decision_type": _entity_value(entities, "decision_type"),
        "message_text": message.get("text"),
        "evidence_url": message.get("permalink"),
        "deadline": message.get("deadline"),
        "stakeholders": message.get("stakeholders"),
        "confidence_score": extraction.get("confidence"),
        "extraction_entities": dict(entities),
    }
