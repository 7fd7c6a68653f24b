"""Compliance event ingest and review endpoints."""

import logging
import time
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from compliance_api.alerts.service import AlertService
from compliance_api.db.session import get_db
from compliance_api.errors import ValidationError
from compliance_api.events.service import IngestService
from compliance_api.events.store import EventStore
from compliance_api.ingestion.decoders import FORM_DECODER, decode_event, decoder_for
from compliance_api.ingestion.normalizer import normalize_event
from compliance_api.integrations.extraction import ExtractionClient, payload_from_extraction
from compliance_api.models import EventStatus
from compliance_api.utils.clock import to_naive_utc
from compliance_api.utils.metrics import ingest_duration, ingest_requests

router = APIRouter(prefix="/v1", tags=["events"])
logger = logging.getLogger(__name__)


class EventIngestResponse(BaseModel):
    """Ingest response model."""

    success: bool = True
    event_id: int
    created: bool
    message: str


class ExtractRequest(BaseModel):
    """Raw message to run through entity extraction before ingest."""

    text: str = Field(..., min_length=1)
    channel_id: str
    message_id: str
    channel_name: Optional[str] = None
    project_id: Optional[str] = None
    user_id: Optional[str] = None
    user_name: Optional[str] = None
    permalink: Optional[str] = None
    timestamp: Optional[str] = None
    deadline: Optional[str] = None
    stakeholders: Optional[list[str]] = None


class ExtractResponse(BaseModel):
    success: bool = True
    extracted: bool
    event_id: Optional[int] = None
    created: Optional[bool] = None
    entities: dict = Field(default_factory=dict)
    confidence: Optional[float] = None


class StatusUpdateRequest(BaseModel):
    status: EventStatus


class EventResponse(BaseModel):
    event_id: int
    project_id: str
    channel_id: str
    source_message_id: str
    event_type: str
    regulation: str
    risk_level: str
    status: str
    confidence_score: float
    deadline: Optional[datetime] = None
    stakeholders: list[str] = Field(default_factory=list)
    user_name: str = ""
    message_text: str = ""
    evidence_url: Optional[str] = None
    occurred_at: datetime
    created_at: datetime
    reviewed_at: Optional[datetime] = None


def _event_response(event) -> EventResponse:
    return EventResponse(
        event_id=event.id,
        project_id=event.project_id,
        channel_id=event.channel_id,
        source_message_id=event.source_message_id,
        event_type=event.event_type,
        regulation=event.regulation,
        risk_level=event.risk_level,
        status=event.status,
        confidence_score=event.confidence_score,
        deadline=event.deadline,
        stakeholders=list(event.stakeholders or []),
        user_name=event.user_name,
        message_text=event.message_text,
        evidence_url=event.evidence_url,
        occurred_at=event.occurred_at,
        created_at=event.created_at,
        reviewed_at=event.reviewed_at,
    )


def get_alert_service() -> AlertService:
    return AlertService()


def get_ingest_service(
    db: Session = Depends(get_db),
    alert_service: AlertService = Depends(get_alert_service),
) -> IngestService:
    return IngestService(db, alert_service=alert_service)


def get_extraction_client() -> ExtractionClient:
    return ExtractionClient()


@router.post("/events", response_model=EventIngestResponse, status_code=status.HTTP_200_OK)
async def ingest_event(
    request: Request,
    service: IngestService = Depends(get_ingest_service),
):
    """Store a compliance event sent as a JSON body or as form fields."""
    started = time.perf_counter()
    content_type = request.headers.get("content-type")
    decoder = decoder_for(content_type)
    if decoder is FORM_DECODER and "multipart/form-data" in (content_type or ""):
        form = await request.form()
        raw = {key: value for key, value in form.items() if isinstance(value, str)}
    else:
        raw = await request.body()

    try:
        event = decode_event(raw, content_type)
    except ValidationError:
        ingest_requests.labels(outcome="invalid").inc()
        raise

    result = service.ingest(event)
    ingest_requests.labels(outcome="created" if result.created else "duplicate").inc()
    ingest_duration.observe(time.perf_counter() - started)
    logger.info(
        "Ingest request handled",
        extra={
            "event_id": result.event_id,
            "created": result.created,
            "correlation_id": getattr(request.state, "correlation_id", None),
        },
    )
    return EventIngestResponse(
        event_id=result.event_id,
        created=result.created,
        message="Compliance event stored successfully" if result.created else "Compliance event already stored",
    )


@router.post("/events/extract", response_model=ExtractResponse)
def extract_event(
    request_data: ExtractRequest,
    service: IngestService = Depends(get_ingest_service),
    client: ExtractionClient = Depends(get_extraction_client),
):
    """Run a raw message through entity extraction and store it if labeled."""
    extraction = client.extract(request_data.text)
    payload = payload_from_extraction(request_data.model_dump(), extraction)
    if payload is None:
        return ExtractResponse(
            extracted=False,
            entities=extraction.get("entities") or {},
            confidence=extraction.get("confidence"),
        )

    result = service.ingest(normalize_event(payload))
    return ExtractResponse(
        extracted=True,
        event_id=result.event_id,
        created=result.created,
        entities=extraction.get("entities") or {},
        confidence=extraction.get("confidence"),
    )


@router.patch("/events/{event_id}/status", response_model=EventResponse)
def update_event_status(
    event_id: int,
    request_data: StatusUpdateRequest,
    service: IngestService = Depends(get_ingest_service),
):
    """Apply a review action to an event."""
    event = service.update_status(event_id, request_data.status.value)
    return _event_response(event)


@router.get("/events", response_model=list[EventResponse])
def list_events(
    project_id: str = Query("all"),
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    regulation: Optional[str] = None,
    limit: int = Query(500, ge=1, le=5000),
    db: Session = Depends(get_db),
):
    """Events in ``[start, end)`` ordered by creation time."""
    start = to_naive_utc(start) if start else None
    end = to_naive_utc(end) if end else None
    events = EventStore(db).query(project_id, start, end, regulation)
    return [_event_response(event) for event in events[:limit]]
