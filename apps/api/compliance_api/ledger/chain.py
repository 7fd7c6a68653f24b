"""Canonical serialization and verification of the audit hash chain.

Pure functions only; ``AuditChainBuilder`` does the persistence.

    report_hash = sha256(serialized_partition + previous_hash)

The serialization is JSON with sorted keys and no insignificant
whitespace, so a partition always produces the same bytes.
"""

import hashlib
import json
from datetime import date, datetime
from typing import Iterable, Mapping, Optional

from compliance_api.errors import ChainIntegrityError
from compliance_api.models.audit import GENESIS_HASH


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def canonical_event(event) -> dict:
    """The hashed view of an event.

    ``status`` and ``reviewed_at`` are left out: review actions are the one
    permitted mutation and must not invalidate the chain.
    """
    return {
        "event_id": event.id,
        "source_message_id": event.source_message_id,
        "channel_id": event.channel_id,
        "channel_name": event.channel_name,
        "project_id": event.project_id,
        "user_id": event.user_id,
        "user_name": event.user_name,
        "event_type": event.event_type,
        "regulation": event.regulation,
        "risk_level": event.risk_level,
        "decision_type": event.decision_type,
        "confidence_score": event.confidence_score,
        "deadline": _iso(event.deadline),
        "stakeholders": list(event.stakeholders or []),
        "message_text": event.message_text,
        "evidence_url": event.evidence_url,
        "extraction_entities": event.extraction_entities or {},
        "occurred_at": _iso(event.occurred_at),
        "created_at": _iso(event.created_at),
    }


def order_events(events: Iterable) -> list:
    """Deterministic partition order: ``created_at`` then ``event_id``."""
    return sorted(events, key=lambda e: (e.created_at, e.id))


def serialize_partition(
    project_id: str,
    regulation: str,
    period_start: date,
    period_end: date,
    events: Iterable,
) -> str:
    """Canonical serialization of one (project, regulation, period) group.

    ``events`` must already be in chain order.
    """
    payload = {
        "project_id": project_id,
        "regulation": regulation,
        "period_start": period_start.isoformat(),
        "period_end": period_end.isoformat(),
        "events": [canonical_event(e) for e in events],
    }
    return json.dumps(payload, sort_keys=True, separators=(",", ":"))


def compute_report_hash(serialized: str, previous_hash: str) -> str:
    return hashlib.sha256((serialized + previous_hash).encode("utf-8")).hexdigest()


def verify_chain(records: Iterable, events_by_id: Mapping[int, object]) -> int:
    """Recompute every record of the chain in sequence order.

    Args:
        records: all audit records, ordered by ``sequence``
        events_by_id: the covered events keyed by event id

    Returns:
        Number of records checked.

    Raises:
        ChainIntegrityError: at the first record that does not link to its
            predecessor, covers a missing event, or whose hash differs.
    """
    expected_previous = GENESIS_HASH
    checked = 0
    for record in records:
        if record.previous_hash != expected_previous:
            raise ChainIntegrityError(
                "previous_hash does not match the prior record",
                record_id=record.id,
                sequence=record.sequence,
                records_checked=checked,
                expected_hash=expected_previous,
                actual_hash=record.previous_hash,
            )

        missing = [event_id for event_id in record.event_ids if event_id not in events_by_id]
        if missing:
            raise ChainIntegrityError(
                f"Covered events missing: {missing}",
                record_id=record.id,
                sequence=record.sequence,
                records_checked=checked,
                expected_hash=record.report_hash,
            )

        serialized = serialize_partition(
            record.project_id,
            record.regulation,
            record.period_start,
            record.period_end,
            [events_by_id[event_id] for event_id in record.event_ids],
        )
        computed = compute_report_hash(serialized, record.previous_hash)
        if computed != record.report_hash:
            raise ChainIntegrityError(
                "report_hash does not match covered events",
                record_id=record.id,
                sequence=record.sequence,
                records_checked=checked,
                expected_hash=record.report_hash,
                actual_hash=computed,
            )

        expected_previous = record.report_hash
        checked += 1
    return checked
