"""Error taxonomy for the compliance core.

Re-delivery of an already stored event is not an error; the event store
reports it through ``InsertResult.created``.
"""

from typing import Optional


class ComplianceError(Exception):
    """Base class for compliance core errors."""


class ValidationError(ComplianceError):
    """Input is malformed, incomplete or conflicts with stored state. Not retryable."""

    def __init__(self, message: str, errors: Optional[list[dict]] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors or []

    def to_dict(self) -> dict:
        return {"success": False, "error": self.message, "errors": self.errors}


class StorageError(ComplianceError):
    """Persistence layer unavailable or write rejected. Caller may retry."""


class ChainIntegrityError(ComplianceError):
    """An audit record's hash no longer matches its covered events."""

    def __init__(
        self,
        message: str,
        record_id: Optional[int] = None,
        sequence: Optional[int] = None,
        expected_hash: Optional[str] = None,
        actual_hash: Optional[str] = None,
        records_checked: int = 0,
    ):
        super().__init__(message)
        self.message = message
        self.record_id = record_id
        self.sequence = sequence
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        # Records verified before this one
        self.records_checked = records_checked

    def to_dict(self) -> dict:
        return {
            "record_id": self.record_id,
            "sequence": self.sequence,
            "reason": self.message,
            "expected_hash": self.expected_hash,
            "actual_hash": self.actual_hash,
        }


class PredictionInputError(ComplianceError):
    """Not enough history to derive a feature vector."""


class ExtractionError(ComplianceError):
    """The entity extraction service failed or returned an unusable body."""
