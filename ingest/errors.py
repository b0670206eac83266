"""Error taxonomy for the ingest pipeline.

Client faults carry enough context (field or batch index) for the caller to
correct the request. Server faults carry a generic message only; the internal
detail is logged where the fault is caught.
"""
from typing import Any, Dict


class IngestError(Exception):
    """Base error with a machine-readable code and an HTTP status."""

    code: str = "internal_error"
    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def is_client_fault(self) -> bool:
        return self.status_code < 500

    def to_dict(self) -> Dict[str, Any]:
        return {"error": {"code": self.code, "message": self.message}}


class InvalidRequest(IngestError):
    """Malformed body, wrong shape, bad batch size or a rejected single event."""

    code = "invalid_request"
    status_code = 400


class PayloadTooLarge(InvalidRequest):
    status_code = 413


class InvalidEvent(IngestError):
    """A batch member failed validation; no member of the batch was stored."""

    code = "invalid_event"
    status_code = 400

    def __init__(self, index: int, reason: str):
        super().__init__(f"index {index}: {reason}")
        self.index = index
        self.reason = reason


class InsertFailed(IngestError):
    """Valid input could not be stored."""

    code = "insert_failed"
    status_code = 500


class SchemaBootstrapError(Exception):
    """The store could not be opened or its schema could not be applied."""
