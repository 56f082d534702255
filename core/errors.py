"""Domain exceptions for upload reassembly and TUID recognition.

Two families live here. Upload errors (ClientInputError, IntegrityError,
ResourceError) are raised by the ingestion layer and mapped to HTTP status
codes by the API. Recognition errors (RecognitionAmbiguous, QuotaExceeded,
CollaboratorFailure) are raised inside the pipeline and folded into a
PipelineResult with a FailureReason.
"""

from enum import Enum
from typing import Optional


class FailureReason(str, Enum):
    """Typed failure reasons reported by the recognition pipeline."""
    MISSING_INPUT = "missing_input"
    LOCAL_ENGINE_FAILED = "local_engine_failed"
    NO_CANDIDATE = "no_candidate"
    QUOTA_CHECK_FAILED = "quota_check_failed"
    QUOTA_EXCEEDED = "quota_exceeded"
    CLOUD_ENGINE_FAILED = "cloud_engine_failed"
    VERIFICATION_FAILED = "verification_failed"


class TuidServiceError(Exception):
    """Base exception for all service errors."""


class ClientInputError(TuidServiceError):
    """Raised when a request is missing required fields or carries invalid values.

    Never retried; surfaced to the client immediately.
    """


class SessionClosedError(ClientInputError):
    """Raised when a chunk arrives for a session that has already completed."""


class IntegrityError(TuidServiceError):
    """Raised when a chunk expected by the slot table is missing or unreadable.

    Fatal to the session; the client must re-upload from scratch.
    """

    def __init__(self, message: str, sid: Optional[str] = None, index: Optional[int] = None):
        super().__init__(message)
        self.sid = sid
        self.index = index


class ResourceError(TuidServiceError):
    """Raised when scratch or artifact storage cannot be written or deleted."""


class RecognitionAmbiguous(TuidServiceError):
    """Raised when no identifier pattern is found in an engine's output.

    Reported to the caller as a request to recapture the image.
    """

    def __init__(self, engine: str):
        super().__init__(f"No TUID candidate in {engine} OCR output")
        self.engine = engine


class QuotaExceeded(TuidServiceError):
    """Raised when monthly cloud OCR usage is at or above the ceiling."""

    def __init__(self, count: int, ceiling: int):
        super().__init__(f"Cloud OCR quota exceeded: {count}/{ceiling} calls this month")
        self.count = count
        self.ceiling = ceiling


class CollaboratorFailure(TuidServiceError):
    """Raised when a remote collaborator (quota ledger, cloud OCR, verifier) fails.

    Attributes:
        collaborator: Short name of the failing collaborator
        reason: Machine-readable failure reason from the collaborator
    """

    def __init__(self, collaborator: str, message: str, reason: Optional[str] = None):
        super().__init__(f"{collaborator}: {message}")
        self.collaborator = collaborator
        self.reason = reason or "collaborator_error"
