"""Response envelope shared by the verification endpoints.

Every response has the shape the mobile client already parses:
``{"validity": "true"|"false"|"progress", "data": {"DATA", "FNM", "message"}}``
plus a ``status`` and, for failures, a machine-readable ``reason``.
"""

from typing import Any, Optional
from fastapi.responses import JSONResponse
from pydantic import BaseModel

VALIDITY_TRUE = "true"
VALIDITY_FALSE = "false"
VALIDITY_PROGRESS = "progress"

STATUS_PENDING = "pending"
STATUS_COMPLETE = "complete"
STATUS_ERROR = "error"


class EnvelopeData(BaseModel):
    DATA: Optional[Any] = None
    FNM: str = ""
    message: str = ""


class Envelope(BaseModel):
    """Verification endpoint response model."""
    validity: str
    data: EnvelopeData
    status: str
    reason: Optional[str] = None


def envelope(validity: str,
             status: str,
             data: Any = None,
             message: str = "",
             reason: Optional[str] = None) -> Envelope:
    return Envelope(
        validity=validity,
        data=EnvelopeData(DATA=data, message=message),
        status=status,
        reason=reason,
    )


def error_response(status_code: int, message: str, reason: str) -> JSONResponse:
    """Build a non-200 response that still carries the envelope."""
    body = envelope(VALIDITY_FALSE, STATUS_ERROR, message=message, reason=reason)
    return JSONResponse(status_code=status_code, content=body.model_dump())
