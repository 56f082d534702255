"""TUID recognition endpoint."""

from pathlib import Path
from typing import Optional
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from core.errors import FailureReason
from core.logging import log
from core.utils import is_within
from api.dependencies import get_pipeline, get_uploads_dir
from api.envelope import (
    STATUS_COMPLETE,
    STATUS_ERROR,
    VALIDITY_FALSE,
    VALIDITY_TRUE,
    Envelope,
    envelope,
    error_response,
)
from ocr.pipeline import FAILURE_MESSAGES, RecognitionPipeline

router = APIRouter(prefix="/api", tags=["recognize"])


class RecognizeRequest(BaseModel):
    """Recognition request model."""
    IMG_PATH: Optional[str] = None


def _missing_input() -> Envelope:
    return envelope(
        VALIDITY_FALSE,
        STATUS_ERROR,
        message=FAILURE_MESSAGES[FailureReason.MISSING_INPUT],
        reason=FailureReason.MISSING_INPUT.value,
    )


@router.post("/apply/verification/ocr", response_model=Envelope)
def recognize_tuid(
    request: RecognizeRequest,
    pipeline: RecognitionPipeline = Depends(get_pipeline),
    uploads_dir: Path = Depends(get_uploads_dir),
):
    """Recognize and verify the TUID in a previously uploaded image.

    The image is deleted once recognition finishes, whatever the outcome.

    Args:
        request: IMG_PATH returned by the upload endpoint

    Returns:
        Envelope: ``true`` with the TUID, or ``false`` with a reason and a
            user-facing message
    """
    if not request.IMG_PATH or not request.IMG_PATH.strip():
        log.warning("Recognition request without IMG_PATH")
        return _missing_input()

    image_path = Path(request.IMG_PATH)
    if not is_within(image_path, uploads_dir):
        log.warning(f"Recognition request outside uploads directory: {request.IMG_PATH}")
        return _missing_input()

    try:
        result = pipeline.run(image_path)
    except Exception as e:
        log.opt(exception=True).error(f"Recognition error for {image_path.name}: {str(e)}")
        return error_response(500, "OCR failed", "internal_error")

    if result.success:
        return envelope(VALIDITY_TRUE, STATUS_COMPLETE, data=result.tuid, message=result.message)

    return envelope(
        VALIDITY_FALSE,
        STATUS_ERROR,
        message=result.message,
        reason=result.reason.value,
    )
