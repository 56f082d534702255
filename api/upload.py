"""Chunked image upload endpoint."""

import json
from typing import Optional, Tuple
from fastapi import APIRouter, Depends, File, Form, UploadFile
from core.errors import ClientInputError, IntegrityError, ResourceError
from core.logging import log
from api.dependencies import get_session_manager
from api.envelope import (
    STATUS_COMPLETE,
    STATUS_PENDING,
    VALIDITY_PROGRESS,
    VALIDITY_TRUE,
    Envelope,
    envelope,
    error_response,
)
from ingestion.session_manager import UploadSessionManager

router = APIRouter(prefix="/api", tags=["upload"])


def _parse_int(value: Optional[str], field: str) -> int:
    if value is None or not value.strip():
        raise ClientInputError(f"Missing required field: {field}")
    try:
        return int(value)
    except ValueError:
        raise ClientInputError(f"{field} must be an integer")


def _parse_sid(payload: Optional[str]) -> str:
    if not payload:
        raise ClientInputError("Missing required field: PAYLOAD")
    try:
        parsed = json.loads(payload)
    except ValueError:
        raise ClientInputError("PAYLOAD is not valid JSON")
    if not isinstance(parsed, dict) or not parsed.get("TUID"):
        raise ClientInputError("Missing session id in PAYLOAD")
    return str(parsed["TUID"])


def parse_upload_form(chunk_idx: Optional[str],
                      chunk_total: Optional[str],
                      filename: Optional[str],
                      payload: Optional[str]) -> Tuple[str, int, int, str]:
    """Validate raw form fields.

    Returns:
        tuple: (sid, index, total, filename)

    Raises:
        ClientInputError: If a field is missing or malformed
    """
    index = _parse_int(chunk_idx, "CHUNK_IDX")
    total = _parse_int(chunk_total, "CHUNK_TOTAL")
    if not filename or not filename.strip():
        raise ClientInputError("Missing required field: FILENAME")
    return _parse_sid(payload), index, total, filename


@router.post("/apply/verification/img", response_model=Envelope)
def upload_chunk(
    CHUNK_IDX: Optional[str] = Form(None),
    CHUNK_TOTAL: Optional[str] = Form(None),
    FILENAME: Optional[str] = Form(None),
    PAYLOAD: Optional[str] = Form(None),
    CHUNK: Optional[UploadFile] = File(None),
    manager: UploadSessionManager = Depends(get_session_manager),
):
    """Receive one chunk of a multi-part image upload.

    Chunks may arrive in any order. When the last missing chunk arrives the
    image is reassembled and its path returned for the OCR endpoint.

    Returns:
        Envelope: ``progress`` while chunks are outstanding, ``true`` with
            the artifact path on completion

    Status codes:
        400: Missing or invalid fields, stray chunk for a completed upload
        409: A stored chunk went missing before reassembly
        500: Scratch or upload storage failure
    """
    try:
        sid, index, total, filename = parse_upload_form(CHUNK_IDX, CHUNK_TOTAL, FILENAME, PAYLOAD)
        if CHUNK is None:
            raise ClientInputError("Missing required file part: CHUNK")
        # Read one byte past the limit so oversized chunks are caught without buffering them whole
        data = CHUNK.file.read(manager.max_chunk_bytes + 1)
        if len(data) > manager.max_chunk_bytes:
            raise ClientInputError("Chunk exceeds the maximum chunk size")

        log.info(f"Chunk request: {sid} - {index}/{total}")
        result = manager.submit_chunk(sid, index, total, data, filename)

    except ClientInputError as e:
        log.warning(f"Rejected chunk upload: {str(e)}")
        return error_response(400, str(e), "client_error")
    except IntegrityError as e:
        log.error(f"Upload integrity error: {str(e)}")
        return error_response(409, str(e), "integrity_error")
    except ResourceError as e:
        log.error(f"Upload storage error: {str(e)}")
        return error_response(500, str(e), "resource_error")

    if result.status == STATUS_PENDING:
        return envelope(
            VALIDITY_PROGRESS,
            STATUS_PENDING,
            data={
                "chunk": result.index + 1,
                "total": result.total,
                "sid": result.sid,
                "received": result.received,
            },
            message="Chunk processed",
        )

    log.info(f"Upload complete: {result.artifact_path}")
    return envelope(
        VALIDITY_TRUE,
        STATUS_COMPLETE,
        data=str(result.artifact_path),
        message="Upload complete",
    )
