"""Health check endpoint."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from typing import Dict, Any
from core.config import settings
from api.dependencies import get_local_engine, get_session_manager, get_vision_engine
from ingestion.session_manager import UploadSessionManager
from ocr.tesseract_engine import TesseractEngine
from ocr.vision_engine import VisionEngine

router = APIRouter(prefix="/api", tags=["health"])


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str
    version: str
    dependencies: Dict[str, Any]
    active_sessions: int


@router.get("/health", response_model=HealthResponse)
def health_check(
    manager: UploadSessionManager = Depends(get_session_manager),
    local_engine: TesseractEngine = Depends(get_local_engine),
    vision: VisionEngine = Depends(get_vision_engine),
):
    """Health check endpoint.

    Returns:
        HealthResponse: System status and dependency checks
    """
    dependencies = {
        "tesseract": "available" if local_engine.is_available() else "unavailable",
        "google_vision_credentials": "available" if vision.is_available() else "unavailable",
        "quota_backend": settings.QUOTA_BACKEND,
        "pipeline_mode": settings.PIPELINE_MODE,
    }

    return HealthResponse(
        status="healthy",
        version="1.0.0",
        dependencies=dependencies,
        active_sessions=manager.active_sessions(),
    )
