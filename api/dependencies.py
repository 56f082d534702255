"""Shared service instances for the API routers.

Each provider is cached so the whole process shares one session manager
and one pipeline. Tests replace them through ``app.dependency_overrides``.
"""

from functools import lru_cache
from pathlib import Path
from core.config import settings
from ingestion.chunk_store import ChunkStore
from ingestion.reassembler import Reassembler
from ingestion.session_manager import UploadSessionManager
from ocr.pipeline import RecognitionPipeline
from ocr.quota import QuotaGuard, create_usage_ledger
from ocr.tesseract_engine import TesseractEngine, get_tesseract_engine
from ocr.verification import TuidVerifier
from ocr.vision_engine import VisionEngine


def get_uploads_dir() -> Path:
    return Path(settings.STORAGE_UPLOADS)


@lru_cache()
def get_chunk_store() -> ChunkStore:
    return ChunkStore(Path(settings.STORAGE_SCRATCH))


@lru_cache()
def get_session_manager() -> UploadSessionManager:
    return UploadSessionManager(
        chunk_store=get_chunk_store(),
        reassembler=Reassembler(get_uploads_dir()),
    )


def get_local_engine() -> TesseractEngine:
    return get_tesseract_engine()


@lru_cache()
def get_vision_engine() -> VisionEngine:
    return VisionEngine()


@lru_cache()
def get_pipeline() -> RecognitionPipeline:
    return RecognitionPipeline(
        local_engine=get_local_engine(),
        cloud_engine=get_vision_engine(),
        verifier=TuidVerifier(),
        quota_guard=QuotaGuard(create_usage_ledger()),
    )
