"""OCR module.

This module provides:
- Tesseract local recognition engine (serialized, process-wide)
- Google Cloud Vision recognition engine (fallback)
- Monthly cloud OCR quota guard and usage ledgers
- Remote TUID verification
- Recognition pipeline orchestrator
"""

from ocr.pipeline import RecognitionPipeline, PipelineResult
from ocr.tesseract_engine import TesseractEngine
from ocr.vision_engine import VisionEngine
from ocr.quota import QuotaGuard
from ocr.verification import TuidVerifier

__all__ = [
    'RecognitionPipeline',
    'PipelineResult',
    'TesseractEngine',
    'VisionEngine',
    'QuotaGuard',
    'TuidVerifier'
]
