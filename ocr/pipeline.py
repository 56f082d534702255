"""Recognition pipeline - orchestrates TUID recognition for one artifact.

Flow:
1. Orientation analysis and correction (degrades to the original image)
2. Preprocessing (fast: one derivative, thorough: several variants)
3. Local OCR (Tesseract) and TUID extraction
4. Independent verification of the local candidate
5. Only if that candidate fails verification: quota check, cloud OCR
   (Google Cloud Vision), usage recording, extraction and verification

The artifact and every derivative written along the way are deleted when
the run ends, whatever the outcome.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional
from core.config import settings
from core.errors import CollaboratorFailure, FailureReason, QuotaExceeded, RecognitionAmbiguous
from core.logging import log
from core.utils import generate_trace_id, safe_unlink
from ocr.base import RecognitionAttempt, RecognitionEngine
from ocr.quota import QuotaGuard
from ocr.tesseract_engine import TesseractEngine, score_attempt
from ocr.verification import TuidVerifier
from postprocessing.identifier_extractor import extract_tuid
from preprocessing.orientation import OrientationAnalyzer
from preprocessing.preprocessor import FastPreprocessor, MultiVariantPreprocessor

MODE_FAST = "fast"
MODE_THOROUGH = "thorough"

SUCCESS_MESSAGE = "TUID extracted"

FAILURE_MESSAGES = {
    FailureReason.MISSING_INPUT: "Image path is missing, OCR failed",
    FailureReason.LOCAL_ENGINE_FAILED: "OCR execution failed",
    FailureReason.NO_CANDIDATE: "The image quality is poor. Please retake the photo",
    FailureReason.QUOTA_CHECK_FAILED: "Failed to check cloud OCR usage",
    FailureReason.QUOTA_EXCEEDED: "Cloud OCR usage limit exceeded",
    FailureReason.CLOUD_ENGINE_FAILED: "Cloud OCR failed",
    FailureReason.VERIFICATION_FAILED: "The image quality is poor",
}


@dataclass
class PipelineResult:
    """Outcome of one recognition run.

    Attributes:
        success: A verified TUID was found
        tuid: The verified identifier
        reason: FailureReason when success is False
        message: User-facing message
        attempts: Engine attempts in the order they ran
    """
    success: bool
    tuid: Optional[str] = None
    reason: Optional[FailureReason] = None
    message: str = ""
    attempts: List[RecognitionAttempt] = field(default_factory=list)


class RecognitionPipeline:
    """Local-first TUID recognition with quota-gated cloud fallback."""

    def __init__(self,
                 local_engine: TesseractEngine,
                 cloud_engine: RecognitionEngine,
                 verifier: TuidVerifier,
                 quota_guard: QuotaGuard,
                 orientation: Optional[OrientationAnalyzer] = None,
                 preprocessor: Optional[FastPreprocessor] = None,
                 variant_preprocessor: Optional[MultiVariantPreprocessor] = None,
                 mode: Optional[str] = None):
        """Initialize recognition pipeline.

        Args:
            local_engine: Tesseract engine (shared, serialized)
            cloud_engine: Cloud OCR engine used as fallback
            verifier: Remote TUID verifier
            quota_guard: Monthly cloud OCR quota
            orientation: Orientation analyzer (default instance if None)
            preprocessor: Fast-mode preprocessor (default instance if None)
            variant_preprocessor: Thorough-mode preprocessor (default instance if None)
            mode: "fast" or "thorough". If None, uses settings.PIPELINE_MODE
        """
        self.local_engine = local_engine
        self.cloud_engine = cloud_engine
        self.verifier = verifier
        self.quota_guard = quota_guard
        self.orientation = orientation or OrientationAnalyzer()
        self.preprocessor = preprocessor or FastPreprocessor()
        self.variant_preprocessor = variant_preprocessor or MultiVariantPreprocessor()
        self.mode = (mode or settings.PIPELINE_MODE).lower()

        if self.mode not in (MODE_FAST, MODE_THOROUGH):
            raise ValueError(f"Unknown pipeline mode: {self.mode}")

    def run(self, artifact_path: Path, sid: Optional[str] = None) -> PipelineResult:
        """Recognize and verify the TUID in a reassembled artifact.

        Expected failures are returned as a PipelineResult with a
        FailureReason; only unexpected errors propagate.

        Args:
            artifact_path: Reassembled image inside the uploads directory
            sid: Identifier recorded with cloud usage (trace id if None)

        Returns:
            PipelineResult: Verified TUID or typed failure
        """
        artifact_path = Path(artifact_path)
        derived: List[Path] = []
        try:
            result = self._run(artifact_path, sid or generate_trace_id(), derived)
        finally:
            for path in derived:
                safe_unlink(path)
            safe_unlink(artifact_path)

        if result.success:
            log.info(f"Recognition succeeded for {artifact_path.name}: {result.tuid}")
        else:
            log.info(f"Recognition failed for {artifact_path.name}: {result.reason.value}")
        return result

    def _run(self, artifact_path: Path, sid: str, derived: List[Path]) -> PipelineResult:
        attempts: List[RecognitionAttempt] = []

        if not artifact_path.is_file():
            log.warning(f"Recognition input missing: {artifact_path}")
            return self._failure(FailureReason.MISSING_INPUT, attempts)

        orientation = self.orientation.analyze(artifact_path)
        rotation = self.orientation.rotate(artifact_path, orientation)
        working_path = rotation.path
        if rotation.rotated:
            derived.append(rotation.path)

        local = self._recognize_local(working_path, derived)
        attempts.append(local)
        if not local.success:
            return self._failure(FailureReason.LOCAL_ENGINE_FAILED, attempts)

        try:
            local.tuid = self.require_candidate(local)
        except RecognitionAmbiguous as e:
            log.info(str(e))
            return self._failure(FailureReason.NO_CANDIDATE, attempts)

        try:
            verification = self.verifier.verify(local.tuid)
        except CollaboratorFailure as e:
            log.error(f"Verifier unavailable: {str(e)}")
            return self._failure(FailureReason.VERIFICATION_FAILED, attempts, detail=str(e))

        if verification.confirmed:
            return PipelineResult(success=True, tuid=local.tuid, message=SUCCESS_MESSAGE, attempts=attempts)

        log.info(f"Local candidate {local.tuid} not verified, escalating to cloud OCR")
        return self._recognize_cloud(artifact_path, sid, attempts)

    def _recognize_local(self, image_path: Path, derived: List[Path]) -> RecognitionAttempt:
        if self.mode == MODE_FAST:
            prepared = self.preprocessor.prepare(image_path)
            if prepared.derived:
                derived.append(prepared.path)
            return self.local_engine.recognize(prepared.path)

        variants = self.variant_preprocessor.prepare_all(image_path)
        derived.extend(variant.path for variant in variants if variant.derived)

        best: Optional[RecognitionAttempt] = None
        failure: Optional[RecognitionAttempt] = None
        for variant in variants:
            attempt = self.local_engine.recognize_best(variant.path)
            if not attempt.success:
                failure = attempt
                continue
            if extract_tuid(attempt.text):
                log.info(f"Variant '{variant.strategy}' produced a TUID candidate")
                return attempt
            if best is None or score_attempt(attempt) > score_attempt(best):
                best = attempt

        return best or failure

    def _recognize_cloud(self, image_path: Path, sid: str, attempts: List[RecognitionAttempt]) -> PipelineResult:
        try:
            self.quota_guard.check()
        except QuotaExceeded as e:
            log.warning(str(e))
            return self._failure(FailureReason.QUOTA_EXCEEDED, attempts)
        except CollaboratorFailure as e:
            log.error(f"Quota check failed: {str(e)}")
            return self._failure(FailureReason.QUOTA_CHECK_FAILED, attempts)

        cloud = self.cloud_engine.recognize(image_path)
        attempts.append(cloud)
        if cloud.success:
            cloud.tuid = extract_tuid(cloud.text)

        try:
            self.quota_guard.record(sid, cloud.tuid)
        except CollaboratorFailure as e:
            log.error(f"Failed to record cloud OCR usage: {str(e)}")
            return self._failure(FailureReason.CLOUD_ENGINE_FAILED, attempts)

        if not cloud.success:
            log.error(f"Cloud OCR failed: {cloud.failure_reason}")
            return self._failure(FailureReason.CLOUD_ENGINE_FAILED, attempts)

        try:
            self.require_candidate(cloud)
        except RecognitionAmbiguous as e:
            log.info(str(e))
            return self._failure(FailureReason.NO_CANDIDATE, attempts)

        try:
            verification = self.verifier.verify(cloud.tuid)
        except CollaboratorFailure as e:
            log.error(f"Verifier unavailable: {str(e)}")
            return self._failure(FailureReason.VERIFICATION_FAILED, attempts, detail=str(e))

        if not verification.confirmed:
            return self._failure(FailureReason.VERIFICATION_FAILED, attempts, detail=verification.message)

        return PipelineResult(success=True, tuid=cloud.tuid, message=SUCCESS_MESSAGE, attempts=attempts)

    @staticmethod
    def require_candidate(attempt: RecognitionAttempt) -> str:
        """Return the TUID found in an attempt's text.

        Raises:
            RecognitionAmbiguous: If the text holds no identifier
        """
        if not attempt.tuid:
            attempt.tuid = extract_tuid(attempt.text)
        if not attempt.tuid:
            raise RecognitionAmbiguous(attempt.engine)
        return attempt.tuid

    @staticmethod
    def _failure(reason: FailureReason,
                 attempts: List[RecognitionAttempt],
                 detail: Optional[str] = None) -> PipelineResult:
        message = FAILURE_MESSAGES[reason]
        if detail:
            message = f"{message}. {detail}"
        return PipelineResult(success=False, reason=reason, message=message, attempts=attempts)
