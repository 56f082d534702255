"""Local recognition engine backed by the Tesseract binary (pytesseract).

The engine is a process-wide resource: it is configured lazily on first use
and every recognition call is serialized through a single lock, so
concurrent requests queue for it instead of running in parallel.
"""

import threading
import time
from pathlib import Path
from typing import Dict, List, Optional, Sequence
import pytesseract
from core.config import settings
from core.logging import log
from ingestion.file_handler import FileHandler
from ocr.base import ENGINE_LOCAL, RecognitionAttempt, RecognitionEngine

REASON_FILE_NOT_FOUND = "file_not_found"
REASON_ENGINE_UNAVAILABLE = "engine_unavailable"
REASON_ENGINE_ERROR = "engine_error"


def score_attempt(attempt: RecognitionAttempt) -> float:
    """Rank attempts by confidence, with a smaller weight for text length."""
    return (attempt.confidence or 0.0) * 0.7 + min(len(attempt.text), 100) * 0.3


class TesseractEngine(RecognitionEngine):
    """Tesseract OCR wrapper with lazy setup and serialized access.

    Fixed parameters: sparse-text page segmentation (PSM 11), 300 DPI and
    preserved inter-word spacing. The configured language (``kor+eng`` by
    default) falls back to a single language when its traineddata is not
    installed.
    """

    name = ENGINE_LOCAL

    def __init__(self,
                 lang: Optional[str] = None,
                 fallback_lang: Optional[str] = None,
                 psm: Optional[int] = None,
                 dpi: Optional[int] = None,
                 tesseract_cmd: Optional[str] = None):
        """Initialize Tesseract engine (the binary is not touched until first use).

        Args:
            lang: Tesseract language string. If None, uses settings
            fallback_lang: Language used when lang is not installed
            psm: Default page segmentation mode
            dpi: Resolution hint passed to Tesseract
            tesseract_cmd: Explicit path to the tesseract binary
        """
        self.lang = lang or settings.TESSERACT_LANG
        self.fallback_lang = fallback_lang or settings.TESSERACT_FALLBACK_LANG
        self.psm = psm or settings.TESSERACT_PSM
        self.dpi = dpi or settings.TESSERACT_DPI
        self.tesseract_cmd = tesseract_cmd or settings.TESSERACT_CMD

        self._lock = threading.Lock()
        self._language: Optional[str] = None

    def build_config(self, psm: Optional[int] = None) -> str:
        return f"--psm {psm or self.psm} --dpi {self.dpi} -c preserve_interword_spaces=1"

    def is_available(self) -> bool:
        """Check that the tesseract binary can be executed."""
        if self.tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = self.tesseract_cmd
        try:
            pytesseract.get_tesseract_version()
            return True
        except (pytesseract.TesseractNotFoundError, OSError):
            return False

    def _ensure_ready(self) -> str:
        # Caller holds self._lock
        if self._language is not None:
            return self._language

        if self.tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = self.tesseract_cmd

        version = pytesseract.get_tesseract_version()
        installed = set(pytesseract.get_languages(config=''))
        wanted = [part for part in self.lang.split('+') if part]

        if all(part in installed for part in wanted):
            self._language = self.lang
        else:
            missing = [part for part in wanted if part not in installed]
            log.warning(f"Tesseract language data missing for {missing}, falling back to '{self.fallback_lang}'")
            self._language = self.fallback_lang

        log.info(f"Tesseract {version} ready (lang={self._language}, psm={self.psm}, dpi={self.dpi})")
        return self._language

    def recognize(self, image_path: Path, psm: Optional[int] = None) -> RecognitionAttempt:
        """Recognize text in an image file.

        Args:
            image_path: Image to recognize
            psm: Page segmentation mode override

        Returns:
            RecognitionAttempt: Text and mean word confidence (0-100), or a
                failed attempt with file_not_found, engine_unavailable or
                engine_error
        """
        image_path = Path(image_path)
        if not image_path.exists():
            log.error(f"Local OCR input not found: {image_path}")
            return RecognitionAttempt.failed(self.name, REASON_FILE_NOT_FOUND)

        try:
            image = FileHandler.load_image(image_path)
        except (FileNotFoundError, IOError) as e:
            log.error(f"Local OCR could not read {image_path}: {str(e)}")
            return RecognitionAttempt.failed(self.name, REASON_ENGINE_ERROR)

        started = time.perf_counter()
        with self._lock:
            try:
                language = self._ensure_ready()
            except (pytesseract.TesseractNotFoundError, pytesseract.TesseractError, OSError) as e:
                log.error(f"Tesseract is not available: {str(e)}")
                return RecognitionAttempt.failed(self.name, REASON_ENGINE_UNAVAILABLE)

            try:
                data = pytesseract.image_to_data(
                    image,
                    lang=language,
                    config=self.build_config(psm),
                    output_type=pytesseract.Output.DICT,
                )
            except (pytesseract.TesseractError, RuntimeError, OSError) as e:
                log.error(f"Tesseract recognition failed for {image_path.name}: {str(e)}")
                return RecognitionAttempt.failed(self.name, REASON_ENGINE_ERROR)

        text, confidence = self.parse_data(data)
        duration_ms = (time.perf_counter() - started) * 1000
        log.info(f"Local OCR (psm {psm or self.psm}) read {len(text)} chars, "
                 f"confidence {confidence:.1f}, {duration_ms:.0f} ms")
        return RecognitionAttempt(
            engine=self.name,
            text=text,
            confidence=confidence,
            image_path=str(image_path),
            duration_ms=duration_ms,
        )

    def recognize_best(self,
                       image_path: Path,
                       psms: Optional[Sequence[int]] = None,
                       early_accept: Optional[float] = None) -> RecognitionAttempt:
        """Try several segmentation modes and keep the best-scoring result.

        The first mode is accepted immediately when its confidence exceeds
        early_accept.

        Args:
            image_path: Image to recognize
            psms: Segmentation modes in order of preference
            early_accept: Confidence above which the first mode wins outright

        Returns:
            RecognitionAttempt: Best successful attempt, or the last failure
        """
        psms = list(psms or settings.TESSERACT_THOROUGH_PSMS)
        early_accept = early_accept if early_accept is not None else settings.TESSERACT_EARLY_ACCEPT_CONFIDENCE

        best: Optional[RecognitionAttempt] = None
        last_failure: Optional[RecognitionAttempt] = None
        for position, psm in enumerate(psms):
            attempt = self.recognize(image_path, psm=psm)
            if not attempt.success:
                last_failure = attempt
                if attempt.failure_reason in (REASON_FILE_NOT_FOUND, REASON_ENGINE_UNAVAILABLE):
                    break
                continue

            if position == 0 and (attempt.confidence or 0.0) > early_accept:
                log.info(f"PSM {psm} accepted early (confidence {attempt.confidence:.1f})")
                return attempt

            if best is None or score_attempt(attempt) > score_attempt(best):
                best = attempt

        return best or last_failure or RecognitionAttempt.failed(self.name, REASON_ENGINE_ERROR)

    @staticmethod
    def parse_data(data: Dict[str, List]) -> tuple:
        """Rebuild line text and mean word confidence from image_to_data output.

        Args:
            data: pytesseract DICT output

        Returns:
            tuple: (text, mean_confidence)
        """
        lines: Dict[tuple, List[str]] = {}
        confidences: List[float] = []

        for i, word in enumerate(data.get('text', [])):
            word = (word or '').strip()
            if not word:
                continue
            key = (data['block_num'][i], data['par_num'][i], data['line_num'][i])
            lines.setdefault(key, []).append(word)

            confidence = float(data['conf'][i])
            if confidence >= 0:
                confidences.append(confidence)

        text = "\n".join(" ".join(words) for words in lines.values())
        mean_confidence = sum(confidences) / len(confidences) if confidences else 0.0
        return text, mean_confidence

    def shutdown(self) -> None:
        """Forget the resolved configuration; the next call sets up again."""
        with self._lock:
            self._language = None
        log.info("Local OCR engine released")


_engine: Optional[TesseractEngine] = None
_engine_lock = threading.Lock()


def get_tesseract_engine() -> TesseractEngine:
    """Return the process-wide Tesseract engine, creating it on first use."""
    global _engine
    with _engine_lock:
        if _engine is None:
            _engine = TesseractEngine()
        return _engine


def shutdown_tesseract_engine() -> None:
    """Release the process-wide engine if it was created."""
    global _engine
    with _engine_lock:
        if _engine is not None:
            _engine.shutdown()
            _engine = None
