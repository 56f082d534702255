"""Cloud recognition engine backed by Google Cloud Vision text detection."""

import threading
import time
from pathlib import Path
from typing import Any, Callable, Optional
from google.api_core import exceptions as gexc
from google.auth import exceptions as auth_exceptions
from google.cloud import vision
from core.config import settings
from core.logging import log
from ocr.base import ENGINE_CLOUD, RecognitionAttempt, RecognitionEngine

REASON_FILE_NOT_FOUND = "file_not_found"
REASON_CREDENTIALS_MISSING = "credentials_missing"
REASON_PROVIDER_ERROR = "provider_error"
REASON_TIMEOUT = "timeout"
REASON_NO_TEXT = "no_text"


def _default_client_factory(credentials_path: str) -> vision.ImageAnnotatorClient:
    return vision.ImageAnnotatorClient.from_service_account_file(credentials_path)


class VisionEngine(RecognitionEngine):
    """Google Cloud Vision ``text_detection`` wrapper.

    Holds no per-request state; the underlying client is created on first
    use from the service-account key file and reused afterwards.
    """

    name = ENGINE_CLOUD

    def __init__(self,
                 credentials_path: Optional[str] = None,
                 timeout: Optional[float] = None,
                 client_factory: Optional[Callable[[str], Any]] = None):
        """Initialize Vision engine.

        Args:
            credentials_path: Service-account JSON key file. If None, uses settings
            timeout: Per-request deadline in seconds
            client_factory: Builds a client from the key path (tests inject fakes)
        """
        self.credentials_path = Path(credentials_path or settings.GOOGLE_VISION_CREDENTIALS_PATH)
        self.timeout = timeout or settings.GOOGLE_VISION_TIMEOUT_SECONDS
        self._client_factory = client_factory or _default_client_factory
        self._client = None
        self._client_lock = threading.Lock()

    def is_available(self) -> bool:
        """Check that the credentials file is in place."""
        return self.credentials_path.is_file()

    def _get_client(self):
        with self._client_lock:
            if self._client is None:
                self._client = self._client_factory(str(self.credentials_path))
                log.info("Google Cloud Vision client created")
            return self._client

    def recognize(self, image_path: Path) -> RecognitionAttempt:
        """Run text detection on an image file.

        Args:
            image_path: Image to recognize

        Returns:
            RecognitionAttempt: Full detected text, or a failed attempt with
                file_not_found, credentials_missing, provider_error, timeout
                or no_text
        """
        image_path = Path(image_path)
        if not image_path.is_file():
            log.error(f"Cloud OCR input not found: {image_path}")
            return RecognitionAttempt.failed(self.name, REASON_FILE_NOT_FOUND)

        if not self.is_available():
            log.error(f"Google Cloud credentials file not found: {self.credentials_path}")
            return RecognitionAttempt.failed(self.name, REASON_CREDENTIALS_MISSING)

        try:
            client = self._get_client()
        except (auth_exceptions.GoogleAuthError, ValueError, OSError) as e:
            log.error(f"Failed to create Google Cloud Vision client: {str(e)}")
            return RecognitionAttempt.failed(self.name, REASON_CREDENTIALS_MISSING)

        try:
            content = image_path.read_bytes()
        except OSError as e:
            log.error(f"Cloud OCR could not read {image_path}: {str(e)}")
            return RecognitionAttempt.failed(self.name, REASON_FILE_NOT_FOUND)

        log.info(f"Requesting Google Cloud Vision text detection for {image_path.name}")
        started = time.perf_counter()
        try:
            response = client.text_detection(image=vision.Image(content=content), timeout=self.timeout)
        except (gexc.DeadlineExceeded, gexc.RetryError) as e:
            log.error(f"Google Cloud Vision timed out: {str(e)}")
            return RecognitionAttempt.failed(self.name, REASON_TIMEOUT)
        except gexc.GoogleAPICallError as e:
            log.error(f"Google Cloud Vision request failed: {str(e)}")
            return RecognitionAttempt.failed(self.name, REASON_PROVIDER_ERROR)
        except auth_exceptions.GoogleAuthError as e:
            log.error(f"Google Cloud Vision rejected credentials: {str(e)}")
            return RecognitionAttempt.failed(self.name, REASON_CREDENTIALS_MISSING)

        if response.error.message:
            log.error(f"Google Cloud Vision returned an error: {response.error.message}")
            return RecognitionAttempt.failed(self.name, REASON_PROVIDER_ERROR)

        annotations = response.text_annotations
        if not annotations or not annotations[0].description:
            log.info("Google Cloud Vision found no text")
            return RecognitionAttempt.failed(self.name, REASON_NO_TEXT)

        # The first annotation carries the full text of the image
        text = annotations[0].description
        duration_ms = (time.perf_counter() - started) * 1000
        log.info(f"Cloud OCR read {len(text)} chars in {duration_ms:.0f} ms")
        return RecognitionAttempt(engine=self.name, text=text, image_path=str(image_path), duration_ms=duration_ms)
