"""Shared types for recognition engines."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

ENGINE_LOCAL = "local"
ENGINE_CLOUD = "cloud"


@dataclass
class RecognitionAttempt:
    """Outcome of one engine invocation.

    Attributes:
        engine: ENGINE_LOCAL or ENGINE_CLOUD
        text: Recognized text (empty on failure)
        confidence: Mean word confidence 0-100 (None if the engine has none)
        success: Whether the engine produced text
        failure_reason: Machine-readable reason when success is False
        tuid: Identifier extracted from the text, filled in by the pipeline
        image_path: Image the engine read
        duration_ms: Wall time of the engine call
    """
    engine: str
    text: str = ""
    confidence: Optional[float] = None
    success: bool = True
    failure_reason: Optional[str] = None
    tuid: Optional[str] = None
    image_path: Optional[str] = None
    duration_ms: Optional[float] = None

    @classmethod
    def failed(cls, engine: str, reason: str) -> "RecognitionAttempt":
        return cls(engine=engine, success=False, failure_reason=reason)


class RecognitionEngine(ABC):
    """Image-to-text engine."""

    name: str = ""

    @abstractmethod
    def recognize(self, image_path: Path) -> RecognitionAttempt:
        """Recognize text in an image file.

        Expected failures are reported through RecognitionAttempt.success and
        failure_reason rather than raised.
        """

    def is_available(self) -> bool:
        return True
