"""Recognition-oriented image preparation.

Two strategies are provided:
- FastPreprocessor: one derivative whose treatment is chosen from the
  image's brightness and contrast (used in fast mode)
- MultiVariantPreprocessor: several fixed treatments, each recognized
  separately and the best result kept (used in thorough mode)

Preprocessing failures never fail a request: the original image is handed
back and recognition runs on it directly.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional
import cv2
import numpy as np
from PIL import Image
from core.config import settings
from core.logging import log
from core.utils import derivative_path, safe_unlink
from ingestion.file_handler import FileHandler
from preprocessing.quality import QualityScorer

SHARPEN_KERNEL = np.array([[0, -1, 0],
                           [-1, 5, -1],
                           [0, -1, 0]], dtype=np.float32)

STRATEGY_ORIGINAL = "original"
STRATEGY_SHARPEN = "sharpen"
STRATEGY_BASIC = "basic"
STRATEGY_HIGH_CONTRAST = "high_contrast"


@dataclass
class PreparedImage:
    """An image ready for recognition.

    ``derived`` is True when the file was written by the preprocessor and
    must be cleaned up by whoever owns the request.
    """
    path: Path
    derived: bool
    strategy: str


def resize_to_width(gray: np.ndarray, width: int) -> np.ndarray:
    """Scale a greyscale image to a fixed width, keeping aspect ratio."""
    height, current_width = gray.shape[:2]
    if current_width == width:
        return gray
    new_height = max(1, int(round(height * width / current_width)))
    return cv2.resize(gray, (width, new_height), interpolation=cv2.INTER_LANCZOS4)


def normalize(gray: np.ndarray) -> np.ndarray:
    """Stretch intensities so the 1st-99th percentile span covers 0-255."""
    low, high = np.percentile(gray, (1, 99))
    if high <= low:
        return gray
    stretched = (gray.astype(np.float32) - low) * (255.0 / (high - low))
    return np.clip(stretched, 0, 255).astype(np.uint8)


def linear(gray: np.ndarray, gain: float, offset: float) -> np.ndarray:
    """Apply gain * pixel + offset, clipped to 0-255."""
    adjusted = gray.astype(np.float32) * gain + offset
    return np.clip(adjusted, 0, 255).astype(np.uint8)


def threshold(gray: np.ndarray, level: int) -> np.ndarray:
    """Binarize: pixels at or above level become white."""
    _, binary = cv2.threshold(gray, level - 1, 255, cv2.THRESH_BINARY)
    return binary


def sharpen(gray: np.ndarray) -> np.ndarray:
    return cv2.filter2D(gray, -1, SHARPEN_KERNEL)


def _load_gray(image_path: Path) -> np.ndarray:
    image = FileHandler.load_image(image_path)
    return np.asarray(image.convert('L'))


def _save_gray(gray: np.ndarray, output_path: Path) -> None:
    Image.fromarray(gray).save(output_path, format='PNG', compress_level=1)


class FastPreprocessor:
    """Single-pass preprocessing driven by measured image statistics.

    Dark or flat images (mean brightness or intensity std below their
    thresholds) are normalized, boosted with a linear stretch and binarized.
    Everything else is normalized and sharpened. Both treatments start with
    greyscale conversion and a resize to the target width.
    """

    def __init__(self,
                 target_width: Optional[int] = None,
                 dark_brightness: Optional[float] = None,
                 low_contrast: Optional[float] = None,
                 gain: Optional[float] = None,
                 offset: Optional[float] = None,
                 threshold_level: Optional[int] = None):
        self.target_width = target_width or settings.PREPROCESS_TARGET_WIDTH
        self.dark_brightness = dark_brightness if dark_brightness is not None else settings.PREPROCESS_DARK_BRIGHTNESS
        self.low_contrast = low_contrast if low_contrast is not None else settings.PREPROCESS_LOW_CONTRAST
        self.gain = gain if gain is not None else settings.PREPROCESS_LINEAR_GAIN
        self.offset = offset if offset is not None else settings.PREPROCESS_LINEAR_OFFSET
        self.threshold_level = threshold_level if threshold_level is not None else settings.PREPROCESS_THRESHOLD

    def choose_strategy(self, brightness: float, contrast: float) -> str:
        if brightness < self.dark_brightness or contrast < self.low_contrast:
            return STRATEGY_HIGH_CONTRAST
        return STRATEGY_SHARPEN

    def apply(self, gray: np.ndarray, strategy: str) -> np.ndarray:
        """Apply a named treatment to a greyscale array."""
        processed = normalize(resize_to_width(gray, self.target_width))
        if strategy == STRATEGY_HIGH_CONTRAST:
            return threshold(linear(processed, self.gain, self.offset), self.threshold_level)
        return sharpen(processed)

    def prepare(self, image_path: Path) -> PreparedImage:
        """Write the preprocessed derivative next to the source image.

        Args:
            image_path: Source image

        Returns:
            PreparedImage: The derivative, or the original image if
                preprocessing failed
        """
        image_path = Path(image_path)
        output_path = derivative_path(image_path, "fast")
        try:
            gray = resize_to_width(_load_gray(image_path), self.target_width)
            brightness, contrast = QualityScorer.intensity_stats(gray)
            strategy = self.choose_strategy(brightness, contrast)
            log.info(f"Preprocessing strategy '{strategy}' "
                     f"(brightness={brightness:.1f}, contrast={contrast:.1f})")
            _save_gray(self.apply(gray, strategy), output_path)
        except Exception as e:
            safe_unlink(output_path)
            log.warning(f"Preprocessing failed for {image_path}, using original: {str(e)}")
            return PreparedImage(path=image_path, derived=False, strategy=STRATEGY_ORIGINAL)

        return PreparedImage(path=output_path, derived=True, strategy=strategy)


class MultiVariantPreprocessor:
    """Produces several differently-treated copies of one image."""

    BASIC_WIDTH = 2100
    BASIC_DARK_BRIGHTNESS = 160.0
    HIGH_CONTRAST_MIN_WIDTH = 2500
    HIGH_CONTRAST_MAX_WIDTH = 4000
    VARIANT_THRESHOLD = 120

    def basic(self, gray: np.ndarray, brightness: float) -> np.ndarray:
        processed = sharpen(normalize(resize_to_width(gray, self.BASIC_WIDTH)))
        if brightness < self.BASIC_DARK_BRIGHTNESS:
            processed = threshold(linear(processed, 2.2, -100), self.VARIANT_THRESHOLD)
        return processed

    def high_contrast(self, gray: np.ndarray) -> np.ndarray:
        width = int(min(max(self.HIGH_CONTRAST_MIN_WIDTH, gray.shape[1] * 1.5), self.HIGH_CONTRAST_MAX_WIDTH))
        processed = linear(normalize(resize_to_width(gray, width)), 2.5, -100)
        return threshold(processed, self.VARIANT_THRESHOLD)

    def prepare_all(self, image_path: Path) -> List[PreparedImage]:
        """Write every variant next to the source image.

        Args:
            image_path: Source image

        Returns:
            list: PreparedImage per variant, or just the original image if
                any variant could not be produced
        """
        image_path = Path(image_path)
        written: List[PreparedImage] = []
        try:
            gray = _load_gray(image_path)
            brightness, _ = QualityScorer.intensity_stats(gray)

            basic_path = derivative_path(image_path, "basic")
            _save_gray(self.basic(gray, brightness), basic_path)
            written.append(PreparedImage(path=basic_path, derived=True, strategy=STRATEGY_BASIC))

            contrast_path = derivative_path(image_path, "contrast")
            _save_gray(self.high_contrast(gray), contrast_path)
            written.append(PreparedImage(path=contrast_path, derived=True, strategy=STRATEGY_HIGH_CONTRAST))
        except Exception as e:
            safe_unlink(derivative_path(image_path, "basic"))
            safe_unlink(derivative_path(image_path, "contrast"))
            log.warning(f"Variant preprocessing failed for {image_path}, using original: {str(e)}")
            return [PreparedImage(path=image_path, derived=False, strategy=STRATEGY_ORIGINAL)]

        log.info(f"Prepared {len(written)} preprocessing variants for {image_path.name}")
        return written
