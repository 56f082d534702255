"""Orientation analysis and correction for receipt photos.

Orientation correction is an optimization, never a correctness gate: every
failure inside analysis or rotation degrades to "leave the image as is".
The degrade is reported explicitly through OrientationDecision.INDETERMINATE
and RotationResult.rotated so callers and tests can see it happen.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple
import numpy as np
from PIL import Image, ImageOps
from core.config import settings
from core.logging import log
from core.utils import derivative_path, safe_unlink
from ingestion.file_handler import FileHandler

EXIF_ORIENTATION_TAG = 0x0112


class OrientationDecision(str, Enum):
    ROTATE = "rotate"
    NOT_NEEDED = "not_needed"
    INDETERMINATE = "indeterminate"  # analysis failed; treated as not needed


@dataclass
class OrientationResult:
    """Outcome of orientation analysis."""
    decision: OrientationDecision
    reason: str
    exif_orientation: Optional[int] = None
    aspect_ratio: Optional[float] = None
    horizontal_sharpness: Optional[float] = None
    vertical_sharpness: Optional[float] = None

    @property
    def needs_rotation(self) -> bool:
        return self.decision == OrientationDecision.ROTATE


@dataclass
class RotationResult:
    """Outcome of orientation correction."""
    path: Path
    rotated: bool


class OrientationAnalyzer:
    """Decides whether an image needs rotating before recognition.

    Decision order:
    1. EXIF orientation present and not 1 -> rotate
    2. Clearly landscape or clearly portrait aspect ratio -> leave as is
    3. Near-square: compare sharpness after squeezing the image along each
       axis; dominant vertical structure means the text runs sideways
    """

    def __init__(self,
                 landscape_ratio: Optional[float] = None,
                 portrait_ratio: Optional[float] = None,
                 vertical_dominance: Optional[float] = None,
                 probe_size: Optional[int] = None,
                 thin_side: Optional[int] = None):
        """Initialize orientation analyzer.

        Args:
            landscape_ratio: Width/height above which the image is clearly landscape
            portrait_ratio: Width/height below which the image is clearly portrait
            vertical_dominance: Factor by which vertical sharpness must exceed
                horizontal sharpness to call for rotation
            probe_size: Side of the square the image is shrunk into
            thin_side: Short side of the squeezed probes
        """
        self.landscape_ratio = landscape_ratio or settings.ORIENTATION_LANDSCAPE_RATIO
        self.portrait_ratio = portrait_ratio or settings.ORIENTATION_PORTRAIT_RATIO
        self.vertical_dominance = vertical_dominance or settings.ORIENTATION_VERTICAL_DOMINANCE
        self.probe_size = probe_size or settings.ORIENTATION_PROBE_SIZE
        self.thin_side = thin_side or settings.ORIENTATION_PROBE_THIN_SIDE

    def analyze(self, image_path: Path) -> OrientationResult:
        """Analyze an image file. Never raises.

        Args:
            image_path: Image to inspect

        Returns:
            OrientationResult: ROTATE, NOT_NEEDED, or INDETERMINATE
        """
        try:
            with FileHandler.open_image(image_path) as image:
                return self._analyze_image(image)
        except Exception as e:
            log.warning(f"Orientation analysis failed for {image_path}, assuming upright: {str(e)}")
            return OrientationResult(OrientationDecision.INDETERMINATE, reason=f"analysis_failed: {str(e)}")

    def needs_rotation(self, image_path: Path) -> bool:
        """Return True only when rotation is positively indicated."""
        return self.analyze(image_path).needs_rotation

    def _analyze_image(self, image: Image.Image) -> OrientationResult:
        orientation = image.getexif().get(EXIF_ORIENTATION_TAG)
        if orientation and orientation != 1:
            log.info(f"EXIF orientation detected: {orientation}")
            return OrientationResult(OrientationDecision.ROTATE, reason="exif", exif_orientation=orientation)

        width, height = image.size
        if not width or not height:
            log.warning("Image has no usable dimensions, assuming upright")
            return OrientationResult(OrientationDecision.INDETERMINATE, reason="missing_dimensions")

        aspect_ratio = width / height
        if aspect_ratio > self.landscape_ratio:
            log.info(f"Landscape image: {width}x{height} (ratio {aspect_ratio:.2f})")
            return OrientationResult(OrientationDecision.NOT_NEEDED, reason="landscape", aspect_ratio=aspect_ratio)
        if aspect_ratio < self.portrait_ratio:
            log.info(f"Portrait image: {width}x{height} (ratio {aspect_ratio:.2f})")
            return OrientationResult(OrientationDecision.NOT_NEEDED, reason="portrait", aspect_ratio=aspect_ratio)

        horizontal, vertical = self.directional_sharpness(image)
        log.info(f"Directional sharpness - horizontal: {horizontal:.2f}, vertical: {vertical:.2f}")
        if vertical > horizontal * self.vertical_dominance:
            log.info("Vertical text direction detected, rotation needed")
            decision, reason = OrientationDecision.ROTATE, "vertical_text"
        else:
            decision, reason = OrientationDecision.NOT_NEEDED, "horizontal_text"

        return OrientationResult(
            decision,
            reason=reason,
            aspect_ratio=aspect_ratio,
            horizontal_sharpness=horizontal,
            vertical_sharpness=vertical,
        )

    def directional_sharpness(self, image: Image.Image) -> Tuple[float, float]:
        """Measure intensity spread after squeezing the image along each axis.

        Args:
            image: Input PIL Image

        Returns:
            Tuple[float, float]: (horizontal_sharpness, vertical_sharpness)
        """
        small = image.convert('L')
        small.thumbnail((self.probe_size, self.probe_size), Image.Resampling.LANCZOS)

        horizontal = small.resize((self.probe_size, self.thin_side), Image.Resampling.LANCZOS)
        vertical = small.resize((self.thin_side, self.probe_size), Image.Resampling.LANCZOS)

        return (
            float(np.asarray(horizontal, dtype=np.float64).std()),
            float(np.asarray(vertical, dtype=np.float64).std()),
        )

    def rotate(self, image_path: Path, result: OrientationResult) -> RotationResult:
        """Write an upright copy of the image when analysis asked for it.

        EXIF-driven decisions apply the EXIF transpose; heuristic decisions
        turn the image 90 degrees clockwise. Failures leave the original in
        place and report rotated=False.

        Args:
            image_path: Image to correct
            result: Analysis result for the same image

        Returns:
            RotationResult: Path to use downstream and whether it is a new file
        """
        image_path = Path(image_path)
        if not result.needs_rotation:
            return RotationResult(path=image_path, rotated=False)

        output_path = derivative_path(image_path, "rotated")
        try:
            with FileHandler.open_image(image_path) as image:
                if result.exif_orientation:
                    upright = ImageOps.exif_transpose(image)
                else:
                    upright = image.transpose(Image.Transpose.ROTATE_270)
                if upright.mode not in ('RGB', 'RGBA', 'L'):
                    upright = upright.convert('RGB')
                upright.save(output_path, format='PNG', compress_level=1)
        except Exception as e:
            safe_unlink(output_path)
            log.warning(f"Rotation failed for {image_path}, continuing with original: {str(e)}")
            return RotationResult(path=image_path, rotated=False)

        log.info(f"Rotated image written: {output_path} (reason: {result.reason})")
        return RotationResult(path=output_path, rotated=True)
