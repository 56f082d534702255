"""Unit tests for orientation analysis and preprocessing."""

import numpy as np
import pytest
from PIL import Image

from preprocessing.orientation import (
    OrientationAnalyzer,
    OrientationDecision,
    OrientationResult,
)
from preprocessing.preprocessor import (
    STRATEGY_BASIC,
    STRATEGY_HIGH_CONTRAST,
    STRATEGY_ORIGINAL,
    STRATEGY_SHARPEN,
    FastPreprocessor,
    MultiVariantPreprocessor,
    linear,
    normalize,
    threshold,
)
from preprocessing.quality import QualityScorer
from helpers import draw_receipt


def save(image, path, **kwargs):
    image.save(path, **kwargs)
    return path


class TestQualityScorer:
    """Test brightness and contrast measurement."""

    def test_intensity_stats(self):
        gray = np.array([[0, 255], [0, 255]], dtype=np.uint8)
        brightness, contrast = QualityScorer.intensity_stats(gray)
        assert brightness == pytest.approx(127.5)
        assert contrast == pytest.approx(127.5)

    def test_flat_image_has_no_contrast(self):
        gray = np.full((20, 30), 100, dtype=np.uint8)
        brightness, contrast = QualityScorer.intensity_stats(gray)
        assert brightness == pytest.approx(100)
        assert contrast == 0.0


class TestOrientationAnalyzer:
    """Test the tri-state orientation decision."""

    def test_portrait_not_rotated(self, tmp_path):
        path = save(draw_receipt(size=(400, 800)), tmp_path / "portrait.png")
        result = OrientationAnalyzer().analyze(path)
        assert result.decision == OrientationDecision.NOT_NEEDED
        assert result.reason == "portrait"

    def test_landscape_not_rotated(self, tmp_path):
        path = save(draw_receipt(size=(900, 400)), tmp_path / "landscape.png")
        result = OrientationAnalyzer().analyze(path)
        assert result.decision == OrientationDecision.NOT_NEEDED
        assert result.reason == "landscape"

    def test_exif_orientation_triggers_rotation(self, tmp_path):
        exif = Image.Exif()
        exif[0x0112] = 6
        path = save(draw_receipt(size=(400, 800)).convert('RGB'), tmp_path / "exif.jpg", exif=exif)

        result = OrientationAnalyzer().analyze(path)
        assert result.decision == OrientationDecision.ROTATE
        assert result.exif_orientation == 6

    def test_exif_orientation_one_ignored(self, tmp_path):
        exif = Image.Exif()
        exif[0x0112] = 1
        path = save(draw_receipt(size=(400, 800)).convert('RGB'), tmp_path / "upright.jpg", exif=exif)
        assert not OrientationAnalyzer().needs_rotation(path)

    def test_square_structure_along_height_rotates(self, tmp_path):
        """Near-square image whose detail survives the vertical squeeze is rotated."""
        path = save(draw_receipt(size=(600, 600), horizontal=True), tmp_path / "rows.png")
        result = OrientationAnalyzer().analyze(path)
        assert result.vertical_sharpness > result.horizontal_sharpness * 1.2
        assert result.decision == OrientationDecision.ROTATE

    def test_square_structure_along_width_not_rotated(self, tmp_path):
        path = save(draw_receipt(size=(600, 600), horizontal=False), tmp_path / "columns.png")
        result = OrientationAnalyzer().analyze(path)
        assert result.decision == OrientationDecision.NOT_NEEDED
        assert result.reason == "horizontal_text"

    def test_unreadable_file_is_indeterminate(self, tmp_path):
        path = tmp_path / "broken.png"
        path.write_bytes(b"not an image")
        analyzer = OrientationAnalyzer()
        result = analyzer.analyze(path)
        assert result.decision == OrientationDecision.INDETERMINATE
        assert not analyzer.needs_rotation(path)

    def test_missing_file_is_indeterminate(self, tmp_path):
        result = OrientationAnalyzer().analyze(tmp_path / "missing.png")
        assert result.decision == OrientationDecision.INDETERMINATE


class TestRotation:
    """Test orientation correction."""

    def test_no_rotation_needed_returns_original(self, receipt_path):
        result = OrientationResult(OrientationDecision.NOT_NEEDED, reason="portrait")
        rotation = OrientationAnalyzer().rotate(receipt_path, result)
        assert not rotation.rotated
        assert rotation.path == receipt_path

    def test_heuristic_rotation_turns_clockwise(self, tmp_path):
        image = Image.new('L', (300, 200), color=255)
        image.paste(0, (0, 0, 50, 200))  # dark band along the left edge
        path = save(image, tmp_path / "scan.png")

        result = OrientationResult(OrientationDecision.ROTATE, reason="vertical_text")
        rotation = OrientationAnalyzer().rotate(path, result)

        assert rotation.rotated
        assert rotation.path == tmp_path / "scan_rotated.png"
        with Image.open(rotation.path) as rotated:
            assert rotated.size == (200, 300)
            # Left edge moves to the top
            assert rotated.getpixel((100, 10)) == 0
            assert rotated.getpixel((100, 290)) == 255

    def test_exif_rotation_applies_transpose(self, tmp_path):
        exif = Image.Exif()
        exif[0x0112] = 6
        path = save(Image.new('RGB', (400, 200), color=(255, 255, 255)), tmp_path / "photo.jpg", exif=exif)

        analyzer = OrientationAnalyzer()
        rotation = analyzer.rotate(path, analyzer.analyze(path))
        assert rotation.rotated
        with Image.open(rotation.path) as rotated:
            assert rotated.size == (200, 400)

    def test_rotation_failure_degrades(self, tmp_path):
        path = tmp_path / "broken.png"
        path.write_bytes(b"not an image")
        result = OrientationResult(OrientationDecision.ROTATE, reason="vertical_text")

        rotation = OrientationAnalyzer().rotate(path, result)
        assert not rotation.rotated
        assert rotation.path == path
        assert not (tmp_path / "broken_rotated.png").exists()


class TestImageOperations:
    """Test the array-level building blocks."""

    def test_threshold_is_inclusive(self):
        gray = np.array([[109, 110, 111]], dtype=np.uint8)
        assert threshold(gray, 110).tolist() == [[0, 255, 255]]

    def test_linear_clips(self):
        gray = np.array([[0, 40, 200]], dtype=np.uint8)
        assert linear(gray, 2.0, -80).tolist() == [[0, 0, 255]]

    def test_normalize_stretches_range(self):
        gray = np.tile(np.linspace(100, 150, 100).astype(np.uint8), (10, 1))
        stretched = normalize(gray)
        assert stretched.min() <= 5
        assert stretched.max() >= 250

    def test_normalize_flat_image_unchanged(self):
        gray = np.full((10, 10), 77, dtype=np.uint8)
        assert normalize(gray).tolist() == gray.tolist()


class TestFastPreprocessor:
    """Test single-pass preprocessing."""

    def test_choose_strategy(self):
        preprocessor = FastPreprocessor(dark_brightness=140, low_contrast=50)
        assert preprocessor.choose_strategy(100, 80) == STRATEGY_HIGH_CONTRAST
        assert preprocessor.choose_strategy(200, 20) == STRATEGY_HIGH_CONTRAST
        assert preprocessor.choose_strategy(200, 80) == STRATEGY_SHARPEN

    def test_bright_receipt_is_sharpened(self, receipt_path):
        prepared = FastPreprocessor().prepare(receipt_path)
        assert prepared.derived
        assert prepared.strategy == STRATEGY_SHARPEN
        assert prepared.path.name == "receipt_fast.png"
        with Image.open(prepared.path) as output:
            assert output.mode == 'L'
            assert output.size[0] == 2000

    def test_dark_receipt_is_binarized(self, tmp_path):
        path = save(draw_receipt(background=60, ink=0), tmp_path / "dark.png")
        prepared = FastPreprocessor().prepare(path)
        assert prepared.strategy == STRATEGY_HIGH_CONTRAST
        with Image.open(prepared.path) as output:
            assert set(np.unique(np.asarray(output)).tolist()) <= {0, 255}

    def test_flat_receipt_uses_high_contrast(self, tmp_path):
        path = save(draw_receipt(background=200, ink=190), tmp_path / "faded.png")
        prepared = FastPreprocessor().prepare(path)
        assert prepared.strategy == STRATEGY_HIGH_CONTRAST

    def test_failure_returns_original(self, tmp_path):
        path = tmp_path / "broken.png"
        path.write_bytes(b"not an image")
        prepared = FastPreprocessor().prepare(path)
        assert prepared.path == path
        assert not prepared.derived
        assert prepared.strategy == STRATEGY_ORIGINAL
        assert not (tmp_path / "broken_fast.png").exists()


class TestMultiVariantPreprocessor:
    """Test multi-variant preprocessing."""

    def test_produces_both_variants(self, receipt_path):
        variants = MultiVariantPreprocessor().prepare_all(receipt_path)
        assert [v.strategy for v in variants] == [STRATEGY_BASIC, STRATEGY_HIGH_CONTRAST]
        assert all(v.derived and v.path.exists() for v in variants)

        with Image.open(variants[0].path) as basic:
            assert basic.size[0] == 2100
        with Image.open(variants[1].path) as contrast:
            assert contrast.size[0] == 2500

    def test_failure_returns_original_only(self, tmp_path):
        path = tmp_path / "broken.png"
        path.write_bytes(b"not an image")
        variants = MultiVariantPreprocessor().prepare_all(path)
        assert len(variants) == 1
        assert variants[0].path == path
        assert not variants[0].derived
        assert not (tmp_path / "broken_basic.png").exists()
        assert not (tmp_path / "broken_contrast.png").exists()
