"""Brightness and contrast measurement used to choose a preprocessing strategy."""

from typing import Tuple
import numpy as np


class QualityScorer:
    """Handles image statistics for preprocessing decisions."""

    @staticmethod
    def intensity_stats(gray: np.ndarray) -> Tuple[float, float]:
        """Compute mean and standard deviation of pixel intensity.

        Args:
            gray: Greyscale image as numpy array

        Returns:
            Tuple[float, float]: (mean_brightness, contrast_std)
        """
        values = gray.astype(np.float64)
        return float(values.mean()), float(values.std())
