"""
Page Stitcher Overlap Module

Contains fixed-content detection used to choose the header band:
- detect_fixed_top_height: Height of content that stays put while the page scrolls
- compare_image_regions: Mean-absolute-difference similarity of two regions
- detect_header_band: Logical header band from the first two tiles
"""

import logging
import math
import numpy as np
from typing import Optional
from PIL import Image

logger = logging.getLogger(__name__)


class OverlapDetector:
    """Detects fixed (non-scrolling) content between consecutive tiles."""

    def __init__(
        self,
        fixed_element_threshold: float = 0.98,
        step_size: int = 4,
        max_header_ratio: float = 0.25,
    ):
        """
        Initialize overlap detector.

        Args:
            fixed_element_threshold: Similarity threshold for fixed element detection
            step_size: Row increment between successive comparisons (physical px)
            max_header_ratio: Largest header considered, as a fraction of tile height
        """
        self.fixed_element_threshold = fixed_element_threshold
        self.step_size = step_size
        self.max_header_ratio = max_header_ratio

    def detect_fixed_top_height(self, img1: Image.Image, img2: Image.Image) -> int:
        """
        Detect the height of fixed top elements (sticky headers, toolbars)
        by comparing the top portions of two tiles taken at different stops.

        Returns:
            Height in physical pixels of the fixed top element, or 0 if none detected
        """
        if img1.size != img2.size:
            logger.info(f"  Tile sizes differ ({img1.size} vs {img2.size}), no fixed header")
            return 0

        width, height = img1.size
        limit = int(height * self.max_header_ratio)
        last_similar_height = 0

        for check_height in range(self.step_size, limit + 1, self.step_size):
            band1 = img1.crop((0, check_height - self.step_size, width, check_height))
            band2 = img2.crop((0, check_height - self.step_size, width, check_height))

            similarity = self.compare_image_regions(band1, band2)
            if similarity >= self.fixed_element_threshold:
                last_similar_height = check_height
            else:
                break

        if last_similar_height >= limit:
            # Whole search window identical: page did not scroll or is blank
            logger.info(f"  Top {limit}px identical across tiles, treating as no header")
            return 0

        if last_similar_height > 0:
            logger.info(f"  Detected fixed top element: {last_similar_height}px")
        else:
            logger.info(f"  No fixed top element detected")
        return last_similar_height

    def compare_image_regions(self, img1: Image.Image, img2: Image.Image) -> float:
        """Compare two image regions for similarity (1.0 = identical)"""
        arr1 = np.asarray(img1.convert("RGB"), dtype=np.float64)
        arr2 = np.asarray(img2.convert("RGB"), dtype=np.float64)

        if arr1.shape != arr2.shape or arr1.size == 0:
            return 0.0

        diff = np.abs(arr1 - arr2)
        return float(1.0 - np.sum(diff) / (255.0 * arr1.size))


def detect_header_band(
    first: Image.Image,
    second: Image.Image,
    scale_y: float,
    viewport_height: int,
    detector: Optional[OverlapDetector] = None,
) -> int:
    """
    Logical header band for a session, from its first two tiles.

    Args:
        first: Tile captured at stop 0
        second: Tile captured at stop 1
        scale_y: Calibrated physical/logical vertical scale
        viewport_height: Logical viewport height (the band stays below it)

    Returns:
        Header band in logical pixels (rounded up so no fixed row survives)
    """
    detector = detector or OverlapDetector()
    physical = detector.detect_fixed_top_height(first, second)
    if physical == 0 or scale_y <= 0:
        return 0
    return min(viewport_height - 1, math.ceil(physical / scale_y))
