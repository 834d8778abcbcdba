"""
Stitching Modules Package

Modules:
- compose: Tile decoding, calibration, band placement and encoding
- overlap: Fixed header detection between consecutive tiles
"""

from .compose import (
    BandPlacement,
    Calibration,
    ImageComposer,
    decode_tile_image,
    encode_image,
    normalize_format,
)
from .overlap import OverlapDetector, detect_header_band

__all__ = [
    # Compose
    'BandPlacement',
    'Calibration',
    'ImageComposer',
    'decode_tile_image',
    'encode_image',
    'normalize_format',
    # Overlap
    'OverlapDetector',
    'detect_header_band',
]
