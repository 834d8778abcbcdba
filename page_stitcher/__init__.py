"""
Page Stitcher

Full-page capture: plans overlapping viewport tiles for a scrollable
surface and stitches them into one seamless image.
"""

from page_stitcher.core.capture_plan import CapturePlan, SurfaceMeasurements, build_plan
from page_stitcher.core.stitcher import Stitcher, StitchRequest, StitchResult, Tile

__all__ = [
    "CapturePlan",
    "SurfaceMeasurements",
    "build_plan",
    "Stitcher",
    "StitchRequest",
    "StitchResult",
    "Tile",
]
