"""
Core capture components.

- capture_plan: Tile stops and overlap for a surface
- stitcher: Tile composition into one encoded image
- capture_session: Sequential measure/capture/stitch state machine
"""

from .capture_plan import CapturePlan, SurfaceMeasurements, build_plan, build_plan_from
from .stitcher import Stitcher, StitchRequest, StitchResult, Tile

__all__ = [
    "CapturePlan",
    "SurfaceMeasurements",
    "build_plan",
    "build_plan_from",
    "Stitcher",
    "StitchRequest",
    "StitchResult",
    "Tile",
]
