"""
Capture Routes - Plan and Stitch Endpoints

Provides the orchestrator-facing endpoints:
- Capture plan for measured surface/viewport dimensions
- Stitch of acquired tiles into one encoded image
"""

from fastapi import APIRouter
from fastapi.responses import Response
from pydantic import BaseModel, Field
import logging
from typing import Any, Dict, List, Optional

from page_stitcher.core.capture_plan import CapturePlan, SurfaceMeasurements, build_plan_from
from page_stitcher.core.stitcher import StitchRequest, Tile
from page_stitcher.routes import get_deps
from page_stitcher.ss_modules.compose import normalize_format
from page_stitcher.utils.error_handler import PageStitcherError, handle_api_error
from page_stitcher.utils.naming import build_output_filename

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/capture", tags=["capture"])

_MEDIA_TYPES = {"PNG": "image/png", "JPEG": "image/jpeg"}


# Request models
class PlanRequest(BaseModel):
    device_pixel_ratio: float
    viewport_width: int
    viewport_height: int
    surface_width: int
    surface_height: int
    header_band: int = 0
    clamp: bool = False  # Raise surface extents to at least one viewport


class TileModel(BaseModel):
    y: int
    image: str = Field(..., description="Base64 image or data URL")


class StitchApiRequest(BaseModel):
    plan: Dict[str, Any]
    tiles: List[TileModel]
    output_format: Optional[str] = None
    output_quality: Optional[float] = None
    url: Optional[str] = None  # Captured document address, used for the filename
    title: Optional[str] = None


# =============================================================================
# PLAN ENDPOINT
# =============================================================================

@router.post("/plan")
async def create_plan(request: PlanRequest):
    """Compute tile stops and overlap for a measured surface"""
    try:
        measurements = SurfaceMeasurements(
            device_pixel_ratio=request.device_pixel_ratio,
            viewport_width=request.viewport_width,
            viewport_height=request.viewport_height,
            surface_width=request.surface_width,
            surface_height=request.surface_height,
        )
        if request.clamp:
            measurements = measurements.clamped()
        plan = build_plan_from(measurements, header_band=request.header_band)
        logger.info(f"[API] Plan: {plan.tile_count} stops for {plan.surface_height}px surface")
        return {"success": True, "plan": plan.to_dict(), "tile_count": plan.tile_count}
    except PageStitcherError as e:
        return handle_api_error(e)


# =============================================================================
# STITCH ENDPOINT
# =============================================================================

@router.post("/stitch")
async def stitch_tiles(request: StitchApiRequest):
    """Stitch ordered tiles into one image of the whole surface"""
    deps = get_deps()
    output_format = request.output_format or deps.defaults.OUTPUT_FORMAT
    output_quality = (
        request.output_quality if request.output_quality is not None else deps.defaults.OUTPUT_QUALITY
    )
    try:
        pil_format = normalize_format(output_format)
        plan = CapturePlan.from_dict(request.plan)
        stitch_request = StitchRequest(
            plan=plan,
            tiles=[Tile(y=t.y, image=t.image) for t in request.tiles],
            output_format=output_format,
            output_quality=output_quality,
        )
        logger.info(f"[API] Stitching {len(request.tiles)} tiles ({output_format})")
        image_bytes = await deps.stitch_backend(stitch_request, deps.defaults.STITCH_TIMEOUT)
    except (PageStitcherError, ValueError) as e:
        return handle_api_error(e)

    filename = build_output_filename(request.url, request.title, output_format)
    return Response(
        content=image_bytes,
        media_type=_MEDIA_TYPES[pil_format],
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "X-Tile-Count": str(plan.tile_count),
        },
    )
