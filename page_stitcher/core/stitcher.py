"""
Page Stitcher - Stitcher

Takes a capture plan and the tiles acquired at its stops and produces one
encoded image of the whole surface. Every call is independent: the output
canvas is created, filled and encoded inside a single invocation.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from page_stitcher.core.capture_plan import CapturePlan
from page_stitcher.ss_modules.compose import (
    DEFAULT_QUALITY,
    Calibration,
    ImageComposer,
    TileSource,
    decode_tile_image,
    encode_image,
    normalize_format,
)
from page_stitcher.utils.error_handler import (
    EmptyTileSet,
    PageStitcherError,
    TileCountMismatch,
)

logger = logging.getLogger(__name__)


@dataclass
class Tile:
    """One captured viewport: the stop it was taken at and its image"""

    y: int
    image: TileSource


@dataclass
class StitchRequest:
    """Everything needed for one stitch"""

    plan: CapturePlan
    tiles: List[Tile]
    output_format: str = "lossless"
    output_quality: float = DEFAULT_QUALITY


@dataclass
class StitchResult:
    """Terminal outcome of a stitch: encoded bytes or a typed failure"""

    image_bytes: Optional[bytes] = None
    error_kind: Optional[str] = None
    message: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.error_kind is None

    @classmethod
    def success(cls, image_bytes: bytes) -> "StitchResult":
        return cls(image_bytes=image_bytes)

    @classmethod
    def failure(cls, error: PageStitcherError) -> "StitchResult":
        return cls(error_kind=error.kind, message=error.message, details=dict(error.details))


class Stitcher:
    """
    Composites ordered tiles into a single image.

    Usage:
        stitcher = Stitcher()
        png_bytes = stitcher.stitch(plan, tiles, "lossless")
    """

    def __init__(self, composer: Optional[ImageComposer] = None):
        self.composer = composer or ImageComposer()

    def stitch(
        self,
        plan: CapturePlan,
        tiles: Sequence[Tile],
        output_format: str = "lossless",
        output_quality: Optional[float] = DEFAULT_QUALITY,
    ) -> bytes:
        """
        Stitch tiles into one encoded image.

        Args:
            plan: Capture plan the tiles were acquired with
            tiles: One tile per plan stop, in stop order
            output_format: lossless/png or lossy/jpeg
            output_quality: JPEG quality in [0, 1], ignored for lossless

        Returns:
            Encoded image bytes

        Raises:
            EmptyTileSet: If no tiles were supplied
            TileCountMismatch: If the tile count differs from the stop count
            DecodeFailure: If any tile is not a valid image (reports its index)
            ValueError: If output_format is not supported
        """
        if not tiles:
            raise EmptyTileSet()
        if len(tiles) != len(plan.stops):
            raise TileCountMismatch(len(plan.stops), len(tiles))
        normalize_format(output_format)

        start_time = time.time()
        images = [decode_tile_image(tile.image, i) for i, tile in enumerate(tiles)]

        calibration = Calibration.from_tile(images[0], plan.viewport_width, plan.viewport_height)
        if abs(calibration.scale_y - plan.device_pixel_ratio) > 0.01:
            logger.warning(
                f"[Stitcher] Capture scale {calibration.scale_y:.3f} differs from "
                f"device pixel ratio {plan.device_pixel_ratio:g}, using measured scale"
            )

        canvas = self.composer.compose(plan, images, calibration)
        encoded = encode_image(canvas, output_format, output_quality)

        duration_ms = int((time.time() - start_time) * 1000)
        logger.info(
            f"[Stitcher] Stitched {len(images)} tiles into {canvas.size[0]}x{canvas.size[1]} "
            f"({len(encoded)} bytes) in {duration_ms}ms"
        )
        return encoded

    def run(self, request: StitchRequest) -> StitchResult:
        """Stitch a request, reporting typed failures as a result instead of raising"""
        try:
            image_bytes = self.stitch(
                request.plan, request.tiles, request.output_format, request.output_quality
            )
        except PageStitcherError as e:
            logger.error(f"[Stitcher] {e.kind}: {e.message}")
            return StitchResult.failure(e)
        return StitchResult.success(image_bytes)
