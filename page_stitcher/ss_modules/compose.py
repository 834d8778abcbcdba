"""
Page Stitcher Compose Module

Contains tile decoding, scale calibration, band placement and encoding:
- decode_tile_image: Turn a tile payload into a loaded PIL image
- Calibration: Per-session physical/logical scale measured on the first tile
- ImageComposer.compute_placements: Where each tile band lands on the canvas
- ImageComposer.compose: Paste the bands onto the output canvas
- encode_image: Encode the canvas as PNG (lossless) or JPEG (lossy)
"""

import base64
import binascii
import io
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Union
from PIL import Image

from page_stitcher.utils.error_handler import DecodeFailure, ErrorContext

logger = logging.getLogger(__name__)

TileSource = Union[Image.Image, bytes, bytearray, memoryview, str]

DEFAULT_QUALITY = 0.92

_LOSSLESS_NAMES = ("lossless", "png", "image/png")
_LOSSY_NAMES = ("lossy", "jpeg", "jpg", "image/jpeg")


def _payload_bytes(source: TileSource) -> bytes:
    if isinstance(source, (bytes, bytearray, memoryview)):
        return bytes(source)
    if isinstance(source, str):
        if source.startswith("data:"):
            header, _, data = source.partition(",")
            if ";base64" not in header:
                raise ValueError("data URL is not base64 encoded")
            source = data
        return base64.b64decode(source, validate=True)
    raise TypeError(f"unsupported tile payload {type(source).__name__}")


def decode_tile_image(source: TileSource, tile_index: int) -> Image.Image:
    """
    Decode one tile into a fully loaded raster image.

    Args:
        source: PIL image, encoded image bytes, data URL or base64 string
        tile_index: Position of the tile in the session (for error reporting)

    Raises:
        DecodeFailure: If the payload is not a complete, valid image
    """
    try:
        if isinstance(source, Image.Image):
            source.load()
            return source
        image = Image.open(io.BytesIO(_payload_bytes(source)))
        image.load()
        return image
    except (OSError, ValueError, TypeError, SyntaxError, binascii.Error, Image.DecompressionBombError) as e:
        raise DecodeFailure(tile_index, str(e) or e.__class__.__name__) from e


@dataclass(frozen=True)
class Calibration:
    """Actual physical/logical scale of the captured tiles."""

    scale_x: float
    scale_y: float

    @classmethod
    def from_tile(cls, image: Image.Image, viewport_width: int, viewport_height: int) -> "Calibration":
        width, height = image.size
        return cls(scale_x=width / viewport_width, scale_y=height / viewport_height)


@dataclass(frozen=True)
class BandPlacement:
    """Vertical source band of one tile and its destination row."""

    tile_index: int
    source_y: int
    source_height: int
    dest_y: int

    @property
    def dest_bottom(self) -> int:
        """Last destination row covered (dest_y - 1 when the band is empty)"""
        return self.dest_y + self.source_height - 1


def normalize_format(output_format: str) -> str:
    """Map lossless/lossy aliases and MIME types to a Pillow format name"""
    name = (output_format or "").strip().lower()
    if name in _LOSSLESS_NAMES:
        return "PNG"
    if name in _LOSSY_NAMES:
        return "JPEG"
    raise ValueError(f"Unsupported output format: {output_format!r}")


def jpeg_quality(output_quality: Optional[float]) -> int:
    """Convert a [0, 1] quality to Pillow's JPEG scale"""
    if output_quality is None:
        output_quality = DEFAULT_QUALITY
    clamped = min(1.0, max(0.0, float(output_quality)))
    return max(1, round(clamped * 100))


def encode_image(image: Image.Image, output_format: str, output_quality: Optional[float] = None) -> bytes:
    """
    Encode the stitched canvas.

    Quality is ignored for lossless output.
    """
    pil_format = normalize_format(output_format)
    buffer = io.BytesIO()
    with ErrorContext(f"encoding {pil_format} output"):
        if pil_format == "PNG":
            image.save(buffer, format="PNG")
        else:
            if image.mode not in ("RGB", "L"):
                image = image.convert("RGB")
            image.save(buffer, format="JPEG", quality=jpeg_quality(output_quality))
    return buffer.getvalue()


class ImageComposer:
    """Composes ordered tiles into a single image of the whole surface."""

    def compute_placements(
        self,
        plan,
        tile_heights: Sequence[int],
        calibration: Calibration,
    ) -> List[BandPlacement]:
        """
        Compute the source band and destination row of every tile.

        The cursor follows the unclamped stop of each tile in physical rows:
        it advances by the tile height minus the overlap band. Each band is
        placed at cursor + source_y so cropped header rows never shift the
        content below them. The final stop was clamped to the bottom of the
        surface, so the cursor is pulled back by last_pos_correction before
        the last tile is placed.

        When the header band is taller than the overlap, the rows between the
        previous band and a cropped band were only ever captured under the
        header. The band is extended upward to cover them, so every canvas
        row takes tile content.

        Args:
            plan: CapturePlan of the session
            tile_heights: Physical height of each tile, in stop order
            calibration: Scale measured on the first tile

        Returns:
            One BandPlacement per tile
        """
        canvas_height = plan.physical_height
        scale_y = calibration.scale_y
        header_rows = round(plan.header_band * scale_y)
        overlap_rows = plan.overlap * scale_y
        last_index = len(tile_heights) - 1

        placements = []
        cursor = 0.0
        painted_end = 0

        for i, tile_height in enumerate(tile_heights):
            source_y = 0 if i == 0 else min(header_rows, tile_height)
            source_height = tile_height - source_y

            if i == last_index and i > 0:
                cursor -= plan.last_pos_correction * scale_y

            dest_y = max(0, round(cursor + source_y))
            if dest_y > painted_end:
                # Header taller than the overlap: extend the band upward over the gap
                grow = min(dest_y - painted_end, source_y)
                source_y -= grow
                dest_y -= grow
                source_height = tile_height - source_y
            if dest_y + source_height > canvas_height:
                source_height = max(0, canvas_height - dest_y)
            painted_end = max(painted_end, dest_y + source_height)

            placements.append(
                BandPlacement(
                    tile_index=i,
                    source_y=source_y,
                    source_height=source_height,
                    dest_y=dest_y,
                )
            )
            cursor += tile_height - overlap_rows

        return placements

    def compose(
        self,
        plan,
        images: Sequence[Image.Image],
        calibration: Optional[Calibration] = None,
    ) -> Image.Image:
        """
        Paste every tile band onto a fresh canvas of the surface's physical size.

        Bands are copied pixel for pixel; no resampling is applied.
        """
        if calibration is None:
            calibration = Calibration.from_tile(images[0], plan.viewport_width, plan.viewport_height)

        mode = "RGBA" if "A" in images[0].getbands() else "RGB"
        canvas = Image.new(mode, (plan.physical_width, plan.physical_height))
        placements = self.compute_placements(plan, [img.size[1] for img in images], calibration)

        for image, placement in zip(images, placements):
            if placement.source_height <= 0:
                logger.debug(f"  Tile {placement.tile_index} fully clipped, skipping")
                continue
            band = image.crop(
                (0, placement.source_y, image.size[0], placement.source_y + placement.source_height)
            )
            if band.mode != mode:
                band = band.convert(mode)
            canvas.paste(band, (0, placement.dest_y))
            logger.debug(
                f"  Tile {placement.tile_index}: rows {placement.source_y}+{placement.source_height} "
                f"-> y={placement.dest_y}"
            )

        return canvas
