import io

import pytest
from PIL import Image

from page_stitcher.core.capture_plan import CapturePlan
from page_stitcher.core.stitcher import Tile


def row_color(row: int) -> tuple:
    """Unique RGB color per surface row"""
    return (row & 0xFF, (row >> 8) & 0xFF, 7)


def render_surface(width: int, height: int) -> Image.Image:
    """Physical-size surface whose every row has its own color"""
    surface = Image.new("RGB", (width, height))
    for row in range(height):
        surface.paste(row_color(row), (0, row, width, row + 1))
    return surface


def slice_tiles(surface: Image.Image, plan: CapturePlan, scale: float = None, header_rows: int = 0,
                header_color=(255, 0, 0)) -> list:
    """Cut tiles out of a physical surface at the plan's stops"""
    scale = plan.device_pixel_ratio if scale is None else scale
    tile_w = round(plan.viewport_width * scale)
    tile_h = round(plan.viewport_height * scale)
    tiles = []
    for y in plan.stops:
        top = round(y * scale)
        tile = surface.crop((0, top, tile_w, top + tile_h))
        if header_rows:
            tile.paste(header_color, (0, 0, tile_w, header_rows))
        tiles.append(Tile(y=y, image=tile))
    return tiles


def png_bytes(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def solid_png(width: int, height: int, color) -> bytes:
    return png_bytes(Image.new("RGB", (width, height), color))


@pytest.fixture
def surface_factory():
    return render_surface
