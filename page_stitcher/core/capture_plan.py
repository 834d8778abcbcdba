"""
Page Stitcher - Capture Plan Builder

Computes how a scrollable surface is covered by viewport-sized tiles:
how many tiles, the scroll stop of each one, and how much consecutive
tiles overlap. Pure functions only; no I/O, no state.

All plan values are in logical (CSS-like) pixels. The stitcher converts
them to physical pixels with the scale it calibrates from the first tile.
"""

import logging
import math
from dataclasses import dataclass, asdict, replace
from typing import Any, Dict, List, Tuple

from page_stitcher.utils.error_handler import InvalidDimensions

logger = logging.getLogger(__name__)

MAX_OVERLAP = 64  # Upper bound on the overlap band (logical px)
OVERLAP_RATIO = 0.08  # Overlap as a fraction of the viewport height


def _require_positive_int(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidDimensions(f"{name} must be an integer, got {value!r}", field=name)
    if value <= 0:
        raise InvalidDimensions(f"{name} must be positive, got {value}", field=name)
    return value


def _require_ratio(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidDimensions(
            f"device_pixel_ratio must be a number, got {value!r}",
            field="device_pixel_ratio",
        )
    if not math.isfinite(value) or value <= 0:
        raise InvalidDimensions(
            f"device_pixel_ratio must be a positive finite number, got {value}",
            field="device_pixel_ratio",
        )
    return float(value)


@dataclass(frozen=True)
class SurfaceMeasurements:
    """Result of measuring the host document at capture start"""

    device_pixel_ratio: float
    viewport_width: int
    viewport_height: int
    surface_width: int
    surface_height: int

    def clamped(self) -> "SurfaceMeasurements":
        """
        Raise the surface extents to at least one viewport.

        Short documents report a scroll height below the window height;
        they are captured as a single full viewport.
        """
        return replace(
            self,
            surface_width=max(self.surface_width, self.viewport_width),
            surface_height=max(self.surface_height, self.viewport_height),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SurfaceMeasurements":
        try:
            return cls(
                device_pixel_ratio=data["device_pixel_ratio"],
                viewport_width=data["viewport_width"],
                viewport_height=data["viewport_height"],
                surface_width=data["surface_width"],
                surface_height=data["surface_height"],
            )
        except KeyError as e:
            raise InvalidDimensions(f"Missing measurement: {e.args[0]}", field=e.args[0])


@dataclass(frozen=True)
class CapturePlan:
    """
    Immutable capture plan for one session.

    Attributes:
        device_pixel_ratio: Nominal physical/logical pixel ratio at measure time
        viewport_width, viewport_height: Logical size of one tile
        surface_width, surface_height: Logical extent of the whole document
        overlap: Logical band shared by consecutive tiles
        step: Logical distance between consecutive unclamped stops
        stops: Scroll offsets, one per tile, ending at the bottom of the surface
        header_band: Logical rows of fixed content repeated at the top of
            every tile after the first (0 when sticky content is hidden)
        last_pos_correction: How far the final stop was pulled back by
            clamping to the bottom of the surface
    """

    device_pixel_ratio: float
    viewport_width: int
    viewport_height: int
    surface_width: int
    surface_height: int
    overlap: int
    step: int
    stops: Tuple[int, ...]
    header_band: int = 0
    last_pos_correction: int = 0

    @property
    def tile_count(self) -> int:
        return len(self.stops)

    @property
    def max_scroll(self) -> int:
        """Largest valid scroll offset"""
        return self.surface_height - self.viewport_height

    @property
    def physical_width(self) -> int:
        return round(self.surface_width * self.device_pixel_ratio)

    @property
    def physical_height(self) -> int:
        return round(self.surface_height * self.device_pixel_ratio)

    def progress_percent(self, tile_index: int) -> int:
        """Progress after acquiring tile_index, capped at 99 until stitched"""
        return min(99, math.floor((tile_index + 1) / len(self.stops) * 100))

    def with_header_band(self, header_band: int) -> "CapturePlan":
        """Copy of this plan with a different header band"""
        return replace(
            self, header_band=_validate_header_band(header_band, self.viewport_height)
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["stops"] = list(self.stops)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CapturePlan":
        """
        Rebuild a plan received over a channel.

        The plan is recomputed from its measurements; supplied stops must
        match the recomputed ones.
        """
        plan = build_plan(
            data.get("device_pixel_ratio"),
            data.get("viewport_width"),
            data.get("viewport_height"),
            data.get("surface_width"),
            data.get("surface_height"),
            header_band=data.get("header_band", 0),
        )
        stops = data.get("stops")
        if stops is not None and tuple(stops) != plan.stops:
            raise InvalidDimensions(
                f"Plan stops {list(stops)} do not match measurements (expected {list(plan.stops)})",
                field="stops",
            )
        return plan


def _validate_header_band(header_band: Any, viewport_height: int) -> int:
    if isinstance(header_band, bool) or not isinstance(header_band, int):
        raise InvalidDimensions(
            f"header_band must be an integer, got {header_band!r}", field="header_band"
        )
    if header_band < 0 or header_band >= viewport_height:
        raise InvalidDimensions(
            f"header_band must be in [0, {viewport_height}), got {header_band}",
            field="header_band",
        )
    return header_band


def compute_overlap(viewport_height: int) -> int:
    """Overlap band for a viewport: 8% of its height, at most 64px"""
    return min(MAX_OVERLAP, math.floor(viewport_height * OVERLAP_RATIO))


def compute_stops(viewport_height: int, surface_height: int, step: int) -> Tuple[List[int], int]:
    """
    Accumulate scroll stops from the top of the surface to its bottom.

    Returns:
        Tuple of (stops, unclamped offset of the last stop)
    """
    bottom = surface_height - viewport_height
    stops = [0]
    accumulated = 0

    while stops[-1] < bottom:
        accumulated += step
        pos = min(accumulated, bottom)
        if pos == stops[-1]:
            break
        stops.append(pos)

    return stops, accumulated


def build_plan(
    device_pixel_ratio: float,
    viewport_width: int,
    viewport_height: int,
    surface_width: int,
    surface_height: int,
    header_band: int = 0,
) -> CapturePlan:
    """
    Build the capture plan for a surface.

    Args:
        device_pixel_ratio: Physical pixels per logical pixel
        viewport_width, viewport_height: Logical viewport size
        surface_width, surface_height: Logical scrollable extent
            (surface_height must be >= viewport_height)
        header_band: Logical rows of fixed content repeated on non-first tiles

    Returns:
        CapturePlan whose stops start at 0 and end at surface_height - viewport_height

    Raises:
        InvalidDimensions: If any input is malformed
    """
    dpr = _require_ratio(device_pixel_ratio)
    vw = _require_positive_int("viewport_width", viewport_width)
    vh = _require_positive_int("viewport_height", viewport_height)
    sw = _require_positive_int("surface_width", surface_width)
    sh = _require_positive_int("surface_height", surface_height)
    header_band = _validate_header_band(header_band, vh)

    if sh < vh:
        raise InvalidDimensions(
            f"surface_height ({sh}) is smaller than viewport_height ({vh})",
            field="surface_height",
        )

    overlap = compute_overlap(vh)
    step = max(1, vh - overlap)
    stops, accumulated = compute_stops(vh, sh, step)

    plan = CapturePlan(
        device_pixel_ratio=dpr,
        viewport_width=vw,
        viewport_height=vh,
        surface_width=sw,
        surface_height=sh,
        overlap=overlap,
        step=step,
        stops=tuple(stops),
        header_band=header_band,
        last_pos_correction=accumulated - stops[-1],
    )
    logger.debug(
        f"[PlanBuilder] {vw}x{vh} viewport over {sw}x{sh} surface @ {dpr:g}x: "
        f"{len(stops)} stops, overlap={overlap}, step={step}"
    )
    return plan


def build_plan_from(measurements: SurfaceMeasurements, header_band: int = 0) -> CapturePlan:
    """Build a plan from a SurfaceMeasurements record"""
    return build_plan(
        measurements.device_pixel_ratio,
        measurements.viewport_width,
        measurements.viewport_height,
        measurements.surface_width,
        measurements.surface_height,
        header_band=header_band,
    )
