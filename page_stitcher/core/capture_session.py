r"""
Page Stitcher - Capture Session

Drives one capture as an explicit state machine:

    IDLE -> MEASURING -> CAPTURING_TILE(i) ... -> STITCHING -> DONE
                 \              \                    \
                  +--------------+--------------------+--> FAILED

Each step is awaited before the next one starts. Tiles are acquired one
at a time because every capture moves the shared scroll position of the
same document. Independent sessions against different hosts may run
concurrently; they share nothing.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from page_stitcher.config import get_defaults
from page_stitcher.core.capture_plan import CapturePlan, SurfaceMeasurements, build_plan_from
from page_stitcher.core.stitcher import StitchRequest, Tile
from page_stitcher.services.stitch_worker import get_stitch_backend
from page_stitcher.ss_modules.compose import Calibration, TileSource, decode_tile_image
from page_stitcher.ss_modules.overlap import detect_header_band
from page_stitcher.utils.error_handler import (
    CaptureCancelled,
    InvalidDimensions,
    PageStitcherError,
)

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    """Capture session states"""

    IDLE = "idle"
    MEASURING = "measuring"
    CAPTURING_TILE = "capturing_tile"
    STITCHING = "stitching"
    DONE = "done"
    FAILED = "failed"


_TRANSITIONS = {
    SessionState.IDLE: {SessionState.MEASURING, SessionState.FAILED},
    SessionState.MEASURING: {SessionState.CAPTURING_TILE, SessionState.FAILED},
    SessionState.CAPTURING_TILE: {
        SessionState.CAPTURING_TILE,
        SessionState.STITCHING,
        SessionState.FAILED,
    },
    SessionState.STITCHING: {SessionState.DONE, SessionState.FAILED},
    SessionState.DONE: set(),
    SessionState.FAILED: set(),
}


class CaptureHost(ABC):
    """
    The document being captured.

    Implementations talk to the real host (browser tab, device, ...).
    """

    @abstractmethod
    async def measure_surface(self) -> SurfaceMeasurements:
        """Measure viewport and scrollable extent"""

    @abstractmethod
    async def acquire_tile(self, y: int) -> TileSource:
        """Capture the viewport while the document is scrolled to y"""

    async def scroll_to(self, y: int) -> None:
        """Scroll the document to y (no-op when acquire_tile scrolls itself)"""

    async def set_sticky_hidden(self, hidden: bool) -> None:
        """Hide or restore fixed/sticky content"""


@dataclass
class CaptureOptions:
    """Per-session capture settings"""

    output_format: str = "png"
    quality: float = 0.92
    hide_sticky: bool = False
    header_band: Optional[int] = None  # Explicit band; overrides detection
    detect_header: bool = False
    settle_delay: float = 0.12
    stitch_timeout: float = 45.0
    max_tiles: int = 200

    @classmethod
    def from_defaults(cls, **overrides) -> "CaptureOptions":
        """Options seeded from the application defaults"""
        defaults = get_defaults()
        options = cls(
            output_format=defaults.OUTPUT_FORMAT,
            quality=defaults.OUTPUT_QUALITY,
            hide_sticky=defaults.HIDE_STICKY,
            detect_header=defaults.DETECT_HEADER,
            settle_delay=defaults.SETTLE_DELAY,
            stitch_timeout=defaults.STITCH_TIMEOUT,
            max_tiles=defaults.MAX_TILES,
        )
        for name, value in overrides.items():
            setattr(options, name, value)
        return options


@dataclass
class CaptureOutcome:
    """Result of a completed session"""

    image_bytes: bytes
    plan: CapturePlan
    output_format: str
    duration_ms: int

    @property
    def tile_count(self) -> int:
        return self.plan.tile_count


class CaptureSession:
    """
    One measure/capture/stitch run against a single host.

    Usage:
        session = CaptureSession(host, CaptureOptions(output_format="jpeg"))
        outcome = await session.run()
        print(session.state, len(outcome.image_bytes))
    """

    def __init__(
        self,
        host: CaptureHost,
        options: Optional[CaptureOptions] = None,
        stitch_backend=None,
        progress_callback: Optional[Callable[[int], None]] = None,
        sleep: Callable = asyncio.sleep,
    ):
        """
        Initialize capture session

        Args:
            host: Document to capture
            options: Capture settings (application defaults when omitted)
            stitch_backend: Awaitable callable (request, timeout) -> bytes
            progress_callback: Called with a 0-100 percentage after each step
            sleep: Awaitable used for the settle delay
        """
        self.host = host
        self.options = options or CaptureOptions.from_defaults()
        self.stitch_backend = stitch_backend or get_stitch_backend(get_defaults().STITCH_IN_PROCESS)
        self.progress_callback = progress_callback
        self._sleep = sleep

        self.state = SessionState.IDLE
        self.history: List[SessionState] = [SessionState.IDLE]
        self.tile_index: Optional[int] = None
        self.progress = 0
        self.plan: Optional[CapturePlan] = None
        self.error: Optional[BaseException] = None
        self._cancel_requested = False

    # =========================================================================
    # STATE MACHINE
    # =========================================================================

    def _transition(self, new_state: SessionState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid session transition {self.state.value} -> {new_state.value}")
        self.state = new_state
        self.history.append(new_state)
        logger.debug(f"[CaptureSession] -> {new_state.value}")

    def _report_progress(self, percent: int) -> None:
        self.progress = percent
        if self.progress_callback:
            self.progress_callback(percent)

    def _check_cancelled(self) -> None:
        if self._cancel_requested:
            raise CaptureCancelled(self.state.value)

    def cancel(self) -> None:
        """Request cancellation; observed before the next step starts"""
        if self.state in (SessionState.DONE, SessionState.FAILED):
            return
        logger.info(f"[CaptureSession] Cancellation requested in state {self.state.value}")
        self._cancel_requested = True

    @property
    def finished(self) -> bool:
        return self.state in (SessionState.DONE, SessionState.FAILED)

    # =========================================================================
    # RUN
    # =========================================================================

    async def run(self) -> CaptureOutcome:
        """
        Run the session to completion.

        Returns:
            CaptureOutcome with the encoded image

        Raises:
            PageStitcherError: Typed failure of any step (kind + message kept verbatim)
            RuntimeError: If the session was already run
        """
        if self.state != SessionState.IDLE:
            raise RuntimeError(f"Session already {self.state.value}")

        start_time = time.time()
        sticky_hidden = False
        try:
            self._check_cancelled()
            self._transition(SessionState.MEASURING)
            plan = await self._measure()

            if self.options.hide_sticky:
                await self.host.set_sticky_hidden(True)
                sticky_hidden = True

            tiles = await self._capture_tiles(plan)

            self._check_cancelled()
            plan = self._resolve_header_band(plan, tiles)
            self.plan = plan

            self._transition(SessionState.STITCHING)
            request = StitchRequest(
                plan=plan,
                tiles=tiles,
                output_format=self.options.output_format,
                output_quality=self.options.quality,
            )
            image_bytes = await self.stitch_backend(request, self.options.stitch_timeout)

            self._transition(SessionState.DONE)
            self._report_progress(100)
        except asyncio.CancelledError:
            self._fail(CaptureCancelled(self.state.value))
            raise
        except Exception as e:
            self._fail(e)
            raise
        finally:
            if sticky_hidden:
                await self._restore_sticky()

        duration_ms = int((time.time() - start_time) * 1000)
        logger.info(
            f"[CaptureSession] Done: {plan.tile_count} tiles, {len(image_bytes)} bytes in {duration_ms}ms"
        )
        return CaptureOutcome(
            image_bytes=image_bytes,
            plan=plan,
            output_format=self.options.output_format,
            duration_ms=duration_ms,
        )

    def _fail(self, error: BaseException) -> None:
        self.error = error
        if not self.finished:
            self._transition(SessionState.FAILED)
        if isinstance(error, PageStitcherError):
            logger.error(f"[CaptureSession] Failed ({error.kind}): {error.message}")
        else:
            logger.error(f"[CaptureSession] Failed: {error}", exc_info=True)

    async def _restore_sticky(self) -> None:
        try:
            await self.host.set_sticky_hidden(False)
        except Exception as e:
            logger.warning(f"[CaptureSession] Could not restore sticky content: {e}")

    async def _measure(self) -> CapturePlan:
        measurements = await self.host.measure_surface()
        plan = build_plan_from(measurements.clamped())
        if plan.tile_count > self.options.max_tiles:
            raise InvalidDimensions(
                f"Surface needs {plan.tile_count} tiles, limit is {self.options.max_tiles}",
                field="surface_height",
            )
        self.plan = plan
        logger.info(
            f"[CaptureSession] Plan: {plan.tile_count} stops over {plan.surface_height}px "
            f"(viewport {plan.viewport_height}px, overlap {plan.overlap}px)"
        )
        return plan

    async def _capture_tiles(self, plan: CapturePlan) -> List[Tile]:
        tiles = []
        for i, y in enumerate(plan.stops):
            self._check_cancelled()
            self._transition(SessionState.CAPTURING_TILE)
            self.tile_index = i

            await self.host.scroll_to(y)
            await self._sleep(self.options.settle_delay)
            image = await self.host.acquire_tile(y)
            tiles.append(Tile(y=y, image=image))

            self._report_progress(plan.progress_percent(i))
            logger.debug(f"[CaptureSession] Tile {i + 1}/{plan.tile_count} at y={y}")
        return tiles

    def _resolve_header_band(self, plan: CapturePlan, tiles: List[Tile]) -> CapturePlan:
        """
        Pick the header band handed to the stitcher.

        Hidden sticky content leaves nothing to crop. An explicit band wins
        over detection; detection compares the first two tiles.
        """
        if self.options.hide_sticky:
            return plan.with_header_band(0)
        if self.options.header_band is not None:
            return plan.with_header_band(self.options.header_band)
        if not self.options.detect_header or len(tiles) < 2:
            return plan

        first = decode_tile_image(tiles[0].image, 0)
        second = decode_tile_image(tiles[1].image, 1)
        calibration = Calibration.from_tile(first, plan.viewport_width, plan.viewport_height)
        header_band = detect_header_band(first, second, calibration.scale_y, plan.viewport_height)
        logger.info(f"[CaptureSession] Detected header band: {header_band}px")
        return plan.with_header_band(header_band)
