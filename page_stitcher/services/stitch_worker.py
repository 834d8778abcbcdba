"""
Stitch Worker Service - Out-of-process stitching

Raster composition is memory and CPU heavy, so sessions hand it to a
child process over a one-shot message channel:

    parent -> child   {"type": "stitch", "plan": {...}, "tiles": [...],
                       "output_format": ..., "output_quality": ...}
    child  -> parent  {"type": "stitched", "bytes": b"..."}
                   or {"type": "error", "kind": ..., "message": ..., "details": {...}}

A channel carries exactly one request and one terminal response, then is
torn down. A request that outlives its deadline kills the child and raises
StitchTimeout; there is no retry.

Backends:
- ThreadStitchBackend: asyncio.to_thread in the current process
- ProcessStitchBackend: StitchWorker child process (default)
"""

import asyncio
import io
import logging
import multiprocessing
import time
from typing import Any, Dict, Optional

from PIL import Image

from page_stitcher.core.capture_plan import CapturePlan
from page_stitcher.core.stitcher import Stitcher, StitchRequest, Tile
from page_stitcher.utils.error_handler import (
    PageStitcherError,
    StitchTimeout,
    error_from_kind,
)

logger = logging.getLogger(__name__)


def _tile_payload(tile: Tile) -> Dict[str, Any]:
    image = tile.image
    if isinstance(image, Image.Image):
        buffer = io.BytesIO()
        image.save(buffer, format="PNG")
        image = buffer.getvalue()
    elif isinstance(image, (bytearray, memoryview)):
        image = bytes(image)
    return {"y": tile.y, "image": image}


def build_stitch_message(request: StitchRequest) -> Dict[str, Any]:
    """Serialize a StitchRequest into the channel's request message"""
    return {
        "type": "stitch",
        "plan": request.plan.to_dict(),
        "tiles": [_tile_payload(tile) for tile in request.tiles],
        "output_format": request.output_format,
        "output_quality": request.output_quality,
    }


def handle_stitch_message(message: Dict[str, Any]) -> Dict[str, Any]:
    """
    Serve one request message and build its terminal response.

    Runs inside the worker process; usable in-process for tests.
    """
    if message.get("type") != "stitch":
        return {
            "type": "error",
            "kind": "ProtocolError",
            "message": f"Unexpected message type: {message.get('type')!r}",
            "details": {},
        }
    try:
        plan = CapturePlan.from_dict(message["plan"])
        tiles = [Tile(y=t["y"], image=t["image"]) for t in message["tiles"]]
        image_bytes = Stitcher().stitch(
            plan, tiles, message["output_format"], message.get("output_quality")
        )
    except PageStitcherError as e:
        return {"type": "error", "kind": e.kind, "message": e.message, "details": e.details}
    except (ValueError, KeyError, TypeError) as e:
        return {"type": "error", "kind": e.__class__.__name__, "message": str(e), "details": {}}
    return {"type": "stitched", "bytes": image_bytes}


def _worker_main(conn) -> None:
    """Child process entry point: one request, one response"""
    try:
        message = conn.recv()
        conn.send(handle_stitch_message(message))
    finally:
        conn.close()


def response_to_bytes(response: Dict[str, Any]) -> bytes:
    """Return the stitched bytes or raise the error carried by a response"""
    if response.get("type") == "stitched":
        return response["bytes"]

    kind = response.get("kind", "")
    message = response.get("message", "Stitch failed")
    if kind in ("ValueError", "KeyError", "TypeError"):
        raise ValueError(message)
    raise error_from_kind(kind, message, response.get("details"))


class StitchChannel:
    """
    One-shot request/response channel to a stitch child process.

    Usage:
        with StitchChannel(ctx) as channel:
            response = channel.request(message, timeout=45)
    """

    def __init__(self, mp_context=None):
        self._ctx = mp_context or multiprocessing.get_context("spawn")
        self._conn = None
        self._process = None
        self._used = False

    def open(self) -> "StitchChannel":
        parent_conn, child_conn = self._ctx.Pipe()
        self._process = self._ctx.Process(
            target=_worker_main, args=(child_conn,), daemon=True, name="stitch-worker"
        )
        self._process.start()
        child_conn.close()
        self._conn = parent_conn
        logger.debug(f"[StitchChannel] Worker started (pid={self._process.pid})")
        return self

    def request(self, message: Dict[str, Any], timeout: float) -> Dict[str, Any]:
        """
        Send the single request and wait for its terminal response.

        Raises:
            RuntimeError: If the channel was already used or is not open
            StitchTimeout: If no response arrives before the deadline
            PageStitcherError: If the worker exits without responding
        """
        if self._conn is None:
            raise RuntimeError("Stitch channel is not open")
        if self._used:
            raise RuntimeError("Stitch channel accepts a single request")
        self._used = True

        deadline = time.monotonic() + timeout
        self._conn.send(message)
        remaining = max(0.0, deadline - time.monotonic())
        if not self._conn.poll(remaining):
            logger.error(f"[StitchChannel] No response within {timeout:g}s, terminating worker")
            raise StitchTimeout(timeout)
        try:
            return self._conn.recv()
        except EOFError:
            raise PageStitcherError(
                "Stitch worker exited without a response", code="WORKER_EXITED"
            )

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
        if self._process is not None:
            self._process.join(timeout=1)
            if self._process.is_alive():
                self._process.terminate()
                self._process.join(timeout=1)
            if self._process.is_alive():
                self._process.kill()
                self._process.join()
            self._process = None

    def __enter__(self) -> "StitchChannel":
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class StitchWorker:
    """Runs each stitch in a fresh child process."""

    def __init__(self, mp_context=None):
        self._ctx = mp_context or multiprocessing.get_context("spawn")

    def stitch(self, request: StitchRequest, timeout: float) -> bytes:
        message = build_stitch_message(request)
        start_time = time.time()
        with StitchChannel(self._ctx) as channel:
            response = channel.request(message, timeout)
        duration_ms = int((time.time() - start_time) * 1000)
        logger.info(
            f"[StitchWorker] {len(request.tiles)} tiles -> {response.get('type')} in {duration_ms}ms"
        )
        return response_to_bytes(response)

    async def stitch_async(self, request: StitchRequest, timeout: float) -> bytes:
        return await asyncio.to_thread(self.stitch, request, timeout)


class ThreadStitchBackend:
    """
    Stitches in a worker thread of the current process.

    A timed-out stitch cannot be interrupted; its thread finishes in the
    background and the result is discarded.
    """

    def __init__(self, stitcher: Optional[Stitcher] = None):
        self.stitcher = stitcher or Stitcher()

    async def __call__(self, request: StitchRequest, timeout: float) -> bytes:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(
                    self.stitcher.stitch,
                    request.plan,
                    request.tiles,
                    request.output_format,
                    request.output_quality,
                ),
                timeout,
            )
        except asyncio.TimeoutError:
            raise StitchTimeout(timeout)


class ProcessStitchBackend:
    """Stitches in a StitchWorker child process."""

    def __init__(self, worker: Optional[StitchWorker] = None):
        self.worker = worker or StitchWorker()

    async def __call__(self, request: StitchRequest, timeout: float) -> bytes:
        return await self.worker.stitch_async(request, timeout)


def get_stitch_backend(in_process: bool):
    """Backend selected by the STITCH_IN_PROCESS setting"""
    return ThreadStitchBackend() if in_process else ProcessStitchBackend()
