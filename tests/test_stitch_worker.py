import asyncio
import io

import pytest
from PIL import Image

from page_stitcher.core.capture_plan import build_plan
from page_stitcher.core.stitcher import StitchRequest, Tile
from page_stitcher.services.stitch_worker import (
    ProcessStitchBackend,
    StitchChannel,
    StitchWorker,
    build_stitch_message,
    handle_stitch_message,
    response_to_bytes,
)
from page_stitcher.utils.error_handler import DecodeFailure, StitchTimeout, TileCountMismatch

from conftest import render_surface, slice_tiles


def _request(**overrides):
    plan = build_plan(1.0, 12, 40, 12, 100)
    surface = render_surface(12, 100)
    fields = dict(plan=plan, tiles=slice_tiles(surface, plan), output_format="png")
    fields.update(overrides)
    return StitchRequest(**fields), surface


def test_message_carries_encoded_tiles() -> None:
    request, _ = _request()

    message = build_stitch_message(request)

    assert message["type"] == "stitch"
    assert message["plan"]["stops"] == list(request.plan.stops)
    assert all(isinstance(t["image"], bytes) for t in message["tiles"])


def test_handle_message_stitches() -> None:
    request, surface = _request()

    response = handle_stitch_message(build_stitch_message(request))

    assert response["type"] == "stitched"
    assert Image.open(io.BytesIO(response["bytes"])).tobytes() == surface.tobytes()


def test_handle_message_reports_decode_failure() -> None:
    request, _ = _request()
    request.tiles[2] = Tile(y=request.tiles[2].y, image=b"nope")

    response = handle_stitch_message(build_stitch_message(request))

    assert response["type"] == "error"
    assert response["kind"] == "DecodeFailure"
    with pytest.raises(DecodeFailure) as exc_info:
        response_to_bytes(response)
    assert exc_info.value.tile_index == 2
    assert exc_info.value.message == response["message"]


def test_handle_message_rejects_unknown_type() -> None:
    response = handle_stitch_message({"type": "ping"})

    assert response["type"] == "error"
    assert response["kind"] == "ProtocolError"


def test_unsupported_format_comes_back_as_value_error() -> None:
    request, _ = _request(output_format="tiff")

    with pytest.raises(ValueError):
        response_to_bytes(handle_stitch_message(build_stitch_message(request)))


def test_worker_process_stitches() -> None:
    request, surface = _request()

    data = StitchWorker().stitch(request, timeout=60)

    assert Image.open(io.BytesIO(data)).tobytes() == surface.tobytes()


def test_worker_process_error_is_typed() -> None:
    request, _ = _request()
    request.tiles.pop()

    with pytest.raises(TileCountMismatch) as exc_info:
        StitchWorker().stitch(request, timeout=60)

    assert exc_info.value.details == {"expected": 3, "actual": 2}


def test_worker_timeout() -> None:
    request, _ = _request()

    with pytest.raises(StitchTimeout):
        StitchWorker().stitch(request, timeout=0)


def test_channel_accepts_one_request() -> None:
    request, _ = _request()
    message = build_stitch_message(request)

    with StitchChannel() as channel:
        assert channel.request(message, timeout=60)["type"] == "stitched"
        with pytest.raises(RuntimeError):
            channel.request(message, timeout=60)


def test_process_backend_is_awaitable() -> None:
    request, _ = _request(output_format="jpeg")

    data = asyncio.run(ProcessStitchBackend()(request, 60))

    assert data[:2] == b"\xff\xd8"
