import json

import pytest

from page_stitcher.utils.error_handler import (
    CaptureCancelled,
    DecodeFailure,
    EmptyTileSet,
    ErrorContext,
    InvalidDimensions,
    PageStitcherError,
    StitchTimeout,
    TileCountMismatch,
    error_from_kind,
    handle_api_error,
)


@pytest.mark.parametrize(
    "error, status",
    [
        (InvalidDimensions("bad", field="viewport_height"), 400),
        (TileCountMismatch(3, 2), 400),
        (EmptyTileSet(), 400),
        (ValueError("format"), 400),
        (DecodeFailure(4, "truncated"), 422),
        (StitchTimeout(45), 504),
        (CaptureCancelled("stitching"), 409),
        (RuntimeError("boom"), 500),
    ],
)
def test_status_codes(error, status) -> None:
    response = handle_api_error(error)

    assert response.status_code == status
    body = json.loads(response.body)
    assert body["success"] is False
    assert body["error"]["type"] == error.__class__.__name__


@pytest.mark.parametrize(
    "error",
    [
        InvalidDimensions("bad", field="surface_height"),
        TileCountMismatch(3, 1),
        EmptyTileSet(),
        DecodeFailure(2, "cannot identify image file"),
        StitchTimeout(45),
        CaptureCancelled("capturing_tile"),
    ],
)
def test_error_kind_survives_the_channel(error) -> None:
    rebuilt = error_from_kind(error.kind, error.message, error.details)

    assert type(rebuilt) is type(error)
    assert rebuilt.message == error.message
    assert rebuilt.details == error.details


def test_unknown_kind_keeps_message() -> None:
    rebuilt = error_from_kind("MemoryError", "out of memory")

    assert type(rebuilt) is PageStitcherError
    assert rebuilt.message == "out of memory"


def test_decode_failure_message_names_tile() -> None:
    error = DecodeFailure(7, "truncated")

    assert error.message == "Tile 7 could not be decoded: truncated"
    assert error.kind == "DecodeFailure"


def test_error_context_wraps_foreign_errors() -> None:
    with pytest.raises(PageStitcherError) as exc_info:
        with ErrorContext("encoding output"):
            raise OSError("disk full")

    assert "encoding output" in exc_info.value.message
    assert isinstance(exc_info.value.__cause__, OSError)
