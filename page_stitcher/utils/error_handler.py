"""
Centralized Error Handling Module for Page Stitcher

Provides the capture/stitch error taxonomy, consistent error responses,
and logging.

Taxonomy:
- InvalidDimensions: plan input malformed (caller bug, not retryable)
- TileCountMismatch / EmptyTileSet: orchestrator/stitcher contract violation
- DecodeFailure: a specific tile is not a valid image (fatal for the session)
- StitchTimeout: composite step exceeded its deadline (fatal, no retry)
- CaptureCancelled: session cancelled by its owner
"""

import logging
import traceback
from typing import Dict, Any, Optional
from fastapi import status
from fastapi.responses import JSONResponse

logger = logging.getLogger("page_stitcher")


class PageStitcherError(Exception):
    """Base exception for all Page Stitcher errors"""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    @property
    def kind(self) -> str:
        """Error kind reported across the stitch channel"""
        return self.__class__.__name__


class InvalidDimensions(PageStitcherError):
    """Raised when surface/viewport measurements cannot produce a plan"""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(
            message, code="INVALID_DIMENSIONS", details={"field": field}
        )


class TileCountMismatch(PageStitcherError):
    """Raised when the tile count differs from the number of plan stops"""

    def __init__(self, expected: int, actual: int, message: Optional[str] = None):
        super().__init__(
            message or f"Expected {expected} tiles for {expected} stops, got {actual}",
            code="TILE_COUNT_MISMATCH",
            details={"expected": expected, "actual": actual},
        )


class EmptyTileSet(PageStitcherError):
    """Raised when a stitch is requested without any tiles"""

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or "No tiles to stitch", code="EMPTY_TILE_SET")


class DecodeFailure(PageStitcherError):
    """Raised when a tile cannot be decoded to a raster image"""

    def __init__(self, tile_index: int, reason: str = "", message: Optional[str] = None):
        if message is None:
            message = f"Tile {tile_index} could not be decoded"
            if reason:
                message = f"{message}: {reason}"
        super().__init__(
            message, code="DECODE_FAILURE", details={"tile_index": tile_index}
        )
        self.tile_index = tile_index


class StitchTimeout(PageStitcherError):
    """Raised when the stitch step exceeds its deadline"""

    def __init__(self, timeout: float, message: Optional[str] = None):
        super().__init__(
            message or f"Stitch did not complete within {timeout:g}s",
            code="STITCH_TIMEOUT",
            details={"timeout": timeout},
        )


class CaptureCancelled(PageStitcherError):
    """Raised when a capture session is cancelled before completion"""

    def __init__(self, state: Optional[str] = None, message: Optional[str] = None):
        super().__init__(
            message or "Capture session cancelled",
            code="CAPTURE_CANCELLED",
            details={"state": state},
        )


def error_from_kind(
    kind: str, message: str, details: Optional[Dict[str, Any]] = None
) -> PageStitcherError:
    """
    Rebuild a typed error from its channel representation

    The message is kept verbatim so the orchestrator can surface it unchanged.
    """
    details = details or {}
    if kind == "InvalidDimensions":
        return InvalidDimensions(message, field=details.get("field"))
    if kind == "TileCountMismatch":
        return TileCountMismatch(
            details.get("expected", -1), details.get("actual", -1), message=message
        )
    if kind == "EmptyTileSet":
        return EmptyTileSet(message=message)
    if kind == "DecodeFailure":
        return DecodeFailure(details.get("tile_index", -1), message=message)
    if kind == "StitchTimeout":
        return StitchTimeout(details.get("timeout", 0.0), message=message)
    if kind == "CaptureCancelled":
        return CaptureCancelled(details.get("state"), message=message)
    return PageStitcherError(message, code="STITCH_ERROR", details=details)


def create_error_response(
    error: Exception,
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
    include_traceback: bool = False,
) -> JSONResponse:
    """
    Create a standardized error response

    Args:
        error: The exception that occurred
        status_code: HTTP status code
        include_traceback: Include full traceback in response (debug only)

    Returns:
        JSONResponse with error details
    """
    error_response = {
        "success": False,
        "error": {"message": str(error), "type": error.__class__.__name__},
    }

    if isinstance(error, PageStitcherError):
        error_response["error"]["code"] = error.code
        error_response["error"]["details"] = error.details

    if include_traceback:
        error_response["error"]["traceback"] = traceback.format_exc()

    if status_code >= 500:
        logger.error(f"{error.__class__.__name__}: {error}", exc_info=True)
    else:
        logger.warning(f"{error.__class__.__name__}: {error}")

    return JSONResponse(status_code=status_code, content=error_response)


def handle_api_error(error: Exception) -> JSONResponse:
    """
    Handle API errors with appropriate status codes

    Args:
        error: The exception to handle

    Returns:
        JSONResponse with appropriate status code
    """
    if isinstance(error, (InvalidDimensions, TileCountMismatch, EmptyTileSet, ValueError)):
        return create_error_response(error, status.HTTP_400_BAD_REQUEST)

    elif isinstance(error, DecodeFailure):
        return create_error_response(error, status.HTTP_422_UNPROCESSABLE_ENTITY)

    elif isinstance(error, StitchTimeout):
        return create_error_response(error, status.HTTP_504_GATEWAY_TIMEOUT)

    elif isinstance(error, CaptureCancelled):
        return create_error_response(error, status.HTTP_409_CONFLICT)

    else:
        return create_error_response(error, status.HTTP_500_INTERNAL_SERVER_ERROR)


class ErrorContext:
    """
    Context manager for error handling

    Usage:
        with ErrorContext("encoding output", raise_as=PageStitcherError):
            # code that might fail
            pass
    """

    def __init__(self, operation: str, raise_as: type = PageStitcherError):
        self.operation = operation
        self.raise_as = raise_as

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None:
            logger.error(f"Error during {self.operation}: {exc_val}", exc_info=True)
            if not isinstance(exc_val, PageStitcherError):
                raise self.raise_as(f"Failed {self.operation}: {exc_val}") from exc_val
        return False
