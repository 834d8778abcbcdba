"""
Page Stitcher - Default Configuration Constants

Centralized configuration for the capture and stitching service.
Values can be overridden via environment variables.

Usage:
    from page_stitcher.config.defaults import Defaults
    timeout = Defaults.STITCH_TIMEOUT
"""

import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name, str(default)).lower()
    return value in ("true", "1", "yes", "on")


@dataclass
class AppDefaults:
    """Application-wide default configuration."""

    # ==========================================================================
    # Server Settings
    # ==========================================================================
    SERVER_PORT: int = 8083
    SERVER_HOST: str = "0.0.0.0"
    LOG_LEVEL: str = "INFO"

    # ==========================================================================
    # Capture Settings
    # ==========================================================================
    SETTLE_DELAY: float = 0.12  # Seconds to wait after scrolling before a capture
    HIDE_STICKY: bool = False  # Hide fixed/sticky content before capturing tiles
    DETECT_HEADER: bool = False  # Derive header band from the first two tiles
    MAX_TILES: int = 200  # Safety limit on stops per session

    # ==========================================================================
    # Stitch Settings
    # ==========================================================================
    STITCH_TIMEOUT: float = 45.0  # Hard deadline for one stitch (seconds)
    STITCH_IN_PROCESS: bool = False  # Run stitch in a thread instead of a worker process
    OUTPUT_FORMAT: str = "png"
    OUTPUT_QUALITY: float = 0.92  # Ignored for PNG

    @classmethod
    def from_env(cls) -> "AppDefaults":
        """Create config from environment variables with defaults."""
        return cls(
            SERVER_PORT=int(os.getenv("SERVER_PORT", cls.SERVER_PORT)),
            SERVER_HOST=os.getenv("SERVER_HOST", cls.SERVER_HOST),
            LOG_LEVEL=os.getenv("LOG_LEVEL", cls.LOG_LEVEL).upper(),
            SETTLE_DELAY=float(os.getenv("SETTLE_DELAY", cls.SETTLE_DELAY)),
            HIDE_STICKY=_env_bool("HIDE_STICKY", cls.HIDE_STICKY),
            DETECT_HEADER=_env_bool("DETECT_HEADER", cls.DETECT_HEADER),
            MAX_TILES=int(os.getenv("MAX_TILES", cls.MAX_TILES)),
            STITCH_TIMEOUT=float(os.getenv("STITCH_TIMEOUT", cls.STITCH_TIMEOUT)),
            STITCH_IN_PROCESS=_env_bool("STITCH_IN_PROCESS", cls.STITCH_IN_PROCESS),
            OUTPUT_FORMAT=os.getenv("OUTPUT_FORMAT", cls.OUTPUT_FORMAT).lower(),
            OUTPUT_QUALITY=float(os.getenv("OUTPUT_QUALITY", cls.OUTPUT_QUALITY)),
        )


# Global defaults instance - can be overridden at runtime
Defaults = AppDefaults()


def load_defaults_from_env() -> AppDefaults:
    """Reload defaults from environment variables."""
    global Defaults
    Defaults = AppDefaults.from_env()
    return Defaults
