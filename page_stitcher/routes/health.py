"""
Health Routes - System Health Check
"""

from fastapi import APIRouter
import logging
import time
from page_stitcher.routes import get_deps
from page_stitcher.utils.version import APP_VERSION

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["health"])


@router.api_route("/health", methods=["GET", "HEAD"])
async def health_check():
    """
    Health check endpoint

    Returns server status, version and the stitch mode in use.
    Supports both GET and HEAD methods for Docker health checks.
    """
    deps = get_deps()
    uptime = int(time.time() - deps.started_at) if deps.started_at else 0

    return {
        "status": "ok",
        "version": APP_VERSION,
        "message": "Page Stitcher is running",
        "stitch_mode": "thread" if deps.defaults.STITCH_IN_PROCESS else "process",
        "uptime_seconds": uptime,
    }
