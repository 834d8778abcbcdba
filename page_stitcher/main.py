"""
Page Stitcher - FastAPI Server

Serves capture plans and stitches tiles acquired by an external orchestrator.
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from page_stitcher.config import AppDefaults, load_defaults_from_env
from page_stitcher.routes import RouteDependencies, set_dependencies
from page_stitcher.routes import capture, health
from page_stitcher.services.stitch_worker import get_stitch_backend
from page_stitcher.utils.error_handler import PageStitcherError, handle_api_error
from page_stitcher.utils.version import APP_VERSION

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="[%(asctime)s] %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"[Server] Starting Page Stitcher v{APP_VERSION}")
    yield
    logger.info("[Server] Shutting down")


def create_app(defaults: Optional[AppDefaults] = None, stitch_backend=None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        defaults: Configuration (read from the environment when omitted)
        stitch_backend: Stitch backend override (selected from config when omitted)
    """
    defaults = defaults or load_defaults_from_env()
    app = FastAPI(
        title="Page Stitcher API",
        version=APP_VERSION,
        description="Capture plans and tile stitching for full-page screenshots",
        lifespan=lifespan,
    )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Log and return detailed validation errors"""
        logger.error(f"[VALIDATION ERROR] {request.method} {request.url}: {exc.errors()}")
        return JSONResponse(
            status_code=422,
            content={"success": False, "detail": exc.errors()},
        )

    @app.exception_handler(PageStitcherError)
    async def page_stitcher_exception_handler(request: Request, exc: PageStitcherError):
        return handle_api_error(exc)

    set_dependencies(
        RouteDependencies(
            stitch_backend=stitch_backend or get_stitch_backend(defaults.STITCH_IN_PROCESS),
            defaults=defaults,
            started_at=time.time(),
        )
    )

    app.include_router(health.router)
    logger.info("[Server] Registered route module: health (1 endpoint)")
    app.include_router(capture.router)
    logger.info("[Server] Registered route module: capture (2 endpoints)")

    return app


def main() -> None:
    defaults = load_defaults_from_env()
    configure_logging(defaults.LOG_LEVEL)
    app = create_app(defaults)
    logger.info(f"Server: http://localhost:{defaults.SERVER_PORT}")
    uvicorn.run(app, host=defaults.SERVER_HOST, port=defaults.SERVER_PORT, log_level="info")


if __name__ == "__main__":
    main()
