"""
Route Dependencies - Centralized dependency injection for route modules

All shared instances are injected at startup so route modules stay free of
module-level state and can be exercised with test doubles.
"""

from dataclasses import dataclass
from typing import Callable, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from page_stitcher.config.defaults import AppDefaults


@dataclass
class RouteDependencies:
    """
    Container for all dependencies needed by route modules

    Usage in route modules:
        from page_stitcher.routes import get_deps

        @router.post("/endpoint")
        async def handler():
            deps = get_deps()
            image = await deps.stitch_backend(request, deps.defaults.STITCH_TIMEOUT)
    """

    # Awaitable (StitchRequest, timeout) -> bytes
    stitch_backend: Callable
    defaults: "AppDefaults"
    started_at: Optional[float] = None


# Global dependencies instance (set once at startup)
_deps: Optional[RouteDependencies] = None


def set_dependencies(deps: RouteDependencies) -> None:
    """
    Set global dependencies (called once at app creation)

    Args:
        deps: RouteDependencies instance
    """
    global _deps
    _deps = deps


def get_deps() -> RouteDependencies:
    """
    Get dependencies for route handlers

    Raises:
        RuntimeError: If dependencies not initialized (call set_dependencies first)
    """
    if _deps is None:
        raise RuntimeError(
            "Dependencies not initialized. "
            "Call set_dependencies() before registering routes."
        )
    return _deps


__all__ = [
    "RouteDependencies",
    "set_dependencies",
    "get_deps",
]
