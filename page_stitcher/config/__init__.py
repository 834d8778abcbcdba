"""
Page Stitcher Configuration Module

Provides centralized configuration management.

Usage:
    from page_stitcher import config
    timeout = config.get_defaults().STITCH_TIMEOUT
"""

from . import defaults
from .defaults import AppDefaults, load_defaults_from_env


def get_defaults() -> AppDefaults:
    """Current defaults (reflects the last load_defaults_from_env call)"""
    return defaults.Defaults


__all__ = ["AppDefaults", "get_defaults", "load_defaults_from_env"]
