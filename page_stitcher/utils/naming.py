"""
Output file naming for stitched captures.

Builds `<host>_<title>_<timestamp>.<ext>` names that are safe on every
common filesystem.
"""

import re
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import urlparse

from page_stitcher.ss_modules.compose import normalize_format

_UNSAFE_CHARS = re.compile(r'[\\/:*?"<>|]+')
_MAX_NAME_LENGTH = 100


def sanitize_filename(name: Optional[str]) -> str:
    """Replace path/reserved characters and cap the length; never returns empty"""
    cleaned = _UNSAFE_CHARS.sub("_", name or "page").strip()[:_MAX_NAME_LENGTH]
    return cleaned or "page"


def timestamp_slug(moment: Optional[datetime] = None) -> str:
    """ISO-8601 UTC timestamp with ':' and '.' replaced for filenames"""
    moment = moment or datetime.now(timezone.utc)
    iso = moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"
    return re.sub(r"[:.]", "-", iso)


def extension_for(output_format: str) -> str:
    """File extension for any accepted output format name"""
    return "png" if normalize_format(output_format) == "PNG" else "jpg"


def build_output_filename(
    url: Optional[str],
    title: Optional[str],
    output_format: str,
    moment: Optional[datetime] = None,
) -> str:
    """
    Build the download name for a stitched capture.

    Args:
        url: Address of the captured document (host part is used)
        title: Document title
        output_format: Output format name (png/jpeg or lossless/lossy)
        moment: Capture time (defaults to now)

    Returns:
        Filename such as "example.com_Home_2026-10-19T12-00-00-000Z.png"
    """
    host = urlparse(url or "https://example.com").hostname or "example.com"
    base = sanitize_filename(f"{host}_{title or 'page'}")
    return f"{base}_{timestamp_slug(moment)}.{extension_for(output_format)}"
