"""
Mime Types
==========

Extension based mime type lookup and data URI helpers.
"""

import re
from urllib.parse import urlparse

WOFF = "application/font-woff"
JPEG = "image/jpeg"

MIME_TYPES = {
    "woff": WOFF,
    "woff2": WOFF,
    "ttf": "application/font-truetype",
    "eot": "application/vnd.ms-fontobject",
    "png": "image/png",
    "jpg": JPEG,
    "jpeg": JPEG,
    "gif": "image/gif",
    "tiff": "image/tiff",
    "svg": "image/svg+xml",
}

_EXTENSION_PATTERN = re.compile(r"\.([^./]*?)$")


def parse_extension(url: str) -> str:
    """Extension of the URL path, without the dot."""
    match = _EXTENSION_PATTERN.search(urlparse(url).path)
    return match.group(1) if match else ""


def mime_type(url: str) -> str:
    """Mime type for ``url``; empty when the extension is unknown."""
    return MIME_TYPES.get(parse_extension(url).lower(), "")


def is_data_url(url: str) -> bool:
    return url.startswith("data:")


def data_as_url(payload: str, content_type: str) -> str:
    return f"data:{content_type};base64,{payload}"
