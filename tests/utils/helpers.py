"""
Test Helpers
============

Builders for visual trees and small image utilities.
"""

import base64
import io
from typing import Any, Dict, Optional

from PIL import Image  # type: ignore

from domcapture.core.dom import SVG_NAMESPACE, XHTML_NAMESPACE, NodeKind, VisualNode


def element(
    tag: str,
    *children: VisualNode,
    attributes: Optional[Dict[str, str]] = None,
    style: str = "",
    namespace: str = XHTML_NAMESPACE,
    **kwargs: Any,
) -> VisualNode:
    """Build an element node."""
    return VisualNode(
        kind=NodeKind.ELEMENT,
        tag=tag,
        namespace=namespace,
        attributes=attributes or {},
        inline_style=style,
        children=children,
        **kwargs,
    )


def svg_element(tag: str, *children: VisualNode, **kwargs: Any) -> VisualNode:
    return element(tag, *children, namespace=SVG_NAMESPACE, **kwargs)


def text(value: str) -> VisualNode:
    return VisualNode(kind=NodeKind.TEXT, text=value)


def canvas(pixels: Optional[Image.Image], **kwargs: Any) -> VisualNode:
    return VisualNode(kind=NodeKind.CANVAS, tag="canvas", pixels=pixels, **kwargs)


def png_bytes(size=(2, 2), color=(255, 0, 0, 255)) -> bytes:
    output = io.BytesIO()
    Image.new("RGBA", size, color).save(output, format="PNG")
    return output.getvalue()


def png_data_uri(size=(2, 2), color=(255, 0, 0, 255)) -> str:
    return "data:image/png;base64," + base64.b64encode(png_bytes(size, color)).decode("ascii")


def decode_data_uri_image(uri: str) -> Image.Image:
    return Image.open(io.BytesIO(base64.b64decode(uri.split(",", 1)[1])))
