"""
Rasterizer
==========

Serializes a cloned tree into an SVG foreignObject data URI, decodes it and
draws it onto a pixel surface.
"""

from typing import Any, Dict, Optional, Tuple, Union
import asyncio
import io
import xml.etree.ElementTree as ET

from PIL import Image, ImageColor  # type: ignore

from domcapture.config.logging import get_logger
from domcapture.config.settings import Settings, get_settings
from domcapture.core.dom import XHTML_NAMESPACE, SVG_NAMESPACE, ClonedElement, ClonedText
from domcapture.core.rendering.decoders import ImageDecoder, ImageDecodeError

logger = get_logger(__name__)


class RenderError(Exception):
    """Exception raised when a cloned tree cannot be rasterized."""

    pass


XLINK_NAMESPACE = "http://www.w3.org/1999/xlink"
XML_NAMESPACE = "http://www.w3.org/XML/1998/namespace"

# Prefixes HTML parsers leave on foreign-content attributes without declaring them
KNOWN_PREFIXES: Dict[str, str] = {"xlink": XLINK_NAMESPACE, "xml": XML_NAMESPACE}

ET.register_namespace("xlink", XLINK_NAMESPACE)


def qualified_attributes(
    attributes: Dict[str, str], scope: Dict[str, str]
) -> Tuple[Dict[str, str], Dict[str, str]]:
    """
    Map ``prefix:name`` attributes to ElementTree ``{uri}name`` keys.

    ``xmlns:prefix`` declarations extend the scope for descendants and are
    left for ElementTree to write. Attributes with an unbound prefix are
    dropped, since one of them makes the whole document unparsable.

    Returns:
        The rewritten attributes and the scope for child elements
    """
    declared = {
        name.split(":", 1)[1]: value for name, value in attributes.items() if name.startswith("xmlns:")
    }
    if declared:
        scope = {**scope, **declared}

    qualified: Dict[str, str] = {}
    for name, value in attributes.items():
        if name.startswith("xmlns:"):
            continue
        prefix, sep, local = name.partition(":")
        if not sep:
            qualified[name] = value
        elif prefix in scope:
            qualified[f"{{{scope[prefix]}}}{local}"] = value
        else:
            logger.debug("Dropping attribute with unbound prefix", attribute=name)
    return qualified, scope


def to_etree(element: ClonedElement, scope: Optional[Dict[str, str]] = None) -> ET.Element:
    """Convert a cloned element into an ElementTree element."""
    attributes, scope = qualified_attributes(dict(element.attributes), scope or KNOWN_PREFIXES)
    css_text = element.style.css_text
    if css_text:
        attributes["style"] = css_text
    else:
        attributes.pop("style", None)

    node = ET.Element(element.tag, attributes)
    last: Optional[ET.Element] = None
    for child in element.children:
        if isinstance(child, ClonedText):
            if last is None:
                node.text = (node.text or "") + child.text
            else:
                last.tail = (last.tail or "") + child.text
        else:
            last = to_etree(child, scope)
            node.append(last)
    return node


def serialize_node(clone: ClonedElement) -> str:
    """Serialize ``clone`` as well-formed XHTML markup."""
    clone.attributes["xmlns"] = XHTML_NAMESPACE
    return ET.tostring(to_etree(clone), encoding="unicode", method="xml")


def escape_xhtml(markup: str) -> str:
    """Escape characters that end or corrupt a data URI."""
    return markup.replace("#", "%23").replace("\n", "%0A")


def make_svg_data_uri(clone: ClonedElement, width: int, height: int) -> str:
    """Wrap ``clone`` in a sized SVG foreignObject data URI."""
    markup = escape_xhtml(serialize_node(clone))
    foreign_object = f'<foreignObject x="0" y="0" width="100%" height="100%">{markup}</foreignObject>'
    svg = f'<svg xmlns="{SVG_NAMESPACE}" width="{width}" height="{height}">{foreign_object}</svg>'
    return "data:image/svg+xml;charset=utf-8," + svg


class RasterSurface:
    """An RGBA pixel buffer of fixed size."""

    def __init__(self, width: int, height: int, source_uri: str = ""):
        if width <= 0 or height <= 0:
            raise RenderError(f"Invalid surface size: {width}x{height}")
        self.width = width
        self.height = height
        self.source_uri = source_uri
        self.image = Image.new("RGBA", (width, height), (0, 0, 0, 0))

    def fill(self, color: Union[str, tuple]) -> None:
        """Paint the whole surface with ``color``."""
        rgba = ImageColor.getcolor(color, "RGBA") if isinstance(color, str) else color
        self.image.paste(rgba, (0, 0, self.width, self.height))

    def draw_image(self, image: Image.Image, x: int = 0, y: int = 0) -> None:
        """Composite ``image`` over the surface at (x, y), clipped to the surface."""
        if image.mode != "RGBA":
            image = image.convert("RGBA")
        layer = Image.new("RGBA", self.image.size, (0, 0, 0, 0))
        layer.paste(image, (x, y))
        self.image = Image.alpha_composite(self.image, layer)

    def get_image_data(
        self, x: int = 0, y: int = 0, width: Optional[int] = None, height: Optional[int] = None
    ) -> bytes:
        """Raw RGBA bytes of a region, row-major, top to bottom."""
        width = self.width if width is None else width
        height = self.height if height is None else height
        return self.image.crop((x, y, x + width, y + height)).tobytes()

    def to_blob(self) -> bytes:
        """PNG encoded surface."""
        output = io.BytesIO()
        self.image.save(output, format="PNG")
        return output.getvalue()


class Rasterizer:
    """Draws cloned trees onto raster surfaces."""

    def __init__(self, decoder: ImageDecoder, settings: Optional[Settings] = None):
        self.decoder = decoder
        self.settings = settings or get_settings()
        self.logger: Any = logger.bind(component="rasterizer")  # structlog.BoundLoggerBase

    @property
    def settle_delay(self) -> float:
        """Seconds to wait after decode before the image is safe to draw."""
        return self.settings.settle_delay_ms / 1000

    async def render(
        self,
        clone: ClonedElement,
        width: int,
        height: int,
        background_color: Optional[str] = None,
    ) -> RasterSurface:
        """
        Rasterize ``clone`` onto a ``width`` x ``height`` surface.

        Raises:
            RenderError: If the serialized tree fails to decode
        """
        return await self.draw(make_svg_data_uri(clone, width, height), width, height, background_color)

    async def draw(
        self,
        svg_uri: str,
        width: int,
        height: int,
        background_color: Optional[str] = None,
    ) -> RasterSurface:
        """Decode an SVG data URI and draw it onto a new surface."""
        try:
            image = await self.decoder.decode(svg_uri)
        except ImageDecodeError as e:
            self.logger.error("Failed to decode serialized node", error=str(e))
            raise RenderError(f"Render failed: {e}") from e

        # some engines report decode completion before foreignObject content is painted
        if self.settle_delay:
            await asyncio.sleep(self.settle_delay)

        surface = RasterSurface(width, height, source_uri=svg_uri)
        if background_color:
            surface.fill(background_color)
        surface.draw_image(image, 0, 0)

        self.logger.debug("Rendered surface", width=width, height=height)
        return surface
