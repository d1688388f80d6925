"""
Capture Pipeline
================

Clone -> (inline resources || harvest fonts) -> serialize/rasterize -> export.

Every capture runs in its own CaptureSession, which owns the clone, the
marker class generator, the resource cache and the fetch policy, so
concurrent captures never share mutable state.
"""

from typing import Any, Awaitable, List, Optional, Tuple, Union
import asyncio
import uuid

from domcapture.config.logging import capture_context, get_logger
from domcapture.config.settings import Settings, get_settings
from domcapture.core.cloning.cloner import NodeCloner, UidGenerator, count_nodes
from domcapture.core.dom import (
    ClonedElement,
    ClonedText,
    StyleEngine,
    VisualNode,
    natural_size,
)
from domcapture.core.fonts.harvester import FontFaceHarvester
from domcapture.core.inlining.fetcher import (
    Fetcher,
    PolicyFetcher,
    ResourceCache,
    ResourceFetcher,
)
from domcapture.core.inlining.images import ImageInliner
from domcapture.core.inlining.inliner import ResourceInliner
from domcapture.core.rendering import exporter
from domcapture.core.rendering.decoders import ImageDecoder, PlaywrightImageDecoder
from domcapture.core.rendering.rasterizer import (
    RasterSurface,
    Rasterizer,
    make_svg_data_uri,
)
from domcapture.models.schemas import Blob, CaptureOptions, ExportFormat

logger = get_logger(__name__)


class CaptureError(Exception):
    """Exception raised when a capture request is invalid."""

    pass


class InvalidNodeError(CaptureError):
    """Exception raised when the capture root is not an element."""

    pass


async def gather_or_cancel(*aws: Awaitable[Any]) -> List[Any]:
    """Run ``aws`` concurrently; if one fails, cancel and reap the rest before raising."""
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


class CaptureSession:
    """State and stages of a single capture request."""

    def __init__(
        self,
        engine: StyleEngine,
        decoder: ImageDecoder,
        options: Optional[CaptureOptions] = None,
        fetcher: Optional[Fetcher] = None,
        base_url: Optional[str] = None,
        settings: Optional[Settings] = None,
    ):
        self.engine = engine
        self.settings = settings or get_settings()
        self.options = options or CaptureOptions()
        self.policy = self.options.fetch_policy(self.settings)
        self.capture_id = uuid.uuid4().hex[:12]
        self.logger: Any = logger.bind(component="capture_session")  # structlog.BoundLoggerBase

        self._own_fetcher: Optional[ResourceFetcher] = None
        if fetcher is None:
            self._own_fetcher = ResourceFetcher(self.policy.timeout)
            fetcher = self._own_fetcher
        self.fetcher = PolicyFetcher(fetcher, self.policy)

        self.uid = UidGenerator()
        self.cache = ResourceCache()
        self.inliner = ResourceInliner(self.fetcher, self.cache)
        self.cloner = NodeCloner(engine, self.uid, self.options.node_filter)
        self.harvester = FontFaceHarvester(engine, self.inliner, base_url)
        self.images = ImageInliner(self.inliner, self.policy, decoder, base_url)
        self.rasterizer = Rasterizer(decoder, self.settings)

    async def close(self) -> None:
        """Cancel fetches still in flight and release the session's HTTP resources."""
        await self.cache.cancel_pending()
        if self._own_fetcher is not None:
            await self._own_fetcher.close()

    async def __aenter__(self) -> "CaptureSession":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def size(self, node: VisualNode) -> Tuple[int, int]:
        """Requested output size, falling back to the node's natural size."""
        if self.options.width and self.options.height:
            return self.options.width, self.options.height
        width, height = natural_size(node, self.engine)
        return self.options.width or width, self.options.height or height

    async def prepare(self, node: VisualNode) -> ClonedElement:
        """
        Clone ``node`` and make the clone self-contained.

        Raises:
            InvalidNodeError: If ``node`` is not an element
            ImageDecodeError: If an inlined image fails to decode without a placeholder
        """
        if not node.is_element:
            raise InvalidNodeError(f"Cannot capture a {node.kind.value} node")

        clone = self.cloner.clone(node)
        if not isinstance(clone, ClonedElement):
            raise InvalidNodeError("Capture root did not clone to an element")
        self.logger.debug("Cloned node", tag=node.tag, nodes=count_nodes(clone))

        font_css, _ = await gather_or_cancel(
            self.harvester.resolve_all(), self.images.inline_all(clone)
        )

        font_style = ClonedElement(tag="style")
        font_style.append(ClonedText(font_css))
        clone.append(font_style)

        self._apply_options(clone)
        self.logger.debug("Prepared clone", cached_resources=len(self.cache))
        return clone

    def _apply_options(self, clone: ClonedElement) -> None:
        options = self.options
        if options.background_color:
            clone.style.set_property("background-color", options.background_color)
        if options.width:
            clone.style.set_property("width", f"{options.width}px")
        if options.height:
            clone.style.set_property("height", f"{options.height}px")
        for name, value in options.extra_style.items():
            clone.style.set_property(name, value)

    async def to_svg(self, node: VisualNode) -> str:
        """SVG foreignObject data URI of ``node``."""
        clone = await self.prepare(node)
        width, height = self.size(node)
        return make_svg_data_uri(clone, width, height)

    async def render(self, node: VisualNode) -> RasterSurface:
        """Rasterize ``node`` onto a surface of the requested size."""
        svg_uri = await self.to_svg(node)
        width, height = self.size(node)
        return await self.rasterizer.draw(svg_uri, width, height, self.options.background_color)


class DomToImage:
    """Public entry points; each call runs in a fresh CaptureSession."""

    def __init__(
        self,
        engine: StyleEngine,
        decoder: Optional[ImageDecoder] = None,
        fetcher: Optional[Fetcher] = None,
        base_url: Optional[str] = None,
        settings: Optional[Settings] = None,
    ):
        self.engine = engine
        self.settings = settings or get_settings()
        self.decoder = decoder or PlaywrightImageDecoder(settings=self.settings)
        self.fetcher = fetcher
        self.base_url = base_url
        self.logger: Any = logger.bind(component="dom_to_image")  # structlog.BoundLoggerBase
        self._own_decoder = decoder is None

    async def close(self) -> None:
        """Close the decoder if this instance created it."""
        if self._own_decoder and isinstance(self.decoder, PlaywrightImageDecoder):
            await self.decoder.close()

    def session(self, options: Optional[CaptureOptions] = None) -> CaptureSession:
        return CaptureSession(
            self.engine,
            self.decoder,
            options=options,
            fetcher=self.fetcher,
            base_url=self.base_url,
            settings=self.settings,
        )

    async def to_svg(self, node: VisualNode, options: Optional[CaptureOptions] = None) -> str:
        async with self.session(options) as session:
            with capture_context(session.capture_id, tag=node.tag):
                return await session.to_svg(node)

    async def render(
        self, node: VisualNode, options: Optional[CaptureOptions] = None
    ) -> RasterSurface:
        async with self.session(options) as session:
            with capture_context(session.capture_id, tag=node.tag):
                return await session.render(node)

    async def to_png(self, node: VisualNode, options: Optional[CaptureOptions] = None) -> str:
        return exporter.to_raster_data_uri(await self.render(node, options), "png")

    async def to_jpeg(self, node: VisualNode, options: Optional[CaptureOptions] = None) -> str:
        options = options or CaptureOptions()
        quality = options.quality if options.quality is not None else self.settings.default_jpeg_quality
        return exporter.to_raster_data_uri(await self.render(node, options), "jpeg", quality)

    async def to_blob(self, node: VisualNode, options: Optional[CaptureOptions] = None) -> Blob:
        return exporter.to_binary_blob(await self.render(node, options))

    async def to_pixel_data(
        self, node: VisualNode, options: Optional[CaptureOptions] = None
    ) -> bytes:
        return exporter.to_pixel_buffer(await self.render(node, options))

    async def capture(
        self,
        node: VisualNode,
        options: Optional[CaptureOptions] = None,
        export_format: Union[ExportFormat, str] = ExportFormat.PNG,
    ) -> Union[str, bytes, Blob]:
        """Capture ``node`` in ``export_format``."""
        export_format = ExportFormat(export_format)
        self.logger.info("Capturing node", tag=node.tag, format=export_format.value)

        if export_format == ExportFormat.SVG:
            return await self.to_svg(node, options)
        if export_format == ExportFormat.JPEG:
            return await self.to_jpeg(node, options)
        if export_format == ExportFormat.BLOB:
            return await self.to_blob(node, options)
        if export_format == ExportFormat.PIXELS:
            return await self.to_pixel_data(node, options)
        return await self.to_png(node, options)
