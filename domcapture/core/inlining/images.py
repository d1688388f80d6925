"""
Image Inliner
=============

Walks a cloned tree inlining url(...) references in element styles and the
sources of image elements.
"""

from typing import Any, Optional

from domcapture.config.logging import get_logger
from domcapture.core.dom import ClonedElement, ClonedNode
from domcapture.core.inlining.inliner import ResourceInliner, should_process
from domcapture.core.inlining.mime import is_data_url
from domcapture.core.rendering.decoders import ImageDecoder, ImageDecodeError
from domcapture.models.schemas import FetchPolicy, ResourceReference

logger = get_logger(__name__)

# Responsive image attributes naming alternatives to the inlined src
CANDIDATE_ATTRIBUTES = ("srcset", "sizes")


def drop_candidates(element: ClonedElement) -> None:
    for name in CANDIDATE_ATTRIBUTES:
        element.attributes.pop(name, None)


class ImageInliner:
    """Inlines the resources referenced by a cloned tree."""

    def __init__(
        self,
        inliner: ResourceInliner,
        policy: FetchPolicy,
        decoder: Optional[ImageDecoder] = None,
        base_url: Optional[str] = None,
    ):
        self.inliner = inliner
        self.policy = policy
        self.decoder = decoder
        self.base_url = base_url
        self.logger: Any = logger.bind(component="image_inliner")  # structlog.BoundLoggerBase

    async def inline_all(self, node: ClonedNode) -> None:
        """
        Inline ``node`` and its descendants in place.

        Siblings are handled one at a time, in document order.

        Raises:
            ImageDecodeError: If an inlined image fails to decode and no
                placeholder is configured
        """
        if not isinstance(node, ClonedElement):
            return

        await self.inline_style(node)

        if node.tag == "source":
            drop_candidates(node)
        elif node.tag == "img":
            await self.inline_image(node)
            return

        for child in list(node.children):
            await self.inline_all(child)

    async def inline_style(self, element: ClonedElement) -> None:
        """Inline every style property that references a resource."""
        for name, value, priority in list(element.style.items()):
            if should_process(value):
                inlined = await self.inliner.inline_all(value, self.base_url)
                element.style.set_property(name, inlined, priority)

    async def inline_image(self, element: ClonedElement) -> None:
        """Replace the element's ``src`` with a data URI and wait until it decodes."""
        drop_candidates(element)
        src = element.attributes.get("src", "")
        if not src or is_data_url(src):
            return

        resource = await self.inliner.resolve(ResourceReference(url=src, base_url=self.base_url))
        element.attributes["src"] = resource.data_uri

        if self.decoder is None:
            return

        try:
            await self.decoder.decode(resource.data_uri)
        except ImageDecodeError as e:
            if not self.policy.image_placeholder:
                self.logger.error("Inlined image failed to decode", src=src, error=str(e))
                raise
            self.logger.warning("Inlined image failed to decode, using placeholder", src=src)
            element.attributes["src"] = self.policy.image_placeholder

