"""
Resource Inliner
================

Rewrites url(...) references in CSS text into data URIs.
"""

import asyncio
import re
from typing import Any, List, Optional

from domcapture.config.logging import get_logger
from domcapture.core.inlining.fetcher import Fetcher, ResourceCache
from domcapture.core.inlining.mime import is_data_url, mime_type
from domcapture.models.schemas import InlinedResource, ResourceReference

logger = get_logger(__name__)

URL_PATTERN = re.compile(r"""url\(['"]?([^'"]+?)['"]?\)""")


def should_process(css_text: str) -> bool:
    """Whether ``css_text`` contains any url(...) reference."""
    return URL_PATTERN.search(css_text) is not None


def read_urls(css_text: str) -> List[str]:
    """Unique non-data URLs referenced by ``css_text``, in order of appearance."""
    urls: List[str] = []
    for match in URL_PATTERN.finditer(css_text):
        url = match.group(1)
        if not is_data_url(url) and url not in urls:
            urls.append(url)
    return urls


def url_pattern_for(url: str) -> "re.Pattern[str]":
    """Pattern matching every url(...) occurrence of exactly ``url``."""
    return re.compile(r"""(url\(['"]?)(""" + re.escape(url) + r""")(['"]?\))""")


def replace_url(css_text: str, url: str, data_uri: str) -> str:
    """Replace every reference to ``url`` in ``css_text`` with ``data_uri``."""
    return url_pattern_for(url).sub(lambda m: m.group(1) + data_uri + m.group(3), css_text)


class ResourceInliner:
    """Inlines the resources of CSS text, sharing one cache per capture."""

    def __init__(self, fetcher: Fetcher, cache: Optional[ResourceCache] = None):
        self.fetcher = fetcher
        self.cache = cache if cache is not None else ResourceCache()
        self.logger: Any = logger.bind(component="resource_inliner")  # structlog.BoundLoggerBase

    async def resolve(
        self, reference: ResourceReference, fetcher: Optional[Fetcher] = None
    ) -> InlinedResource:
        """Fetch ``reference`` and return it in self-contained form."""
        payload = await self.cache.get(reference.resolved, fetcher or self.fetcher)
        return InlinedResource(mime_type=mime_type(reference.url), payload=payload)

    async def inline_all(
        self, css_text: str, base_url: Optional[str] = None, fetcher: Optional[Fetcher] = None
    ) -> str:
        """
        Inline every external url(...) reference of ``css_text``.

        Args:
            css_text: CSS text such as a property value or a whole rule
            base_url: URL relative references are resolved against
            fetcher: Fetcher overriding the session's one

        Returns:
            ``css_text`` with every external reference replaced by a data URI
        """
        if not should_process(css_text):
            return css_text

        urls = read_urls(css_text)
        if not urls:
            return css_text

        resources = await asyncio.gather(
            *(self.resolve(ResourceReference(url=url, base_url=base_url), fetcher) for url in urls)
        )

        for url, resource in zip(urls, resources):
            css_text = replace_url(css_text, url, resource.data_uri)

        self.logger.debug("Inlined css resources", count=len(urls), base_url=base_url)
        return css_text


async def inline_all(
    css_text: str, fetcher: Fetcher, base_url: Optional[str] = None
) -> str:
    """Inline ``css_text`` with a one-off inliner."""
    return await ResourceInliner(fetcher).inline_all(css_text, base_url)
