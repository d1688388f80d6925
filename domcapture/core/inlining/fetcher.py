"""
Resource Fetcher
================

aiohttp based fetching of external resources as base64 payloads, the
per-capture fetch policy (cache busting, placeholder fallback) applied
around any fetcher, and the per-capture cache.
"""

import asyncio
import base64
import time
from typing import Any, Awaitable, Callable, Dict, Optional

import aiohttp

from domcapture.config.logging import get_logger
from domcapture.models.schemas import FetchPolicy

logger = get_logger(__name__)

# url -> base64 payload; may raise or return "" when the resource is unavailable
Fetcher = Callable[[str], Awaitable[str]]


class ResourceFetchError(Exception):
    """Exception raised when a resource cannot be fetched."""

    pass


def cache_busted(url: str) -> str:
    """Append a millisecond timestamp query parameter to ``url``."""
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{int(time.time() * 1000)}"


class ResourceFetcher:
    """Fetches resources over HTTP and returns them base64 encoded."""

    def __init__(self, timeout: float = 30.0, session: Optional[aiohttp.ClientSession] = None):
        self.timeout = timeout
        self.logger: Any = logger.bind(component="resource_fetcher")  # structlog.BoundLoggerBase
        self._session = session
        self._own_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))
            self._own_session = True
        return self._session

    async def close(self) -> None:
        """Close the HTTP session if this fetcher created it."""
        if self._own_session and self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __call__(self, url: str) -> str:
        """
        Fetch ``url``.

        Raises:
            ResourceFetchError: On a non-2xx status, a timeout or a client error
        """
        session = await self._get_session()
        try:
            async with session.get(url, timeout=aiohttp.ClientTimeout(total=self.timeout)) as response:
                if not 200 <= response.status < 300:
                    raise ResourceFetchError(f"cannot fetch resource: {url}, status: {response.status}")
                body = await response.read()
        except asyncio.TimeoutError:
            raise ResourceFetchError(
                f"timeout of {int(self.timeout * 1000)}ms occurred while fetching resource: {url}"
            )
        except aiohttp.ClientError as e:
            raise ResourceFetchError(f"cannot fetch resource: {url}, error: {e}")

        self.logger.debug("Fetched resource", url=url, size=len(body))
        return base64.b64encode(body).decode("ascii")


class PolicyFetcher:
    """Applies one capture's FetchPolicy around any fetcher.

    Failures never propagate: the placeholder payload, or an empty string,
    is returned instead so one missing resource cannot abort a capture.
    """

    def __init__(self, fetcher: Fetcher, policy: FetchPolicy):
        self.fetcher = fetcher
        self.policy = policy
        self.logger: Any = logger.bind(component="policy_fetcher")  # structlog.BoundLoggerBase

    async def __call__(self, url: str) -> str:
        target = cache_busted(url) if self.policy.cache_bust else url
        try:
            payload = await self.fetcher(target)
        except Exception as e:
            return self._fail(url, str(e))

        if not payload:
            return self._fail(url, "empty response")
        return payload

    def _fail(self, url: str, reason: str) -> str:
        placeholder = self.policy.placeholder_payload
        if placeholder is not None:
            self.logger.warning("Using image placeholder", url=url, reason=reason)
            return placeholder
        self.logger.error("Resource fetch failed", url=url, error=reason)
        return ""


class ResourceCache:
    """Payloads per resolved URL for the lifetime of one capture."""

    def __init__(self) -> None:
        self._tasks: Dict[str, "asyncio.Future[str]"] = {}

    async def get(self, url: str, fetcher: Fetcher) -> str:
        """Return the payload for ``url``, fetching it at most once."""
        task = self._tasks.get(url)
        if task is None:
            task = asyncio.ensure_future(fetcher(url))
            self._tasks[url] = task
        return await task

    async def cancel_pending(self) -> None:
        """Cancel fetches still in flight and wait for them to finish."""
        pending = [task for task in self._tasks.values() if not task.done()]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

    def __contains__(self, url: object) -> bool:
        return url in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)
