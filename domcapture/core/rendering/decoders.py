"""
Image Decoders
==============

Turn image URIs into drawable Pillow images. Raster data URIs decode in
process with Pillow; the SVG foreignObject wrapper needs a real rendering
engine and decodes through a Playwright browser pool.
"""

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, List, Optional, Tuple
from urllib.parse import unquote_to_bytes
import asyncio
import base64
import binascii
import io

from playwright.async_api import async_playwright, Browser
from PIL import Image, UnidentifiedImageError  # type: ignore

from domcapture.config.logging import get_logger
from domcapture.config.settings import Settings, get_settings

logger = get_logger(__name__)


class ImageDecodeError(Exception):
    """Exception raised when an image cannot be decoded."""

    pass


def parse_data_uri(uri: str) -> Tuple[str, bytes]:
    """
    Split a data URI into its mime type and raw bytes.

    Raises:
        ImageDecodeError: If ``uri`` is not a well-formed data URI
    """
    if not uri.startswith("data:"):
        raise ImageDecodeError(f"Not a data URI: {uri[:64]}")

    header, sep, data = uri[len("data:") :].partition(",")
    if not sep:
        raise ImageDecodeError("Malformed data URI: missing ','")

    params = header.split(";")
    content_type = params[0]
    try:
        if "base64" in params[1:]:
            return content_type, base64.b64decode(data, validate=False)
        return content_type, unquote_to_bytes(data)
    except (binascii.Error, ValueError) as e:
        raise ImageDecodeError(f"Malformed data URI payload: {e}")


class ImageDecoder(ABC):
    """Abstract base class for image decoders."""

    @abstractmethod
    async def decode(self, uri: str) -> Image.Image:
        """Decode ``uri`` into an RGBA image, raising ImageDecodeError on failure."""
        pass


class PillowImageDecoder(ImageDecoder):
    """Decodes raster data URIs in process."""

    async def decode(self, uri: str) -> Image.Image:
        content_type, data = parse_data_uri(uri)
        if content_type == "image/svg+xml":
            raise ImageDecodeError("SVG images need a browser based decoder")
        if not data:
            raise ImageDecodeError("Empty image data")

        try:
            image = Image.open(io.BytesIO(data))
            image.load()
        except (UnidentifiedImageError, OSError) as e:
            raise ImageDecodeError(f"Cannot decode image: {e}")

        return image.convert("RGBA")


class BrowserPool:
    """Chromium instances handed out one decode at a time."""

    def __init__(self, pool_size: int = 1, settings: Optional[Settings] = None):
        self.pool_size = pool_size
        self.settings = settings or get_settings()
        self.logger: Any = logger.bind(component="browser_pool")  # structlog.BoundLoggerBase
        self._idle: "asyncio.Queue[Browser]" = asyncio.Queue()
        self._browsers: List[Browser] = []
        self._start_lock = asyncio.Lock()
        self._playwright: Any = None

    @property
    def initialized(self) -> bool:
        return bool(self._browsers)

    async def initialize(self) -> None:
        """
        Launch the pool's browsers; concurrent callers share one launch.

        Raises:
            ImageDecodeError: If Playwright or a browser fails to start
        """
        async with self._start_lock:
            if self.initialized:
                return
            try:
                self._playwright = await async_playwright().start()
                while len(self._browsers) < self.pool_size:
                    browser = await self._playwright.chromium.launch(
                        headless=self.settings.playwright_headless,
                        args=["--no-sandbox", "--disable-dev-shm-usage"],
                    )
                    self._browsers.append(browser)
                    self._idle.put_nowait(browser)
            except Exception as e:
                self.logger.error("Browser launch failed", error=str(e))
                await self.close()
                raise ImageDecodeError(f"Browser pool initialization failed: {e}")

        self.logger.info("Browser pool ready", browsers=len(self._browsers))

    async def close(self) -> None:
        """Close every launched browser and stop Playwright."""
        browsers, self._browsers = self._browsers, []
        self._idle = asyncio.Queue()
        for browser in browsers:
            await browser.close()

        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
        self.logger.info("Browser pool closed", browsers=len(browsers))

    @asynccontextmanager
    async def acquire(self) -> AsyncGenerator[Browser, None]:
        """Borrow an idle browser, launching the pool on first use."""
        if not self.initialized:
            await self.initialize()
        idle = self._idle
        browser = await idle.get()
        try:
            yield browser
        finally:
            if browser in self._browsers:
                idle.put_nowait(browser)


_DECODE_SCRIPT = """
async (uri) => {
    const img = document.getElementById("decoded");
    img.src = uri;
    await img.decode();
    return [img.naturalWidth, img.naturalHeight];
}
"""

_DECODE_PAGE = (
    "<!DOCTYPE html><html><head><style>"
    "html,body{margin:0;padding:0;background:transparent}"
    "img{display:block}"
    "</style></head><body><img id='decoded' alt=''></body></html>"
)


class PlaywrightImageDecoder(ImageDecoder):
    """Decodes any image URI, including SVG foreignObject wrappers, in Chromium."""

    def __init__(self, browser_pool: Optional[BrowserPool] = None, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.logger: Any = logger.bind(decoder="playwright")  # structlog.BoundLoggerBase
        self.browser_pool = browser_pool
        self._own_pool = browser_pool is None

        if self._own_pool:
            self.browser_pool = BrowserPool(self.settings.browser_pool_size, self.settings)

    async def close(self) -> None:
        """Close the decoder's own browser pool."""
        if self._own_pool and self.browser_pool and self.browser_pool.initialized:
            await self.browser_pool.close()

    async def decode(self, uri: str) -> Image.Image:
        if self.browser_pool is None:
            raise ImageDecodeError("Browser pool not available")
        async with self.browser_pool.acquire() as browser:
            context = await browser.new_context(device_scale_factor=1)
            try:
                page = await context.new_page()
                page.set_default_timeout(self.settings.playwright_timeout)
                await page.set_content(_DECODE_PAGE, wait_until="domcontentloaded")

                try:
                    width, height = await page.evaluate(_DECODE_SCRIPT, uri)
                except Exception as e:
                    raise ImageDecodeError(f"Image decode failed: {e}")

                if not width or not height:
                    raise ImageDecodeError("Decoded image has no size")

                await page.set_viewport_size({"width": int(width), "height": int(height)})
                png_bytes = await page.locator("#decoded").screenshot(
                    type="png", omit_background=True
                )
            finally:
                await context.close()

        self.logger.debug("Decoded image in browser", width=width, height=height)
        return Image.open(io.BytesIO(png_bytes)).convert("RGBA")
