"""
Unit Tests for the Resource Inliner
===================================

url(...) discovery, mime types, regex-safe global rewrites, base URL
resolution and the per-capture cache.
"""

import asyncio
import base64

import pytest

from domcapture.core.inlining.fetcher import ResourceCache
from domcapture.core.inlining.inliner import (
    ResourceInliner,
    inline_all,
    read_urls,
    replace_url,
    should_process,
)
from domcapture.core.inlining.mime import data_as_url, is_data_url, mime_type, parse_extension
from domcapture.models.schemas import ResourceReference

from tests.utils.mocks import MockFetcher


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


class TestMimeTypes:
    """Test extension based mime types."""

    @pytest.mark.parametrize(
        "url,expected",
        [
            ("fonts/a.woff", "application/font-woff"),
            ("fonts/a.woff2", "application/font-woff"),
            ("a.ttf", "application/font-truetype"),
            ("a.eot", "application/vnd.ms-fontobject"),
            ("img/logo.PNG", "image/png"),
            ("photo.jpg", "image/jpeg"),
            ("photo.jpeg", "image/jpeg"),
            ("anim.gif", "image/gif"),
            ("scan.tiff", "image/tiff"),
            ("icon.svg", "image/svg+xml"),
            ("https://cdn.example/logo.png?v=3#top", "image/png"),
            ("archive.zip", ""),
            ("no-extension", ""),
        ],
    )
    def test_mime_type(self, url, expected):
        assert mime_type(url) == expected

    def test_parse_extension_ignores_dots_in_directories(self):
        assert parse_extension("https://example.com/v1.2/file") == ""

    def test_data_url_helpers(self):
        assert is_data_url("data:image/png;base64,AAAA")
        assert not is_data_url("https://example.com/a.png")
        assert data_as_url("AAAA", "image/png") == "data:image/png;base64,AAAA"


class TestUrlDiscovery:
    """Test url(...) discovery."""

    def test_should_process(self):
        assert should_process("background: url(a.png)")
        assert not should_process("color: red")

    def test_read_urls_handles_quoting(self):
        css = "a: url(a.png); b: url('b.png'); c: url(\"c.png\")"
        assert read_urls(css) == ["a.png", "b.png", "c.png"]

    def test_read_urls_skips_data_urls_and_duplicates(self):
        css = "url(a.png), url(data:image/png;base64,AAAA), url('a.png'), url(b.png)"
        assert read_urls(css) == ["a.png", "b.png"]


class TestReplaceUrl:
    """Test reference rewriting."""

    def test_replaces_every_occurrence(self):
        css = "url(a.png) url('a.png') url(b.png)"
        assert replace_url(css, "a.png", "data:x") == "url(data:x) url('data:x') url(b.png)"

    def test_special_regex_characters_are_literal(self):
        url = "img/a+b(1).png?x=[1]&y=$2"
        css = f"background: url('{url}'); other: url(img/aab1.png)"
        result = replace_url(css, url, "data:ok")
        assert result == "background: url('data:ok'); other: url(img/aab1.png)"

    def test_backslashes_in_replacement_survive(self):
        assert replace_url("url(a.png)", "a.png", "data:\\1") == "url(data:\\1)"


class TestResourceInliner:
    """Test inlining of CSS text."""

    @pytest.mark.asyncio
    async def test_text_without_references_is_unchanged(self):
        fetcher = MockFetcher()
        css = "color: red; font-size: 12px"
        assert await ResourceInliner(fetcher).inline_all(css) == css
        assert fetcher.call_count == 0

    @pytest.mark.asyncio
    async def test_data_only_text_is_unchanged(self):
        fetcher = MockFetcher()
        css = "background: url(data:image/png;base64,AAAA)"
        assert await ResourceInliner(fetcher).inline_all(css) == css
        assert fetcher.call_count == 0

    @pytest.mark.asyncio
    async def test_inlines_with_mime_type(self):
        fetcher = MockFetcher({"bg.png": b"png-bytes"})
        result = await ResourceInliner(fetcher).inline_all("background: url(bg.png) no-repeat")
        assert result == f"background: url(data:image/png;base64,{b64(b'png-bytes')}) no-repeat"

    @pytest.mark.asyncio
    async def test_inlining_is_idempotent(self):
        fetcher = MockFetcher({"a.png": b"a", "b.woff": b"b"})
        inliner = ResourceInliner(fetcher)
        once = await inliner.inline_all("x: url(a.png); y: url('b.woff')")
        twice = await ResourceInliner(fetcher).inline_all(once)
        assert twice == once
        assert fetcher.call_count == 2

    @pytest.mark.asyncio
    async def test_duplicates_fetched_once(self):
        fetcher = MockFetcher({"a.png": b"a"})
        result = await ResourceInliner(fetcher).inline_all("url(a.png) url(a.png) url('a.png')")
        assert fetcher.calls == ["a.png"]
        assert "a.png" not in result

    @pytest.mark.asyncio
    async def test_resolves_against_base_url(self):
        fetcher = MockFetcher({"https://cdn.example/fonts/f.woff2": b"font"})
        css = "src: url(../fonts/f.woff2)"
        result = await ResourceInliner(fetcher).inline_all(css, "https://cdn.example/css/site.css")
        assert fetcher.calls == ["https://cdn.example/fonts/f.woff2"]
        assert result == f"src: url(data:application/font-woff;base64,{b64(b'font')})"

    @pytest.mark.asyncio
    async def test_custom_fetcher_overrides_session_fetcher(self):
        default, custom = MockFetcher(), MockFetcher({"a.gif": b"gif"})
        result = await ResourceInliner(default).inline_all("url(a.gif)", fetcher=custom)
        assert default.call_count == 0
        assert custom.calls == ["a.gif"]
        assert result.startswith("url(data:image/gif;base64,")

    @pytest.mark.asyncio
    async def test_failed_fetch_yields_empty_payload(self):
        fetcher = MockFetcher()
        result = await ResourceInliner(fetcher).inline_all("url(missing.png)")
        assert result == "url(data:image/png;base64,)"

    @pytest.mark.asyncio
    async def test_references_fetched_concurrently(self):
        fetcher = MockFetcher({"slow.png": b"s", "fast.png": b"f"}, delays={"slow.png": 0.05})
        result = await ResourceInliner(fetcher).inline_all("url(slow.png) url(fast.png)")
        assert fetcher.calls == ["slow.png", "fast.png"]
        assert fetcher.completed == ["fast.png", "slow.png"]
        assert result.index(b64(b"s")) < result.index(b64(b"f"))

    @pytest.mark.asyncio
    async def test_one_off_helper(self):
        fetcher = MockFetcher({"https://x.example/a.png": b"a"})
        result = await inline_all("url(a.png)", fetcher, base_url="https://x.example/")
        assert "data:image/png;base64," in result

    @pytest.mark.asyncio
    async def test_resolve_reference(self):
        fetcher = MockFetcher({"https://x.example/img/a.jpg": b"jpg"})
        resource = await ResourceInliner(fetcher).resolve(
            ResourceReference(url="img/a.jpg", base_url="https://x.example/")
        )
        assert resource.mime_type == "image/jpeg"
        assert resource.data_uri == f"data:image/jpeg;base64,{b64(b'jpg')}"


class TestResourceCache:
    """Test the per-capture cache."""

    @pytest.mark.asyncio
    async def test_shared_between_inliners(self):
        fetcher = MockFetcher({"a.png": b"a"})
        cache = ResourceCache()
        await ResourceInliner(fetcher, cache).inline_all("url(a.png)")
        await ResourceInliner(fetcher, cache).inline_all("url('a.png')")
        assert fetcher.call_count == 1
        assert "a.png" in cache and len(cache) == 1

    @pytest.mark.asyncio
    async def test_concurrent_requests_share_one_fetch(self):
        fetcher = MockFetcher({"a.png": b"a"}, delays={"a.png": 0.01})
        cache = ResourceCache()
        results = await asyncio.gather(*(cache.get("a.png", fetcher) for _ in range(5)))
        assert fetcher.call_count == 1
        assert set(results) == {b64(b"a")}
