"""
Playwright Host
===============

Snapshots an element of a live Playwright page into VisualNodes plus a
style engine holding the browser's computed styles and stylesheets, then
runs the capture pipeline on the snapshot.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union
import base64
import binascii
import io

from playwright.async_api import ElementHandle, Page
from PIL import Image, UnidentifiedImageError  # type: ignore

from domcapture.config.logging import get_logger
from domcapture.config.settings import Settings, get_settings
from domcapture.core.dom import (
    XHTML_NAMESPACE,
    CSSRule,
    NodeKind,
    RuleType,
    StyleDeclaration,
    StyleEngine,
    StyleSheet,
    VisualNode,
)
from domcapture.core.inlining.fetcher import Fetcher
from domcapture.core.pipeline import CaptureError, DomToImage
from domcapture.core.rendering.decoders import BrowserPool, PlaywrightImageDecoder
from domcapture.models.schemas import Blob, CaptureOptions, ExportFormat

logger = get_logger(__name__)

SNAPSHOT_SCRIPT = """
(root) => {
    let nextId = 0;
    const styles = {};
    const read = (style) => Array.from(style).map(
        (name) => [name, style.getPropertyValue(name), style.getPropertyPriority(name)]
    );
    const walk = (node) => {
        if (node.nodeType === Node.TEXT_NODE) {
            return {id: nextId++, kind: "text", text: node.data};
        }
        if (node.nodeType !== Node.ELEMENT_NODE) {
            return null;
        }
        const id = nextId++;
        const isCanvas = node instanceof HTMLCanvasElement;
        styles[id] = {
            "": node.isConnected ? read(window.getComputedStyle(node)) : null,
            ":before": read(window.getComputedStyle(node, ":before")),
            ":after": read(window.getComputedStyle(node, ":after")),
        };
        const entry = {
            id,
            kind: isCanvas ? "canvas" : "element",
            tag: node.localName,
            namespace: node.namespaceURI,
            attributes: Array.from(node.attributes).map((a) => [a.name, a.value]),
            inlineStyle: node.getAttribute("style") || "",
            scrollWidth: node.scrollWidth || 0,
            scrollHeight: node.scrollHeight || 0,
            children: [],
        };
        if (isCanvas) {
            try { entry.pixels = node.toDataURL("image/png"); } catch (e) { entry.pixels = null; }
        }
        if (node instanceof HTMLInputElement || node instanceof HTMLTextAreaElement) {
            entry.value = node.value;
        }
        if (node instanceof HTMLImageElement && node.currentSrc) {
            entry.attributes = entry.attributes.map(
                ([name, value]) => name === "src" ? [name, node.currentSrc] : [name, value]
            );
        }
        for (const child of node.childNodes) {
            const cloned = walk(child);
            if (cloned) entry.children.push(cloned);
        }
        return entry;
    };
    const ruleType = (rule) => {
        if (rule.type === CSSRule.FONT_FACE_RULE) return "font-face";
        if (rule.type === CSSRule.STYLE_RULE) return "style";
        return "other";
    };
    const sheets = Array.from(document.styleSheets).map((sheet) => {
        let rules = null;
        try {
            rules = Array.from(sheet.cssRules).map((rule) => ({
                type: ruleType(rule),
                cssText: rule.cssText,
                style: rule.style ? read(rule.style) : [],
            }));
        } catch (e) {
            rules = null;
        }
        return {href: sheet.href, rules};
    });
    return {tree: walk(root), styles, sheets, baseUrl: document.baseURI};
}
"""

StyleEntries = Optional[Sequence[Sequence[str]]]


def declaration_from_entries(entries: StyleEntries) -> Optional[StyleDeclaration]:
    if entries is None:
        return None
    declaration = StyleDeclaration()
    for name, value, priority in entries:
        declaration.set_property(name, value, priority)
    return declaration


def decode_canvas_pixels(data_uri: Optional[str]) -> Optional[Image.Image]:
    """Pillow image from a canvas toDataURL() result."""
    if not data_uri or "," not in data_uri:
        return None
    try:
        data = base64.b64decode(data_uri.split(",", 1)[1])
        image = Image.open(io.BytesIO(data))
        image.load()
    except (binascii.Error, UnidentifiedImageError, OSError) as e:
        logger.warning("Unreadable canvas snapshot", error=str(e))
        return None
    return image.convert("RGBA")


class SnapshotStyleEngine(StyleEngine):
    """Style engine answering from a page snapshot."""

    def __init__(
        self,
        styles: Dict[int, Dict[str, Optional[StyleDeclaration]]],
        sheets: Sequence[StyleSheet],
    ):
        self._styles = styles
        self._sheets = list(sheets)

    def computed_style(
        self, node: VisualNode, pseudo: Optional[str] = None
    ) -> Optional[StyleDeclaration]:
        if node.node_id is None:
            return None
        return self._styles.get(node.node_id, {}).get(pseudo or "")

    def style_sheets(self) -> Sequence[StyleSheet]:
        return self._sheets


@dataclass(frozen=True)
class PageSnapshot:
    """A captured element with everything the pipeline needs to read."""

    root: VisualNode
    engine: SnapshotStyleEngine
    base_url: Optional[str] = None


def _build_node(entry: Dict[str, Any]) -> VisualNode:
    kind = NodeKind(entry.get("kind", "element"))
    if kind == NodeKind.TEXT:
        return VisualNode(kind=kind, text=entry.get("text", ""), node_id=entry.get("id"))

    return VisualNode(
        kind=kind,
        tag=entry.get("tag", ""),
        namespace=entry.get("namespace") or XHTML_NAMESPACE,
        attributes={name: value for name, value in entry.get("attributes", [])},
        inline_style=entry.get("inlineStyle", ""),
        value=entry.get("value"),
        pixels=decode_canvas_pixels(entry.get("pixels")) if kind == NodeKind.CANVAS else None,
        children=tuple(_build_node(child) for child in entry.get("children", [])),
        scroll_width=float(entry.get("scrollWidth", 0)),
        scroll_height=float(entry.get("scrollHeight", 0)),
        node_id=entry.get("id"),
    )


def _build_sheet(entry: Dict[str, Any]) -> StyleSheet:
    rules: Optional[Tuple[CSSRule, ...]] = None
    if entry.get("rules") is not None:
        rules = tuple(
            CSSRule(
                rule_type=RuleType(rule.get("type", "other")),
                css_text=rule.get("cssText", ""),
                style=declaration_from_entries(rule.get("style", [])) or StyleDeclaration(),
            )
            for rule in entry["rules"]
        )
    return StyleSheet(href=entry.get("href"), rules=rules)


def build_snapshot(payload: Dict[str, Any]) -> PageSnapshot:
    """
    Convert the result of SNAPSHOT_SCRIPT into a PageSnapshot.

    Raises:
        CaptureError: If the payload holds no element
    """
    tree = payload.get("tree")
    if not tree:
        raise CaptureError("Snapshot holds no element")

    styles: Dict[int, Dict[str, Optional[StyleDeclaration]]] = {
        int(node_id): {pseudo: declaration_from_entries(entries) for pseudo, entries in by_pseudo.items()}
        for node_id, by_pseudo in payload.get("styles", {}).items()
    }
    sheets: List[StyleSheet] = [_build_sheet(sheet) for sheet in payload.get("sheets", [])]

    return PageSnapshot(
        root=_build_node(tree),
        engine=SnapshotStyleEngine(styles, sheets),
        base_url=payload.get("baseUrl"),
    )


async def snapshot_element(element: ElementHandle) -> PageSnapshot:
    """Read the live subtree under ``element``."""
    payload = await element.evaluate(SNAPSHOT_SCRIPT)
    return build_snapshot(payload)


async def capture_element(
    page: Page,
    selector: str,
    options: Optional[CaptureOptions] = None,
    export_format: Union[ExportFormat, str] = ExportFormat.PNG,
    browser_pool: Optional[BrowserPool] = None,
    fetcher: Optional[Fetcher] = None,
    settings: Optional[Settings] = None,
) -> Union[str, bytes, Blob]:
    """
    Capture the element matching ``selector`` on ``page``.

    Args:
        page: Page holding the rendered document
        selector: Selector of the element to capture
        options: Capture options
        export_format: Output representation
        browser_pool: Pool used to decode the serialized element
        fetcher: Custom resource fetcher
        settings: Settings override

    Returns:
        Data URI, raw RGBA bytes or Blob depending on ``export_format``

    Raises:
        CaptureError: If no element matches ``selector``
    """
    settings = settings or get_settings()
    element = await page.query_selector(selector)
    if element is None:
        raise CaptureError(f"No element matches selector: {selector}")

    snapshot = await snapshot_element(element)
    logger.info("Snapshotted element", selector=selector, base_url=snapshot.base_url)

    decoder = PlaywrightImageDecoder(browser_pool, settings)
    capturer = DomToImage(
        snapshot.engine,
        decoder=decoder,
        fetcher=fetcher,
        base_url=snapshot.base_url,
        settings=settings,
    )
    try:
        return await capturer.capture(snapshot.root, options, export_format)
    finally:
        await decoder.close()
