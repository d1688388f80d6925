"""
Node Cloner
===========

Deep clones a visual tree node into a detached tree carrying the node's
computed style, generated pseudo-element content and live form values.
"""

import base64
import io
import random
import string
from typing import Any, Callable, List, Optional

from PIL import Image  # type: ignore

from domcapture.config.logging import get_logger
from domcapture.core.dom import (
    SVG_NAMESPACE,
    ClonedElement,
    ClonedNode,
    ClonedText,
    NodeKind,
    StyleDeclaration,
    StyleEngine,
    VisualNode,
)

logger = get_logger(__name__)

PSEUDO_ELEMENTS = (":before", ":after")

_BASE36 = string.digits + string.ascii_lowercase

NodeFilter = Callable[[VisualNode], bool]


class UidGenerator:
    """Marker class names unique within one capture session."""

    def __init__(self, rng: Optional[random.Random] = None):
        self._counter = 0
        self._rng = rng or random.Random()

    def __call__(self) -> str:
        suffix = "".join(self._rng.choice(_BASE36) for _ in range(4))
        uid = f"u{suffix}{self._counter}"
        self._counter += 1
        return uid


def canvas_to_data_uri(pixels: Optional[Image.Image]) -> str:
    """Encode a canvas snapshot as a PNG data URI."""
    if pixels is None:
        return "data:image/png;base64,"
    output = io.BytesIO()
    pixels.save(output, format="PNG")
    return "data:image/png;base64," + base64.b64encode(output.getvalue()).decode("ascii")


def pseudo_rule_text(marker: str, pseudo: str, style: StyleDeclaration) -> str:
    """Scoped rule reproducing a pseudo-element on the marked clone."""
    declarations = [
        f"{name}: {value}{' !important' if priority else ''}"
        for name, value, priority in style.items()
    ]
    return f".{marker}{pseudo}{{{'; '.join(declarations)};}}"


class NodeCloner:
    """Clones visual nodes for one capture session."""

    def __init__(
        self,
        engine: StyleEngine,
        uid: Optional[UidGenerator] = None,
        node_filter: Optional[NodeFilter] = None,
    ):
        self.engine = engine
        self.uid = uid or UidGenerator()
        self.node_filter = node_filter
        self.logger: Any = logger.bind(component="cloner")  # structlog.BoundLoggerBase

    def clone(self, node: VisualNode, root: bool = True) -> Optional[ClonedNode]:
        """
        Clone ``node`` and its descendants.

        Args:
            node: Node to clone
            root: Whether ``node`` is the capture root, which is never filtered

        Returns:
            The cloned subtree, or None when the filter rejects ``node``
        """
        if not root and self.node_filter is not None and not self.node_filter(node):
            return None

        if node.kind == NodeKind.TEXT:
            return ClonedText(node.text)

        clone = self._shallow_clone(node)
        for child in node.children:
            cloned_child = self.clone(child, root=False)
            if cloned_child is not None:
                clone.append(cloned_child)

        return self._process_clone(node, clone)

    def _shallow_clone(self, node: VisualNode) -> ClonedElement:
        if node.kind == NodeKind.CANVAS:
            return ClonedElement(tag="img", attributes={"src": canvas_to_data_uri(node.pixels)})
        return ClonedElement(
            tag=node.tag,
            namespace=node.namespace,
            attributes=dict(node.attributes),
            style=StyleDeclaration.parse(node.inline_style),
        )

    def _process_clone(self, node: VisualNode, clone: ClonedElement) -> ClonedElement:
        computed = self.engine.computed_style(node)
        if computed is None:
            self.logger.debug("No computed style, cloning as placeholder", tag=node.tag)
            return ClonedElement(tag=clone.tag, namespace=clone.namespace)

        clone.style = computed.copy()
        self._clone_pseudo_elements(node, clone)
        self._copy_user_input(node, clone)
        self._fix_svg(clone)
        return clone

    def _clone_pseudo_elements(self, node: VisualNode, clone: ClonedElement) -> None:
        for pseudo in PSEUDO_ELEMENTS:
            style = self.engine.computed_style(node, pseudo)
            if style is None:
                continue
            content = style.get_property_value("content")
            if content in ("", "none"):
                continue

            marker = self.uid()
            clone.add_class(marker)
            style_element = ClonedElement(tag="style")
            style_element.append(ClonedText(pseudo_rule_text(marker, pseudo, style)))
            clone.append(style_element)

    def _copy_user_input(self, node: VisualNode, clone: ClonedElement) -> None:
        if node.value is None:
            return
        if node.tag == "textarea":
            clone.children = [ClonedText(node.value)]
        elif node.tag == "input":
            clone.attributes["value"] = node.value

    def _fix_svg(self, clone: ClonedElement) -> None:
        if clone.namespace != SVG_NAMESPACE:
            return
        clone.attributes["xmlns"] = SVG_NAMESPACE
        if clone.tag == "rect":
            for name in ("width", "height"):
                value = clone.attributes.get(name)
                if value:
                    clone.style.set_property(name, value)


def clone_node(
    node: VisualNode, engine: StyleEngine, node_filter: Optional[NodeFilter] = None
) -> Optional[ClonedNode]:
    """Clone ``node`` with a fresh marker class generator."""
    return NodeCloner(engine, node_filter=node_filter).clone(node)


def count_nodes(node: ClonedNode) -> int:
    """Number of nodes in a cloned subtree."""
    if isinstance(node, ClonedText):
        return 1
    children: List[ClonedNode] = node.children
    return 1 + sum(count_nodes(child) for child in children)
