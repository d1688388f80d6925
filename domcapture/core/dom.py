"""
Visual Tree Model
=================

Read-only view of the host's rendered tree, style declarations, and the
owned, mutable clone tree the capture pipeline works on.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from PIL import Image  # type: ignore

XHTML_NAMESPACE = "http://www.w3.org/1999/xhtml"
SVG_NAMESPACE = "http://www.w3.org/2000/svg"


class NodeKind(str, Enum):
    """Kinds of visual tree nodes the pipeline understands."""

    ELEMENT = "element"
    TEXT = "text"
    CANVAS = "canvas"


@dataclass(frozen=True, eq=False)
class VisualNode:
    """Handle to one node of the host's live visual tree."""

    kind: NodeKind
    tag: str = ""
    namespace: str = XHTML_NAMESPACE
    attributes: Mapping[str, str] = field(default_factory=dict)
    inline_style: str = ""
    text: str = ""
    value: Optional[str] = None
    pixels: Optional[Image.Image] = None
    children: Tuple["VisualNode", ...] = ()
    scroll_width: float = 0.0
    scroll_height: float = 0.0
    node_id: Optional[int] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "attributes", MappingProxyType(dict(self.attributes)))
        object.__setattr__(self, "children", tuple(self.children))

    @property
    def is_element(self) -> bool:
        return self.kind in (NodeKind.ELEMENT, NodeKind.CANVAS)


def _split_declarations(text: str) -> List[str]:
    """Split a declaration block on ';' outside quotes and parentheses."""
    parts: List[str] = []
    current: List[str] = []
    depth = 0
    quote: Optional[str] = None

    for char in text:
        if quote:
            if char == quote:
                quote = None
        elif char in ("'", '"'):
            quote = char
        elif char == "(":
            depth += 1
        elif char == ")" and depth:
            depth -= 1
        elif char == ";" and depth == 0:
            parts.append("".join(current))
            current = []
            continue
        current.append(char)

    parts.append("".join(current))
    return [part.strip() for part in parts if part.strip()]


class StyleDeclaration:
    """Ordered CSS declarations: property -> (value, priority)."""

    def __init__(self, properties: Optional[Mapping[str, Tuple[str, str]]] = None):
        self._properties: Dict[str, Tuple[str, str]] = {}
        for name, (value, priority) in (properties or {}).items():
            self.set_property(name, value, priority)

    @classmethod
    def parse(cls, text: str) -> "StyleDeclaration":
        """Parse an inline style attribute or a rule body."""
        declaration = cls()
        for item in _split_declarations(text):
            name, sep, value = item.partition(":")
            if not sep:
                continue
            value = value.strip()
            priority = ""
            if value.lower().endswith("!important"):
                value = value[: -len("!important")].rstrip()
                priority = "important"
            declaration.set_property(name, value, priority)
        return declaration

    def get_property_value(self, name: str) -> str:
        return self._properties.get(name.strip().lower(), ("", ""))[0]

    def get_property_priority(self, name: str) -> str:
        return self._properties.get(name.strip().lower(), ("", ""))[1]

    def set_property(self, name: str, value: str, priority: str = "") -> None:
        name = name.strip().lower()
        if not name:
            return
        if value is None or str(value) == "":
            self.remove_property(name)
            return
        self._properties[name] = (str(value), priority or "")

    def remove_property(self, name: str) -> str:
        value, _ = self._properties.pop(name.strip().lower(), ("", ""))
        return value

    def copy(self) -> "StyleDeclaration":
        return StyleDeclaration(self._properties)

    def items(self) -> Iterator[Tuple[str, str, str]]:
        for name, (value, priority) in self._properties.items():
            yield name, value, priority

    @property
    def css_text(self) -> str:
        return " ".join(
            f"{name}: {value}{' !important' if priority else ''};"
            for name, value, priority in self.items()
        )

    def __iter__(self) -> Iterator[str]:
        return iter(self._properties)

    def __len__(self) -> int:
        return len(self._properties)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.strip().lower() in self._properties

    def __repr__(self) -> str:
        return f"StyleDeclaration({self.css_text!r})"


@dataclass
class ClonedText:
    """Text node of a cloned tree."""

    text: str


@dataclass
class ClonedElement:
    """Element of a cloned tree, owned by one capture session."""

    tag: str
    namespace: str = XHTML_NAMESPACE
    attributes: Dict[str, str] = field(default_factory=dict)
    style: StyleDeclaration = field(default_factory=StyleDeclaration)
    children: List["ClonedNode"] = field(default_factory=list)

    def append(self, child: "ClonedNode") -> None:
        self.children.append(child)

    def add_class(self, name: str) -> None:
        classes = self.attributes.get("class", "").split()
        if name not in classes:
            classes.append(name)
        self.attributes["class"] = " ".join(classes)

    def iter(self) -> Iterator["ClonedElement"]:
        """Depth-first iteration over this element and its element descendants."""
        yield self
        for child in self.children:
            if isinstance(child, ClonedElement):
                yield from child.iter()


ClonedNode = Union[ClonedElement, ClonedText]


class RuleType(str, Enum):
    """Stylesheet rule kinds the harvester distinguishes."""

    STYLE = "style"
    FONT_FACE = "font-face"
    OTHER = "other"


@dataclass(frozen=True)
class CSSRule:
    """A single stylesheet rule."""

    rule_type: RuleType
    css_text: str
    style: StyleDeclaration = field(default_factory=StyleDeclaration)


@dataclass(frozen=True)
class StyleSheet:
    """A stylesheet attached to the host document.

    ``rules`` is None when the host refused to expose the rule list, which
    is what happens for cross-origin sheets served without CORS headers.
    """

    href: Optional[str] = None
    rules: Optional[Tuple[CSSRule, ...]] = None

    def readable_rules(self) -> Optional[Tuple[CSSRule, ...]]:
        return self.rules


class StyleEngine(ABC):
    """Read-only access to the host's style and layout engine."""

    @abstractmethod
    def computed_style(
        self, node: VisualNode, pseudo: Optional[str] = None
    ) -> Optional[StyleDeclaration]:
        """Return the computed style of ``node`` (or of its pseudo-element).

        Returns None when the node is disconnected or otherwise has no
        computed style.
        """

    @abstractmethod
    def style_sheets(self) -> Sequence[StyleSheet]:
        """Return every stylesheet attached to the document."""


def _px(style: Optional[StyleDeclaration], name: str) -> float:
    if style is None:
        return 0.0
    value = style.get_property_value(name).replace("px", "").strip()
    try:
        return float(value)
    except ValueError:
        return 0.0


def natural_size(node: VisualNode, engine: StyleEngine) -> Tuple[int, int]:
    """Scroll box size of ``node`` including its borders."""
    style = engine.computed_style(node)
    width = node.scroll_width + _px(style, "border-left-width") + _px(style, "border-right-width")
    height = node.scroll_height + _px(style, "border-top-width") + _px(style, "border-bottom-width")
    return int(round(width)), int(round(height))
