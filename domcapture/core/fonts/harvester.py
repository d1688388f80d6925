"""
Font Face Harvester
===================

Collects @font-face rules from the document's stylesheets and inlines the
font files they reference.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, List, Optional

from domcapture.config.logging import get_logger
from domcapture.core.dom import CSSRule, RuleType, StyleEngine
from domcapture.core.inlining.inliner import ResourceInliner, read_urls

logger = get_logger(__name__)


@dataclass(frozen=True)
class WebFont:
    """A font-face rule together with the sheet URL its references resolve against."""

    rule: CSSRule
    base_url: Optional[str] = None

    @property
    def src(self) -> str:
        return self.rule.style.get_property_value("src")


class FontFaceHarvester:
    """Produces a CSS block with every external web font inlined."""

    def __init__(
        self, engine: StyleEngine, inliner: ResourceInliner, base_url: Optional[str] = None
    ):
        self.engine = engine
        self.inliner = inliner
        self.base_url = base_url
        self.logger: Any = logger.bind(component="font_harvester")  # structlog.BoundLoggerBase

    def read_all(self) -> List[WebFont]:
        """Font-face rules from every readable sheet that reference external files."""
        fonts: List[WebFont] = []

        for sheet in self.engine.style_sheets():
            rules = sheet.readable_rules()
            if rules is None:
                self.logger.warning("Error while reading CSS rules", href=sheet.href)
                continue

            for rule in rules:
                if rule.rule_type != RuleType.FONT_FACE:
                    continue
                font = WebFont(rule=rule, base_url=sheet.href or self.base_url)
                if read_urls(font.src):
                    fonts.append(font)

        return fonts

    async def resolve(self, font: WebFont) -> str:
        return await self.inliner.inline_all(font.rule.css_text, font.base_url)

    async def resolve_all(self) -> str:
        """Newline joined CSS text of every inlined font-face rule."""
        fonts = self.read_all()
        resolved = await asyncio.gather(*(self.resolve(font) for font in fonts))
        self.logger.debug("Harvested web fonts", count=len(fonts))
        return "\n".join(resolved)
