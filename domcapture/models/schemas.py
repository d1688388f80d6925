"""
Pydantic Models and Schemas
===========================

Capture options, the per-capture fetch policy, and resource value types.
"""

from typing import Any, Callable, Dict, Optional
from enum import Enum
from urllib.parse import urljoin

from PIL import ImageColor  # type: ignore
from pydantic import BaseModel, ConfigDict, Field, AliasChoices, field_validator

from domcapture.config.settings import Settings


class ExportFormat(str, Enum):
    """Output representations of a capture."""

    SVG = "svg"
    PNG = "png"
    JPEG = "jpeg"
    BLOB = "blob"
    PIXELS = "pixels"


class CaptureOptions(BaseModel):
    """Options for a single capture. Immutable once created."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, arbitrary_types_allowed=True)

    width: Optional[int] = Field(None, gt=0, description="Output width in pixels")
    height: Optional[int] = Field(None, gt=0, description="Output height in pixels")
    background_color: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("background_color", "backgroundColor", "bgcolor"),
        description="Color painted behind the captured node",
    )
    extra_style: Dict[str, str] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("extra_style", "extraStyle", "style"),
        description="Style properties applied to the cloned root",
    )
    image_placeholder: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("image_placeholder", "imagePlaceholder"),
        description="Data URI used for resources that cannot be fetched",
    )
    cache_bust: Optional[bool] = Field(
        None,
        validation_alias=AliasChoices("cache_bust", "cacheBust"),
        description="Append a timestamp to fetched URLs",
    )
    node_filter: Optional[Callable[[Any], bool]] = Field(
        None,
        validation_alias=AliasChoices("node_filter", "nodeFilter", "filter"),
        exclude=True,
        description="Predicate deciding which descendants are captured",
    )
    quality: Optional[float] = Field(None, ge=0.0, le=1.0, description="JPEG quality (0..1)")

    @field_validator("background_color")
    @classmethod
    def validate_background_color(cls, v: Optional[str]) -> Optional[str]:
        """Background colors must be understood by the raster backend."""
        if v is not None:
            ImageColor.getrgb(v)
        return v

    @field_validator("image_placeholder")
    @classmethod
    def validate_placeholder(cls, v: Optional[str]) -> Optional[str]:
        """Placeholders must already be self-contained."""
        if v is not None and not v.startswith("data:"):
            raise ValueError("Image placeholder must be a data URI")
        return v

    def fetch_policy(self, settings: Settings) -> "FetchPolicy":
        """Resolve the fetch policy for one capture, falling back to settings."""
        return FetchPolicy(
            image_placeholder=(
                self.image_placeholder
                if self.image_placeholder is not None
                else settings.default_image_placeholder
            ),
            cache_bust=(
                self.cache_bust if self.cache_bust is not None else settings.default_cache_bust
            ),
            timeout=settings.fetch_timeout,
        )


class FetchPolicy(BaseModel):
    """Resource fetching behaviour shared by every stage of one capture."""

    model_config = ConfigDict(frozen=True)

    image_placeholder: Optional[str] = None
    cache_bust: bool = False
    timeout: float = Field(default=30.0, gt=0)

    @property
    def placeholder_payload(self) -> Optional[str]:
        """Base64 payload of the placeholder, if one is configured."""
        if not self.image_placeholder:
            return None
        _, _, payload = self.image_placeholder.partition(",")
        return payload or None


class ResourceReference(BaseModel):
    """A url(...) or src reference, with the context needed to resolve it."""

    model_config = ConfigDict(frozen=True)

    url: str
    base_url: Optional[str] = None

    @property
    def resolved(self) -> str:
        return urljoin(self.base_url, self.url) if self.base_url else self.url


class InlinedResource(BaseModel):
    """A fetched resource in self-contained form."""

    model_config = ConfigDict(frozen=True)

    mime_type: str = ""
    payload: str = ""

    @property
    def data_uri(self) -> str:
        return f"data:{self.mime_type};base64,{self.payload}"


class Blob(BaseModel):
    """Binary image data with its mime type."""

    model_config = ConfigDict(frozen=True)

    data: bytes
    mime_type: str = "image/png"

    @property
    def size(self) -> int:
        return len(self.data)
