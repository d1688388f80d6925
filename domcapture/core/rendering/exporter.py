"""
Exporter
========

Conversions from a rendered raster surface to the caller's representation.
"""

from typing import Optional
import base64
import io

from PIL import Image  # type: ignore

from domcapture.core.rendering.rasterizer import RasterSurface
from domcapture.models.schemas import Blob

RASTER_FORMATS = {"png": ("PNG", "image/png"), "jpeg": ("JPEG", "image/jpeg"), "jpg": ("JPEG", "image/jpeg")}


def to_vector_data_uri(surface: RasterSurface) -> str:
    """The SVG data URI ``surface`` was drawn from."""
    return surface.source_uri


def to_raster_data_uri(
    surface: RasterSurface, format: str = "png", quality: Optional[float] = None
) -> str:
    """
    Encode ``surface`` as a PNG or JPEG data URI.

    Args:
        surface: Rendered surface
        format: "png" or "jpeg"
        quality: JPEG quality between 0 and 1, defaults to 1

    Raises:
        ValueError: If ``format`` is not supported
    """
    key = format.lower().replace("image/", "")
    if key not in RASTER_FORMATS:
        raise ValueError(f"Unsupported raster format: {format}")
    pil_format, content_type = RASTER_FORMATS[key]

    output = io.BytesIO()
    if pil_format == "JPEG":
        # transparent pixels become black, as on an opaque canvas
        flattened = Image.new("RGB", surface.image.size, (0, 0, 0))
        flattened.paste(surface.image, mask=surface.image.getchannel("A"))
        jpeg_quality = max(1, min(100, int(round((1.0 if quality is None else quality) * 100))))
        flattened.save(output, format="JPEG", quality=jpeg_quality)
    else:
        surface.image.save(output, format="PNG")

    return f"data:{content_type};base64," + base64.b64encode(output.getvalue()).decode("ascii")


def to_pixel_buffer(surface: RasterSurface) -> bytes:
    """RGBA bytes of the whole surface, row-major, top to bottom."""
    return surface.get_image_data(0, 0, surface.width, surface.height)


def to_binary_blob(surface: RasterSurface) -> Blob:
    """PNG bytes of ``surface``."""
    native = getattr(surface, "to_blob", None)
    if callable(native):
        return Blob(data=native(), mime_type="image/png")

    data_uri = to_raster_data_uri(surface, "png")
    return Blob(data=base64.b64decode(data_uri.split(",", 1)[1]), mime_type="image/png")
