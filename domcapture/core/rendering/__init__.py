"""
Rendering Module
===============

SVG serialization, image decoding, rasterization and export.

Components:
- decoders: Image decoding through Pillow or a Playwright browser
- rasterizer: SVG foreignObject wrapping and pixel surfaces
- exporter: Conversions from pixel surfaces to output formats
"""
