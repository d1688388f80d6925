"""
domcapture
==========

Capture a rendered document subtree as a self-contained image.

This package provides:
- Deep cloning of a live visual tree with computed and pseudo-element styles
- Inlining of images, background images and web fonts as data URIs
- SVG foreignObject serialization and rasterization onto pixel surfaces
- Export to SVG, PNG, JPEG, raw RGBA pixels and binary blobs
- A Playwright host adapter for capturing elements of a live page
"""

__version__ = "1.0.0"
__author__ = "domcapture team"
