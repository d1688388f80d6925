"""
Core Capture Logic
==================

Capture pipeline modules.

Modules:
- dom: Host visual tree, style declarations and the cloned tree
- cloning: Deep cloning with computed and generated content
- inlining: Resource fetching and data URI inlining
- fonts: Web font harvesting from stylesheets
- rendering: SVG serialization, rasterization and export
- pipeline: Capture sessions and the public facade
"""
