"""
Inlining Module
===============

Rewrites external resource references into self-contained data URIs.

Components:
- mime: Extension to mime type table and data URI helpers
- fetcher: aiohttp resource fetcher and per-capture cache
- inliner: url(...) rewriting for CSS text
- images: Walks cloned trees inlining styles and image sources
"""
