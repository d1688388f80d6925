"""
Fonts Module
============

Collects @font-face rules and inlines their font files.
"""
