"""
Host Adapters
=============

Bindings between live rendering environments and the capture pipeline.
"""
