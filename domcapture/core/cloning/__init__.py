"""
Cloning Module
==============

Detached copies of visual tree nodes with their computed styles.
"""
