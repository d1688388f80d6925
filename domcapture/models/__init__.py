"""
Data Models
===========

Pydantic models for capture options, fetch policy and inlined resources.
"""
