"""
Configuration Management
=======================

Environment-based configuration using Pydantic Settings.

Components:
- settings: Capture defaults, fetch and browser configuration
- logging: Structured logging configuration
"""
