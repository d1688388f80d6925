"""
Test Suite
==========

Test suite matching the domcapture/ package structure.

Test Categories:
- unit: Unit tests for individual pipeline stages and the host adapter
"""
