"""
Test Utilities
==============

Shared mocks for unit and integration tests.
"""
