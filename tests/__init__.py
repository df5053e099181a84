"""
Test Suite for the Mermaid Render Service
"""
