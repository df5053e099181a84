"""
Core Rendering Logic
====================

Browser resource management and the diagram render pipeline.
"""
