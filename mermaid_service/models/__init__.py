"""
Data Models
===========

Pydantic models for render requests, results and API error bodies.
"""
