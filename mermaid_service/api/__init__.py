"""
HTTP API
========

FastAPI application exposing the render pipeline.
"""
