"""
Mermaid Render Service
======================

Renders Mermaid diagram text into SVG, and optionally PNG, by driving a
headless Chromium instance through Playwright.

This package provides:
- A shared, self-healing browser pool handing out isolated tabs
- The render pipeline (sandbox page, payload injection, evaluation, capture)
- A FastAPI endpoint for HTTP access
- A one-shot command-line mode for single and batch rendering
"""

__version__ = "1.0.0"
__author__ = "Mermaid Render Service Team"
