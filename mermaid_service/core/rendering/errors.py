"""
Rendering Errors
================

Exceptions raised by the browser pool and the render pipeline.
"""

from mermaid_service.models.schemas import RenderFailure


class RenderError(Exception):
    """A render request failed at a specific pipeline step."""

    def __init__(self, failure: RenderFailure, message: str):
        super().__init__(message)
        self.failure = failure
        self.message = message


class PayloadError(Exception):
    """Exception raised when the sandbox page or payload script cannot be loaded."""

    pass
