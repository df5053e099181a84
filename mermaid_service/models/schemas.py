"""
Pydantic Models and Schemas
===========================

Request, result and error models shared by the render pipeline, the HTTP API
and the command-line interface.
"""

from typing import Optional, Union
from enum import Enum

from pydantic import BaseModel, Field

SVG_MEDIA_TYPE = "image/svg+xml"
PNG_MEDIA_TYPE = "image/png"


class RenderFormat(str, Enum):
    """Output formats supported by the pipeline."""

    SVG = "svg"
    PNG = "png"


class RenderFailure(str, Enum):
    """Pipeline failure kinds, used for diagnostics."""

    RESOURCE = "resource"
    NAVIGATION = "navigation"
    EVALUATION = "evaluation"
    RENDER_EMPTY = "render_empty"
    CAPTURE = "capture"
    TIMEOUT = "timeout"


class RenderRequest(BaseModel):
    """One diagram to render."""

    text: str = Field(..., description="Mermaid diagram source")
    format: RenderFormat = Field(default=RenderFormat.SVG, description="Output format")
    scale: float = Field(default=1.0, gt=0, description="Raster scale factor (png only)")


class RenderResult(BaseModel):
    """Rendered output with its media type."""

    content: Union[str, bytes] = Field(..., description="SVG markup or PNG bytes")
    media_type: str = Field(..., description="Content type of the output")
    width: Optional[int] = Field(default=None, description="Bitmap width in pixels")
    height: Optional[int] = Field(default=None, description="Bitmap height in pixels")


class ErrorResponse(BaseModel):
    """Error body returned by the HTTP API."""

    message: str


class HealthStatus(BaseModel):
    """Health check response."""

    status: str
    browser_connected: bool
    browser_restarts: int
    version: str
