"""
Render Pipeline
===============

Drives one request end-to-end inside a fresh tab:

    acquire tab -> load sandbox -> inject payload -> evaluate render() ->
    validate markup -> [rasterize] -> release tab

Rasterization is an optional tail stage on the same tab: the SVG is reopened as
a data URL, its scroll extents are measured, and a PNG is captured through the
DevTools protocol with a clip of that size at the requested scale.
"""

from typing import Optional, Any, Awaitable, Tuple, TypeVar
import asyncio
import base64
import io
import time
from urllib.parse import quote

from playwright.async_api import Error as PlaywrightError
from PIL import Image  # type: ignore

from mermaid_service.config.logging import get_logger
from mermaid_service.config.settings import Settings, get_settings
from mermaid_service.core.rendering.browser_pool import BrowserPool, Tab
from mermaid_service.core.rendering.errors import RenderError
from mermaid_service.core.rendering.payload import Payloads
from mermaid_service.core.rendering.script_literal import (
    decode_render_value,
    escape_script_literal,
)
from mermaid_service.models.schemas import (
    PNG_MEDIA_TYPE,
    SVG_MEDIA_TYPE,
    RenderFailure,
    RenderFormat,
    RenderRequest,
    RenderResult,
)

logger = get_logger(__name__)

T = TypeVar("T")

MEASURE_SCRIPT = """() => ({
    width: document.documentElement.scrollWidth,
    height: document.documentElement.scrollHeight
})"""

PAYLOAD_PREFIX = "/* payload */\n"
PAYLOAD_SUFFIX = "\n;undefined"


def payload_expression(script: str) -> str:
    """
    Wrap the payload script for ``page.evaluate``.

    Evaluation runs the script through ``eval`` so syntax and runtime errors
    reject the call. The leading comment keeps Playwright from reading a script
    that starts with ``function`` as a function expression, and the completion
    value is pinned to ``undefined`` so Playwright never calls it.
    """
    return f"{PAYLOAD_PREFIX}{script}{PAYLOAD_SUFFIX}"


class RenderPipeline:
    """Renders diagram text to SVG, and optionally PNG, using the browser pool."""

    def __init__(
        self,
        browser_pool: BrowserPool,
        payloads: Payloads,
        settings: Optional[Settings] = None,
    ):
        self.browser_pool = browser_pool
        self.payloads = payloads
        self.settings = settings or get_settings()
        self.logger: Any = logger.bind(component="render_pipeline")  # structlog.BoundLoggerBase

    async def render(self, request: RenderRequest) -> RenderResult:
        """
        Render a diagram.

        Args:
            request: Diagram text, output format and raster scale

        Returns:
            RenderResult with SVG markup or PNG bytes

        Raises:
            RenderError: If any step fails or the deadline expires
        """
        start = time.monotonic()
        timeout = self.settings.render_timeout if self.settings.render_timeout > 0 else None

        self.logger.info(
            "Render requested",
            text_length=len(request.text),
            format=request.format.value,
            scale=request.scale,
        )

        try:
            result = await asyncio.wait_for(self._run(request), timeout=timeout)
        except asyncio.TimeoutError as e:
            self.logger.error("Render timed out", timeout=timeout)
            raise RenderError(RenderFailure.TIMEOUT, "render timed out") from e
        except RenderError as e:
            self.logger.warning("Render failed", failure=e.failure.value, error=e.message)
            raise

        self.logger.info(
            "Render completed",
            format=request.format.value,
            size=len(result.content),
            duration_ms=round((time.monotonic() - start) * 1000, 2),
        )
        return result

    async def _run(self, request: RenderRequest) -> RenderResult:
        async with self.browser_pool.tab() as tab:
            svg = await self._render_svg(tab, request.text)

            if request.format != RenderFormat.PNG:
                return RenderResult(content=svg, media_type=SVG_MEDIA_TYPE)

            png_bytes = await self._rasterize(tab, svg, request.scale)

        return self._png_result(png_bytes)

    async def _step(self, failure: RenderFailure, message: str, operation: Awaitable[T]) -> T:
        """Await one browser operation, converting engine errors into a RenderError."""
        try:
            return await operation
        except PlaywrightError as e:
            self.logger.debug("Pipeline step failed", step=message, error=str(e))
            raise RenderError(failure, message) from e

    async def _render_svg(self, tab: Tab, text: str) -> str:
        page = tab.page

        await self._step(
            RenderFailure.NAVIGATION, "navigation failed", page.goto(self.payloads.sandbox_url)
        )
        await self._step(
            RenderFailure.EVALUATION,
            "payload evaluation failed",
            page.evaluate(payload_expression(self.payloads.script)),
        )
        value = await self._step(
            RenderFailure.EVALUATION,
            "evaluation failed",
            page.evaluate(f"render('{escape_script_literal(text)}')"),
        )

        svg = decode_render_value(value)
        if not svg:
            raise RenderError(RenderFailure.RENDER_EMPTY, "render failed")
        return svg

    async def _rasterize(self, tab: Tab, svg: str, scale: float) -> bytes:
        page = tab.page

        await self._step(
            RenderFailure.NAVIGATION,
            "navigation for capture failed",
            page.goto("data:image/svg+xml," + quote(svg, safe="")),
        )
        await self._step(
            RenderFailure.NAVIGATION,
            "wait for capture navigation failed",
            page.wait_for_load_state("load"),
        )
        metrics = await self._step(
            RenderFailure.CAPTURE, "viewport measurement failed", page.evaluate(MEASURE_SCRIPT)
        )
        width, height = self._parse_extents(metrics)

        clip = {"x": 0, "y": 0, "width": width, "height": height, "scale": scale}
        self.logger.debug("Capturing screenshot", **clip)

        session = await self._step(
            RenderFailure.CAPTURE,
            "screenshot capture failed",
            tab.context.new_cdp_session(page),
        )
        capture = await self._step(
            RenderFailure.CAPTURE,
            "screenshot capture failed",
            session.send(
                "Page.captureScreenshot",
                {"format": "png", "clip": clip, "captureBeyondViewport": True},
            ),
        )

        try:
            return base64.b64decode(capture["data"])
        except (KeyError, TypeError, ValueError) as e:
            raise RenderError(RenderFailure.CAPTURE, "screenshot capture failed") from e

    def _parse_extents(self, metrics: Any) -> Tuple[int, int]:
        try:
            width = max(0, round(float(metrics["width"])))
            height = max(0, round(float(metrics["height"])))
        except (KeyError, TypeError, ValueError) as e:
            raise RenderError(RenderFailure.CAPTURE, "viewport measurement failed") from e
        return width, height

    def _png_result(self, png_bytes: bytes) -> RenderResult:
        width: Optional[int] = None
        height: Optional[int] = None

        try:
            with Image.open(io.BytesIO(png_bytes)) as image:
                width, height = image.size
        except (OSError, ValueError) as e:
            self.logger.warning("Could not read captured PNG header", error=str(e))

        if self.settings.optimize_png:
            png_bytes = self._optimize_png(png_bytes)

        return RenderResult(content=png_bytes, media_type=PNG_MEDIA_TYPE, width=width, height=height)

    def _optimize_png(self, png_bytes: bytes) -> bytes:
        """Re-encode the PNG with Pillow's optimizer, keeping the original on failure."""
        try:
            with Image.open(io.BytesIO(png_bytes)) as image:
                output = io.BytesIO()
                image.save(output, format="PNG", optimize=True, compress_level=9)
        except (OSError, ValueError) as e:
            self.logger.warning("PNG optimization failed, using original", error=str(e))
            return png_bytes

        optimized = output.getvalue()
        self.logger.debug(
            "PNG optimization completed",
            original_size=len(png_bytes),
            optimized_size=len(optimized),
        )
        return optimized if len(optimized) < len(png_bytes) else png_bytes
