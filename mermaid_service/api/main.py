"""
FastAPI Application
==================

HTTP adapter around the render pipeline: ``POST /render`` returns SVG or PNG,
and every pipeline failure becomes a 400 with a ``{"message": ...}`` body.
"""

from contextlib import asynccontextmanager
import uuid
from typing import AsyncGenerator, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse, Response
import uvicorn

from mermaid_service import __version__
from mermaid_service.config.logging import get_logger, setup_logging
from mermaid_service.config.settings import get_settings
from mermaid_service.core.rendering.browser_pool import (
    close_browser_pool,
    initialize_browser_pool,
)
from mermaid_service.core.rendering.errors import RenderError
from mermaid_service.core.rendering.payload import get_payloads
from mermaid_service.core.rendering.pipeline import RenderPipeline
from mermaid_service.models.schemas import ErrorResponse, HealthStatus, RenderRequest

logger = get_logger(__name__)


def create_app(pipeline: Optional[RenderPipeline] = None) -> FastAPI:
    """
    Application factory.

    Args:
        pipeline: Pre-built pipeline to serve. When omitted, the lifespan loads
            the payloads and launches the browser on startup and closes it on
            shutdown.

    Returns:
        FastAPI application instance
    """
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        if pipeline is not None:
            app.state.pipeline = pipeline
            yield
            return

        logger.info("Starting render service")
        payloads = get_payloads()
        browser_pool = await initialize_browser_pool(settings)
        app.state.pipeline = RenderPipeline(browser_pool, payloads, settings)

        try:
            yield
        finally:
            logger.info("Shutting down render service")
            try:
                await close_browser_pool()
                logger.info("Browser pool closed")
            except Exception as e:
                logger.error("Error closing browser pool", error=str(e))

    app = FastAPI(
        title=settings.app_name,
        description="Render Mermaid diagrams to SVG or PNG",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    @app.middleware("http")
    async def add_request_id(request: Request, call_next):  # type: ignore
        """Tag every request with an ID and log its outcome."""
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id

        logger.info(
            "HTTP request",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            request_id=request_id,
        )
        return response

    @app.exception_handler(RenderError)
    async def render_error_handler(request: Request, exc: RenderError) -> JSONResponse:
        """Map pipeline failures to 400 responses."""
        logger.error(
            "Render error",
            failure=exc.failure.value,
            error_message=exc.message,
            request_id=getattr(request.state, "request_id", None),
        )
        return JSONResponse(
            status_code=400, content=ErrorResponse(message=exc.message).model_dump()
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Report malformed request bodies with the same error shape."""
        errors = exc.errors()
        if errors:
            location = ".".join(str(part) for part in errors[0].get("loc", ()) if part != "body")
            message = f"invalid request: {location + ': ' if location else ''}{errors[0].get('msg')}"
        else:
            message = "invalid request"

        logger.warning(
            "Invalid render request",
            error_message=message,
            request_id=getattr(request.state, "request_id", None),
        )
        return JSONResponse(status_code=400, content=ErrorResponse(message=message).model_dump())

    def get_pipeline(request: Request) -> RenderPipeline:
        return request.app.state.pipeline

    @app.post("/render", tags=["Rendering"])
    async def render(
        body: RenderRequest, pipeline: RenderPipeline = Depends(get_pipeline)
    ) -> Response:
        """Render a diagram to SVG or PNG."""
        result = await pipeline.render(body)
        return Response(content=result.content, media_type=result.media_type)

    @app.get("/health", response_model=HealthStatus, tags=["Health"])
    async def health_check(pipeline: RenderPipeline = Depends(get_pipeline)) -> HealthStatus:
        """Report whether the shared browser is connected."""
        browser_pool = pipeline.browser_pool
        connected = browser_pool.is_healthy()
        return HealthStatus(
            status="healthy" if connected else "unhealthy",
            browser_connected=connected,
            browser_restarts=browser_pool.restart_count,
            version=__version__,
        )

    return app


def run_server(host: Optional[str] = None, port: Optional[int] = None) -> None:
    """Run the HTTP service until SIGINT/SIGTERM."""
    settings = get_settings()
    setup_logging()

    host = host or settings.host
    port = port or settings.port
    logger.info("Starting server", host=host, port=port)

    uvicorn.run(
        create_app(),
        host=host,
        port=port,
        log_level=settings.log_level.lower(),
        log_config=None,
    )
