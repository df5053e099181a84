"""
Browser Pool
============

Owns the single shared Chromium instance and hands out isolated tabs.
Tab creation and browser replacement are serialized behind one lock; a tab is
used without holding it. When the browser refuses to open a tab it is relaunched
once and the tab creation retried.
"""

from typing import Optional, Any, AsyncGenerator, Set
import asyncio
from contextlib import asynccontextmanager

from playwright.async_api import (
    async_playwright,
    Browser,
    BrowserContext,
    Page,
    Playwright,
    Error as PlaywrightError,
)

from mermaid_service.config.logging import get_logger
from mermaid_service.config.settings import Settings, get_settings
from mermaid_service.core.rendering.errors import RenderError
from mermaid_service.models.schemas import RenderFailure

logger = get_logger(__name__)


class Tab:
    """An isolated page inside its own browser context, used for one request."""

    def __init__(self, context: BrowserContext, page: Page):
        self.context = context
        self.page = page

    async def close(self) -> None:
        """Close the context, and with it the page."""
        await self.context.close()


class BrowserPool:
    """Single self-healing browser behind an exclusive lock."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.logger: Any = logger.bind(component="browser_pool")  # structlog.BoundLoggerBase
        self.browser: Optional[Browser] = None
        self.restart_count = 0
        self._playwright: Optional[Playwright] = None
        self._lock = asyncio.Lock()
        self._pending_closes: Set["asyncio.Task[None]"] = set()

    async def initialize(self) -> None:
        """Start Playwright and launch the first browser."""
        try:
            self._playwright = await async_playwright().start()
            self.browser = await self._launch()
        except Exception as e:
            self.logger.error("Failed to initialize browser pool", error=str(e))
            raise RenderError(
                RenderFailure.RESOURCE, f"Browser pool initialization failed: {e}"
            ) from e

        self.logger.info("Browser pool initialized", headless=self.settings.playwright_headless)

    async def close(self) -> None:
        """Close the browser and stop Playwright."""
        async with self._lock:
            if self.browser is not None:
                await self._discard(self.browser)
                self.browser = None

            if self._playwright:
                await self._playwright.stop()
                self._playwright = None

        self.logger.info("Browser pool closed")

    def is_healthy(self) -> bool:
        """Whether the current browser is still connected."""
        return self.browser is not None and self.browser.is_connected()

    async def _launch(self) -> Browser:
        if self._playwright is None:
            self._playwright = await async_playwright().start()

        return await self._playwright.chromium.launch(
            headless=self.settings.playwright_headless,
            args=self.settings.browser_args,
        )

    async def _discard(self, browser: Browser) -> None:
        # The old browser is usually already dead; closing it only reclaims the process
        try:
            await browser.close()
        except PlaywrightError as e:
            self.logger.warning("Error closing browser", error=str(e))

    async def _open_tab(self) -> Tab:
        if self.browser is None:
            raise PlaywrightError("Browser is not running")

        creation = asyncio.ensure_future(self.browser.new_context())
        try:
            context = await asyncio.shield(creation)
        except asyncio.CancelledError:
            # The browser may still finish creating the context; close it when it does
            creation.add_done_callback(self._close_late_context)
            raise

        try:
            page = await context.new_page()
        except BaseException:
            await context.close()
            raise

        page.set_default_timeout(self.settings.playwright_timeout)
        return Tab(context, page)

    def _close_late_context(self, creation: "asyncio.Future[BrowserContext]") -> None:
        if creation.cancelled() or creation.exception() is not None:
            return

        task = asyncio.ensure_future(self._close_context(creation.result()))
        self._pending_closes.add(task)
        task.add_done_callback(self._pending_closes.discard)

    async def _close_context(self, context: BrowserContext) -> None:
        try:
            await context.close()
        except PlaywrightError as e:
            self.logger.warning("Error closing abandoned context", error=str(e))
        else:
            self.logger.debug("Closed context created after cancellation")

    async def acquire_context(self) -> Tab:
        """
        Open a new tab, relaunching the browser once if it refuses.

        Returns:
            A fresh tab owned by the caller, who must close it

        Raises:
            RenderError: If the browser cannot be relaunched, or still
                refuses to open a tab after relaunching
        """
        async with self._lock:
            try:
                return await self._open_tab()
            except PlaywrightError as e:
                self.logger.warning("Tab creation failed, relaunching browser", error=str(e))

            old_browser = self.browser
            try:
                self.browser = await self._launch()
            except Exception as e:
                self.logger.error("Browser relaunch failed", error=str(e))
                raise RenderError(RenderFailure.RESOURCE, "browser restart failed") from e
            finally:
                if old_browser is not None and old_browser is not self.browser:
                    await self._discard(old_browser)

            self.restart_count += 1
            self.logger.info("Browser relaunched", restart_count=self.restart_count)

            try:
                return await self._open_tab()
            except PlaywrightError as e:
                self.logger.error("Tab creation failed after relaunch", error=str(e))
                raise RenderError(
                    RenderFailure.RESOURCE, "tab creation failed after restart"
                ) from e

    @asynccontextmanager
    async def tab(self) -> AsyncGenerator[Tab, None]:
        """Acquire a tab and close it on every exit path."""
        tab = await self.acquire_context()
        try:
            yield tab
        finally:
            try:
                await tab.close()
            except PlaywrightError as e:
                self.logger.warning("Error closing tab", error=str(e))


# Global browser pool instance
_global_browser_pool: Optional[BrowserPool] = None


async def initialize_browser_pool(settings: Optional[Settings] = None) -> BrowserPool:
    """Initialize the global browser pool."""
    global _global_browser_pool
    if _global_browser_pool is None:
        pool = BrowserPool(settings)
        await pool.initialize()
        _global_browser_pool = pool
    return _global_browser_pool


async def close_browser_pool() -> None:
    """Close the global browser pool."""
    global _global_browser_pool
    if _global_browser_pool:
        await _global_browser_pool.close()
        _global_browser_pool = None


def get_browser_pool() -> Optional[BrowserPool]:
    """Get the global browser pool, if initialized."""
    return _global_browser_pool
