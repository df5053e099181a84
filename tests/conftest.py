"""
Test Configuration
==================

Pytest configuration with fixtures for unit and integration tests.
The browser is never launched: pools are wired to the scripted mocks in
``tests.utils.mocks``.
"""

import pytest
from pathlib import Path
from typing import Generator
from unittest.mock import patch

from pydantic_settings import SettingsConfigDict

from mermaid_service.config.settings import Settings
from mermaid_service.core.rendering.browser_pool import BrowserPool
from mermaid_service.core.rendering.payload import Payloads
from mermaid_service.core.rendering.pipeline import RenderPipeline

from tests.utils.mocks import MockBrowser, MockPlaywright


# Test settings override
class TestSettings(Settings):
    """Test-specific settings."""

    environment: str = "testing"
    debug: bool = True
    log_level: str = "DEBUG"
    render_timeout: float = 5.0
    playwright_timeout: int = 2000

    model_config = SettingsConfigDict(env_file=".env.test")


@pytest.fixture(scope="session")
def test_settings() -> TestSettings:
    """Test settings fixture."""
    return TestSettings()


@pytest.fixture(scope="session", autouse=True)
def override_settings(test_settings: TestSettings) -> Generator[TestSettings, None, None]:
    """Override application settings for testing."""
    with patch("mermaid_service.config.settings.settings", test_settings):
        yield test_settings


@pytest.fixture
def payloads() -> Payloads:
    """Minimal in-memory payloads."""
    return Payloads(
        sandbox_html='<html><body><div id="container"></div></body></html>',
        script="async function render(text) { return JSON.stringify(null); }",
    )


@pytest.fixture
def payload_files(tmp_path: Path) -> Path:
    """Payload files on disk, laid out like the packaged payload directory."""
    (tmp_path / "index.html").write_text('<div id="container"></div>', encoding="utf-8")
    (tmp_path / "mermaid.min.js").write_text("var mermaid = {};", encoding="utf-8")
    (tmp_path / "render.js").write_text("async function render(text) {}", encoding="utf-8")
    return tmp_path


@pytest.fixture
def mock_browser() -> MockBrowser:
    """Healthy mock browser."""
    return MockBrowser()


@pytest.fixture
def browser_pool(test_settings: TestSettings, mock_browser: MockBrowser) -> BrowserPool:
    """Browser pool wired to a healthy mock browser and an empty launcher."""
    pool = BrowserPool(test_settings)
    pool.browser = mock_browser  # type: ignore[assignment]
    pool._playwright = MockPlaywright()  # type: ignore[assignment]
    return pool


@pytest.fixture
def pipeline(
    browser_pool: BrowserPool, payloads: Payloads, test_settings: TestSettings
) -> RenderPipeline:
    """Render pipeline over the mock browser pool."""
    return RenderPipeline(browser_pool, payloads, test_settings)


def pytest_collection_modifyitems(config, items):
    """Add markers based on file paths."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "e2e" in str(item.fspath):
            item.add_marker(pytest.mark.e2e)
