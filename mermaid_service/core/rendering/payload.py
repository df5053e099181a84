"""
Payloads
========

Static documents injected into every tab: the sandbox page and the rendering
payload script (Mermaid runtime plus the ``render()`` bootstrap). Both are read
once and shared read-only for the lifetime of the process.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from mermaid_service.config.logging import get_logger
from mermaid_service.config.settings import Settings, get_settings
from mermaid_service.core.rendering.errors import PayloadError

logger = get_logger(__name__)


@dataclass(frozen=True)
class Payloads:
    """Immutable sandbox page and payload script."""

    sandbox_html: str
    script: str

    @property
    def sandbox_url(self) -> str:
        """Sandbox page as an inline data URL."""
        return "data:text/html;charset=utf-8," + quote(self.sandbox_html, safe="")


def _read_text(path: Path, label: str) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as e:
        raise PayloadError(f"Failed to read {label} from {path}: {e}") from e


def load_payloads(settings: Optional[Settings] = None) -> Payloads:
    """
    Read the sandbox page and payload script from disk.

    Args:
        settings: Settings providing the payload paths

    Returns:
        Loaded payloads

    Raises:
        PayloadError: If any payload file is missing or unreadable
    """
    settings = settings or get_settings()

    sandbox_html = _read_text(settings.sandbox_html_path, "sandbox page")
    mermaid_js = _read_text(settings.mermaid_js_path, "Mermaid runtime")
    bootstrap_js = _read_text(settings.bootstrap_js_path, "render bootstrap")

    payloads = Payloads(sandbox_html=sandbox_html, script=f"{mermaid_js}\n;\n{bootstrap_js}")

    logger.info(
        "Payloads loaded",
        sandbox_length=len(payloads.sandbox_html),
        script_length=len(payloads.script),
    )
    return payloads


# Global payloads instance
_payloads: Optional[Payloads] = None


def get_payloads() -> Payloads:
    """Get the process-wide payloads, loading them on first use."""
    global _payloads
    if _payloads is None:
        _payloads = load_payloads()
    return _payloads
