"""Command-line interface: one-shot SVG rendering, or the HTTP server."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import List, Optional

from mermaid_service.config.logging import get_logger, setup_logging
from mermaid_service.config.settings import get_settings
from mermaid_service.core.rendering.browser_pool import BrowserPool
from mermaid_service.core.rendering.errors import PayloadError, RenderError
from mermaid_service.core.rendering.payload import load_payloads
from mermaid_service.core.rendering.pipeline import RenderPipeline
from mermaid_service.models.schemas import RenderRequest

logger = get_logger(__name__)


class UsageError(Exception):
    pass


def _build_parser() -> argparse.ArgumentParser:
    settings = get_settings()
    parser = argparse.ArgumentParser(
        prog="mermaid-service",
        description="Render Mermaid diagrams to SVG, or serve POST /render over HTTP.",
    )
    parser.add_argument("-i", "--input", type=Path, help="Input file (stdin if omitted)")
    parser.add_argument("-o", "--output", type=Path, help="Output file (stdout if omitted)")
    parser.add_argument(
        "--batch",
        action="store_true",
        help="Input is a JSON array of diagrams; output is a JSON array of SVGs",
    )
    parser.add_argument("-p", "--port", type=int, default=settings.port, help="Server port")
    parser.add_argument("--host", default=settings.host, help="Server host")
    parser.add_argument("--server", action="store_true", help="Run the HTTP server")
    return parser


def _read_input(path: Optional[Path]) -> str:
    if path is None:
        return sys.stdin.read()
    return path.read_text(encoding="utf-8")


def _write_output(path: Optional[Path], text: str) -> None:
    if path is None:
        sys.stdout.write(text)
        sys.stdout.flush()
    else:
        path.write_text(text, encoding="utf-8")


def parse_batch(text: str) -> List[str]:
    """Parse batch input: a JSON array of diagram strings."""
    try:
        diagrams = json.loads(text)
    except json.JSONDecodeError as e:
        raise UsageError(f"batch input is not valid JSON: {e}") from e

    if not isinstance(diagrams, list) or not all(isinstance(d, str) for d in diagrams):
        raise UsageError("batch input must be a JSON array of strings")
    return diagrams


async def render_svgs(pipeline: RenderPipeline, diagrams: List[str]) -> List[str]:
    """Render each diagram to SVG; a failed diagram yields an empty string."""
    svgs: List[str] = []
    for index, diagram in enumerate(diagrams):
        try:
            result = await pipeline.render(RenderRequest(text=diagram))
        except RenderError as e:
            logger.warning("Diagram failed", index=index, failure=e.failure.value, error=e.message)
            svgs.append("")
        else:
            svgs.append(str(result.content))
    return svgs


async def _render_once(diagrams: List[str]) -> List[str]:
    settings = get_settings()
    payloads = load_payloads(settings)
    browser_pool = BrowserPool(settings)
    await browser_pool.initialize()
    try:
        return await render_svgs(RenderPipeline(browser_pool, payloads, settings), diagrams)
    finally:
        await browser_pool.close()


def run_cli(args: argparse.Namespace) -> int:
    """Render the input once and write the result."""
    text = _read_input(args.input)

    if args.batch:
        diagrams = parse_batch(text)
        svgs = asyncio.run(_render_once(diagrams))
        output = json.dumps(svgs, indent=2, ensure_ascii=False)
    else:
        output = asyncio.run(_render_once([text]))[0]

    _write_output(args.output, output)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    setup_logging()

    if args.server:
        from mermaid_service.api.main import run_server

        run_server(host=args.host, port=args.port)
        return 0

    try:
        return run_cli(args)
    except UsageError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2
    except (OSError, PayloadError, RenderError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
