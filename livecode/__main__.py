#!/usr/bin/env python3
"""
Command-line interface for livecode.

Runs a snippet through the guest runtime and shows its captured text and
figures, or copies text to the clipboard with the fallback strategies.

Usage:
    livecode run snippet.py --images-dir out/
    echo "print(1 + 1)" | livecode run -
    livecode copy "some text"
    livecode copy --diagnose
"""

from __future__ import annotations

import argparse
import asyncio
import binascii
import logging
import sys
import tomllib
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.text import Text

from livecode.clipboard import DIAGNOSTIC_SAMPLE
from livecode.core.errors import PolicyValidationError
from livecode.core.factory import create_clipboard_writer, create_loader, create_session
from livecode.core.logging import LiveCodeLogger, configure_structlog
from livecode.core.models import ExecutionResult, RuntimePolicy
from livecode.policies import load_policy

try:
    import importlib.metadata

    __version__ = importlib.metadata.version("livecode-sandbox")
except Exception:
    __version__ = "unknown"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="livecode",
        description="Run lecture snippets in a guest runtime and capture text and figures.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Minimum level of structured log lines written to stderr",
    )
    parser.add_argument("--log-json", action="store_true", help="Render log lines as JSON")

    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Execute a snippet file ('-' for stdin)")
    run_parser.add_argument("source", help="Path to the snippet, or '-' to read stdin")
    run_parser.add_argument(
        "--policy", default="config/livecode.toml", help="Runtime policy TOML file"
    )
    run_parser.add_argument("--images-dir", type=Path, help="Directory to write captured PNGs to")
    run_parser.add_argument("--timeout", type=float, help="Per-run timeout in seconds")
    run_parser.add_argument("--json", action="store_true", help="Print the result as JSON")

    copy_parser = subparsers.add_parser("copy", help="Copy text to the clipboard")
    copy_parser.add_argument("text", nargs="?", help="Text to copy (stdin if omitted)")
    copy_parser.add_argument(
        "--diagnose", action="store_true", help=f"Copy the sample {DIAGNOSTIC_SAMPLE!r}"
    )

    return parser


def _write_images(result: ExecutionResult, images_dir: Path) -> list[Path]:
    images_dir.mkdir(parents=True, exist_ok=True)
    written = []
    for index, image in enumerate(result.images, start=1):
        path = images_dir / f"figure-{index}.{image.format}"
        path.write_bytes(image.decode())
        written.append(path)
    return written


async def _run_command(args: argparse.Namespace, console: Console, logger: LiveCodeLogger) -> int:
    source = sys.stdin.read() if args.source == "-" else Path(args.source).read_text(encoding="utf-8")

    policy = load_policy(args.policy)
    if args.timeout is not None:
        policy = RuntimePolicy.model_validate(policy.model_dump() | {"timeout_seconds": args.timeout})

    loader = create_loader(policy=policy, logger=logger)
    session = create_session(loader)
    try:
        with console.status("Loading runtime…", spinner="dots"):
            await session.ensure_ready()
        result = await session.run(source)
    finally:
        await loader.close()

    if args.json:
        console.print_json(result.model_dump_json())
        return 0 if result.success else 1

    if result.text:
        console.print(result.text, end="", markup=False, highlight=False)

    if result.images:
        if args.images_dir is not None:
            for path in _write_images(result, args.images_dir):
                console.print(f"[green]figure saved:[/green] {escape(str(path))}")
        else:
            console.print(
                f"[dim]{len(result.images)} figure(s) captured; use --images-dir to save them[/dim]"
            )

    if result.error is not None:
        body = result.error
        if "hint" in result.metadata:
            body += f"\n\n{result.metadata['hint']}"
        console.print(Panel(Text(body), title="Error", border_style="red"))
        return 1
    return 0


async def _copy_command(args: argparse.Namespace, console: Console, logger: LiveCodeLogger) -> int:
    if args.diagnose:
        text = DIAGNOSTIC_SAMPLE
    elif args.text is not None:
        text = args.text
    else:
        text = sys.stdin.read()

    writer = create_clipboard_writer(logger=logger)
    outcome = await writer.copy(text)

    if outcome.succeeded:
        console.print(f"[green]Copied[/green] ({outcome.method_used.value})")
        return 0
    diagnostic = escape(outcome.diagnostic or '')
    console.print(f"[yellow]{diagnostic}[/yellow] (method: {outcome.method_used.value})")
    return 1


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_structlog(
        level=getattr(logging, args.log_level), use_json=args.log_json, stream=sys.stderr
    )
    logger = LiveCodeLogger("livecode-cli")
    console = Console()

    try:
        if args.command == "run":
            return asyncio.run(_run_command(args, console, logger))
        return asyncio.run(_copy_command(args, console, logger))
    except (OSError, PolicyValidationError, tomllib.TOMLDecodeError, binascii.Error) as e:
        console.print(f"[red]{type(e).__name__}:[/red] {escape(str(e))}", highlight=False)
        return 2
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
