"""livecode: run lecture snippets in an embedded guest runtime.

Boots a guest Python interpreter once, runs snippets with their printed text
and matplotlib figures captured, and copies text to the clipboard through
whichever mechanism the host allows.

Example:
    >>> import asyncio
    >>> from livecode import create_loader, create_session
    >>> async def main():
    ...     loader = create_loader()
    ...     session = create_session(loader)
    ...     result = await session.run("print('hello')")
    ...     await loader.close()
    ...     return result.text
    >>> asyncio.run(main())
    'hello\\n'
"""

from __future__ import annotations

from livecode.clipboard import ClipboardHost, ClipboardWriter, TerminalClipboardHost
from livecode.core import (
    CopyMethod,
    CopyOutcome,
    ExecutionResult,
    GuestExecutionError,
    GuestRuntime,
    ImageArtifact,
    LiveCodeError,
    LoadState,
    PolicyValidationError,
    RuntimeCrashedError,
    RuntimeLoadError,
    RuntimePolicy,
    SessionStatus,
)
from livecode.core.factory import create_clipboard_writer, create_loader, create_session
from livecode.core.logging import LiveCodeLogger, configure_structlog
from livecode.loader import RuntimeLoader
from livecode.output import ParsedOutput, parse_output
from livecode.policies import load_policy
from livecode.session import ExecutionSession

__version__ = "0.1.0"

__all__ = [
    "ClipboardHost",
    "ClipboardWriter",
    "CopyMethod",
    "CopyOutcome",
    "ExecutionResult",
    "ExecutionSession",
    "GuestExecutionError",
    "GuestRuntime",
    "ImageArtifact",
    "LiveCodeError",
    "LiveCodeLogger",
    "LoadState",
    "ParsedOutput",
    "PolicyValidationError",
    "RuntimeCrashedError",
    "RuntimeLoadError",
    "RuntimeLoader",
    "RuntimePolicy",
    "SessionStatus",
    "TerminalClipboardHost",
    "configure_structlog",
    "create_clipboard_writer",
    "create_loader",
    "create_session",
    "load_policy",
    "parse_output",
]
