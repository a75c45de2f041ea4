"""Best-effort clipboard writes with ordered fallback strategies.

Hosting environments differ in which copy mechanisms they permit: a secure
clipboard API may be missing or refused, a legacy copy command may be the only
thing that works, or nothing may work at all. ClipboardWriter tries, in order:

1. primary-api: the host's secure clipboard write
2. legacy-command: an off-screen read-only text container, selected, then the
   legacy copy command
3. manual-selection: a transient text node selected through the selection
   API, then the legacy copy command

Scaffolding created for strategies 2 and 3 is removed on every exit path.
Failures are returned as CopyOutcome data and never raised.
"""

from __future__ import annotations

import asyncio
import base64
import contextlib
import shutil
import sys
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TextIO

from livecode.core.logging import LiveCodeLogger
from livecode.core.models import CopyMethod, CopyOutcome

BLOCKED_DIAGNOSTIC = "Clipboard blocked by policy"
DIAGNOSTIC_SAMPLE = "Clipboard test: 12345 ✓"


class ClipboardHost(ABC):
    """Copy-related capabilities of the hosting environment.

    Every capability may be missing or refuse at runtime; ClipboardWriter
    treats any exception from these methods as "strategy unavailable".
    """

    @abstractmethod
    def secure_clipboard_available(self) -> bool:
        """Whether a secure clipboard write capability is exposed."""

    @abstractmethod
    async def write_secure(self, text: str) -> None:
        """Write text through the secure clipboard API; raise if refused."""

    @abstractmethod
    def create_text_container(self, text: str) -> Any:
        """Attach an off-screen, non-scrolling, read-only container holding text."""

    @abstractmethod
    def select_container(self, container: Any) -> None:
        """Select the full contents of a container."""

    @abstractmethod
    def create_text_node(self, text: str) -> Any:
        """Attach a transient inline node holding text."""

    @abstractmethod
    def select_node_contents(self, node: Any) -> None:
        """Select the rendered contents of a node via the selection API."""

    @abstractmethod
    async def exec_copy(self) -> bool:
        """Invoke the legacy copy command on the current selection."""

    @abstractmethod
    def remove(self, element: Any) -> None:
        """Detach an element created by this host."""

    @abstractmethod
    def clear_selection(self) -> None:
        """Drop every selection range."""


class ClipboardWriter:
    """Copies text through the first clipboard strategy the host allows.

    Attributes:
        host: ClipboardHost providing the copy capabilities
        logger: LiveCodeLogger for attempt and outcome events
    """

    def __init__(self, host: ClipboardHost, logger: LiveCodeLogger | None = None) -> None:
        self.host = host
        self.logger = logger if logger is not None else LiveCodeLogger()

    async def copy(self, text: str) -> CopyOutcome:
        """Copy text, falling back through the strategies until one succeeds."""
        strategies: list[tuple[CopyMethod, Callable[[str], Awaitable[bool]]]] = [
            (CopyMethod.PRIMARY_API, self._copy_primary),
            (CopyMethod.LEGACY_COMMAND, self._copy_legacy),
            (CopyMethod.MANUAL_SELECTION, self._copy_selection),
        ]

        for method, strategy in strategies:
            try:
                copied = await strategy(text)
            except Exception as e:
                self.logger.log_copy_attempt(method, error=f"{type(e).__name__}: {e}")
                continue
            self.logger.log_copy_attempt(method)
            if copied:
                outcome = CopyOutcome(succeeded=True, method_used=method)
                self.logger.log_copy_complete(outcome, len(text))
                return outcome

        outcome = CopyOutcome(
            succeeded=False, method_used=CopyMethod.NONE, diagnostic=BLOCKED_DIAGNOSTIC
        )
        self.logger.log_copy_complete(outcome, len(text))
        return outcome

    async def _copy_primary(self, text: str) -> bool:
        if not self.host.secure_clipboard_available():
            return False
        await self.host.write_secure(text)
        return True

    async def _copy_legacy(self, text: str) -> bool:
        container = self.host.create_text_container(text)
        try:
            self.host.select_container(container)
            return await self.host.exec_copy()
        finally:
            self.host.remove(container)

    async def _copy_selection(self, text: str) -> bool:
        node = self.host.create_text_node(text)
        try:
            self.host.select_node_contents(node)
            return await self.host.exec_copy()
        finally:
            try:
                self.host.clear_selection()
            finally:
                self.host.remove(node)


async def run_clipboard_diagnostics(writer: ClipboardWriter) -> CopyOutcome:
    """Copy a fixed sample string to show which strategy the host allows."""
    return await writer.copy(DIAGNOSTIC_SAMPLE)


# Native clipboard commands, tried in order
_NATIVE_COMMANDS: tuple[tuple[str, ...], ...] = (
    ("pbcopy",),
    ("wl-copy",),
    ("xclip", "-selection", "clipboard"),
    ("xsel", "--clipboard", "--input"),
    ("clip",),
)

_NATIVE_TIMEOUT_SECONDS = 5.0


@dataclass(eq=False)
class StagedElement:
    """In-memory stand-in for a scaffolding element of the terminal host."""

    kind: str
    text: str
    attributes: dict[str, str] = field(default_factory=dict)


class TerminalClipboardHost(ClipboardHost):
    """ClipboardHost for command-line use.

    The secure API is a native clipboard command (pbcopy, wl-copy, xclip,
    xsel, clip). The legacy copy command is the OSC 52 terminal escape, which
    also reaches the local clipboard over SSH but only works on a TTY.
    Scaffolding elements are staged in ``elements`` until removed.
    """

    def __init__(
        self,
        stream: TextIO | None = None,
        commands: tuple[tuple[str, ...], ...] = _NATIVE_COMMANDS,
    ) -> None:
        self.stream = stream if stream is not None else sys.stdout
        self.elements: list[StagedElement] = []
        self.selection: str | None = None
        self._commands = commands

    def _native_command(self) -> list[str] | None:
        for command in self._commands:
            executable = shutil.which(command[0])
            if executable is not None:
                return [executable, *command[1:]]
        return None

    def secure_clipboard_available(self) -> bool:
        return self._native_command() is not None

    async def write_secure(self, text: str) -> None:
        argv = self._native_command()
        if argv is None:
            raise OSError("No native clipboard command available")

        process = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )
        try:
            await asyncio.wait_for(
                process.communicate(text.encode("utf-8")), timeout=_NATIVE_TIMEOUT_SECONDS
            )
        except TimeoutError:
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            await process.wait()
            raise
        if process.returncode != 0:
            raise OSError(f"{argv[0]} exited with code {process.returncode}")

    def create_text_container(self, text: str) -> StagedElement:
        element = StagedElement(
            kind="container",
            text=text,
            attributes={"position": "fixed", "top": "-1000px", "left": "-1000px", "readonly": ""},
        )
        self.elements.append(element)
        return element

    def select_container(self, container: StagedElement) -> None:
        self.selection = container.text

    def create_text_node(self, text: str) -> StagedElement:
        element = StagedElement(kind="node", text=text)
        self.elements.append(element)
        return element

    def select_node_contents(self, node: StagedElement) -> None:
        self.selection = node.text

    async def exec_copy(self) -> bool:
        if self.selection is None or not self.stream.isatty():
            return False
        payload = base64.b64encode(self.selection.encode("utf-8")).decode("ascii")
        self.stream.write(f"\x1b]52;c;{payload}\x07")
        self.stream.flush()
        return True

    def remove(self, element: StagedElement) -> None:
        self.elements = [e for e in self.elements if e is not element]

    def clear_selection(self) -> None:
        self.selection = None
