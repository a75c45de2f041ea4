"""ExecutionSession: runs instrumented snippets against the shared runtime.

Provides ExecutionSession class that turns one snippet into one immutable
ExecutionResult. Every failure (load errors, guest exceptions, kernel crashes,
timeouts) is converted into ``ExecutionResult.error``; nothing raised by the
runtime escapes run().
"""

from __future__ import annotations

import asyncio
import re
import time
import uuid
from typing import TYPE_CHECKING, Any

from livecode.core.errors import GuestExecutionError, RuntimeCrashedError, RuntimeLoadError
from livecode.core.models import ExecutionResult, LoadState, SessionStatus
from livecode.output import parse_output

if TYPE_CHECKING:
    from livecode.core.base import GuestRuntime
    from livecode.core.logging import LiveCodeLogger
    from livecode.loader import RuntimeLoader

_MISSING_MODULE = re.compile(r"No module named '([^']+)'")


class ExecutionSession:
    """Executes guest snippets with stdout and figure capture.

    Orchestrates one run by:
    1. Awaiting the loader's shared runtime (booting it on first use)
    2. Taking the runtime's exclusive lock, so overlapping runs from any
       session on the same loader queue instead of interleaving
    3. Submitting ``prologue + source + epilogue`` and reading back the buffer
    4. On a guest exception, restoring the instrumentation and keeping the
       output buffered before the failure
    5. Parsing the buffer into text and images

    Attributes:
        loader: RuntimeLoader providing the shared runtime
        policy: RuntimePolicy of the loader
        session_id: Identifier included in logs and result metadata
        execution_count: Number of completed run() calls
    """

    def __init__(
        self,
        loader: RuntimeLoader,
        session_id: str | None = None,
        logger: LiveCodeLogger | None = None,
    ) -> None:
        self.loader = loader
        self.policy = loader.policy
        self.session_id = session_id if session_id is not None else str(uuid.uuid4())
        self.logger = logger if logger is not None else loader.logger
        self.execution_count = 0
        self._running = False
        self._last_error: str | None = None

    @property
    def status(self) -> SessionStatus:
        if self._running:
            return SessionStatus.RUNNING
        state = self.loader.state
        if state is LoadState.LOADING:
            return SessionStatus.LOADING
        if state is LoadState.ERROR or self._last_error is not None:
            return SessionStatus.ERROR
        if state is LoadState.READY:
            return SessionStatus.READY
        return SessionStatus.IDLE

    @property
    def last_error(self) -> str | None:
        """Error of the most recent ensure_ready() or run(), if it failed."""
        return self._last_error

    async def ensure_ready(self) -> bool:
        """Boot the shared runtime ahead of the first run.

        Returns:
            True if the runtime is ready, False if loading failed (see last_error)
        """
        try:
            await self.loader.ensure_ready()
        except RuntimeLoadError as e:
            self._last_error = str(e)
            return False
        self._last_error = None
        return True

    async def run(self, source: str) -> ExecutionResult:
        """Execute a snippet and return its captured output.

        Args:
            source: Guest source code, used unmodified

        Returns:
            ExecutionResult with text, images in display order, and error if any
        """
        self.logger.log_execution_start(source, session_id=self.session_id)
        start_time = time.perf_counter()

        try:
            raw, error, metadata = await self._run(source)
        except Exception as e:
            raw, error, metadata = "", f"Runtime error: {type(e).__name__}: {e!s}", {}

        parsed = parse_output(raw, sentinel=self.policy.image_sentinel)
        text, truncated = self._enforce_cap(parsed.text, self.policy.output_max_bytes)

        self.execution_count += 1
        metadata["session_id"] = self.session_id
        metadata["execution_count"] = self.execution_count
        if truncated:
            metadata["text_truncated"] = True
        if error is not None:
            hint = self._package_hint(error)
            if hint:
                metadata["hint"] = hint

        result = ExecutionResult(
            text=text,
            images=parsed.images,
            error=error,
            duration_ms=(time.perf_counter() - start_time) * 1000,
            metadata=metadata,
        )
        self._last_error = error

        self.logger.log_execution_complete(result, session_id=self.session_id)
        return result

    async def _run(self, source: str) -> tuple[str, str | None, dict[str, Any]]:
        while True:
            try:
                runtime = await self.loader.ensure_ready()
            except RuntimeLoadError as e:
                return "", str(e), {"load_state": self.loader.state.value}

            async with runtime.exclusive:
                # The run queued ahead of this one may have killed or replaced the handle
                if not runtime.is_alive or runtime is not self.loader.runtime:
                    continue

                self._running = True
                try:
                    return await self._execute(runtime, source)
                finally:
                    self._running = False

    async def _execute(
        self, runtime: GuestRuntime, source: str
    ) -> tuple[str, str | None, dict[str, Any]]:
        program = runtime.instrumentation.wrap(source)
        timeout = self.policy.timeout_seconds

        try:
            try:
                raw = await asyncio.wait_for(runtime.run(program), timeout=timeout)
            except TimeoutError:
                # The kernel is still inside guest code; its reply stream can't be trusted
                await self.loader.invalidate("timeout", runtime)
                return "", f"Execution timed out after {timeout}s", {}
            except RuntimeCrashedError as e:
                await self.loader.invalidate("crashed", runtime)
                return "", e.message, {}
            except GuestExecutionError as e:
                metadata: dict[str, Any] = {}
                if e.traceback:
                    metadata["traceback"] = e.traceback
                return await self._recover(runtime), e.message, metadata
        except asyncio.CancelledError:
            # Abandoned mid-request: the instrumentation may still be installed
            await self.loader.invalidate("cancelled", runtime)
            raise

        return raw or "", None, {}

    async def _recover(self, runtime: GuestRuntime) -> str:
        """Run the epilogue on its own to restore stdout and fetch partial output."""
        try:
            return await runtime.restore()
        except RuntimeCrashedError:
            await self.loader.invalidate("crashed", runtime)
        except GuestExecutionError as e:
            # Instrumentation may still be installed; the handle is not reusable
            await self.loader.invalidate(f"restore failed: {e.message}", runtime)
        return ""

    def _package_hint(self, error: str) -> str | None:
        """Suggest how to make a missing guest module available."""
        match = _MISSING_MODULE.search(error)
        if not match:
            return None

        module_name = match.group(1).split(".")[0]
        if module_name in self.policy.optional_packages and not self.policy.install_missing_optional:
            return (
                f"'{module_name}' is an optional package and on-demand installs are disabled. "
                "Set install_missing_optional = true or install it into the guest environment."
            )
        return (
            f"The guest environment has no '{module_name}'. "
            "Add it to optional_packages to have it installed on first load."
        )

    @staticmethod
    def _enforce_cap(text: str, cap: int) -> tuple[str, bool]:
        """Ensure text does not exceed cap bytes while tracking truncation."""
        data = text.encode("utf-8", errors="replace")
        if len(data) <= cap:
            return text, False
        return data[:cap].decode("utf-8", errors="ignore"), True
