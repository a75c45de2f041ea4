"""RuntimeLoader: boots the guest runtime once and shares it.

Provides RuntimeLoader class that owns the single runtime handle of a page
(or process) session. The first ensure_ready() call starts one load task;
every concurrent or later caller awaits that same task, so the interpreter is
bootstrapped and booted at most once per successful load.

Failed loads are not sticky: all callers waiting on the failed attempt get
the same RuntimeLoadError, the state moves to ERROR, and the next
ensure_ready() call starts a fresh attempt.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

from livecode.core.errors import LiveCodeError, RuntimeCrashedError, RuntimeLoadError
from livecode.core.logging import LiveCodeLogger
from livecode.core.models import LoadState, RuntimePolicy

if TYPE_CHECKING:
    from livecode.core.base import GuestRuntime

RuntimeFactory = Callable[[RuntimePolicy, LiveCodeLogger], "GuestRuntime"]


def _default_factory(policy: RuntimePolicy, logger: LiveCodeLogger) -> GuestRuntime:
    from livecode.runtimes.python import PythonKernelRuntime

    return PythonKernelRuntime(policy, logger)


class RuntimeLoader:
    """Lazily loads one guest runtime and memoizes the in-flight load.

    Construct one loader at application start and inject it into every
    ExecutionSession that should share the runtime.

    Attributes:
        policy: RuntimePolicy passed to the runtime factory
        logger: LiveCodeLogger for load events
        load_count: Number of load attempts started so far
    """

    def __init__(
        self,
        policy: RuntimePolicy | None = None,
        runtime_factory: RuntimeFactory | None = None,
        logger: LiveCodeLogger | None = None,
    ) -> None:
        self.policy = policy if policy is not None else RuntimePolicy()
        self.logger = logger if logger is not None else LiveCodeLogger()
        self._factory = runtime_factory if runtime_factory is not None else _default_factory
        self._state = LoadState.IDLE
        self._error: str | None = None
        self._runtime: GuestRuntime | None = None
        self._pending: asyncio.Task[GuestRuntime] | None = None
        self.load_count = 0

    @property
    def state(self) -> LoadState:
        return self._state

    @property
    def error(self) -> str | None:
        """Message of the last failed load, None unless state is ERROR."""
        return self._error

    @property
    def runtime(self) -> GuestRuntime | None:
        """The loaded runtime, or None if not READY."""
        return self._runtime if self._state is LoadState.READY else None

    async def ensure_ready(self) -> GuestRuntime:
        """Return the loaded runtime, starting or joining the load if needed.

        Returns:
            The shared GuestRuntime handle

        Raises:
            RuntimeLoadError: If the load this call joined failed
        """
        if self._state is LoadState.READY and self._runtime is not None:
            if self._runtime.is_alive:
                return self._runtime
            await self.invalidate("runtime exited", self._runtime)

        if self._pending is None:
            self.load_count += 1
            self._state = LoadState.LOADING
            self._error = None
            self._pending = asyncio.create_task(self._load(self.load_count))
            self._pending.add_done_callback(self._consume_result)

        # Shielded: a cancelled waiter must not cancel the load others are awaiting
        return await asyncio.shield(self._pending)

    async def invalidate(self, reason: str, runtime: GuestRuntime | None = None) -> None:
        """Discard a failed runtime so the next ensure_ready() loads afresh.

        Used after a kernel crash, a timed-out run or a cancelled run. A load
        in flight is left alone.

        Args:
            reason: Why the runtime is unusable, for the log
            runtime: The handle that failed. When it has already been replaced,
                     only that handle is closed and the current one is kept.
                     None means the current runtime.
        """
        if runtime is not None and runtime is not self._runtime:
            self.logger.log_runtime_invalidated(reason, stale=True)
            await runtime.close(force=True)
            return

        if self._pending is not None:
            return

        runtime, self._runtime = self._runtime, None
        self._state = LoadState.IDLE
        self.logger.log_runtime_invalidated(reason)
        if runtime is not None:
            await runtime.close(force=True)

    async def close(self) -> None:
        """Shut down the runtime at teardown, waiting out any load in flight."""
        pending = self._pending
        if pending is not None:
            pending.cancel()
            with contextlib.suppress(asyncio.CancelledError, RuntimeLoadError):
                await pending
            # A task cancelled before it ever ran skips _load's own cleanup
            self._pending = None

        runtime, self._runtime = self._runtime, None
        self._state = LoadState.IDLE
        if runtime is not None:
            await runtime.close()

    async def _load(self, attempt: int) -> GuestRuntime:
        self.logger.log_load_start(attempt, self.policy)
        start_time = time.perf_counter()
        runtime = self._factory(self.policy, self.logger)

        try:
            fetched = await runtime.bootstrap()
            self.logger.log_load_step("bootstrap", fetched=fetched)

            await runtime.start()
            self.logger.log_load_step("start")

            await runtime.load_packages(list(self.policy.required_packages))
            self.logger.log_load_step("packages", packages=list(self.policy.required_packages))

            for name in self.policy.optional_packages:
                await self._load_optional(runtime, name)
        except asyncio.CancelledError:
            await runtime.close(force=True)
            self._state = LoadState.IDLE
            self._pending = None
            raise
        except Exception as e:
            await runtime.close(force=True)
            error = e if isinstance(e, RuntimeLoadError) else RuntimeLoadError(
                f"{type(e).__name__}: {e}"
            )
            self._state = LoadState.ERROR
            self._error = str(error)
            self._pending = None
            self.logger.log_load_failed(attempt, self._error)
            if error is e:
                raise
            raise error from e

        self._runtime = runtime
        self._state = LoadState.READY
        self._pending = None
        self.logger.log_load_complete(
            attempt, (time.perf_counter() - start_time) * 1000, fetched
        )
        return runtime

    async def _load_optional(self, runtime: GuestRuntime, name: str) -> None:
        """Import an optional package, installing it first if the guest lacks it.

        Failures are logged and leave the runtime usable without the package.
        """
        try:
            if await runtime.has_module(name):
                return
            self.logger.log_optional_package(name, "missing")
            if not self.policy.install_missing_optional:
                return
            await runtime.install_package(name)
            await runtime.load_packages([name])
            self.logger.log_optional_package(name, "installed")
        except RuntimeCrashedError:
            raise
        except LiveCodeError as e:
            self.logger.log_optional_package(name, "unavailable", error=str(e))

    @staticmethod
    def _consume_result(task: asyncio.Task[GuestRuntime]) -> None:
        # Waiters re-raise the failure; this only keeps an unobserved one from warning
        if not task.cancelled():
            task.exception()
