"""PythonKernelRuntime: guest runtime backed by a long-lived kernel subprocess.

Provides PythonKernelRuntime class that boots the bundled kernel script under
the guest interpreter, exchanges JSON-line requests with it, and installs
packages into the guest environment with pip when asked to.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any

from livecode.core.base import GuestRuntime
from livecode.core.errors import GuestExecutionError, RuntimeCrashedError, RuntimeLoadError
from livecode.runtime_paths import get_env_python_path, get_kernel_script_path, resolve_interpreter

if TYPE_CHECKING:
    from livecode.core.logging import LiveCodeLogger
    from livecode.core.models import RuntimePolicy

# Grace period for the kernel to exit after its stdin is closed
_SHUTDOWN_GRACE_SECONDS = 5.0


class PythonKernelRuntime(GuestRuntime):
    """Guest runtime running CPython in a separate kernel process.

    Lifecycle:
    1. bootstrap(): resolve the guest interpreter, creating the configured
       virtualenv first if it does not exist yet
    2. start(): spawn kernel.py with stderr discarded and wait for its
       ``ready`` handshake
    3. run(): one request/reply exchange per call, strictly sequential
    4. close(): close stdin so the kernel exits, kill it if it does not

    Attributes:
        policy: RuntimePolicy with interpreter, environment and limits
        interpreter: Resolved guest interpreter (None before bootstrap)
    """

    def __init__(self, policy: RuntimePolicy, logger: LiveCodeLogger | None = None) -> None:
        super().__init__(policy, logger)
        self.interpreter: Path | None = None
        self._process: asyncio.subprocess.Process | None = None
        self._request_id = 0

    @property
    def is_alive(self) -> bool:
        return self._process is not None and self._process.returncode is None

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    async def bootstrap(self) -> bool:
        """Resolve the guest interpreter, creating the guest virtualenv if needed.

        The virtualenv is created with ``--system-site-packages`` so packages
        already installed for the base interpreter stay importable and only
        missing ones are installed into the environment.
        """
        base = resolve_interpreter(self.policy.guest_python)
        if base is None:
            raise RuntimeLoadError(f"Guest interpreter not found: {self.policy.guest_python}")

        if self.policy.guest_env_dir is None:
            self.interpreter = base
            return False

        env_python = get_env_python_path(self.policy.guest_env_dir)
        if env_python.is_file():
            self.interpreter = env_python
            return False

        env_dir = str(Path(self.policy.guest_env_dir).resolve())
        await self._check_call(
            [str(base), "-m", "venv", "--system-site-packages", env_dir],
            timeout=self.policy.install_timeout_seconds,
            action="create guest environment",
        )

        env_python = get_env_python_path(env_dir)
        if not env_python.is_file():
            raise RuntimeLoadError(f"Guest environment created but no interpreter at {env_python}")
        self.interpreter = env_python
        return True

    async def start(self) -> None:
        """Spawn the kernel and wait for its handshake."""
        if self.is_alive:
            return
        if self.interpreter is None:
            await self.bootstrap()

        argv = [str(self.interpreter), *self.policy.kernel_argv, str(get_kernel_script_path())]
        env = {**os.environ, **self.policy.env}

        try:
            self._process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
                env=env,
                limit=self.policy.reply_max_bytes,
            )
        except OSError as e:
            raise RuntimeLoadError(f"Failed to start kernel: {e}") from e

        try:
            reply = await asyncio.wait_for(
                self._read_reply(), timeout=self.policy.startup_timeout_seconds
            )
        except TimeoutError:
            await self.close(force=True)
            raise RuntimeLoadError(
                f"Kernel did not start within {self.policy.startup_timeout_seconds}s"
            ) from None
        except RuntimeCrashedError as e:
            await self.close(force=True)
            raise RuntimeLoadError(f"Kernel exited during startup: {e}") from e

        if reply.get("value") != "ready":
            await self.close(force=True)
            raise RuntimeLoadError(f"Unexpected kernel handshake: {reply!r}")

    async def run(self, source: str) -> str | None:
        reply = await self._request({"op": "run", "source": source})
        if not reply.get("ok"):
            raise GuestExecutionError(
                reply.get("error") or "Unknown guest error", reply.get("traceback")
            )
        return reply.get("value")

    async def ping(self) -> bool:
        """Round-trip a no-op request; False if the kernel is unusable."""
        try:
            reply = await self._request({"op": "ping"})
        except RuntimeCrashedError:
            return False
        return bool(reply.get("ok"))

    async def install_package(self, name: str) -> None:
        """pip-install ``name`` into the guest interpreter's environment."""
        if self.interpreter is None:
            raise RuntimeLoadError("Guest interpreter has not been bootstrapped")

        argv = [
            str(self.interpreter), "-m", "pip", "install",
            "--quiet", "--disable-pip-version-check",
        ]
        if self.policy.pip_index_url:
            argv += ["--index-url", self.policy.pip_index_url]
        argv.append(name)

        await self._check_call(
            argv, timeout=self.policy.install_timeout_seconds, action=f"install {name}"
        )

        # Finders cache directory listings; new distributions are invisible without this
        if self.is_alive:
            await self.run("import importlib\nimportlib.invalidate_caches()")

    async def close(self, *, force: bool = False) -> None:
        """Stop the kernel.

        Args:
            force: Kill immediately instead of letting the kernel exit on EOF.
                   Needed when it is stuck in guest code.
        """
        process, self._process = self._process, None
        if process is None or process.returncode is not None:
            return

        if not force:
            if process.stdin is not None:
                process.stdin.close()
            try:
                await asyncio.wait_for(process.wait(), timeout=_SHUTDOWN_GRACE_SECONDS)
                return
            except TimeoutError:
                pass

        with contextlib.suppress(ProcessLookupError):
            process.kill()
        await process.wait()

    async def _request(self, message: dict[str, Any]) -> dict[str, Any]:
        process = self._process
        if process is None or process.returncode is not None or process.stdin is None:
            raise RuntimeCrashedError("Kernel is not running")

        self._request_id += 1
        request_id = self._request_id
        payload = json.dumps({"id": request_id, **message}) + "\n"

        try:
            try:
                process.stdin.write(payload.encode("utf-8"))
                await process.stdin.drain()
            except (BrokenPipeError, ConnectionResetError) as e:
                raise RuntimeCrashedError(f"Kernel stdin closed: {e}") from e

            reply = await self._read_reply()
        except asyncio.CancelledError:
            # The kernel may still be executing; its late reply would desync the stream
            await self.close(force=True)
            raise

        if reply.get("id") != request_id:
            raise RuntimeCrashedError(
                f"Kernel reply out of sequence (expected {request_id}, got {reply.get('id')!r})"
            )
        return reply

    async def _read_reply(self) -> dict[str, Any]:
        process = self._process
        if process is None or process.stdout is None:
            raise RuntimeCrashedError("Kernel is not running")

        try:
            line = await process.stdout.readline()
        except ValueError as e:
            # StreamReader reports an overlong line as ValueError; the stream is unusable after
            raise RuntimeCrashedError(
                f"Kernel reply exceeded {self.policy.reply_max_bytes} bytes"
            ) from e

        if not line:
            code = await process.wait()
            raise RuntimeCrashedError(f"Kernel exited with code {code}")

        try:
            reply = json.loads(line)
        except ValueError as e:
            raise RuntimeCrashedError(f"Malformed kernel reply: {e}") from e
        if not isinstance(reply, dict):
            raise RuntimeCrashedError(f"Malformed kernel reply: {reply!r}")
        return reply

    async def _check_call(self, argv: list[str], timeout: float, action: str) -> None:
        """Run a helper process to completion, mapping failures to RuntimeLoadError."""
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            raise RuntimeLoadError(f"Failed to {action}: {e}") from e

        try:
            output, _ = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except TimeoutError:
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            await process.wait()
            raise RuntimeLoadError(f"Timed out after {timeout}s trying to {action}") from None

        if process.returncode != 0:
            tail = output.decode("utf-8", errors="replace").strip().splitlines()[-5:]
            detail = " | ".join(tail) if tail else "no output"
            raise RuntimeLoadError(
                f"Failed to {action} (exit code {process.returncode}): {detail}"
            )
