"""Factory functions wiring loaders, sessions and clipboard writers together.

Provides create_loader() and create_session() so embedding code gets a
correctly shared runtime without touching the constructors directly. There is
no module-level loader: callers keep the loader they create and pass it to
every session that should share its runtime.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from livecode.core.logging import LiveCodeLogger
from livecode.core.models import RuntimePolicy

if TYPE_CHECKING:
    from livecode.clipboard import ClipboardHost, ClipboardWriter
    from livecode.loader import RuntimeFactory, RuntimeLoader
    from livecode.session import ExecutionSession


def create_loader(
    policy: RuntimePolicy | None = None,
    runtime_factory: RuntimeFactory | None = None,
    logger: LiveCodeLogger | None = None,
) -> RuntimeLoader:
    """Create a RuntimeLoader; nothing is booted until ensure_ready().

    Args:
        policy: Optional RuntimePolicy. If None, uses default policy.
        runtime_factory: Optional callable building the GuestRuntime.
                         If None, PythonKernelRuntime is used.
        logger: Optional LiveCodeLogger shared by the loader and its runtime.

    Returns:
        RuntimeLoader in IDLE state
    """
    from livecode.loader import RuntimeLoader

    return RuntimeLoader(
        policy=policy if policy is not None else RuntimePolicy(),
        runtime_factory=runtime_factory,
        logger=logger,
    )


def create_session(
    loader: RuntimeLoader | None = None,
    policy: RuntimePolicy | None = None,
    session_id: str | None = None,
    logger: LiveCodeLogger | None = None,
) -> ExecutionSession:
    """Create an ExecutionSession bound to a loader.

    Sessions created with the same loader share one runtime and queue their
    runs on it.

    Args:
        loader: RuntimeLoader to share. If None, a new loader is created from
                ``policy`` (the session then owns its runtime).
        policy: Policy for a newly created loader. Ignored when loader is given.
        session_id: Optional explicit session identifier. If None, auto-generates UUIDv4.
        logger: Optional LiveCodeLogger. If None, the loader's logger is used.

    Returns:
        ExecutionSession ready to run snippets

    Examples:
        >>> loader = create_loader()
        >>> first = create_session(loader)
        >>> second = create_session(loader)
        >>> first.loader is second.loader
        True
    """
    from livecode.session import ExecutionSession

    if loader is None:
        loader = create_loader(policy=policy, logger=logger)

    return ExecutionSession(loader, session_id=session_id, logger=logger)


def create_clipboard_writer(
    host: ClipboardHost | None = None,
    logger: LiveCodeLogger | None = None,
) -> ClipboardWriter:
    """Create a ClipboardWriter, defaulting to the terminal host."""
    from livecode.clipboard import ClipboardWriter, TerminalClipboardHost

    return ClipboardWriter(host if host is not None else TerminalClipboardHost(), logger=logger)
