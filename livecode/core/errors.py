"""Exception classes for runtime loading, guest execution and policy errors.

Provides domain-specific exceptions so that the loader, the guest runtime
adapters and the execution session can translate low-level failures
(subprocess errors, broken pipes, guest tracebacks) into clear error types.
"""

from __future__ import annotations


class PolicyValidationError(Exception):
    """Raised when runtime policy configuration is invalid.

    Indicates that a provided RuntimePolicy or policy TOML file contains
    invalid values (e.g., negative timeouts, empty sentinel, or validation
    constraint violations).

    This exception wraps Pydantic ValidationError with a clearer
    domain-specific name for livecode consumers.
    """

    pass


class LiveCodeError(Exception):
    """Base exception for guest runtime failures."""

    pass


class RuntimeLoadError(LiveCodeError):
    """Raised when the guest runtime cannot be bootstrapped or booted.

    Covers a failed bootstrap of the guest environment, a kernel that exits
    before its handshake, and required packages that fail to import. Every
    caller waiting on the same load receives the same instance.
    """

    pass


class GuestExecutionError(LiveCodeError):
    """Raised when guest code raises inside the kernel.

    The message is the one-line ``Type: message`` summary; the full guest
    traceback is kept in ``traceback`` for diagnostics.
    """

    def __init__(self, message: str, traceback: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.traceback = traceback


class RuntimeCrashedError(GuestExecutionError):
    """Raised when the kernel process dies or its protocol stream breaks.

    Unlike a plain GuestExecutionError the runtime handle is unusable
    afterwards and must be replaced by a fresh load.
    """

    pass
