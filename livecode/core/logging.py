"""Structured logging for runtime loading, execution and clipboard events.

Provides LiveCodeLogger class that uses structlog for structured event emission
(runtime.load.*, execution.*, clipboard.*). Configures structlog with console
rendering by default but allows custom configuration.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, TextIO

import structlog

if TYPE_CHECKING:
    from livecode.core.models import CopyMethod, CopyOutcome, ExecutionResult, RuntimePolicy


def configure_structlog(
    level: int = logging.INFO, use_json: bool = False, stream: TextIO | None = None
) -> None:
    """Configure structlog with sensible defaults for livecode logging.

    Args:
        level: Minimum log level (default: logging.INFO)
        use_json: If True, use JSON renderer; otherwise use console renderer
        stream: Output stream for log lines (default: stdout)
    """
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if use_json:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=True,
    )


class LiveCodeLogger:
    """Wrapper for structured logging of livecode events.

    Accepts either structlog or standard logging.Logger instances and normalizes
    emission so callers do not need to care which backend is in use.
    """

    _SOURCE_PREVIEW_LENGTH = 80

    def __init__(self, logger: Any = None) -> None:
        """Initialize LiveCodeLogger with optional custom logger.

        Args:
            logger: Optional structlog BoundLogger, logging.Logger, or string name.
                    If None, a default structlog logger named 'livecode' is created.
                    If string, creates a structlog logger with that name.
        """
        if logger is None:
            self._logger = structlog.get_logger("livecode")
        elif isinstance(logger, str):
            self._logger = structlog.get_logger(logger)
        else:
            self._logger = logger

    @property
    def logger(self) -> Any:
        """Expose the underlying logger instance (structlog or logging.Logger)."""
        return self._logger

    def _emit(self, level: int, message: str, **fields: Any) -> None:
        """Emit a log record regardless of logger backend."""
        extra = dict(fields)
        extra.setdefault("log_message", message)
        # Ensure event key is always present for downstream processors
        extra.setdefault("event", message.split(".", 1)[-1] if "." in message else message)
        extra.setdefault("event_type", extra.get("event"))

        if isinstance(self._logger, logging.Logger):
            # Standard logging expects structured data in the 'extra' mapping
            self._logger.log(level, message, extra=extra)
            return

        method_name = logging.getLevelName(level).lower()
        log_method = getattr(self._logger, method_name, None)
        if not callable(log_method):
            log_method = self._logger.info

        log_kwargs = dict(extra)
        event_value = log_kwargs.pop("event", None)
        event_arg = event_value if event_value is not None else message
        log_method(event_arg, **log_kwargs)

    def _preview(self, source: str) -> str:
        """First line of guest source, shortened for log readability."""
        first_line = source.strip().splitlines()[0] if source.strip() else ""
        if len(first_line) <= self._SOURCE_PREVIEW_LENGTH:
            return first_line
        return first_line[: self._SOURCE_PREVIEW_LENGTH - 3] + "..."

    def log_load_start(self, attempt: int, policy: RuntimePolicy) -> None:
        """Log the start of a runtime load with the packages it will import.

        Args:
            attempt: 1-based load attempt counter of the loader
            policy: RuntimePolicy driving the load
        """
        self._emit(
            logging.INFO,
            "livecode.runtime.load.start",
            event="runtime.load.start",
            attempt=attempt,
            guest_python=policy.guest_python,
            guest_env_dir=policy.guest_env_dir,
            required_packages=list(policy.required_packages),
            optional_packages=list(policy.optional_packages),
        )

    def log_load_step(self, step: str, **extra: Any) -> None:
        """Log completion of one load step (bootstrap, start, packages)."""
        self._emit(
            logging.DEBUG,
            "livecode.runtime.load.step",
            event="runtime.load.step",
            step=step,
            **extra,
        )

    def log_load_complete(self, attempt: int, duration_ms: float, fetched: bool) -> None:
        """Log a successful runtime load.

        Args:
            attempt: Load attempt counter
            duration_ms: Total time spent loading
            fetched: Whether the bootstrap asset had to be created
        """
        self._emit(
            logging.INFO,
            "livecode.runtime.load.complete",
            event="runtime.load.complete",
            attempt=attempt,
            duration_ms=duration_ms,
            bootstrap_fetched=fetched,
        )

    def log_load_failed(self, attempt: int, error: str) -> None:
        """Log a failed runtime load at ERROR level."""
        self._emit(
            logging.ERROR,
            "livecode.runtime.load.failed",
            event="runtime.load.failed",
            attempt=attempt,
            error=error,
        )

    def log_optional_package(self, package: str, action: str, **extra: Any) -> None:
        """Log handling of an optional package.

        Args:
            package: Package name
            action: "missing", "installed" or "unavailable"
            **extra: Additional fields (e.g., error)
        """
        level = logging.WARNING if action == "unavailable" else logging.INFO
        event = f"runtime.package.{action}"
        self._emit(level, f"livecode.{event}", event=event, package=package, **extra)

    def log_runtime_invalidated(self, reason: str, **extra: Any) -> None:
        """Log that a runtime was discarded (crash, timeout, cancelled run).

        Args:
            reason: Why the runtime became unusable
            **extra: Additional fields (e.g., stale=True for a replaced handle)
        """
        self._emit(
            logging.WARNING,
            "livecode.runtime.invalidated",
            event="runtime.invalidated",
            reason=reason,
            **extra,
        )

    def log_execution_start(self, source: str, session_id: str | None = None) -> None:
        """Log the start of a guest execution.

        Args:
            source: Guest source as submitted (not the instrumented program)
            session_id: Optional session identifier
        """
        log_kwargs: dict[str, Any] = {
            "event": "execution.start",
            "source_bytes": len(source.encode("utf-8")),
            "source_preview": self._preview(source),
        }
        if session_id is not None:
            log_kwargs["session_id"] = session_id

        self._emit(logging.INFO, "livecode.execution.start", **log_kwargs)

    def log_execution_complete(self, result: ExecutionResult, session_id: str | None = None) -> None:
        """Log the completion of a guest execution with result metrics.

        Args:
            result: ExecutionResult returned to the caller
            session_id: Optional session identifier
        """
        log_kwargs: dict[str, Any] = {
            "event": "execution.complete",
            "success": result.success,
            "duration_ms": result.duration_ms,
            "text_bytes": len(result.text.encode("utf-8")),
            "image_count": len(result.images),
        }
        if result.error is not None:
            log_kwargs["error"] = result.error
        if result.metadata.get("text_truncated"):
            log_kwargs["text_truncated"] = True
        if session_id is not None:
            log_kwargs["session_id"] = session_id

        level = logging.INFO if result.success else logging.WARNING
        self._emit(level, "livecode.execution.complete", **log_kwargs)

    def log_copy_attempt(self, method: CopyMethod, error: str | None = None) -> None:
        """Log one clipboard strategy attempt at DEBUG level."""
        log_kwargs: dict[str, Any] = {"event": "clipboard.attempt", "method": method.value}
        if error is not None:
            log_kwargs["error"] = error
        self._emit(logging.DEBUG, "livecode.clipboard.attempt", **log_kwargs)

    def log_copy_complete(self, outcome: CopyOutcome, text_length: int) -> None:
        """Log the final clipboard outcome."""
        self._emit(
            logging.INFO if outcome.succeeded else logging.WARNING,
            "livecode.clipboard.complete",
            event="clipboard.complete",
            succeeded=outcome.succeeded,
            method=outcome.method_used.value,
            diagnostic=outcome.diagnostic,
            text_length=text_length,
        )
