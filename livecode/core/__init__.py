"""Core livecode abstractions and models.

This module provides the foundational types and interfaces for running
lecture snippets in a guest runtime, including Pydantic models for
type-safe configuration and results, the guest runtime abstraction, and
error types.
"""

from __future__ import annotations

from .base import GuestRuntime
from .errors import (
    GuestExecutionError,
    LiveCodeError,
    PolicyValidationError,
    RuntimeCrashedError,
    RuntimeLoadError,
)
from .models import (
    CopyMethod,
    CopyOutcome,
    ExecutionResult,
    ImageArtifact,
    LoadState,
    RuntimePolicy,
    SessionStatus,
)

__all__ = [
    "CopyMethod",
    "CopyOutcome",
    "ExecutionResult",
    "GuestExecutionError",
    "GuestRuntime",
    "ImageArtifact",
    "LiveCodeError",
    "LoadState",
    "PolicyValidationError",
    "RuntimeCrashedError",
    "RuntimeLoadError",
    "RuntimePolicy",
    "SessionStatus",
]
