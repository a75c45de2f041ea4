"""Pydantic models for type-safe runtime configuration and results.

Provides validated data models for the runtime policy, load and session
states, execution results with captured figures, and clipboard outcomes.
"""

from __future__ import annotations

import base64
import sys
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from livecode.core.errors import PolicyValidationError


class LoadState(str, Enum):
    """Lifecycle of a RuntimeLoader.

    IDLE: nothing loaded yet (or the runtime was invalidated)
    LOADING: one load is in flight, callers await it
    READY: the runtime handle is booted and usable
    ERROR: the last load failed; the next ensure_ready() retries
    """
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


class SessionStatus(str, Enum):
    """User-facing status of an ExecutionSession."""
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    RUNNING = "running"
    ERROR = "error"


class CopyMethod(str, Enum):
    """Clipboard strategy that produced a CopyOutcome."""
    PRIMARY_API = "primary-api"
    LEGACY_COMMAND = "legacy-command"
    MANUAL_SELECTION = "manual-selection"
    NONE = "none"


class RuntimePolicy(BaseModel):
    """Type-safe configuration for booting and driving the guest runtime.

    All fields have defaults suited to running lecture snippets locally and
    are validated at construction time.

    Attributes:
        guest_python: Interpreter used for the kernel (host interpreter by default)
        guest_env_dir: Optional virtualenv directory; created on first load if missing
        kernel_argv: Extra interpreter flags placed before the kernel script
        env: Environment variables added to the kernel environment
        required_packages: Packages imported during load; failure aborts the load
        optional_packages: Packages imported if present, installed on demand otherwise
        install_missing_optional: Whether missing optional packages are pip-installed
        pip_index_url: Optional package index for on-demand installs
        datasets: Reference datasets preloaded into guest globals before each run
        image_sentinel: Line prefix marking an image record in the output stream
        timeout_seconds: Optional per-run timeout (None = no timeout)
        startup_timeout_seconds: Deadline for the kernel handshake
        install_timeout_seconds: Deadline for one on-demand package install
        output_max_bytes: Maximum captured text returned per run
        reply_max_bytes: Maximum size of one kernel reply line
    """

    guest_python: str = Field(
        default_factory=lambda: sys.executable,
        description="Interpreter used to run the kernel"
    )

    guest_env_dir: str | None = Field(
        default=None,
        description="Optional virtualenv for the guest; created when missing"
    )

    kernel_argv: list[str] = Field(
        default_factory=lambda: ["-u"],
        description="Interpreter flags placed before the kernel script path"
    )

    env: dict[str, str] = Field(
        default_factory=lambda: {
            "MPLBACKEND": "Agg",
            "PYTHONIOENCODING": "utf-8",
        },
        description="Environment variables added to the kernel environment"
    )

    required_packages: list[str] = Field(
        default_factory=lambda: ["numpy", "matplotlib", "pandas"],
        description="Packages that must import for the runtime to be ready"
    )

    optional_packages: list[str] = Field(
        default_factory=lambda: ["seaborn"],
        description="Packages loaded best-effort, installed on demand when missing"
    )

    install_missing_optional: bool = Field(
        default=True,
        description="pip-install optional packages the guest environment lacks"
    )

    pip_index_url: str | None = Field(
        default=None,
        description="Package index used for on-demand installs"
    )

    datasets: list[str] = Field(
        default_factory=lambda: ["tips", "titanic"],
        description="Reference datasets preloaded into guest globals"
    )

    image_sentinel: str = Field(
        default="__IMG__",
        min_length=1,
        description="Line prefix that marks an image record"
    )

    timeout_seconds: float | None = Field(
        default=None,
        gt=0,
        description="Optional per-run timeout (None = no timeout)"
    )

    startup_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Deadline for the kernel handshake"
    )

    install_timeout_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Deadline for one on-demand package install"
    )

    output_max_bytes: int = Field(
        default=2_000_000,
        gt=0,
        description="Maximum captured text returned per run"
    )

    reply_max_bytes: int = Field(
        default=64_000_000,
        gt=0,
        description="Maximum size of one kernel reply line"
    )

    def __init__(self, **data: Any) -> None:
        try:
            super().__init__(**data)
        except ValidationError as e:
            raise PolicyValidationError(f"Invalid runtime policy: {e}") from e

    @classmethod
    def model_validate(cls, obj: Any, *, strict: bool | None = None, context: dict[str, Any] | None = None) -> "RuntimePolicy":
        try:
            return super().model_validate(obj, strict=strict, context=context)  # type: ignore[arg-type]
        except ValidationError as e:
            raise PolicyValidationError(f"Invalid runtime policy: {e}") from e

    @field_validator("image_sentinel")
    @classmethod
    def validate_sentinel(cls, v: str) -> str:
        """Sentinel must fit on one line and not be whitespace."""
        if not v.strip() or "\n" in v or "\r" in v:
            raise ValueError("image_sentinel must be a single non-blank line")
        return v

    @field_validator("required_packages", "optional_packages")
    @classmethod
    def validate_package_names(cls, v: list[str]) -> list[str]:
        """Package names are spliced into import statements, keep them dotted identifiers."""
        for name in v:
            if not all(part.isidentifier() for part in name.split(".")):
                raise ValueError(f"Invalid package name: {name!r}")
        return v


class ImageArtifact(BaseModel):
    """One figure captured from a display call, base64 encoded."""

    model_config = ConfigDict(frozen=True)

    format: str = Field(default="png", description="Raster format of the payload")
    data: str = Field(description="Base64 payload exactly as emitted by the guest")

    @property
    def mime_type(self) -> str:
        return f"image/{self.format}"

    @property
    def data_uri(self) -> str:
        """Inline URI suitable for an <img> src attribute."""
        return f"data:{self.mime_type};base64,{self.data}"

    def decode(self) -> bytes:
        """Decode the payload.

        Raises:
            binascii.Error: If the payload is not valid base64
        """
        return base64.b64decode(self.data, validate=True)


class ExecutionResult(BaseModel):
    """Immutable outcome of one ExecutionSession.run() call.

    Attributes:
        text: Captured printed text, blank lines removed, newline terminated
        images: Captured figures in display-call order
        error: One-line error summary, None when the run succeeded
        duration_ms: Wall-clock time including any wait for the runtime
        metadata: Additional details (session_id, traceback, hint, text_truncated)
    """

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "examples": [
                {
                    "text": "a\nb\n",
                    "images": [{"format": "png", "data": "iVBORw0KGgo..."}],
                    "error": None,
                    "duration_ms": 182.4,
                    "metadata": {"session_id": "4b8e..."},
                }
            ]
        },
    )

    text: str = Field(default="", description="Captured printed text")

    images: list[ImageArtifact] = Field(
        default_factory=list,
        description="Captured figures in emission order"
    )

    error: str | None = Field(default=None, description="Error summary if the run failed")

    duration_ms: float = Field(default=0.0, description="Wall-clock duration in milliseconds")

    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional execution metadata (session_id, traceback, hint)"
    )

    @property
    def success(self) -> bool:
        return self.error is None


class CopyOutcome(BaseModel):
    """Result of ClipboardWriter.copy(); failures are data, never exceptions."""

    model_config = ConfigDict(frozen=True)

    succeeded: bool
    method_used: CopyMethod = CopyMethod.NONE
    diagnostic: str | None = None
