"""Policy management for the guest runtime.

Provides the default runtime policy and TOML-based configuration loading
for choosing the guest interpreter, the packages loaded at boot, the
preloaded datasets and execution limits.
"""

from __future__ import annotations

import os
import sys
import tomllib

from pydantic import ValidationError

from livecode.core.errors import PolicyValidationError
from livecode.core.models import RuntimePolicy

DEFAULT_POLICY = {
    # Guest interpreter - the host interpreter unless a dedicated one is configured
    "guest_python": sys.executable,

    # Unbuffered so replies are never held back by the guest's stdio buffering
    "kernel_argv": ["-u"],

    # Headless plotting and a fixed encoding for the reply channel
    "env": {
        "MPLBACKEND": "Agg",
        "PYTHONIOENCODING": "utf-8",
    },

    # Imported at boot; a failure here fails the load
    "required_packages": ["numpy", "matplotlib", "pandas"],

    # Imported if present, pip-installed on first load otherwise
    "optional_packages": ["seaborn"],
    "install_missing_optional": True,

    # Reference datasets the lecture snippets expect as globals
    "datasets": ["tips", "titanic"],

    "image_sentinel": "__IMG__",

    # Output caps - a runaway print loop must not exhaust host memory
    "output_max_bytes": 2_000_000,
    "reply_max_bytes": 64_000_000,
}


def load_policy(path: str = "config/livecode.toml") -> RuntimePolicy:
    """Load and merge user policy configuration with the defaults.

    Performs a shallow merge of user-provided TOML settings with DEFAULT_POLICY.
    The env dict is deep-merged to allow adding environment variables without
    replacing the entire default set.

    Args:
        path: Path to the policy TOML file. If file doesn't exist, returns
              RuntimePolicy with defaults.

    Returns:
        RuntimePolicy: Validated policy model with merged configuration.

    Raises:
        PolicyValidationError: If policy contains invalid values (negative
                               timeouts, invalid package names, etc.)
        tomllib.TOMLDecodeError: If TOML file is malformed
        OSError: If file exists but cannot be read
    """
    if not os.path.exists(path):
        try:
            return RuntimePolicy(**DEFAULT_POLICY)  # type: ignore[arg-type]
        except PolicyValidationError:
            raise
        except ValidationError as e:
            raise PolicyValidationError(f"Default policy validation failed: {e}") from e

    with open(path, "rb") as f:
        data = tomllib.load(f)

    # Merge top-level keys, with user overrides taking precedence
    policy = DEFAULT_POLICY | data

    # Deep merge env dict to preserve default environment variables
    policy["env"] = DEFAULT_POLICY["env"] | data.get("env", {})

    try:
        return RuntimePolicy(**policy)  # type: ignore[arg-type]
    except PolicyValidationError:
        raise
    except ValidationError as e:
        raise PolicyValidationError(f"Policy validation failed: {e}") from e
