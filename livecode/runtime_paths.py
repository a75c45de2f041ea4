"""Path resolution for the kernel script and guest interpreters.

Provides utilities to locate the kernel driver shipped inside the package and
the interpreter inside a guest virtualenv, on both POSIX and Windows layouts.
"""

from __future__ import annotations

import os
import shutil
from pathlib import Path


def get_kernel_script_path() -> Path:
    """Get path to the kernel driver script bundled with the package.

    The script is passed to the guest interpreter by path rather than by module
    name, so the guest environment does not need livecode installed.

    Returns:
        Path to kernel.py

    Raises:
        FileNotFoundError: If the script is missing from the installation
    """
    script = Path(__file__).parent / "runtimes" / "python" / "kernel.py"
    if not script.is_file():
        raise FileNotFoundError(f"Kernel script not found at {script}")
    return script


def get_env_python_path(env_dir: str | Path) -> Path:
    """Get the interpreter path inside a virtualenv directory.

    Searches in the following order:
    1. bin/python (POSIX virtualenv layout)
    2. Scripts/python.exe (Windows virtualenv layout)

    When neither exists the platform's expected location is returned so the
    caller can create the environment there.

    Args:
        env_dir: Virtualenv root directory

    Returns:
        Path to the environment's interpreter (may not exist yet)
    """
    root = Path(env_dir)
    posix = root / "bin" / "python"
    windows = root / "Scripts" / "python.exe"

    if posix.is_file():
        return posix
    if windows.is_file():
        return windows
    return windows if os.name == "nt" else posix


def resolve_interpreter(path: str) -> Path | None:
    """Resolve an interpreter given as an absolute path or a command name.

    Returns:
        Path to an existing interpreter, or None if it cannot be found
    """
    candidate = Path(path)
    if candidate.is_file():
        return candidate

    found = shutil.which(path)
    if found is not None:
        return Path(found)
    return None
