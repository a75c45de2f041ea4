"""Python guest runtime running CPython in a kernel subprocess.

Provides PythonKernelRuntime class that extends GuestRuntime to boot a
long-lived interpreter once and execute lecture snippets in its persistent
namespace over a JSON-lines pipe.
"""

from .runtime import PythonKernelRuntime

__all__ = ["PythonKernelRuntime"]
