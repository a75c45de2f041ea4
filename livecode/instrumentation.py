"""Guest-side instrumentation wrapped around every submitted snippet.

The prologue redirects ``sys.stdout`` into an in-memory buffer and replaces
``matplotlib.pyplot.show`` with a variant that writes each figure to the buffer
as one sentinel-prefixed base64 PNG line. The epilogue undoes both and leaves
the buffer contents as the program's final expression, so the captured stream
comes back as the run's return value instead of being printed.

All helper names live under the ``_livecode_`` prefix so they cannot collide
with names defined by guest code.
"""

from __future__ import annotations

from livecode.core.models import RuntimePolicy
from livecode.datasets import fallback_columns

_IMPORTS = """\
import sys as _livecode_sys
import io as _livecode_io
import base64 as _livecode_base64
import numpy as np
import pandas as pd
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import matplotlib.pyplot as _livecode_pyplot
"""

_DATASETS = """\
_livecode_fallbacks = {fallbacks!r}
try:
    import seaborn as sns
except Exception:
    sns = None
if sns is not None and not getattr(sns.load_dataset, '_livecode_wrapped', False):
    _livecode_load_dataset = sns.load_dataset
    def _livecode_safe_load_dataset(name, *args, **kwargs):
        try:
            return _livecode_load_dataset(name, *args, **kwargs)
        except Exception:
            if name in _livecode_fallbacks:
                return pd.DataFrame(_livecode_fallbacks[name])
            raise
    _livecode_safe_load_dataset._livecode_wrapped = True
    sns.load_dataset = _livecode_safe_load_dataset
for _livecode_name in {names!r}:
    if _livecode_name in globals():
        continue
    try:
        if sns is not None:
            globals()[_livecode_name] = sns.load_dataset(_livecode_name)
        elif _livecode_name in _livecode_fallbacks:
            globals()[_livecode_name] = pd.DataFrame(_livecode_fallbacks[_livecode_name])
    except Exception:
        pass
"""

_CAPTURE = """\
_livecode_buffer = _livecode_io.StringIO()
_livecode_stdout = _livecode_sys.stdout
_livecode_sys.stdout = _livecode_buffer
def _livecode_capture_show(*args, **kwargs):
    _livecode_image = _livecode_io.BytesIO()
    _livecode_pyplot.savefig(_livecode_image, format='png', bbox_inches='tight')
    _livecode_payload = _livecode_base64.b64encode(_livecode_image.getvalue()).decode('ascii')
    _livecode_sys.stdout.write({sentinel!r} + _livecode_payload + '\\n')
    _livecode_pyplot.close('all')
_livecode_capture_show._livecode_original = getattr(
    _livecode_pyplot.show, '_livecode_original', _livecode_pyplot.show
)
_livecode_pyplot.show = _livecode_capture_show
"""

EPILOGUE = """\
import sys as _livecode_sys
if '_livecode_stdout' in globals():
    _livecode_sys.stdout = globals().pop('_livecode_stdout')
try:
    import matplotlib.pyplot as _livecode_pyplot
    _livecode_pyplot.show = getattr(_livecode_pyplot.show, '_livecode_original', _livecode_pyplot.show)
except ImportError:
    pass
_livecode_captured = globals().pop('_livecode_buffer', None)
_livecode_captured.getvalue() if _livecode_captured is not None else ''
"""


class Instrumentation:
    """Builds the prologue and epilogue for one runtime policy.

    ``epilogue`` doubles as the restore operation: it is idempotent and safe to
    run when the prologue or the snippet stopped halfway, which is how output
    printed before a failure is recovered.
    """

    def __init__(self, policy: RuntimePolicy) -> None:
        self.sentinel = policy.image_sentinel
        parts = [_IMPORTS]
        if policy.datasets:
            parts.append(
                _DATASETS.format(
                    fallbacks=fallback_columns(policy.datasets),
                    names=tuple(policy.datasets),
                )
            )
        parts.append(_CAPTURE.format(sentinel=self.sentinel))
        self.prologue = "".join(parts)
        self.epilogue = EPILOGUE

    def wrap(self, source: str) -> str:
        """Return ``prologue + source + epilogue`` as one guest program."""
        body = source if source.endswith("\n") else source + "\n"
        return f"{self.prologue}\n{body}\n{self.epilogue}"
