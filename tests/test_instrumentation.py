"""Tests for the prologue and epilogue wrapped around guest snippets."""

from __future__ import annotations

from livecode.core.models import RuntimePolicy
from livecode.datasets import FALLBACK_DATASETS, fallback_columns
from livecode.instrumentation import EPILOGUE, Instrumentation


class TestInstrumentation:
    def test_wrap_places_source_between_prologue_and_epilogue(self):
        instrumentation = Instrumentation(RuntimePolicy())

        program = instrumentation.wrap("print('hi')")

        assert program.startswith(instrumentation.prologue)
        assert program.endswith(instrumentation.epilogue)
        assert "\nprint('hi')\n" in program

    def test_source_is_not_rewritten(self):
        instrumentation = Instrumentation(RuntimePolicy())
        source = "def f():\n    return 1\n\nf()\n"

        program = instrumentation.wrap(source)

        assert source in program

    def test_sentinel_embedded_in_capture(self):
        instrumentation = Instrumentation(RuntimePolicy(image_sentinel="@@FIG@@"))

        assert instrumentation.sentinel == "@@FIG@@"
        assert "'@@FIG@@'" in instrumentation.prologue

    def test_prologue_compiles(self):
        compile(Instrumentation(RuntimePolicy()).prologue, "<prologue>", "exec")

    def test_epilogue_ends_with_buffer_expression(self):
        assert EPILOGUE.rstrip().splitlines()[-1].startswith("_livecode_captured.getvalue()")

    def test_datasets_preloaded_with_fallbacks(self):
        prologue = Instrumentation(RuntimePolicy(datasets=["tips"])).prologue

        assert "sns.load_dataset" in prologue
        assert "('tips',)" in prologue
        assert "'total_bill'" in prologue

    def test_no_dataset_block_without_datasets(self):
        prologue = Instrumentation(RuntimePolicy(datasets=[])).prologue

        assert "load_dataset" not in prologue

    def test_helper_names_are_prefixed(self):
        """Every helper assigned by the instrumentation uses the reserved prefix."""
        prologue = Instrumentation(RuntimePolicy()).prologue
        assigned = {
            line.split("=", 1)[0].strip()
            for line in prologue.splitlines()
            if "=" in line and not line.startswith((" ", "\t")) and "==" not in line
        }
        assigned -= {"_livecode_pyplot.show", "_livecode_sys.stdout", "sns.load_dataset"}

        assert assigned
        assert all(name.startswith("_livecode_") for name in assigned)


class TestDatasets:
    def test_fallback_columns_filters_unknown(self):
        frames = fallback_columns(["tips", "flights"])

        assert list(frames) == ["tips"]
        assert frames["tips"] is FALLBACK_DATASETS["tips"]

    def test_fallback_columns_have_equal_lengths(self):
        for columns in FALLBACK_DATASETS.values():
            assert len({len(values) for values in columns.values()}) == 1
