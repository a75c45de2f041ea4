"""Tests for the guest kernel's execution and request handling, run in-process."""

from __future__ import annotations

import asyncio
import sys

import pytest

from livecode.core.models import RuntimePolicy
from livecode.instrumentation import Instrumentation
from livecode.output import parse_output
from livecode.runtimes.python.kernel import execute, handle


@pytest.fixture
def loop():
    event_loop = asyncio.new_event_loop()
    yield event_loop
    event_loop.close()


@pytest.fixture
def namespace() -> dict:
    return {"__name__": "__main__"}


class TestExecute:
    def test_trailing_expression_value(self, namespace, loop):
        assert execute("x = 20\nx + 22", namespace, loop) == "42"

    def test_string_value_returned_verbatim(self, namespace, loop):
        assert execute("'a\\nb'", namespace, loop) == "a\nb"

    def test_statement_only_returns_none(self, namespace, loop):
        assert execute("y = 1", namespace, loop) is None

    def test_none_expression_returns_none(self, namespace, loop):
        assert execute("None", namespace, loop) is None

    def test_namespace_persists(self, namespace, loop):
        execute("counter = 1", namespace, loop)
        execute("counter += 1", namespace, loop)

        assert execute("counter", namespace, loop) == "2"

    def test_top_level_await(self, namespace, loop):
        source = "import asyncio\nawait asyncio.sleep(0)\nawait asyncio.sleep(0, result=7)"

        assert execute(source, namespace, loop) == "7"

    def test_guest_exception_propagates(self, namespace, loop):
        with pytest.raises(ZeroDivisionError):
            execute("1 / 0", namespace, loop)


class TestHandle:
    def test_ping(self, namespace, loop):
        assert handle({"id": 3, "op": "ping"}, namespace, loop) == {"id": 3, "ok": True, "value": "ping"}

    def test_unknown_op(self, namespace, loop):
        reply = handle({"id": 4, "op": "eval"}, namespace, loop)

        assert reply["ok"] is False
        assert reply["error"].startswith("ProtocolError")

    def test_run_reply(self, namespace, loop):
        reply = handle({"id": 5, "op": "run", "source": "2 * 21"}, namespace, loop)

        assert reply == {"id": 5, "ok": True, "value": "42"}

    def test_error_reply_has_summary_and_traceback(self, namespace, loop):
        reply = handle({"id": 6, "op": "run", "source": "raise ValueError('boom')"}, namespace, loop)

        assert reply["ok"] is False
        assert reply["error"] == "ValueError: boom"
        assert "Traceback" in reply["traceback"]

    def test_system_exit_is_contained(self, namespace, loop):
        reply = handle({"id": 7, "op": "run", "source": "import sys\nsys.exit(3)"}, namespace, loop)

        assert reply["ok"] is False
        assert reply["error"].startswith("SystemExit")

    def test_syntax_error_reply(self, namespace, loop):
        reply = handle({"id": 8, "op": "run", "source": "def ("}, namespace, loop)

        assert reply["ok"] is False
        assert reply["error"].startswith("SyntaxError")


class TestInstrumentedProgram:
    """The prologue and epilogue executed for real by the kernel."""

    @pytest.fixture(autouse=True)
    def _require_stack(self):
        pytest.importorskip("numpy")
        pytest.importorskip("pandas")
        pytest.importorskip("matplotlib")

    @pytest.fixture
    def instrumentation(self) -> Instrumentation:
        return Instrumentation(RuntimePolicy(datasets=[]))

    def test_print_show_print(self, instrumentation, namespace, loop):
        stdout = sys.stdout
        source = (
            "print('a')\n"
            "import matplotlib.pyplot as plt\n"
            "plt.plot([1, 2, 3])\n"
            "plt.show()\n"
            "print('b')\n"
        )

        raw = execute(instrumentation.wrap(source), namespace, loop)
        parsed = parse_output(raw, sentinel=instrumentation.sentinel)

        assert sys.stdout is stdout
        assert parsed.text == "a\nb\n"
        assert len(parsed.images) == 1
        assert parsed.images[0].decode().startswith(b"\x89PNG")

    def test_failure_then_restore_keeps_partial_output(self, instrumentation, namespace, loop):
        stdout = sys.stdout

        with pytest.raises(ValueError):
            execute(instrumentation.wrap("print('before')\nraise ValueError('boom')"), namespace, loop)
        partial = execute(instrumentation.epilogue, namespace, loop)

        assert sys.stdout is stdout
        assert parse_output(partial).text == "before\n"

    def test_restore_is_idempotent(self, instrumentation, namespace, loop):
        stdout = sys.stdout

        assert execute(instrumentation.epilogue, namespace, loop) == ""
        assert execute(instrumentation.epilogue, namespace, loop) == ""
        assert sys.stdout is stdout

    def test_show_restored_after_run(self, instrumentation, namespace, loop):
        import matplotlib.pyplot as plt

        original = plt.show
        execute(instrumentation.wrap("pass"), namespace, loop)

        assert plt.show is original

    def test_runs_do_not_share_buffers(self, instrumentation, namespace, loop):
        first = execute(instrumentation.wrap("print('one')"), namespace, loop)
        second = execute(instrumentation.wrap("print('two')"), namespace, loop)

        assert first == "one\n"
        assert second == "two\n"
