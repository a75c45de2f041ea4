"""Guest kernel: executes host requests in one persistent namespace.

Started by PythonKernelRuntime as ``python -u kernel.py``; depends on the
standard library only so any guest interpreter can run it. Requests arrive as
JSON lines on stdin, replies leave as JSON lines on a private duplicate of the
original stdout. File descriptor 1 is pointed at devnull before any guest code
runs, so output printed outside the instrumentation is silenced instead of
corrupting the protocol channel.

Request:  {"id": 1, "op": "run", "source": "..."}   (ops: run, ping, shutdown)
Reply:    {"id": 1, "ok": true, "value": "..."}
          {"id": 1, "ok": false, "error": "ValueError: ...", "traceback": "..."}
"""

import ast
import asyncio
import builtins
import inspect
import io
import json
import os
import sys
import traceback

COMPILE_FLAGS = ast.PyCF_ALLOW_TOP_LEVEL_AWAIT


def _open_channel():
    """Move the protocol channel off fd 1 and silence fd 1."""
    channel = os.fdopen(os.dup(1), "w", encoding="utf-8")
    devnull = os.open(os.devnull, os.O_WRONLY)
    os.dup2(devnull, 1)
    os.close(devnull)
    return channel


def _send(channel, reply):
    channel.write(json.dumps(reply) + "\n")
    channel.flush()


def _run_code(code, namespace, loop):
    result = eval(code, namespace)
    if code.co_flags & inspect.CO_COROUTINE:
        result = loop.run_until_complete(result)
    return result


def execute(source, namespace, loop):
    """Run source in namespace and return the value of a trailing expression."""
    tree = ast.parse(source, filename="<cell>", mode="exec")
    tail = None
    if tree.body and isinstance(tree.body[-1], ast.Expr):
        tail = ast.Expression(tree.body.pop().value)

    body = compile(tree, "<cell>", "exec", flags=COMPILE_FLAGS, dont_inherit=True)
    _run_code(body, namespace, loop)
    if tail is None:
        return None

    expression = compile(tail, "<cell>", "eval", flags=COMPILE_FLAGS, dont_inherit=True)
    value = _run_code(expression, namespace, loop)
    if value is None:
        return None
    return value if isinstance(value, str) else repr(value)


def handle(request, namespace, loop):
    request_id = request.get("id")
    op = request.get("op")

    if op in ("ping", "shutdown"):
        return {"id": request_id, "ok": True, "value": op}
    if op != "run":
        return {"id": request_id, "ok": False, "error": f"ProtocolError: unknown op {op!r}"}

    try:
        value = execute(request.get("source", ""), namespace, loop)
    except (Exception, SystemExit, KeyboardInterrupt) as exc:
        summary = "".join(traceback.format_exception_only(type(exc), exc)).strip()
        return {
            "id": request_id,
            "ok": False,
            "error": summary.splitlines()[-1] if summary else type(exc).__name__,
            "traceback": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
        }
    return {"id": request_id, "ok": True, "value": value}


def main():
    # The kernel's own directory must not shadow guest imports
    here = os.path.dirname(os.path.abspath(__file__))
    sys.path[:] = [p for p in sys.path if os.path.abspath(p or os.curdir) != here]

    channel = _open_channel()
    requests = sys.stdin
    # Guest code reading input() sees EOF rather than protocol lines
    sys.stdin = io.StringIO()

    namespace = {"__name__": "__main__", "__builtins__": builtins}
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    _send(channel, {"id": 0, "ok": True, "value": "ready"})
    try:
        while True:
            line = requests.readline()
            if not line:
                break
            line = line.strip()
            if not line:
                continue
            try:
                request = json.loads(line)
            except ValueError as e:
                _send(channel, {"id": None, "ok": False, "error": f"ProtocolError: {e}"})
                continue

            _send(channel, handle(request, namespace, loop))
            if request.get("op") == "shutdown":
                break
    finally:
        loop.close()


if __name__ == "__main__":
    main()
