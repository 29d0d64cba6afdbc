"""Sandboxed JavaScript execution helpers for extracted player functions."""

from __future__ import annotations

import logging
import math
import threading
import time
from typing import Any, Dict, List, Protocol, Sequence, runtime_checkable

import pyjsparser
from pyjsparser import JsSyntaxError
from yt_dlp.jsinterp import JS_Undefined, JSInterpreter

from .exceptions import LexerError, ScriptCompileError, ScriptRuntimeError, ScriptTimeoutError
from .lexer import declared_functions

LOG = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 5.0
DEFAULT_MAX_ABANDONED = 4


@runtime_checkable
class ScriptSandbox(Protocol):
    """Compile and run isolated snippets of foreign script."""

    def compile_or_fail(self, code: str) -> None: ...

    def run(self, code: str, entry_point: str, args: Sequence[str]) -> str: ...


def coerce_result(value: Any) -> str:
    """Convert an interpreter return value into its JavaScript string form."""

    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if value is None or value is JS_Undefined or isinstance(value, JS_Undefined):
        raise ScriptRuntimeError("extracted function returned null or undefined")
    raise ScriptRuntimeError(f"extracted function returned a non-string value of type {type(value).__name__}")


class JavaScriptSandbox:
    """Run extracted functions on a fresh :class:`JSInterpreter` per call.

    The interpreter has no host objects, network or filesystem access, and a
    new instance is created for every :meth:`run`, so nothing computed by one
    call is visible to the next.  Each call executes on a daemon worker
    thread; a call still running after ``timeout_s`` is abandoned and reported
    as :class:`ScriptTimeoutError`.

    Abandoned workers cannot be interrupted and keep running until the
    function returns or the process exits.  At most ``max_abandoned``
    of them may be alive at once; further calls fail immediately with
    :class:`ScriptRuntimeError` until some of them finish.
    """

    def __init__(self, *, timeout_s: float = DEFAULT_TIMEOUT_S, max_abandoned: int = DEFAULT_MAX_ABANDONED) -> None:
        if timeout_s <= 0:
            raise ValueError("timeout_s must be positive")
        if max_abandoned < 1:
            raise ValueError("max_abandoned must be at least 1")
        self.timeout_s = timeout_s
        self.max_abandoned = max_abandoned
        self._abandoned: List[threading.Thread] = []
        self._abandoned_lock = threading.Lock()

    # ------------------------------------------------------------------
    def compile_or_fail(self, code: str) -> None:
        """Validate ``code`` without executing it.

        Three passes, cheapest first: the lexer checks literals, comments and
        bracket nesting; ``pyjsparser`` parses the snippet as an ECMAScript 5
        program; the interpreter must be able to locate every top-level
        function.
        """

        try:
            names = declared_functions(code)
        except LexerError as exc:
            raise ScriptCompileError(f"script does not parse: {exc}") from exc

        try:
            pyjsparser.parse(code)
        except (JsSyntaxError, RecursionError) as exc:
            raise ScriptCompileError(f"script does not parse: {exc}") from exc

        interpreter = JSInterpreter(code)
        for name in names:
            try:
                interpreter.extract_function_code(name)
            except Exception as exc:  # interpreter errors vary between releases
                raise ScriptCompileError(f"function {name!r} could not be parsed: {exc}") from exc

    def abandoned_workers(self) -> int:
        """Return how many timed-out workers are still running."""

        with self._abandoned_lock:
            self._abandoned = [thread for thread in self._abandoned if thread.is_alive()]
            return len(self._abandoned)

    def run(self, code: str, entry_point: str, args: Sequence[str]) -> str:
        """Call ``entry_point`` defined by ``code`` with ``args`` and return a string."""

        if self.abandoned_workers() >= self.max_abandoned:
            raise ScriptRuntimeError(
                f"refusing to run {entry_point!r}: {self.max_abandoned} timed-out worker(s) still running"
            )

        arguments = [str(arg) for arg in args]
        result_holder: Dict[str, Any] = {}

        def _call() -> None:
            try:
                interpreter = JSInterpreter(code)
                result_holder["value"] = interpreter.call_function(entry_point, *arguments)
            except Exception as exc:  # foreign code may fail in arbitrary ways
                result_holder["error"] = exc

        thread = threading.Thread(target=_call, name=f"js-sandbox:{entry_point}", daemon=True)
        start_time = time.monotonic()
        thread.start()
        thread.join(timeout=self.timeout_s)
        if thread.is_alive():
            with self._abandoned_lock:
                self._abandoned.append(thread)
            LOG.warning("abandoning sandbox worker for %s after %gs", entry_point, self.timeout_s)
            raise ScriptTimeoutError(
                f"{entry_point!r} did not finish within {self.timeout_s:g}s"
            )
        if "error" in result_holder:
            error = result_holder["error"]
            raise ScriptRuntimeError(f"{entry_point!r} failed: {error}") from error

        LOG.debug("sandbox call %s completed in %.3fs", entry_point, time.monotonic() - start_time)
        return coerce_result(result_holder.get("value"))


__all__ = ["DEFAULT_MAX_ABANDONED", "DEFAULT_TIMEOUT_S", "JavaScriptSandbox", "ScriptSandbox", "coerce_result"]
