"""
In-process Python script engine
===============================

Runs Python source in the current interpreter. Every run gets a fresh global
namespace, so parameter bindings never leak from one run to the next. The
namespace provides:

- each parameter as a global variable of the same name
- ``params``: a dict of all parameters for this run
- ``emit(*values)``: append values to the run's results, in order
- ``session``: the context's persistent mapping, shared by runs in the
  same context and private to it
- ``context_id``: the id of the context running the script

Example script::

    import random, time

    ms = random.randint(0, 5000)
    time.sleep(ms / 1000)
    emit(f"{text} | Slept: {ms} ms")
"""

from __future__ import annotations

import builtins
import keyword
from functools import lru_cache
from types import CodeType
from typing import Any

from scriptpool.config.logging_config import get_logger
from scriptpool.context import ExecutionContext
from scriptpool.engines.base import ScriptEngine
from scriptpool.errors import ExecutionFault, InvalidScript
from scriptpool.types import Parameters, ParametersInput, ResultRecord

log = get_logger(__name__)

RESERVED_NAMES = frozenset({"emit", "params", "session", "context_id", "__builtins__", "__name__"})


@lru_cache(maxsize=128)
def _compile(script: str) -> CodeType:
    return compile(script, "<script>", "exec")


class PythonScriptEngine(ScriptEngine):
    """Execute Python source text in-process."""

    name = "python"

    def check_parameters(self, parameters: ParametersInput) -> Parameters:
        bound = super().check_parameters(parameters)
        for name, _ in bound:
            if not name.isidentifier() or keyword.iskeyword(name):
                raise ValueError(f"Parameter name {name!r} is not a valid Python identifier")
            if name in RESERVED_NAMES:
                raise ValueError(f"Parameter name {name!r} is reserved by the script namespace")
        return bound

    def validate_script(self, script: str) -> None:
        super().validate_script(script)
        self.compile(script)

    def compile(self, script: str) -> CodeType:
        try:
            return _compile(script)
        except SyntaxError as e:
            raise InvalidScript(f"Invalid script at line {e.lineno}: {e.msg}", script=script) from e
        except ValueError as e:
            # e.g. source containing null bytes
            raise InvalidScript(f"Invalid script: {e}", script=script) from e

    def build_namespace(
        self,
        parameters: Parameters,
        context: ExecutionContext,
        output: list[ResultRecord],
    ) -> dict[str, Any]:
        def emit(*values: Any) -> None:
            for value in values:
                output.append(ResultRecord(value))

        namespace: dict[str, Any] = {
            "__name__": "__script__",
            "__builtins__": builtins,
            "emit": emit,
            "params": dict(parameters),
            "session": context.session,
            "context_id": context.id,
        }
        namespace.update(parameters)
        return namespace

    def execute(
        self,
        script: str,
        parameters: Parameters,
        context: ExecutionContext,
    ) -> list[ResultRecord]:
        code = self.compile(script)
        output: list[ResultRecord] = []
        namespace = self.build_namespace(parameters, context, output)

        log.debug("executing script in %s with params=%s", context.id, [n for n, _ in parameters])
        try:
            exec(code, namespace)
        except SystemExit as e:
            # exit() / sys.exit() ends the script; only a non-zero status is a fault
            if e.code not in (None, 0):
                raise ExecutionFault(
                    f"Script exited with status {e.code}",
                    script=script,
                    exit_code=e.code if isinstance(e.code, int) else 1,
                ) from e
        return output
