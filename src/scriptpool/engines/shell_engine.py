"""
Shell script engine
===================

Runs script text through an interpreter command as a local subprocess, by
default ``bash -c <script>``. Parameters are exported as environment
variables and every stdout line becomes one :class:`ResultRecord`. Each
context owns a private temporary working directory that lives until the
context is disposed.

Use ``command=["pwsh", "-NoProfile", "-Command"]`` to drive PowerShell.
"""

from __future__ import annotations

import os
import re
import shlex
import shutil
import subprocess
import tempfile
from collections.abc import Sequence
from typing import Any

from scriptpool.config.logging_config import get_logger
from scriptpool.context import ExecutionContext
from scriptpool.engines.base import ScriptEngine
from scriptpool.errors import ExecutionFault
from scriptpool.types import Parameters, ParametersInput, ResultRecord

log = get_logger(__name__)

_ENV_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class ShellScriptEngine(ScriptEngine):
    """Execute script text with an external interpreter.

    Args:
        command: Interpreter argv; the script text is appended as the final
            argument.
        timeout_seconds: Kill the subprocess after this many seconds. None
            (default) waits indefinitely.
        inherit_env: Start from a copy of the current process environment.
    """

    name = "shell"

    def __init__(
        self,
        command: Sequence[str] = ("bash", "-c"),
        timeout_seconds: float | None = None,
        inherit_env: bool = True,
    ) -> None:
        if not command:
            raise ValueError("command must contain at least the interpreter")
        self.command = list(command)
        self.timeout_seconds = timeout_seconds
        self.inherit_env = inherit_env

    # ---- Context lifecycle ----
    def initialize_context(self, context: ExecutionContext) -> None:
        context.session["workdir"] = tempfile.mkdtemp(prefix=f"scriptpool-{context.id}-")

    def dispose_context(self, context: ExecutionContext) -> None:
        workdir = context.session.pop("workdir", None)
        if workdir:
            shutil.rmtree(workdir, ignore_errors=True)

    def validate_context(self, context: ExecutionContext) -> bool:
        workdir = context.session.get("workdir")
        return bool(workdir) and os.path.isdir(workdir)

    # ---- Helpers ----
    def check_parameters(self, parameters: ParametersInput) -> Parameters:
        bound = super().check_parameters(parameters)
        for name, _ in bound:
            if not _ENV_NAME.match(name):
                raise ValueError(f"Parameter name {name!r} is not a valid environment variable name")
        return bound

    def build_command(self, script: str) -> list[str]:
        return [*self.command, script]

    def build_environment(self, parameters: Parameters) -> dict[str, str]:
        """Build the subprocess environment.

        Values are converted with ``str``; ``None`` becomes an empty string.
        """
        env: dict[str, str] = os.environ.copy() if self.inherit_env else {}
        for name, value in parameters:
            env[name] = "" if value is None else str(value)
        return env

    def _format_command_str(self, command: list[str]) -> str:
        return " ".join(shlex.quote(part) for part in command)

    # ---- Execution ----
    def execute(
        self,
        script: str,
        parameters: Parameters,
        context: ExecutionContext,
    ) -> list[ResultRecord]:
        command = self.build_command(script)
        cwd = context.session.get("workdir") or os.getcwd()
        log.debug("starting local subprocess: cmd=%s cwd=%s", self._format_command_str(command), cwd)

        try:
            completed = subprocess.run(
                command,
                cwd=cwd,
                env=self.build_environment(parameters),
                # Closed stdin so commands like `cat` see EOF immediately
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=self.timeout_seconds,
                check=False,
            )
        except FileNotFoundError as e:
            raise ExecutionFault(f"Interpreter not found: {self.command[0]}", script=script) from e
        except subprocess.TimeoutExpired as e:
            raise ExecutionFault(
                f"Script timed out after {self.timeout_seconds} seconds",
                script=script,
                stderr=_as_text(e.stderr),
            ) from e

        log.debug("local subprocess exited with code %s", completed.returncode)
        for line in completed.stderr.splitlines():
            log.debug("stderr: %s", line)

        if completed.returncode != 0:
            message = f"Process exited with code {completed.returncode}"
            last_lines = completed.stderr.strip().splitlines()[-1:]
            if last_lines:
                message = f"{message}: {last_lines[0]}"
            raise ExecutionFault(
                message,
                script=script,
                exit_code=completed.returncode,
                stderr=completed.stderr,
            )

        return [ResultRecord(line) for line in completed.stdout.splitlines()]


def _as_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)
