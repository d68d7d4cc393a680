"""Exception hierarchy for script execution and pooling."""

from __future__ import annotations


class ScriptPoolError(Exception):
    """Base exception for scriptpool errors."""

    pass


class ExecutionFault(ScriptPoolError):
    """Raised when a script fails while executing.

    The original exception, if any, is chained as ``__cause__``.

    Attributes:
        script: The script text that faulted.
        exit_code: Process exit status for subprocess-backed engines.
        stderr: Captured standard error for subprocess-backed engines.
    """

    def __init__(
        self,
        message: str,
        *,
        script: str | None = None,
        exit_code: int | None = None,
        stderr: str | None = None,
    ) -> None:
        super().__init__(message)
        self.script = script
        self.exit_code = exit_code
        self.stderr = stderr


class InvalidScript(ExecutionFault):
    """Raised when script text is empty, not a string, or does not compile."""

    pass


class PoolExhausted(ScriptPoolError):
    """Raised when no admission capacity is left and the pool will not wait."""

    pass


class PoolClosedError(ScriptPoolError):
    """Raised when using a pool that is draining or disposed."""

    pass


class SubmissionAbandoned(ScriptPoolError):
    """Delivered to handlers of queued submissions dropped by ``dispose``."""

    pass


class StateBagMissing(ScriptPoolError):
    """Raised by handlers when expected state values were not passed through."""

    def __init__(self, missing: list[str]) -> None:
        super().__init__(f"Missing state values: {', '.join(missing)}")
        self.missing = missing


__all__ = [
    "ExecutionFault",
    "InvalidScript",
    "PoolClosedError",
    "PoolExhausted",
    "ScriptPoolError",
    "StateBagMissing",
    "SubmissionAbandoned",
]
