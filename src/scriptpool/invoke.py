"""Module-level entry points for running scripts."""

from __future__ import annotations

from collections.abc import Mapping

from scriptpool.context import ExecutionContext
from scriptpool.errors import StateBagMissing
from scriptpool.handle import ExecutionHandle
from scriptpool.pool import ScriptPool
from scriptpool.types import (
    CompletionHandler,
    ErrorHandler,
    ParametersInput,
    ResultRecord,
    StateBag,
)


def run_synchronously(
    script: str,
    context: ExecutionContext,
    parameters: ParametersInput = None,
) -> list[ResultRecord]:
    """Run a script to completion on the calling thread.

    The caller owns ``context``: create it with ``engine.create_context()``
    before and dispose it after. It stays reusable whether or not the script
    faults.

    Raises:
        InvalidScript: If the script text is empty or malformed.
        ExecutionFault: If the script fails while running.
    """
    return context.engine.invoke(script, parameters, context)


def run_asynchronously(
    script: str,
    pool: ScriptPool,
    on_complete: CompletionHandler | None = None,
    on_error: ErrorHandler | None = None,
    state_bag: StateBag | None = None,
    parameters: ParametersInput = None,
) -> ExecutionHandle:
    """Schedule a script on ``pool``; see :meth:`ScriptPool.submit`."""
    return pool.submit(
        script,
        on_complete=on_complete,
        on_error=on_error,
        state_bag=state_bag,
        parameters=parameters,
    )


def require_state(state_bag: StateBag | None, *names: str) -> None:
    """Check that a handler received the state values it relies on.

    Raises:
        StateBagMissing: If the bag is missing or lacks any of ``names``.
    """
    if not isinstance(state_bag, Mapping) or not state_bag:
        raise StateBagMissing(list(names) or ["<any>"])
    missing = [name for name in names if name not in state_bag]
    if missing:
        raise StateBagMissing(missing)
