"""
Execution contexts.

An execution context is the isolated unit a script runs in, the analogue of
a runspace. It is bound to one engine, owned by at most one run at a time
and keeps an engine-defined ``session`` mapping alive between runs.
"""

from __future__ import annotations

import threading
import time
import uuid
from typing import TYPE_CHECKING, Any

from scriptpool.errors import PoolClosedError

if TYPE_CHECKING:
    from scriptpool.engines.base import ScriptEngine


class ExecutionContext:
    """An isolated, exclusively-owned place to run scripts.

    Create contexts through :meth:`ScriptEngine.create_context` so the engine
    can attach its resources, and dispose them when done (or use the context
    as a context manager).
    """

    def __init__(self, engine: "ScriptEngine", context_id: str | None = None) -> None:
        self.id = context_id or f"ctx-{uuid.uuid4().hex[:8]}"
        self.engine = engine
        self.session: dict[str, Any] = {}
        self.runs = 0
        self.faults = 0
        self.created_at = time.monotonic()
        self._lock = threading.Lock()
        self._busy = False
        self._disposed = False

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def disposed(self) -> bool:
        return self._disposed

    def checkout(self) -> None:
        """Mark the context as running a script.

        Raises:
            PoolClosedError: If the context has been disposed.
            RuntimeError: If another run already holds the context.
        """
        with self._lock:
            if self._disposed:
                raise PoolClosedError(f"Context {self.id} has been disposed")
            if self._busy:
                raise RuntimeError(f"Context {self.id} is already executing a script")
            self._busy = True

    def checkin(self, faulted: bool = False) -> None:
        with self._lock:
            self._busy = False
            self.runs += 1
            if faulted:
                self.faults += 1

    def is_usable(self) -> bool:
        """Return True if the context can run another script."""
        return not self._disposed and not self._busy and self.engine.validate_context(self)

    def dispose(self) -> None:
        """Release engine resources held by this context. Idempotent."""
        with self._lock:
            if self._disposed:
                return
            self._disposed = True
        self.engine.dispose_context(self)

    def __enter__(self) -> "ExecutionContext":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.dispose()

    def __repr__(self) -> str:
        status = "disposed" if self._disposed else ("busy" if self._busy else "idle")
        return f"ExecutionContext(id={self.id!r}, engine={self.engine.name!r}, runs={self.runs}, status={status})"
