"""
Execution handles.

Every asynchronous submission returns an :class:`ExecutionHandle`. The pool
signals it exactly once, after the submission's completion or error handler
has returned, so anything a handler writes is visible once ``wait()``
returns.

Example:
    handles = [pool.submit(script, on_complete=show) for _ in range(20)]
    wait_all(handles)
"""

from __future__ import annotations

import asyncio
import threading
import time
from collections.abc import Iterable

from scriptpool.types import ExecutionStatus, ResultRecord

_FINAL_STATES = frozenset({ExecutionStatus.COMPLETED, ExecutionStatus.FAULTED, ExecutionStatus.ABANDONED})


class ExecutionHandle:
    """Completion signal and outcome of one submission."""

    def __init__(self, submission_id: str) -> None:
        self.submission_id = submission_id
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._status = ExecutionStatus.PENDING
        self._results: list[ResultRecord] | None = None
        self._fault: BaseException | None = None
        self._handler_error: BaseException | None = None

    @property
    def status(self) -> ExecutionStatus:
        return self._status

    @property
    def results(self) -> list[ResultRecord] | None:
        """Records produced by the script, or None unless it completed."""
        return self._results

    @property
    def fault(self) -> BaseException | None:
        """The execution fault, or :class:`SubmissionAbandoned`, if any."""
        return self._fault

    @property
    def handler_error(self) -> BaseException | None:
        """Exception raised by the completion or error handler, if any."""
        return self._handler_error

    def done(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the handle is signalled.

        Returns:
            True if signalled, False if ``timeout`` expired first.
        """
        return self._event.wait(timeout)

    async def wait_async(self, timeout: float | None = None) -> bool:
        """Await the handle without blocking the event loop."""
        if self._event.is_set():
            return True
        return await asyncio.to_thread(self._event.wait, timeout)

    def result(self, timeout: float | None = None) -> list[ResultRecord]:
        """Wait for the submission and return its records.

        Raises:
            TimeoutError: If the handle is not signalled within ``timeout``.
            ExecutionFault: If the script faulted.
            SubmissionAbandoned: If the pool dropped the submission.
        """
        if not self.wait(timeout):
            raise TimeoutError(f"Submission {self.submission_id} did not finish within {timeout} seconds")
        if self._fault is not None:
            raise self._fault
        return list(self._results or [])

    def mark_running(self) -> bool:
        """Move a pending handle to running. Returns False if already final."""
        with self._lock:
            if self._status is not ExecutionStatus.PENDING:
                return False
            self._status = ExecutionStatus.RUNNING
            return True

    def record_handler_error(self, error: BaseException) -> None:
        with self._lock:
            self._handler_error = error

    def signal(
        self,
        status: ExecutionStatus,
        results: list[ResultRecord] | None = None,
        fault: BaseException | None = None,
    ) -> None:
        """Record the outcome and release all waiters.

        Raises:
            ValueError: If ``status`` is not a final state.
            RuntimeError: If the handle has already been signalled.
        """
        if status not in _FINAL_STATES:
            raise ValueError(f"Cannot signal a handle with non-final status {status.value!r}")
        with self._lock:
            if self._event.is_set():
                raise RuntimeError(f"Handle for submission {self.submission_id} has already been signalled")
            self._status = status
            self._results = results
            self._fault = fault
            self._event.set()

    def __repr__(self) -> str:
        return f"ExecutionHandle(submission_id={self.submission_id!r}, status={self._status.value})"


def wait_all(handles: Iterable[ExecutionHandle], timeout: float | None = None) -> bool:
    """Wait until every handle is signalled.

    Args:
        handles: Handles to wait on.
        timeout: Overall limit in seconds for the whole set, or None.

    Returns:
        True if all handles were signalled, False if the timeout expired.
    """
    deadline = None if timeout is None else time.monotonic() + timeout
    for handle in handles:
        remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
        if not handle.wait(remaining):
            return False
    return True
