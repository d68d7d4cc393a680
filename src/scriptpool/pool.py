"""
Script Execution Pool

Runs independent script submissions concurrently on a bounded set of
execution contexts and reports each outcome to caller-supplied handlers.

Example:
    def show(results, state):
        for record in results:
            print(record, state["invocationTime"])

    with ScriptPool(min_contexts=1, max_contexts=20) as pool:
        handles = [
            pool.submit(
                script,
                on_complete=show,
                state_bag={"invocationTime": datetime.now()},
                parameters=[("text", i)],
            )
            for i in range(1, 21)
        ]
        wait_all(handles)
"""

from __future__ import annotations

import itertools
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from scriptpool.concurrency.object_pool import BlockingObjectPool
from scriptpool.config.logging_config import get_logger
from scriptpool.context import ExecutionContext
from scriptpool.engines.base import ScriptEngine
from scriptpool.engines.python_engine import PythonScriptEngine
from scriptpool.errors import ExecutionFault, PoolClosedError, PoolExhausted, SubmissionAbandoned
from scriptpool.handle import ExecutionHandle, wait_all
from scriptpool.types import (
    CompletionHandler,
    ErrorHandler,
    ExecutionStatus,
    ParametersInput,
    ResultRecord,
    StateBag,
    Submission,
)

log = get_logger(__name__)

# Marks pool worker threads so a handler cannot wait on its own pool
_worker = threading.local()


class ExhaustedPolicy(str, Enum):
    BLOCK = "block"
    FAIL_FAST = "fail_fast"


class PoolState(str, Enum):
    CREATED = "created"
    ACTIVE = "active"
    DRAINING = "draining"
    DISPOSED = "disposed"


class PoolConfig(BaseModel):
    """Sizing and admission settings for a :class:`ScriptPool`."""

    model_config = ConfigDict(frozen=True)

    min_contexts: int = Field(default=1, ge=0, description="Contexts created when the pool opens")
    max_contexts: int = Field(default=4, ge=1, description="Maximum scripts running at once")
    queue_size: int | None = Field(
        default=None,
        ge=0,
        description="Submissions allowed to wait for a context; None for unbounded",
    )
    exhausted_policy: ExhaustedPolicy = ExhaustedPolicy.BLOCK
    acquire_timeout: float | None = Field(
        default=None,
        gt=0,
        description="Seconds a blocking submit waits for queue capacity",
    )
    thread_name_prefix: str = "scriptpool"

    @model_validator(mode="after")
    def _check_bounds(self) -> "PoolConfig":
        if self.min_contexts > self.max_contexts:
            raise ValueError("min_contexts cannot exceed max_contexts")
        return self

    @classmethod
    def from_environment(cls, **overrides: Any) -> "PoolConfig":
        """Build a config from settings, with non-None ``overrides`` on top."""
        from scriptpool.config.environment import Environment

        values: dict[str, Any] = {
            "min_contexts": Environment.get_min_contexts(),
            "max_contexts": Environment.get_max_contexts(),
            "queue_size": Environment.get_queue_size(),
            "exhausted_policy": Environment.get_exhausted_policy(),
            "acquire_timeout": Environment.get_acquire_timeout(),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


def log_fault(fault: BaseException, state_bag: StateBag) -> None:
    """Default error handler: log the fault with its traceback."""
    log.error("Script submission failed: %s", fault, exc_info=fault)


class ScriptPool:
    """
    A bounded pool of execution contexts for running scripts concurrently.

    At most ``max_contexts`` submissions execute at the same time; the rest
    wait in a queue. Each submission runs on a pool worker thread using a
    context no other submission holds, then its completion or error handler
    runs on that same worker, and finally its handle is signalled.

    Lifecycle: ``created -> active -> draining -> disposed``. The pool opens
    on first submit or when entered as a context manager; ``dispose`` waits
    for in-flight work by default and abandons whatever is still queued
    when the wait ends.
    """

    def __init__(
        self,
        min_contexts: int = 1,
        max_contexts: int = 4,
        engine: ScriptEngine | None = None,
        *,
        queue_size: int | None = None,
        exhausted_policy: ExhaustedPolicy | str = ExhaustedPolicy.BLOCK,
        acquire_timeout: float | None = None,
        thread_name_prefix: str = "scriptpool",
        config: PoolConfig | None = None,
    ) -> None:
        """
        Initialize the pool. No contexts or threads exist until it opens.

        Args:
            min_contexts: Contexts pre-created by :meth:`open`.
            max_contexts: Upper bound on concurrently running scripts.
            engine: Engine that creates contexts and runs scripts. Defaults
                to :class:`PythonScriptEngine`.
            queue_size: Submissions that may wait for a context. None means
                unbounded; 0 means none may wait.
            exhausted_policy: ``"block"`` to wait for capacity when the queue
                is full, ``"fail_fast"`` to raise :class:`PoolExhausted`.
            acquire_timeout: With ``"block"``, give up after this many seconds.
            thread_name_prefix: Prefix for worker thread and context names.
            config: A ready-made :class:`PoolConfig`; overrides the sizing
                arguments above.

        Raises:
            ValueError: If the sizing arguments are invalid.
        """
        self.config = config or PoolConfig(
            min_contexts=min_contexts,
            max_contexts=max_contexts,
            queue_size=queue_size,
            exhausted_policy=exhausted_policy,
            acquire_timeout=acquire_timeout,
            thread_name_prefix=thread_name_prefix,
        )
        self.engine = engine or PythonScriptEngine()

        self._state = PoolState.CREATED
        self._lock = threading.Lock()
        self._dispose_lock = threading.Lock()
        self._contexts: BlockingObjectPool[ExecutionContext] | None = None
        self._executor: ThreadPoolExecutor | None = None
        self._admission: threading.Semaphore | None = None
        if self.config.queue_size is not None:
            self._admission = threading.Semaphore(self.config.max_contexts + self.config.queue_size)
        self._inflight: dict[str, tuple[Submission, ExecutionHandle, Future]] = {}
        self._context_ids = itertools.count(1)
        self._running = 0

        # Statistics
        self._stats = {
            "submitted": 0,
            "completed": 0,
            "faulted": 0,
            "abandoned": 0,
            "peak_concurrency": 0,
        }

    @classmethod
    def from_environment(cls, engine: ScriptEngine | None = None, **overrides: Any) -> "ScriptPool":
        """Create a pool sized from settings (see :class:`PoolConfig`)."""
        return cls(engine=engine, config=PoolConfig.from_environment(**overrides))

    # ---- Properties ----
    @property
    def state(self) -> PoolState:
        return self._state

    @property
    def min_contexts(self) -> int:
        return self.config.min_contexts

    @property
    def max_contexts(self) -> int:
        return self.config.max_contexts

    @property
    def stats(self) -> dict[str, int]:
        """
        Pool usage statistics.

        Returns:
            Dictionary with keys:
            - submitted: Submissions accepted
            - completed: Submissions whose script finished without a fault
            - faulted: Submissions whose script faulted
            - abandoned: Queued submissions dropped by dispose
            - in_flight: Submissions accepted but not yet finished
            - peak_concurrency: Most scripts observed running at once
            - contexts_created: Contexts created over the pool's life
        """
        with self._lock:
            stats = dict(self._stats)
            stats["in_flight"] = len(self._inflight)
        stats["contexts_created"] = self._contexts.created if self._contexts is not None else 0
        return stats

    # ---- Lifecycle ----
    def open(self) -> "ScriptPool":
        """
        Create the worker threads and the first ``min_contexts`` contexts.

        Opening an active pool is a no-op.

        Raises:
            PoolClosedError: If the pool is draining or disposed.
        """
        with self._lock:
            if self._state is PoolState.ACTIVE:
                return self
            if self._state is not PoolState.CREATED:
                raise PoolClosedError(f"Cannot open a pool that is {self._state.value}")

            self._contexts = BlockingObjectPool(
                factory=self._create_context,
                validator=lambda context: context.is_usable(),
                destructor=lambda context: context.dispose(),
                max_size=self.config.max_contexts,
                initial_size=self.config.min_contexts,
            )
            self._executor = ThreadPoolExecutor(
                max_workers=self.config.max_contexts,
                thread_name_prefix=self.config.thread_name_prefix,
            )
            self._state = PoolState.ACTIVE

        log.info(
            "Opened %s script pool: min_contexts=%d max_contexts=%d queue_size=%s",
            self.engine.name,
            self.config.min_contexts,
            self.config.max_contexts,
            self.config.queue_size,
        )
        return self

    def drain(self, timeout: float | None = None) -> bool:
        """
        Stop accepting submissions and wait for in-flight ones to finish.

        Args:
            timeout: Maximum time to wait in seconds, or None to wait for all.

        Returns:
            True if every in-flight submission finished within ``timeout``.

        Raises:
            RuntimeError: If called from one of this pool's handlers.
        """
        self._check_not_worker("drain")
        with self._lock:
            if self._state is PoolState.DISPOSED:
                return True
            self._state = PoolState.DRAINING
            handles = [handle for _, handle, _ in self._inflight.values()]

        if handles:
            log.info("Draining script pool: %d submissions in flight", len(handles))
        return wait_all(handles, timeout)

    def dispose(self, wait: bool = True, timeout: float | None = None) -> None:
        """
        Shut the pool down and release every context.

        With ``wait=True`` in-flight submissions are given up to ``timeout``
        seconds to finish. Submissions that have not started by then (all
        queued ones when ``wait=False``) are abandoned: their handles are
        signalled with :class:`SubmissionAbandoned` and their error handler
        is called with it on the disposing thread. Running scripts cannot be
        interrupted; their contexts are disposed as they finish.

        Disposing a disposed pool is a no-op.

        Raises:
            RuntimeError: If ``wait=True`` and called from one of this pool's
                handlers.
        """
        with self._dispose_lock:
            if self._state is PoolState.DISPOSED:
                return

            if wait:
                drained = self.drain(timeout)
            else:
                with self._lock:
                    self._state = PoolState.DRAINING
                drained = False

            if not drained:
                self._abandon_pending()

            if self._executor is not None:
                self._executor.shutdown(wait=wait and drained)
            if self._contexts is not None:
                self._contexts.close()

            with self._lock:
                self._state = PoolState.DISPOSED

        log.info("Disposed script pool: %s", self.stats)

    def __enter__(self) -> "ScriptPool":
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.dispose(wait=True)

    # ---- Execution ----
    def submit(
        self,
        script: str,
        on_complete: CompletionHandler | None = None,
        on_error: ErrorHandler | None = None,
        state_bag: StateBag | None = None,
        parameters: ParametersInput = None,
    ) -> ExecutionHandle:
        """
        Schedule a script to run on a pooled context.

        Args:
            script: Script text. Invalid text is reported to ``on_error`` as
                :class:`InvalidScript`, not raised here.
            on_complete: Called once as ``on_complete(results, state_bag)``
                if the script succeeds.
            on_error: Called once as ``on_error(fault, state_bag)`` if the
                script faults or is abandoned. Defaults to :func:`log_fault`.
            state_bag: Caller data handed to the handler as-is. The pool
                never copies or modifies it. Defaults to a new empty dict.
            parameters: Mapping or ordered ``(name, value)`` pairs bound as
                script inputs. The pool keeps its own copy.

        Returns:
            A handle that is signalled after the handler returns.

        Raises:
            ValueError: If parameter names are invalid or repeated.
            PoolClosedError: If the pool is draining or disposed.
            PoolExhausted: If the queue is full and the pool will not wait.
        """
        if self._state is PoolState.CREATED:
            self.open()
        self._ensure_accepting()

        submission = Submission(
            script=script,
            parameters=self.engine.check_parameters(parameters),
            state_bag={} if state_bag is None else state_bag,
            on_complete=on_complete,
            on_error=on_error,
        )
        handle = ExecutionHandle(submission.id)

        self._admit()
        with self._lock:
            if self._state is not PoolState.ACTIVE or self._executor is None:
                self._release_admission()
                raise PoolClosedError(f"Pool is {self._state.value} and no longer accepts submissions")
            future = self._executor.submit(self._run_submission, submission, handle)
            self._inflight[submission.id] = (submission, handle, future)
            self._stats["submitted"] += 1

        log.debug("submitted %s with params=%s", submission.id, [name for name, _ in submission.parameters])
        return handle

    def run_sync(self, script: str, parameters: ParametersInput = None) -> list[ResultRecord]:
        """
        Run a script on the calling thread in a throwaway context.

        Pooled contexts and worker threads are not used.

        Raises:
            PoolClosedError: If the pool is disposed.
            InvalidScript: If the script text is empty or malformed.
            ExecutionFault: If the script fails.
        """
        if self._state is PoolState.DISPOSED:
            raise PoolClosedError("Pool is disposed")
        with self.engine.create_context() as context:
            return self.engine.invoke(script, parameters, context)

    # ---- Internals ----
    def _create_context(self) -> ExecutionContext:
        return self.engine.create_context(f"{self.config.thread_name_prefix}-ctx-{next(self._context_ids)}")

    def _ensure_accepting(self) -> None:
        if self._state is not PoolState.ACTIVE:
            raise PoolClosedError(f"Pool is {self._state.value} and no longer accepts submissions")

    def _check_not_worker(self, operation: str) -> None:
        if getattr(_worker, "pool", None) is self:
            raise RuntimeError(f"Cannot {operation} a pool from one of its own handlers")

    def _admit(self) -> None:
        if self._admission is None:
            return
        if self.config.exhausted_policy is ExhaustedPolicy.FAIL_FAST:
            admitted = self._admission.acquire(blocking=False)
        else:
            admitted = self._admission.acquire(timeout=self.config.acquire_timeout)
        if not admitted:
            raise PoolExhausted(
                f"All {self.config.max_contexts} contexts are busy and the queue "
                f"of {self.config.queue_size} is full"
            )

    def _release_admission(self) -> None:
        if self._admission is not None:
            self._admission.release()

    def _run_submission(self, submission: Submission, handle: ExecutionHandle) -> None:
        _worker.pool = self
        try:
            if not handle.mark_running():
                return
            try:
                results = self._execute(submission)
            except SubmissionAbandoned as fault:
                with self._lock:
                    self._stats["abandoned"] += 1
                self._deliver_fault(submission, handle, fault, ExecutionStatus.ABANDONED)
            except BaseException as e:
                with self._lock:
                    self._stats["faulted"] += 1
                self._deliver_fault(submission, handle, _as_fault(e, submission.script), ExecutionStatus.FAULTED)
            else:
                with self._lock:
                    self._stats["completed"] += 1
                self._deliver_results(submission, handle, results)
        finally:
            _worker.pool = None
            self._finish(submission.id)

    def _execute(self, submission: Submission) -> list[ResultRecord]:
        assert self._contexts is not None
        contexts = self._contexts
        try:
            context = contexts.acquire()
        except PoolClosedError:
            # dispose closed the contexts after this worker picked the submission up
            raise SubmissionAbandoned(f"Submission {submission.id} was abandoned when the pool was disposed") from None
        assert context is not None
        with self._lock:
            self._running += 1
            self._stats["peak_concurrency"] = max(self._stats["peak_concurrency"], self._running)
        try:
            log.debug("running %s on %s", submission.id, context.id)
            return self.engine.invoke(submission.script, submission.parameters, context)
        finally:
            with self._lock:
                self._running -= 1
            contexts.release(context)

    def _deliver_results(
        self,
        submission: Submission,
        handle: ExecutionHandle,
        results: list[ResultRecord],
    ) -> None:
        try:
            if submission.on_complete is not None:
                submission.on_complete(results, submission.state_bag)
        except BaseException as e:
            log.exception("Completion handler for submission %s raised", submission.id)
            handle.record_handler_error(e)
        finally:
            self._finish(submission.id)
            handle.signal(ExecutionStatus.COMPLETED, results=results)

    def _deliver_fault(
        self,
        submission: Submission,
        handle: ExecutionHandle,
        fault: BaseException,
        status: ExecutionStatus,
    ) -> None:
        handler = submission.on_error or log_fault
        try:
            handler(fault, submission.state_bag)
        except BaseException as e:
            log.exception("Error handler for submission %s raised", submission.id)
            handle.record_handler_error(e)
        finally:
            self._finish(submission.id)
            handle.signal(status, fault=fault)

    def _finish(self, submission_id: str) -> None:
        # Runs before the handle is signalled; only the first call releases the permit
        with self._lock:
            if self._inflight.pop(submission_id, None) is not None:
                self._release_admission()

    def _abandon_pending(self) -> None:
        with self._lock:
            entries = list(self._inflight.values())

        abandoned = 0
        for submission, handle, future in entries:
            if not future.cancel():
                continue
            abandoned += 1
            with self._lock:
                self._stats["abandoned"] += 1
            fault = SubmissionAbandoned(f"Submission {submission.id} was abandoned when the pool was disposed")
            self._deliver_fault(submission, handle, fault, ExecutionStatus.ABANDONED)

        if abandoned:
            log.warning("Abandoned %d queued submissions", abandoned)

    def __repr__(self) -> str:
        return (
            f"ScriptPool(engine={self.engine.name!r}, min_contexts={self.config.min_contexts}, "
            f"max_contexts={self.config.max_contexts}, state={self._state.value})"
        )


def _as_fault(error: BaseException, script: str) -> Exception:
    """Return ``error`` if it is an ``Exception``, else wrap it in :class:`ExecutionFault`."""
    if isinstance(error, Exception):
        return error
    detail = f": {error}" if str(error) else ""
    fault = ExecutionFault(f"Script raised {type(error).__name__}{detail}", script=script)
    fault.__cause__ = error
    return fault
