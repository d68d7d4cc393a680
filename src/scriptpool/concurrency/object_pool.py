import queue
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Generic, TypeVar

from scriptpool.config.logging_config import get_logger
from scriptpool.errors import PoolClosedError, ScriptPoolError

T = TypeVar("T")

log = get_logger(__name__)


class ObjectPoolError(ScriptPoolError):
    """Base exception for object pool errors."""

    pass


class PoolAcquireTimeoutError(ObjectPoolError):
    """Raised when acquire times out."""

    pass


class BlockingObjectPool(Generic[T]):
    """
    A thread-safe object pool for reusing expensive-to-create resources.

    The pool holds ``max_size`` slots in a LIFO queue. A slot is either an
    idle object or ``None``, meaning capacity for an object that has not been
    created yet. Taking a slot off the queue is the only way to obtain an
    object, so two threads can never be handed the same one.

    Features:
    - Lazy initialization (objects created only when needed)
    - Pre-creation of ``initial_size`` objects at construction
    - Validation on borrow; invalid objects are destroyed and replaced
    - Warm objects are reused before new ones are created
    - Objects released after ``close()`` are destroyed instead of pooled

    Example:
        pool = BlockingObjectPool(
            factory=engine.create_context,
            validator=lambda ctx: ctx.is_usable(),
            destructor=lambda ctx: ctx.dispose(),
            max_size=4,
            initial_size=1,
        )

        with pool.borrow() as context:
            engine.invoke(script, params, context)
    """

    def __init__(
        self,
        factory: Callable[[], T],
        validator: Callable[[T], bool] | None = None,
        destructor: Callable[[T], None] | None = None,
        max_size: int = 10,
        initial_size: int = 0,
    ):
        """
        Initialize the object pool.

        Args:
            factory: Function that creates a new object.
            validator: Function that returns True if a pooled object can be
                      handed out again. If None, no validation is performed.
            destructor: Function that releases an object's resources. If None,
                        objects are simply discarded.
            max_size: Maximum number of objects in the pool. Must be > 0.
            initial_size: Number of objects to pre-create. Must be <= max_size.

        Raises:
            ValueError: If max_size <= 0 or initial_size is out of range.
        """
        if max_size <= 0:
            raise ValueError("max_size must be a positive integer")
        if initial_size < 0:
            raise ValueError("initial_size must be non-negative")
        if initial_size > max_size:
            raise ValueError("initial_size cannot exceed max_size")

        self._factory = factory
        self._validator = validator
        self._destructor = destructor
        self._max_size = max_size
        self._pool: queue.LifoQueue[T | None] = queue.LifoQueue(maxsize=max_size)
        self._closed = False
        self._lock = threading.Lock()
        self._created = 0
        self._destroyed = 0

        # Empty slots sit below the pre-created objects so the LIFO hands out objects first
        for _ in range(max_size - initial_size):
            self._pool.put_nowait(None)
        try:
            for _ in range(initial_size):
                self._pool.put_nowait(self._create_object())
        except Exception:
            self.close()
            raise

    @property
    def max_size(self) -> int:
        """Return the maximum number of objects in the pool."""
        return self._max_size

    @property
    def available(self) -> int:
        """Return the number of slots that can be acquired without waiting."""
        return self._pool.qsize()

    @property
    def in_use(self) -> int:
        """Return the number of objects currently checked out."""
        return self._max_size - self._pool.qsize()

    @property
    def created(self) -> int:
        """Return the total number of objects created over the pool's life."""
        return self._created

    @property
    def destroyed(self) -> int:
        """Return the total number of objects destroyed over the pool's life."""
        return self._destroyed

    @property
    def closed(self) -> bool:
        return self._closed

    def _create_object(self) -> T:
        obj = self._factory()
        with self._lock:
            self._created += 1
        return obj

    def _validate_object(self, obj: T) -> bool:
        if self._validator is None:
            return True
        try:
            return bool(self._validator(obj))
        except Exception as e:
            log.warning("Validator raised for %r, replacing it: %s", obj, e)
            return False

    def _close_object(self, obj: T) -> None:
        with self._lock:
            self._destroyed += 1
        if self._destructor is None:
            return
        try:
            self._destructor(obj)
        except Exception:
            log.exception("Failed to destroy pooled object %r", obj)

    def _take_slot(self, slot: T | None) -> T:
        """
        Turn a slot popped from the queue into a usable object.

        Implements the "Lazy Slot" algorithm:
        - If slot is None: create a fresh object
        - If slot has an object: validate it, self-heal if invalid

        On failure the slot is returned as empty capacity so the pool
        does not shrink.
        """
        try:
            if slot is None:
                return self._create_object()
            if self._validate_object(slot):
                return slot
            log.debug("Replacing invalid pooled object %r", slot)
            self._close_object(slot)
            return self._create_object()
        except Exception:
            self._pool.put_nowait(None)
            raise

    def acquire(self, timeout: float | None = None) -> T | None:
        """
        Acquire an object from the pool.

        Args:
            timeout: Maximum time to wait in seconds. If None (default), wait
                     indefinitely. If <= 0, try to acquire without waiting
                     and return None if no object is available.

        Returns:
            A valid object from the pool, or None if timeout <= 0 and the
            pool is exhausted.

        Raises:
            PoolAcquireTimeoutError: If timeout > 0 expires before an object is available.
            PoolClosedError: If the pool is closed.
        """
        if self._closed:
            raise PoolClosedError("Pool is closed")

        try:
            if timeout is None:
                slot = self._pool.get()
            elif timeout <= 0:
                slot = self._pool.get_nowait()
            else:
                slot = self._pool.get(timeout=timeout)
        except queue.Empty:
            if timeout is not None and timeout <= 0:
                return None
            raise PoolAcquireTimeoutError(f"Failed to acquire object within {timeout} seconds") from None

        if self._closed:
            if slot is None:
                self._release_slot(None)
            else:
                self.release(slot)
            raise PoolClosedError("Pool is closed")

        return self._take_slot(slot)

    def release(self, obj: T) -> None:
        """
        Release an object back to the pool.

        The object is returned without validation; validation happens on
        the next acquire. If the pool has been closed the object is
        destroyed instead.
        """
        if self._closed:
            self._close_object(obj)
            self._release_slot(None)
            return
        self._release_slot(obj)

    def discard(self, obj: T) -> None:
        """Destroy a checked-out object and free its slot for a new one."""
        self._close_object(obj)
        self._release_slot(None)

    def _release_slot(self, slot: T | None) -> None:
        try:
            self._pool.put_nowait(slot)
        except queue.Full:
            if slot is not None:
                self._close_object(slot)

    @contextmanager
    def borrow(self, timeout: float | None = None) -> Iterator[T]:
        """
        Context manager that acquires an object and releases it on exit.

        Raises:
            PoolAcquireTimeoutError: If the pool stays exhausted for ``timeout``
                seconds, or immediately when ``timeout <= 0``.
            PoolClosedError: If the pool is closed.
        """
        obj = self.acquire(timeout=timeout)
        if obj is None:
            raise PoolAcquireTimeoutError("Pool is exhausted")
        try:
            yield obj
        finally:
            self.release(obj)

    def close(self) -> None:
        """
        Close the pool and destroy all idle objects.

        Checked-out objects are destroyed when they are released. Calling
        close more than once is safe.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True

        idle: list[T] = []
        drained = 0
        while True:
            try:
                slot = self._pool.get_nowait()
            except queue.Empty:
                break
            drained += 1
            if slot is not None:
                idle.append(slot)
        for obj in idle:
            self._close_object(obj)
        # Put the capacity back as empty slots so late releases never block
        for _ in range(drained):
            self._pool.put_nowait(None)

    def __enter__(self) -> "BlockingObjectPool[T]":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        status = "closed" if self._closed else "open"
        return f"BlockingObjectPool(max_size={self._max_size}, available={self.available}, status={status})"


__all__ = [
    "BlockingObjectPool",
    "ObjectPoolError",
    "PoolAcquireTimeoutError",
    "PoolClosedError",
]
