from .object_pool import (
    BlockingObjectPool,
    ObjectPoolError,
    PoolAcquireTimeoutError,
    PoolClosedError,
)

__all__ = [
    "BlockingObjectPool",
    "ObjectPoolError",
    "PoolAcquireTimeoutError",
    "PoolClosedError",
]
