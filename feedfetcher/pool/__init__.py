"""Worker pool adapter over an external work queue."""

from feedfetcher.pool.worker import (
    PoolResult,
    WorkSource,
    available_parallelism,
    iter_work,
    run_pool,
    run_pool_sync,
)


__all__ = [
    "PoolResult",
    "WorkSource",
    "available_parallelism",
    "iter_work",
    "run_pool",
    "run_pool_sync",
]
