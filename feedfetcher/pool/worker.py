"""Worker pool adapter feeding work items to the async fetch dispatcher."""

import asyncio
import inspect
import os
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any, Protocol

import structlog

from feedfetcher.fetch.models import FetchOutcome, FetchState


logger = structlog.get_logger()

FetchFn = Callable[[Any, Callable[..., Any]], Awaitable[Any]]


class WorkSource(Protocol):
    """External work queue."""

    def get_work(self) -> Any:
        """Return the next work item, or None when the queue is drained."""
        ...

    def put_done(self, *result: Any) -> Any:
        """Deliver a completed result downstream."""
        ...


@dataclass
class PoolResult:
    """Summary of one pool run."""

    concurrency: int
    submitted: int = 0
    completed: int = 0
    aborted: int = 0
    failed: int = 0
    max_in_flight: int = 0
    duration_ms: float = 0.0


def available_parallelism() -> int:
    """Number of processing units available to this process."""
    if hasattr(os, "sched_getaffinity"):
        return max(1, len(os.sched_getaffinity(0)))
    return max(1, os.cpu_count() or 1)


def iter_work(items: Iterable[Any]) -> Callable[[], Any]:
    """Turn an iterable into a ``get_work`` callable returning None when exhausted."""
    iterator = iter(items)

    def get_work() -> Any:
        return next(iterator, None)

    return get_work


async def _next_item(get_work: Callable[[], Any]) -> Any:
    if inspect.iscoroutinefunction(get_work):
        return await get_work()
    item = await asyncio.to_thread(get_work)
    if inspect.isawaitable(item):
        return await item
    return item


async def run_pool(
    fetch_fn: FetchFn,
    get_work: Callable[[], Any],
    put_done: Callable[..., Any],
    concurrency: int | None = None,
) -> PoolResult:
    """Pull work items and dispatch them with bounded concurrency.

    An admission slot is taken before each item is pulled and released
    when its fetch completes, so at most ``concurrency`` fetches are in
    flight. Returns once the queue yields None and every fetch settled.

    Args:
        fetch_fn: ``fetch_fn(item, put_done)`` returning an awaitable handle.
        get_work: Returns the next item or None; may block or be a coroutine.
        put_done: Result callback handed to every fetch.
        concurrency: In-flight bound; defaults to available parallelism.

    Returns:
        PoolResult with per-state counts.

    Raises:
        ValueError: If concurrency is below 1.
        Exception: Whatever ``get_work`` raised, after in-flight fetches settled.
    """
    limit = available_parallelism() if concurrency is None else concurrency
    if limit < 1:
        msg = f"concurrency must be at least 1, got {limit}"
        raise ValueError(msg)

    log = logger.bind(component="pool", concurrency=limit)
    result = PoolResult(concurrency=limit)
    slots = asyncio.Semaphore(limit)
    pending: set[asyncio.Future[Any]] = set()
    start_time_ns = time.perf_counter_ns()

    def settle(task: "asyncio.Future[Any]") -> None:
        pending.discard(task)
        slots.release()
        if task.cancelled():
            result.failed += 1
            log.warning("fetch_task_cancelled")
            return
        exc = task.exception()
        if exc is not None:
            result.failed += 1
            log.error(
                "fetch_task_failed",
                error_type=type(exc).__name__,
                error=str(exc),
                exc_info=exc,
            )
            return
        outcome = task.result()
        if isinstance(outcome, FetchOutcome):
            if outcome.state == FetchState.ABORTED:
                result.aborted += 1
            elif outcome.state == FetchState.FAILED:
                result.failed += 1
            else:
                result.completed += 1
        else:
            result.completed += 1

    log.info("pool_started")

    try:
        while True:
            await slots.acquire()
            item = await _next_item(get_work)
            if item is None:
                slots.release()
                break

            try:
                handle = asyncio.ensure_future(fetch_fn(item, put_done))
            except Exception as exc:
                slots.release()
                result.failed += 1
                log.error("fetch_dispatch_failed", error=str(exc), exc_info=exc)
                continue

            result.submitted += 1
            pending.add(handle)
            result.max_in_flight = max(result.max_in_flight, len(pending))
            handle.add_done_callback(settle)
    except Exception as exc:
        log.error(
            "pool_failed",
            error_type=type(exc).__name__,
            error=str(exc),
            in_flight=len(pending),
            exc_info=exc,
        )
        raise
    finally:
        # In-flight fetches still deliver through put_done when the queue breaks.
        if pending:
            await asyncio.wait(set(pending))

    result.duration_ms = (time.perf_counter_ns() - start_time_ns) / 1_000_000
    log.info(
        "pool_finished",
        submitted=result.submitted,
        completed=result.completed,
        aborted=result.aborted,
        failed=result.failed,
        max_in_flight=result.max_in_flight,
        duration_ms=round(result.duration_ms, 2),
    )
    return result


def run_pool_sync(
    fetch_fn: FetchFn,
    get_work: Callable[[], Any],
    put_done: Callable[..., Any],
    concurrency: int | None = None,
) -> PoolResult:
    """Run the pool to completion on a fresh event loop.

    For synchronous callers; must not be called from a running loop.
    """
    return asyncio.run(run_pool(fetch_fn, get_work, put_done, concurrency))
