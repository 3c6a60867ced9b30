"""Unit tests for the worker pool adapter."""

import asyncio
from typing import Any

import httpx
import pytest
from structlog.testing import capture_logs

from feedfetcher.fetch.dispatcher import AsyncFetchDispatcher
from feedfetcher.fetch.models import FetchOutcome, FetchState, WorkItem
from feedfetcher.pool.worker import (
    PoolResult,
    available_parallelism,
    iter_work,
    run_pool,
    run_pool_sync,
)


class InFlightTracker:
    """Fake fetch function that tracks how many fetches overlap."""

    def __init__(self, delay: float = 0.002) -> None:
        self.delay = delay
        self.in_flight = 0
        self.peak = 0
        self.seen: list[Any] = []

    async def _fetch(self, item: Any, callback: Any) -> FetchOutcome:
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1
        self.seen.append(item)
        callback(item, "http://feeds.test/", 200, {}, "")
        return FetchOutcome(
            identifier=item,
            url="http://feeds.test/",
            state=FetchState.COMPLETED,
            status_code=200,
        )

    def __call__(self, item: Any, callback: Any) -> "asyncio.Task[FetchOutcome]":
        return asyncio.get_running_loop().create_task(self._fetch(item, callback))


class TestRunPool:
    """Tests for run_pool admission control."""

    @pytest.mark.unit
    def test_bounded_in_flight(self) -> None:
        """Test no more than the concurrency bound are ever in flight."""
        tracker = InFlightTracker()
        done: list[tuple[Any, ...]] = []

        result = asyncio.run(
            run_pool(tracker, iter_work(range(50)), lambda *r: done.append(r), concurrency=4)
        )

        assert tracker.peak <= 4
        assert result.max_in_flight <= 4
        assert result.submitted == 50
        assert result.completed == 50
        assert len(done) == 50
        assert sorted(tracker.seen) == list(range(50))

    @pytest.mark.unit
    def test_concurrency_reached(self) -> None:
        """Test the pool actually overlaps fetches up to the bound."""
        tracker = InFlightTracker(delay=0.05)

        result = asyncio.run(run_pool(tracker, iter_work(range(10)), lambda *r: None, 5))

        assert result.max_in_flight == 5

    @pytest.mark.unit
    def test_empty_queue(self) -> None:
        """Test an immediately drained queue returns without dispatching."""
        tracker = InFlightTracker()

        result = asyncio.run(run_pool(tracker, lambda: None, lambda *r: None, 3))

        assert result == PoolResult(
            concurrency=3, duration_ms=result.duration_ms
        )
        assert tracker.seen == []

    @pytest.mark.unit
    @pytest.mark.parametrize("concurrency", [0, -1])
    def test_invalid_concurrency(self, concurrency: int) -> None:
        """Test concurrency below one is rejected."""
        with pytest.raises(ValueError, match="at least 1"):
            asyncio.run(run_pool(InFlightTracker(), lambda: None, lambda *r: None, concurrency))

    @pytest.mark.unit
    def test_default_concurrency(self) -> None:
        """Test the bound defaults to available parallelism."""
        result = asyncio.run(run_pool(InFlightTracker(), lambda: None, lambda *r: None))

        assert result.concurrency == available_parallelism()

    @pytest.mark.unit
    def test_coroutine_work_source(self) -> None:
        """Test get_work may be a coroutine function."""
        queue: asyncio.Queue[int | None] = asyncio.Queue()

        async def scenario() -> PoolResult:
            for n in range(6):
                queue.put_nowait(n)
            queue.put_nowait(None)
            return await run_pool(InFlightTracker(), queue.get, lambda *r: None, 2)

        result = asyncio.run(scenario())

        assert result.completed == 6

    @pytest.mark.unit
    def test_failed_fetch_counted_and_logged(self) -> None:
        """Test a fetch raising an exception is counted and logged."""

        async def explode(item: Any, callback: Any) -> None:
            if item == 2:
                raise RuntimeError("callback blew up")

        with capture_logs() as logs:
            result = asyncio.run(run_pool(explode, iter_work(range(4)), lambda *r: None, 2))

        assert result.failed == 1
        assert result.completed == 3
        failures = [entry for entry in logs if entry["event"] == "fetch_task_failed"]
        assert failures[0]["error"] == "callback blew up"

    @pytest.mark.unit
    def test_dispatch_error_does_not_stop_pool(self) -> None:
        """Test a synchronous dispatch failure releases its slot."""

        def reject(item: Any, callback: Any) -> Any:
            raise ValueError(f"bad item {item}")

        with capture_logs() as logs:
            result = asyncio.run(run_pool(reject, iter_work(range(3)), lambda *r: None, 1))

        assert result.failed == 3
        assert result.submitted == 0
        assert sum(entry["event"] == "fetch_dispatch_failed" for entry in logs) == 3

    @pytest.mark.unit
    def test_broken_work_source_drains_in_flight(self) -> None:
        """Test fetches already dispatched still deliver when get_work raises."""
        tracker = InFlightTracker(delay=0.2)
        items = iter(["a", "b"])
        done: list[tuple[Any, ...]] = []

        def get_work() -> Any:
            item = next(items, None)
            if item is None:
                raise RuntimeError("queue broken")
            return item

        with capture_logs() as logs:
            with pytest.raises(RuntimeError, match="queue broken"):
                asyncio.run(run_pool(tracker, get_work, lambda *r: done.append(r), 4))

        assert sorted(tracker.seen) == ["a", "b"]
        assert sorted(call[0] for call in done) == ["a", "b"]
        assert tracker.in_flight == 0
        failures = [entry for entry in logs if entry["event"] == "pool_failed"]
        assert failures[0]["error"] == "queue broken"
        assert failures[0]["in_flight"] == 2
        assert not any(entry["event"] == "pool_finished" for entry in logs)


class TestRunPoolWithDispatcher:
    """Tests for the pool driving the real dispatcher."""

    @pytest.mark.unit
    def test_counts_by_outcome(self) -> None:
        """Test completed, not-modified and failed fetches are tallied."""

        def handler(request: httpx.Request) -> httpx.Response:
            name = request.url.path.strip("/")
            if name.startswith("cached"):
                return httpx.Response(304)
            if name.startswith("down"):
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200, text=f"<rss>{name}</rss>")

        items = [
            WorkItem(identifier=n, url=f"http://feeds.test/{name}")
            for n, name in enumerate(["a", "cached-1", "b", "down", "cached-2", "c"])
        ]
        delivered: list[tuple[Any, ...]] = []

        async def scenario() -> PoolResult:
            async with AsyncFetchDispatcher(
                transport=httpx.MockTransport(handler)
            ) as dispatcher:
                return await run_pool(
                    dispatcher.fetch, iter_work(items), lambda *r: delivered.append(r), 3
                )

        result = asyncio.run(scenario())

        assert result.completed == 3
        assert result.aborted == 2
        assert result.failed == 1
        assert sorted(call[0] for call in delivered) == [0, 2, 5]
        assert all(call[4].startswith("<rss>") for call in delivered)


class TestIterWork:
    """Tests for iter_work."""

    @pytest.mark.unit
    def test_returns_none_when_exhausted(self) -> None:
        """Test the source yields items then None forever."""
        get_work = iter_work(["a", "b"])

        assert [get_work(), get_work(), get_work(), get_work()] == ["a", "b", None, None]


class TestRunPoolSync:
    """Tests for the synchronous entry point."""

    @pytest.mark.unit
    def test_runs_to_completion(self) -> None:
        """Test the pool can be driven from plain synchronous code."""
        done: list[tuple[Any, ...]] = []

        result = run_pool_sync(
            InFlightTracker(), iter_work(["x", "y"]), lambda *r: done.append(r), 2
        )

        assert result.completed == 2
        assert sorted(call[0] for call in done) == ["x", "y"]
