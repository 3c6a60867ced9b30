"""Integration tests for conditional polling through the async dispatcher."""

import asyncio
import threading
from collections.abc import Generator
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any

import pytest

from feedfetcher.fetch.dispatcher import AsyncFetchDispatcher
from feedfetcher.fetch.metrics import FetchMetrics
from feedfetcher.fetch.models import FetchState, WorkItem
from feedfetcher.pool.worker import PoolResult, iter_work, run_pool


def get_server_url(server: ThreadingHTTPServer, path: str) -> str:
    """Get the URL for a path on the test server."""
    host, port = server.server_address[0], server.server_address[1]
    if isinstance(host, bytes):
        host = host.decode("utf-8")
    return f"http://{host}:{port}{path}"


class ConditionalFeedHandler(BaseHTTPRequestHandler):
    """Feed server honouring If-None-Match and If-Modified-Since."""

    etag: str = '"abc123"'
    last_modified: str = "Mon, 01 Jan 2024 00:00:00 GMT"
    body: bytes = b"<rss><item>hello</item></rss>"

    def log_message(self, format: str, *args: object) -> None:  # noqa: A002
        """Suppress log messages during tests."""

    def do_GET(self) -> None:  # noqa: N802
        """Handle GET requests with conditional caching support."""
        if self.path == "/missing":
            self.send_response(404)
            self.send_header("Content-Length", "9")
            self.end_headers()
            self.wfile.write(b"not found")
            return

        if (
            self.headers.get("If-None-Match") == self.etag
            or self.headers.get("If-Modified-Since") == self.last_modified
        ):
            self.send_response(304)
            self.send_header("ETag", self.etag)
            self.end_headers()
            return

        self.send_response(200)
        self.send_header("Content-Type", "application/rss+xml")
        self.send_header("Content-Length", str(len(self.body)))
        self.send_header("ETag", self.etag)
        self.send_header("Last-Modified", self.last_modified)
        self.end_headers()
        self.wfile.write(self.body)


@pytest.fixture
def feed_server() -> Generator[ThreadingHTTPServer]:
    """Start a local conditional feed server."""
    server = ThreadingHTTPServer(("127.0.0.1", 0), ConditionalFeedHandler)
    thread = threading.Thread(target=server.serve_forever)
    thread.daemon = True
    thread.start()
    yield server
    server.shutdown()
    server.server_close()


class TestConditionalPolling:
    """Integration tests for 304 short-circuiting."""

    @pytest.mark.integration
    def test_first_poll_then_not_modified(self, feed_server: ThreadingHTTPServer) -> None:
        """Test a second poll with the returned ETag is aborted."""
        url = get_server_url(feed_server, "/feed.xml")
        delivered: list[tuple[Any, ...]] = []

        async def scenario() -> tuple[FetchState, FetchState]:
            async with AsyncFetchDispatcher() as dispatcher:
                first = await dispatcher.fetch(
                    ("feed", url), lambda *r: delivered.append(r)
                )
                etag = delivered[0][3]["etag"]
                second = await dispatcher.fetch(
                    ("feed", url, {"If-None-Match": etag}),
                    lambda *r: delivered.append(r),
                )
                return first.state, second.state

        first_state, second_state = asyncio.run(scenario())

        assert first_state == FetchState.COMPLETED
        assert second_state == FetchState.ABORTED
        assert len(delivered) == 1
        assert delivered[0][4] == "<rss><item>hello</item></rss>"
        assert FetchMetrics.get_instance().http_not_modified_total == 1

    @pytest.mark.integration
    def test_pool_over_mixed_feeds(self, feed_server: ThreadingHTTPServer) -> None:
        """Test the pool tallies fresh, unchanged and missing feeds."""
        feed = get_server_url(feed_server, "/feed.xml")
        missing = get_server_url(feed_server, "/missing")
        items = [
            WorkItem(identifier=1, url=feed),
            WorkItem(
                identifier=2,
                url=feed,
                headers={"If-Modified-Since": ConditionalFeedHandler.last_modified},
            ),
            WorkItem(identifier=3, url=missing),
            WorkItem(identifier=4, url=feed, headers={"If-None-Match": '"abc123"'}),
        ]
        delivered: dict[Any, tuple[Any, ...]] = {}

        async def scenario() -> PoolResult:
            async with AsyncFetchDispatcher() as dispatcher:
                return await run_pool(
                    dispatcher.fetch,
                    iter_work(items),
                    lambda identifier, *rest: delivered.__setitem__(identifier, rest),
                    2,
                )

        result = asyncio.run(scenario())

        assert result.completed == 2
        assert result.aborted == 2
        assert result.failed == 0
        assert set(delivered) == {1, 3}
        assert delivered[3][1] == 404
        assert delivered[3][3] is None
