"""Asynchronous fetch dispatcher for conditional feed polling.

Each fetch runs as an asyncio task with three callback registrations:
a status check that may abort the exchange (304 Not Modified), a
completion handler that delivers the response to the caller, and an
error handler for transport failures.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx
import structlog

from feedfetcher.fetch.config import ClientPoolConfig
from feedfetcher.fetch.constants import (
    HTTP_STATUS_NOT_MODIFIED,
    HTTP_STATUS_OK_MAX,
    HTTP_STATUS_OK_MIN,
)
from feedfetcher.fetch.errors import classify_exception
from feedfetcher.fetch.executor import normalize_headers
from feedfetcher.fetch.metrics import FetchMetrics
from feedfetcher.fetch.models import FetchOutcome, FetchState, WorkItem
from feedfetcher.fetch.redact import redact_url_credentials


logger = structlog.get_logger()

# callback(identifier, url, status_code, headers_or_None, body_or_None)
ResponseCallback = Callable[
    [str | int, str, int, dict[str, str] | None, str | None], Any
]


class FetchSignal(str, Enum):
    """Result of the status check."""

    CONTINUE = "continue"
    ABORT = "abort"


def status_check(status_code: int) -> FetchSignal:
    """Abort on 304 Not Modified, continue on anything else.

    Args:
        status_code: Response status code.

    Returns:
        FetchSignal for the exchange.
    """
    logger.debug("status_check", status_code=status_code)
    if status_code == HTTP_STATUS_NOT_MODIFIED:
        return FetchSignal.ABORT
    return FetchSignal.CONTINUE


def log_fetch_error(item: WorkItem, exc: BaseException) -> None:
    """Default error handler: log the failure with the work item context."""
    error = classify_exception(exc)
    logger.error(
        "fetch_failed",
        component="dispatcher",
        identifier=item.identifier,
        url=redact_url_credentials(item.url),
        error_class=error.error_class.value,
        error=error.message,
    )


@dataclass(frozen=True)
class FetchCallbacks:
    """Callback registrations for one fetch."""

    completed: Callable[[WorkItem, int, dict[str, str], str | None], None]
    status: Callable[[int], FetchSignal] = status_check
    error: Callable[[WorkItem, BaseException], None] = log_fetch_error


def _deliver_to(
    callback: ResponseCallback,
) -> Callable[[WorkItem, int, dict[str, str], str | None], None]:
    def completed(
        item: WorkItem, status_code: int, headers: dict[str, str], body: str | None
    ) -> None:
        callback(item.identifier, item.url, status_code, headers, body)

    return completed


class AsyncFetchDispatcher:
    """Issues non-blocking conditional GETs on a shared async client.

    ``fetch`` returns a task handle immediately; status, completion and
    error callbacks run on the event loop driving the client.
    """

    def __init__(
        self,
        config: ClientPoolConfig | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            config: Pool configuration; defaults apply when omitted.
            client: Ready-made async client to use instead of building one.
            transport: Transport override for the built client.
        """
        self._config = config or ClientPoolConfig()
        params = self._config.default_params
        self._client = client or httpx.AsyncClient(
            transport=transport,
            limits=self._config.build_limits(),
            timeout=self._config.build_timeout(),
            headers={"User-Agent": self._config.user_agent},
            cookies=params.build_cookie_jar(),
            follow_redirects=params.follow_redirects,
            max_redirects=params.max_redirects,
            trust_env=False,
        )
        self._metrics = FetchMetrics.get_instance()
        self._log = logger.bind(component="dispatcher")

    @property
    def client(self) -> httpx.AsyncClient:
        """Underlying async client."""
        return self._client

    def fetch(
        self,
        item: WorkItem | tuple[Any, ...],
        callback: ResponseCallback,
        *,
        on_status: Callable[[int], FetchSignal] = status_check,
        on_error: Callable[[WorkItem, BaseException], None] = log_fetch_error,
    ) -> "asyncio.Task[FetchOutcome]":
        """Schedule a fetch and return its task handle immediately.

        Must be called from a running event loop.

        Args:
            item: Work item or ``(identifier, url[, headers])`` tuple.
            callback: Receives ``(identifier, url, status, headers, body)``
                once per non-aborted fetch.
            on_status: Status check deciding whether to abort.
            on_error: Transport error handler.

        Returns:
            Task resolving to the FetchOutcome.
        """
        work_item = WorkItem.from_value(item)
        callbacks = FetchCallbacks(
            completed=_deliver_to(callback),
            status=on_status,
            error=on_error,
        )
        self._log.debug(
            "fetch_scheduled",
            identifier=work_item.identifier,
            url=redact_url_credentials(work_item.url),
        )
        return asyncio.get_running_loop().create_task(self._run(work_item, callbacks))

    async def _run(self, item: WorkItem, callbacks: FetchCallbacks) -> FetchOutcome:
        log = self._log.bind(
            identifier=item.identifier,
            url=redact_url_credentials(item.url),
        )

        try:
            async with self._client.stream("GET", item.url, headers=item.headers) as response:
                status_code = response.status_code
                if callbacks.status(status_code) == FetchSignal.ABORT:
                    self._metrics.record_not_modified()
                    log.debug("fetch_not_modified", status_code=status_code)
                    return FetchOutcome(
                        identifier=item.identifier,
                        url=item.url,
                        state=FetchState.ABORTED,
                        status_code=status_code,
                    )

                headers = normalize_headers(response.headers)
                body: str | None = None
                if HTTP_STATUS_OK_MIN <= status_code < HTTP_STATUS_OK_MAX:
                    await response.aread()
                    body = response.text
                self._metrics.record_request(
                    status_code, len(response.content) if body is not None else 0
                )
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            error = classify_exception(exc)
            self._metrics.record_failure(error.error_class)
            callbacks.error(item, exc)
            return FetchOutcome(
                identifier=item.identifier,
                url=item.url,
                state=FetchState.FAILED,
                error=error,
            )

        callbacks.completed(item, status_code, headers, body)
        log.debug("fetch_complete", status_code=status_code, has_body=body is not None)
        return FetchOutcome(
            identifier=item.identifier,
            url=item.url,
            state=FetchState.COMPLETED,
            status_code=status_code,
        )

    async def aclose(self) -> None:
        """Close the async client."""
        await self._client.aclose()

    async def __aenter__(self) -> "AsyncFetchDispatcher":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
