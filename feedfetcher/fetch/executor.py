"""Synchronous request executor with redirect tracking."""

import time

import httpx
import structlog

from feedfetcher.fetch.constants import (
    HTTP_STATUS_NO_CONTENT,
    HTTP_STATUS_NOT_MODIFIED,
    HTTP_STATUS_OK_MIN,
)
from feedfetcher.fetch.errors import (
    RelativeRedirectError,
    RequestFailedError,
    classify_exception,
)
from feedfetcher.fetch.metrics import FetchMetrics
from feedfetcher.fetch.models import (
    HttpMethod,
    RedirectHop,
    RequestDescriptor,
    ResponseDescriptor,
)
from feedfetcher.fetch.pool import PooledClient, create_basic_client
from feedfetcher.fetch.redact import redact_headers, redact_url_credentials
from feedfetcher.fetch.redirects import RedirectContext, TrackingRedirectDecider


logger = structlog.get_logger()

_NO_ENTITY_STATUSES = frozenset({HTTP_STATUS_NO_CONTENT, HTTP_STATUS_NOT_MODIFIED})


def execute(
    request: RequestDescriptor,
    *,
    client: PooledClient | None = None,
) -> ResponseDescriptor:
    """Execute a request and return a normalized response.

    Args:
        request: Abstract request descriptor.
        client: Pooled client to send through (keyword only). A fresh
            basic client is created and closed around the call when
            omitted.

    Returns:
        ResponseDescriptor with the redirect chain observed for this call.

    Raises:
        RequestFailedError: If the exchange failed at the transport level.
    """
    if client is None:
        with create_basic_client() as basic:
            return _execute(basic, request)
    return _execute(client, request)


def build_native_request(
    client: PooledClient,
    request: RequestDescriptor,
) -> httpx.Request:
    """Translate a request descriptor into an httpx request.

    Args:
        client: Client supplying default headers and cookies.
        request: Request descriptor.

    Returns:
        Native request ready to send.
    """
    headers = httpx.Headers()
    content_type = request.content_type_header
    if content_type:
        headers["Content-Type"] = content_type
    headers["Connection"] = "close"
    for name, value in request.headers.items():
        headers[name] = value

    return client.build_request(
        request.method.value,
        request.url,
        headers=headers,
        content=request.body,
    )


def normalize_headers(headers: httpx.Headers) -> dict[str, str]:
    """Lower-case header names; the last value of a repeated header wins."""
    return {name.lower(): value for name, value in headers.multi_items()}


def _entity_content(request: RequestDescriptor, response: httpx.Response) -> bytes | None:
    if request.method == HttpMethod.HEAD:
        return None
    if response.status_code < HTTP_STATUS_OK_MIN or response.status_code in _NO_ENTITY_STATUSES:
        return None
    return response.content


def _execute(client: PooledClient, request: RequestDescriptor) -> ResponseDescriptor:
    url = request.url
    log = logger.bind(
        component="executor",
        method=request.method.value,
        url=redact_url_credentials(url),
    )
    metrics = FetchMetrics.get_instance()

    # Owned by this call only; never installed on the shared client.
    hops: list[RedirectHop] = []
    decider = TrackingRedirectDecider(hops)
    context = RedirectContext(params=client.params, visited={url})

    start_time_ns = time.perf_counter_ns()
    try:
        native_request = build_native_request(client, request)
        log.debug("request_started", headers=redact_headers(dict(native_request.headers)))
        response = client.execute(native_request)
        while (next_request := decider.decide(native_request, response, context)) is not None:
            response.close()
            native_request = next_request
            response = client.execute(native_request)
    except (httpx.HTTPError, httpx.InvalidURL, RelativeRedirectError) as exc:
        error = classify_exception(exc)
        metrics.record_failure(error.error_class)
        log.warning(
            "request_failed",
            error_class=error.error_class.value,
            error=error.message,
            redirects=len(hops),
        )
        raise RequestFailedError(request, error, exc) from exc

    duration_ms = (time.perf_counter_ns() - start_time_ns) / 1_000_000
    content = _entity_content(request, response)
    metrics.record_request(response.status_code, len(content or b""))
    metrics.record_redirects(len(hops))
    metrics.record_duration(duration_ms)

    log.debug(
        "request_complete",
        status_code=response.status_code,
        redirects=len(hops),
        bytes=len(content or b""),
        duration_ms=round(duration_ms, 2),
    )

    return ResponseDescriptor(
        status_code=response.status_code,
        headers=normalize_headers(response.headers),
        content=content,
        url=url,
        redirects=tuple(hops),
    )
