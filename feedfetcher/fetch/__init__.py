"""HTTP fetch layer for bulk feed polling.

This module provides:
- A thread-safe pooled client with idle TTL eviction and per-route caps
- A request executor that records every redirect hop
- URL canonicalization over redirect chains
- An async dispatcher that short-circuits on 304 Not Modified
"""

from feedfetcher.fetch.config import ClientParams, ClientPoolConfig
from feedfetcher.fetch.dispatcher import (
    AsyncFetchDispatcher,
    FetchCallbacks,
    FetchSignal,
    log_fetch_error,
    status_check,
)
from feedfetcher.fetch.errors import (
    FeedFetcherError,
    RelativeRedirectError,
    RequestFailedError,
    classify_exception,
)
from feedfetcher.fetch.executor import build_native_request, execute, normalize_headers
from feedfetcher.fetch.metrics import FetchMetrics
from feedfetcher.fetch.models import (
    FetchError,
    FetchErrorClass,
    FetchOutcome,
    FetchState,
    HttpMethod,
    RedirectHop,
    RequestDescriptor,
    ResponseDescriptor,
    WorkItem,
)
from feedfetcher.fetch.pool import (
    BasicClient,
    PooledClient,
    RouteKey,
    RouteLimitedTransport,
    create_basic_client,
    create_pooled_client,
)
from feedfetcher.fetch.redact import redact_headers, redact_url_credentials
from feedfetcher.fetch.redirects import (
    DefaultRedirectDecider,
    RedirectContext,
    RedirectDecider,
    TrackingRedirectDecider,
    create_tracking_decider,
)
from feedfetcher.fetch.url import (
    UrlComponents,
    build_url,
    parse_url,
    resolved_url,
    strip_tracking_params,
)


__all__ = [
    # Pool
    "PooledClient",
    "BasicClient",
    "RouteKey",
    "RouteLimitedTransport",
    "create_pooled_client",
    "create_basic_client",
    # Config
    "ClientPoolConfig",
    "ClientParams",
    # Redirects
    "RedirectDecider",
    "RedirectContext",
    "DefaultRedirectDecider",
    "TrackingRedirectDecider",
    "create_tracking_decider",
    # Executor
    "execute",
    "build_native_request",
    "normalize_headers",
    # URL
    "UrlComponents",
    "parse_url",
    "build_url",
    "strip_tracking_params",
    "resolved_url",
    # Dispatcher
    "AsyncFetchDispatcher",
    "FetchCallbacks",
    "FetchSignal",
    "status_check",
    "log_fetch_error",
    # Models
    "HttpMethod",
    "RequestDescriptor",
    "ResponseDescriptor",
    "RedirectHop",
    "WorkItem",
    "FetchState",
    "FetchOutcome",
    "FetchError",
    "FetchErrorClass",
    # Errors
    "FeedFetcherError",
    "RequestFailedError",
    "RelativeRedirectError",
    "classify_exception",
    # Metrics
    "FetchMetrics",
    # Redaction
    "redact_headers",
    "redact_url_credentials",
]
