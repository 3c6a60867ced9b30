"""Connection pool clients for the synchronous fetch path.

Provides:
- A long-lived pooled client with idle TTL eviction and total/per-route caps
- A basic single-connection client for low-volume callers
- A transport wrapper that bounds concurrent exchanges per route
"""

import threading
from collections.abc import Callable, Iterator
from typing import NamedTuple

import httpx
import structlog

from feedfetcher.fetch.config import ClientParams, ClientPoolConfig
from feedfetcher.fetch.constants import DEFAULT_PORTS


logger = structlog.get_logger()


class RouteKey(NamedTuple):
    """Connection route: scheme, host and effective port."""

    scheme: str
    host: str
    port: int | None

    @classmethod
    def for_url(cls, url: httpx.URL) -> "RouteKey":
        """Build the route key for a request URL."""
        scheme = url.scheme.lower()
        return cls(
            scheme=scheme,
            host=url.host.lower(),
            port=url.port or DEFAULT_PORTS.get(scheme),
        )


class _RouteSlotStream(httpx.SyncByteStream):
    """Response stream that hands the route slot back when closed."""

    def __init__(self, stream: httpx.SyncByteStream, release: Callable[[], None]) -> None:
        self._stream = stream
        self._release = release
        self._released = False

    def __iter__(self) -> Iterator[bytes]:
        yield from self._stream

    def close(self) -> None:
        try:
            self._stream.close()
        finally:
            if not self._released:
                self._released = True
                self._release()


class RouteLimitedTransport(httpx.BaseTransport):
    """HTTPX transport bounding concurrent exchanges per route.

    A slot is taken before the request is handed to the inner transport
    and returned when the response stream is closed.
    """

    def __init__(
        self,
        inner: httpx.BaseTransport,
        *,
        max_per_route: int,
        acquire_timeout: float | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            inner: Transport performing the actual exchange.
            max_per_route: Maximum concurrent exchanges per route.
            acquire_timeout: Seconds to wait for a slot; None waits forever.
        """
        self._inner = inner
        self._max_per_route = max_per_route
        self._acquire_timeout = acquire_timeout
        self._semaphores: dict[RouteKey, threading.BoundedSemaphore] = {}
        self._in_use: dict[RouteKey, int] = {}
        self._lock = threading.Lock()
        self._closed = False

    @property
    def max_per_route(self) -> int:
        """Per-route concurrency cap."""
        return self._max_per_route

    def in_use(self, route: RouteKey) -> int:
        """Number of slots currently held for a route."""
        with self._lock:
            return self._in_use.get(route, 0)

    def _semaphore_for(self, route: RouteKey) -> threading.BoundedSemaphore:
        with self._lock:
            semaphore = self._semaphores.get(route)
            if semaphore is None:
                semaphore = threading.BoundedSemaphore(self._max_per_route)
                self._semaphores[route] = semaphore
            return semaphore

    def _acquire(self, route: RouteKey, request: httpx.Request) -> Callable[[], None]:
        semaphore = self._semaphore_for(route)
        if not semaphore.acquire(timeout=self._acquire_timeout):
            msg = (
                f"No connection slot for {route.scheme}://{route.host}:{route.port} "
                f"within {self._acquire_timeout}s"
            )
            raise httpx.PoolTimeout(msg, request=request)

        with self._lock:
            self._in_use[route] = self._in_use.get(route, 0) + 1

        def release() -> None:
            with self._lock:
                self._in_use[route] -= 1
            semaphore.release()

        return release

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        """Take a route slot and delegate to the inner transport."""
        route = RouteKey.for_url(request.url)
        release = self._acquire(route, request)

        try:
            response = self._inner.handle_request(request)
        except BaseException:
            release()
            raise

        if not isinstance(response.stream, httpx.SyncByteStream):
            release()
            return response

        return httpx.Response(
            status_code=response.status_code,
            headers=response.headers,
            stream=_RouteSlotStream(response.stream, release),
            extensions=response.extensions,
        )

    def close(self) -> None:
        """Close the inner transport once."""
        if self._closed:
            return
        self._closed = True
        self._inner.close()


class PooledClient:
    """Thread-safe pooled HTTP client.

    Wraps a long-lived ``httpx.Client`` with scheme handlers for http
    and https, idle-connection TTL eviction, and total/per-route caps.
    Redirects are never followed natively; callers drive them through
    a redirect decider.
    """

    def __init__(
        self,
        config: ClientPoolConfig | None = None,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Pool configuration; defaults apply when omitted.
            transport: Inner transport override (e.g. httpx.MockTransport).
        """
        self._config = config or ClientPoolConfig()
        inner = transport or httpx.HTTPTransport(
            limits=self._build_limits(),
            verify=True,
        )
        self._transport = RouteLimitedTransport(
            inner,
            max_per_route=self._route_cap(),
            acquire_timeout=self._config.pool_timeout_seconds,
        )
        self._client = httpx.Client(
            mounts={
                "http://": self._transport,
                "https://": self._transport,
            },
            headers={"User-Agent": self._config.user_agent},
            cookies=self._config.default_params.build_cookie_jar(),
            timeout=self._config.build_timeout(),
            follow_redirects=False,
            trust_env=False,
        )
        logger.debug(
            "pool_client_created",
            component="pool",
            client=type(self).__name__,
            ttl_seconds=self._config.ttl_seconds,
            max_total_connections=self._config.max_total_connections,
            max_per_route=self._route_cap(),
        )

    def _build_limits(self) -> httpx.Limits:
        return self._config.build_limits()

    def _route_cap(self) -> int:
        return self._config.max_per_route

    @property
    def config(self) -> ClientPoolConfig:
        """Configuration the pool was built with."""
        return self._config

    @property
    def params(self) -> ClientParams:
        """Default request parameters."""
        return self._config.default_params

    @property
    def transport(self) -> RouteLimitedTransport:
        """Route-limited transport shared by both schemes."""
        return self._transport

    def build_request(
        self,
        method: str,
        url: str,
        *,
        headers: httpx.Headers | None = None,
        content: bytes | None = None,
    ) -> httpx.Request:
        """Build a native request carrying the client defaults."""
        return self._client.build_request(method, url, headers=headers, content=content)

    def execute(self, request: httpx.Request) -> httpx.Response:
        """Send one request without following redirects.

        The body is read before returning, so the connection slot is
        released by the time the response is handed back.
        """
        return self._client.send(request, follow_redirects=False)

    def close(self) -> None:
        """Close pooled connections."""
        self._client.close()

    def __enter__(self) -> "PooledClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class BasicClient(PooledClient):
    """Unpooled single-connection client for low-volume callers."""

    def _build_limits(self) -> httpx.Limits:
        return httpx.Limits(
            max_connections=1,
            max_keepalive_connections=0,
            keepalive_expiry=0.0,
        )

    def _route_cap(self) -> int:
        return 1


def create_pooled_client(config: ClientPoolConfig | None = None) -> PooledClient:
    """Create a long-lived pooled client."""
    return PooledClient(config)


def create_basic_client(config: ClientPoolConfig | None = None) -> BasicClient:
    """Create a single-connection client."""
    return BasicClient(config)
