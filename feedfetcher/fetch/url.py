"""URL canonicalization utilities for fetched resources."""

from typing import TYPE_CHECKING, NamedTuple
from urllib.parse import urlsplit

from feedfetcher.fetch.constants import (
    CANONICAL_REDIRECT_STATUSES,
    TRACKING_PARAM_PREFIX,
)


if TYPE_CHECKING:
    from feedfetcher.fetch.models import ResponseDescriptor


class UrlComponents(NamedTuple):
    """Decomposed absolute URL.

    ``port`` is None when the URL relies on the scheme default and
    ``query`` is None when the URL has no query string.
    """

    scheme: str
    host: str
    port: int | None
    path: str
    query: str | None


def parse_url(url: str) -> UrlComponents:
    """Decompose an absolute URL into its components.

    Fragments and userinfo are not part of the components.

    Args:
        url: Absolute URL.

    Returns:
        UrlComponents for the URL.

    Raises:
        ValueError: If the URL has no scheme or host, or an invalid port.
    """
    parsed = urlsplit(url)
    if not parsed.scheme or not parsed.hostname:
        msg = f"URL must include scheme and host: {url!r}"
        raise ValueError(msg)

    port = parsed.port
    return UrlComponents(
        scheme=parsed.scheme.lower(),
        host=parsed.hostname,
        port=port if port and port > 0 else None,
        path=parsed.path or "/",
        query=parsed.query or None,
    )


def build_url(components: UrlComponents) -> str:
    """Reassemble URL components into a URL string.

    Args:
        components: URL components.

    Returns:
        ``scheme://host[:port]path[?query]``.
    """
    host = components.host
    if ":" in host and not host.startswith("["):
        host = f"[{host}]"

    url = f"{components.scheme}://{host}"
    if components.port:
        url = f"{url}:{components.port}"
    url = f"{url}{components.path}"
    if components.query:
        url = f"{url}?{components.query}"
    return url


def strip_tracking_params(query: str) -> str:
    """Remove campaign tracking parameters from a query string.

    Parameters whose key starts with ``utm_`` are dropped, empty
    segments are discarded and the rest are sorted so the result does
    not depend on parameter order.

    Args:
        query: Query string without the leading ``?``.

    Returns:
        Filtered, sorted query string (possibly empty).
    """
    if not query:
        return ""

    kept = [
        param
        for param in query.split("&")
        if param and not param.partition("=")[0].startswith(TRACKING_PARAM_PREFIX)
    ]
    return "&".join(sorted(kept))


def resolved_url(response: "ResponseDescriptor") -> str:
    """Pick the canonical URL of a fetched resource.

    The canonical URL is the target of the last 301/302/303 hop, or the
    original request URL when no such hop exists. Tracking parameters
    are stripped from its query string.

    Args:
        response: Response descriptor with its redirect chain.

    Returns:
        Canonical URL.
    """
    canonical = response.url
    for hop in reversed(response.redirects):
        if hop.status_code in CANONICAL_REDIRECT_STATUSES:
            canonical = hop.target_url
            break

    parts = parse_url(canonical)
    return build_url(parts._replace(query=strip_tracking_params(parts.query or "")))
