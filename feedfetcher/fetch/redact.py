"""Redaction of secrets in headers and feed URLs before they reach logs.

Private feeds commonly authenticate with userinfo (``user:pass@host``)
or with a token in the query string; both are masked alongside the
usual credential headers.
"""

from collections.abc import Mapping
from urllib.parse import urlsplit, urlunsplit


SENSITIVE_HEADERS = frozenset(
    {
        "authorization",
        "proxy-authorization",
        "cookie",
        "set-cookie",
        "x-api-key",
        "x-auth-token",
    }
)

# Query parameter keys carrying feed access tokens
SENSITIVE_QUERY_KEYS = frozenset(
    {
        "access_token",
        "api_key",
        "apikey",
        "auth",
        "key",
        "password",
        "secret",
        "token",
    }
)

REDACTED_VALUE = "[REDACTED]"


def is_sensitive_header(header_name: str) -> bool:
    """Check if a header name is sensitive."""
    return header_name.lower() in SENSITIVE_HEADERS


def redact_headers(headers: Mapping[str, str] | None) -> dict[str, str]:
    """Mask credential headers.

    Args:
        headers: Request or response headers. None is treated as empty.

    Returns:
        New dictionary; conditional GET validators pass through untouched.
    """
    if not headers:
        return {}
    return {
        name: REDACTED_VALUE if is_sensitive_header(name) else value
        for name, value in headers.items()
    }


def _redact_query(query: str) -> str:
    params = []
    for param in query.split("&"):
        key, sep, _ = param.partition("=")
        if sep and key.lower() in SENSITIVE_QUERY_KEYS:
            param = f"{key}={REDACTED_VALUE}"
        params.append(param)
    return "&".join(params)


def redact_url_credentials(url: str) -> str:
    """Mask userinfo and token query parameters in a URL.

    Parameter order and all other URL parts are preserved. Strings that
    do not parse as URLs are returned unchanged.

    Args:
        url: Feed URL that may contain credentials.

    Returns:
        URL safe to log.
    """
    try:
        parts = urlsplit(url)
    except ValueError:
        return url

    netloc = parts.netloc
    userinfo, at, hostport = netloc.rpartition("@")
    if at:
        masked = REDACTED_VALUE
        if ":" in userinfo:
            masked = f"{REDACTED_VALUE}:{REDACTED_VALUE}"
        netloc = f"{masked}@{hostport}"

    query = _redact_query(parts.query) if parts.query else parts.query
    if netloc == parts.netloc and query == parts.query:
        return url
    return urlunsplit(parts._replace(netloc=netloc, query=query))
