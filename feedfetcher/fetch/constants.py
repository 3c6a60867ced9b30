"""HTTP constants for the fetch layer.

Centralizes all HTTP-related constants to avoid duplication across modules.
"""

# HTTP Status Code Ranges
HTTP_STATUS_OK_MIN = 200
HTTP_STATUS_OK_MAX = 300
HTTP_STATUS_NO_CONTENT = 204
HTTP_STATUS_MOVED_PERMANENTLY = 301
HTTP_STATUS_FOUND = 302
HTTP_STATUS_SEE_OTHER = 303
HTTP_STATUS_NOT_MODIFIED = 304

# Redirect statuses that change the identity of a resource
CANONICAL_REDIRECT_STATUSES = frozenset(
    {
        HTTP_STATUS_MOVED_PERMANENTLY,
        HTTP_STATUS_FOUND,
        HTTP_STATUS_SEE_OTHER,
    }
)

# Connection pool defaults
DEFAULT_POOL_TTL_SECONDS = 120.0
DEFAULT_MAX_TOTAL_CONNECTIONS = 200
DEFAULT_MAX_PER_ROUTE = 10

# Redirect policy defaults
DEFAULT_MAX_REDIRECTS = 10

# Socket-level timeouts (seconds)
DEFAULT_CONNECT_TIMEOUT_SECONDS = 10.0
DEFAULT_READ_TIMEOUT_SECONDS = 30.0
DEFAULT_POOL_TIMEOUT_SECONDS = 30.0

DEFAULT_USER_AGENT = "feedfetcher/0.1.0"

# Query parameters with this key prefix are campaign tracking noise
TRACKING_PARAM_PREFIX = "utm_"

# Cookie policies understood by the pool client
COOKIE_POLICY_BROWSER_COMPATIBLE = "browser-compatible"
COOKIE_POLICY_IGNORE = "ignore"

# Default port per scheme, used when a URL omits it
DEFAULT_PORTS = {"http": 80, "https": 443}
