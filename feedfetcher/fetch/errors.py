"""Exceptions and error classification for the fetch layer."""

import ssl
from typing import TYPE_CHECKING

import httpx

from feedfetcher.fetch.models import FetchError, FetchErrorClass


if TYPE_CHECKING:
    from feedfetcher.fetch.models import RequestDescriptor


class FeedFetcherError(Exception):
    """Base exception for all fetch layer failures."""


class RelativeRedirectError(FeedFetcherError):
    """Raised when a relative Location is received and relative redirects are rejected."""

    def __init__(self, location: str, status_code: int) -> None:
        """Initialize the error.

        Args:
            location: Raw Location header value.
            status_code: Status of the redirect response.
        """
        self.location = location
        self.status_code = status_code
        super().__init__(
            f"Relative redirect to {location!r} ({status_code}) rejected by policy"
        )


class RequestFailedError(FeedFetcherError):
    """Raised when a request could not be executed.

    Carries the original request descriptor so callers can correlate
    the failure with the work that produced it.
    """

    def __init__(
        self,
        request: "RequestDescriptor",
        error: FetchError,
        cause: BaseException | None = None,
    ) -> None:
        """Initialize the error.

        Args:
            request: Descriptor of the failed request.
            error: Classification of the failure.
            cause: Underlying exception.
        """
        self.request = request
        self.error = error
        self.cause = cause
        super().__init__(
            f"{request.method.value} {request.url} failed: "
            f"{error.error_class.value}: {error.message}"
        )


def _is_ssl_failure(exc: BaseException) -> bool:
    current: BaseException | None = exc
    while current is not None:
        if isinstance(current, ssl.SSLError):
            return True
        current = current.__cause__ or current.__context__
    return "CERTIFICATE_VERIFY_FAILED" in str(exc)


def classify_exception(exc: BaseException) -> FetchError:
    """Map an exception raised during an exchange to a FetchError.

    Args:
        exc: Exception raised by httpx or the redirect policy.

    Returns:
        FetchError describing the failure.
    """
    message = str(exc) or type(exc).__name__

    if isinstance(exc, httpx.TimeoutException):
        error_class = FetchErrorClass.NETWORK_TIMEOUT
    elif isinstance(exc, httpx.ConnectError) and _is_ssl_failure(exc):
        error_class = FetchErrorClass.SSL_ERROR
    elif isinstance(exc, httpx.NetworkError):
        error_class = FetchErrorClass.CONNECTION_ERROR
    elif isinstance(exc, httpx.TooManyRedirects):
        error_class = FetchErrorClass.TOO_MANY_REDIRECTS
    elif isinstance(exc, httpx.ProtocolError | RelativeRedirectError):
        error_class = FetchErrorClass.PROTOCOL_ERROR
    elif isinstance(exc, httpx.InvalidURL | httpx.UnsupportedProtocol):
        error_class = FetchErrorClass.INVALID_URL
    else:
        error_class = FetchErrorClass.UNKNOWN

    return FetchError(error_class=error_class, message=message)
