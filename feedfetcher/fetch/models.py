"""Data models for the HTTP fetch layer."""

import io
from collections.abc import Mapping
from enum import Enum
from typing import Annotated, Any, NamedTuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from feedfetcher.fetch.constants import (
    HTTP_STATUS_OK_MAX,
    HTTP_STATUS_OK_MIN,
)
from feedfetcher.fetch.url import UrlComponents, build_url, parse_url


class HttpMethod(str, Enum):
    """HTTP methods supported by the request executor."""

    GET = "GET"
    HEAD = "HEAD"
    PUT = "PUT"
    POST = "POST"
    DELETE = "DELETE"


class FetchState(str, Enum):
    """Lifecycle of a single asynchronous fetch.

    - PENDING: Request issued, no status received yet
    - COMPLETED: Response delivered to the callback
    - ABORTED: Exchange torn down on 304 Not Modified
    - FAILED: Transport error, callback not invoked
    """

    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    ABORTED = "ABORTED"
    FAILED = "FAILED"


class FetchErrorClass(str, Enum):
    """Classification of transport failures for logging and metrics.

    - NETWORK_TIMEOUT: Connect, read, write or pool timeout
    - CONNECTION_ERROR: Could not establish connection (DNS, refused)
    - SSL_ERROR: TLS certificate or handshake error
    - TOO_MANY_REDIRECTS: Redirect policy limit exceeded
    - PROTOCOL_ERROR: Malformed exchange at the HTTP protocol level
    - INVALID_URL: URL could not be turned into a request
    - UNKNOWN: Unclassified error
    """

    NETWORK_TIMEOUT = "NETWORK_TIMEOUT"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    SSL_ERROR = "SSL_ERROR"
    TOO_MANY_REDIRECTS = "TOO_MANY_REDIRECTS"
    PROTOCOL_ERROR = "PROTOCOL_ERROR"
    INVALID_URL = "INVALID_URL"
    UNKNOWN = "UNKNOWN"


class FetchError(BaseModel):
    """Typed description of a failed exchange."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    error_class: FetchErrorClass = Field(description="Classification of the error")
    message: Annotated[str, Field(min_length=1, description="Human-readable message")]


class RedirectHop(NamedTuple):
    """One observed redirect decision."""

    status_code: int
    target_url: str


class RequestDescriptor(BaseModel):
    """Abstract description of an HTTP request.

    The executor turns this into a native request. Header names are
    unique case-insensitively. ``character_encoding`` is only emitted
    when ``content_type`` is also set.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    method: HttpMethod = HttpMethod.GET
    scheme: Annotated[str, Field(min_length=1)] = "http"
    host: Annotated[str, Field(min_length=1)]
    port: Annotated[int, Field(gt=0, le=65535)] | None = None
    path: str = "/"
    query_string: str | None = None
    headers: dict[str, str] = Field(default_factory=dict)
    content_type: str | None = None
    character_encoding: str | None = None
    body: bytes | None = None

    @field_validator("headers")
    @classmethod
    def validate_unique_header_names(cls, v: dict[str, str]) -> dict[str, str]:
        """Reject header names that collide when compared case-insensitively."""
        seen: set[str] = set()
        for key in v:
            lowered = key.lower()
            if lowered in seen:
                msg = f"Duplicate header name (case-insensitive): {key}"
                raise ValueError(msg)
            seen.add(lowered)
        return v

    @property
    def components(self) -> UrlComponents:
        """URL components of this request."""
        return UrlComponents(
            scheme=self.scheme,
            host=self.host,
            port=self.port,
            path=self.path,
            query=self.query_string,
        )

    @property
    def url(self) -> str:
        """Absolute URL assembled from the descriptor components."""
        return build_url(self.components)

    @property
    def content_type_header(self) -> str | None:
        """Value for the Content-Type header, or None when not set."""
        if not self.content_type:
            return None
        if self.character_encoding:
            return f"{self.content_type}; charset={self.character_encoding}"
        return self.content_type

    @classmethod
    def from_url(
        cls,
        url: str,
        method: HttpMethod | str = HttpMethod.GET,
        **kwargs: Any,
    ) -> "RequestDescriptor":
        """Build a descriptor from an absolute URL.

        Args:
            url: Absolute http(s) URL.
            method: HTTP method.
            **kwargs: Remaining descriptor fields (headers, body, ...).

        Returns:
            RequestDescriptor for the URL.
        """
        parts = parse_url(url)
        return cls(
            method=HttpMethod(method.upper()),
            scheme=parts.scheme,
            host=parts.host,
            port=parts.port,
            path=parts.path,
            query_string=parts.query,
            **kwargs,
        )


class ResponseDescriptor(BaseModel):
    """Normalized result of one executed request.

    Header names are lower-cased; when a header repeats, the last value
    wins. ``content`` is None when the response carried no entity.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    status_code: int = Field(ge=100, le=599, description="HTTP status code")
    headers: dict[str, str] = Field(default_factory=dict)
    content: bytes | None = Field(default=None, description="Entity body")
    url: Annotated[str, Field(min_length=1, description="Originally built URL")]
    redirects: tuple[RedirectHop, ...] = Field(
        default=(), description="Redirect hops in order of occurrence"
    )

    @field_validator("headers")
    @classmethod
    def validate_lowercase_headers(cls, v: dict[str, str]) -> dict[str, str]:
        """Ensure header names are stored lower-cased."""
        return {key.lower(): value for key, value in v.items()}

    @property
    def body(self) -> io.BytesIO | None:
        """Fresh byte stream over the entity body, or None."""
        if self.content is None:
            return None
        return io.BytesIO(self.content)

    @property
    def is_success(self) -> bool:
        """Check if the status code is 2xx."""
        return HTTP_STATUS_OK_MIN <= self.status_code < HTTP_STATUS_OK_MAX

    @property
    def final_url(self) -> str:
        """URL the response was served from after all hops."""
        if self.redirects:
            return self.redirects[-1].target_url
        return self.url

    @property
    def text(self) -> str:
        """Decode the body using the declared charset, falling back to UTF-8."""
        if not self.content:
            return ""
        charset = charset_from_content_type(self.headers.get("content-type"))
        if charset:
            try:
                return self.content.decode(charset)
            except (LookupError, UnicodeDecodeError):
                pass
        return self.content.decode("utf-8", errors="replace")


class WorkItem(BaseModel):
    """A unit of fetch work pulled from the external queue."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    identifier: str | int
    url: Annotated[str, Field(min_length=1)]
    headers: dict[str, str] | None = None

    @classmethod
    def from_value(cls, value: "WorkItem | tuple[Any, ...] | list[Any]") -> "WorkItem":
        """Accept a WorkItem or an ``(identifier, url[, headers])`` sequence.

        Args:
            value: Item as supplied by the work queue.

        Returns:
            WorkItem instance.

        Raises:
            ValueError: If the sequence does not have two or three elements.
        """
        if isinstance(value, WorkItem):
            return value
        if len(value) not in (2, 3):
            msg = f"Work item must be (identifier, url[, headers]), got {value!r}"
            raise ValueError(msg)
        identifier, url, *rest = value
        headers = rest[0] if rest else None
        return cls(
            identifier=identifier,
            url=url,
            headers=dict(headers) if isinstance(headers, Mapping) else None,
        )


class FetchOutcome(BaseModel):
    """Terminal state of an asynchronous fetch."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    identifier: str | int
    url: str
    state: FetchState
    status_code: int | None = None
    error: FetchError | None = None

    @model_validator(mode="after")
    def validate_terminal_state(self) -> "FetchOutcome":
        """A returned outcome is never pending; failures carry an error."""
        if self.state == FetchState.PENDING:
            msg = "Fetch outcome must be terminal"
            raise ValueError(msg)
        if self.state == FetchState.FAILED and self.error is None:
            msg = "Failed fetch outcome requires an error"
            raise ValueError(msg)
        return self


def charset_from_content_type(value: str | None) -> str | None:
    """Extract the charset parameter from a Content-Type value.

    Args:
        value: Content-Type header value.

    Returns:
        Charset name, or None if not declared.
    """
    if not value:
        return None
    for part in value.split(";")[1:]:
        key, _, param = part.strip().partition("=")
        if key.lower() == "charset" and param:
            return param.strip("\"' ")
    return None
