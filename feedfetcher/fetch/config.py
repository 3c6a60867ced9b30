"""Configuration models for the HTTP fetch layer."""

from http.cookiejar import CookieJar, DefaultCookiePolicy
from typing import Annotated, Literal

import httpx
from pydantic import BaseModel, ConfigDict, Field, model_validator

from feedfetcher.fetch.constants import (
    COOKIE_POLICY_BROWSER_COMPATIBLE,
    COOKIE_POLICY_IGNORE,
    DEFAULT_CONNECT_TIMEOUT_SECONDS,
    DEFAULT_MAX_PER_ROUTE,
    DEFAULT_MAX_REDIRECTS,
    DEFAULT_MAX_TOTAL_CONNECTIONS,
    DEFAULT_POOL_TIMEOUT_SECONDS,
    DEFAULT_POOL_TTL_SECONDS,
    DEFAULT_READ_TIMEOUT_SECONDS,
    DEFAULT_USER_AGENT,
)


CookiePolicyName = Literal["browser-compatible", "ignore"]


class ClientParams(BaseModel):
    """Default request parameters applied by every client built from a config.

    Controls cookie handling and the redirect policy.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    cookie_policy: CookiePolicyName = COOKIE_POLICY_BROWSER_COMPATIBLE
    follow_redirects: bool = True
    max_redirects: Annotated[int, Field(ge=0, le=100)] = DEFAULT_MAX_REDIRECTS
    allow_circular_redirects: bool = True
    reject_relative_redirects: bool = False

    def build_cookie_jar(self) -> CookieJar:
        """Create a cookie jar honouring the configured policy.

        Returns:
            CookieJar whose policy accepts or blocks all cookies.
        """
        if self.cookie_policy == COOKIE_POLICY_IGNORE:
            policy = DefaultCookiePolicy(allowed_domains=[])
        else:
            policy = DefaultCookiePolicy()
        return CookieJar(policy=policy)


class ClientPoolConfig(BaseModel):
    """Configuration for a connection pool client.

    Set once at pool construction; the pool is long-lived and shared
    across requests.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    ttl_seconds: Annotated[float, Field(ge=0.0, le=3600.0)] = DEFAULT_POOL_TTL_SECONDS
    max_total_connections: Annotated[int, Field(ge=1, le=10000)] = (
        DEFAULT_MAX_TOTAL_CONNECTIONS
    )
    max_per_route: Annotated[int, Field(ge=1, le=10000)] = DEFAULT_MAX_PER_ROUTE
    default_params: ClientParams = Field(default_factory=ClientParams)
    user_agent: Annotated[str, Field(min_length=1, max_length=500)] = (
        DEFAULT_USER_AGENT
    )
    connect_timeout_seconds: Annotated[float, Field(gt=0.0, le=300.0)] = (
        DEFAULT_CONNECT_TIMEOUT_SECONDS
    )
    read_timeout_seconds: Annotated[float, Field(gt=0.0, le=300.0)] = (
        DEFAULT_READ_TIMEOUT_SECONDS
    )
    pool_timeout_seconds: Annotated[float, Field(gt=0.0, le=300.0)] = (
        DEFAULT_POOL_TIMEOUT_SECONDS
    )

    @model_validator(mode="after")
    def validate_route_cap(self) -> "ClientPoolConfig":
        """Ensure the per-route cap does not exceed the total cap."""
        if self.max_per_route > self.max_total_connections:
            msg = (
                f"max_per_route ({self.max_per_route}) must not exceed "
                f"max_total_connections ({self.max_total_connections})"
            )
            raise ValueError(msg)
        return self

    def build_timeout(self) -> httpx.Timeout:
        """Socket-level timeouts for the native client."""
        return httpx.Timeout(
            connect=self.connect_timeout_seconds,
            read=self.read_timeout_seconds,
            write=self.read_timeout_seconds,
            pool=self.pool_timeout_seconds,
        )

    def build_limits(self) -> httpx.Limits:
        """Connection limits with idle TTL eviction."""
        return httpx.Limits(
            max_connections=self.max_total_connections,
            max_keepalive_connections=self.max_total_connections,
            keepalive_expiry=self.ttl_seconds,
        )
