"""Fetcher settings powered by Pydantic BaseSettings."""

import logging
from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from feedfetcher.fetch.config import ClientParams, ClientPoolConfig
from feedfetcher.fetch.constants import (
    DEFAULT_MAX_PER_ROUTE,
    DEFAULT_MAX_REDIRECTS,
    DEFAULT_MAX_TOTAL_CONNECTIONS,
    DEFAULT_POOL_TTL_SECONDS,
    DEFAULT_USER_AGENT,
)


class FetcherSettings(BaseSettings):
    """Environment configuration (``FEEDFETCHER_*`` variables or ``.env``)."""

    model_config = SettingsConfigDict(
        env_prefix="FEEDFETCHER_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    pool_ttl_seconds: Annotated[float, Field(ge=0.0)] = DEFAULT_POOL_TTL_SECONDS
    max_total_connections: Annotated[int, Field(ge=1)] = DEFAULT_MAX_TOTAL_CONNECTIONS
    max_per_route: Annotated[int, Field(ge=1)] = DEFAULT_MAX_PER_ROUTE
    max_redirects: Annotated[int, Field(ge=0)] = DEFAULT_MAX_REDIRECTS
    concurrency: Annotated[int, Field(ge=1)] | None = None
    user_agent: str = DEFAULT_USER_AGENT
    log_level: str = "INFO"
    json_logs: bool = True

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Accept standard logging level names in any case."""
        name = v.upper()
        if not isinstance(logging.getLevelName(name), int):
            msg = f"Unknown log level: {v}"
            raise ValueError(msg)
        return name

    @property
    def log_level_value(self) -> int:
        """Numeric logging level."""
        level: int = logging.getLevelName(self.log_level)
        return level

    def to_pool_config(self) -> ClientPoolConfig:
        """Build the immutable pool configuration from these settings."""
        return ClientPoolConfig(
            ttl_seconds=self.pool_ttl_seconds,
            max_total_connections=self.max_total_connections,
            max_per_route=self.max_per_route,
            user_agent=self.user_agent,
            default_params=ClientParams(max_redirects=self.max_redirects),
        )


def get_settings() -> FetcherSettings:
    """Get a settings instance."""
    return FetcherSettings()
