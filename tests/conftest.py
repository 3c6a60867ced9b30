"""Shared fixtures for the fetcher test suite."""

from collections.abc import Iterator

import pytest

from feedfetcher.fetch.metrics import FetchMetrics


@pytest.fixture(autouse=True)
def reset_fetch_metrics() -> Iterator[None]:
    """Give every test a fresh metrics singleton."""
    FetchMetrics.reset()
    yield
    FetchMetrics.reset()
