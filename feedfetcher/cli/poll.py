"""CLI commands for polling feeds and resolving canonical URLs."""

import asyncio
import json
import logging
import sys
import uuid
from collections.abc import Callable
from pathlib import Path
from typing import TextIO

import click
import structlog

from feedfetcher.fetch.config import ClientPoolConfig
from feedfetcher.fetch.dispatcher import AsyncFetchDispatcher
from feedfetcher.fetch.errors import RequestFailedError
from feedfetcher.fetch.executor import execute
from feedfetcher.fetch.metrics import FetchMetrics
from feedfetcher.fetch.models import HttpMethod, RequestDescriptor, WorkItem
from feedfetcher.fetch.pool import create_pooled_client
from feedfetcher.fetch.url import resolved_url
from feedfetcher.observability.logging import (
    bind_poll_context,
    clear_poll_context,
    configure_logging,
)
from feedfetcher.pool.worker import PoolResult, iter_work, run_pool
from feedfetcher.settings import get_settings


logger = structlog.get_logger()


def parse_work_line(line: str) -> WorkItem | None:
    """Parse one line of a work file.

    Accepted forms are ``identifier url`` (whitespace separated) and a
    JSON object with ``id``, ``url`` and optional ``headers``. Blank
    lines and ``#`` comments yield None.

    Args:
        line: Raw line.

    Returns:
        WorkItem, or None for blank and comment lines.

    Raises:
        ValueError: If the line is malformed.
    """
    stripped = line.strip()
    if not stripped or stripped.startswith("#"):
        return None

    if stripped.startswith("{"):
        payload = json.loads(stripped)
        return WorkItem(
            identifier=payload["id"],
            url=payload["url"],
            headers=payload.get("headers"),
        )

    parts = stripped.split()
    if len(parts) != 2:  # noqa: PLR2004
        msg = f"Expected 'identifier url', got {stripped!r}"
        raise ValueError(msg)
    return WorkItem(identifier=parts[0], url=parts[1])


def load_work_items(path: Path) -> list[WorkItem]:
    """Load all work items from a work file."""
    items: list[WorkItem] = []
    with path.open(encoding="utf-8") as handle:
        for line_number, line in enumerate(handle, start=1):
            try:
                item = parse_work_line(line)
            except (ValueError, KeyError) as e:
                msg = f"{path}:{line_number}: {e}"
                raise click.BadParameter(msg) from e
            if item is not None:
                items.append(item)
    return items


def make_result_writer(output: TextIO) -> Callable[..., None]:
    """Build a put_done callback writing one JSON line per response."""

    def put_done(
        identifier: str | int,
        url: str,
        status_code: int,
        headers: dict[str, str] | None,
        body: str | None,
    ) -> None:
        headers = headers or {}
        record = {
            "identifier": identifier,
            "url": url,
            "status": status_code,
            "etag": headers.get("etag"),
            "last_modified": headers.get("last-modified"),
            "bytes": len(body.encode("utf-8")) if body is not None else 0,
        }
        output.write(json.dumps(record, sort_keys=True) + "\n")
        output.flush()

    return put_done


async def poll_items(
    items: list[WorkItem],
    config: ClientPoolConfig,
    concurrency: int | None,
    output: TextIO,
) -> PoolResult:
    """Poll work items through the worker pool and dispatcher."""
    async with AsyncFetchDispatcher(config) as dispatcher:
        return await run_pool(
            dispatcher.fetch,
            iter_work(items),
            make_result_writer(output),
            concurrency,
        )


@click.group()
@click.version_option(version="0.1.0")
def cli() -> None:
    """Bulk feed fetcher CLI."""


@cli.command()
@click.argument(
    "work_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option(
    "--concurrency",
    "-c",
    type=click.IntRange(min=1),
    default=None,
    help="Maximum in-flight fetches (default: available CPUs).",
)
@click.option(
    "--json-logs/--no-json-logs",
    default=None,
    help="Use JSON format for logs (default: from settings).",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose logging.",
)
def poll(
    work_file: Path,
    concurrency: int | None,
    json_logs: bool | None,
    verbose: bool,
) -> None:
    """Poll every feed listed in WORK_FILE and print one JSON line per response.

    Feeds answering 304 Not Modified produce no output line.
    """
    settings = get_settings()
    configure_logging(
        level=logging.DEBUG if verbose else settings.log_level_value,
        json_format=settings.json_logs if json_logs is None else json_logs,
    )
    items = load_work_items(work_file)
    bind_poll_context(str(uuid.uuid4()), work_file=str(work_file))
    try:
        logger.info("poll_started", items=len(items))
        result = asyncio.run(
            poll_items(
                items,
                settings.to_pool_config(),
                concurrency or settings.concurrency,
                sys.stdout,
            )
        )
        logger.info(
            "poll_finished",
            submitted=result.submitted,
            completed=result.completed,
            not_modified=result.aborted,
            failed=result.failed,
            metrics=FetchMetrics.get_instance().to_dict(),
        )
    finally:
        clear_poll_context()

    if result.failed:
        sys.exit(1)


@cli.command()
@click.argument("url")
@click.option(
    "--method",
    type=click.Choice([m.value for m in HttpMethod], case_sensitive=False),
    default=HttpMethod.GET.value,
    help="HTTP method to use (default: GET).",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose logging.",
)
def resolve(url: str, method: str, verbose: bool) -> None:
    """Fetch URL, print its redirect chain and canonical URL."""
    settings = get_settings()
    configure_logging(
        level=logging.DEBUG if verbose else settings.log_level_value,
        json_format=False,
    )

    try:
        request = RequestDescriptor.from_url(url, method=method)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="URL") from e

    try:
        with create_pooled_client(settings.to_pool_config()) as client:
            response = execute(request, client=client)
    except RequestFailedError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(f"{response.status_code} {response.url}")
    for hop in response.redirects:
        click.echo(f"  -> {hop.status_code} {hop.target_url}")
    click.echo(f"canonical: {resolved_url(response)}")


def main() -> None:
    """Console script entry point."""
    cli()
