"""Command line interface."""

from feedfetcher.cli.poll import cli, main


__all__ = ["cli", "main"]
