"""Command-line interface for bulksql."""

from bulksql.cli.main import main

__all__ = ["main"]
