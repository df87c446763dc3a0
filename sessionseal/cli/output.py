"""
SessionSeal CLI - styled output helpers built on Click.

All output respects NO_COLOR / TERM=dumb through click.style.
"""

from __future__ import annotations

import click


def success(message: str) -> None:
    """Print success message in green."""
    click.echo(click.style(message, fg="green"))


def error(message: str) -> None:
    """Print error message in red on stderr."""
    click.echo(click.style(message, fg="red"), err=True)


def warning(message: str) -> None:
    """Print warning message in yellow on stderr."""
    click.echo(click.style(message, fg="yellow"), err=True)


def info(message: str) -> None:
    """Print info message in cyan."""
    click.echo(click.style(message, fg="cyan"))


def kv(key: str, value: object, width: int = 14) -> None:
    """Print an aligned key-value pair."""
    click.echo(f"  {click.style(key.ljust(width), dim=True)} {value}")
