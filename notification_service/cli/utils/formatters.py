"""Status lines and section headers for ``notification-service`` commands.

Warnings and errors go to stderr so that data a command prints with
``click.echo`` (unread counts, history rows) can still be piped.
"""

from __future__ import annotations

from typing import Literal

import click

Level = Literal["success", "error", "warning", "info"]

# level -> (marker, colour, stderr)
_STYLES: dict[Level, tuple[str, str, bool]] = {
    "success": ("✓", "green", False),
    "error": ("✗", "red", True),
    "warning": ("!", "yellow", True),
    "info": ("·", "blue", False),
}


def _emit(level: Level, message: str, details: tuple[str, ...]) -> None:
    marker, colour, to_stderr = _STYLES[level]
    click.secho(f"{marker} {message}", fg=colour, err=to_stderr)
    for line in details:
        click.echo(f"    {line}", err=to_stderr)


def success(message: str, *details: str) -> None:
    _emit("success", message, details)


def error(message: str, *details: str) -> None:
    _emit("error", message, details)


def warning(message: str, *details: str) -> None:
    _emit("warning", message, details)


def info(message: str, *details: str) -> None:
    _emit("info", message, details)


def header(title: str) -> None:
    """Blank line, then ``title`` underlined to its own width."""
    click.echo()
    click.secho(title, fg="cyan", bold=True)
    click.secho("─" * len(title), fg="cyan")
