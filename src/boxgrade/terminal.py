"""Console helpers shared by the CLI and the vagrant workflows."""
from __future__ import annotations

from rich.console import Console

console = Console(highlight=False)


def print_separator(title: str) -> None:
    """Print a horizontal banner announcing the next unit of work."""
    console.rule(f"[bold]{title}[/bold]", align="left")


def print_info(message: str) -> None:
    """Print a plain status line."""
    console.print(message)


__all__ = ["console", "print_info", "print_separator"]
