"""Terminal output helpers for the provkit CLI.

Check results, probe outcomes and warnings go to stderr; tables and cookie
listings go to stdout so they can be piped.
"""

from __future__ import annotations

from rich.console import Console

# Outcomes and warnings
err_console = Console(stderr=True)

# Tables and listings
out_console = Console()


def success(message: str, *, console: Console | None = None) -> None:
    """Report a passed check or established session."""
    c = console or err_console
    c.print(f"[green]  ✓ {message}[/green]")


def error(message: str, *, console: Console | None = None) -> None:
    """Report a refused call or failed evaluation."""
    c = console or err_console
    c.print(f"[red]  ✗ {message}[/red]")


def warn(message: str, *, console: Console | None = None) -> None:
    """Report a setting that weakens the session, such as disabled TLS checks."""
    c = console or err_console
    c.print(f"[yellow]  ⚠ {message}[/yellow]")
