"""
somleng-deploy UI - Console implementation.

Rich-based console for tables, panels and check results. Log lines go to
stderr through loguru; this console writes the operator-facing output.
"""

from __future__ import annotations

from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.theme import Theme

from somleng_deploy.core.types import CheckStatus, HealthCheck

SOMLENG_THEME = Theme(
    {
        "info": "cyan",
        "warning": "yellow",
        "error": "red bold",
        "success": "green",
        "muted": "dim",
        "highlight": "magenta",
    }
)

STATUS_ICONS = {
    CheckStatus.OK: "[green]✅[/green]",
    CheckStatus.WARNING: "[yellow]⚠️[/yellow]",
    CheckStatus.ERROR: "[red]❌[/red]",
    CheckStatus.DISABLED: "[dim]⊘[/dim]",
}


class ConsoleUI:
    """Console user interface."""

    def __init__(self, theme: Theme | None = None, console: Console | None = None) -> None:
        self.console = console or Console(theme=theme or SOMLENG_THEME)

    def print(self, *args: Any, **kwargs: Any) -> None:
        self.console.print(*args, **kwargs)

    def panel(self, content: str, title: str | None = None, style: str = "info") -> None:
        self.console.print(Panel(content, title=title, border_style=style))

    def success(self, message: str) -> None:
        self.console.print(f"[success]{message}[/success]")

    def error(self, message: str) -> None:
        self.console.print(f"[error]{message}[/error]")

    def warning(self, message: str) -> None:
        self.console.print(f"[warning]{message}[/warning]")

    def info(self, message: str) -> None:
        self.console.print(f"[info]{message}[/info]")

    def muted(self, message: str) -> None:
        self.console.print(f"[muted]{message}[/muted]")

    def newline(self) -> None:
        self.console.print()

    def table(
        self,
        headers: list[str],
        rows: list[list[str]],
        title: str | None = None,
    ) -> None:
        """Display a table."""
        table = Table(title=title, show_header=True, header_style="bold")

        for header in headers:
            table.add_column(header)

        for row in rows:
            table.add_row(*row)

        self.console.print(table)

    def health_status(self, status: CheckStatus, message: str) -> None:
        """Display one check line with its status icon."""
        icon = STATUS_ICONS.get(status, "❓")
        self.console.print(f"  {icon} {message}")

    def health_checks(self, checks: list[HealthCheck], title: str | None = None) -> None:
        """Display a list of check results as a table."""
        rows = [[STATUS_ICONS.get(c.status, "❓"), c.name, c.message] for c in checks]
        self.table(["", "Check", "Result"], rows, title=title)
