"""Console and logging helpers shared by the CLI commands."""

from __future__ import annotations

import logging
from typing import Any

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel

console = Console()
err_console = Console(stderr=True)

_NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def setup_logging(log_level: str, *, log_file: str | None = None) -> None:
    """Route stdlib logging through rich, optionally mirroring to a file."""
    handlers: list[logging.Handler] = [
        RichHandler(console=err_console, rich_tracebacks=True, show_path=False),
    ]
    if log_file:
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"),
        )
        handlers.append(file_handler)

    logging.basicConfig(
        level=log_level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=handlers,
        force=True,
    )

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def print_error_message(message: str, suggestion: str | None = None) -> None:
    """Print an error panel, with an optional hint underneath."""
    body = f"[bold red]{message}[/bold red]"
    if suggestion:
        body += f"\n\n[yellow]💡 {suggestion}[/yellow]"
    console.print(Panel(body, title="Error", border_style="red"))


def print_command_line_args(args: dict[str, Any]) -> None:
    """Print the resolved command line arguments, hiding secrets."""
    console.print("[bold]Command line arguments:[/bold]")
    for key, value in sorted(args.items()):
        shown = "***" if value and ("key" in key or "token" in key) else value
        console.print(f"  {key}: [blue]{shown}[/blue]")
