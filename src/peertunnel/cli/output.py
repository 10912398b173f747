"""Rich console helpers shared by CLI commands."""

from rich.console import Console
from rich.markup import escape

console = Console()
err_console = Console(stderr=True)


def print_error(message: str) -> None:
    """Print an error message to stderr."""
    err_console.print(f"[bold red]Error:[/bold red] {escape(message)}", highlight=False)


def print_usage(message: str) -> None:
    """Print a usage line to stderr."""
    err_console.print(message, highlight=False, markup=False)
