"""Display helpers and utilities for CLI output."""

from typing import Any

from rich.table import Table

from .base import console


def display_success(message: str, details: dict[str, Any] | None = None):
    """Display a success message with optional details.

    Args:
        message: Success message to display.
        details: Optional dictionary of additional details to show in a table.
    """
    console.print(f"\n[bold green]✅ {message}[/bold green]")

    if details:
        console.print(create_info_table(details))


def display_error(message: str, error: str | None = None):
    """Display an error message with optional details."""
    console.print(f"[bold red]❌ {message}[/bold red]")

    if error:
        console.print(f"  {error}")


def display_warning(message: str):
    console.print(f"[yellow]⚠️  {message}[/yellow]")


def display_info(message: str):
    console.print(f"[cyan]i  {message}[/cyan]")


def create_info_table(data: dict[str, Any], show_header: bool = False) -> Table:
    """Create a formatted table for displaying information.

    Args:
        data: Dictionary of field-value pairs to display.
        show_header: Whether to show table headers.

    Returns:
        Rich Table object for console display.
    """
    table = Table(show_header=show_header, box=None)
    table.add_column("Field", style="cyan")
    table.add_column("Value")

    for key, value in data.items():
        formatted_value = "[dim]N/A[/dim]" if value is None else str(value)
        table.add_row(key, formatted_value)

    return table


def format_size(num_bytes: int) -> str:
    """Format a byte count for display, e.g. ``1.5 MB``."""
    size = float(num_bytes)
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024 or unit == "GB":
            return f"{int(size)} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GB"
