"""Rich console utilities for styled terminal output.

This module provides a consistent interface for all CLI output using the
Rich library.
"""

from collections.abc import Generator
from contextlib import contextmanager

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.theme import Theme

from telepresence_auto.models import ConnectionStatus, InterceptionSession, StatusReport

# Custom theme with consistent colors
_THEME = Theme(
    {
        "info": "cyan",
        "success": "green",
        "warning": "yellow",
        "error": "red bold",
        "highlight": "cyan bold",
        "muted": "dim",
    }
)

_STATUS_STYLES = {
    "connected": "success",
    "intercepted": "success",
    "running": "success",
    "connecting": "warning",
    "disconnecting": "warning",
    "available": "muted",
    "disconnected": "muted",
    "stopped": "muted",
    "error": "error",
    "unknown": "warning",
}

# Shared console instance
console = Console(theme=_THEME)


def info(message: str) -> None:
    """Print an informational message.

    Args:
        message: The message to display.

    """
    console.print(f"[info]ℹ[/info] {message}")


def success(message: str) -> None:
    """Print a success message."""
    console.print(f"[success]✓[/success] {message}")


def warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[warning]⚠[/warning] {message}")


def error(message: str) -> None:
    """Print an error message."""
    console.print(f"[error]✗[/error] {message}")


def action(message: str) -> None:
    """Print an action/progress message."""
    console.print(f"[info]→[/info] {message}")


def step(message: str) -> None:
    """Print a sub-step message."""
    console.print(f"[muted]•[/muted] {message}")


def highlight(text: str) -> str:
    """Return text wrapped in highlight markup.

    Args:
        text: The text to highlight.

    Returns:
        Text wrapped in Rich markup for highlighting.

    """
    return f"[highlight]{text}[/highlight]"


def styled_status(status: str) -> str:
    """Return a status value wrapped in the markup matching its meaning."""
    style = _STATUS_STYLES.get(status, "info")
    return f"[{style}]{status}[/{style}]"


@contextmanager
def spinner(message: str) -> Generator[None, None, None]:
    """Display a spinner while performing an operation.

    Args:
        message: The status message to display.

    Yields:
        None

    """
    with console.status(f"[info]{message}[/info]", spinner="dots"):
        yield


def summary_panel(title: str, items: dict[str, str]) -> None:
    """Print a summary panel with key-value pairs.

    Args:
        title: Title for the panel.
        items: Dictionary of label -> value pairs to display.

    """
    table = Table.grid(padding=(0, 2))
    table.add_column(style="bold")
    table.add_column(style="cyan")

    for label, value in items.items():
        table.add_row(f"{label}:", value)

    console.print(Panel(table, title=f"[bold]{title}[/bold]", border_style="green"))


def status_report(report: StatusReport) -> None:
    """Print a status report: connection summary followed by the deployments.

    Args:
        report: Report returned by the orchestrator.

    """
    connection = report.namespace_connection
    items = {
        "Connection": styled_status(report.connection_status.value),
        "Daemon": styled_status(report.daemon_status.value),
        "Namespace": connection.namespace if connection else "-",
        "Updated": report.timestamp.astimezone().strftime("%H:%M:%S"),
    }
    if report.error:
        items["Error"] = f"[error]{report.error}[/error]"
    summary_panel("Telepresence", items)

    if not report.interceptions:
        if report.connection_status is ConnectionStatus.CONNECTED:
            info("No deployments reported by the daemon")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Deployment")
    table.add_column("Status")
    table.add_column("Cluster IP")
    table.add_column("Ports")
    table.add_column("Replicas", justify="right")
    for record in report.interceptions:
        ports = f"{record.target_port} → {record.local_port}" if record.local_port else "-"
        table.add_row(
            record.deployment,
            styled_status(record.status.value),
            record.cluster_ip or "-",
            ports,
            "-" if record.replicas is None else str(record.replicas),
        )
    console.print(table)


def session_panel(session: InterceptionSession) -> None:
    """Print a summary panel for one interception session."""
    items = {
        "Service": session.original_service_name,
        "Deployment": session.deployment,
        "Namespace": session.namespace,
        "Local port": str(session.local_port),
        "Status": styled_status(session.status.value),
    }
    if session.last_error:
        items["Error"] = f"[error]{session.last_error}[/error]"
    summary_panel("Interception", items)


def newline() -> None:
    """Print an empty line."""
    console.print()
