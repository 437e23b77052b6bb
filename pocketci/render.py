"""
Rendering functions for pocketci output.

This module handles all pretty-printing and table formatting.
Commands return data; this module makes it human-readable.
"""

from rich.table import Table
from rich.console import Console
from rich import box
from typing import List, Dict, Any, Optional

console = Console()

STATUS_STYLES = {
    'pending': 'yellow',
    'in_progress': 'cyan',
    'succeeded': 'green',
    'failed': 'red',
    'cancelled': 'dim',
}


def render_table(headers: List[str], rows: List[List[Any]], title: Optional[str] = None) -> None:
    """
    Render a generic table with the given headers and rows.

    Args:
        headers: List of column headers
        rows: List of rows, where each row is a list of values
        title: Optional table title
    """
    if not rows:
        console.print("[yellow]No data to display.[/yellow]")
        return

    table = Table(
        title=title,
        box=box.ROUNDED,
        show_header=True,
        header_style="bold magenta"
    )

    for header in headers:
        table.add_column(header)

    for row in rows:
        table.add_row(*["" if val is None else str(val) for val in row])

    console.print(table)


def render_status_table(records: List[Dict[str, Any]], title: str = "Build Status") -> None:
    """
    Render build records as a pretty table.

    Args:
        records: Build record dictionaries (BuildRecord.to_dict)
        title: Table title
    """
    if not records:
        console.print("[yellow]No build records found.[/yellow]")
        return

    table = Table(
        title=title,
        box=box.ROUNDED,
        show_header=True,
        header_style="bold magenta"
    )

    table.add_column("Repository", style="cyan")
    table.add_column("Codename")
    table.add_column("Pocket")
    table.add_column("Commit", style="dim")
    table.add_column("Status")
    table.add_column("Attempts", justify="right")
    table.add_column("Next attempt", style="dim")
    table.add_column("Reason", style="red")

    for record in records:
        status = record.get('status', '')
        style = STATUS_STYLES.get(status, 'white')
        status_display = f"[{style}]{status}[/{style}]"
        if record.get('needs_attention'):
            status_display += " [bold red]![/bold red]"
        if not record.get('active', True):
            status_display += " [dim](superseded)[/dim]"

        table.add_row(
            record.get('repository', ''),
            record.get('codename', ''),
            record.get('pocket', ''),
            (record.get('commit') or '')[:12],
            status_display,
            str(record.get('attempts', 0)),
            record.get('next_attempt_at', '') or '',
            record.get('failure_reason', '') or '',
        )

    console.print(table)

    attention = sum(1 for r in records if r.get('needs_attention'))
    if attention:
        console.print(f"[bold red]{attention} target(s) need attention[/bold red] "
                      f"(retry with: pocketci retry REPOSITORY@CODENAME/POCKET)")


def render_summary(summary: Dict[str, Any]) -> None:
    """Render a pass summary."""
    rows = [[key.replace('_', ' '), value] for key, value in summary.items() if key != 'errors']
    render_table(["Counter", "Value"], rows, title="Sync Summary")
    for error in summary.get('errors', []):
        console.print(f"[red]✗[/red] {error}")
