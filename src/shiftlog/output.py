"""Rich-based output formatting for CLI."""

from __future__ import annotations

import datetime as dt

from rich.console import Console
from rich.table import Table

import shiftlog.connectivity as connectivity
import shiftlog.views as views
from shiftlog.models import Record


# Global console instance
console = Console()


def render_page(page: views.Page) -> None:
    """Render one page of records as a table with a pager footer."""
    if not page.total:
        console.print("[dim]No records found.[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("ID", style="dim")
    table.add_column("Fecha")
    table.add_column("Turno")
    table.add_column("Jefe")
    table.add_column("Máquina")
    table.add_column("Operario")
    table.add_column("Metros", justify="right")
    table.add_column("Cambios", justify="right")
    table.add_column("Comentario")

    for record in page.items:
        table.add_row(
            record.id[:8],
            record.date.isoformat(),
            record.shift.value,
            record.boss.value,
            record.machine.value,
            record.operator or "[dim]-[/dim]",
            f"{record.meters:,}",
            str(record.changes_count),
            record.changes_comment,
        )

    console.print(table)
    console.print(
        f"[dim]Page {page.number}/{page.page_count} · {page.total} record(s)[/dim]"
    )


def render_buckets(title: str, buckets: list[views.Bucket]) -> None:
    """Render grouped totals."""
    console.print(f"[bold]{title}[/bold]")
    if not buckets:
        console.print("  [dim]No data.[/dim]")
        return

    table = Table(show_header=True, header_style="bold", box=None)
    table.add_column("")
    table.add_column("Registros", justify="right")
    table.add_column("Metros", justify="right")
    table.add_column("Cambios", justify="right")
    for bucket in buckets:
        table.add_row(
            bucket.label,
            str(bucket.records),
            f"{bucket.meters:,}",
            str(bucket.changes),
        )
    console.print(table)


def render_summary(summary: views.Summary) -> None:
    """Render the headline KPIs for a day."""
    color = "green" if summary.growth >= 0 else "red"
    sign = "+" if summary.growth >= 0 else ""
    console.print(f"[bold]Producción {summary.day.isoformat()}[/bold]")
    console.print(
        f"  Metros: [bold]{summary.meters:,} m[/bold] "
        f"[{color}]({sign}{summary.growth:.1f}% vs ayer)[/{color}]"
    )
    console.print(f"  Eficiencia: {summary.efficiency}%")
    console.print(f"  Promedio cambios: {summary.avg_changes:.1f}")
    console.print(f"  Registros: {summary.record_count}")


def render_vocabulary(title: str, values: list[str], builtin: list[str]) -> None:
    """Render one vocabulary, marking built-in entries."""
    console.print(f"[bold]{title}[/bold] [dim]({len(values)})[/dim]")
    if not values:
        console.print("  [dim](empty)[/dim]")
        return
    for value in values:
        marker = " [dim](built-in)[/dim]" if value in builtin else ""
        console.print(f"  {value}{marker}")


def render_connectivity(state: connectivity.ConnectivityState) -> None:
    if state.is_blocked:
        reason = state.backend_error or "network unreachable"
        console.print(f"[bold red]Connection lost:[/bold red] {reason}")
    else:
        console.print("[green]●[/green] Synchronized")


def render_snapshot(records: list[Record]) -> None:
    """One line per delivered snapshot, for `shiftlog watch`."""
    stamp = dt.datetime.now().strftime("%H:%M:%S")
    if not records:
        console.print(f"[dim]{stamp}[/dim] 0 records")
        return
    latest = records[0]
    console.print(
        f"[dim]{stamp}[/dim] {len(records)} record(s) · latest: "
        f"{latest.date.isoformat()} {latest.machine.value} {latest.meters:,} m"
    )


def prompt_confirm(question: str) -> bool:
    """Prompt user to confirm. Returns True if confirmed."""
    console.print()
    response = console.input(f"[bold]{question}[/bold] [dim](y/N)[/dim] ")
    return response.lower() in ("y", "yes")


def prompt_password() -> str:
    return console.input("[bold]Password:[/bold] ", password=True)


def render_cancelled() -> None:
    console.print("[dim]Cancelled.[/dim]")


def render_error(message: str) -> None:
    """Render error message."""
    console.print(f"[bold red]Error:[/bold red] {message}")
