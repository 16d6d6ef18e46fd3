"""Shiftlog CLI: record and review shift production from the terminal.

Every command opens the project for the active environment, waits for the
first snapshots, runs, and closes it again.
"""

from __future__ import annotations

import asyncio
import datetime as dt
import sys
from pathlib import Path
from typing import Annotated

import cyclopts
import pydantic as pdt
from loguru import logger

import shiftlog.errors as errors
import shiftlog.export as export
import shiftlog.output as output
import shiftlog.project as project_mod
import shiftlog.settings as settings
import shiftlog.views as views
from shiftlog.models import Boss, FilterState, Machine, Record, Shift, VocabularyKind

# Version is defined here and in pyproject.toml
__version__ = "0.1.0"

console = output.console

app = cyclopts.App(
    name="shiftlog",
    help="Shift production log. Record meters and changes per machine and shift, keep every client in sync.",
    version=__version__,
)

vocab = cyclopts.App(name="vocab", help="Manage the comment and operator vocabularies.")
app.command(vocab)

MACHINES = ", ".join(m.value for m in Machine)
SHIFTS = ", ".join(s.value for s in Shift)
BOSSES = ", ".join(b.value for b in Boss)

MIN_PREFIX = 4


def _handle_error(e: errors.ShiftlogError) -> None:
    """Display a structured error message."""
    console.print(f"[bold red]Error:[/bold red] {e.context}\n")
    console.print(f"[yellow]Cause:[/yellow] {e.cause}\n")
    console.print(f"[green]Fix:[/green] {e.fix}")


def _configure_logging(verbose: bool) -> None:
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "WARNING")


def _parse_date(value: str | None, operation: str) -> dt.date | None:
    if value is None:
        return None
    try:
        return dt.date.fromisoformat(value)
    except ValueError as e:
        raise errors.RecordValidationError(operation, f"'{value}' is not a YYYY-MM-DD date") from e


def _find_record(project: project_mod.ShiftlogProject, ref: str) -> Record:
    """Resolve a full identifier or a unique prefix of one."""
    record = project.records.get(ref)
    if record is not None:
        return record
    if len(ref) < MIN_PREFIX:
        raise errors.RecordNotFoundError(ref)
    candidates = [r for r in project.records.records if r.id.startswith(ref)]
    if len(candidates) > 1:
        raise errors.RecordNotFoundError(ref, f"{len(candidates)} records share this prefix")
    if not candidates:
        raise errors.RecordNotFoundError(ref)
    return candidates[0]


def _check_password(project: project_mod.ShiftlogProject, action: str) -> None:
    expected = project.config.safety.delete_password
    if expected is None:
        return
    if output.prompt_password() != expected:
        raise errors.ConfirmationError(action, "Incorrect password")


@app.meta.default
def launcher(
    *tokens: Annotated[str, cyclopts.Parameter(show=False, allow_leading_hyphen=True)],
    verbose: Annotated[
        bool,
        cyclopts.Parameter(name=["--verbose", "-v"], help="Show debug logging"),
    ] = False,
):
    """Configure logging, then dispatch to the requested command."""
    _configure_logging(verbose)
    app(tokens)


def main() -> None:
    app.meta()


@app.command
def add(
    meters: Annotated[int, cyclopts.Parameter(name="--meters", help="Meters produced")],
    machine: Annotated[str, cyclopts.Parameter(name="--machine", help=f"Machine ({MACHINES})")],
    shift: Annotated[str, cyclopts.Parameter(name="--shift", help=f"Shift ({SHIFTS})")],
    boss: Annotated[str, cyclopts.Parameter(name="--boss", help=f"Shift boss ({BOSSES})")],
    date: Annotated[
        str | None,
        cyclopts.Parameter(name="--date", help="Production date (YYYY-MM-DD), default today"),
    ] = None,
    operator: Annotated[str, cyclopts.Parameter(name="--operator", help="Operator name")] = "",
    changes: Annotated[int, cyclopts.Parameter(name="--changes", help="Number of changes")] = 0,
    comment: Annotated[str, cyclopts.Parameter(name="--comment", help="Changes comment")] = "",
    env_name: Annotated[
        str | None,
        cyclopts.Parameter(name="--env", help="Environment to write to"),
    ] = None,
):
    """Add a production record.

    New operators and comments are added to their vocabularies.

    Examples:
        shiftlog add --meters 5000 --machine WH1 --shift Mañana --boss J.Martín
        shiftlog add --meters 4200 --machine 21 --shift Noche --boss J.Navarro --comment Montado
    """
    operation = "Adding a record"

    async def _add() -> Record:
        record_date = _parse_date(date, operation) or dt.date.today()
        try:
            record = Record(
                date=record_date,
                machine=machine,
                shift=shift,
                boss=boss,
                operator=operator.strip(),
                meters=meters,
                changes_count=changes,
                changes_comment=comment.strip(),
            )
        except pdt.ValidationError as e:
            raise errors.RecordValidationError(
                operation, settings.format_validation_errors(e)
            ) from e

        async with project_mod.connect(env=env_name) as project:
            await project.save(record)
        return record

    try:
        record = asyncio.run(_add())
        console.print(f"[green]✓[/green] Saved record {record.id[:8]} ({record.meters:,} m)")
    except errors.ShiftlogError as e:
        _handle_error(e)
        raise SystemExit(1)


@app.command
def edit(
    record_id: Annotated[str, cyclopts.Parameter(help="Record identifier or unique prefix")],
    meters: Annotated[int | None, cyclopts.Parameter(name="--meters", help="Meters produced")] = None,
    machine: Annotated[str | None, cyclopts.Parameter(name="--machine", help=f"Machine ({MACHINES})")] = None,
    shift: Annotated[str | None, cyclopts.Parameter(name="--shift", help=f"Shift ({SHIFTS})")] = None,
    boss: Annotated[str | None, cyclopts.Parameter(name="--boss", help=f"Shift boss ({BOSSES})")] = None,
    date: Annotated[str | None, cyclopts.Parameter(name="--date", help="Production date (YYYY-MM-DD)")] = None,
    operator: Annotated[str | None, cyclopts.Parameter(name="--operator", help="Operator name")] = None,
    changes: Annotated[int | None, cyclopts.Parameter(name="--changes", help="Number of changes")] = None,
    comment: Annotated[str | None, cyclopts.Parameter(name="--comment", help="Changes comment")] = None,
    env_name: Annotated[
        str | None,
        cyclopts.Parameter(name="--env", help="Environment to write to"),
    ] = None,
):
    """Edit a record. Only the given fields change; id and creation time are kept."""
    operation = f"Editing record '{record_id}'"

    async def _edit() -> Record | None:
        updates = {
            "meters": meters,
            "machine": machine,
            "shift": shift,
            "boss": boss,
            "date": _parse_date(date, operation),
            "operator": operator.strip() if operator is not None else None,
            "changes_count": changes,
            "changes_comment": comment.strip() if comment is not None else None,
        }
        updates = {k: v for k, v in updates.items() if v is not None}
        async with project_mod.connect(env=env_name) as project:
            existing = _find_record(project, record_id)
            if not updates:
                return None
            try:
                revised = existing.revise(**updates)
            except pdt.ValidationError as e:
                raise errors.RecordValidationError(
                    operation, settings.format_validation_errors(e)
                ) from e
            await project.save(revised)
            return revised

    try:
        revised = asyncio.run(_edit())
        if revised is None:
            console.print("[dim]Nothing to change[/dim]")
            return
        console.print(f"[green]✓[/green] Updated record {revised.id[:8]}")
    except errors.ShiftlogError as e:
        _handle_error(e)
        raise SystemExit(1)


@app.command
def ls(
    start: Annotated[
        str | None,
        cyclopts.Parameter(name="--from", help="First date to include (YYYY-MM-DD)"),
    ] = None,
    end: Annotated[
        str | None,
        cyclopts.Parameter(name="--to", help="Last date to include (YYYY-MM-DD)"),
    ] = None,
    machine: Annotated[str | None, cyclopts.Parameter(name="--machine", help=f"Machine ({MACHINES})")] = None,
    boss: Annotated[str | None, cyclopts.Parameter(name="--boss", help=f"Shift boss ({BOSSES})")] = None,
    operator: Annotated[str, cyclopts.Parameter(name="--operator", help="Operator name")] = "",
    page: Annotated[int, cyclopts.Parameter(name="--page", help="Page number (1-based)")] = 1,
    env_name: Annotated[
        str | None,
        cyclopts.Parameter(name="--env", help="Environment to list from"),
    ] = None,
):
    """List records, newest first.

    Examples:
        shiftlog ls
        shiftlog ls --machine WH1 --from 2024-01-01 --to 2024-01-31
        shiftlog ls --page 2
    """
    operation = "Listing records"

    async def _ls() -> views.Page:
        try:
            filters = FilterState(
                start_date=_parse_date(start, operation),
                end_date=_parse_date(end, operation),
                machine=machine,
                boss=boss,
                operator=operator,
            )
        except pdt.ValidationError as e:
            raise errors.RecordValidationError(
                operation, settings.format_validation_errors(e)
            ) from e

        async with project_mod.connect(env=env_name) as project:
            view = project.list_view()
            view.set_filters(filters)
            view.go_to(page)
            return view.project(project.records.records)

    try:
        output.render_page(asyncio.run(_ls()))
    except errors.ShiftlogError as e:
        _handle_error(e)
        raise SystemExit(1)


@app.command
def rm(
    record_id: Annotated[str, cyclopts.Parameter(help="Record identifier or unique prefix")],
    yes: Annotated[
        bool,
        cyclopts.Parameter(name="--yes", help="Skip confirmation prompt"),
    ] = False,
    env_name: Annotated[
        str | None,
        cyclopts.Parameter(name="--env", help="Environment to remove from"),
    ] = None,
):
    """Delete one record."""

    async def _rm() -> Record | None:
        async with project_mod.connect(env=env_name) as project:
            record = _find_record(project, record_id)
            console.print(
                f"[bold]Deleting record {record.id[:8]}[/bold] "
                f"({record.date.isoformat()} {record.machine.value} {record.meters:,} m)"
            )
            if not yes and not output.prompt_confirm("Are you sure?"):
                return None
            _check_password(project, f"Deleting record '{record.id}'")
            await project.delete(record.id)
            return record

    try:
        record = asyncio.run(_rm())
        if record is None:
            output.render_cancelled()
            return
        console.print(f"[green]✓[/green] Deleted record {record.id[:8]}")
    except errors.ShiftlogError as e:
        _handle_error(e)
        raise SystemExit(1)


@app.command
def clear(
    export_path: Annotated[
        Path | None,
        cyclopts.Parameter(name="--export", help="Write a CSV export here before clearing"),
    ] = None,
    yes: Annotated[
        bool,
        cyclopts.Parameter(name="--yes", help="Skip confirmation prompt"),
    ] = False,
    env_name: Annotated[
        str | None,
        cyclopts.Parameter(name="--env", help="Environment to clear"),
    ] = None,
):
    """Delete every record. Vocabularies are kept.

    Unless safety.require_export_before_clear is false, an export path is
    required and the export is written before anything is deleted.

    Examples:
        shiftlog clear --export backup.csv
        shiftlog clear --export backup.csv --yes
    """
    action = "Clearing all records"

    async def _clear() -> int | None:
        async with project_mod.connect(env=env_name) as project:
            records = project.records.records
            if not records:
                console.print("[dim]No records to clear[/dim]")
                return 0

            if export_path is None and project.config.safety.require_export_before_clear:
                raise errors.ConfirmationError(
                    action, "An export is required before clearing (pass --export PATH)"
                )
            if export_path is not None:
                written = export.write_csv(records, export_path)
                console.print(f"[green]✓[/green] Exported {len(records)} record(s) to {written}")

            if not yes and not output.prompt_confirm(
                f"Delete all {len(records)} record(s)? This cannot be undone."
            ):
                return None
            _check_password(project, action)
            return await project.clear()

    try:
        removed = asyncio.run(_clear())
        if removed is None:
            output.render_cancelled()
        elif removed:
            console.print(f"[bold green]✓ Removed {removed} record(s)[/bold green]")
    except errors.ShiftlogError as e:
        _handle_error(e)
        raise SystemExit(1)


@app.command
def stats(
    day: Annotated[
        str | None,
        cyclopts.Parameter(name="--date", help="Day to summarize (YYYY-MM-DD), default today"),
    ] = None,
    env_name: Annotated[
        str | None,
        cyclopts.Parameter(name="--env", help="Environment to read from"),
    ] = None,
):
    """Show the production dashboard: daily KPIs, machines, incidents, shifts."""

    async def _stats():
        today = _parse_date(day, "Computing statistics") or dt.date.today()
        async with project_mod.connect(env=env_name) as project:
            records = project.records.records
            return (
                project.summary(today),
                project.machine_performance(records),
                project.incidents(records),
                views.by_shift(records),
                views.by_operator(records, top_n=10),
            )

    try:
        summary, machines, incidents, shifts, operators = asyncio.run(_stats())
        output.render_summary(summary)
        console.print()
        output.render_buckets("Rendimiento por máquina", machines)
        console.print()
        output.render_buckets("Incidencias frecuentes", incidents)
        console.print()
        output.render_buckets("Producción por turno", shifts)
        console.print()
        output.render_buckets("Producción por operario", operators)
    except errors.ShiftlogError as e:
        _handle_error(e)
        raise SystemExit(1)


@app.command(name="export")
def export_cmd(
    path: Annotated[
        Path | None,
        cyclopts.Parameter(help="CSV file to write, default Reporte_Produccion_<today>.csv"),
    ] = None,
    env_name: Annotated[
        str | None,
        cyclopts.Parameter(name="--env", help="Environment to export from"),
    ] = None,
):
    """Export every record to CSV, newest first."""

    async def _export() -> tuple[Path, int]:
        async with project_mod.connect(env=env_name) as project:
            records = project.records.records
            target = path or Path(export.default_filename())
            return export.write_csv(records, target), len(records)

    try:
        written, count = asyncio.run(_export())
        console.print(f"[green]✓[/green] Exported {count} record(s) to {written}")
    except errors.ShiftlogError as e:
        _handle_error(e)
        raise SystemExit(1)


@app.command
def watch(
    duration: Annotated[
        float | None,
        cyclopts.Parameter(name="--duration", help="Stop after this many seconds"),
    ] = None,
    env_name: Annotated[
        str | None,
        cyclopts.Parameter(name="--env", help="Environment to watch"),
    ] = None,
):
    """Print a line for every change to the records until interrupted."""

    async def _watch() -> None:
        async with project_mod.connect(env=env_name) as project:
            project.connectivity.subscribe(output.render_connectivity)
            project.records.subscribe(output.render_snapshot)
            if duration is not None:
                await asyncio.sleep(duration)
            else:
                await asyncio.Event().wait()

    try:
        asyncio.run(_watch())
    except KeyboardInterrupt:
        console.print("[dim]Stopped[/dim]")
    except errors.ShiftlogError as e:
        _handle_error(e)
        raise SystemExit(1)


@app.command
def env(
    name: Annotated[
        str | None,
        cyclopts.Parameter(help="Environment name to show details for"),
    ] = None,
):
    """Show current environment or details of a specific environment."""
    try:
        shiftlog_settings = settings.load_shiftlog_settings()

        if name:
            if name not in shiftlog_settings.environments:
                raise errors.EnvironmentNotFoundError(
                    env=name,
                    available=list(shiftlog_settings.environments.keys()),
                )
            backend = shiftlog_settings.environments[name].backend
            console.print(f"[bold]Environment:[/bold] {name}")
            console.print(f"  Backend: {backend.kind}")
            for key, value in backend.model_dump(exclude={"kind"}).items():
                console.print(f"  {key}: {value}")
        else:
            console.print(
                f"[bold]Current environment:[/bold] {shiftlog_settings.active_env}"
            )
            console.print(f"[dim]Default:[/dim] {shiftlog_settings.default_env}")
            console.print(
                f"[dim]Available:[/dim] {', '.join(shiftlog_settings.environments.keys())}"
            )

    except errors.ShiftlogError as e:
        _handle_error(e)
        raise SystemExit(1)


@vocab.command(name="ls")
def vocab_ls(
    env_name: Annotated[
        str | None,
        cyclopts.Parameter(name="--env", help="Environment to read from"),
    ] = None,
):
    """List both vocabularies, built-in entries marked."""

    async def _vocab_ls():
        async with project_mod.connect(env=env_name) as project:
            registry = project.vocabulary
            return [
                (kind, registry.values(kind), registry.defaults(kind))
                for kind in VocabularyKind
            ]

    try:
        for kind, values, builtin in asyncio.run(_vocab_ls()):
            output.render_vocabulary(kind.value.capitalize(), values, builtin)
            console.print()
    except errors.ShiftlogError as e:
        _handle_error(e)
        raise SystemExit(1)


@vocab.command(name="rm")
def vocab_rm(
    kind: Annotated[VocabularyKind, cyclopts.Parameter(help="comments or operators")],
    value: Annotated[str, cyclopts.Parameter(help="Entry to remove")],
    env_name: Annotated[
        str | None,
        cyclopts.Parameter(name="--env", help="Environment to write to"),
    ] = None,
):
    """Remove a custom entry. Records that use it are left as they are."""

    async def _vocab_rm() -> tuple[bool, bool]:
        async with project_mod.connect(env=env_name) as project:
            removed = await project.remove_entry(kind, value)
            return removed, project.vocabulary.is_builtin(kind, value)

    try:
        removed, builtin = asyncio.run(_vocab_rm())
        if builtin:
            console.print(f"[yellow]'{value}' is a built-in {kind.value} entry and stays listed[/yellow]")
        elif removed:
            console.print(f"[green]✓[/green] Removed '{value}' from {kind.value}")
        else:
            console.print(f"[dim]'{value}' is not in {kind.value}[/dim]")
    except errors.ShiftlogError as e:
        _handle_error(e)
        raise SystemExit(1)


@vocab.command(name="rename")
def vocab_rename(
    kind: Annotated[VocabularyKind, cyclopts.Parameter(help="comments or operators")],
    old: Annotated[str, cyclopts.Parameter(help="Current entry")],
    new: Annotated[str, cyclopts.Parameter(help="New entry")],
    env_name: Annotated[
        str | None,
        cyclopts.Parameter(name="--env", help="Environment to write to"),
    ] = None,
):
    """Rename an entry and rewrite every record that uses it.

    Renaming onto an existing entry merges the two.
    """

    async def _vocab_rename() -> int:
        async with project_mod.connect(env=env_name) as project:
            return await project.rename_entry(kind, old, new.strip())

    try:
        count = asyncio.run(_vocab_rename())
        console.print(
            f"[green]✓[/green] Renamed '{old}' to '{new.strip()}' ({count} record(s) updated)"
        )
    except errors.ShiftlogError as e:
        _handle_error(e)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
