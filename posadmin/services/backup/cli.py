"""CLI for the POS backup service (Typer + Rich)."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, IntPrompt
from rich.table import Table

from posadmin.db import mask_url
from posadmin.services.backup.config import load_config
from posadmin.services.backup.errors import BackupError
from posadmin.services.backup.scheduler import run_trigger
from posadmin.services.backup.service import BackupService
from posadmin.services.backup.storage import ArtifactKind, BackupEntry, format_size

app = typer.Typer(
    name="posadmin-backup",
    help="POS database backup service.",
    no_args_is_help=True,
)
console = Console()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("backup_service")

CLI_ACTOR = "CLI"


def _service() -> BackupService:
    return BackupService(load_config())


def _format_age(dt: datetime) -> str:
    """Human-readable age from a naive local datetime."""
    delta = datetime.now() - dt
    hours = delta.total_seconds() / 3600
    if hours < 1:
        return f"{int(delta.total_seconds() / 60)}m ago"
    elif hours < 24:
        return f"{hours:.1f}h ago"
    else:
        return f"{delta.days}d ago"


def _backup_table(entries: list[BackupEntry], title: str) -> Table:
    table = Table(title=title)
    table.add_column("#", style="dim", width=4)
    table.add_column("Kind", style="cyan")
    table.add_column("Filename")
    table.add_column("Size", justify="right")
    table.add_column("Date")
    table.add_column("Age", style="dim")

    for i, entry in enumerate(entries, 1):
        table.add_row(
            str(i),
            entry.kind.value,
            entry.filename,
            format_size(entry.size),
            entry.modified.strftime("%Y-%m-%d %H:%M"),
            _format_age(entry.modified),
        )
    return table


# ── backup run ──────────────────────────────────────────────────────────


@app.command()
def run() -> None:
    """Create a manual backup now."""
    service = _service()

    try:
        with console.status("Dumping database..."):
            result = service.create_backup(ArtifactKind.manual, actor=CLI_ACTOR)
    except BackupError as e:
        console.print(f"[red]Error:[/] {e}")
        raise typer.Exit(1)

    method = "mysqldump" if result.strategy == "mysqldump" else "fallback method"
    console.print(
        Panel(
            f"[green]OK[/]   {result.filename}\n"
            f"Size:   {result.size_formatted}\n"
            f"Method: {method}",
            title="[green]Backup Complete[/]",
        )
    )


# ── backup scheduled ────────────────────────────────────────────────────


@app.command()
def scheduled() -> None:
    """Scheduler entry point: back up only if the configured frequency is due.

    Prints one SUCCESS/INFO/ERROR line and exits 0 or 1, for cron or Task Scheduler.
    """
    code = run_trigger(_service(), out=typer.echo)
    raise typer.Exit(code)


# ── backup list ─────────────────────────────────────────────────────────


@app.command("list")
def list_backups(
    kind: Annotated[Optional[ArtifactKind], typer.Option(help="Filter by backup kind")] = None,
) -> None:
    """List available backups, newest first."""
    entries = _service().list_backups(kind)

    if not entries:
        console.print("[yellow]No backups found.[/]")
        return

    console.print(_backup_table(entries, "Available Backups"))


# ── backup delete ───────────────────────────────────────────────────────


@app.command()
def delete(
    filename: Annotated[str, typer.Argument(help="Backup file name")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt")] = False,
) -> None:
    """Delete a single backup file."""
    service = _service()

    if not yes and not Confirm.ask(f"Delete [bold]{filename}[/]?"):
        console.print("Aborted.")
        raise typer.Exit(0)

    try:
        service.delete_backup(filename, actor=CLI_ACTOR)
    except BackupError as e:
        console.print(f"[red]Error:[/] {e}")
        raise typer.Exit(1)
    console.print(f"[green]Deleted:[/] {filename}")


# ── backup restore ──────────────────────────────────────────────────────


@app.command()
def restore(
    filename: Annotated[Optional[str], typer.Argument(help="Backup file name (omit to pick from a list)")] = None,
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt")] = False,
) -> None:
    """Restore the database from a backup."""
    service = _service()

    if not filename:
        entries = service.list_backups()
        if not entries:
            console.print("[yellow]No backups found.[/]")
            raise typer.Exit(1)

        console.print(_backup_table(entries, "Select a backup to restore"))
        choice = IntPrompt.ask("\nSelect backup number", default=1)
        if choice < 1 or choice > len(entries):
            console.print("[red]Invalid selection.[/]")
            raise typer.Exit(1)
        filename = entries[choice - 1].filename

    console.print(f"Backup:   [bold]{filename}[/]")
    console.print(f"Target:   [bold]{mask_url(service.config.database_url)}[/]")
    if service.config.safety_backup:
        console.print("[dim]A pre-restore safety backup will be taken first.[/]")

    if not yes and not Confirm.ask("\n[yellow]This will overwrite data. Continue?[/]"):
        console.print("Aborted.")
        raise typer.Exit(0)

    try:
        with console.status("Restoring..."):
            result = service.restore_backup(filename, actor=CLI_ACTOR)
    except BackupError as e:
        console.print(f"[red]Restore failed:[/] {e}")
        raise typer.Exit(1)

    console.print(f"[green]{result.message}[/]")
    if result.errors:
        console.print(f"[yellow]{result.errors} statement(s) failed; see the backup log for details.[/]")


# ── backup logs ─────────────────────────────────────────────────────────


@app.command()
def logs(
    limit: Annotated[int, typer.Option("--limit", "-n", help="Number of lines")] = 50,
) -> None:
    """Show recent backup log entries, newest first."""
    lines = _service().recent_logs(limit)
    if not lines:
        console.print("[yellow]No log entries.[/]")
        return
    for line in lines:
        style = "red" if "[ERROR]" in line else "green" if "[SUCCESS]" in line else None
        console.print(line, style=style, markup=False, highlight=False)


# ── backup status ───────────────────────────────────────────────────────


@app.command()
def status() -> None:
    """Show backup service status and configuration."""
    service = _service()
    config = service.config

    try:
        info = service.status()
    except BackupError as e:
        console.print(f"[red]Error:[/] {e}")
        raise typer.Exit(1)

    lines = []
    lines.append(f"[bold]Database:[/]       {mask_url(config.database_url)}")
    lines.append(f"[bold]Backup Dir:[/]     {info['backup_dir']}")
    lines.append(f"[bold]Log File:[/]       {config.activity_log_file}")
    lines.append("")
    lines.append(f"[bold]Frequency:[/]      {info['frequency']}")
    lines.append(f"[bold]Retention:[/]      {info['retention_count']} backups")
    lines.append(f"[bold]Cron Schedule:[/]  {config.cron_schedule}")

    last = info["last_backup_time"]
    if last:
        lines.append(f"[bold]Last Backup:[/]    {last.strftime('%Y-%m-%d %H:%M')} ({_format_age(last)})")
    else:
        lines.append("[bold]Last Backup:[/]    [dim]never[/]")

    lines.append(f"[bold]Total Backups:[/]  {info['total_backups']} ({format_size(info['total_size'])})")
    if info["newest"]:
        lines.append(f"[bold]Newest:[/]         {info['newest'].filename}")

    console.print(Panel("\n".join(lines), title="Backup Service Status"))


# ── backup serve ────────────────────────────────────────────────────────


@app.command()
def serve(
    schedule: Annotated[
        Optional[str], typer.Option("--schedule", "-s", help="Cron schedule (default from env)")
    ] = None,
) -> None:
    """Run as a long-lived daemon that checks for due backups on a cron schedule."""
    from posadmin.services.backup.cron import next_run_time, parse_cron_schedule, run_scheduler

    service = _service()
    cron_schedule = schedule or service.config.cron_schedule

    try:
        minutes, hours = parse_cron_schedule(cron_schedule)
    except ValueError as e:
        console.print(f"[red]Error:[/] Invalid cron schedule: {e}")
        raise typer.Exit(1)

    console.print(f"Cron schedule: {cron_schedule}")
    console.print(f"Next check at: {next_run_time(minutes, hours).strftime('%Y-%m-%d %H:%M')}")

    run_scheduler(cron_schedule, lambda: run_trigger(service, out=logger.info))


if __name__ == "__main__":
    app()
