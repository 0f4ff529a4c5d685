"""CLI — Audit log commands."""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from safeact.config import Settings
from safeact.exceptions import AuditStoreError, ConfigError
from safeact.security.audit import SQLiteAuditStore
from safeact.security.models import AuditEntry, AuditResult

app = typer.Typer(help="Read the audit trail.")
console = Console()

_RESULT_STYLE = {
    AuditResult.SUCCESS: "green",
    AuditResult.DENIED: "yellow",
    AuditResult.ERROR: "red",
}


async def _fetch(db_path: Path, limit: int) -> list[AuditEntry]:
    store = SQLiteAuditStore(db_path)
    await store.init()
    try:
        return await store.recent(limit)
    finally:
        await store.close()


@app.command("recent")
def recent_entries(
    limit: int = typer.Option(20, help="Maximum number of entries to show."),
    db: Path | None = typer.Option(None, "--db", help="Audit database path."),
    config: Path | None = typer.Option(None, "--config", "-c", help="YAML config file."),
) -> None:
    """Show the newest audit entries."""
    if db is None:
        try:
            db = Settings.load(config).audit.db_path
        except ConfigError as exc:
            console.print(f"[red]Error: {exc.message}[/red]")
            raise typer.Exit(1)
    if db is None:
        console.print("[red]No audit database configured.[/red]")
        raise typer.Exit(1)
    db = db.expanduser()
    if not db.exists():
        console.print(f"[red]Audit database not found: {db}[/red]")
        raise typer.Exit(1)

    try:
        entries = asyncio.run(_fetch(db, limit))
    except AuditStoreError as exc:
        console.print(f"[red]Error: {exc.message}[/red]")
        raise typer.Exit(1)

    table = Table(title=f"Audit trail ({len(entries)} entries)")
    table.add_column("Time")
    table.add_column("Capability", style="cyan")
    table.add_column("Action")
    table.add_column("Resource")
    table.add_column("Decision")
    table.add_column("Result")
    table.add_column("Error")

    for entry in entries:
        style = _RESULT_STYLE.get(entry.result, "white")
        table.add_row(
            entry.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            entry.capability,
            entry.action,
            entry.resource,
            entry.decision.value,
            f"[{style}]{entry.result.value}[/{style}]",
            entry.error or "",
        )
    console.print(table)
