"""CLI — Policy inspection commands.

``check`` only evaluates the permission decision.  Nothing is executed and
no audit entry is written.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from safeact.config import Settings
from safeact.exceptions import ConfigError
from safeact.security.factory import build_sandbox
from safeact.security.models import Denied

app = typer.Typer(help="Evaluate sandbox policy without executing anything.")
console = Console()


@app.command("check")
def check_policy(
    capability: str = typer.Argument(help="Capability name, e.g. filesystem."),
    action: str = typer.Argument(help="Action name, e.g. read."),
    resource: str = typer.Argument(help="Path, command, URL or job id."),
    config: Path | None = typer.Option(None, "--config", "-c", help="YAML config file."),
) -> None:
    """Show the decision the sandbox would make for a request."""
    try:
        settings = Settings.load(config)
    except ConfigError as exc:
        console.print(f"[red]Error: {exc.message}[/red]")
        raise typer.Exit(1)

    sandbox = build_sandbox(settings)
    decision = sandbox.check(capability, action, resource, requested_by="cli")

    if isinstance(decision, Denied):
        console.print(f"[red]denied[/red] {decision.reason}")
        raise typer.Exit(2)
    style = "yellow" if decision.level.needs_approval else "green"
    console.print(f"[{style}]allowed[/{style}] level={decision.level.value}")
