"""CLI — Plan parsing commands."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import typer
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from safeact.orchestration.planner import DEFAULT_MAX_STEPS, parse_plan_from_text

app = typer.Typer(help="Parse and inspect LLM-produced execution plans.")
console = Console()


@app.command("parse")
def parse_plan(
    plan_file: Path = typer.Argument(help="File holding raw LLM output. Use - for stdin."),
    max_steps: int = typer.Option(DEFAULT_MAX_STEPS, help="Maximum number of steps kept."),
    json_output: bool = typer.Option(False, "--json", help="Output the normalised plan as JSON."),
) -> None:
    """Normalise a plan the way the planner does and show the result."""
    if str(plan_file) == "-":
        raw = sys.stdin.read()
    else:
        if not plan_file.exists():
            console.print(f"[red]File not found: {plan_file}[/red]")
            raise typer.Exit(1)
        raw = plan_file.read_text()

    plan = parse_plan_from_text(raw, max_steps=max_steps)
    if plan is None:
        console.print("[red]No valid plan found.[/red]")
        raise typer.Exit(1)

    if json_output:
        console.print(Syntax(json.dumps(plan.to_dict(), indent=2), "json"))
        return

    console.print(f"[bold]{plan.goal}[/bold]")
    console.print(
        f"Side effects: {'[yellow]yes[/yellow]' if plan.has_side_effects else 'no'}"
        f"  Estimated duration: {plan.estimated_duration}"
    )

    table = Table(title="Steps")
    table.add_column("ID", style="cyan")
    table.add_column("Tool")
    table.add_column("Depends on")
    table.add_column("Can fail")
    table.add_column("Description")

    for step in plan.steps:
        table.add_row(
            str(step.id),
            step.tool,
            ", ".join(str(d) for d in step.depends_on) or "-",
            "yes" if step.can_fail else "no",
            step.description,
        )
    console.print(table)

    for risk in plan.risks:
        console.print(f"[yellow]Risk:[/yellow] {risk}")
