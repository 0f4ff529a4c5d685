"""CLI — Tool catalog commands."""

from __future__ import annotations

import json

import typer
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from safeact.tools.base import CapabilityTool
from safeact.tools.registry import get_tool_definitions, get_tools

app = typer.Typer(help="Inspect the tools exposed to the LLM.")
console = Console()


@app.command("list")
def list_tools(
    json_output: bool = typer.Option(False, "--json", help="Output tool definitions as JSON."),
) -> None:
    """List every registered tool and the sandbox action it maps to."""
    if json_output:
        console.print(Syntax(json.dumps(get_tool_definitions(), indent=2), "json"))
        return

    table = Table(title="Tools")
    table.add_column("Name", style="cyan")
    table.add_column("Capability")
    table.add_column("Description")

    for tool in get_tools():
        target = (
            f"{tool.capability}.{tool.action}"
            if isinstance(tool, CapabilityTool)
            else "[dim]-[/dim]"
        )
        table.add_row(tool.name, target, tool.description)
    console.print(table)
