"""SafeAct CLI — Entry point.

Usage:
    safeact tools list
    safeact policy check <capability> <action> <resource>
    safeact plan parse <file>
    safeact audit recent
"""

from __future__ import annotations

import typer
from rich.console import Console

from safeact.cli.commands import audit, plans, policy, tools

app = typer.Typer(
    name="safeact",
    help="SafeAct — policy-gated tools and plans for autonomous agents.",
    no_args_is_help=True,
    pretty_exceptions_enable=False,
)

console = Console()

app.add_typer(tools.app, name="tools")
app.add_typer(policy.app, name="policy")
app.add_typer(plans.app, name="plan")
app.add_typer(audit.app, name="audit")


@app.callback()
def main_callback() -> None:
    pass


if __name__ == "__main__":
    app()
