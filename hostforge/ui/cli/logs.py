"""CLI commands for the operation log."""

from __future__ import annotations

import json

import click

from hostforge.ui.cli import get_orchestrator


@click.group("logs")
def logs() -> None:
    """Read or clear operation logs."""


@logs.command("show")
@click.argument("component_id", required=False)
@click.option("--lines", "-n", type=int, default=None, help="Only the last N lines.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def show(ctx: click.Context, component_id: str | None, lines: int | None, as_json: bool) -> None:
    """Show the log of COMPONENT_ID (default: the aggregate log)."""
    content = get_orchestrator(ctx, as_json).logs(component_id, lines)

    if as_json:
        click.echo(json.dumps({"component": component_id, "content": content}, indent=2))
        return

    if not content:
        click.echo(f"   📭 No log entries for {component_id or 'infrastructure'}")
        return
    click.echo(content.rstrip("\n"))


@logs.command("clear")
@click.argument("component_id", required=False)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def clear(ctx: click.Context, component_id: str | None, as_json: bool) -> None:
    """Truncate the log of COMPONENT_ID (default: the aggregate log)."""
    get_orchestrator(ctx, as_json).clear_logs(component_id)

    if as_json:
        click.echo(json.dumps({"cleared": component_id or "infrastructure"}, indent=2))
        return
    click.secho(f"✅ Cleared {component_id or 'infrastructure'} log", fg="green")
