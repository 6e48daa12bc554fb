"""
CLI commands for single components (runtimes, databases, services).

Thin wrappers over ``HostOrchestrator`` lifecycle operations.
"""

from __future__ import annotations

import click

from hostforge.ui.cli import echo_result, fail, get_orchestrator


@click.group("component")
def component() -> None:
    """Install, update, remove, start and stop components."""


def _parse_options(pairs: tuple[str, ...], as_json: bool) -> dict[str, str]:
    options: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            fail(f"Invalid option {pair!r}: expected KEY=VALUE", as_json, "invalid_input")
        options[key.replace("-", "_")] = value
    return options


# ── Lifecycle ───────────────────────────────────────────────────


@component.command("install")
@click.argument("component_id")
@click.option("--option", "-o", "pairs", multiple=True, help="Installer variable as KEY=VALUE.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def install(ctx: click.Context, component_id: str, pairs: tuple[str, ...], as_json: bool) -> None:
    """Install COMPONENT_ID."""
    options = _parse_options(pairs, as_json)
    result = get_orchestrator(ctx, as_json).install(component_id, **options)
    echo_result(result, as_json, f"{component_id} installed ({result.data.get('version', '?')})")


@component.command("update")
@click.argument("component_id")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def update(ctx: click.Context, component_id: str, as_json: bool) -> None:
    """Upgrade COMPONENT_ID in place."""
    result = get_orchestrator(ctx, as_json).update(component_id)
    if result.data.get("already_latest"):
        done = f"{component_id} is already at the latest version ({result.data.get('new_version')})"
    else:
        done = f"{component_id} updated {result.data.get('old_version')} → {result.data.get('new_version')}"
    echo_result(result, as_json, done)


@component.command("remove")
@click.argument("component_id")
@click.option("--purge", is_flag=True, help="Purge packages and their configuration.")
@click.option("--remove-data", is_flag=True, help="Delete data directories too.")
@click.option("--yes", "-y", is_flag=True, help="Skip the confirmation for --remove-data.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def remove(
    ctx: click.Context,
    component_id: str,
    purge: bool,
    remove_data: bool,
    yes: bool,
    as_json: bool,
) -> None:
    """Remove COMPONENT_ID."""
    if remove_data and not yes and not as_json:
        click.confirm(f"Delete all data of {component_id}?", abort=True)
    result = get_orchestrator(ctx, as_json).remove(component_id, purge=purge, remove_data=remove_data)
    echo_result(result, as_json, f"{component_id} removed")


@component.command("start")
@click.argument("component_id")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def start(ctx: click.Context, component_id: str, as_json: bool) -> None:
    """Start the managed process of COMPONENT_ID."""
    result = get_orchestrator(ctx, as_json).start(component_id)
    echo_result(result, as_json, f"{component_id} started")


@component.command("stop")
@click.argument("component_id")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def stop(ctx: click.Context, component_id: str, as_json: bool) -> None:
    """Stop the managed process of COMPONENT_ID."""
    result = get_orchestrator(ctx, as_json).stop(component_id)
    echo_result(result, as_json, f"{component_id} stopped")
