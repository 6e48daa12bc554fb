"""
hostforge — CLI entrypoint.

Usage:
    hostforge --help
    hostforge status
    hostforge component install redis
    hostforge stack mail mail.yml
    hostforge config check
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click

from hostforge import __version__
from hostforge.core.observability.logging_config import ENV_FILE, ENV_FILE_LEVEL, resolve_level, setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="hostforge")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress the operation narrative.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to hostforge.yml (default: auto-detect).",
)
@click.option("--mock", is_flag=True, help="Use the mock runner (no real execution).")
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
    mock: bool,
) -> None:
    """hostforge — install, configure and run services on this host."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["mock"] = mock
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = resolve_level()

    setup_logging(
        level=level,
        log_file=os.environ.get(ENV_FILE),
        log_file_level=os.environ.get(ENV_FILE_LEVEL),
        quiet_third_party=not debug,
    )


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--refresh", is_flag=True, help="Ignore the cached snapshot.")
@click.pass_context
def status(ctx: click.Context, as_json: bool, refresh: bool) -> None:
    """Show installed runtimes, databases, services and host facts."""
    from hostforge.ui.cli import get_orchestrator

    orch = get_orchestrator(ctx, as_json)
    host = orch.status(force_refresh=refresh)

    if as_json:
        click.echo(json.dumps(host.model_dump(), indent=2))
        return

    system = host.system
    click.secho(f"\n🖥️  {system.os} {system.os_version}".rstrip(), fg="cyan", bold=True)
    click.echo(f"   CPU: {system.cpu}  RAM: {system.ram or '?'}  Disk: {system.disk}")
    if system.uptime:
        click.echo(f"   Uptime: {system.uptime}")

    click.echo()
    click.secho("   Runtimes:", fg="white", bold=True)
    for rt in host.runtimes:
        if not rt.installed:
            click.echo(f"     • {rt.type}  —")
            continue
        update = f"  → {rt.latest_version} available" if rt.update_available else ""
        click.echo(f"     • {rt.type} {rt.version or ''}{update}")

    click.echo()
    click.secho("   Databases:", fg="white", bold=True)
    for db in host.databases:
        _echo_process(db.type, db.installed, db.running, db.version)

    click.echo()
    click.secho("   Services:", fg="white", bold=True)
    for svc in host.services:
        _echo_process(svc.type, svc.installed, svc.running, svc.version, svc.protected)
    click.echo()


def _echo_process(
    name: str,
    installed: bool,
    running: bool,
    version: str | None,
    protected: bool = False,
) -> None:
    lock = " 🔒" if protected else ""
    if not installed:
        click.echo(f"     • {name}{lock}  —")
        return
    click.echo(f"     • {name}{lock} {version or ''}  ", nl=False)
    if running:
        click.secho("running", fg="green")
    else:
        click.secho("stopped", fg="yellow")


@cli.group()
def config() -> None:
    """hostforge configuration commands."""


@config.command("check")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def config_check(ctx: click.Context, as_json: bool) -> None:
    """Validate hostforge.yml and the template search path."""
    from hostforge.core.config.loader import ConfigError, load_config
    from hostforge.core.services.templates import TEMPLATE_FILE_MAP, TemplateRenderer

    try:
        cfg = load_config(ctx.obj.get("config_path"))
    except ConfigError as e:
        if as_json:
            click.echo(json.dumps({"valid": False, "errors": [str(e)]}, indent=2))
        else:
            click.secho("❌ Configuration errors:", fg="red", bold=True)
            click.echo(f"   • {e}")
        sys.exit(1)

    renderer = TemplateRenderer(cfg.templates_dir)
    missing = [name for name in TEMPLATE_FILE_MAP if not renderer.has_template(name)]
    warnings = [f"template missing: {name}" for name in missing]
    if cfg.templates_dir is not None and not cfg.templates_dir.is_dir():
        warnings.append(f"templates_dir does not exist: {cfg.templates_dir}")

    if as_json:
        click.echo(json.dumps({
            "valid": True,
            "config": cfg.model_dump(mode="json"),
            "warnings": warnings,
        }, indent=2))
        return

    click.secho("✅ Configuration is valid", fg="green", bold=True)
    click.echo(f"   Host root: {cfg.host_root}")
    click.echo(f"   State dir: {cfg.state_dir}")
    click.echo(f"   Status TTL: {cfg.status_ttl_seconds}s")
    click.echo(f"   Timeouts: {cfg.command_timeout}s (probes {cfg.probe_timeout}s)")
    click.echo(f"   Templates: {len(TEMPLATE_FILE_MAP) - len(missing)}/{len(TEMPLATE_FILE_MAP)} found")

    if warnings:
        click.echo()
        click.secho("⚠️  Warnings:", fg="yellow")
        for warn in warnings:
            click.echo(f"   • {warn}")
    click.echo()


# ── Sub-command groups ──────────────────────────────────────────

from hostforge.ui.cli.component import component
from hostforge.ui.cli.db import db
from hostforge.ui.cli.logs import logs
from hostforge.ui.cli.stack import stack

cli.add_command(component)
cli.add_command(db)
cli.add_command(stack)
cli.add_command(logs)


if __name__ == "__main__":
    cli()
