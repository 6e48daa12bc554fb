"""
CLI commands for stack workflows (mail, DNS, database).

Each command reads a YAML or JSON file, validates it against the stack's
pydantic model and runs the stack.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import click
import yaml
from pydantic import BaseModel, ValidationError

from hostforge.ui.cli import echo_result, fail, get_orchestrator

STACK_FILE = click.Path(exists=True, dir_okay=False, path_type=Path)


@click.group("stack")
def stack() -> None:
    """Configure the mail, DNS or database stack from a file."""


def _load(path: Path, model: type[BaseModel], as_json: bool) -> Any:
    """Parse ``path`` (YAML is a superset of JSON) into ``model``."""
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        fail(f"Cannot read {path}: {e}", as_json, "config_error")
    if not isinstance(data, dict):
        fail(f"Expected a mapping in {path}", as_json, "config_error")
    try:
        return model.model_validate(data)
    except ValidationError as e:
        fail(f"Invalid {path.name}: {e}", as_json, "invalid_input")


# ── Mail ────────────────────────────────────────────────────────


@stack.command("mail")
@click.argument("path", type=STACK_FILE)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def mail(ctx: click.Context, path: Path, as_json: bool) -> None:
    """Install and configure the mail stack described in PATH."""
    from hostforge.core.models.stacks import MailStackConfig

    config = _load(path, MailStackConfig, as_json)
    report = get_orchestrator(ctx, as_json).configure_mail_stack(config)
    echo_result(report, as_json, f"Mail stack configured for {', '.join(config.all_domains)}")

    if as_json:
        return
    records = report.data.get("dkim", {})
    if records:
        click.echo()
        click.secho("   📜 Publish these DKIM records:", fg="cyan")
        for record in records.values():
            click.echo(f"      {record['name']}  TXT  \"{record['value']}\"")
    tls = report.data.get("tls", {})
    if tls:
        click.echo(f"\n   🔒 TLS: {tls.get('provider')} ({tls.get('cert')})")


# ── DNS ─────────────────────────────────────────────────────────


@stack.command("dns")
@click.argument("path", type=STACK_FILE)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def dns(ctx: click.Context, path: Path, as_json: bool) -> None:
    """Install and configure BIND 9 as described in PATH."""
    from hostforge.core.models.stacks import DnsStackConfig

    config = _load(path, DnsStackConfig, as_json)
    report = get_orchestrator(ctx, as_json).configure_dns_stack(config)
    echo_result(report, as_json, f"DNS stack configured ({config.architecture})")

    if as_json:
        return
    for zone in report.data.get("zones", []):
        click.echo(f"     • {zone['name']}  serial {zone['serial']}  → {zone['file']}")


# ── Database ────────────────────────────────────────────────────


@stack.command("database")
@click.argument("path", type=STACK_FILE)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def database(ctx: click.Context, path: Path, as_json: bool) -> None:
    """Install, harden, tune and back up the engine described in PATH."""
    from hostforge.core.models.stacks import DatabaseStackConfig

    config = _load(path, DatabaseStackConfig, as_json)
    report = get_orchestrator(ctx, as_json).configure_database_stack(config)
    echo_result(report, as_json, f"{config.engine} stack configured")

    if not as_json and report.data.get("connection_string"):
        click.secho(f"   🔑 {report.data['connection_string']}", fg="cyan")
