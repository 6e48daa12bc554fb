"""
CLI commands for database engines (postgresql, mysql, redis).

Connection strings carry secrets: they are printed once, to stdout, and
never written to the operation log.
"""

from __future__ import annotations

import click

from hostforge.ui.cli import echo_result, get_orchestrator

ENGINES = click.Choice(["postgresql", "mysql", "redis"])


@click.group("db")
def db() -> None:
    """Configure database engines and manage their users."""


def _echo_connection(data: dict) -> None:
    if data.get("connection_string"):
        click.echo(f"   User: {data.get('user')}")
        click.echo(f"   Database: {data.get('database')}")
        click.secho(f"   🔑 {data['connection_string']}", fg="cyan")
        click.echo("   (shown once; stored in the credentials directory)")


@db.command("configure")
@click.argument("engine", type=ENGINES)
@click.option("--name", "db_name", default="app", show_default=True, help="Database name.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def configure(ctx: click.Context, engine: str, db_name: str, as_json: bool) -> None:
    """Install ENGINE if needed, harden it and create a user + database."""
    result = get_orchestrator(ctx, as_json).configure_database(engine, db_name=db_name)
    echo_result(result, as_json, f"{engine} configured")
    if not as_json:
        _echo_connection(result.data)


@db.command("reconfigure")
@click.argument("engine", type=ENGINES)
@click.option("--name", "db_name", required=True, help="Database name.")
@click.option("--reset-password", is_flag=True, help="Rotate the user's secret instead of creating.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def reconfigure(ctx: click.Context, engine: str, db_name: str, reset_password: bool, as_json: bool) -> None:
    """Add another user + database, or rotate an existing user's secret."""
    result = get_orchestrator(ctx, as_json).reconfigure_database(
        engine, db_name, reset_password=reset_password
    )
    echo_result(result, as_json, f"{engine} reconfigured")
    if not as_json:
        _echo_connection(result.data)


@db.command("reset-password")
@click.argument("engine", type=ENGINES)
@click.argument("user")
@click.option("--secret", default=None, help="Use this secret instead of generating one.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def reset_password(ctx: click.Context, engine: str, user: str, secret: str | None, as_json: bool) -> None:
    """Rotate USER's secret on ENGINE (``root`` for the root secret)."""
    result = get_orchestrator(ctx, as_json).reset_database_password(engine, user, secret)
    echo_result(result, as_json, f"Secret for {user} rotated")
    if not as_json and result.data.get("secret"):
        click.secho(f"   🔑 {result.data['secret']}", fg="cyan")


@db.command("remove")
@click.argument("engine", type=ENGINES)
@click.option("--purge", is_flag=True, help="Purge packages and configuration.")
@click.option("--remove-data", is_flag=True, help="Delete data directories too.")
@click.option("--yes", "-y", is_flag=True, help="Skip the confirmation for --remove-data.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def remove(ctx: click.Context, engine: str, purge: bool, remove_data: bool, yes: bool, as_json: bool) -> None:
    """Remove ENGINE; --purge --remove-data runs the nuclear cleanup."""
    if remove_data and not yes and not as_json:
        click.confirm(f"Delete all {engine} data and stored credentials?", abort=True)
    result = get_orchestrator(ctx, as_json).remove_database(engine, purge=purge, remove_data=remove_data)
    echo_result(result, as_json, f"{engine} removed")
