"""
CLI command groups — thin wrappers over ``HostOrchestrator``.

Shared helpers build the orchestrator from the click context and print
``OperationResult`` receipts the same way in every group.
"""

from __future__ import annotations

import json
import sys
from typing import NoReturn

import click

from hostforge.core.models.result import OperationResult
from hostforge.core.services.orchestrator import HostOrchestrator


def _console_sink(message: str, stream: str) -> None:
    click.echo(f"   {message}", err=stream == "stderr")


def fail(message: str, as_json: bool, code: str = "error") -> NoReturn:
    if as_json:
        click.echo(json.dumps({"success": False, "error": message, "error_code": code}, indent=2))
    else:
        click.secho(f"❌ {message}", fg="red")
    sys.exit(1)


def get_orchestrator(ctx: click.Context, as_json: bool = False) -> HostOrchestrator:
    """Build the orchestrator for this invocation (exits on a bad config)."""
    from hostforge.adapters.mock import MockRunner
    from hostforge.core.config.loader import ConfigError, load_config

    try:
        config = load_config(ctx.obj.get("config_path"))
    except ConfigError as e:
        fail(str(e), as_json, e.code)

    # JSON output must stay parseable: no narrative on stdout
    sink = None if as_json or ctx.obj.get("quiet") else _console_sink
    runner = MockRunner() if ctx.obj.get("mock") else None
    return HostOrchestrator(config, runner=runner, sink=sink)


def echo_result(result: OperationResult, as_json: bool, done: str) -> None:
    """Print a receipt; exit 1 when the operation failed."""
    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if not result.success:
            sys.exit(1)
        return

    if result.success:
        click.secho(f"✅ {done}", fg="green", bold=True)
    else:
        click.secho(f"❌ {result.error}", fg="red")
        completed = result.data.get("completed") or getattr(result, "completed", None)
        if completed:
            click.echo(f"   Completed before the failure: {', '.join(completed)}")

    if result.warnings:
        click.secho("⚠️  Warnings:", fg="yellow")
        for warn in result.warnings:
            click.echo(f"   • {warn}")

    if not result.success:
        sys.exit(1)
