"""
Host orchestrator — the single entry point callers use.

Owns one of each collaborator (operation log, command runner, template
renderer, credential store, cleanup engine, component registry, status
cache) and exposes every operation as a method returning an
``OperationResult``. Nothing raises past this boundary: errors from the
taxonomy, process failures, config problems and filesystem errors all
come back as failed results with an ``error_code``.

Usage:
    orch = HostOrchestrator(load_config())
    result = orch.install("redis")
    if not result.success:
        print(result.error_code, result.error)
"""

from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Any, Callable

from hostforge.adapters.accounts import AccountRepository
from hostforge.adapters.shell.command import CommandError, CommandRunner
from hostforge.core.config.loader import ConfigError, HostforgeConfig
from hostforge.core.errors import (
    AlreadyInDesiredState,
    HostforgeError,
    PartialStepFailure,
)
from hostforge.core.models.component import ComponentCategory
from hostforge.core.models.result import IssueLog, OperationResult, StackReport
from hostforge.core.models.stacks import DatabaseStackConfig, DbSecurityOptions, DnsStackConfig, MailStackConfig
from hostforge.core.models.status import HostStatus
from hostforge.core.observability.oplog import LogSink, OperationLog
from hostforge.core.services.cleanup import CleanupEngine
from hostforge.core.services.components import Component, ComponentContext, ComponentRegistry
from hostforge.core.services.credentials import CredentialStore
from hostforge.core.services.detection import detect_host_status
from hostforge.core.services.stacks import DatabaseStack, DnsStack, MailStack, Stack
from hostforge.core.services.status_cache import StatusCache
from hostforge.core.services.templates import TemplateRenderer

logger = logging.getLogger(__name__)

Action = Callable[[Component, IssueLog], dict[str, Any] | None]


class HostOrchestrator:
    """Facade over the registry, stacks and status cache of one host.

    Args:
        config: Loaded ``HostforgeConfig``.
        runner: Process runner; a real ``CommandRunner`` by default. A
            runner without a sink gets the operation log attached.
        sink: Downstream sink for the narrative (console, socket, ...).
        clock: Wall clock for log lines and stack documents.
        monotonic: Time source of the status cache.
    """

    def __init__(
        self,
        config: HostforgeConfig,
        runner: CommandRunner | None = None,
        sink: LogSink | None = None,
        clock: Callable[[], datetime] | None = None,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self.clock = clock
        self.oplog = OperationLog(config.log_dir, forward=sink, clock=clock)

        if runner is None:
            runner = CommandRunner(
                self.oplog,
                timeout=config.command_timeout,
                probe_timeout=config.probe_timeout,
            )
        elif runner.sink is None:
            runner.sink = self.oplog
        self.runner = runner

        self.renderer = TemplateRenderer(config.templates_dir)
        self.credentials = CredentialStore(config.credentials_dir)
        self.cleanup = CleanupEngine(runner, config.host_root, AccountRepository(config.host_root))
        self.ctx = ComponentContext(
            config,
            runner,
            self.renderer,
            self.credentials,
            self.cleanup,
            mask=self.oplog.mask,
        )
        self.registry = ComponentRegistry(self.ctx)
        self.status_cache = StatusCache(
            lambda: detect_host_status(self.registry),
            ttl=config.status_ttl_seconds,
            clock=monotonic,
        )

    # ── Status ──────────────────────────────────────────────────

    def status(self, force_refresh: bool = False) -> HostStatus:
        return self.status_cache.get(force_refresh=force_refresh)

    # ── Operation boundary ──────────────────────────────────────

    def _execute(
        self,
        component_id: str,
        operation: str,
        action: Action,
        category: ComponentCategory | None = None,
    ) -> OperationResult:
        """Resolve, guard, run ``action`` and convert the outcome.

        Resolution and the protected guard run before the component's log
        scope opens, so a refused operation leaves no trace on the host.
        """
        try:
            component = self.registry.resolve(component_id, category)
            self.registry.guard(component, operation)
        except HostforgeError as e:
            logger.warning("%s %s refused: %s", operation, component_id, e)
            return OperationResult.failure(str(e), e.code)

        issues = IssueLog()
        with self.oplog.component(component.id):
            self.oplog.info(f"── {operation} {component.id} ──")
            try:
                data = action(component, issues) or {}
            except AlreadyInDesiredState as e:
                self.oplog.info(f"✓ {e}")
                return OperationResult.ok(list(issues), message=str(e))
            except PartialStepFailure as e:
                self.oplog.error(f"✗ {operation} {component.id}: {e}")
                return OperationResult.failure(str(e), e.code, list(issues), completed=e.completed)
            except (HostforgeError, CommandError, ConfigError) as e:
                self.oplog.error(f"✗ {operation} {component.id}: {e}")
                return OperationResult.failure(str(e), e.code, list(issues))
            except OSError as e:
                self.oplog.error(f"✗ {operation} {component.id}: {e}")
                return OperationResult.failure(str(e), "os_error", list(issues))
            except ValueError as e:
                self.oplog.error(f"✗ {operation} {component.id}: {e}")
                return OperationResult.failure(str(e), "invalid_input", list(issues))
            self.oplog.info(f"✓ {operation} {component.id} done")

        self.status_cache.invalidate()
        return OperationResult.ok(list(issues), **data)

    # ── Component lifecycle ─────────────────────────────────────

    def install(self, component_id: str, **options: Any) -> OperationResult:
        def _install(component: Component, issues: IssueLog) -> dict[str, Any]:
            version = component.install(issues, **options)
            return {"version": version}

        return self._execute(component_id, "install", _install)

    def update(self, component_id: str) -> OperationResult:
        def _update(component: Component, issues: IssueLog) -> dict[str, Any]:
            versions = component.update(issues)
            old, new = versions["old_version"], versions["new_version"]
            return {**versions, "already_latest": old is not None and old == new}

        return self._execute(component_id, "update", _update)

    def remove(self, component_id: str, purge: bool = False, remove_data: bool = False) -> OperationResult:
        def _remove(component: Component, issues: IssueLog) -> None:
            component.remove(issues, purge=purge, remove_data=remove_data)

        return self._execute(component_id, "remove", _remove)

    def start(self, component_id: str) -> OperationResult:
        return self._execute(component_id, "start", lambda c, issues: c.start(issues))

    def stop(self, component_id: str) -> OperationResult:
        return self._execute(component_id, "stop", lambda c, issues: c.stop(issues))

    # ── Databases ───────────────────────────────────────────────

    def configure_database(
        self,
        engine: str,
        db_name: str = "app",
        security: DbSecurityOptions | None = None,
    ) -> OperationResult:
        """Install (if needed), harden and create the first user + database.

        The connection string in ``data`` carries the secret: show it to
        the caller once, never log it.
        """
        return self._execute(
            engine,
            "configure",
            lambda c, issues: c.configure(issues, db_name=db_name, security=security),
            ComponentCategory.DATABASE,
        )

    def reconfigure_database(self, engine: str, db_name: str, reset_password: bool = False) -> OperationResult:
        return self._execute(
            engine,
            "reconfigure",
            lambda c, issues: c.reconfigure(issues, db_name, reset_password=reset_password),
            ComponentCategory.DATABASE,
        )

    def reset_database_password(self, engine: str, user: str, secret: str | None = None) -> OperationResult:
        def _reset(component: Component, issues: IssueLog) -> dict[str, Any]:
            new_secret = component.reset_secret(issues, user, secret)
            return {"user": user, "secret": new_secret}

        return self._execute(engine, "reset-password", _reset, ComponentCategory.DATABASE)

    def remove_database(self, engine: str, purge: bool = False, remove_data: bool = False) -> OperationResult:
        def _remove(component: Component, issues: IssueLog) -> None:
            component.remove(issues, purge=purge, remove_data=remove_data)

        return self._execute(engine, "remove", _remove, ComponentCategory.DATABASE)

    # ── Stacks ──────────────────────────────────────────────────

    def _stack(self, stack: Stack, config: Any) -> StackReport:
        with self.oplog.component(f"{stack.kind}-stack"):
            report = stack.configure(config)
        if report.success or report.completed:
            self.status_cache.invalidate()
        return report

    def configure_mail_stack(self, config: MailStackConfig) -> StackReport:
        return self._stack(MailStack(self.registry, clock=self.clock), config)

    def configure_dns_stack(self, config: DnsStackConfig) -> StackReport:
        return self._stack(DnsStack(self.registry, clock=self.clock), config)

    def configure_database_stack(self, config: DatabaseStackConfig) -> StackReport:
        return self._stack(DatabaseStack(self.registry, clock=self.clock), config)

    # ── Logs ────────────────────────────────────────────────────

    def logs(self, component_id: str | None = None, lines: int | None = None) -> str:
        return self.oplog.read(component_id, lines)

    def clear_logs(self, component_id: str | None = None) -> None:
        self.oplog.clear(component_id)
