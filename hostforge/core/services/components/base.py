"""
Component base — the uniform install/update/remove/start/stop interface.

One subclass per category (``RuntimeComponent``, ``DatabaseComponent``,
``ServiceComponent``) carries the default apt/systemd behavior; components
with special install logic override single methods.

Methods receive an ``IssueLog`` for best-effort steps and raise
``HostforgeError`` / ``CommandError`` on fatal ones. They never return
``OperationResult`` themselves: the orchestrator wraps them.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Any, Callable

from hostforge.adapters.shell.command import CommandRunner
from hostforge.core.config.loader import HostforgeConfig
from hostforge.core.errors import AlreadyInDesiredState, NotAService
from hostforge.core.models.component import ComponentCategory, ComponentDescriptor
from hostforge.core.models.result import IssueLog
from hostforge.core.services.cleanup import CleanupEngine
from hostforge.core.services.components.catalog import removal_packages
from hostforge.core.services.credentials import CredentialStore
from hostforge.core.services.templates import TemplateRenderer

logger = logging.getLogger(__name__)


class ComponentContext:
    """Collaborators shared by every component of one orchestrator."""

    def __init__(
        self,
        config: HostforgeConfig,
        runner: CommandRunner,
        renderer: TemplateRenderer,
        credentials: CredentialStore,
        cleanup: CleanupEngine,
        mask: Callable[[str], None] | None = None,
    ):
        self.config = config
        self.runner = runner
        self.renderer = renderer
        self.credentials = credentials
        self.cleanup = cleanup
        self._mask = mask

    def path(self, os_path: str | Path) -> Path:
        return self.config.host_path(os_path)

    def mask(self, secret: str) -> None:
        """Keep ``secret`` out of the operation log."""
        if self._mask is not None:
            self._mask(secret)


class Component:
    """Default behavior for an apt-packaged component."""

    category: ComponentCategory

    def __init__(self, descriptor: ComponentDescriptor, ctx: ComponentContext):
        self.descriptor = descriptor
        self.ctx = ctx

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.id!r})"

    @property
    def id(self) -> str:
        return self.descriptor.id

    @property
    def protected(self) -> bool:
        return self.descriptor.protected

    @property
    def service_name(self) -> str:
        return self.descriptor.service_name

    @property
    def runner(self) -> CommandRunner:
        return self.ctx.runner

    def say(self, message: str) -> None:
        self.runner.emit(message)

    # ── Probes ──────────────────────────────────────────────────

    def installed_version(self) -> str | None:
        return self.runner.version(self.descriptor.version_command)

    def is_installed(self) -> bool:
        if self.descriptor.version_command and self.installed_version():
            return True
        return bool(self.descriptor.probe) and self.runner.exists(self.descriptor.probe)

    def is_running(self) -> bool:
        units = [self.service_name, *self.descriptor.service_aliases]
        return any(unit and self.runner.is_active(unit) for unit in units)

    # ── Helpers ─────────────────────────────────────────────────

    def apt_update(self) -> None:
        self.runner.run("apt-get", ["update"])

    def apt_install(self, packages: list[str]) -> None:
        if packages:
            self.runner.run("apt-get", ["install", "-y", *packages])

    def systemctl(self, verb: str, unit: str | None = None, *, check: bool = True) -> None:
        self.runner.run("systemctl", [verb, unit or self.service_name], check=check)

    def _require_service(self, operation: str) -> None:
        if not self.descriptor.has_service:
            raise NotAService(self.id, operation)

    # ── Capability interface ────────────────────────────────────

    def install(self, issues: IssueLog, **options: Any) -> str:
        """Install and activate the component.

        Returns:
            The installed version (or ``"installed"`` when unknown).
        """
        self.say(f"Installing {self.descriptor.display_name}...")
        self.apt_update()
        self.apt_install(self.descriptor.packages)
        if self.descriptor.has_service:
            self.systemctl("enable")
            self.systemctl("start")
        return self.installed_version() or "installed"

    def update(self, issues: IssueLog) -> dict[str, str | None]:
        """Upgrade in place; returns ``{old_version, new_version}``."""
        old = self.installed_version()
        self.say(f"Updating {self.descriptor.display_name}...")
        self.apt_update()
        if self.descriptor.packages:
            self.runner.run("apt-get", ["install", "--only-upgrade", "-y", *self.descriptor.packages])
        if self.descriptor.has_service and self.runner.is_active(self.service_name):
            issues.attempt(f"restart {self.service_name}", self.systemctl, "restart")
        return {"old_version": old, "new_version": self.installed_version()}

    def remove(self, issues: IssueLog, purge: bool = False, remove_data: bool = False) -> None:
        self.say(f"Removing {self.descriptor.display_name}...")
        if self.descriptor.has_service:
            for unit in (self.service_name, *self.descriptor.extra_services):
                issues.attempt(f"stop {unit}", self.systemctl, "stop", unit)
        packages = removal_packages(self.id)
        if packages:
            self.runner.run("apt-get", ["purge" if purge else "remove", "-y", *packages])
            issues.attempt("autoremove", self.runner.run, "apt-get", ["autoremove", "-y"])
        if remove_data:
            self._remove_data(issues)

    def _remove_data(self, issues: IssueLog) -> None:
        for raw in self.descriptor.data_dirs:
            path = self.ctx.path(raw)
            if path.is_dir():
                issues.attempt(f"remove {raw}", shutil.rmtree, path)
                self.say(f"Removed {raw}")

    def start(self, issues: IssueLog) -> None:
        self._require_service("start")
        if self.is_running():
            raise AlreadyInDesiredState(f"{self.id} is already running")
        self.systemctl("start")

    def stop(self, issues: IssueLog) -> None:
        self._require_service("stop")
        if not self.is_running():
            raise AlreadyInDesiredState(f"{self.id} is already stopped")
        self.systemctl("stop")
