"""
Stack base — ordered multi-phase workflows over the component registry.

A stack runs its phases strictly in sequence. A fatal failure stops the
run and is reported as ``PartialStepFailure`` together with the steps
that completed; best-effort steps collect advisory issues that end up as
warnings in the ``StackReport``. Nothing that already happened is
rolled back.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Callable

from pydantic import BaseModel

from hostforge.adapters.shell.command import CommandError
from hostforge.core.errors import HostforgeError, PartialStepFailure
from hostforge.core.models.result import IssueLog, StackReport
from hostforge.core.persistence.state_file import ensure_dir, write_json
from hostforge.core.services.components.base import ComponentContext
from hostforge.core.services.components.registry import ComponentRegistry

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class Stack:
    """Template for a stack workflow; subclasses implement ``_run``."""

    kind = "stack"

    def __init__(self, registry: ComponentRegistry, clock: Clock | None = None):
        self.registry = registry
        self.clock = clock or (lambda: datetime.now(UTC))
        self.completed: list[str] = []

    @property
    def ctx(self) -> ComponentContext:
        return self.registry.ctx

    def say(self, message: str) -> None:
        self.ctx.runner.emit(message)

    def phase(self, number: int, title: str) -> None:
        self.say(f"── Phase {number}: {title} ──")

    # ── Entry point ─────────────────────────────────────────────

    def configure(self, config: BaseModel) -> StackReport:
        """Run every phase and report; never raises."""
        issues = IssueLog()
        self.completed = []
        self.say(f"Configuring {self.kind} stack...")
        try:
            data = self._run(config, issues)
        except PartialStepFailure as e:
            logger.error("%s stack stopped at %s: %s", self.kind, e.step, e)
            self.say(f"✗ {self.kind} stack failed at {e.step}")
            return StackReport(
                stack=self.kind,
                success=False,
                error=str(e),
                error_code=e.code,
                warnings=list(issues),
                completed=list(self.completed),
            )
        except (HostforgeError, CommandError, OSError, ValueError) as e:
            logger.error("%s stack failed: %s", self.kind, e)
            default_code = "os_error" if isinstance(e, OSError) else "invalid_input"
            return StackReport(
                stack=self.kind,
                success=False,
                error=str(e),
                error_code=getattr(e, "code", default_code),
                warnings=list(issues),
                completed=list(self.completed),
            )
        self.say(f"✓ {self.kind} stack configured ({len(issues)} warning(s))")
        return StackReport(
            stack=self.kind,
            success=True,
            warnings=list(issues),
            completed=list(self.completed),
            data=data,
        )

    def _run(self, config: Any, issues: IssueLog) -> dict[str, Any]:
        raise NotImplementedError

    # ── Step helpers ────────────────────────────────────────────

    def step(self, name: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Run a fatal step; failures become ``PartialStepFailure``."""
        try:
            value = fn(*args, **kwargs)
        except PartialStepFailure:
            raise
        except (HostforgeError, CommandError, OSError) as e:
            raise PartialStepFailure(name, str(e), completed=self.completed) from e
        self.completed.append(name)
        return value

    def install_components(self, ids: list[str], issues: IssueLog, **variables: Any) -> None:
        for cid in ids:
            component = self.registry.resolve(cid)
            self.say(f"Installing {component.descriptor.display_name}...")
            self.step(f"install {cid}", component.install, issues, **variables)

    # ── Stack documents ─────────────────────────────────────────

    def document_path(self, name: str | None = None) -> Path:
        return self.ctx.config.stacks_dir / f"{name or self.kind}.json"

    def persist(self, document: dict[str, Any], name: str | None = None) -> Path:
        ensure_dir(self.ctx.config.stacks_dir, 0o700)
        path = self.document_path(name)
        document = {**document, "updated_at": self.clock().isoformat()}
        write_json(path, document, mode=0o600)
        logger.info("Persisted %s stack document to %s", self.kind, path)
        return path
