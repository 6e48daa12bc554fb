"""
OperationResult and Issue — the structured outcome of every operation.

Operations never raise to the caller: failures are captured in an
``OperationResult`` (same contract as an adapter receipt). Best-effort
steps that fail are recorded as advisory ``Issue`` entries and surface
as warnings instead of disappearing.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, TypeVar

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Severity(str, Enum):
    FATAL = "fatal"
    ADVISORY = "advisory"


class Issue(BaseModel):
    """A problem encountered by one step of an operation."""

    step: str
    message: str
    severity: Severity = Severity.ADVISORY
    code: str | None = None

    def __str__(self) -> str:
        return f"{self.step}: {self.message}"


class OperationResult(BaseModel):
    """Outcome of a single-component operation or a stack workflow."""

    success: bool
    error: str | None = None
    error_code: str | None = None
    warnings: list[Issue] = Field(default_factory=list)
    data: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def ok(cls, warnings: list[Issue] | None = None, **data: Any) -> OperationResult:
        """Create a success result."""
        return cls(success=True, warnings=list(warnings or []), data=data)

    @classmethod
    def failure(
        cls,
        error: str,
        code: str = "error",
        warnings: list[Issue] | None = None,
        **data: Any,
    ) -> OperationResult:
        """Create a failure result."""
        return cls(
            success=False,
            error=error,
            error_code=code,
            warnings=list(warnings or []),
            data=data,
        )

    def to_dict(self) -> dict[str, Any]:
        """JSON-serializable view (warnings flattened to strings)."""
        result: dict[str, Any] = {"success": self.success}
        if self.error:
            result["error"] = self.error
            result["error_code"] = self.error_code
        if self.warnings:
            result["warnings"] = [str(w) for w in self.warnings]
        if self.data:
            result["data"] = self.data
        return result


class IssueLog:
    """Collects advisory issues raised by best-effort steps."""

    def __init__(self) -> None:
        self.issues: list[Issue] = []

    def __len__(self) -> int:
        return len(self.issues)

    def __iter__(self):
        return iter(self.issues)

    def add(
        self,
        step: str,
        message: str,
        severity: Severity = Severity.ADVISORY,
        code: str | None = None,
    ) -> Issue:
        issue = Issue(step=step, message=message, severity=severity, code=code)
        self.issues.append(issue)
        logger.warning("%s", issue)
        return issue

    def extend(self, issues: list[Issue]) -> None:
        self.issues.extend(issues)

    def attempt(self, step: str, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T | None:
        """Run ``fn``; on failure record an advisory issue and return None."""
        try:
            return fn(*args, **kwargs)
        except Exception as e:
            code = getattr(e, "code", None)
            self.add(step, str(e) or e.__class__.__name__, code=code if isinstance(code, str) else None)
            return None


class StackReport(OperationResult):
    """Outcome of a stack workflow, with the phases that completed."""

    stack: str
    completed: list[str] = Field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["stack"] = self.stack
        result["completed"] = list(self.completed)
        return result
