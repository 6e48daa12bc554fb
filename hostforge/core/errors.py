"""
Error taxonomy — every failure the orchestrator can surface.

Each exception carries a stable ``code`` that ends up in
``OperationResult.error_code`` so callers can branch on the kind of
failure without parsing messages.

``AlreadyInDesiredState`` is not a failure: the orchestrator converts
it into a successful result.
"""

from __future__ import annotations


class HostforgeError(Exception):
    """Base class for all orchestrator errors."""

    code = "error"


class UnknownComponent(HostforgeError):
    """The requested component id is not in the registry."""

    code = "unknown_component"

    def __init__(self, component_id: str, category: str | None = None):
        self.component_id = component_id
        self.category = category
        kind = category or "component"
        super().__init__(f"Unknown {kind}: {component_id}")


class ProtectedResourceViolation(HostforgeError):
    """A remove/stop was requested on a component the host relies on."""

    code = "protected_resource"

    def __init__(self, component_id: str, operation: str):
        self.component_id = component_id
        self.operation = operation
        super().__init__(
            f"Cannot {operation} {component_id}: it is a protected resource "
            "required to keep the host reachable and maintained"
        )


class SelfHostedRuntime(HostforgeError):
    """Install was requested for the runtime the orchestrator runs on."""

    code = "self_hosted_runtime"

    def __init__(self, component_id: str):
        self.component_id = component_id
        super().__init__(
            f"{component_id} is already installed (required by the orchestrator itself)"
        )


class NotAService(HostforgeError):
    """start/stop was requested on a tool that has no managed process."""

    code = "not_a_service"

    def __init__(self, component_id: str, operation: str):
        self.component_id = component_id
        self.operation = operation
        super().__init__(f"{component_id} is a tool, not a service: nothing to {operation}")


class DependencyMissing(HostforgeError):
    """A prerequisite (runtime, tool, kernel feature) is absent."""

    code = "dependency_missing"


class ExternalRateLimited(HostforgeError):
    """An upstream feed throttled the host (detected from process output)."""

    code = "rate_limited"


class PartialStepFailure(HostforgeError):
    """A multi-step workflow failed partway; completed steps are kept."""

    code = "partial_failure"

    def __init__(self, step: str, message: str, completed: list[str] | None = None):
        self.step = step
        self.completed = list(completed or [])
        super().__init__(f"{step}: {message}")


class TemplateNotFound(HostforgeError):
    """No template file matches the requested name."""

    code = "template_not_found"

    def __init__(self, name: str, searched: str):
        self.name = name
        self.searched = searched
        super().__init__(f"Template not found: {name} (looked in {searched})")


class AlreadyInDesiredState(HostforgeError):
    """The component is already where the caller wants it."""

    code = "already_in_desired_state"


# ── Rate-limit detection ────────────────────────────────────────

_RATE_LIMIT_PHRASES = ("429", "rate limit", "rate-limit", "cool-down", "cool down")


def looks_rate_limited(output: str) -> bool:
    """True when process output carries a known throttling phrase."""
    lowered = output.lower()
    return any(phrase in lowered for phrase in _RATE_LIMIT_PHRASES)
