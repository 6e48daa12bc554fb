"""
Detection — read-only probes that build a ``HostStatus`` snapshot.

These functions READ host state but never WRITE.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from hostforge.core.models.status import HostStatus
from hostforge.core.services.detection.databases import detect_databases
from hostforge.core.services.detection.runtimes import detect_runtimes
from hostforge.core.services.detection.services import detect_services
from hostforge.core.services.detection.system import detect_system

if TYPE_CHECKING:
    from hostforge.core.services.components.registry import ComponentRegistry


def detect_host_status(registry: ComponentRegistry, check_latest: bool = True) -> HostStatus:
    """Run every detector and assemble a fresh snapshot."""
    ctx = registry.ctx
    return HostStatus(
        runtimes=detect_runtimes(registry, check_latest=check_latest),
        databases=detect_databases(registry),
        services=detect_services(registry),
        system=detect_system(ctx.runner, ctx.config.host_root),
    )


__all__ = [
    "detect_databases",
    "detect_host_status",
    "detect_runtimes",
    "detect_services",
    "detect_system",
]
