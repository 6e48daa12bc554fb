"""Service detection — installed / running / version, protected flag."""

from __future__ import annotations

from typing import TYPE_CHECKING

from hostforge.core.models.component import ComponentCategory
from hostforge.core.models.status import ServiceInfo

if TYPE_CHECKING:
    from hostforge.core.services.components.registry import ComponentRegistry


def detect_services(registry: ComponentRegistry) -> list[ServiceInfo]:
    found: list[ServiceInfo] = []
    for component in registry.components(ComponentCategory.SERVICE):
        installed = component.is_installed()
        found.append(ServiceInfo(
            type=component.id,
            installed=installed,
            running=installed and component.is_running(),
            version=component.installed_version() if installed else None,
            protected=component.protected,
        ))
    return found
