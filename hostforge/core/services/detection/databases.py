"""Database detection — installed, running and version per engine."""

from __future__ import annotations

from typing import TYPE_CHECKING

from hostforge.core.models.component import ComponentCategory
from hostforge.core.models.status import DatabaseInfo

if TYPE_CHECKING:
    from hostforge.core.services.components.registry import ComponentRegistry


def detect_databases(registry: ComponentRegistry) -> list[DatabaseInfo]:
    found: list[DatabaseInfo] = []
    for component in registry.components(ComponentCategory.DATABASE):
        version = component.installed_version()
        installed = bool(version) or component.is_installed()
        found.append(DatabaseInfo(
            type=component.id,
            installed=installed,
            running=installed and component.is_running(),
            version=version,
        ))
    return found
