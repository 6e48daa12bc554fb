"""
Runtime detection — installed version, newest release, update flag.

Read-only: probes run through the runner and never change the host.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from hostforge.core.models.component import ComponentCategory
from hostforge.core.models.status import RuntimeInfo
from hostforge.core.services.detection.versions import compare_versions, latest_version

if TYPE_CHECKING:
    from hostforge.core.services.components.registry import ComponentRegistry

logger = logging.getLogger(__name__)


def detect_runtimes(registry: ComponentRegistry, check_latest: bool = True) -> list[RuntimeInfo]:
    """Probe every catalog runtime.

    Args:
        registry: Component registry (provides probes and runner).
        check_latest: Also look up the newest release (network / apt cache).
    """
    found: list[RuntimeInfo] = []
    for component in registry.components(ComponentCategory.RUNTIME):
        info = RuntimeInfo(type=component.id, estimated_size=component.descriptor.estimated_size)
        version = component.installed_version()
        if version:
            info.installed = True
            info.version = version
            if check_latest:
                latest = latest_version(registry.ctx.runner, component.id)
                if latest:
                    info.latest_version = latest
                    info.update_available = compare_versions(version, latest) < 0
        found.append(info)
        logger.debug("runtime %s: installed=%s version=%s", info.type, info.installed, info.version)
    return found
