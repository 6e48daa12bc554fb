"""
HostStatus — snapshot of what is installed and running on the host.

Computed by the detectors, cached by ``StatusCache``. A snapshot is
never mutated after it has been built.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class RuntimeInfo(BaseModel):
    """Installed state of one language runtime."""

    type: str
    installed: bool = False
    version: str | None = None
    latest_version: str | None = None
    update_available: bool = False
    estimated_size: str = ""


class DatabaseInfo(BaseModel):
    """Installed and running state of one database engine."""

    type: str
    installed: bool = False
    running: bool = False
    version: str | None = None


class ServiceInfo(BaseModel):
    """Installed and running state of one service."""

    type: str
    installed: bool = False
    running: bool = False
    version: str | None = None
    protected: bool = False


class SystemInfo(BaseModel):
    """Static-ish facts about the host."""

    os: str = "Linux"
    os_version: str = ""
    cpu: int = 0
    ram: str = ""
    disk: str = "Unknown"
    uptime: str = ""


class HostStatus(BaseModel):
    """Aggregate host status returned by ``StatusCache.get``."""

    runtimes: list[RuntimeInfo] = Field(default_factory=list)
    databases: list[DatabaseInfo] = Field(default_factory=list)
    services: list[ServiceInfo] = Field(default_factory=list)
    system: SystemInfo = Field(default_factory=SystemInfo)

    def find(self, component_id: str) -> RuntimeInfo | DatabaseInfo | ServiceInfo | None:
        """Look up the entry for a component id across all categories."""
        for entry in (*self.runtimes, *self.databases, *self.services):
            if entry.type == component_id:
                return entry
        return None
