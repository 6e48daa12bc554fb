"""
ComponentDescriptor — identity and catalog data for one installable unit.

The descriptor is pure data: the behavior lives in the component
classes under ``hostforge.core.services.components``.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class ComponentCategory(str, Enum):
    """The three families of components the host can carry."""

    RUNTIME = "runtime"
    DATABASE = "database"
    SERVICE = "service"


class ComponentDescriptor(BaseModel):
    """Catalog entry for a runtime, database engine, or service."""

    id: str
    category: ComponentCategory
    label: str = ""
    protected: bool = False
    self_hosted: bool = False       # the runtime the orchestrator runs on
    service_name: str = ""          # empty for CLI tools with no managed process
    extra_services: list[str] = Field(default_factory=list)
    packages: list[str] = Field(default_factory=list)
    package_prefix: str = ""
    version_command: list[str] = Field(default_factory=list)
    probe: str = ""                 # binary whose presence means "installed"
    service_aliases: list[str] = Field(default_factory=list)
    data_dirs: list[str] = Field(default_factory=list)
    estimated_size: str = ""

    @property
    def has_service(self) -> bool:
        """Whether the component runs a process under the service manager."""
        return bool(self.service_name)

    @property
    def display_name(self) -> str:
        return self.label or self.id
