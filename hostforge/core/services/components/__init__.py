"""Component registry, catalog and per-category component classes."""

from hostforge.core.services.components.base import Component, ComponentContext
from hostforge.core.services.components.registry import ComponentRegistry

__all__ = ["Component", "ComponentContext", "ComponentRegistry"]
