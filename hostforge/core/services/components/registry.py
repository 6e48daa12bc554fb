"""
Component registry — id → component instance, plus the protected guard.

Resolution is pure lookup: nothing touches the host until a capability
method is called, so an unknown id fails without side effects.
"""

from __future__ import annotations

import logging
from typing import cast

from hostforge.core.errors import ProtectedResourceViolation, UnknownComponent
from hostforge.core.models.component import ComponentCategory, ComponentDescriptor
from hostforge.core.services.components.base import Component, ComponentContext
from hostforge.core.services.components.catalog import all_descriptors
from hostforge.core.services.components.databases import DATABASE_CLASSES, DatabaseComponent
from hostforge.core.services.components.runtimes import RUNTIME_CLASSES, RuntimeComponent
from hostforge.core.services.components.services import SERVICE_CLASSES, ServiceComponent

logger = logging.getLogger(__name__)

# Operations the protected guard blocks
GUARDED_OPERATIONS = frozenset({"remove", "stop"})


def _component_class(descriptor: ComponentDescriptor) -> type[Component]:
    if descriptor.category is ComponentCategory.RUNTIME:
        return RUNTIME_CLASSES.get(descriptor.id, RuntimeComponent)
    if descriptor.category is ComponentCategory.DATABASE:
        return DATABASE_CLASSES.get(descriptor.id, DatabaseComponent)
    return SERVICE_CLASSES.get(descriptor.id, ServiceComponent)


class ComponentRegistry:
    """Every catalog component, bound to one ``ComponentContext``."""

    def __init__(self, ctx: ComponentContext, descriptors: list[ComponentDescriptor] | None = None):
        self.ctx = ctx
        self._components: dict[str, Component] = {}
        for descriptor in descriptors or all_descriptors():
            self._components[descriptor.id] = _component_class(descriptor)(descriptor, ctx)

    def __contains__(self, component_id: str) -> bool:
        return component_id in self._components

    def __len__(self) -> int:
        return len(self._components)

    def resolve(self, component_id: str, category: ComponentCategory | None = None) -> Component:
        """Return the component for ``component_id``.

        Raises:
            UnknownComponent: when the id is not registered, or registered
                under a different category than ``category``.
        """
        component = self._components.get(component_id)
        if component is None or (category is not None and component.category is not category):
            raise UnknownComponent(component_id, category.value if category else None)
        return component

    def database(self, engine: str) -> DatabaseComponent:
        return cast(DatabaseComponent, self.resolve(engine, ComponentCategory.DATABASE))

    def ids(self, category: ComponentCategory | None = None) -> list[str]:
        return [
            cid for cid, c in self._components.items()
            if category is None or c.category is category
        ]

    def components(self, category: ComponentCategory | None = None) -> list[Component]:
        return [self._components[cid] for cid in self.ids(category)]

    def protected_ids(self) -> list[str]:
        return [cid for cid, c in self._components.items() if c.protected]

    @staticmethod
    def guard(component: Component, operation: str) -> None:
        """Refuse ``remove``/``stop`` on protected components.

        Raises:
            ProtectedResourceViolation: before any side effect.
        """
        if operation in GUARDED_OPERATIONS and component.protected:
            logger.warning("Refused %s on protected component %s", operation, component.id)
            raise ProtectedResourceViolation(component.id, operation)
