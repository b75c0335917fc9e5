"""
Catalog of module components.

Components register themselves here, grouped by owning module and keyed by
name. The catalog is an ordinary object built during application setup and
handed to the orchestrator.
"""

import logging
import threading
from typing import Dict, List, Optional, Set, Tuple

from modular.base_component import BaseModuleComponent
from modular.errors import ConfigurationError

ComponentKey = Tuple[str, str]


class ComponentCatalog:
    """
    Registry of module components.

    Registration and lookups are serialized with a lock since independent
    subsystems may register their components concurrently during startup.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(self.__class__.__name__)
        self._components_by_name_by_module: Dict[
            str, Dict[str, BaseModuleComponent]
        ] = {}
        self._lock = threading.RLock()

    def register(self, component: BaseModuleComponent) -> BaseModuleComponent:
        """
        Add a component to the catalog.

        Args:
            component: The component to register.

        Returns:
            The registered component.

        Raises:
            ConfigurationError: If the module already has a component with the
                same name, or a dependency of the component is not registered.
        """
        module_id = component.module_id
        name = component.name
        with self._lock:
            components_by_name = self._components_by_name_by_module.get(
                module_id, {}
            )
            if name in components_by_name:
                raise ConfigurationError(
                    f"Component '{name}' has already been registered for module '{module_id}'"
                )

            for dependency in component.depends_on:
                registered = self._lookup(dependency.module_id, dependency.name)
                if registered is not dependency:
                    raise ConfigurationError(
                        f"Component '{name}' of module '{module_id}' depends on "
                        f"'{dependency.module_id}:{dependency.name}', which is not registered"
                    )

            components_by_name[name] = component
            self._components_by_name_by_module[module_id] = components_by_name

        self.logger.debug(f"Registered component: {component}")
        return component

    def components_for(self, module_id: str) -> List[BaseModuleComponent]:
        """
        Get the components of a module in registration order.

        Returns:
            The module's components; empty if none were registered.
        """
        with self._lock:
            components_by_name = self._components_by_name_by_module.get(
                module_id
            )
            if not components_by_name:
                return []
            return list(components_by_name.values())

    def get_component(self, module_id: str, name: str) -> BaseModuleComponent:
        """
        Get a component by module and name.

        Raises:
            KeyError: If no such component is registered.
        """
        component = self._lookup(module_id, name)
        if component is None:
            raise KeyError(
                f"No component '{name}' registered for module '{module_id}'"
            )
        return component

    def has_component(self, module_id: str, name: str) -> bool:
        return self._lookup(module_id, name) is not None

    def get_module_ids(self) -> List[str]:
        """Identifiers of modules with at least one registered component."""
        with self._lock:
            return [
                module_id
                for module_id, components in self._components_by_name_by_module.items()
                if components
            ]

    def __len__(self) -> int:
        with self._lock:
            return sum(
                len(components)
                for components in self._components_by_name_by_module.values()
            )

    def validate(self) -> None:
        """
        Check that the dependency graph of every registered component is acyclic.

        Raises:
            ConfigurationError: If a circular dependency is found.
        """
        visited: Set[ComponentKey] = set()
        for module_id in self.get_module_ids():
            for component in self.components_for(module_id):
                self._visit(component, visited, [], None)
        self.logger.debug(
            f"Validated dependency graph of {len(visited)} component(s)"
        )

    def resolve_order(self, module_id: str) -> List[BaseModuleComponent]:
        """
        Depth-first order in which the module's components would execute,
        dependencies first, ignoring version ranges and execution history.

        Raises:
            ConfigurationError: If a circular dependency is found.
        """
        result: List[BaseModuleComponent] = []
        visited: Set[ComponentKey] = set()
        for component in self.components_for(module_id):
            self._visit(component, visited, [], result)
        return result

    def _visit(
        self,
        component: BaseModuleComponent,
        visited: Set[ComponentKey],
        path: List[ComponentKey],
        result: Optional[List[BaseModuleComponent]],
    ) -> None:
        key = component.key
        if key in path:
            cycle = path[path.index(key):] + [key]
            raise ConfigurationError(
                "Circular dependency detected involving component "
                f"'{component.module_id}:{component.name}': "
                + " -> ".join(f"{m}:{n}" for m, n in cycle)
            )
        if key in visited:
            return

        path.append(key)
        for dependency in component.depends_on:
            self._visit(dependency, visited, path, result)
        path.pop()

        visited.add(key)
        if result is not None:
            result.append(component)

    def _lookup(
        self, module_id: str, name: str
    ) -> Optional[BaseModuleComponent]:
        with self._lock:
            return self._components_by_name_by_module.get(module_id, {}).get(
                name
            )
