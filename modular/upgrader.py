"""
Per-module upgrade driver.

Compares the version recorded in the registry with the deployed version,
records the transition, and runs every registered component of the module.
Transactions and identity are the orchestrator's concern.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from modular.catalog import ComponentCatalog
from modular.errors import DowngradeError
from modular.module_service import ModuleDetails
from modular.registry_service import (
    DEFAULT_NAMESPACE,
    PROPERTY_CURRENT_VERSION,
    PROPERTY_INSTALLED_VERSION,
    RegistryService,
    module_property_key,
)
from modular.runner import ComponentRunner, ExecutionStatus, RunState
from modular.version import VersionNumber


class ModuleState(str, Enum):
    """Version transition of a module between the registry and this deployment."""

    NOT_INSTALLED = "not_installed"
    SAME_VERSION = "same_version"
    UPGRADING = "upgrading"
    DOWNGRADE_REJECTED = "downgrade_rejected"


def classify_module_state(
    stored_version: Optional[VersionNumber], deployed_version: VersionNumber
) -> ModuleState:
    """Map the stored and deployed versions to a module state."""
    if stored_version is None:
        return ModuleState.NOT_INSTALLED
    if stored_version == deployed_version:
        return ModuleState.SAME_VERSION
    if stored_version > deployed_version:
        return ModuleState.DOWNGRADE_REJECTED
    return ModuleState.UPGRADING


@dataclass
class ModuleUpgradeResult:
    """What a single module pass did."""

    module_id: str
    state: ModuleState
    previous_version: Optional[VersionNumber]
    deployed_version: VersionNumber
    executed_components: List[str] = field(default_factory=list)
    skipped: Dict[str, int] = field(default_factory=dict)

    @property
    def executed_count(self) -> int:
        return len(self.executed_components)


class ModuleUpgrader:
    """Brings the registry state of one module up to its deployed version."""

    def __init__(
        self,
        catalog: ComponentCatalog,
        registry_service: RegistryService,
        component_runner: ComponentRunner,
        namespace: str = DEFAULT_NAMESPACE,
        logger: Optional[logging.Logger] = None,
    ):
        self.catalog = catalog
        self.registry_service = registry_service
        self.component_runner = component_runner
        self.namespace = namespace
        self.logger = logger or logging.getLogger(self.__class__.__name__)

    def start_module(
        self, module: ModuleDetails, run_state: RunState
    ) -> ModuleUpgradeResult:
        """
        Record the module version transition and execute its components.

        Args:
            module: The deployed module.
            run_state: Components already executed in this pass.

        Returns:
            The outcome of the pass.

        Raises:
            DowngradeError: If the registry records a newer version than the
                deployed one. Nothing is written in that case.
            ComponentExecutionError: If a component fails.
        """
        module_id = module.id
        deployed_version = module.version
        installed_version_key = module_property_key(
            self.namespace, module_id, PROPERTY_INSTALLED_VERSION
        )
        current_version_key = module_property_key(
            self.namespace, module_id, PROPERTY_CURRENT_VERSION
        )

        stored_version = self.registry_service.get_value(current_version_key)
        state = classify_module_state(stored_version, deployed_version)

        if state is ModuleState.DOWNGRADE_REJECTED:
            raise DowngradeError(module_id, stored_version, deployed_version)

        if state is ModuleState.NOT_INSTALLED:
            self.logger.info(
                f"Installing module '{module_id}' version {deployed_version}."
            )
            self.registry_service.add_value(
                installed_version_key, deployed_version
            )
        elif state is ModuleState.SAME_VERSION:
            self.logger.info(
                f"Starting module '{module_id}' version {deployed_version}."
            )
        else:
            self.logger.info(
                f"Upgrading module '{module_id}' to version {deployed_version} "
                f"from version {stored_version}."
            )

        result = ModuleUpgradeResult(
            module_id=module_id,
            state=state,
            previous_version=stored_version,
            deployed_version=deployed_version,
        )
        for component in self.catalog.components_for(module_id):
            status = self.component_runner.execute(module, component, run_state)
            if status is not ExecutionStatus.EXECUTED:
                result.skipped[status.value] = (
                    result.skipped.get(status.value, 0) + 1
                )

        # Components run as dependencies are only visible through the run state.
        result.executed_components = [
            component.name
            if component.module_id == module_id
            else f"{component.module_id}:{component.name}"
            for component in run_state.executed_components
        ]

        self.registry_service.add_value(current_version_key, deployed_version)

        self.logger.debug(
            f"Started module '{module_id}': {result.executed_count} component(s) executed"
        )
        return result
