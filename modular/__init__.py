"""
Module component upgrade framework.

Modules declare named components (upgrade units) with a version range, a
once-only flag and dependencies. On every startup the orchestrator brings each
deployed module up to its deployed version by executing exactly the components
that are due, in dependency order, and records what ran in the registry.
"""

from modular.base_component import BaseModuleComponent, CallableComponent
from modular.catalog import ComponentCatalog
from modular.errors import (
    ComponentExecutionError,
    ConfigurationError,
    DowngradeError,
    ModuleUpgradeError,
    RegistryError,
)
from modular.module_service import ModuleDetails, ModuleService, StaticModuleService
from modular.orchestrator import ModuleStartupOrchestrator, RunReport
from modular.registry_service import (
    InMemoryRegistryService,
    RegistryKey,
    RegistryService,
)
from modular.runner import ComponentRunner, ExecutionStatus, RunState
from modular.upgrader import ModuleState, ModuleUpgrader, ModuleUpgradeResult
from modular.version import VersionNumber

__all__ = [
    "BaseModuleComponent",
    "CallableComponent",
    "ComponentCatalog",
    "ComponentExecutionError",
    "ComponentRunner",
    "ConfigurationError",
    "DowngradeError",
    "ExecutionStatus",
    "InMemoryRegistryService",
    "ModuleDetails",
    "ModuleService",
    "ModuleStartupOrchestrator",
    "ModuleState",
    "ModuleUpgradeError",
    "ModuleUpgradeResult",
    "ModuleUpgrader",
    "RegistryError",
    "RegistryKey",
    "RegistryService",
    "RunReport",
    "RunState",
    "StaticModuleService",
    "VersionNumber",
]
