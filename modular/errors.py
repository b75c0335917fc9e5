"""
Exception types raised by the module upgrade framework.

Only genuine failures are raised. Components that are out of range or already
executed are skipped through ordinary return values, never exceptions.
"""

from typing import Optional


class ModuleUpgradeError(Exception):
    """Base exception for the module upgrade framework."""

    pass


class ConfigurationError(ModuleUpgradeError):
    """
    Invalid component or module configuration.

    Raised for duplicate component registration, dependencies that are not
    registered, dependency cycles, unresolvable component callables, invalid
    manifests and missing orchestrator collaborators. Always fatal before any
    module is processed.
    """

    pass


class DowngradeError(ModuleUpgradeError):
    """The stored current version of a module is newer than the deployed one."""

    def __init__(self, module_id: str, stored_version, deployed_version):
        self.module_id = module_id
        self.stored_version = stored_version
        self.deployed_version = deployed_version
        super().__init__(
            f"Downgrading of module '{module_id}' is not supported: "
            f"current version is {stored_version}, deployed version is {deployed_version}"
        )


class ComponentExecutionError(ModuleUpgradeError):
    """A component's executable unit raised. The original error is the cause."""

    def __init__(
        self,
        module_id: str,
        component_name: str,
        cause: Optional[BaseException] = None,
    ):
        self.module_id = module_id
        self.component_name = component_name
        self.cause = cause
        message = f"Component '{component_name}' of module '{module_id}' failed"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)


class RegistryError(ModuleUpgradeError):
    """The registry store could not read or write a value."""

    pass
