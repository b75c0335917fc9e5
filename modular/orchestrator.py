"""
Startup orchestrator for module components.

This module provides the ModuleStartupOrchestrator class, which is responsible
for bringing every deployed module up to its deployed version: each module is
processed as the system user, in its own transaction, and a failure in one
module never prevents the others from starting.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import List, Optional, Set

from common.logging_config import log_performance
from common.metrics import UpgradeMetrics
from modular.catalog import ComponentCatalog, ComponentKey
from modular.errors import ComponentExecutionError, ConfigurationError
from modular.module_service import ModuleDetails, ModuleService
from modular.registry_service import (
    DEFAULT_NAMESPACE,
    RegistryService,
    validate_namespace,
)
from modular.runner import ComponentRunner, RunState
from modular.security import AuthenticationContext
from modular.transaction import TransactionService
from modular.upgrader import ModuleUpgrader, ModuleUpgradeResult


@dataclass
class ModuleFailure:
    """A module whose pass was rolled back."""

    module_id: str
    error_type: str
    message: str
    component_name: Optional[str] = None

    @classmethod
    def from_exception(
        cls, module_id: str, error: Exception
    ) -> "ModuleFailure":
        component_name = None
        if isinstance(error, ComponentExecutionError):
            component_name = error.component_name
        return cls(
            module_id=module_id,
            error_type=type(error).__name__,
            message=str(error),
            component_name=component_name,
        )


@dataclass
class RunReport:
    """Aggregate outcome of one orchestrator run."""

    results: List[ModuleUpgradeResult] = field(default_factory=list)
    failures: List[ModuleFailure] = field(default_factory=list)

    @property
    def modules_observed(self) -> int:
        return len(self.results) + len(self.failures)

    @property
    def components_executed(self) -> int:
        """Components executed in committed module passes."""
        return sum(result.executed_count for result in self.results)

    @property
    def success(self) -> bool:
        return not self.failures

    def summary(self) -> str:
        text = (
            f"Observed {self.modules_observed} module(s), "
            f"executed {self.components_executed} component(s)"
        )
        if self.failures:
            failed = ", ".join(failure.module_id for failure in self.failures)
            text += f", {len(self.failures)} module(s) failed: {failed}"
        return text + "."


class ModuleStartupOrchestrator:
    """
    Runs the module components of every deployed module.

    Modules are processed one at a time in the order the module service lists
    them. Callers must not rely on that order.
    """

    def __init__(
        self,
        catalog: ComponentCatalog,
        module_service: ModuleService,
        registry_service: RegistryService,
        authentication_context: Optional[AuthenticationContext] = None,
        transaction_service: Optional[TransactionService] = None,
        namespace: str = DEFAULT_NAMESPACE,
        metrics: Optional[UpgradeMetrics] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            catalog: The registered module components.
            module_service: Source of the deployed modules.
            registry_service: Registry recording versions and execution dates.
            authentication_context: Identity holder; a fresh one if not provided.
            transaction_service: Transaction boundary; wraps ``registry_service``
                if not provided.
            namespace: Registry namespace for module keys.
            metrics: Optional metrics collector.
            logger: Optional logger instance. If not provided, a new logger will be created.
        """
        self.catalog = catalog
        self.module_service = module_service
        self.registry_service = registry_service
        self.authentication_context = (
            authentication_context or AuthenticationContext()
        )
        self.transaction_service = transaction_service or (
            TransactionService(registry_service)
            if registry_service is not None
            else None
        )
        self.namespace = namespace
        self.metrics = metrics
        self.logger = logger or logging.getLogger(self.__class__.__name__)

        self.component_runner = ComponentRunner(
            registry_service,
            namespace=namespace,
            metrics=metrics,
            logger=self.logger.getChild("runner"),
        )
        self.module_upgrader = ModuleUpgrader(
            catalog,
            registry_service,
            self.component_runner,
            namespace=namespace,
            logger=self.logger.getChild("upgrader"),
        )
        self._run_lock = threading.Lock()

    def _check_properties(self) -> None:
        for name in (
            "catalog",
            "module_service",
            "registry_service",
            "transaction_service",
        ):
            if getattr(self, name) is None:
                raise ConfigurationError(
                    f"Property '{name}' of {self.__class__.__name__} must be set"
                )
        try:
            validate_namespace(self.namespace)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

    @log_performance
    def start_modules(self) -> RunReport:
        """
        Start all deployed modules.

        Returns:
            The run report. Module failures are recorded in it, not raised.

        Raises:
            ConfigurationError: If a collaborator is missing or the component
                dependency graph is invalid. No module is processed then.
        """
        with self._run_lock:
            self._check_properties()
            self.catalog.validate()

            modules = self.module_service.get_all_modules()
            self.logger.info(f"Found {len(modules)} module(s).")

            report = RunReport()
            executed_this_run: Set[ComponentKey] = set()
            for module in modules:
                self._start_module(module, report, executed_this_run)

            if report.success:
                self.logger.info(report.summary())
            else:
                self.logger.warning(report.summary())
            return report

    def _start_module(
        self,
        module: ModuleDetails,
        report: RunReport,
        executed_this_run: Set[ComponentKey],
    ) -> None:
        run_state = RunState(executed_this_run)
        started = time.monotonic()

        def work() -> ModuleUpgradeResult:
            return self.transaction_service.run_in_isolated_transaction(
                lambda: self.module_upgrader.start_module(module, run_state)
            )

        try:
            result = self.authentication_context.run_as_system(work)
        except Exception as e:
            failure = ModuleFailure.from_exception(module.id, e)
            report.failures.append(failure)
            component_info = (
                f" (component '{failure.component_name}')"
                if failure.component_name
                else ""
            )
            self.logger.error(
                f"Module '{module.id}' failed to start{component_info}, "
                f"its changes were rolled back: {e}",
                exc_info=True,
            )
            if self.metrics:
                self.metrics.record_module_observed("failed")
                self.metrics.record_module_failure(
                    module.id, failure.error_type
                )
            return
        finally:
            if self.metrics:
                self.metrics.record_module_duration(
                    module.id, time.monotonic() - started
                )

        # Only committed passes count as executed for the rest of the run.
        executed_this_run.update(
            component.key for component in run_state.executed_components
        )
        report.results.append(result)
        if self.metrics:
            self.metrics.record_module_observed("committed")
