"""
Execution of single module components.

The runner decides whether a component is due, executes its dependencies
first, runs it, and records the execution date in the registry.
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, List, Optional, Set, Tuple

from common.metrics import UpgradeMetrics
from modular.base_component import BaseModuleComponent
from modular.errors import ComponentExecutionError
from modular.module_service import ModuleDetails
from modular.registry_service import (
    DEFAULT_NAMESPACE,
    RegistryService,
    component_execution_key,
)


class ExecutionStatus(str, Enum):
    """Outcome of asking the runner to execute a component."""

    EXECUTED = "executed"
    SKIPPED_THIS_RUN = "skipped_this_run"
    SKIPPED_OUT_OF_RANGE = "skipped_out_of_range"
    SKIPPED_ALREADY_EXECUTED = "skipped_already_executed"

    @property
    def skipped(self) -> bool:
        return self is not ExecutionStatus.EXECUTED


class RunState:
    """
    Components executed during one module pass, in execution order.

    ``already_executed`` holds the keys of components committed by earlier
    passes of the same run. They count as executed but are not listed in
    ``executed_components``.
    """

    def __init__(self, already_executed: Iterable[Tuple[str, str]] = ()):
        self._executed: Set[Tuple[str, str]] = set(already_executed)
        self._order: List[BaseModuleComponent] = []

    def __contains__(self, component: BaseModuleComponent) -> bool:
        return component.key in self._executed

    def __len__(self) -> int:
        return len(self._order)

    def mark_executed(self, component: BaseModuleComponent) -> None:
        if component.key not in self._executed:
            self._executed.add(component.key)
            self._order.append(component)

    @property
    def executed_components(self) -> List[BaseModuleComponent]:
        return list(self._order)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ComponentRunner:
    """
    Executes module components, respecting dependencies and once-only flags.

    Dependencies must form a DAG; ``ComponentCatalog.validate`` checks this
    before the orchestrator starts.
    """

    def __init__(
        self,
        registry_service: RegistryService,
        namespace: str = DEFAULT_NAMESPACE,
        metrics: Optional[UpgradeMetrics] = None,
        logger: Optional[logging.Logger] = None,
        clock=_utcnow,
    ):
        """
        Args:
            registry_service: Registry holding component execution dates.
            namespace: Registry namespace for module keys.
            metrics: Optional metrics collector.
            logger: Optional logger instance.
            clock: Callable returning the timestamp to record.
        """
        self.registry_service = registry_service
        self.namespace = namespace
        self.metrics = metrics
        self.logger = logger or logging.getLogger(self.__class__.__name__)
        self.clock = clock

    def execute(
        self,
        module: ModuleDetails,
        component: BaseModuleComponent,
        run_state: RunState,
    ) -> ExecutionStatus:
        """
        Execute a component, and its dependencies before it, if it is due.

        Args:
            module: The module being started; its deployed version decides
                whether the component applies.
            component: The component to execute.
            run_state: Components already executed in this run.

        Returns:
            EXECUTED, or the reason the component was skipped.

        Raises:
            ComponentExecutionError: If the component or one of its
                dependencies fails.
        """
        if component in run_state:
            self.logger.debug(
                f"Skipping component already executed in this run: {component}"
            )
            return self._skipped(module, ExecutionStatus.SKIPPED_THIS_RUN)

        module_version = module.version
        if not component.applies_to(module_version):
            self.logger.debug(
                "Skipping component that doesn't apply to the current version:\n"
                f"   Component:    {component}\n"
                f"   Module:       {module.id}\n"
                f"   Version:      {module_version}\n"
                f"   Applies from: {component.applies_from_version}\n"
                f"   Applies to:   {component.applies_to_version}"
            )
            return self._skipped(module, ExecutionStatus.SKIPPED_OUT_OF_RANGE)

        execution_date_key = component_execution_key(
            self.namespace, component.module_id, component.name
        )
        execution_date = self.registry_service.get_value(execution_date_key)
        if execution_date is not None and component.execute_once_only:
            self.logger.debug(
                "Skipping already-executed module component:\n"
                f"   Component:      {component}\n"
                f"   Execution time: {execution_date}"
            )
            return self._skipped(
                module, ExecutionStatus.SKIPPED_ALREADY_EXECUTED
            )

        for dependency in component.depends_on:
            self.execute(module, dependency, run_state)

        try:
            component.execute()
        except ComponentExecutionError:
            raise
        except Exception as e:
            raise ComponentExecutionError(
                component.module_id, component.name, e
            ) from e

        run_state.mark_executed(component)
        self.registry_service.add_value(execution_date_key, self.clock())
        if self.metrics:
            self.metrics.record_component_executed(module.id)
        self.logger.info(
            f"Executed component '{component.name}' of module '{component.module_id}'"
        )
        return ExecutionStatus.EXECUTED

    def _skipped(
        self, module: ModuleDetails, status: ExecutionStatus
    ) -> ExecutionStatus:
        if self.metrics:
            self.metrics.record_component_skipped(module.id, status.value)
        return status
