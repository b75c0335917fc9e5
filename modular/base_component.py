"""
Base class for module components.

A module component is a named upgrade unit owned by a module. It declares the
range of module versions it applies to, whether it may only ever run once, and
the components that must run before it. The orchestrator only ever calls
``execute()``; what the component does is up to the subclass.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from modular.version import (
    MINIMUM_VERSION,
    UNBOUNDED_VERSION,
    VersionNumber,
    as_version,
)

VersionLike = Union[str, int, float, VersionNumber]


class BaseModuleComponent(ABC):
    """
    Base class for all module components.

    Subclasses implement ``execute_internal``. Everything else (version
    applicability, once-only execution, dependency order) is handled by the
    component runner.
    """

    def __init__(
        self,
        module_id: str,
        name: str,
        description: str = "",
        applies_from: VersionLike = MINIMUM_VERSION,
        applies_to: VersionLike = UNBOUNDED_VERSION,
        execute_once_only: bool = True,
        depends_on: Optional[Sequence["BaseModuleComponent"]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize the component.

        Args:
            module_id: Identifier of the owning module.
            name: Component name, unique within the module.
            description: Human-readable description.
            applies_from: Lowest module version the component applies to (inclusive).
            applies_to: Highest module version the component applies to (inclusive).
            execute_once_only: If True the component never runs again once it
                has a recorded execution date.
            depends_on: Components that must be executed before this one.
            logger: Optional logger instance.
        """
        if not module_id:
            raise ValueError("A module component needs a module id")
        if not name:
            raise ValueError(f"A component of module '{module_id}' has no name")

        self._module_id = module_id
        self._name = name
        self.description = description
        self._applies_from = as_version(applies_from)
        self._applies_to = as_version(applies_to)
        self._execute_once_only = bool(execute_once_only)
        self._depends_on: Tuple["BaseModuleComponent", ...] = tuple(
            depends_on or ()
        )
        self.logger = logger or logging.getLogger(self.__class__.__name__)

        if self._applies_from > self._applies_to:
            raise ValueError(
                f"Component '{name}' of module '{module_id}' applies from "
                f"{self._applies_from} which is after {self._applies_to}"
            )

    @property
    def module_id(self) -> str:
        return self._module_id

    @property
    def name(self) -> str:
        return self._name

    @property
    def key(self) -> Tuple[str, str]:
        """(module id, component name) pair identifying the component."""
        return (self._module_id, self._name)

    @property
    def applies_from_version(self) -> VersionNumber:
        return self._applies_from

    @property
    def applies_to_version(self) -> VersionNumber:
        return self._applies_to

    @property
    def execute_once_only(self) -> bool:
        return self._execute_once_only

    @property
    def depends_on(self) -> List["BaseModuleComponent"]:
        return list(self._depends_on)

    def applies_to(self, version: VersionNumber) -> bool:
        """Check whether the component is eligible for a module version."""
        return self._applies_from <= version <= self._applies_to

    def execute(self) -> None:
        """Run the component's upgrade logic. Exceptions propagate."""
        self.logger.debug(f"Executing component {self}")
        self.execute_internal()

    @abstractmethod
    def execute_internal(self) -> None:
        """
        Perform the actual work of the component.

        Raise to signal failure; the enclosing module transaction is then
        rolled back.
        """
        pass

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(module={self._module_id!r}, "
            f"name={self._name!r}, "
            f"range=[{self._applies_from}, {self._applies_to}], "
            f"once_only={self._execute_once_only})"
        )


class CallableComponent(BaseModuleComponent):
    """Component whose work is a plain function."""

    def __init__(
        self,
        module_id: str,
        name: str,
        func: Callable[..., Any],
        parameters: Optional[Dict[str, Any]] = None,
        **kwargs,
    ):
        """
        Args:
            module_id: Identifier of the owning module.
            name: Component name.
            func: Function called by ``execute``.
            parameters: Keyword arguments passed to ``func``.
            **kwargs: Remaining BaseModuleComponent arguments.
        """
        super().__init__(module_id, name, **kwargs)
        if not callable(func):
            raise TypeError(
                f"Component '{name}' of module '{module_id}' needs a callable, got {func!r}"
            )
        self.func = func
        self.parameters = dict(parameters or {})

    def execute_internal(self) -> None:
        self.func(**self.parameters)
