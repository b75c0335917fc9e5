"""
Manifest loader for modules and their components.

A manifest is a YAML document listing the deployed modules and the module
components to register::

    modules:
      - id: foo
        version: "2.0"
    components:
      - module: foo
        name: initData
        callable: "myapp.patches.foo:init_data"
        applies_from: "1.0"
        applies_to: "*"
        execute_once_only: true
      - module: foo
        name: reindex
        callable: "myapp.patches.foo:reindex"
        depends_on: [initData]          # or "othermodule:component"

Everything is resolved at load time: callables are imported, dependency names
become component references, and the dependency graph is checked for cycles.
"""

import importlib
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Set, Tuple, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from modular.base_component import BaseModuleComponent, CallableComponent
from modular.catalog import ComponentCatalog
from modular.errors import ConfigurationError
from modular.module_service import ModuleDetails, StaticModuleService
from modular.version import as_version

module_logger = logging.getLogger(__name__)

DEPENDENCY_SEPARATOR = ":"

ComponentKey = Tuple[str, str]


class ComponentDefinition(BaseModel):
    """A module component as declared in the manifest."""

    model_config = ConfigDict(extra="forbid")

    module: str = Field(min_length=1, description="Owning module id.")
    name: str = Field(min_length=1, description="Component name, unique per module.")
    callable: str = Field(
        description="Import path of the function to run, 'package.module:function'."
    )
    description: str = Field(default="")
    applies_from: str = Field(default="0.0.0")
    applies_to: str = Field(default="*")
    execute_once_only: bool = Field(default=True)
    depends_on: List[str] = Field(default_factory=list)
    parameters: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("applies_from", "applies_to", mode="before")
    @classmethod
    def _version_text(cls, value):
        try:
            return str(as_version(value))
        except TypeError as e:
            raise ValueError(str(e)) from e

    @field_validator("callable")
    @classmethod
    def _callable_path(cls, value: str) -> str:
        module_path, sep, attribute = value.partition(":")
        if not sep or not module_path or not attribute:
            raise ValueError(
                f"Callable '{value}' must have the form 'package.module:function'"
            )
        return value

    @property
    def key(self) -> ComponentKey:
        return (self.module, self.name)

    def dependency_keys(self) -> List[ComponentKey]:
        keys = []
        for reference in self.depends_on:
            module_id, sep, name = reference.rpartition(DEPENDENCY_SEPARATOR)
            keys.append((module_id if sep else self.module, name))
        return keys


class Manifest(BaseModel):
    """Parsed manifest document."""

    model_config = ConfigDict(extra="forbid")

    modules: List[ModuleDetails] = Field(default_factory=list)
    components: List[ComponentDefinition] = Field(default_factory=list)


def resolve_callable(path: str) -> Callable[..., Any]:
    """
    Import ``package.module:function`` and return the function.

    Raises:
        ConfigurationError: If the module cannot be imported or the attribute
            is missing or not callable.
    """
    module_path, _, attribute_path = path.partition(":")
    try:
        target: Any = importlib.import_module(module_path)
    except ImportError as e:
        raise ConfigurationError(
            f"Cannot import module '{module_path}' for callable '{path}': {e}"
        ) from e
    for attribute in attribute_path.split("."):
        try:
            target = getattr(target, attribute)
        except AttributeError as e:
            raise ConfigurationError(
                f"Callable '{path}' not found: {e}"
            ) from e
    if not callable(target):
        raise ConfigurationError(f"'{path}' is not callable")
    return target


def parse_manifest(data: Dict[str, Any]) -> Manifest:
    """Validate a manifest mapping."""
    if not isinstance(data, dict):
        raise ConfigurationError("A manifest must be a YAML mapping")
    try:
        return Manifest.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid manifest: {e}") from e


def read_manifest(path: Union[str, Path]) -> Manifest:
    """Read and validate a manifest file."""
    manifest_path = Path(path)
    if not manifest_path.is_file():
        raise ConfigurationError(f"Manifest file not found: {manifest_path}")
    try:
        with open(manifest_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Could not parse manifest '{manifest_path}': {e}"
        ) from e
    return parse_manifest(data or {})


def _definitions_in_dependency_order(
    definitions: List[ComponentDefinition],
    known: Set[ComponentKey],
) -> List[ComponentDefinition]:
    by_key: Dict[ComponentKey, ComponentDefinition] = {}
    for definition in definitions:
        if definition.key in by_key or definition.key in known:
            raise ConfigurationError(
                f"Component '{definition.name}' has already been registered "
                f"for module '{definition.module}'"
            )
        by_key[definition.key] = definition

    ordered: List[ComponentDefinition] = []
    visited: Set[ComponentKey] = set()
    in_progress: List[ComponentKey] = []

    def visit(definition: ComponentDefinition) -> None:
        key = definition.key
        if key in in_progress:
            cycle = in_progress[in_progress.index(key):] + [key]
            raise ConfigurationError(
                "Circular dependency detected: "
                + " -> ".join(f"{m}:{n}" for m, n in cycle)
            )
        if key in visited:
            return
        in_progress.append(key)
        for dependency_key in definition.dependency_keys():
            if dependency_key in by_key:
                visit(by_key[dependency_key])
            elif dependency_key not in known:
                raise ConfigurationError(
                    f"Component '{definition.name}' of module '{definition.module}' "
                    f"depends on unknown component "
                    f"'{dependency_key[0]}{DEPENDENCY_SEPARATOR}{dependency_key[1]}'"
                )
        in_progress.pop()
        visited.add(key)
        ordered.append(definition)

    for definition in definitions:
        visit(definition)
    return ordered


def build_component(
    definition: ComponentDefinition,
    catalog: ComponentCatalog,
    logger: Optional[logging.Logger] = None,
) -> BaseModuleComponent:
    """Create the component for a definition, resolving its references."""
    dependencies = [
        catalog.get_component(module_id, name)
        for module_id, name in definition.dependency_keys()
    ]
    return CallableComponent(
        definition.module,
        definition.name,
        resolve_callable(definition.callable),
        parameters=definition.parameters,
        description=definition.description,
        applies_from=definition.applies_from,
        applies_to=definition.applies_to,
        execute_once_only=definition.execute_once_only,
        depends_on=dependencies,
        logger=logger,
    )


def register_components(
    manifest: Manifest,
    catalog: ComponentCatalog,
    logger: Optional[logging.Logger] = None,
) -> List[BaseModuleComponent]:
    """
    Register every component of the manifest, dependencies first.

    Returns:
        The registered components in registration order.

    Raises:
        ConfigurationError: For duplicates, unknown dependencies, cycles or
            unresolvable callables.
    """
    logger_to_use = logger or module_logger
    known = {
        (module_id, component.name)
        for module_id in catalog.get_module_ids()
        for component in catalog.components_for(module_id)
    }
    registered = []
    for definition in _definitions_in_dependency_order(
        manifest.components, known
    ):
        registered.append(
            catalog.register(build_component(definition, catalog))
        )

    catalog.validate()
    logger_to_use.info(
        f"Registered {len(registered)} component(s) from the manifest"
    )
    return registered


def load_manifest(
    path: Union[str, Path],
    catalog: Optional[ComponentCatalog] = None,
    logger: Optional[logging.Logger] = None,
) -> Tuple[ComponentCatalog, StaticModuleService]:
    """
    Load a manifest file into a catalog and a module service.

    Args:
        path: Manifest file path.
        catalog: Catalog to register into; a new one if not provided.
        logger: Optional logger instance.

    Returns:
        The catalog and a module service listing the manifest's modules.
    """
    logger_to_use = logger or module_logger
    manifest = read_manifest(path)
    catalog = catalog if catalog is not None else ComponentCatalog()
    register_components(manifest, catalog, logger_to_use)
    try:
        module_service = StaticModuleService(manifest.modules)
    except ValueError as e:
        raise ConfigurationError(str(e)) from e
    logger_to_use.info(
        f"Loaded manifest {path}: {len(manifest.modules)} module(s)"
    )
    return catalog, module_service
