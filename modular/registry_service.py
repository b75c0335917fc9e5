"""
Durable key/value registry used to record module versions and component
execution dates.

Keys are hierarchical paths under a namespace, e.g.::

    urn:modular:system:modules:1.0 / modules / foo / currentVersion
    urn:modular:system:modules:1.0 / modules / foo / components / initData / executionDate

Values keep their Python type (``VersionNumber`` or ``datetime``) across a
get/set round trip.
"""

import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Tuple

DEFAULT_NAMESPACE = "urn:modular:system:modules:1.0"

PATH_MODULES = "modules"
PATH_COMPONENTS = "components"
PROPERTY_INSTALLED_VERSION = "installedVersion"
PROPERTY_CURRENT_VERSION = "currentVersion"
PROPERTY_EXECUTION_DATE = "executionDate"

PATH_SEPARATOR = "/"


def validate_namespace(namespace: str) -> str:
    """
    Check that a namespace can prefix a flattened key path.

    The namespace is the first path segment, so it must be non-empty and
    free of the path separator.

    Raises:
        ValueError: If the namespace is unusable.
    """
    if not namespace or PATH_SEPARATOR in namespace:
        raise ValueError(
            f"Invalid registry namespace '{namespace}': it must be non-empty "
            f"and must not contain '{PATH_SEPARATOR}'"
        )
    return namespace


class RegistryKey:
    """
    Immutable hierarchical key: a namespace, a path and a property name.

    The last element passed to the constructor is the property, everything
    between the namespace and the property is the path.
    """

    __slots__ = ("namespace", "path", "property")

    def __init__(self, namespace: str, *elements: str):
        validate_namespace(namespace)
        if not elements:
            raise ValueError("A registry key needs at least a property name")
        for element in elements:
            if not element or PATH_SEPARATOR in element:
                raise ValueError(
                    f"Invalid registry key element '{element}' in {elements}"
                )
        object.__setattr__(self, "namespace", namespace)
        object.__setattr__(self, "path", tuple(elements[:-1]))
        object.__setattr__(self, "property", elements[-1])

    def __setattr__(self, name, value):
        raise AttributeError("RegistryKey is immutable")

    @property
    def elements(self) -> Tuple[str, ...]:
        return self.path + (self.property,)

    def to_path(self) -> str:
        """Flatten the key into a single string, namespace first."""
        return PATH_SEPARATOR.join((self.namespace,) + self.elements)

    def __eq__(self, other) -> bool:
        if not isinstance(other, RegistryKey):
            return NotImplemented
        return (self.namespace, self.elements) == (
            other.namespace,
            other.elements,
        )

    def __hash__(self) -> int:
        return hash((self.namespace, self.elements))

    def __repr__(self) -> str:
        return f"RegistryKey({self.to_path()!r})"


def module_property_key(
    namespace: str, module_id: str, property_name: str
) -> RegistryKey:
    """Key of a module-level property such as ``currentVersion``."""
    return RegistryKey(namespace, PATH_MODULES, module_id, property_name)


def component_execution_key(
    namespace: str, module_id: str, component_name: str
) -> RegistryKey:
    """Key holding the last execution date of a module component."""
    return RegistryKey(
        namespace,
        PATH_MODULES,
        module_id,
        PATH_COMPONENTS,
        component_name,
        PROPERTY_EXECUTION_DATE,
    )


class RegistryService(ABC):
    """
    Contract of the key/value registry.

    ``get_value`` returns None for absent keys. ``add_value`` creates or
    replaces a value. ``transaction`` opens a unit of work: every write made
    inside it is committed when the block exits normally and discarded when
    it raises.
    """

    @abstractmethod
    def get_value(self, key: RegistryKey) -> Optional[Any]:
        pass

    @abstractmethod
    def add_value(self, key: RegistryKey, value: Any) -> None:
        pass

    @abstractmethod
    def list_values(self, prefix: RegistryKey) -> Dict[RegistryKey, Any]:
        """
        Return every stored value whose key lies under ``prefix``.

        ``prefix`` is treated as a path: its property name is the last path
        segment to match, e.g. ``RegistryKey(ns, "modules", "foo")`` matches
        all keys of module ``foo``.
        """
        pass

    @abstractmethod
    def transaction(self):
        """Context manager delimiting an atomic unit of work."""
        pass


class InMemoryRegistryService(RegistryService):
    """
    Process-local registry.

    Transactions are layered: each open transaction stages its writes in its
    own layer, reads look through the layers from the innermost outwards, a
    successful exit merges the layer into its parent (or into the committed
    store for the outermost transaction) and an exception drops it.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(self.__class__.__name__)
        self._store: Dict[RegistryKey, Any] = {}
        self._layers: List[Dict[RegistryKey, Any]] = []
        self._lock = threading.RLock()

    def get_value(self, key: RegistryKey) -> Optional[Any]:
        with self._lock:
            for layer in reversed(self._layers):
                if key in layer:
                    return layer[key]
            return self._store.get(key)

    def add_value(self, key: RegistryKey, value: Any) -> None:
        with self._lock:
            target = self._layers[-1] if self._layers else self._store
            target[key] = value
            self.logger.debug(f"Set {key.to_path()} = {value}")

    def list_values(self, prefix: RegistryKey) -> Dict[RegistryKey, Any]:
        with self._lock:
            merged = dict(self._store)
            for layer in self._layers:
                merged.update(layer)
        return {
            key: value
            for key, value in merged.items()
            if _key_is_under(key, prefix)
        }

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            self._layers.append({})
            depth = len(self._layers)
            try:
                yield
            except BaseException:
                del self._layers[depth - 1 :]
                self.logger.debug("Registry transaction rolled back")
                raise
            layer = self._layers.pop()
            target = self._layers[-1] if self._layers else self._store
            target.update(layer)
            self.logger.debug(
                f"Registry transaction committed {len(layer)} value(s)"
            )


def _key_is_under(key: RegistryKey, prefix: RegistryKey) -> bool:
    if key.namespace != prefix.namespace:
        return False
    wanted = prefix.elements
    return key.elements[: len(wanted)] == wanted
