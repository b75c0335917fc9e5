# tests/conftest.py
import pytest
from prometheus_client import CollectorRegistry

from common.metrics import UpgradeMetrics
from modular.base_component import BaseModuleComponent
from modular.catalog import ComponentCatalog
from modular.registry_service import InMemoryRegistryService


class RecordingComponent(BaseModuleComponent):
    """Component that appends its key to a shared journal when executed."""

    def __init__(self, module_id, name, journal, fail_with=None, **kwargs):
        super().__init__(module_id, name, **kwargs)
        self.journal = journal
        self.fail_with = fail_with

    def execute_internal(self):
        if self.fail_with is not None:
            raise self.fail_with
        self.journal.append(f"{self.module_id}:{self.name}")


@pytest.fixture
def journal():
    return []


@pytest.fixture
def registry_service():
    return InMemoryRegistryService()


@pytest.fixture
def catalog():
    return ComponentCatalog()


@pytest.fixture
def metrics():
    return UpgradeMetrics(registry=CollectorRegistry())


@pytest.fixture
def make_component(catalog, journal):
    """Create and register a RecordingComponent."""

    def _make(module_id, name, register=True, **kwargs):
        component = RecordingComponent(module_id, name, journal, **kwargs)
        if register:
            catalog.register(component)
        return component

    return _make
