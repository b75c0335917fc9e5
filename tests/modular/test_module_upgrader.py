# tests/modular/test_module_upgrader.py
# -*- coding: utf-8 -*-
"""
Tests for the per-module upgrade driver.
"""

import pytest

from modular.errors import DowngradeError
from modular.module_service import ModuleDetails
from modular.registry_service import (
    DEFAULT_NAMESPACE,
    PROPERTY_CURRENT_VERSION,
    PROPERTY_INSTALLED_VERSION,
    module_property_key,
)
from modular.runner import ComponentRunner, RunState
from modular.upgrader import ModuleState, ModuleUpgrader, classify_module_state
from modular.version import VersionNumber


@pytest.fixture
def upgrader(catalog, registry_service):
    return ModuleUpgrader(catalog, registry_service, ComponentRunner(registry_service))


def stored(registry_service, module_id, property_name):
    return registry_service.get_value(
        module_property_key(DEFAULT_NAMESPACE, module_id, property_name)
    )


class TestClassifyModuleState:
    """Tests for classify_module_state."""

    def test_states(self):
        deployed = VersionNumber("2.0")
        assert classify_module_state(None, deployed) is ModuleState.NOT_INSTALLED
        assert classify_module_state(VersionNumber("2"), deployed) is ModuleState.SAME_VERSION
        assert classify_module_state(VersionNumber("1.5"), deployed) is ModuleState.UPGRADING
        assert (
            classify_module_state(VersionNumber("3.0"), deployed)
            is ModuleState.DOWNGRADE_REJECTED
        )


class TestModuleUpgrader:
    """Tests for the ModuleUpgrader class."""

    def test_fresh_install_records_both_versions(
        self, upgrader, registry_service, make_component, journal
    ):
        make_component("foo", "initData")

        result = upgrader.start_module(ModuleDetails(id="foo", version="2.0"), RunState())

        assert result.state is ModuleState.NOT_INSTALLED
        assert result.previous_version is None
        assert result.executed_components == ["initData"]
        assert journal == ["foo:initData"]
        assert stored(registry_service, "foo", PROPERTY_INSTALLED_VERSION) == VersionNumber("2.0")
        assert stored(registry_service, "foo", PROPERTY_CURRENT_VERSION) == VersionNumber("2.0")

    def test_upgrade_keeps_installed_version(self, upgrader, registry_service, make_component):
        make_component("foo", "migrate", applies_from="1.1")
        upgrader.start_module(ModuleDetails(id="foo", version="1.0"), RunState())

        result = upgrader.start_module(ModuleDetails(id="foo", version="1.2"), RunState())

        assert result.state is ModuleState.UPGRADING
        assert result.previous_version == VersionNumber("1.0")
        assert result.executed_components == ["migrate"]
        assert stored(registry_service, "foo", PROPERTY_INSTALLED_VERSION) == VersionNumber("1.0")
        assert stored(registry_service, "foo", PROPERTY_CURRENT_VERSION) == VersionNumber("1.2")

    def test_same_version_skips_once_only_components(
        self, upgrader, make_component, journal
    ):
        make_component("foo", "initData")
        make_component("foo", "refresh", execute_once_only=False)
        upgrader.start_module(ModuleDetails(id="foo", version="2.0"), RunState())

        result = upgrader.start_module(ModuleDetails(id="foo", version="2.0"), RunState())

        assert result.state is ModuleState.SAME_VERSION
        assert result.executed_components == ["refresh"]
        assert result.skipped == {"skipped_already_executed": 1}
        assert journal == ["foo:initData", "foo:refresh", "foo:refresh"]

    def test_downgrade_is_rejected_without_writes(
        self, upgrader, registry_service, make_component, journal
    ):
        make_component("foo", "initData", execute_once_only=False)
        registry_service.add_value(
            module_property_key(DEFAULT_NAMESPACE, "foo", PROPERTY_CURRENT_VERSION),
            VersionNumber("3.0"),
        )

        with pytest.raises(DowngradeError) as exc_info:
            upgrader.start_module(ModuleDetails(id="foo", version="2.0"), RunState())

        assert exc_info.value.stored_version == VersionNumber("3.0")
        assert exc_info.value.deployed_version == VersionNumber("2.0")
        assert "Downgrading of module 'foo' is not supported" in str(exc_info.value)
        assert journal == []
        assert stored(registry_service, "foo", PROPERTY_CURRENT_VERSION) == VersionNumber("3.0")
        assert stored(registry_service, "foo", PROPERTY_INSTALLED_VERSION) is None

    def test_module_without_components_is_still_recorded(self, upgrader, registry_service):
        result = upgrader.start_module(ModuleDetails(id="empty", version="1.0"), RunState())

        assert result.executed_count == 0
        assert stored(registry_service, "empty", PROPERTY_CURRENT_VERSION) == VersionNumber("1.0")

    def test_cross_module_dependencies_are_prefixed(self, upgrader, make_component):
        dependency = make_component("bar", "schema")
        make_component("foo", "data", depends_on=[dependency])

        result = upgrader.start_module(ModuleDetails(id="foo", version="1.0"), RunState())

        assert result.executed_components == ["bar:schema", "data"]

    def test_out_of_range_components_are_counted(self, upgrader, make_component):
        make_component("foo", "legacy", applies_to="0.9")

        result = upgrader.start_module(ModuleDetails(id="foo", version="1.0"), RunState())

        assert result.skipped == {"skipped_out_of_range": 1}
        assert result.executed_count == 0
