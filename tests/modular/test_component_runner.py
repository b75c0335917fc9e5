# tests/modular/test_component_runner.py
# -*- coding: utf-8 -*-
"""
Tests for the component runner.
"""

from datetime import datetime, timezone

import pytest

from modular.errors import ComponentExecutionError
from modular.module_service import ModuleDetails
from modular.registry_service import DEFAULT_NAMESPACE, component_execution_key
from modular.runner import ComponentRunner, ExecutionStatus, RunState

FIXED_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def runner(registry_service, metrics):
    return ComponentRunner(registry_service, metrics=metrics, clock=lambda: FIXED_TIME)


def execution_date(registry_service, module_id, name):
    return registry_service.get_value(
        component_execution_key(DEFAULT_NAMESPACE, module_id, name)
    )


class TestComponentRunner:
    """Tests for the ComponentRunner class."""

    def test_executes_and_records_date(self, runner, registry_service, make_component, journal):
        component = make_component("foo", "initData")
        run_state = RunState()

        status = runner.execute(ModuleDetails(id="foo", version="2.0"), component, run_state)

        assert status is ExecutionStatus.EXECUTED
        assert journal == ["foo:initData"]
        assert component in run_state
        assert execution_date(registry_service, "foo", "initData") == FIXED_TIME

    def test_skips_component_already_run_in_this_pass(self, runner, make_component, journal):
        component = make_component("foo", "initData")
        run_state = RunState()
        module = ModuleDetails(id="foo", version="2.0")

        runner.execute(module, component, run_state)
        status = runner.execute(module, component, run_state)

        assert status is ExecutionStatus.SKIPPED_THIS_RUN
        assert status.skipped
        assert journal == ["foo:initData"]

    def test_seeded_run_state_counts_earlier_passes(self, runner, make_component, journal):
        component = make_component("foo", "refresh", execute_once_only=False)
        run_state = RunState([("foo", "refresh")])

        status = runner.execute(ModuleDetails(id="bar", version="1.0"), component, run_state)

        assert status is ExecutionStatus.SKIPPED_THIS_RUN
        assert journal == []
        assert run_state.executed_components == []

    @pytest.mark.parametrize(
        "deployed, expected",
        [
            ("0.9", ExecutionStatus.SKIPPED_OUT_OF_RANGE),
            ("1.0", ExecutionStatus.EXECUTED),
            ("1.5", ExecutionStatus.EXECUTED),
            ("2.0", ExecutionStatus.EXECUTED),
            ("2.0.1", ExecutionStatus.SKIPPED_OUT_OF_RANGE),
        ],
    )
    def test_version_range_is_inclusive(self, runner, make_component, deployed, expected):
        component = make_component("foo", "patch", applies_from="1.0", applies_to="2.0")

        status = runner.execute(ModuleDetails(id="foo", version=deployed), component, RunState())

        assert status is expected

    def test_once_only_component_is_not_repeated(self, runner, registry_service, make_component, journal):
        component = make_component("foo", "initData")
        earlier = datetime(2020, 1, 1, tzinfo=timezone.utc)
        registry_service.add_value(
            component_execution_key(DEFAULT_NAMESPACE, "foo", "initData"), earlier
        )

        status = runner.execute(ModuleDetails(id="foo", version="2.0"), component, RunState())

        assert status is ExecutionStatus.SKIPPED_ALREADY_EXECUTED
        assert journal == []
        assert execution_date(registry_service, "foo", "initData") == earlier

    def test_repeatable_component_runs_again_and_updates_date(
        self, runner, registry_service, make_component, journal
    ):
        component = make_component("foo", "refresh", execute_once_only=False)
        registry_service.add_value(
            component_execution_key(DEFAULT_NAMESPACE, "foo", "refresh"),
            datetime(2020, 1, 1, tzinfo=timezone.utc),
        )

        status = runner.execute(ModuleDetails(id="foo", version="2.0"), component, RunState())

        assert status is ExecutionStatus.EXECUTED
        assert journal == ["foo:refresh"]
        assert execution_date(registry_service, "foo", "refresh") == FIXED_TIME

    def test_dependencies_run_first(self, runner, make_component, journal):
        a = make_component("foo", "a")
        b = make_component("foo", "b", depends_on=[a])
        run_state = RunState()
        module = ModuleDetails(id="foo", version="1.0")

        runner.execute(module, b, run_state)
        status = runner.execute(module, a, run_state)

        assert journal == ["foo:a", "foo:b"]
        assert status is ExecutionStatus.SKIPPED_THIS_RUN
        assert [c.name for c in run_state.executed_components] == ["a", "b"]

    def test_cross_module_dependency_is_checked_against_current_module(
        self, runner, make_component, journal
    ):
        dependency = make_component("bar", "schema", applies_from="5.0")
        dependent = make_component("foo", "data", depends_on=[dependency])

        runner.execute(ModuleDetails(id="foo", version="1.0"), dependent, RunState())

        # bar:schema does not apply to foo's version 1.0
        assert journal == ["foo:data"]

    def test_failure_is_wrapped_and_nothing_recorded(
        self, runner, registry_service, make_component
    ):
        cause = RuntimeError("disk full")
        component = make_component("foo", "broken", fail_with=cause)
        run_state = RunState()

        with pytest.raises(ComponentExecutionError) as exc_info:
            runner.execute(ModuleDetails(id="foo", version="1.0"), component, run_state)

        assert exc_info.value.component_name == "broken"
        assert exc_info.value.module_id == "foo"
        assert exc_info.value.cause is cause
        assert exc_info.value.__cause__ is cause
        assert component not in run_state
        assert execution_date(registry_service, "foo", "broken") is None

    def test_failing_dependency_stops_dependent(self, runner, make_component, journal):
        dependency = make_component("foo", "a", fail_with=ValueError("bad data"))
        dependent = make_component("foo", "b", depends_on=[dependency])

        with pytest.raises(ComponentExecutionError) as exc_info:
            runner.execute(ModuleDetails(id="foo", version="1.0"), dependent, RunState())

        assert exc_info.value.component_name == "a"
        assert journal == []

    def test_metrics_are_recorded(self, runner, metrics, make_component):
        component = make_component("foo", "initData")
        module = ModuleDetails(id="foo", version="1.0")
        run_state = RunState()

        runner.execute(module, component, run_state)
        runner.execute(module, component, run_state)

        assert metrics.registry.get_sample_value(
            "module_upgrade_components_executed_total", {"module_id": "foo"}
        ) == 1.0
        assert metrics.registry.get_sample_value(
            "module_upgrade_component_skips_total",
            {"module_id": "foo", "reason": "skipped_this_run"},
        ) == 1.0
