# tests/test_upgrade_modules.py
# -*- coding: utf-8 -*-
"""
Tests for the module-upgrade command line entry point.
"""

import logging
import textwrap
from unittest.mock import MagicMock

import pytest

import upgrade_modules
from modular.pg_registry import PostgresRegistryService
from modular.registry_service import InMemoryRegistryService
from modular_setup.config_models import AppSettings

CALLS = []


def record_call():
    CALLS.append("called")


def fail():
    raise RuntimeError("component failed")


@pytest.fixture(autouse=True)
def isolate(monkeypatch, tmp_path):
    CALLS.clear()
    monkeypatch.chdir(tmp_path)
    root_logger = logging.getLogger()
    handlers = root_logger.handlers[:]
    yield
    for handler in root_logger.handlers[:]:
        if handler not in handlers:
            root_logger.removeHandler(handler)
            handler.close()
    root_logger.handlers = handlers


def write_manifest(tmp_path, function_name="record_call"):
    path = tmp_path / "modules.yaml"
    path.write_text(
        textwrap.dedent(
            f"""
            modules:
              - id: foo
                version: "1.0"
            components:
              - module: foo
                name: initData
                callable: "{__name__}:{function_name}"
            """
        ),
        encoding="utf-8",
    )
    return path


def test_parse_args():
    args = upgrade_modules.parse_args(
        ["-v", "--manifest", "m.yaml", "--registry-backend", "postgres", "run"]
    )

    assert args.verbose is True
    assert args.manifest == "m.yaml"
    assert args.registry_backend == "postgres"
    assert args.command == "run"


def test_no_command_fails():
    assert upgrade_modules.main([]) == 1


def test_run_succeeds(tmp_path):
    manifest = write_manifest(tmp_path)

    assert upgrade_modules.main(["--manifest", str(manifest), "--ephemeral-registry", "run"]) == 0
    assert CALLS == ["called"]


def test_run_reports_failed_module(tmp_path):
    manifest = write_manifest(tmp_path, "fail")

    assert upgrade_modules.main(["--manifest", str(manifest), "--ephemeral-registry", "run"]) == 1


def test_run_refuses_memory_registry_by_default(tmp_path):
    manifest = write_manifest(tmp_path)

    assert upgrade_modules.main(["--manifest", str(manifest), "run"]) == 1
    assert CALLS == []


def test_run_rejects_namespace_with_separator(tmp_path):
    manifest = write_manifest(tmp_path)

    exit_code = upgrade_modules.main(
        [
            "--manifest", str(manifest),
            "--namespace", "http://www.example.org/system/modules/1.0",
            "--ephemeral-registry",
            "run",
        ]
    )

    assert exit_code == 1
    assert CALLS == []


def test_run_with_missing_manifest(tmp_path):
    assert upgrade_modules.main(["--manifest", str(tmp_path / "absent.yaml"), "--ephemeral-registry", "run"]) == 1


def test_run_starts_metrics_server(tmp_path, mocker):
    manifest = write_manifest(tmp_path)
    start_server = mocker.patch("upgrade_modules.start_metrics_server")
    mocker.patch("upgrade_modules.get_metrics", return_value=MagicMock())

    assert upgrade_modules.main(["--manifest", str(manifest), "--metrics-port", "9200", "--ephemeral-registry", "run"]) == 0
    start_server.assert_called_once_with(9200, "0.0.0.0")


def test_validate(tmp_path):
    manifest = write_manifest(tmp_path)

    assert upgrade_modules.main(["--manifest", str(manifest), "validate"]) == 0
    assert CALLS == []


def test_status(tmp_path):
    manifest = write_manifest(tmp_path)

    assert upgrade_modules.main(["--manifest", str(manifest), "status"]) == 0


def test_view_config_reads_yaml(tmp_path, mocker):
    (tmp_path / "config.yaml").write_text("manifest_path: custom.yaml\n", encoding="utf-8")
    view = mocker.patch("upgrade_modules.view_configuration")

    assert upgrade_modules.main(["view-config"]) == 0
    assert view.call_args[0][0].manifest_path == "custom.yaml"


def test_build_registry_service_memory():
    registry = upgrade_modules.build_registry_service(AppSettings(), logging.getLogger("test"))

    assert isinstance(registry, InMemoryRegistryService)


def test_build_registry_service_postgres(mocker):
    ensure_schema = mocker.patch.object(PostgresRegistryService, "ensure_schema")
    settings = AppSettings()
    settings.registry.backend = "postgres"

    registry = upgrade_modules.build_registry_service(settings, logging.getLogger("test"))

    assert isinstance(registry, PostgresRegistryService)
    assert registry.table_name == "module_registry"
    ensure_schema.assert_called_once()
