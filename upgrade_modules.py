#!/usr/bin/env python3
"""
Entry point for the module upgrade service.

Loads a module manifest, then runs, inspects or validates the module
components it declares against the configured registry.
"""

import argparse
import logging
import sys
from typing import List, Optional

from common.logging_config import setup_logging
from common.metrics import get_metrics, start_metrics_server
from modular.errors import ConfigurationError
from modular.manifest import load_manifest
from modular.orchestrator import ModuleStartupOrchestrator
from modular.pg_registry import PostgresRegistryService
from modular.registry_service import InMemoryRegistryService, RegistryService
from modular_setup.cli_handler import (
    format_run_report,
    show_execution_order,
    show_module_status,
    view_configuration,
)
from modular_setup.config_loader import CONFIG_FILE_DEFAULT, load_app_settings
from modular_setup.config_models import AppSettings


def parse_args(args: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Args:
        args: Command-line arguments. If None, sys.argv[1:] is used.

    Returns:
        Parsed arguments.
    """
    parser = argparse.ArgumentParser(
        description="Bring deployed modules up to their deployed versions"
    )

    # General options
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable verbose output"
    )
    parser.add_argument(
        "--config",
        default=CONFIG_FILE_DEFAULT,
        help=f"Path to the YAML configuration file (default: {CONFIG_FILE_DEFAULT})",
    )
    parser.add_argument(
        "--manifest", default=None, help="Path to the module manifest"
    )
    parser.add_argument(
        "--registry-backend",
        choices=["memory", "postgres"],
        default=None,
        help="Registry store to use",
    )
    parser.add_argument(
        "--namespace", default=None, help="Registry key namespace"
    )
    parser.add_argument(
        "--ephemeral-registry",
        action="store_true",
        help="Allow 'run' with the in-memory registry (nothing is remembered between runs)",
    )
    parser.add_argument(
        "--metrics-port",
        type=int,
        default=None,
        help="Serve Prometheus metrics on this port during the run",
    )
    parser.add_argument(
        "--json-logs", action="store_true", help="Emit JSON log records"
    )
    parser.add_argument(
        "--log-file", default=None, help="Also write JSON logs to this file"
    )

    # Subcommands
    subparsers = parser.add_subparsers(
        dest="command", help="Command to execute"
    )
    subparsers.add_parser(
        "run", help="Run every due module component"
    )
    subparsers.add_parser(
        "status", help="Show recorded module versions and execution dates"
    )
    subparsers.add_parser(
        "validate", help="Validate the manifest and show the execution order"
    )
    subparsers.add_parser(
        "view-config", help="Show the effective configuration"
    )

    return parser.parse_args(args)


def build_registry_service(
    app_settings: AppSettings, logger: logging.Logger
) -> RegistryService:
    """Create the registry store selected in the settings."""
    if app_settings.registry.backend == "postgres":
        registry_service = PostgresRegistryService(
            app_settings.pg.conninfo(),
            table_name=app_settings.registry.table_name,
            logger=logger.getChild("registry"),
        )
        if app_settings.registry.create_schema:
            registry_service.ensure_schema()
        return registry_service
    logger.warning(
        "Using the in-memory registry: nothing is persisted between runs."
    )
    return InMemoryRegistryService(logger=logger.getChild("registry"))


def run_modules(app_settings: AppSettings, logger: logging.Logger) -> int:
    """
    Run the orchestrator over the manifest's modules.

    Raises:
        ConfigurationError: If the in-memory registry is selected without
            ``registry.allow_ephemeral``; every once-only component would run
            again on the next start.
    """
    registry_settings = app_settings.registry
    if registry_settings.backend == "memory" and not registry_settings.allow_ephemeral:
        raise ConfigurationError(
            "Refusing to run against the in-memory registry: executions would "
            "not be remembered. Use --registry-backend postgres, or pass "
            "--ephemeral-registry for a throwaway run."
        )

    catalog, module_service = load_manifest(
        app_settings.manifest_path, logger=logger
    )
    metrics = None
    if app_settings.metrics.enabled:
        metrics = get_metrics()
        start_metrics_server(app_settings.metrics.port, app_settings.metrics.addr)

    registry_service = build_registry_service(app_settings, logger)
    try:
        orchestrator = ModuleStartupOrchestrator(
            catalog,
            module_service,
            registry_service,
            namespace=app_settings.registry.namespace,
            metrics=metrics,
            logger=logger.getChild("orchestrator"),
        )
        report = orchestrator.start_modules()
    finally:
        if isinstance(registry_service, PostgresRegistryService):
            registry_service.close()

    logger.info(format_run_report(report, app_settings.symbols))
    return 0 if report.success else 1


def main(args: Optional[List[str]] = None) -> int:
    """
    Main entry point for the module upgrade service.

    Args:
        args: Command-line arguments. If None, sys.argv[1:] is used.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    parsed_args = parse_args(args)

    logger = setup_logging(
        log_level="DEBUG" if parsed_args.verbose else None,
        json_format=parsed_args.json_logs,
    )

    try:
        app_settings = load_app_settings(
            parsed_args, config_file_path=parsed_args.config, current_logger=logger
        )
        logger = setup_logging(
            log_level=app_settings.log.level,
            json_format=app_settings.log.json_format,
            enable_file=bool(app_settings.log.log_file),
            log_file_path=app_settings.log.log_file,
        )

        if parsed_args.command == "run":
            return run_modules(app_settings, logger)

        elif parsed_args.command == "status":
            catalog, module_service = load_manifest(
                app_settings.manifest_path, logger=logger
            )
            registry_service = build_registry_service(app_settings, logger)
            try:
                show_module_status(
                    registry_service,
                    module_service,
                    catalog,
                    namespace=app_settings.registry.namespace,
                    current_logger=logger,
                )
            finally:
                if isinstance(registry_service, PostgresRegistryService):
                    registry_service.close()
            return 0

        elif parsed_args.command == "validate":
            catalog, module_service = load_manifest(
                app_settings.manifest_path, logger=logger
            )
            show_execution_order(catalog, module_service, current_logger=logger)
            logger.info("Manifest is valid")
            return 0

        elif parsed_args.command == "view-config":
            view_configuration(app_settings, current_logger=logger)
            return 0

        else:
            logger.error(
                "No command specified. Use --help for usage information."
            )
            return 1

    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 1
    except Exception as e:
        logger.exception(f"Error: {str(e)}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
