# modular_setup/cli_handler.py
# -*- coding: utf-8 -*-
"""
Handles Command Line Interface (CLI) output for the module upgrade service.
"""

import logging
from typing import Optional

from modular.catalog import ComponentCatalog
from modular.module_service import ModuleService
from modular.orchestrator import RunReport
from modular.registry_service import (
    DEFAULT_NAMESPACE,
    PATH_MODULES,
    PROPERTY_CURRENT_VERSION,
    PROPERTY_INSTALLED_VERSION,
    RegistryKey,
    RegistryService,
    component_execution_key,
    module_property_key,
)
from modular.upgrader import classify_module_state

from .config_models import PGPASSWORD_DEFAULT, SYMBOLS_DEFAULT, AppSettings

module_logger = logging.getLogger(__name__)


def view_configuration(
    app_config: AppSettings, current_logger: Optional[logging.Logger] = None
) -> str:
    """
    Display the effective configuration values, after defaults, environment
    variables, the YAML file and CLI arguments have been applied.

    The PostgreSQL password is never shown.

    Returns:
        The text that was logged.
    """
    logger_to_use = current_logger if current_logger else module_logger
    symbols = app_config.symbols

    config_text = f"{symbols.get('info', 'ℹ️')} Current effective configuration values (CLI > YAML > ENV > Defaults):\n\n"
    config_text += f"  Manifest Path:                 {app_config.manifest_path}\n\n"

    config_text += "  Registry Settings (registry.*):\n"
    config_text += f"    Backend:                     {app_config.registry.backend}\n"
    config_text += f"    Namespace:                   {app_config.registry.namespace}\n"
    config_text += f"    Table Name:                  {app_config.registry.table_name}\n"
    config_text += f"    Create Schema:               {app_config.registry.create_schema}\n"
    config_text += f"    Allow Ephemeral Run:         {app_config.registry.allow_ephemeral}\n\n"

    config_text += "  PostgreSQL Settings (pg.*):\n"
    config_text += f"    Host:                        {app_config.pg.host}\n"
    config_text += f"    Port:                        {app_config.pg.port}\n"
    config_text += f"    Database:                    {app_config.pg.database}\n"
    config_text += f"    User:                        {app_config.pg.user}\n"

    password = app_config.pg.password.get_secret_value()
    pg_password_display = "[FROM CONFIGURATION (ENV/YAML/CLI)]"
    if password == PGPASSWORD_DEFAULT:
        pg_password_display = "[DEFAULT - Potentially Insecure! Override via ENV or YAML]"
    elif not password:
        pg_password_display = "[NOT SET or EMPTY - Check Configuration]"
    config_text += f"    Password:                    {pg_password_display}\n\n"

    config_text += "  Logging Settings (log.*):\n"
    config_text += f"    Level:                       {app_config.log.level}\n"
    config_text += f"    JSON Format:                 {app_config.log.json_format}\n"
    config_text += f"    Log File:                    {app_config.log.log_file or '[console only]'}\n\n"

    config_text += "  Metrics Settings (metrics.*):\n"
    config_text += f"    Enabled:                     {app_config.metrics.enabled}\n"
    config_text += f"    Address:                     {app_config.metrics.addr}:{app_config.metrics.port}\n"

    logger_to_use.info(config_text)
    return config_text


def format_run_report(
    report: RunReport, symbols: Optional[dict] = None
) -> str:
    """Render a run report, one line per module."""
    symbols = symbols or SYMBOLS_DEFAULT
    lines = [report.summary()]
    for result in report.results:
        executed = ", ".join(result.executed_components) or "none"
        lines.append(
            f"  {symbols.get('success', '+')} {result.module_id} "
            f"{result.deployed_version} [{result.state.value}] "
            f"executed: {executed}"
        )
    for failure in report.failures:
        lines.append(
            f"  {symbols.get('error', '!')} {failure.module_id} "
            f"[{failure.error_type}] {failure.message}"
        )
    return "\n".join(lines)


def show_module_status(
    registry_service: RegistryService,
    module_service: ModuleService,
    catalog: ComponentCatalog,
    namespace: str = DEFAULT_NAMESPACE,
    current_logger: Optional[logging.Logger] = None,
) -> str:
    """
    Log the recorded state of every deployed module: stored versions, the
    transition the next run would make, and component execution dates.

    Returns:
        The text that was logged.
    """
    logger_to_use = current_logger if current_logger else module_logger

    status_text = "Module status:\n"
    for module in module_service.get_all_modules():
        installed = registry_service.get_value(
            module_property_key(namespace, module.id, PROPERTY_INSTALLED_VERSION)
        )
        current = registry_service.get_value(
            module_property_key(namespace, module.id, PROPERTY_CURRENT_VERSION)
        )
        state = classify_module_state(current, module.version)
        status_text += (
            f"  {module.id}: deployed {module.version}, "
            f"current {current or '-'}, installed {installed or '-'} "
            f"[{state.value}]\n"
        )

        recorded = registry_service.list_values(
            RegistryKey(namespace, PATH_MODULES, module.id)
        )
        for component in catalog.components_for(module.id):
            execution_date = recorded.get(
                component_execution_key(namespace, module.id, component.name)
            )
            executed_text = (
                execution_date.isoformat()
                if execution_date is not None
                else "never executed"
            )
            status_text += f"    {component.name}: {executed_text}\n"

    logger_to_use.info(status_text.rstrip("\n"))
    return status_text


def show_execution_order(
    catalog: ComponentCatalog,
    module_service: ModuleService,
    current_logger: Optional[logging.Logger] = None,
) -> str:
    """
    Log the order in which each module's components would be considered,
    dependencies first.

    Returns:
        The text that was logged.
    """
    logger_to_use = current_logger if current_logger else module_logger

    order_text = "Component execution order:\n"
    for module in module_service.get_all_modules():
        ordered = catalog.resolve_order(module.id)
        names = [
            component.name
            if component.module_id == module.id
            else f"{component.module_id}:{component.name}"
            for component in ordered
        ]
        order_text += f"  {module.id}: {' -> '.join(names) or 'no components'}\n"

    logger_to_use.info(order_text.rstrip("\n"))
    return order_text
