# modular_setup/config_loader.py
# -*- coding: utf-8 -*-
"""
Configuration loader for the module upgrade service.

Handles loading settings from Pydantic model defaults, environment variables,
a YAML file, and command-line arguments, applying this order of precedence
(later wins):
1. Pydantic Model Defaults
2. Environment Variables (read by Pydantic's BaseSettings)
3. YAML Configuration File
4. Command-Line Arguments
"""

import argparse
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from modular.errors import ConfigurationError

from .config_models import AppSettings

module_logger = logging.getLogger(__name__)

CONFIG_FILE_DEFAULT = "config.yaml"


def _deep_update(
    source: Dict[str, Any], overrides: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Recursively update ``source`` with the values of ``overrides``.

    Nested dictionaries are merged key by key. None values in ``overrides``
    never replace an existing value.

    Returns:
        The updated ``source`` (modified in place).
    """
    for key, value in overrides.items():
        if (
            isinstance(value, dict)
            and key in source
            and isinstance(source[key], dict)
        ):
            source[key] = _deep_update(source[key], value)
        elif value is not None:
            source[key] = value
        elif key not in source:
            source[key] = value
    return source


def _cli_overrides(cli_args: argparse.Namespace) -> Dict[str, Any]:
    """Map parsed CLI arguments onto the settings structure."""
    cli_arg_dict = vars(cli_args)
    overrides: Dict[str, Any] = {}

    def put(section: str, key: str, value: Any) -> None:
        overrides.setdefault(section, {})[key] = value

    for cli_key, cli_value in cli_arg_dict.items():
        if cli_value is None:
            continue

        if cli_key == "manifest":
            overrides["manifest_path"] = str(cli_value)
        elif cli_key == "registry_backend":
            put("registry", "backend", cli_value)
        elif cli_key == "namespace":
            put("registry", "namespace", cli_value)
        elif cli_key == "ephemeral_registry" and cli_value:
            put("registry", "allow_ephemeral", True)
        elif cli_key == "metrics_port":
            put("metrics", "port", int(cli_value))
            put("metrics", "enabled", True)
        elif cli_key == "verbose" and cli_value:
            put("log", "level", "DEBUG")
        elif cli_key == "json_logs" and cli_value:
            put("log", "json_format", True)
        elif cli_key == "log_file":
            put("log", "log_file", str(cli_value))
        elif cli_key == "pghost":
            put("pg", "host", cli_value)
        elif cli_key == "pgport":
            put("pg", "port", int(cli_value))
        elif cli_key == "pgdatabase":
            put("pg", "database", cli_value)
        elif cli_key == "pguser":
            put("pg", "user", cli_value)
        elif cli_key == "pgpassword":
            put("pg", "password", cli_value)

    return overrides


def load_app_settings(
    cli_args: Optional[argparse.Namespace] = None,
    config_file_path: str = CONFIG_FILE_DEFAULT,
    current_logger: Optional[logging.Logger] = None,
) -> AppSettings:
    """
    Load application settings.

    Args:
        cli_args: Parsed command-line arguments (from argparse).
        config_file_path: Path to the YAML configuration file. A missing file
            is not an error; defaults and environment variables are used.
        current_logger: Optional logger to use instead of the module logger.

    Returns:
        An instance of AppSettings with the fully resolved configuration.

    Raises:
        ConfigurationError: If the merged values fail validation.
    """
    logger_to_use = current_logger if current_logger else module_logger

    # Model defaults < environment variables
    try:
        settings_after_env_and_defaults = AppSettings()
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e
    current_values_dict = settings_after_env_and_defaults.model_dump(
        exclude_defaults=False
    )

    yaml_config_path = Path(config_file_path)
    if yaml_config_path.is_file():
        try:
            with open(yaml_config_path, "r", encoding="utf-8") as f:
                yaml_data = yaml.safe_load(f)
            if yaml_data and isinstance(yaml_data, dict):
                current_values_dict = _deep_update(
                    current_values_dict, yaml_data
                )
                logger_to_use.info(
                    f"Loaded configuration from {yaml_config_path}"
                )
            elif yaml_data is not None:
                logger_to_use.warning(
                    f"Config file '{yaml_config_path}' does not contain a valid YAML dictionary. Ignoring."
                )
        except yaml.YAMLError as e:
            logger_to_use.warning(
                f"Could not parse YAML config file '{yaml_config_path}': {e}. Using defaults and environment variables."
            )
        except IOError as e:
            logger_to_use.warning(
                f"Could not read config file '{yaml_config_path}': {e}. Using defaults and environment variables."
            )
    else:
        logger_to_use.debug(
            f"Configuration file '{yaml_config_path}' not found. Using defaults, environment variables, and CLI args."
        )

    if cli_args:
        current_values_dict = _deep_update(
            current_values_dict, _cli_overrides(cli_args)
        )

    try:
        return AppSettings(**current_values_dict)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e
