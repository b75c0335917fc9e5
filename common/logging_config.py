# -*- coding: utf-8 -*-
"""
Centralized logging configuration for the module upgrade service.

Every entry point (the CLI, embedding applications, tests that want console
output) configures logging through this module so that records emitted by the
catalog, the component runner, the module upgrader and the orchestrator share
one format.

Features:
- JSON-structured logging for log shippers (Loki, ELK)
- Human-readable console output for interactive runs
- Environment-aware defaults (development, production, testing)
- Timing decorator for module upgrade passes
"""

import json
import logging
import os
import sys
import time
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Dict, Optional

DEFAULT_SERVICE_NAME = "module-upgrade"
CONSOLE_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Attributes every LogRecord carries; anything else was passed via ``extra``.
_STANDARD_RECORD_ATTRS = frozenset(
    [
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "getMessage",
        "exc_info",
        "exc_text",
        "stack_info",
        "message",
        "asctime",
    ]
)


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Each record becomes a single JSON object with:
    - timestamp (ISO format, UTC)
    - level
    - service name
    - logger name and message
    - source location
    - any fields passed through ``extra=``
    """

    def __init__(self, service_name: str = DEFAULT_SERVICE_NAME):
        super().__init__()
        self.service_name = service_name
        self.hostname = os.environ.get("HOSTNAME", "unknown")
        self.pod_name = os.environ.get("POD_NAME", "unknown")
        self.namespace = os.environ.get("POD_NAMESPACE", "default")

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "service": self.service_name,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "process": record.process,
            "hostname": self.hostname,
            "pod_name": self.pod_name,
            "namespace": self.namespace,
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        extra_fields = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _STANDARD_RECORD_ATTRS
        }
        if extra_fields:
            log_entry["extra"] = extra_fields

        return json.dumps(log_entry, ensure_ascii=False, default=str)


def setup_logging(
    service_name: str = DEFAULT_SERVICE_NAME,
    log_level: Optional[str] = None,
    enable_console: bool = True,
    enable_file: bool = False,
    log_file_path: Optional[str] = None,
    json_format: bool = False,
) -> logging.Logger:
    """
    Set up logging for the upgrade service.

    Args:
        service_name: Name reported in JSON records and used for the returned logger.
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
            Falls back to the LOG_LEVEL environment variable, then INFO.
        enable_console: Whether to log to stdout.
        enable_file: Whether to log to ``log_file_path``.
        log_file_path: Path to the log file (JSON lines).
        json_format: Force JSON output on the console. JSON is always used
            when running inside Kubernetes.

    Returns:
        The service logger.
    """
    if log_level is None:
        log_level = os.environ.get("LOG_LEVEL", "INFO")
    log_level = log_level.upper()

    numeric_level = getattr(logging, log_level, None)
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO
        log_level = "INFO"

    json_formatter = JSONFormatter(service_name)
    console_formatter = logging.Formatter(CONSOLE_LOG_FORMAT)
    in_kubernetes = bool(os.environ.get("KUBERNETES_SERVICE_HOST"))

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if enable_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(numeric_level)
        if json_format or in_kubernetes:
            console_handler.setFormatter(json_formatter)
        else:
            console_handler.setFormatter(console_formatter)
        root_logger.addHandler(console_handler)

    if enable_file and log_file_path:
        log_dir = os.path.dirname(log_file_path)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(log_file_path)
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(json_formatter)
        root_logger.addHandler(file_handler)

    logger = logging.getLogger(service_name)
    logger.debug(
        "Logging initialized",
        extra={
            "log_level": log_level,
            "console_enabled": enable_console,
            "file_enabled": enable_file,
            "kubernetes": in_kubernetes,
        },
    )
    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the given name.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


def log_performance(func):
    """
    Decorator that logs how long the wrapped call took.

    Failures are logged with the elapsed time and re-raised.

    Usage:
        @log_performance
        def start_module(...):
            ...
    """

    @wraps(func)
    def wrapper(*args, **kwargs):
        logger = logging.getLogger(func.__module__)
        start_time = time.monotonic()
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            duration = time.monotonic() - start_time
            logger.debug(
                f"{func.__name__} failed after {duration:.3f}s",
                extra={
                    "function": func.__name__,
                    "duration_seconds": round(duration, 3),
                    "status": "error",
                    "error": str(e),
                },
            )
            raise
        duration = time.monotonic() - start_time
        logger.debug(
            f"{func.__name__} completed in {duration:.3f}s",
            extra={
                "function": func.__name__,
                "duration_seconds": round(duration, 3),
                "status": "success",
            },
        )
        return result

    return wrapper


LOGGING_CONFIGS: Dict[str, Dict[str, Any]] = {
    "development": {
        "log_level": "DEBUG",
        "enable_console": True,
        "json_format": False,
    },
    "production": {
        "log_level": "INFO",
        "enable_console": True,
        "json_format": True,
    },
    "testing": {
        "log_level": "WARNING",
        "enable_console": False,
        "json_format": False,
    },
}


def setup_service_logging(
    service_name: str = DEFAULT_SERVICE_NAME,
    environment: Optional[str] = None,
) -> logging.Logger:
    """
    Set up logging with environment-specific defaults.

    Args:
        service_name: Name of the service
        environment: Environment name (development, production, testing).
            Defaults to the ENVIRONMENT variable, then development.

    Returns:
        Configured logger instance
    """
    if environment is None:
        environment = os.environ.get("ENVIRONMENT", "development")

    config = LOGGING_CONFIGS.get(environment, LOGGING_CONFIGS["development"])

    return setup_logging(
        service_name=service_name,
        log_level=config["log_level"],
        enable_console=config["enable_console"],
        json_format=config["json_format"],
    )
