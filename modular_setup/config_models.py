# modular_setup/config_models.py
# -*- coding: utf-8 -*-
"""
Pydantic models for application configuration.

This module defines the structured settings for the module upgrade service,
including defaults, type annotations, and descriptions.
It utilizes Pydantic for data validation and settings management.
"""

from typing import Dict, Literal, Optional

from pydantic import BaseModel, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from modular.pg_registry import DEFAULT_TABLE_NAME
from modular.registry_service import DEFAULT_NAMESPACE, validate_namespace

# --- Default Static Values (can be overridden by config file/env/cli) ---
MANIFEST_PATH_DEFAULT: str = "modules.yaml"
REGISTRY_BACKEND_DEFAULT: str = "memory"

PGHOST_DEFAULT: str = "127.0.0.1"
PGPORT_DEFAULT: int = 5432
PGDATABASE_DEFAULT: str = "modules"
PGUSER_DEFAULT: str = "modules"
PGPASSWORD_DEFAULT: str = "yourStrongPasswordHere"

LOG_LEVEL_DEFAULT: str = "INFO"
METRICS_PORT_DEFAULT: int = 9105

SYMBOLS_DEFAULT: Dict[str, str] = {
    "success": "✅", "error": "❌", "warning": "⚠️", "info": "ℹ️",
    "step": "➡️", "gear": "⚙️", "package": "📦", "rocket": "🚀",
    "critical": "🔥", "debug": "🐛",
}


class PostgresSettings(BaseSettings):
    """PostgreSQL connection settings for the registry store."""
    model_config = SettingsConfigDict(
        env_prefix='PG_',
        extra='ignore'
    )

    host: str = Field(default=PGHOST_DEFAULT, description="PostgreSQL host.")
    port: int = Field(default=PGPORT_DEFAULT, description="PostgreSQL port.")
    database: str = Field(default=PGDATABASE_DEFAULT, description="PostgreSQL database name.")
    user: str = Field(default=PGUSER_DEFAULT, description="PostgreSQL username.")
    password: SecretStr = Field(default=SecretStr(PGPASSWORD_DEFAULT), description="PostgreSQL password.")

    def conninfo(self) -> str:
        """libpq connection string for these settings."""
        return (
            f"host={self.host} port={self.port} dbname={self.database} "
            f"user={self.user} password={self.password.get_secret_value()}"
        )


class RegistrySettings(BaseModel):
    """Where module versions and component execution dates are stored."""

    backend: Literal["memory", "postgres"] = Field(
        default=REGISTRY_BACKEND_DEFAULT,
        description="Registry store: 'memory' (process-local) or 'postgres'.",
    )
    namespace: str = Field(default=DEFAULT_NAMESPACE, description="Namespace of all registry keys.")
    table_name: str = Field(default=DEFAULT_TABLE_NAME, description="Registry table (postgres backend).")
    create_schema: bool = Field(default=True, description="Create the registry table if missing.")
    allow_ephemeral: bool = Field(
        default=False,
        description="Allow 'run' against the in-memory registry, which forgets every execution on exit.",
    )

    @field_validator("namespace")
    @classmethod
    def _namespace_is_a_path_segment(cls, value: str) -> str:
        return validate_namespace(value)


class LoggingSettings(BaseModel):
    """Logging output settings."""

    level: str = Field(default=LOG_LEVEL_DEFAULT, description="Log level name.")
    json_format: bool = Field(default=False, description="Emit JSON log records on the console.")
    log_file: Optional[str] = Field(default=None, description="Optional JSON log file path.")


class MetricsSettings(BaseModel):
    """Prometheus exporter settings."""

    enabled: bool = Field(default=False, description="Serve Prometheus metrics during the run.")
    port: int = Field(default=METRICS_PORT_DEFAULT, description="Metrics HTTP port.")
    addr: str = Field(default="0.0.0.0", description="Metrics bind address.")


class AppSettings(BaseSettings):
    """Main application settings."""
    model_config = SettingsConfigDict(
        env_prefix='MODULE_UPGRADE_',
        env_nested_delimiter='__',
        extra='ignore'
    )

    manifest_path: str = Field(default=MANIFEST_PATH_DEFAULT,
                               description="YAML manifest listing modules and their components.")
    registry: RegistrySettings = Field(default_factory=RegistrySettings)
    pg: PostgresSettings = Field(default_factory=PostgresSettings)
    log: LoggingSettings = Field(default_factory=LoggingSettings)
    metrics: MetricsSettings = Field(default_factory=MetricsSettings)

    symbols: Dict[str, str] = Field(default_factory=lambda: dict(SYMBOLS_DEFAULT))
