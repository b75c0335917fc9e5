"""
PostgreSQL-backed registry store (Psycopg 3).

Values are stored as text next to a type tag so that a ``VersionNumber``
comes back as a ``VersionNumber`` and a ``datetime`` as a ``datetime``.
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, Optional, Tuple

import psycopg
from psycopg import sql

from modular.errors import RegistryError
from modular.registry_service import (
    PATH_SEPARATOR,
    RegistryKey,
    RegistryService,
)
from modular.version import VersionNumber

module_logger = logging.getLogger(__name__)

DEFAULT_TABLE_NAME = "module_registry"

VALUE_TYPE_VERSION = "version"
VALUE_TYPE_TIMESTAMP = "timestamp"
VALUE_TYPE_STRING = "string"


def serialize_value(value: Any) -> Tuple[str, str]:
    """Turn a registry value into a (type tag, text) pair."""
    if isinstance(value, VersionNumber):
        return VALUE_TYPE_VERSION, str(value)
    if isinstance(value, datetime):
        return VALUE_TYPE_TIMESTAMP, value.isoformat()
    if isinstance(value, str):
        return VALUE_TYPE_STRING, value
    raise RegistryError(
        f"Unsupported registry value type: {type(value).__name__}"
    )


def deserialize_value(value_type: str, text: str) -> Any:
    """Inverse of :func:`serialize_value`."""
    if value_type == VALUE_TYPE_VERSION:
        return VersionNumber(text)
    if value_type == VALUE_TYPE_TIMESTAMP:
        return datetime.fromisoformat(text)
    if value_type == VALUE_TYPE_STRING:
        return text
    raise RegistryError(f"Unknown registry value type tag: '{value_type}'")


def _key_from_path(path: str) -> RegistryKey:
    # The namespace may itself contain ':' but never the separator.
    namespace, *elements = path.split(PATH_SEPARATOR)
    return RegistryKey(namespace, *elements)


class PostgresRegistryService(RegistryService):
    """
    Registry persisted in a single PostgreSQL table.

    The service owns one connection opened in autocommit mode. Writes outside
    ``transaction()`` are committed immediately; ``transaction()`` maps to
    ``Connection.transaction()``, which nests through savepoints.
    """

    def __init__(
        self,
        conninfo: str,
        table_name: str = DEFAULT_TABLE_NAME,
        logger: Optional[logging.Logger] = None,
        connection: Optional[psycopg.Connection] = None,
    ):
        """
        Args:
            conninfo: libpq connection string.
            table_name: Name of the registry table.
            logger: Optional logger instance.
            connection: An already open connection to use instead of connecting.
        """
        self.conninfo = conninfo
        self.table_name = table_name
        self.logger = logger or module_logger
        self._conn = connection

    @property
    def connection(self) -> psycopg.Connection:
        if self._conn is None:
            try:
                self._conn = psycopg.connect(self.conninfo, autocommit=True)
            except psycopg.Error as e:
                raise RegistryError(
                    f"Could not connect to the registry database: {e}"
                ) from e
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def ensure_schema(self) -> None:
        """Create the registry table if it does not exist."""
        statement = sql.SQL(
            "CREATE TABLE IF NOT EXISTS {table} ("
            " path TEXT PRIMARY KEY,"
            " value_type TEXT NOT NULL,"
            " value TEXT NOT NULL,"
            " updated_at TIMESTAMPTZ NOT NULL DEFAULT now()"
            ")"
        ).format(table=sql.Identifier(self.table_name))
        self._execute(statement)
        self.logger.info(f"Registry table '{self.table_name}' is ready")

    def get_value(self, key: RegistryKey) -> Optional[Any]:
        statement = sql.SQL(
            "SELECT value_type, value FROM {table} WHERE path = %s"
        ).format(table=sql.Identifier(self.table_name))
        cursor = self._execute(statement, (key.to_path(),))
        row = cursor.fetchone()
        if row is None:
            return None
        return deserialize_value(row[0], row[1])

    def add_value(self, key: RegistryKey, value: Any) -> None:
        value_type, text = serialize_value(value)
        statement = sql.SQL(
            "INSERT INTO {table} (path, value_type, value, updated_at)"
            " VALUES (%s, %s, %s, now())"
            " ON CONFLICT (path) DO UPDATE SET"
            " value_type = EXCLUDED.value_type,"
            " value = EXCLUDED.value,"
            " updated_at = EXCLUDED.updated_at"
        ).format(table=sql.Identifier(self.table_name))
        self._execute(statement, (key.to_path(), value_type, text))
        self.logger.debug(f"Set {key.to_path()} = {text}")

    def list_values(self, prefix: RegistryKey) -> Dict[RegistryKey, Any]:
        path_prefix = prefix.to_path()
        statement = sql.SQL(
            "SELECT path, value_type, value FROM {table}"
            " WHERE path = %s OR path LIKE %s ORDER BY path"
        ).format(table=sql.Identifier(self.table_name))
        like_pattern = (
            path_prefix.replace("\\", "\\\\")
            .replace("%", "\\%")
            .replace("_", "\\_")
            + PATH_SEPARATOR
            + "%"
        )
        cursor = self._execute(statement, (path_prefix, like_pattern))
        return {
            _key_from_path(path): deserialize_value(value_type, text)
            for path, value_type, text in cursor.fetchall()
        }

    @contextmanager
    def transaction(self) -> Iterator[None]:
        try:
            with self.connection.transaction():
                yield
        except psycopg.Error as e:
            raise RegistryError(f"Registry transaction failed: {e}") from e

    def _execute(self, statement, params=None):
        try:
            return self.connection.execute(statement, params)
        except psycopg.Error as e:
            raise RegistryError(f"Registry query failed: {e}") from e
