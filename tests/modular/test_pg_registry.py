# tests/modular/test_pg_registry.py
# -*- coding: utf-8 -*-
"""
Tests for the PostgreSQL registry store, with the connection mocked.
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import psycopg
import pytest

from modular.errors import RegistryError
from modular.pg_registry import (
    PostgresRegistryService,
    _key_from_path,
    deserialize_value,
    serialize_value,
)
from modular.registry_service import (
    DEFAULT_NAMESPACE,
    RegistryKey,
    component_execution_key,
    module_property_key,
)
from modular.version import VersionNumber


@pytest.fixture
def connection():
    return MagicMock()


@pytest.fixture
def pg_registry(connection):
    return PostgresRegistryService("dbname=test", connection=connection)


def test_serialize_values():
    """Test type tags for supported values."""
    moment = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    assert serialize_value(VersionNumber("2.0")) == ("version", "2.0")
    assert serialize_value(moment) == ("timestamp", moment.isoformat())
    assert deserialize_value("timestamp", moment.isoformat()) == moment
    assert deserialize_value("version", "2.0") == VersionNumber("2")


def test_serialize_unsupported_value():
    """Test that unsupported values are rejected."""
    with pytest.raises(RegistryError):
        serialize_value(3.5)
    with pytest.raises(RegistryError):
        deserialize_value("blob", "x")


def test_lazy_connect(mocker):
    """Test that the connection is opened on first use in autocommit mode."""
    mock_conn = MagicMock()
    connect = mocker.patch("psycopg.connect", return_value=mock_conn)
    registry = PostgresRegistryService("dbname=test")

    assert registry.connection is mock_conn
    assert registry.connection is mock_conn
    connect.assert_called_once_with("dbname=test", autocommit=True)

    registry.close()
    mock_conn.close.assert_called_once()


def test_connect_failure(mocker):
    """Test that connection errors surface as RegistryError."""
    mocker.patch("psycopg.connect", side_effect=psycopg.OperationalError("refused"))
    registry = PostgresRegistryService("dbname=test")

    with pytest.raises(RegistryError):
        registry.get_value(RegistryKey(DEFAULT_NAMESPACE, "a"))


def test_get_value(pg_registry, connection):
    """Test reading a stored version."""
    connection.execute.return_value.fetchone.return_value = ("version", "1.2")
    key = module_property_key(DEFAULT_NAMESPACE, "foo", "currentVersion")

    assert pg_registry.get_value(key) == VersionNumber("1.2")
    _, params = connection.execute.call_args[0]
    assert params == (key.to_path(),)


def test_get_missing_value(pg_registry, connection):
    """Test reading an absent key."""
    connection.execute.return_value.fetchone.return_value = None

    assert pg_registry.get_value(RegistryKey(DEFAULT_NAMESPACE, "a")) is None


def test_add_value(pg_registry, connection):
    """Test upserting a value."""
    key = component_execution_key(DEFAULT_NAMESPACE, "foo", "initData")
    moment = datetime(2024, 5, 1, tzinfo=timezone.utc)

    pg_registry.add_value(key, moment)

    _, params = connection.execute.call_args[0]
    assert params == (key.to_path(), "timestamp", moment.isoformat())


def test_list_values(pg_registry, connection):
    """Test listing the values below a prefix."""
    key = module_property_key(DEFAULT_NAMESPACE, "foo_1", "currentVersion")
    connection.execute.return_value.fetchall.return_value = [
        (key.to_path(), "version", "3.0")
    ]

    values = pg_registry.list_values(RegistryKey(DEFAULT_NAMESPACE, "modules", "foo_1"))

    assert values == {key: VersionNumber("3.0")}
    _, params = connection.execute.call_args[0]
    assert params[1].endswith("/modules/foo\\_1/%")


def test_key_from_stored_path():
    """Test that stored paths split back into the key they came from."""
    key = component_execution_key(DEFAULT_NAMESPACE, "foo", "initData")

    assert _key_from_path(key.to_path()) == key


def test_namespace_with_separator_cannot_be_stored():
    """Test that a namespace that would not split back is refused up front."""
    with pytest.raises(ValueError):
        component_execution_key(
            "http://www.alfresco.org/system/modules/1.0", "foo", "initData"
        )


def test_query_failure(pg_registry, connection):
    """Test that query errors surface as RegistryError."""
    connection.execute.side_effect = psycopg.errors.UndefinedTable("no table")

    with pytest.raises(RegistryError):
        pg_registry.add_value(RegistryKey(DEFAULT_NAMESPACE, "a"), "x")


def test_transaction_uses_connection_transaction(pg_registry, connection):
    """Test that transactions map onto the connection's transaction block."""
    with pg_registry.transaction():
        pass

    connection.transaction.assert_called_once()
    connection.transaction.return_value.__enter__.assert_called_once()
    connection.transaction.return_value.__exit__.assert_called_once()


def test_ensure_schema(pg_registry, connection):
    """Test table creation."""
    pg_registry.ensure_schema()

    connection.execute.assert_called_once()
