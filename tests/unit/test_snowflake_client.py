"""Unit tests for the async Snowflake client wrapper."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from snowflake.connector.errors import OperationalError, ProgrammingError

from events_proxy.config.models import SnowflakeConfig
from events_proxy.destinations.snowflake.client import (
    SnowflakeClient,
    classify_error,
)
from events_proxy.errors import TableLockedError


def _config(**overrides) -> SnowflakeConfig:
    fields = {
        "account": "acme",
        "user": "loader",
        "password": "s3cret",
        "database": "ANALYTICS",
        "schema_name": "PROXY",
        "warehouse": "WH",
        "role": "LOADER_ROLE",
    }
    fields.update(overrides)
    return SnowflakeConfig(**fields)


def _locked() -> OperationalError:
    return OperationalError(
        msg="Statement has locked table 'EVENTS' in transaction", errno=625
    )


class TestClassifyError:
    def test_locked_table(self):
        assert isinstance(classify_error(_locked()), TableLockedError)

    def test_same_errno_other_message_untouched(self):
        exc = OperationalError(msg="something else", errno=625)
        assert classify_error(exc) is exc

    def test_other_error_untouched(self):
        exc = ProgrammingError(msg="syntax error", errno=1003, sqlstate="42000")
        assert classify_error(exc) is exc


@pytest.mark.asyncio
class TestSnowflakeClient:
    async def test_connect_kwargs(self):
        client = SnowflakeClient(
            _config(access_url="https://acme.privatelink.snowflakecomputing.com")
        )
        with patch("snowflake.connector.connect") as mock_connect:
            await client.connect()
        kwargs = mock_connect.call_args.kwargs
        assert kwargs["password"] == "s3cret"
        assert kwargs["schema"] == "PROXY"
        assert kwargs["paramstyle"] == "qmark"
        assert kwargs["host"] == "acme.privatelink.snowflakecomputing.com"
        assert client.connected

    async def test_execute_returns_rows(self):
        client = SnowflakeClient(_config())
        cursor = MagicMock()
        cursor.description = [("name",)]
        cursor.fetchall.return_value = [{"name": "EVENTS"}]
        cursor.rowcount = 1
        client._conn = MagicMock()
        client._conn.cursor.return_value = cursor

        result = await client.execute("SHOW TABLES LIKE 'events'")

        assert result.rows == [{"name": "EVENTS"}]
        assert result.rowcount == 1
        cursor.execute.assert_called_once_with("SHOW TABLES LIKE 'events'", None)
        cursor.close.assert_called_once()

    async def test_execute_many(self):
        client = SnowflakeClient(_config())
        cursor = MagicMock()
        cursor.rowcount = 2
        client._conn = MagicMock()
        client._conn.cursor.return_value = cursor

        result = await client.execute_many("INSERT ...", [[1], [2]])

        assert result.rowcount == 2
        cursor.executemany.assert_called_once_with("INSERT ...", [[1], [2]])

    async def test_locked_table_raised_as_contention(self):
        client = SnowflakeClient(_config())
        cursor = MagicMock()
        cursor.execute.side_effect = _locked()
        client._conn = MagicMock()
        client._conn.cursor.return_value = cursor

        with pytest.raises(TableLockedError):
            await client.execute("INSERT ...")
        cursor.close.assert_called_once()

    async def test_execute_quietly_returns_error(self):
        client = SnowflakeClient(_config())
        err = ProgrammingError(msg="invalid identifier", errno=904, sqlstate="42000")
        cursor = MagicMock()
        cursor.execute.side_effect = err
        client._conn = MagicMock()
        client._conn.cursor.return_value = cursor

        assert await client.execute_quietly("INSERT ...") is err

    async def test_not_connected(self):
        client = SnowflakeClient(_config())
        with pytest.raises(RuntimeError, match="not connected"):
            await client.execute("SELECT 1")

    async def test_ping_false_on_error(self):
        client = SnowflakeClient(_config())
        cursor = MagicMock()
        cursor.execute.side_effect = OperationalError(msg="gone", errno=390114)
        client._conn = MagicMock()
        client._conn.cursor.return_value = cursor
        assert await client.ping() is False

    async def test_close(self):
        client = SnowflakeClient(_config())
        conn = MagicMock()
        client._conn = conn
        await client.close()
        conn.close.assert_called_once()
        assert not client.connected
